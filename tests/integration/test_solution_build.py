"""Integration tests: full build passes over a three-unit solution."""

from __future__ import annotations

import json
import os
import sys
import time

import pytest

from solbuild import BuildUnit, Solution
from solbuild.build.orchestrator import BuildOrchestrator
from solbuild.build.resolver import ReferenceResolver
from solbuild.build.toolchain import get_toolchain
from solbuild.core.logging import BuildLogger, Verbosity
from solbuild.core.models import CompileResult, UnitStatus
from tests.helpers.builders import DEBUG, RELEASE, FakeToolchain, write_binary

# Stand-in compiler: writes argv[1] with the contents of every source given after it.
COMPILER = (
    "import pathlib, sys; out = pathlib.Path(sys.argv[1]); "
    "out.parent.mkdir(parents=True, exist_ok=True); "
    "out.write_text(''.join(pathlib.Path(s).read_text() for s in sys.argv[2:]))"
)


def _unit(name, output_file, sources=()):
    unit = BuildUnit(name, output_file, path=f"{name}/{name}.proj", sources=sources)
    for key in ("Debug|AnyCPU", "Release|AnyCPU"):
        unit.add_configuration(key, command=[sys.executable, "-c", COMPILER, "$(TargetPath)", *sources])
    return unit


@pytest.fixture
def solution(tmp_path):
    """Lib (no deps), App (references Lib's output by path), Test (explicit dependency on App)."""
    test = _unit("Test", "Test.dll", sources=["test.src"])
    app = _unit("App", "App.exe", sources=["app.src"])
    lib = _unit("Lib", "Lib.dll", sources=["lib.src"])
    app.add_assembly_reference("Lib", hint_path="../Lib/bin/Debug/Lib.dll")

    for name in ("Test", "App", "Lib"):
        write_binary(tmp_path / name / f"{name.lower()}.src")

    s = Solution("demo", base_dir=tmp_path)
    s.add_unit(test, depends_on=[app])
    s.add_unit(app)
    s.add_unit(lib)
    return s


@pytest.fixture
def logger(tmp_path):
    return BuildLogger(verbosity=Verbosity.DEBUG, build_dir=tmp_path / "build")


def _graph(solution):
    return solution.load_graph(resolver=ReferenceResolver(isolate_inspection=False))


class TestThreeUnitSolution:
    def test_fixup_orders_build(self, solution, logger):
        toolchain = FakeToolchain()
        result = BuildOrchestrator(toolchain, logger).build_pass(_graph(solution), DEBUG)

        assert toolchain.compiled == ["Lib", "App", "Test"]
        assert result.order == ["Lib", "App", "Test"]
        assert result.success
        assert logger.pass_log.units["App"].converted_references == ["Lib"]

    def test_library_failure_cascades(self, solution, logger):
        toolchain = FakeToolchain(fail=["Lib"])
        result = BuildOrchestrator(toolchain, logger).build_pass(_graph(solution), DEBUG)

        assert result.failed_unit_names == ["App", "Test"]
        assert result.compile_failures == ["Lib"]
        assert not result.success
        assert toolchain.compiled == ["Lib"]
        assert all(status is UnitStatus.FAILED for status in result.statuses.values())

    def test_jsonl_log_records_pass(self, solution, logger):
        BuildOrchestrator(FakeToolchain(), logger).build_pass(_graph(solution), DEBUG)

        events = [json.loads(line) for line in logger.log_path.read_text().splitlines()]
        kinds = [e["event"] for e in events]
        assert kinds[0] == "pass_start"
        assert kinds[-1] == "pass_finish"
        assert kinds.count("unit_built") == 3
        converted = next(e for e in events if e["event"] == "reference_converted")
        assert (converted["unit"], converted["reference"], converted["target"]) == ("App", "Lib", "Lib")


class TestCommandToolchain:
    def test_builds_with_external_commands(self, solution, logger, tmp_path):
        graph = _graph(solution)
        result = BuildOrchestrator(get_toolchain("command", timeout=30), logger).build_pass(graph, DEBUG)

        assert result.success, result.errors
        assert result.order == ["Lib", "App", "Test"]
        assert result.results["Lib"] is CompileResult.SUCCESS_OUTPUT_UPDATED
        assert (tmp_path / "Lib" / "bin" / "Debug" / "Lib.dll").read_text() == "MZ"
        # Lib's output was copied beside App's before App compiled.
        assert (tmp_path / "App" / "bin" / "Debug" / "Lib.dll").is_file()

    def test_incremental_rebuild(self, solution, tmp_path):
        toolchain = get_toolchain("command", timeout=30)
        BuildOrchestrator(toolchain, BuildLogger()).build_pass(_graph(solution), RELEASE)

        second = BuildOrchestrator(toolchain, BuildLogger()).build_pass(_graph(solution), RELEASE)
        assert second.up_to_date == ["Lib", "App", "Test"]

        app_output = tmp_path / "App" / "bin" / "Release" / "App.exe"
        stamp = time.time() - 100
        os.utime(app_output, (stamp, stamp))
        (tmp_path / "App" / "app.src").write_text("changed")

        third = BuildOrchestrator(toolchain, BuildLogger()).build_pass(_graph(solution), RELEASE)
        assert "App" not in third.up_to_date
        assert third.results["App"] is CompileResult.SUCCESS_OUTPUT_UPDATED
        assert app_output.read_text() == "changed"

    def test_compiler_failure_reported(self, solution, logger):
        lib = solution.units[2]
        lib.require_configuration(DEBUG).command = [sys.executable, "-c", "import sys; sys.exit(2)"]

        result = BuildOrchestrator(get_toolchain("command"), logger).build_pass(_graph(solution), DEBUG)

        assert result.compile_failures == ["Lib"]
        assert result.results["Lib"] is CompileResult.FAILED
        assert result.failed_unit_names == ["App", "Test"]
