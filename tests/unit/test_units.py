"""Tests for build unit paths, up-to-date checks, staging and compile."""

from __future__ import annotations

import os
import time

import pytest

from solbuild.core.errors import ConfigurationError
from solbuild.core.models import CompileResult, ConfigurationKey
from tests.helpers.builders import DEBUG, RELEASE, FakeToolchain, write_binary


def _age(path, seconds):
    stamp = time.time() - seconds
    os.utime(path, (stamp, stamp))


class TestPaths:
    def test_default_layout(self, make_unit, workspace):
        unit = make_unit("Lib")
        assert unit.get_output_dir(RELEASE) == workspace / "Lib" / "bin" / "Release"
        assert unit.get_build_dir(RELEASE) == workspace / "Lib" / "obj" / "Release"
        assert unit.get_output_path(DEBUG) == workspace / "Lib" / "bin" / "Debug" / "Lib.dll"

    def test_output_dir_override(self, make_unit, tmp_path):
        unit = make_unit("Lib")
        unit.output_dir_override = tmp_path / "out"
        assert unit.get_output_path(DEBUG) == tmp_path / "out" / "Lib.dll"

    def test_output_dir_with_platform_macro(self, make_unit, workspace):
        unit = make_unit("Lib", configurations=[])
        unit.add_configuration("Release|x64", output_dir="bin/$(PlatformName)/$(ConfigurationName)")
        assert unit.get_output_dir(ConfigurationKey("Release", "x64")) == workspace / "Lib" / "bin" / "x64" / "Release"

    def test_duplicate_configuration_rejected(self, make_unit):
        unit = make_unit("Lib", configurations=["Debug|AnyCPU"])
        with pytest.raises(ConfigurationError):
            unit.add_configuration("Debug|AnyCPU")

    def test_known_output_paths_all_configurations(self, make_unit, workspace):
        unit = make_unit("Lib")
        assert unit.known_output_paths() == [
            workspace / "Lib" / "bin" / "Debug" / "Lib.dll",
            workspace / "Lib" / "bin" / "Release" / "Lib.dll",
        ]

    def test_assembly_name_defaults_to_output_stem(self, make_unit):
        assert make_unit("Lib", output_file="Company.Lib.dll").assembly_name == "Company.Lib"

    def test_require_configuration(self, make_unit):
        unit = make_unit("Lib", configurations=["Debug|AnyCPU"])
        with pytest.raises(ConfigurationError, match="Unit 'Lib'"):
            unit.require_configuration(RELEASE)


class TestOutputFiles:
    def test_primary_related_and_extra(self, make_unit):
        unit = make_unit("Lib", configurations=[])
        unit.add_configuration("Debug|AnyCPU", extra_output_files=["$(TargetName).config", "data/seed.db"])
        output = write_binary(unit.get_output_path(DEBUG))
        write_binary(output.with_suffix(".pdb"))

        files = unit.get_output_files(DEBUG)
        names = sorted(files.values())
        assert names == ["Lib.config", "Lib.dll", "Lib.pdb", "seed.db"]

    def test_primary_listed_even_before_build(self, make_unit):
        unit = make_unit("Lib")
        assert list(unit.get_output_files(DEBUG).values()) == ["Lib.dll"]


class TestUpToDate:
    def test_missing_output(self, make_unit, resolver):
        unit = make_unit("Lib")
        unit.resolver = resolver
        assert unit.is_up_to_date(DEBUG) is False

    def test_output_newer_than_sources(self, make_unit, resolver, workspace):
        unit = make_unit("Lib", sources=["a.src"])
        unit.resolver = resolver
        source = write_binary(workspace / "Lib" / "a.src")
        _age(source, 100)
        write_binary(unit.get_output_path(DEBUG))
        assert unit.is_up_to_date(DEBUG) is True

    def test_source_newer_than_output(self, make_unit, resolver, workspace):
        unit = make_unit("Lib", sources=["a.src"])
        unit.resolver = resolver
        output = write_binary(unit.get_output_path(DEBUG))
        _age(output, 100)
        write_binary(workspace / "Lib" / "a.src")
        assert unit.is_up_to_date(DEBUG) is False

    def test_missing_source_forces_build(self, make_unit, resolver):
        unit = make_unit("Lib", sources=["gone.src"])
        unit.resolver = resolver
        write_binary(unit.get_output_path(DEBUG))
        assert unit.is_up_to_date(DEBUG) is False

    def test_reference_newer_than_output(self, make_unit, resolver, workspace):
        unit = make_unit("App")
        unit.resolver = resolver
        output = write_binary(unit.get_output_path(DEBUG))
        _age(output, 100)
        write_binary(workspace / "libs" / "Dep.dll")
        unit.add_assembly_reference("Dep", hint_path="../libs/Dep.dll")
        assert unit.is_up_to_date(DEBUG) is False

    def test_missing_reference_forces_build(self, make_unit, resolver):
        unit = make_unit("App")
        unit.resolver = resolver
        write_binary(unit.get_output_path(DEBUG))
        unit.add_assembly_reference("Dep", hint_path="../libs/Dep.dll")
        assert unit.is_up_to_date(DEBUG) is False


class TestCompile:
    def test_stages_copy_local_references(self, make_unit, resolver, workspace):
        write_binary(workspace / "libs" / "Dep.dll")
        write_binary(workspace / "libs" / "Dep.xml")
        write_binary(workspace / "libs" / "NoCopy.dll")
        unit = make_unit("App")
        unit.resolver = resolver
        unit.add_assembly_reference("Dep", hint_path="../libs/Dep.dll")
        unit.add_assembly_reference("NoCopy", hint_path="../libs/NoCopy.dll", private=False)

        result = unit.compile(DEBUG, FakeToolchain())

        out_dir = unit.get_output_dir(DEBUG)
        assert result is CompileResult.SUCCESS_OUTPUT_UPDATED
        assert (out_dir / "Dep.dll").is_file()
        assert (out_dir / "Dep.xml").is_file()
        assert not (out_dir / "NoCopy.dll").exists()
        assert (out_dir / "App.dll").is_file()

    def test_materializes_wrappers_before_compiling(self, make_unit, resolver):
        unit = make_unit("App")
        unit.resolver = resolver
        unit.add_wrapper_reference("Excel")
        toolchain = FakeToolchain()

        unit.compile(DEBUG, toolchain)
        assert toolchain.wrappers == ["Interop.Excel"]
        assert (unit.get_output_dir(DEBUG) / "Interop.Excel.dll").is_file()

    def test_compile_without_configuration(self, make_unit, resolver):
        unit = make_unit("App", configurations=["Debug|AnyCPU"])
        unit.resolver = resolver
        with pytest.raises(ConfigurationError):
            unit.compile(RELEASE, FakeToolchain())
