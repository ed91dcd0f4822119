"""Tests for converting assembly references into unit dependencies."""

from __future__ import annotations

from solbuild.build.fixup import fixup_references, match_reference
from solbuild.build.references import ProjectReference, ReferenceKind
from solbuild.core.models import UnitStatus
from tests.helpers.builders import DEBUG, write_binary


def _prepare(graph):
    graph.reset_pass()
    return graph


class TestMatchReference:
    def test_matches_known_output_path(self, make_unit, make_graph):
        lib = make_unit("Lib")
        app = make_unit("App")
        ref = app.add_assembly_reference("Lib", hint_path="../Lib/bin/Release/Lib.dll")
        graph = _prepare(make_graph(lib, app))
        assert match_reference(graph, "{APP}", ref) == "{lib}"

    def test_matches_inside_output_dir_override(self, make_unit, make_graph, tmp_path):
        out = tmp_path / "out"
        lib = make_unit("Lib")
        app = make_unit("App")
        ref = app.add_assembly_reference("Lib", hint_path=str(out / "Lib.dll"))
        graph = _prepare(make_graph(lib, app, output_dir=out))
        assert match_reference(graph, "{APP}", ref) == "{lib}"

    def test_assembly_name_when_file_missing(self, make_unit, make_graph):
        lib = make_unit("Lib", output_file="Company.Lib.dll")
        app = make_unit("App")
        ref = app.add_assembly_reference("Company.Lib", hint_path="../elsewhere/Company.Lib.dll")
        graph = _prepare(make_graph(lib, app))
        assert match_reference(graph, "{APP}", ref) == "{lib}"

    def test_assembly_name_first_in_load_order(self, make_unit, make_graph):
        first = make_unit("First", output_file="Shared.dll")
        second = make_unit("Second", output_file="Shared.dll")
        app = make_unit("App")
        ref = app.add_assembly_reference("Shared")
        graph = _prepare(make_graph(first, second, app))
        assert match_reference(graph, "{APP}", ref) == "{first}"

    def test_existing_unrelated_file_does_not_match_by_name(self, make_unit, make_graph, workspace):
        write_binary(workspace / "libs" / "Lib.dll")
        lib = make_unit("Lib")
        app = make_unit("App")
        ref = app.add_assembly_reference("Lib", hint_path="../libs/Lib.dll")
        graph = _prepare(make_graph(lib, app))
        assert match_reference(graph, "{APP}", ref) is None

    def test_never_matches_itself(self, make_unit, make_graph):
        app = make_unit("App")
        ref = app.add_assembly_reference("App", hint_path="bin/Debug/App.dll")
        graph = _prepare(make_graph(app))
        assert match_reference(graph, "{APP}", ref) is None


class TestFixupReferences:
    def test_converts_and_adds_edge(self, make_unit, make_graph, quiet_logger):
        lib = make_unit("Lib")
        app = make_unit("App")
        app.add_assembly_reference("Lib", hint_path="../Lib/bin/Debug/Lib.dll", private=False)
        graph = _prepare(make_graph(lib, app))

        converted = fixup_references(graph, "{APP}", DEBUG, quiet_logger)

        assert converted == ["Lib"]
        [reference] = list(app.references)
        assert isinstance(reference, ProjectReference)
        assert reference.unit is lib
        assert reference.private is False
        assert reference.parent is app
        assert graph.dependencies("{APP}") == frozenset({"{lib}"})
        assert quiet_logger.pass_log.units["App"].converted_references == ["Lib"]

    def test_idempotent(self, make_unit, make_graph):
        lib = make_unit("Lib")
        app = make_unit("App")
        app.add_assembly_reference("Lib", hint_path="../Lib/bin/Debug/Lib.dll")
        graph = _prepare(make_graph(lib, app))

        fixup_references(graph, "{APP}", DEBUG)
        assert fixup_references(graph, "{APP}", DEBUG) == []
        assert len(app.references) == 1
        assert graph.dependencies("{APP}") == frozenset({"{lib}"})

    def test_unrelated_references_untouched(self, make_unit, make_graph, workspace):
        write_binary(workspace / "libs" / "Other.dll")
        lib = make_unit("Lib")
        app = make_unit("App")
        app.add_assembly_reference("Other", hint_path="../libs/Other.dll")
        graph = _prepare(make_graph(lib, app))

        assert fixup_references(graph, "{APP}", DEBUG) == []
        assert [r.kind for r in app.references] == [ReferenceKind.ASSEMBLY]

    def test_failed_target_flags_cascade(self, make_unit, make_graph):
        lib = make_unit("Lib")
        app = make_unit("App")
        app.add_assembly_reference("Lib", hint_path="../Lib/bin/Debug/Lib.dll")
        graph = _prepare(make_graph(lib, app))
        graph.mark_failed("{LIB}")

        fixup_references(graph, "{APP}", DEBUG)

        assert graph.cascade_source("{APP}") == "Lib"
        assert graph.edges("{APP}") == {"{lib}"}
        assert graph.status("{LIB}") is UnitStatus.FAILED

    def test_finished_target_adds_no_pending_edge(self, make_unit, make_graph):
        lib = make_unit("Lib")
        app = make_unit("App")
        app.add_assembly_reference("Lib", hint_path="../Lib/bin/Debug/Lib.dll")
        graph = _prepare(make_graph(lib, app))
        graph.mark_done("{LIB}")

        assert fixup_references(graph, "{APP}", DEBUG) == ["Lib"]
        assert graph.dependencies("{APP}") == frozenset()
