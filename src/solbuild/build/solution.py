"""Solution descriptions: Python modules declaring a ``solution`` variable."""

from __future__ import annotations

import importlib.util
import sys
import uuid
from pathlib import Path

from solbuild.build.graph import DependencyGraph, UnitEntry, identity_key, load_graph
from solbuild.build.resolver import ReferenceResolver
from solbuild.build.units import BuildUnit
from solbuild.core.errors import ConfigurationError, SolbuildError
from solbuild.core.models import ConfigurationKey, ConfigurationMap


class Solution:
    """A named set of build units.

    Example solution.py::

        from solbuild import BuildUnit, Solution

        lib = BuildUnit("Lib", "Lib.dll", path="Lib/Lib.proj",
                        configurations=["Debug|AnyCPU", "Release|AnyCPU"])
        app = BuildUnit("App", "App.exe", path="App/App.proj",
                        configurations=["Debug|AnyCPU", "Release|AnyCPU"])
        app.add_assembly_reference("Lib", hint_path="../Lib/bin/Release/Lib.dll")

        solution = Solution("demo")
        solution.add_unit(lib)
        solution.add_unit(app)
    """

    def __init__(self, name: str, base_dir: str | Path | None = None):
        self.name = name
        self.base_dir = Path(base_dir) if base_dir is not None else None
        self.entries: list[UnitEntry] = []
        self._pending_depends: list[tuple[UnitEntry, list]] = []

    @property
    def units(self) -> list[BuildUnit]:
        return [entry.unit for entry in self.entries]

    def add_unit(
        self,
        unit: BuildUnit,
        guid: str | None = None,
        depends_on=(),
        reference_only: bool = False,
        configuration_map: dict | None = None,
        restrict_platform: bool = False,
    ) -> BuildUnit:
        """Add a unit.

        ``depends_on`` takes units, identifiers or unit names.
        ``configuration_map`` maps solution configurations to unit
        configurations, e.g. ``{"Release|Mixed": "Release|AnyCPU"}``.
        With ``restrict_platform`` the unit only builds for configurations
        whose platform matches exactly.
        """
        guid = guid or unit.guid or self._derive_guid(unit)
        mapping = None
        if configuration_map is not None:
            mapping = ConfigurationMap(
                {ConfigurationKey.coerce(k): ConfigurationKey.coerce(v) for k, v in configuration_map.items()}
            )
        entry = UnitEntry(
            guid=guid,
            path=unit.path,
            unit=unit,
            reference_only=reference_only,
            configuration_map=mapping,
            restrict_platform=restrict_platform,
        )
        self.entries.append(entry)
        self._pending_depends.append((entry, list(depends_on)))
        return unit

    @staticmethod
    def _derive_guid(unit: BuildUnit) -> str:
        return "{" + str(uuid.uuid5(uuid.NAMESPACE_URL, unit.path.as_posix())).upper() + "}"

    def _dependency_identifier(self, dependency) -> str:
        if isinstance(dependency, BuildUnit):
            for entry in self.entries:
                if entry.unit is dependency:
                    return entry.guid
            return dependency.guid or dependency.name
        for entry in self.entries:
            if identity_key(entry.guid) == identity_key(dependency):
                return entry.guid
        for entry in self.entries:
            if entry.unit.name == dependency:
                return entry.guid
        return dependency

    def resolve_paths(self) -> None:
        """Anchor relative unit paths at the solution's directory."""
        if self.base_dir is None:
            return
        for entry in self.entries:
            if not entry.unit.path.is_absolute():
                entry.unit.path = self.base_dir / entry.unit.path
            entry.path = entry.unit.path

    def load_graph(
        self,
        output_dir: Path | None = None,
        resolver: ReferenceResolver | None = None,
    ) -> DependencyGraph:
        self.resolve_paths()
        for entry, depends_on in self._pending_depends:
            entry.depends_on = [self._dependency_identifier(d) for d in depends_on]
        return load_graph(self.entries, output_dir=output_dir, resolver=resolver)


def load_solution(path: str) -> Solution:
    """Import a Python solution module and extract the `solution` variable."""
    filepath = Path(path).resolve()
    if not filepath.exists():
        raise SolbuildError(f"Solution file not found: {path}")

    module_name = f"_solbuild_solution_{filepath.stem}"
    spec = importlib.util.spec_from_file_location(module_name, filepath)
    if spec is None or spec.loader is None:
        raise SolbuildError(f"Cannot load solution module: {path}")

    module = importlib.util.module_from_spec(spec)
    sys.modules[module_name] = module
    spec.loader.exec_module(module)

    solution = getattr(module, "solution", None)
    if solution is None:
        raise SolbuildError(f"Solution module {path} must define a 'solution' variable")
    if not isinstance(solution, Solution):
        raise SolbuildError(f"'solution' variable must be a Solution instance, got {type(solution)}")

    if solution.base_dir is None:
        solution.base_dir = filepath.parent
    validate_solution(solution)
    return solution


def validate_solution(solution: Solution) -> None:
    """Validate a solution before it is loaded into a graph."""
    if not solution.entries:
        raise ConfigurationError("Solution must have at least one unit")

    for unit in solution.units:
        if not unit.configurations:
            raise ConfigurationError(f"Unit '{unit.name}' declares no configurations")
