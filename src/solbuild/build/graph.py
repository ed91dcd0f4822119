"""Dependency graph: units keyed by identity plus per-pass scheduling state."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator

from solbuild.build.files import normalize_path
from solbuild.build.resolver import ReferenceResolver
from solbuild.build.units import BuildUnit
from solbuild.core.errors import IdentityCorruptionError
from solbuild.core.models import ConfigurationMap, UnitStatus

logger = logging.getLogger(__name__)


def identity_key(guid: str) -> str:
    """Identifiers compare case-insensitively."""
    return guid.strip().lower()


@dataclass
class UnitEntry:
    """One unit as declared by a solution description."""

    guid: str
    path: Path
    unit: BuildUnit
    depends_on: list[str] = field(default_factory=list)
    reference_only: bool = False
    configuration_map: ConfigurationMap | None = None
    restrict_platform: bool = False


class DependencyGraph:
    """Units in load order, dependency edges and per-pass status.

    Explicit edges come from the solution description and survive passes.
    Pending edges are rebuilt by ``reset_pass`` and only change through
    ``add_dependency`` and ``satisfy``.
    """

    def __init__(self, output_dir: Path | None = None):
        self.output_dir = normalize_path(output_dir) if output_dir is not None else None
        self._units: dict[str, BuildUnit] = {}
        self._paths: dict[str, Path] = {}
        self._explicit: dict[str, set[str]] = {}
        self._inferred: dict[str, set[str]] = {}
        self._pending: dict[str, set[str]] = {}
        self._status: dict[str, UnitStatus] = {}
        self._cascade: dict[str, str] = {}
        self._output_index: dict[Path, str] | None = None
        self.reference_only: set[str] = set()

    # -- Loading --

    def add_unit(self, entry: UnitEntry) -> str:
        key = identity_key(entry.guid)
        if not key:
            raise IdentityCorruptionError(f"Unit '{entry.unit.name}' has an empty identifier.")
        if entry.unit.guid and identity_key(entry.unit.guid) != key:
            raise IdentityCorruptionError(
                f"Unit '{entry.unit.name}' declares identifier {entry.unit.guid} "
                f"but was loaded as {entry.guid}."
            )
        if key in self._units:
            raise IdentityCorruptionError(
                f"Duplicate unit identifier {entry.guid}: "
                f"'{self._paths[key]}' and '{entry.path}'."
            )

        self._units[key] = entry.unit
        self._paths[key] = Path(entry.path)
        self._explicit[key] = set()
        self._inferred[key] = set()
        self._pending[key] = set()
        self._status[key] = UnitStatus.PENDING
        if entry.reference_only:
            self.reference_only.add(key)
        return key

    # -- Lookup --

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._units))

    def __len__(self) -> int:
        return len(self._units)

    def __contains__(self, identifier: object) -> bool:
        return isinstance(identifier, str) and identity_key(identifier) in self._units

    def items(self) -> list[tuple[str, BuildUnit]]:
        return list(self._units.items())

    def get_unit(self, identifier: str) -> BuildUnit:
        return self._units[identity_key(identifier)]

    def identifier_of(self, unit: BuildUnit) -> str | None:
        for key, candidate in self._units.items():
            if candidate is unit:
                return key
        return None

    def find_by_name(self, name: str) -> str | None:
        for key, unit in self._units.items():
            if unit.name == name:
                return key
        return None

    def find_by_assembly_name(self, assembly_name: str, exclude: str | None = None) -> str | None:
        """First unit in load order declaring ``assembly_name`` (case-insensitive)."""
        wanted = assembly_name.casefold()
        for key, unit in self._units.items():
            if key != exclude and unit.assembly_name.casefold() == wanted:
                return key
        return None

    def output_index(self) -> dict[Path, str]:
        """Known output path of every configuration of every unit -> identifier."""
        if self._output_index is None:
            index: dict[Path, str] = {}
            for key, unit in self._units.items():
                for path in unit.known_output_paths():
                    index.setdefault(normalize_path(path), key)
            self._output_index = index
        return self._output_index

    # -- Edges --

    def add_explicit_dependency(self, identifier: str, dependency: str) -> bool:
        """Declared edge, kept for every pass. Dependencies on unknown units are ignored."""
        key, dep = identity_key(identifier), identity_key(dependency)
        if dep not in self._units:
            logger.warning(
                "Unit '%s' depends on unknown unit %s; ignoring", self._units[key].name, dependency,
            )
            return False
        if dep == key:
            return False
        self._explicit[key].add(dep)
        return True

    def add_dependency(self, identifier: str, dependency: str) -> bool:
        """Add a pending edge for this pass.

        Never adds a self-edge, and never makes a unit wait on one that has
        already finished.
        """
        key, dep = identity_key(identifier), identity_key(dependency)
        if key == dep or dep not in self._units:
            return False
        if dep not in self._explicit[key]:
            self._inferred[key].add(dep)
        if self._status[dep].terminal or dep in self._pending[key]:
            return False
        self._pending[key].add(dep)
        return True

    def satisfy(self, dependency: str) -> None:
        """Remove ``dependency`` from every pending set."""
        dep = identity_key(dependency)
        for pending in self._pending.values():
            pending.discard(dep)

    def dependencies(self, identifier: str) -> frozenset[str]:
        return frozenset(self._pending[identity_key(identifier)])

    def edges(self, identifier: str) -> set[str]:
        """Every edge recorded for the unit this pass, explicit and inferred."""
        key = identity_key(identifier)
        return self._explicit[key] | self._inferred[key]

    # -- Status --

    def reset_pass(self) -> None:
        self._pending = {key: set(deps) for key, deps in self._explicit.items()}
        self._inferred = {key: set() for key in self._units}
        self._status = {key: UnitStatus.PENDING for key in self._units}
        self._cascade = {}
        self._output_index = None
        for unit in self._units.values():
            unit.reset_references()

    def status(self, identifier: str) -> UnitStatus:
        return self._status[identity_key(identifier)]

    def set_status(self, identifier: str, status: UnitStatus) -> None:
        self._status[identity_key(identifier)] = status

    def mark_done(self, identifier: str) -> None:
        self.set_status(identifier, UnitStatus.DONE)
        self.satisfy(identifier)

    def mark_skipped(self, identifier: str) -> None:
        self.set_status(identifier, UnitStatus.SKIPPED)
        self.satisfy(identifier)

    def mark_failed(self, identifier: str) -> None:
        """Fail the unit, flag everything waiting on it, then release those edges."""
        key = identity_key(identifier)
        self._status[key] = UnitStatus.FAILED
        name = self._units[key].name
        for other, pending in self._pending.items():
            if key in pending:
                self._cascade.setdefault(other, name)
        self.satisfy(key)

    def flag_cascade(self, identifier: str, failed_name: str) -> None:
        self._cascade.setdefault(identity_key(identifier), failed_name)

    def cascade_source(self, identifier: str) -> str | None:
        """Name of the failed dependency that dooms this unit, if any."""
        return self._cascade.get(identity_key(identifier))

    def unfinished(self) -> list[str]:
        return [key for key in self._units if not self._status[key].terminal]

    # -- Cycles --

    def find_cycle(self, identifiers: list[str] | None = None) -> list[str] | None:
        """Unit names along a cycle of pending edges, closed on the first name."""
        scope = {identity_key(i) for i in (identifiers if identifiers is not None else self._units)}
        WHITE, GREY, BLACK = 0, 1, 2
        color = {key: WHITE for key in scope}
        stack: list[str] = []
        order = {key: i for i, key in enumerate(self._units)}

        def visit(key: str) -> list[str] | None:
            color[key] = GREY
            stack.append(key)
            for dep in sorted(self._pending[key], key=order.__getitem__):
                if dep not in scope:
                    continue
                if color[dep] == GREY:
                    cycle = stack[stack.index(dep):] + [dep]
                    return [self._units[k].name for k in cycle]
                if color[dep] == WHITE:
                    found = visit(dep)
                    if found:
                        return found
            stack.pop()
            color[key] = BLACK
            return None

        for key in self._units:
            if key in scope and color[key] == WHITE:
                found = visit(key)
                if found:
                    return found
        return None


def load_graph(
    entries: list[UnitEntry],
    output_dir: Path | None = None,
    resolver: ReferenceResolver | None = None,
) -> DependencyGraph:
    """Build a DependencyGraph from solution entries.

    Raises IdentityCorruptionError on duplicate or inconsistent identifiers.
    """
    graph = DependencyGraph(output_dir=output_dir)
    resolver = resolver or ReferenceResolver()

    for entry in entries:
        graph.add_unit(entry)
        unit = entry.unit
        unit.resolver = resolver
        unit.output_dir_override = graph.output_dir
        unit.solution_configurations = entry.configuration_map
        unit.restrict_platform = entry.restrict_platform

    for entry in entries:
        for dependency in entry.depends_on:
            graph.add_explicit_dependency(entry.guid, dependency)

    logger.debug("Loaded %d units", len(graph))
    return graph
