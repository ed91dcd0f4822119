"""Reference fix-up: turn assembly references to sibling outputs into unit edges."""

from __future__ import annotations

import logging

from solbuild.build.files import normalize_path
from solbuild.build.graph import DependencyGraph, identity_key
from solbuild.build.references import AssemblyReference, ProjectReference, ReferenceKind
from solbuild.core.errors import ReferenceNotFoundError
from solbuild.core.logging import BuildLogger
from solbuild.core.models import ConfigurationKey, UnitStatus

logger = logging.getLogger(__name__)


def match_reference(
    graph: DependencyGraph, identifier: str, reference: AssemblyReference,
) -> str | None:
    """Identifier of the unit producing what ``reference`` points at, if any.

    Tried in order: the resolved path against every known output path, the
    file name inside the output-directory override, and, when the file
    does not exist or cannot be found at all, the declared assembly name
    (first in load order).
    """
    key = identity_key(identifier)
    try:
        resolved = reference.resolve()
    except ReferenceNotFoundError:
        resolved = None

    target = None
    if resolved is not None:
        index = graph.output_index()
        target = index.get(normalize_path(resolved.path))
        if target is None and graph.output_dir is not None:
            target = index.get(graph.output_dir / resolved.path.name)
    if target is None and (resolved is None or not resolved.path.exists()):
        target = graph.find_by_assembly_name(reference.name, exclude=key)

    if target == key:
        return None
    return target


def fixup_references(
    graph: DependencyGraph,
    identifier: str,
    requested: ConfigurationKey,
    build_logger: BuildLogger | None = None,
) -> list[str]:
    """Convert matching assembly references of one unit into project references.

    Adds a dependency edge for every conversion (unless the target already
    finished) and flags the unit for cascade when the target failed.
    Running it again is a no-op. Returns the names of converted references.
    """
    unit = graph.get_unit(identifier)
    converted: list[str] = []

    for reference in unit.references.of_kind(ReferenceKind.ASSEMBLY):
        target = match_reference(graph, identifier, reference)
        if target is None:
            continue

        target_unit = graph.get_unit(target)
        unit.references.replace(reference, ProjectReference(target_unit, private=reference.private))
        graph.add_dependency(identifier, target)
        if graph.status(target) is UnitStatus.FAILED:
            graph.flag_cascade(identifier, target_unit.name)

        converted.append(reference.name)
        logger.debug("%s: '%s' now refers to unit '%s'", unit.name, reference.name, target_unit.name)
        if build_logger is not None:
            build_logger.reference_converted(unit.name, reference.name, target_unit.name)

    return converted
