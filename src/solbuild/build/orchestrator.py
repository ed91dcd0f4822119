"""Build orchestrator: drives one pass over a dependency graph."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any

from solbuild.build.fixup import fixup_references
from solbuild.build.graph import DependencyGraph
from solbuild.build.references import ReferenceKind
from solbuild.build.toolchain import Toolchain
from solbuild.core.errors import (
    CircularDependencyError,
    ConfigurationError,
    ReferenceNotFoundError,
    ToolInvocationError,
)
from solbuild.core.logging import BuildLogger
from solbuild.core.models import CompileResult, ConfigurationKey, UnitStatus

logger = logging.getLogger(__name__)

# Failures that stay local to the unit they happen in.
UNIT_ERRORS = (ReferenceNotFoundError, ConfigurationError, ToolInvocationError)


@dataclass
class PassResult:
    """Outcome of one build pass.

    ``compile_failures`` lists units that failed themselves;
    ``failed_unit_names`` lists units never compiled because a dependency
    failed. Both are in scheduling order.
    """

    configuration: ConfigurationKey
    failed_unit_names: list[str] = field(default_factory=list)
    compile_failures: list[str] = field(default_factory=list)
    order: list[str] = field(default_factory=list)  # units that finished DONE, in order
    statuses: dict[str, UnitStatus] = field(default_factory=dict)
    results: dict[str, CompileResult] = field(default_factory=dict)
    configurations: dict[str, str | None] = field(default_factory=dict)
    errors: dict[str, str] = field(default_factory=dict)
    up_to_date: list[str] = field(default_factory=list)
    total_time: float = 0.0

    @property
    def success(self) -> bool:
        return not self.compile_failures and not self.failed_unit_names

    @property
    def all_failed(self) -> list[str]:
        return [name for name, status in self.statuses.items() if status is UnitStatus.FAILED]

    def to_dict(self) -> dict[str, Any]:
        return {
            "configuration": str(self.configuration),
            "success": self.success,
            "failed_unit_names": list(self.failed_unit_names),
            "compile_failures": list(self.compile_failures),
            "order": list(self.order),
            "statuses": {name: status.value for name, status in self.statuses.items()},
            "results": {name: r.value for name, r in self.results.items()},
            "configurations": dict(self.configurations),
            "errors": dict(self.errors),
            "up_to_date": list(self.up_to_date),
            "total_time": round(self.total_time, 3),
        }


class BuildOrchestrator:
    """Runs build passes: configuration mapping, fix-up, up-to-date checks, compile."""

    def __init__(self, toolchain: Toolchain | None = None, build_logger: BuildLogger | None = None):
        self.toolchain = toolchain
        self.build_logger = build_logger or BuildLogger()

    def build_pass(
        self,
        graph: DependencyGraph,
        requested: ConfigurationKey | str,
        dry_run: bool = False,
    ) -> PassResult:
        """Build every unit configured for ``requested``.

        Units run in fixed-point rounds over load order. A round without
        progress raises CircularDependencyError carrying the partial result
        as ``result``. With ``dry_run`` units are
        scheduled and fixed up but nothing is checked or compiled.
        """
        requested = ConfigurationKey.coerce(requested)
        if self.toolchain is None and not dry_run:
            raise ConfigurationError("A toolchain is required to build.")

        start = time.time()
        log = self.build_logger
        result = PassResult(configuration=requested)

        graph.reset_pass()
        log.pass_start(str(requested), len(graph))

        for key, unit in graph.items():
            config = unit.get_configuration(requested)
            result.configurations[unit.name] = str(config.key) if config is not None else None
            if config is None:
                graph.mark_skipped(key)
                log.unit_skipped(unit.name, f"no configuration matching '{requested}'")

        self._infer_dependencies(graph, requested)

        fixed_up: set[str] = set()
        remaining = graph.unfinished()
        try:
            while remaining:
                progressed = False
                for key in list(remaining):
                    if graph.dependencies(key):
                        continue
                    if key not in fixed_up:
                        fixed_up.add(key)
                        fixup_references(graph, key, requested, log)
                        if graph.dependencies(key):
                            progressed = True
                            continue
                    remaining.remove(key)
                    progressed = True
                    self._run_unit(graph, key, requested, result, dry_run)

                if not progressed:
                    cycle = graph.find_cycle(remaining)
                    if cycle:
                        raise CircularDependencyError(cycle, cycle=True)
                    raise CircularDependencyError([graph.get_unit(k).name for k in remaining])
        except CircularDependencyError as e:
            # Units that already failed are still reported before the pass aborts.
            self._finish(graph, result, start)
            e.result = result
            raise

        self._finish(graph, result, start)
        return result

    def _finish(self, graph: DependencyGraph, result: PassResult, start: float) -> None:
        for key, unit in graph.items():
            result.statuses[unit.name] = graph.status(key)
        result.total_time = time.time() - start
        self.build_logger.pass_finish(result.total_time, result.all_failed)

    def _infer_dependencies(self, graph: DependencyGraph, requested: ConfigurationKey) -> None:
        """Edges from project references and from outputs placed in assembly folders."""
        folder_outputs: dict[str, str] = {}
        for key, unit in graph.items():
            if graph.status(key) is UnitStatus.SKIPPED or unit.resolver is None:
                continue
            try:
                output = unit.get_output_path(requested)
            except ConfigurationError as e:
                logger.debug("No output path for '%s': %s", unit.name, e)
                continue
            if unit.resolver.assembly_folder_for(output) is not None:
                folder_outputs.setdefault(output.name.casefold(), key)

        for key, unit in graph.items():
            for reference in unit.references:
                if reference.kind is ReferenceKind.PROJECT:
                    target = graph.identifier_of(reference.unit)
                    if target is None:
                        logger.warning(
                            "Unit '%s' references unit '%s', which is not loaded",
                            unit.name, reference.name,
                        )
                        continue
                    graph.add_dependency(key, target)
                elif reference.kind is ReferenceKind.ASSEMBLY:
                    target = folder_outputs.get(reference.descriptor.target_file_name.casefold())
                    if target is not None:
                        graph.add_dependency(key, target)

    def _run_unit(
        self,
        graph: DependencyGraph,
        key: str,
        requested: ConfigurationKey,
        result: PassResult,
        dry_run: bool,
    ) -> None:
        log = self.build_logger
        unit = graph.get_unit(key)
        graph.set_status(key, UnitStatus.READY)

        if key in graph.reference_only:
            graph.mark_done(key)
            log.unit_skipped(unit.name, "reference only")
            return

        failed_dependency = graph.cascade_source(key)
        if failed_dependency is not None:
            graph.mark_failed(key)
            result.failed_unit_names.append(unit.name)
            result.errors[unit.name] = f"dependency '{failed_dependency}' failed"
            log.unit_cascaded(unit.name, failed_dependency)
            return

        if dry_run:
            graph.mark_done(key)
            result.order.append(unit.name)
            return

        config = unit.require_configuration(requested)
        graph.set_status(key, UnitStatus.BUILDING)
        log.unit_start(unit.name, str(config.key))
        try:
            if unit.is_up_to_date(requested):
                graph.mark_done(key)
                result.order.append(unit.name)
                result.up_to_date.append(unit.name)
                result.results[unit.name] = CompileResult.SUCCESS
                log.unit_up_to_date(unit.name)
                return
            outcome = unit.compile(requested, self.toolchain)
        except UNIT_ERRORS as e:
            self._fail(graph, key, result, str(e))
            return

        result.results[unit.name] = outcome
        if not outcome.succeeded:
            self._fail(graph, key, result, "compilation failed")
            return

        graph.mark_done(key)
        result.order.append(unit.name)
        log.unit_built(unit.name, outcome.value)

    def _fail(self, graph: DependencyGraph, key: str, result: PassResult, message: str) -> None:
        unit = graph.get_unit(key)
        graph.mark_failed(key)
        result.compile_failures.append(unit.name)
        result.errors[unit.name] = message
        self.build_logger.unit_failed(unit.name, message)


def build_pass(
    graph: DependencyGraph,
    requested: ConfigurationKey | str,
    toolchain: Toolchain,
    build_logger: BuildLogger | None = None,
) -> PassResult:
    """Run one build pass with a fresh orchestrator."""
    return BuildOrchestrator(toolchain, build_logger).build_pass(graph, requested)
