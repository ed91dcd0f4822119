"""Structured logging and verbosity levels for Solbuild build passes."""

from __future__ import annotations

import json
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import IntEnum
from pathlib import Path
from typing import Any

from rich.console import Console


class Verbosity(IntEnum):
    """Verbosity levels for console output."""

    DEFAULT = 0   # Summary only
    VERBOSE = 1   # + per-unit progress
    DEBUG = 2     # + reference conversions, skipped units, timing


@dataclass
class UnitLog:
    """Per-unit outcome within one pass."""

    name: str
    status: str = "pending"
    result: str | None = None
    time_seconds: float = 0.0
    converted_references: list[str] = field(default_factory=list)
    message: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "status": self.status,
            "result": self.result,
            "time_seconds": self.time_seconds,
            "converted_references": list(self.converted_references),
            "message": self.message,
        }


@dataclass
class PassLog:
    """Structured log of a complete build pass.

    The dict format is::

        {
            "run_id": "20260101T120000Z",
            "configuration": "Release|AnyCPU",
            "units": {
                "Lib": {"status": "done", "result": "success_output_updated", ...},
                "App": {"status": "failed", "message": "dependency 'Lib' failed", ...},
            },
            "built": 1,
            "up_to_date": 0,
            "skipped": 0,
            "failed": 1,
            "total_time": 0.4,
        }
    """

    run_id: str = ""
    configuration: str = ""
    units: dict[str, UnitLog] = field(default_factory=dict)
    total_time: float = 0.0
    built: int = 0
    up_to_date: int = 0
    skipped: int = 0
    failed: int = 0

    def get_or_create_unit(self, name: str) -> UnitLog:
        """Get existing unit log or create a new one."""
        if name not in self.units:
            self.units[name] = UnitLog(name=name)
        return self.units[name]

    def finalize(self) -> None:
        """Compute totals from unit data."""
        statuses = [u.status for u in self.units.values()]
        self.built = statuses.count("built")
        self.up_to_date = statuses.count("up_to_date")
        self.skipped = statuses.count("skipped")
        self.failed = statuses.count("failed") + statuses.count("cascaded")

    def to_dict(self) -> dict[str, Any]:
        return {
            "run_id": self.run_id,
            "configuration": self.configuration,
            "units": {name: unit.to_dict() for name, unit in self.units.items()},
            "built": self.built,
            "up_to_date": self.up_to_date,
            "skipped": self.skipped,
            "failed": self.failed,
            "total_time": self.total_time,
        }


class BuildLogger:
    """Structured logger for Solbuild passes.

    Writes JSONL log files to build_dir/logs/ and optionally emits
    console output via Rich based on verbosity level.
    """

    def __init__(
        self,
        verbosity: Verbosity = Verbosity.DEFAULT,
        build_dir: Path | None = None,
        console: Console | None = None,
    ):
        self.verbosity = verbosity
        self.build_dir = build_dir
        self.console = console or Console()
        self.pass_log = PassLog(
            run_id=datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ"),
        )
        self._log_file = None
        self._log_path: Path | None = None
        self._unit_start: float = 0.0

        if build_dir is not None:
            logs_dir = build_dir / "logs"
            logs_dir.mkdir(parents=True, exist_ok=True)
            self._log_path = logs_dir / f"{self.pass_log.run_id}.jsonl"
            self._log_file = open(self._log_path, "a")

    @property
    def log_path(self) -> Path | None:
        return self._log_path

    def _write_event(self, event: dict[str, Any]) -> None:
        """Write a JSON event to the JSONL log file."""
        if self._log_file is not None:
            event["timestamp"] = datetime.now(timezone.utc).isoformat()
            self._log_file.write(json.dumps(event) + "\n")
            self._log_file.flush()

    def _console_print(self, message: str, min_verbosity: Verbosity) -> None:
        if self.verbosity >= min_verbosity:
            self.console.print(message)

    # -- Pass lifecycle --

    def pass_start(self, configuration: str, unit_count: int) -> None:
        self.pass_log.configuration = configuration
        self._write_event({
            "event": "pass_start",
            "configuration": configuration,
            "unit_count": unit_count,
        })
        self._console_print(
            f"[bold]Building configuration:[/bold] {configuration} ({unit_count} units)",
            Verbosity.VERBOSE,
        )

    def pass_finish(self, total_time: float, failed: list[str]) -> None:
        """Log the completion of a pass and finalize stats."""
        self.pass_log.total_time = total_time
        self.pass_log.finalize()

        self._write_event({
            "event": "pass_finish",
            "total_time": round(total_time, 3),
            "built": self.pass_log.built,
            "up_to_date": self.pass_log.up_to_date,
            "skipped": self.pass_log.skipped,
            "failed": failed,
        })

        if failed:
            self.console.print("")
            self.console.print("[red]Solution failed to build! Failed units were:[/red]")
            for name in failed:
                self.console.print(f"  - {name}")

        self.close()

    # -- Unit events --

    def unit_start(self, unit_name: str, configuration: str) -> None:
        self._unit_start = time.time()
        self.pass_log.get_or_create_unit(unit_name).status = "building"
        self._write_event({
            "event": "unit_start",
            "unit": unit_name,
            "configuration": configuration,
        })
        self._console_print(
            f"  [bold]Building unit:[/bold] {unit_name} [dim]({configuration})[/dim]",
            Verbosity.VERBOSE,
        )

    def unit_built(self, unit_name: str, result: str) -> None:
        elapsed = time.time() - self._unit_start
        unit = self.pass_log.get_or_create_unit(unit_name)
        unit.status = "built"
        unit.result = result
        unit.time_seconds = elapsed
        self._write_event({
            "event": "unit_built",
            "unit": unit_name,
            "result": result,
            "time_seconds": round(elapsed, 3),
        })
        self._console_print(
            f"    [green]+[/green] {unit_name} ({elapsed:.1f}s)",
            Verbosity.VERBOSE,
        )

    def unit_up_to_date(self, unit_name: str) -> None:
        unit = self.pass_log.get_or_create_unit(unit_name)
        unit.status = "up_to_date"
        self._write_event({"event": "unit_up_to_date", "unit": unit_name})
        self._console_print(
            f"    [cyan]=[/cyan] {unit_name} (up-to-date)",
            Verbosity.VERBOSE,
        )

    def unit_skipped(self, unit_name: str, reason: str) -> None:
        """Log a unit that is not built in this pass (not configured, reference only)."""
        unit = self.pass_log.get_or_create_unit(unit_name)
        unit.status = "skipped"
        unit.message = reason
        self._write_event({"event": "unit_skipped", "unit": unit_name, "reason": reason})
        self._console_print(
            f"    [dim]- {unit_name}: {reason}[/dim]",
            Verbosity.DEBUG,
        )

    def unit_failed(self, unit_name: str, message: str) -> None:
        unit = self.pass_log.get_or_create_unit(unit_name)
        unit.status = "failed"
        unit.message = message
        unit.time_seconds = time.time() - self._unit_start
        self._write_event({"event": "unit_failed", "unit": unit_name, "message": message})
        self.console.print(f"[red]Unit '{unit_name}' failed![/red] {message}")
        self.console.print("[red]Continuing build with non-dependent units.[/red]")

    def unit_cascaded(self, unit_name: str, dependency: str) -> None:
        """Log a unit that is not compiled because a dependency failed."""
        unit = self.pass_log.get_or_create_unit(unit_name)
        unit.status = "cascaded"
        unit.message = f"dependency '{dependency}' failed"
        self._write_event({
            "event": "unit_cascaded",
            "unit": unit_name,
            "dependency": dependency,
        })
        self._console_print(
            f"    [yellow]![/yellow] Skipping {unit_name}: dependency '{dependency}' failed",
            Verbosity.DEFAULT,
        )

    def reference_converted(self, unit_name: str, reference: str, target: str) -> None:
        unit = self.pass_log.get_or_create_unit(unit_name)
        unit.converted_references.append(reference)
        self._write_event({
            "event": "reference_converted",
            "unit": unit_name,
            "reference": reference,
            "target": target,
        })
        self._console_print(
            f"      [dim]Converted assembly reference to unit reference: {reference} -> {target}[/dim]",
            Verbosity.DEBUG,
        )

    def close(self) -> None:
        """Close the log file if open."""
        if self._log_file is not None:
            self._log_file.close()
            self._log_file = None
