"""Solbuild error types and utilities."""

from __future__ import annotations

import os
import tempfile
from pathlib import Path


def atomic_write(path: Path, content: str) -> None:
    """Write content to a file atomically using temp file + rename.

    Writes to a temporary file in the same directory, fsyncs it,
    then atomically replaces the target path.
    """
    fd, tmp = tempfile.mkstemp(dir=path.parent, suffix=".tmp")
    try:
        os.write(fd, content.encode())
        os.fsync(fd)
        os.close(fd)
        os.replace(tmp, str(path))
    except BaseException:
        os.close(fd)
        try:
            os.unlink(tmp)
        except OSError:
            pass
        raise


class SolbuildError(Exception):
    """Base exception for Solbuild."""

    pass


class IdentityCorruptionError(SolbuildError):
    """A unit identifier is duplicated or disagrees with the unit's own identifier.

    Always fatal: the whole graph load is aborted.
    """

    pass


class ReferenceNotFoundError(SolbuildError):
    """A required reference could not be resolved by any search step."""

    def __init__(self, name: str, unit_name: str | None = None, searched: list[str] | None = None):
        self.name = name
        self.unit_name = unit_name
        self.searched = list(searched or [])
        where = f", referenced by unit '{unit_name}'" if unit_name else ""
        super().__init__(f"Reference '{name}'{where}, could not be resolved.")


class CircularDependencyError(SolbuildError):
    """The scheduler made no progress while units remained unfinished."""

    def __init__(self, units: list[str], cycle: bool = False):
        self.units = list(units)
        self.cycle = cycle
        # Set by the orchestrator to the partial pass result.
        self.result = None
        if cycle:
            message = "Circular dependency detected: " + " -> ".join(self.units)
        else:
            message = f"Circular dependency detected among: {sorted(self.units)}"
        super().__init__(message)


class ConfigurationError(SolbuildError):
    """A configuration is malformed or missing where one is required."""

    pass


class ToolInvocationError(SolbuildError):
    """An external tool could not be run to completion."""

    pass


class InspectionError(SolbuildError):
    """Inspecting a candidate binary failed.

    Recovered locally by callers; never propagated out of the resolver.
    """

    pass
