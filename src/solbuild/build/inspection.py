"""Binary inspection in a disposable isolation context.

Identity and declared dependencies of a binary are read from a JSON
sidecar written next to it (``Lib.dll.meta.json``)::

    {
        "name": "Lib",
        "version": "1.0.0.0",
        "public_key_token": "b77a5c561934e089",
        "references": [{"name": "Core", "version": "1.0.0.0"}]
    }

A file without a sidecar has no identity. Reading happens in a
single-worker process pool created for one inspection scope and torn
down on every exit path, so nothing loaded while inspecting outlives it.
"""

from __future__ import annotations

import json
import logging
from concurrent.futures import ProcessPoolExecutor
from concurrent.futures.process import BrokenProcessPool
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable

from solbuild.core.errors import InspectionError

logger = logging.getLogger(__name__)

METADATA_SUFFIX = ".meta.json"


@dataclass(frozen=True)
class AssemblyIdentity:
    """Name, version and public key token of a binary."""

    name: str
    version: str = ""
    public_key_token: str = ""

    def normalized(self) -> tuple[str, str, str]:
        return (self.name.casefold(), self.version, self.public_key_token.lower())


@dataclass(frozen=True)
class AssemblyMetadata:
    identity: AssemblyIdentity
    references: tuple[AssemblyIdentity, ...] = field(default_factory=tuple)


def metadata_path(path: str | Path) -> Path:
    path = Path(path)
    return path.with_name(path.name + METADATA_SUFFIX)


def _identity_from_dict(data: dict, source: Path) -> AssemblyIdentity:
    if not isinstance(data, dict) or not data.get("name"):
        raise InspectionError(f"Malformed identity in {source}: {data!r}")
    return AssemblyIdentity(
        name=str(data["name"]),
        version=str(data.get("version", "")),
        public_key_token=str(data.get("public_key_token", "") or ""),
    )


def read_metadata(path: str) -> AssemblyMetadata | None:
    """Read the sidecar of ``path``. Returns None when the binary has no sidecar.

    Module-level so it can be shipped to the inspection worker process.
    """
    sidecar = metadata_path(path)
    if not sidecar.is_file():
        return None
    try:
        data = json.loads(sidecar.read_text())
    except (OSError, json.JSONDecodeError) as e:
        raise InspectionError(f"Cannot read metadata for {path}: {e}") from e

    identity = _identity_from_dict(data, sidecar)
    references = tuple(_identity_from_dict(ref, sidecar) for ref in data.get("references", []))
    return AssemblyMetadata(identity=identity, references=references)


class InspectionContext:
    """Scoped inspection session.

    Use as a context manager; ``inspect`` is only valid inside the block.
    With ``isolate=False`` the reader runs in-process (tests, debugging).
    """

    def __init__(
        self,
        isolate: bool = True,
        reader: Callable[[str], AssemblyMetadata | None] = read_metadata,
    ):
        self.isolate = isolate
        self._reader = reader
        self._pool: ProcessPoolExecutor | None = None
        self._active = False

    def __enter__(self) -> InspectionContext:
        if self.isolate:
            self._pool = self._start_pool()
        self._active = True
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self._active = False
        if self._pool is not None:
            self._pool.shutdown(wait=True, cancel_futures=True)
            self._pool = None

    @staticmethod
    def _start_pool() -> ProcessPoolExecutor:
        try:
            return ProcessPoolExecutor(max_workers=1)
        except OSError as e:
            raise InspectionError(f"Cannot start inspection worker: {e}") from e

    def _replace_broken_pool(self) -> None:
        """Swap a pool whose worker died for a fresh one.

        If no replacement can be started the context closes.
        """
        broken, self._pool = self._pool, None
        broken.shutdown(wait=False, cancel_futures=True)
        try:
            self._pool = self._start_pool()
        except InspectionError:
            self._active = False
            raise

    def inspect(self, path: str | Path) -> AssemblyMetadata | None:
        if not self._active:
            raise InspectionError("Inspection context is not open.")
        if self._pool is None:
            return self._reader(str(path))
        try:
            return self._pool.submit(self._reader, str(path)).result()
        except InspectionError:
            raise
        except BrokenProcessPool as e:
            logger.warning("Inspection worker died while reading %s; restarting it", path)
            self._replace_broken_pool()
            raise InspectionError(f"Inspection of {path} failed: worker process terminated") from e
        except Exception as e:
            raise InspectionError(f"Inspection of {path} failed: {e}") from e
