"""Reference variants: prebuilt binaries, other units, generated wrappers."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections import deque
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Iterator

from solbuild.build.files import file_timestamp, find_related_files, normalize_path
from solbuild.build.resolver import (
    Provenance,
    ReferenceDescriptor,
    ReferenceResolver,
    ResolvedReference,
    SearchContext,
)
from solbuild.core.config import DEFAULT_RELATED_EXTENSIONS
from solbuild.core.errors import ConfigurationError, ReferenceNotFoundError
from solbuild.core.models import MAX_TIMESTAMP, ConfigurationKey, UnitConfiguration

if TYPE_CHECKING:
    from solbuild.build.toolchain import Toolchain
    from solbuild.build.units import BuildUnit

logger = logging.getLogger(__name__)


class ReferenceKind(str, Enum):
    ASSEMBLY = "assembly"
    PROJECT = "project"
    WRAPPER = "wrapper"


class ResolutionState(str, Enum):
    UNRESOLVED = "unresolved"
    RESOLVED_SYSTEM = "resolved_system"
    RESOLVED_USER = "resolved_user"


class Reference(ABC):
    """Something a unit consumes at build time.

    ``config`` arguments are always the requested top-level configuration;
    each variant maps it to the configuration it needs.
    """

    kind: ReferenceKind

    def __init__(self, private: bool | None = None):
        self.private = private
        self.parent: BuildUnit | None = None

    @property
    @abstractmethod
    def name(self) -> str:
        ...

    @abstractmethod
    def get_primary_output_file(self, config: ConfigurationKey) -> Path | None:
        """Path of the file the consumer compiles against."""
        ...

    @abstractmethod
    def get_output_files(self, config: ConfigurationKey) -> dict[Path, str]:
        """Files that travel with the reference: source path -> destination file name."""
        ...

    @abstractmethod
    def copy_local(self, config: ConfigurationKey) -> bool:
        ...

    def is_system(self, config: ConfigurationKey) -> bool:
        return False

    def get_assembly_references(self, config: ConfigurationKey) -> list[Path]:
        primary = self.get_primary_output_file(config)
        return [primary] if primary is not None else []

    def get_timestamp(self, config: ConfigurationKey) -> datetime:
        """Last-modified time of the primary file, MAX_TIMESTAMP when missing or unresolved."""
        try:
            primary = self.get_primary_output_file(config)
        except ReferenceNotFoundError:
            return MAX_TIMESTAMP
        return file_timestamp(primary)

    def reset(self) -> None:
        """Clear per-pass state."""

    @property
    def _related_extensions(self) -> list[str]:
        resolver = self.parent.resolver if self.parent is not None else None
        return resolver.related_extensions if resolver is not None else list(DEFAULT_RELATED_EXTENSIONS)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.name!r})"


class AssemblyReference(Reference):
    """A prebuilt binary located by the resolver."""

    kind = ReferenceKind.ASSEMBLY

    def __init__(self, descriptor: ReferenceDescriptor):
        super().__init__(private=descriptor.private)
        self.descriptor = descriptor
        self.state = ResolutionState.UNRESOLVED
        self._resolved: ResolvedReference | None = None

    @property
    def name(self) -> str:
        return self.descriptor.name

    @property
    def resolver(self) -> ReferenceResolver:
        if self.parent is None or self.parent.resolver is None:
            raise ConfigurationError(f"Reference '{self.name}' is not attached to a loaded unit.")
        return self.parent.resolver

    def resolve(self) -> ResolvedReference | None:
        """Resolve once per pass; raises ReferenceNotFoundError for required references."""
        if self._resolved is not None:
            return self._resolved

        context = SearchContext(unit_dir=self.parent.directory, unit_name=self.parent.name)
        resolved = self.resolver.resolve(self.descriptor, context)
        if resolved is None:
            return None

        self._resolved = resolved
        resolver = self.resolver
        if (
            resolved.provenance is Provenance.SYSTEM
            or resolver.is_under_framework_dir(resolved.path)
            or resolver.is_system_library(resolved.path)
        ):
            self.state = ResolutionState.RESOLVED_SYSTEM
        else:
            self.state = ResolutionState.RESOLVED_USER
        return resolved

    def reset(self) -> None:
        self._resolved = None
        self.state = ResolutionState.UNRESOLVED

    def get_primary_output_file(self, config: ConfigurationKey) -> Path | None:
        resolved = self.resolve()
        return resolved.path if resolved is not None else None

    def copy_local(self, config: ConfigurationKey) -> bool:
        if self.private is not None:
            return self.private
        resolved = self.resolve()
        if resolved is None:
            return False
        return self.resolver.is_copy_local(resolved)

    def is_system(self, config: ConfigurationKey) -> bool:
        self.resolve()
        return self.state is ResolutionState.RESOLVED_SYSTEM

    def get_assembly_references(self, config: ConfigurationKey) -> list[Path]:
        """The primary file plus every non-system dependency found beside it, transitively."""
        primary = self.get_primary_output_file(config)
        if primary is None or not primary.is_file():
            return []

        found = [primary]
        seen = {normalize_path(primary)}
        queue = deque([primary])
        while queue:
            current = queue.popleft()
            metadata = self.resolver.read_metadata(current)
            if metadata is None:
                continue
            for dependency in metadata.references:
                candidate = self._find_beside(current.parent, dependency.name)
                if candidate is None:
                    continue
                key = normalize_path(candidate)
                if key in seen:
                    continue
                seen.add(key)
                if self.resolver.is_system_library(candidate):
                    continue
                found.append(candidate)
                queue.append(candidate)
        return found

    @staticmethod
    def _find_beside(directory: Path, name: str) -> Path | None:
        for ext in (".dll", ".exe"):
            candidate = directory / f"{name}{ext}"
            if candidate.is_file():
                return candidate
        return None

    def get_output_files(self, config: ConfigurationKey) -> dict[Path, str]:
        files: dict[Path, str] = {}
        for binary in self.get_assembly_references(config):
            for related in find_related_files(binary, self._related_extensions):
                files[related] = related.name
        return files


class ProjectReference(Reference):
    """A reference to another unit's output."""

    kind = ReferenceKind.PROJECT

    def __init__(self, unit: BuildUnit, private: bool | None = None):
        super().__init__(private=private)
        self.unit = unit

    @property
    def name(self) -> str:
        return self.unit.name

    def get_primary_output_file(self, config: ConfigurationKey) -> Path:
        return self.unit.get_output_path(config)

    def get_output_files(self, config: ConfigurationKey) -> dict[Path, str]:
        """The unit's own outputs plus whatever its copy-local references bring along."""
        files = dict(self.unit.get_output_files(config))
        for reference in self.unit.references:
            if reference.copy_local(config):
                for source, dest in reference.get_output_files(config).items():
                    files.setdefault(source, dest)
        return files

    def copy_local(self, config: ConfigurationKey) -> bool:
        if self.private is not None:
            return self.private
        # Raises ConfigurationError when the unit has no matching configuration.
        self.unit.require_configuration(config)
        return True


class WrapperTool(str, Enum):
    PRIMARY = "primary"
    TLBIMP = "tlbimp"
    AXIMP = "aximp"


class WrapperReference(Reference):
    """A wrapper binary generated on demand from a type library.

    ``primary`` wrappers use an already registered primary interop binary
    and generate nothing.
    """

    kind = ReferenceKind.WRAPPER

    def __init__(
        self,
        type_library: str,
        tool: WrapperTool | str = WrapperTool.TLBIMP,
        type_library_path: str | Path | None = None,
        primary_interop_path: str | Path | None = None,
        command: list[str] | str | None = None,
        private: bool | None = None,
    ):
        super().__init__(private=private)
        self.type_library = type_library
        self.tool = WrapperTool(tool)
        self.type_library_path = Path(type_library_path) if type_library_path else None
        self.primary_interop_path = Path(primary_interop_path) if primary_interop_path else None
        self.command = command
        self.materialized = False

    @property
    def name(self) -> str:
        return Path(self.wrapper_file_name).stem

    @property
    def wrapper_file_name(self) -> str:
        if self.tool is WrapperTool.AXIMP:
            return f"AxInterop.{self.type_library}.dll"
        if self.tool is WrapperTool.PRIMARY and self.primary_interop_path is not None:
            return self.primary_interop_path.name
        return f"Interop.{self.type_library}.dll"

    def wrapper_path_for(self, config: UnitConfiguration) -> Path:
        """Where the wrapper lives for one of the owning unit's configurations."""
        if self.tool is WrapperTool.PRIMARY:
            if self.primary_interop_path is None:
                raise ConfigurationError(
                    f"Wrapper for '{self.type_library}' uses the primary interop binary, "
                    "but no primary interop path is registered."
                )
            return self.parent.directory / self.primary_interop_path
        return self.parent.build_dir_for(config) / self.wrapper_file_name

    def get_primary_output_file(self, config: ConfigurationKey) -> Path:
        return self.wrapper_path_for(self.parent.require_configuration(config))

    def get_output_files(self, config: ConfigurationKey) -> dict[Path, str]:
        primary = self.get_primary_output_file(config)
        return {p: p.name for p in find_related_files(primary, self._related_extensions)}

    def copy_local(self, config: ConfigurationKey) -> bool:
        if self.private is not None:
            return self.private
        if self.tool is WrapperTool.PRIMARY:
            resolver = self.parent.resolver
            if resolver is None:
                return True
            return not resolver.is_system_library(self.get_primary_output_file(config))
        return True

    def sync(self, config: ConfigurationKey) -> None:
        """Delete a previously generated wrapper whose output copy is missing or newer."""
        if self.tool is WrapperTool.PRIMARY:
            return
        artifact = self.get_primary_output_file(config)
        if not artifact.is_file() or not self.copy_local(config):
            return
        copy = self.parent.get_output_dir(config) / artifact.name
        if not copy.is_file() or file_timestamp(copy) > file_timestamp(artifact):
            logger.debug("Removing stale wrapper %s", artifact)
            artifact.unlink()

    def materialize(self, config: ConfigurationKey, toolchain: Toolchain) -> Path:
        """Make the wrapper available; only the first call in a pass does any work."""
        path = self.get_primary_output_file(config)
        if self.materialized:
            return path

        self.sync(config)
        if self.tool is not WrapperTool.PRIMARY and not path.is_file():
            path.parent.mkdir(parents=True, exist_ok=True)
            toolchain.generate_wrapper(self, self.parent.require_configuration(config))
        self.materialized = True
        return path

    def reset(self) -> None:
        self.materialized = False


class ReferenceCollection:
    """Ordered references of one unit.

    ``replace`` rewrites an entry in place so positions stay stable.
    """

    def __init__(self, owner: BuildUnit, references=()):
        self._owner = owner
        self._items: list[Reference] = []
        for reference in references:
            self.append(reference)

    def append(self, reference: Reference) -> Reference:
        reference.parent = self._owner
        self._items.append(reference)
        return reference

    def replace(self, old: Reference, new: Reference) -> None:
        for i, reference in enumerate(self._items):
            if reference is old:
                new.parent = self._owner
                self._items[i] = new
                return
        raise ValueError(f"{old!r} is not a reference of unit '{self._owner.name}'")

    def of_kind(self, kind: ReferenceKind) -> list[Reference]:
        return [r for r in self._items if r.kind is kind]

    def __iter__(self) -> Iterator[Reference]:
        return iter(list(self._items))

    def __len__(self) -> int:
        return len(self._items)

    def __getitem__(self, index: int) -> Reference:
        return self._items[index]
