"""Reference resolution: ordered fallback search from descriptor to file path."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from solbuild.build.files import normalize_path
from solbuild.build.inspection import AssemblyMetadata, InspectionContext
from solbuild.core.config import DEFAULT_RELATED_EXTENSIONS, Settings
from solbuild.core.errors import InspectionError, ReferenceNotFoundError

logger = logging.getLogger(__name__)

BINARY_EXTENSIONS = (".dll", ".exe")


class Provenance(str, Enum):
    """Which search step produced a resolved path."""

    RELATIVE = "relative"
    REFERENCE_PATH = "reference_path"
    SYSTEM = "system"
    ASSEMBLY_FOLDER = "assembly_folder"
    HINT_PATH = "hint_path"


@dataclass(frozen=True)
class ReferenceDescriptor:
    """What a unit declares about a prebuilt binary it references."""

    name: str
    file_name: str | None = None
    hint_path: str | None = None
    assembly_folder_key: str | None = None
    private: bool | None = None  # explicit copy-local override
    optional: bool = False

    @property
    def target_file_name(self) -> str:
        return self.file_name or f"{self.name}.dll"


@dataclass
class SearchContext:
    """Where a descriptor is being resolved from."""

    unit_dir: Path
    reference_paths: list[Path] = field(default_factory=list)
    unit_name: str | None = None


@dataclass(frozen=True)
class ResolvedReference:
    path: Path
    provenance: Provenance

    @property
    def exists(self) -> bool:
        return self.path.is_file()


class ReferenceResolver:
    """Resolves reference descriptors against the configured search roots.

    Search order, first match wins:

    1. the owning unit's directory (advisory: logged, never returned)
    2. extra reference directories
    3. the system/framework directory
    4. named assembly folders (descriptor key first, then defaults)
    5. the descriptor's hint path, relative to the unit directory

    The hint path is returned even when the file does not exist yet so the
    outputs of units that have not been built can still be matched.
    """

    def __init__(
        self,
        framework_dir: Path | None = None,
        reference_paths: list[Path] | None = None,
        assembly_folders: dict[str, Path] | None = None,
        default_folder_keys: list[str] | None = None,
        system_cache_dirs: list[Path] | None = None,
        related_extensions: list[str] | None = None,
        isolate_inspection: bool = True,
    ):
        self.framework_dir = normalize_path(framework_dir) if framework_dir else None
        self.reference_paths = [Path(p) for p in reference_paths or []]
        self.assembly_folders = {k: Path(v) for k, v in (assembly_folders or {}).items()}
        self.default_folder_keys = list(default_folder_keys or [])
        self.system_cache_dirs = [Path(p) for p in system_cache_dirs or []]
        self.related_extensions = list(related_extensions or DEFAULT_RELATED_EXTENSIONS)
        self.isolate_inspection = isolate_inspection

        self._system_identities: set[tuple[str, str, str]] | None = None
        self._system_cache: dict[Path, bool] = {}

    @classmethod
    def from_settings(cls, settings: Settings) -> ReferenceResolver:
        return cls(
            framework_dir=settings.framework_dir,
            reference_paths=settings.reference_paths,
            assembly_folders=settings.assembly_folders,
            default_folder_keys=settings.default_assembly_folder_keys,
            system_cache_dirs=settings.system_cache_dirs,
            related_extensions=settings.related_extensions,
            isolate_inspection=settings.isolate_inspection,
        )

    # -- Resolution --

    def resolve(
        self, descriptor: ReferenceDescriptor, context: SearchContext,
    ) -> ResolvedReference | None:
        """Resolve ``descriptor``; None only for optional descriptors that match nothing."""
        file_name = descriptor.target_file_name
        searched: list[str] = []

        relative = context.unit_dir / file_name
        searched.append(str(relative))
        if relative.is_file():
            logger.debug("Reference '%s' found beside unit at %s (not used)", descriptor.name, relative)

        for directory in [*context.reference_paths, *self.reference_paths]:
            candidate = Path(directory) / file_name
            searched.append(str(candidate))
            if candidate.is_file():
                return self._found(descriptor, candidate, Provenance.REFERENCE_PATH)

        if self.framework_dir is not None:
            candidate = self.framework_dir / file_name
            searched.append(str(candidate))
            if candidate.is_file():
                return self._found(descriptor, candidate, Provenance.SYSTEM)

        for key in self._folder_keys(descriptor):
            folder = self.assembly_folders.get(key)
            if folder is None:
                logger.debug("Assembly folder key '%s' is not configured", key)
                continue
            candidate = folder / file_name
            searched.append(str(candidate))
            if candidate.is_file():
                return self._found(descriptor, candidate, Provenance.ASSEMBLY_FOLDER)

        if descriptor.hint_path:
            candidate = context.unit_dir / descriptor.hint_path
            if not candidate.is_file():
                logger.debug("Hint path for '%s' does not exist yet: %s", descriptor.name, candidate)
            return self._found(descriptor, candidate, Provenance.HINT_PATH)

        if descriptor.optional:
            logger.debug("Optional reference '%s' not found; deferring", descriptor.name)
            return None
        raise ReferenceNotFoundError(descriptor.name, context.unit_name, searched)

    def _folder_keys(self, descriptor: ReferenceDescriptor) -> list[str]:
        keys: list[str] = []
        if descriptor.assembly_folder_key:
            keys.append(descriptor.assembly_folder_key)
        for key in self.default_folder_keys:
            if key not in keys:
                keys.append(key)
        return keys

    def _found(
        self, descriptor: ReferenceDescriptor, path: Path, provenance: Provenance,
    ) -> ResolvedReference:
        resolved = ResolvedReference(path=normalize_path(path), provenance=provenance)
        logger.debug("Resolved '%s' via %s: %s", descriptor.name, provenance.value, resolved.path)
        return resolved

    def assembly_folder_for(self, path: Path) -> str | None:
        """Key of the configured assembly folder containing ``path``, if any."""
        path = normalize_path(path)
        for key, folder in self.assembly_folders.items():
            if path.is_relative_to(normalize_path(folder)):
                return key
        return None

    # -- Copy-local --

    def is_copy_local(self, resolved: ResolvedReference, private: bool | None = None) -> bool:
        """Explicit override wins; otherwise anything outside the system library set."""
        if private is not None:
            return private
        if resolved.provenance is Provenance.SYSTEM or self.is_under_framework_dir(resolved.path):
            return False
        return not self.is_system_library(resolved.path)

    def is_under_framework_dir(self, path: Path) -> bool:
        if self.framework_dir is None:
            return False
        return normalize_path(path).is_relative_to(self.framework_dir)

    # -- System library cache --

    def is_system_library(self, path: str | Path) -> bool:
        """True when the file's identity matches one from the shared system cache.

        Answers for existing files are cached per absolute path for the
        resolver's lifetime.
        """
        key = normalize_path(path)
        if key in self._system_cache:
            return self._system_cache[key]

        result = False
        exists = key.is_file()
        if self.system_cache_dirs and exists:
            identities = self._load_system_identities()
            try:
                with InspectionContext(isolate=self.isolate_inspection) as ctx:
                    metadata = ctx.inspect(key)
            except InspectionError as e:
                logger.warning("Cannot inspect %s, treating it as not a system library: %s", key, e)
                metadata = None
            result = metadata is not None and metadata.identity.normalized() in identities

        # A missing file may appear later in the pass; only cache real answers.
        if exists:
            self._system_cache[key] = result
        return result

    def _load_system_identities(self) -> set[tuple[str, str, str]]:
        if self._system_identities is not None:
            return self._system_identities

        identities: set[tuple[str, str, str]] = set()
        candidates = [
            p
            for root in self.system_cache_dirs
            if root.is_dir()
            for p in sorted(root.rglob("*"))
            if p.is_file() and p.suffix.lower() in BINARY_EXTENSIONS
        ]
        if candidates:
            try:
                with InspectionContext(isolate=self.isolate_inspection) as ctx:
                    for candidate in candidates:
                        try:
                            metadata = ctx.inspect(candidate)
                        except InspectionError as e:
                            logger.warning("Skipping unreadable system cache entry %s: %s", candidate, e)
                            continue
                        if metadata is not None:
                            identities.add(metadata.identity.normalized())
            except InspectionError as e:
                logger.warning("Cannot inspect the system library cache: %s", e)

        logger.debug("Loaded %d system library identities", len(identities))
        self._system_identities = identities
        return identities

    # -- Dependency inspection --

    def read_metadata(self, path: Path) -> AssemblyMetadata | None:
        """Inspect ``path``; failures are logged and reported as no metadata."""
        try:
            with InspectionContext(isolate=self.isolate_inspection) as ctx:
                return ctx.inspect(path)
        except InspectionError as e:
            logger.warning("Cannot inspect dependencies of %s: %s", path, e)
            return None
