"""Build units: one project, its references and per-configuration settings."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import TYPE_CHECKING

from solbuild.build.configuration import expand_macros, resolve_unit_configuration
from solbuild.build.files import copy_if_newer, file_timestamp, find_related_files, normalize_path
from solbuild.build.references import (
    AssemblyReference,
    ProjectReference,
    Reference,
    ReferenceCollection,
    ReferenceKind,
    WrapperReference,
)
from solbuild.build.resolver import ReferenceDescriptor, ReferenceResolver
from solbuild.core.config import DEFAULT_RELATED_EXTENSIONS
from solbuild.core.errors import ConfigurationError
from solbuild.core.models import (
    CompileResult,
    ConfigurationKey,
    ConfigurationMap,
    UnitConfiguration,
)

if TYPE_CHECKING:
    from solbuild.build.toolchain import Toolchain

logger = logging.getLogger(__name__)


class BuildUnit:
    """A buildable project.

    ``path`` is the unit's description file; relative directories in its
    configurations are resolved against the directory containing it.
    """

    def __init__(
        self,
        name: str,
        output_file: str,
        path: str | Path | None = None,
        guid: str | None = None,
        configurations=(),
        references=(),
        sources=(),
        assembly_name: str | None = None,
    ):
        self.name = name
        self.output_file = output_file
        self.path = Path(path) if path is not None else Path(name) / f"{name}.proj"
        self.guid = guid
        self.assembly_name = assembly_name or Path(output_file).stem
        self.sources = [Path(s) for s in sources]

        self.configurations: ConfigurationMap[UnitConfiguration] = ConfigurationMap()
        for config in configurations:
            self.add_configuration(config)
        self.references = ReferenceCollection(self, references)

        # Bound when the unit is loaded into a graph.
        self.resolver: ReferenceResolver | None = None
        self.output_dir_override: Path | None = None
        self.solution_configurations: ConfigurationMap[ConfigurationKey] | None = None
        self.restrict_platform = False

    def __repr__(self) -> str:
        return f"BuildUnit({self.name!r})"

    @property
    def directory(self) -> Path:
        return normalize_path(self.path).parent

    # -- Declaration helpers --

    def add_configuration(self, config: UnitConfiguration | str, **settings) -> UnitConfiguration:
        if not isinstance(config, UnitConfiguration):
            config = UnitConfiguration(key=config, **settings)
        self.configurations.add(config.key, config)
        return config

    def add_reference(self, reference: Reference) -> Reference:
        return self.references.append(reference)

    def add_assembly_reference(self, name: str, **descriptor) -> AssemblyReference:
        return self.references.append(AssemblyReference(ReferenceDescriptor(name=name, **descriptor)))

    def add_project_reference(self, unit: BuildUnit, private: bool | None = None) -> ProjectReference:
        return self.references.append(ProjectReference(unit, private=private))

    def add_wrapper_reference(self, type_library: str, **recipe) -> WrapperReference:
        return self.references.append(WrapperReference(type_library, **recipe))

    # -- Configuration --

    def get_configuration(
        self, requested: ConfigurationKey, restrict_platform: bool | None = None,
    ) -> UnitConfiguration | None:
        if restrict_platform is None:
            restrict_platform = self.restrict_platform
        return resolve_unit_configuration(self, requested, restrict_platform)

    def require_configuration(self, requested: ConfigurationKey) -> UnitConfiguration:
        config = self.get_configuration(requested)
        if config is None:
            raise ConfigurationError(
                f"Unit '{self.name}' has no configuration matching '{requested}'."
            )
        return config

    def macros(self, config: UnitConfiguration, with_output: bool = True) -> dict[str, str]:
        """Macro values for ``config``. Output macros are omitted while resolving the output dir."""
        target = Path(self.output_file)
        values = {
            "ConfigurationName": config.key.name,
            "PlatformName": config.key.platform,
            "ProjectName": self.name,
            "ProjectDir": str(self.directory) + os.sep,
            "TargetName": target.stem,
            "TargetExt": target.suffix,
            "TargetFileName": target.name,
        }
        if with_output:
            out_dir = self.output_dir_for(config)
            values.update({
                "OutDir": str(out_dir) + os.sep,
                "TargetDir": str(out_dir) + os.sep,
                "TargetPath": str(out_dir / target.name),
                "IntDir": str(self.build_dir_for(config)) + os.sep,
            })
        return values

    def expand(self, text: str, config: UnitConfiguration) -> str:
        return expand_macros(text, self.macros(config))

    # -- Paths --

    def output_dir_for(self, config: UnitConfiguration) -> Path:
        if self.output_dir_override is not None:
            return normalize_path(self.output_dir_override)
        relative = expand_macros(config.output_dir, self.macros(config, with_output=False))
        return normalize_path(self.directory / relative)

    def build_dir_for(self, config: UnitConfiguration) -> Path:
        relative = expand_macros(config.build_dir, self.macros(config, with_output=False))
        return normalize_path(self.directory / relative)

    def output_path_for(self, config: UnitConfiguration) -> Path:
        return self.output_dir_for(config) / self.output_file

    def get_output_dir(self, requested: ConfigurationKey) -> Path:
        return self.output_dir_for(self.require_configuration(requested))

    def get_build_dir(self, requested: ConfigurationKey) -> Path:
        return self.build_dir_for(self.require_configuration(requested))

    def get_output_path(self, requested: ConfigurationKey) -> Path:
        return self.output_path_for(self.require_configuration(requested))

    def known_output_paths(self) -> list[Path]:
        """Output path of every configuration; unexpandable ones are left out."""
        paths = []
        for config in self.configurations.values():
            try:
                paths.append(self.output_path_for(config))
            except ConfigurationError as e:
                logger.debug("No output path for %s (%s): %s", self.name, config.key, e)
        return paths

    def get_output_files(self, requested: ConfigurationKey) -> dict[Path, str]:
        """Primary output, its related files and the configuration's extra outputs."""
        config = self.require_configuration(requested)
        primary = self.output_path_for(config)
        extensions = self.resolver.related_extensions if self.resolver else DEFAULT_RELATED_EXTENSIONS

        files = {p: p.name for p in find_related_files(primary, extensions)}
        files.setdefault(primary, primary.name)
        for extra in config.extra_output_files:
            path = normalize_path(primary.parent / self.expand(extra, config))
            files.setdefault(path, path.name)
        return files

    # -- Build --

    def reset_references(self) -> None:
        for reference in self.references:
            reference.reset()

    def is_up_to_date(self, requested: ConfigurationKey) -> bool:
        """Output exists and is not older than any source or reference."""
        output = self.get_output_path(requested)
        if not output.is_file():
            logger.debug("%s: output %s does not exist", self.name, output)
            return False

        built_at = file_timestamp(output)
        for source in self.sources:
            if file_timestamp(self.directory / source) > built_at:
                logger.debug("%s: source %s is newer than output", self.name, source)
                return False
        for reference in self.references:
            if reference.get_timestamp(requested) > built_at:
                logger.debug("%s: reference %s is newer than output", self.name, reference.name)
                return False
        return True

    def stage_references(self, requested: ConfigurationKey) -> list[Path]:
        """Copy copy-local reference files into the output directory."""
        output_dir = self.get_output_dir(requested)
        copied = []
        for reference in self.references:
            if not reference.copy_local(requested):
                continue
            for source, dest_name in reference.get_output_files(requested).items():
                if not source.is_file():
                    continue
                destination = output_dir / dest_name
                if normalize_path(source) == destination:
                    continue
                if copy_if_newer(source, destination):
                    copied.append(destination)
        return copied

    def compile(self, requested: ConfigurationKey, toolchain: Toolchain) -> CompileResult:
        config = self.require_configuration(requested)
        self.output_dir_for(config).mkdir(parents=True, exist_ok=True)

        for reference in self.references.of_kind(ReferenceKind.WRAPPER):
            reference.materialize(requested, toolchain)
        self.stage_references(requested)

        return toolchain.compile(self, config)
