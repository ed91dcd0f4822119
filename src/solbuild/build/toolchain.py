"""Toolchain interface and registry."""

from __future__ import annotations

import logging
import shlex
import subprocess
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

from solbuild.build.configuration import expand_macros
from solbuild.build.files import file_timestamp
from solbuild.core.errors import ConfigurationError, ToolInvocationError
from solbuild.core.models import CompileResult, UnitConfiguration

if TYPE_CHECKING:
    from solbuild.build.references import WrapperReference
    from solbuild.build.units import BuildUnit

logger = logging.getLogger(__name__)


class Toolchain(ABC):
    """Compiles units and generates wrapper binaries.

    Implementations report compiler failures as ``CompileResult.FAILED``
    and raise ToolInvocationError when the tool itself cannot be run.
    """

    @abstractmethod
    def compile(self, unit: BuildUnit, config: UnitConfiguration) -> CompileResult:
        ...

    @abstractmethod
    def generate_wrapper(self, reference: WrapperReference, config: UnitConfiguration) -> None:
        """Write the wrapper binary to ``reference``'s primary output path."""
        ...


# Toolchain registry
_TOOLCHAINS: dict[str, type[Toolchain]] = {}


def register_toolchain(name: str):
    """Decorator to register a toolchain class."""

    def wrapper(cls):
        _TOOLCHAINS[name] = cls
        return cls

    return wrapper


def get_toolchain(name: str, **kwargs) -> Toolchain:
    """Get an instantiated toolchain by name."""
    if name not in _TOOLCHAINS:
        raise ConfigurationError(f"Unknown toolchain: {name}. Available: {list(_TOOLCHAINS.keys())}")
    return _TOOLCHAINS[name](**kwargs)


def _split(command: list[str] | str) -> list[str]:
    return shlex.split(command) if isinstance(command, str) else list(command)


@register_toolchain("command")
class CommandToolchain(Toolchain):
    """Runs the command line configured on each unit configuration.

    Commands may use unit macros (``$(OutDir)``, ``$(TargetPath)``, ...).
    Wrapper commands additionally see ``$(TypeLibrary)``, ``$(WrapperPath)``
    and ``$(WrapperTool)``.
    """

    def __init__(self, timeout: float | None = None):
        self.timeout = timeout

    def _run(self, args: list[str], cwd: str, what: str) -> subprocess.CompletedProcess:
        logger.debug("Running %s: %s", what, " ".join(args))
        try:
            result = subprocess.run(
                args,
                cwd=cwd,
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired as e:
            raise ToolInvocationError(f"{what} timed out after {self.timeout}s") from e
        except OSError as e:
            raise ToolInvocationError(f"Cannot run {what} ({args[0]}): {e}") from e

        if result.stdout:
            logger.debug("%s stdout:\n%s", what, result.stdout.rstrip())
        if result.stderr:
            logger.debug("%s stderr:\n%s", what, result.stderr.rstrip())
        return result

    def compile(self, unit: BuildUnit, config: UnitConfiguration) -> CompileResult:
        if not config.command:
            raise ConfigurationError(f"Unit '{unit.name}' has no command for configuration '{config.key}'.")

        args = [unit.expand(arg, config) for arg in _split(config.command)]
        output = unit.output_path_for(config)
        before = file_timestamp(output)

        result = self._run(args, str(unit.directory), f"compile of '{unit.name}'")
        if result.returncode != 0:
            logger.warning(
                "Compile of '%s' exited with %d: %s",
                unit.name, result.returncode, (result.stderr or result.stdout).strip()[:500],
            )
            return CompileResult.FAILED

        if file_timestamp(output) != before:
            return CompileResult.SUCCESS_OUTPUT_UPDATED
        return CompileResult.SUCCESS

    def generate_wrapper(self, reference: WrapperReference, config: UnitConfiguration) -> None:
        unit = reference.parent
        if not reference.command:
            raise ToolInvocationError(
                f"No command configured to generate wrapper '{reference.name}' for unit '{unit.name}'."
            )

        wrapper_path = reference.wrapper_path_for(config)
        macros = unit.macros(config)
        macros.update({
            "TypeLibrary": str(reference.type_library_path or reference.type_library),
            "WrapperPath": str(wrapper_path),
            "WrapperTool": reference.tool.value,
        })
        args = [expand_macros(arg, macros) for arg in _split(reference.command)]
        result = self._run(args, str(unit.directory), f"{reference.tool.value} for '{reference.name}'")
        if result.returncode != 0:
            raise ToolInvocationError(
                f"Generating wrapper '{reference.name}' failed with exit code {result.returncode}: "
                f"{(result.stderr or result.stdout).strip()[:500]}"
            )
