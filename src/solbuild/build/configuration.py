"""Configuration mapping and macro expansion."""

from __future__ import annotations

import re
from typing import TYPE_CHECKING

from solbuild.core.errors import ConfigurationError
from solbuild.core.models import ConfigurationKey, UnitConfiguration

if TYPE_CHECKING:
    from solbuild.build.units import BuildUnit

MACRO_PATTERN = re.compile(r"\$\((\w+)\)")


def resolve_unit_configuration(
    unit: BuildUnit,
    requested: ConfigurationKey,
    restrict_platform: bool = False,
) -> UnitConfiguration | None:
    """Map a requested top-level configuration onto one of ``unit``'s configurations.

    Units loaded with a solution configuration mapping only build for the
    solution configurations listed there. Otherwise the unit's own
    configurations are looked up: exact match first, then (unless
    ``restrict_platform``) the first configuration with the same name.

    Returns None when nothing applies; the unit is then skipped for the pass.
    """
    fallback = not restrict_platform

    if unit.solution_configurations is not None:
        mapped = unit.solution_configurations.lookup(requested, allow_name_fallback=fallback)
        if mapped is None:
            return None
        _, target = mapped
        return unit.configurations.get(target)

    found = unit.configurations.lookup(requested, allow_name_fallback=fallback)
    if found is None:
        return None
    return found[1]


def expand_macros(text: str, macros: dict[str, str]) -> str:
    """Replace ``$(Name)`` references (names are case-insensitive).

    An unknown macro is a ConfigurationError.
    """
    lookup = {key.casefold(): value for key, value in macros.items()}

    def _replace(match: re.Match) -> str:
        name = match.group(1)
        if name.casefold() not in lookup:
            raise ConfigurationError(
                f"Unknown macro '$({name})' in '{text}'. Available: {sorted(macros)}"
            )
        return lookup[name.casefold()]

    return MACRO_PATTERN.sub(_replace, text)
