"""Core data models for Solbuild."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Generic, Iterator, TypeVar

from solbuild.core.errors import ConfigurationError

# Timestamp reported for files that do not exist or cannot be resolved.
MAX_TIMESTAMP = datetime.max

V = TypeVar("V")


class CompileResult(str, Enum):
    """Outcome reported by a toolchain for one unit."""

    FAILED = "failed"
    SUCCESS = "success"
    SUCCESS_OUTPUT_UPDATED = "success_output_updated"

    @property
    def succeeded(self) -> bool:
        return self is not CompileResult.FAILED


class UnitStatus(str, Enum):
    """Per-pass scheduling state of a unit."""

    PENDING = "pending"
    READY = "ready"
    BUILDING = "building"
    DONE = "done"
    FAILED = "failed"
    SKIPPED = "skipped"

    @property
    def terminal(self) -> bool:
        return self in (UnitStatus.DONE, UnitStatus.FAILED, UnitStatus.SKIPPED)


@dataclass(frozen=True)
class ConfigurationKey:
    """A (name, platform) build configuration identity.

    Equality is exact. Name-only, case-insensitive matching is available
    through ``same_name`` and must be requested explicitly by callers.
    """

    name: str
    platform: str = ""

    @classmethod
    def parse(cls, text: str) -> ConfigurationKey:
        """Parse ``"Name|Platform"`` (or just ``"Name"``) into a key."""
        if text is None:
            raise ConfigurationError("Configuration must not be empty.")
        parts = text.split("|")
        if len(parts) > 2:
            raise ConfigurationError(f"Malformed configuration '{text}': expected 'Name|Platform'.")
        name = parts[0].strip()
        platform = parts[1].strip() if len(parts) == 2 else ""
        if not name:
            raise ConfigurationError(f"Malformed configuration '{text}': missing name.")
        return cls(name=name, platform=platform)

    @classmethod
    def coerce(cls, value: ConfigurationKey | str) -> ConfigurationKey:
        if isinstance(value, ConfigurationKey):
            return value
        return cls.parse(value)

    def same_name(self, other: ConfigurationKey) -> bool:
        return self.name.casefold() == other.name.casefold()

    def __str__(self) -> str:
        if self.platform:
            return f"{self.name}|{self.platform}"
        return self.name


class ConfigurationMap(Generic[V]):
    """Ordered mapping keyed by ConfigurationKey.

    Insertion order is preserved; it decides which entry wins a name-only
    fallback match. Adding an exactly equal key twice is an error.
    """

    def __init__(self, items: dict | None = None):
        self._items: dict[ConfigurationKey, V] = {}
        for key, value in (items or {}).items():
            self.add(key, value)

    def add(self, key: ConfigurationKey | str, value: V) -> None:
        key = ConfigurationKey.coerce(key)
        if key in self._items:
            raise ConfigurationError(f"Duplicate configuration '{key}'.")
        self._items[key] = value

    def get(self, key: ConfigurationKey) -> V | None:
        """Exact lookup only."""
        return self._items.get(key)

    def lookup(
        self, key: ConfigurationKey, allow_name_fallback: bool = True,
    ) -> tuple[ConfigurationKey, V] | None:
        """Exact lookup, then (optionally) the first entry with the same name."""
        if key in self._items:
            return key, self._items[key]
        if allow_name_fallback:
            for candidate, value in self._items.items():
                if candidate.same_name(key):
                    return candidate, value
        return None

    def keys(self) -> list[ConfigurationKey]:
        return list(self._items)

    def values(self) -> list[V]:
        return list(self._items.values())

    def items(self) -> list[tuple[ConfigurationKey, V]]:
        return list(self._items.items())

    def __contains__(self, key: object) -> bool:
        return key in self._items

    def __iter__(self) -> Iterator[ConfigurationKey]:
        return iter(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __repr__(self) -> str:
        return f"ConfigurationMap({[str(k) for k in self._items]})"


@dataclass
class UnitConfiguration:
    """Settings of one unit for one of its own configurations.

    Directory and command values may contain ``$(Macro)`` references that
    are expanded against the owning unit.
    """

    key: ConfigurationKey
    output_dir: str = "bin/$(ConfigurationName)"
    build_dir: str = "obj/$(ConfigurationName)"
    command: list[str] | str | None = None
    extra_output_files: list[str] = field(default_factory=list)

    def __post_init__(self):
        self.key = ConfigurationKey.coerce(self.key)
