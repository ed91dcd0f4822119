"""Configuration resolution: CLI > env > .env file > defaults.

Search roots (framework directory, assembly folders, system cache) are
supplied here rather than discovered, so the resolver can be constructed
with fake roots in tests.
"""

from __future__ import annotations

from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_RELATED_EXTENSIONS = [".dll", ".exe", ".xml", ".pdb", ".mdb"]


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    List and mapping fields are read from the environment as JSON, e.g.
    ``SOLBUILD_ASSEMBLY_FOLDERS='{"vendor": "/opt/vendor/lib"}'``.
    """

    model_config = SettingsConfigDict(
        env_prefix="SOLBUILD_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Search roots
    framework_dir: Path | None = None
    system_cache_dirs: list[Path] = Field(default_factory=list)
    assembly_folders: dict[str, Path] = Field(default_factory=dict)
    default_assembly_folder_keys: list[str] = Field(default_factory=list)
    reference_paths: list[Path] = Field(default_factory=list)

    # Build layout
    output_dir: Path | None = None
    build_dir: Path = Field(default=Path("build"))

    related_extensions: list[str] = Field(
        default_factory=lambda: list(DEFAULT_RELATED_EXTENSIONS)
    )
    isolate_inspection: bool = True
    tool_timeout: float | None = None  # seconds, command toolchain only

    @field_validator("related_extensions")
    @classmethod
    def _normalize_extensions(cls, value: list[str]) -> list[str]:
        normalized = []
        for ext in value:
            ext = ext.lower()
            normalized.append(ext if ext.startswith(".") else f".{ext}")
        return normalized

    @property
    def logs_dir(self) -> Path:
        """Directory for structured JSONL build logs."""
        return self.build_dir / "logs"

    def with_overrides(self, **overrides) -> Settings:
        """Return a copy with CLI-level overrides applied (None values are ignored)."""
        updates = {k: v for k, v in overrides.items() if v is not None and v != ()}
        if not updates:
            return self
        return self.model_copy(update=updates)


_settings: Settings | None = None


def get_settings() -> Settings:
    """Get cached settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reset_settings() -> None:
    """Reset settings cache (useful for testing)."""
    global _settings
    _settings = None
