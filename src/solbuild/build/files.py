"""File-system helpers shared by references and units."""

from __future__ import annotations

import logging
import os
import shutil
from datetime import datetime
from pathlib import Path

from solbuild.core.models import MAX_TIMESTAMP

logger = logging.getLogger(__name__)


def normalize_path(path: str | Path) -> Path:
    """Absolute, lexically normalized path used as a matching key."""
    return Path(os.path.normpath(os.path.abspath(path)))


def file_timestamp(path: str | Path | None) -> datetime:
    """Last-modified time, or MAX_TIMESTAMP when the file does not exist."""
    if path is None:
        return MAX_TIMESTAMP
    try:
        return datetime.fromtimestamp(os.stat(path).st_mtime)
    except OSError:
        return MAX_TIMESTAMP


def find_related_files(primary: Path, extensions: list[str]) -> list[Path]:
    """Existing files beside ``primary`` with the same base name and an allowed extension.

    The base name comparison is case-insensitive; files that only share a
    prefix (``Lib.Extra.dll`` for ``Lib.dll``) are not related. The primary
    file comes first when it exists.
    """
    directory = primary.parent
    if not directory.is_dir():
        return []

    stem = primary.stem.casefold()
    allowed = {ext.lower() for ext in extensions}
    related: list[Path] = []
    for candidate in sorted(directory.iterdir()):
        if not candidate.is_file() or candidate.name == primary.name:
            continue
        if candidate.stem.casefold() == stem and candidate.suffix.lower() in allowed:
            related.append(candidate)

    if primary.is_file():
        related.insert(0, primary)
    return related


def copy_if_newer(source: Path, destination: Path) -> bool:
    """Copy ``source`` over ``destination`` unless the destination is already current."""
    if destination.exists() and file_timestamp(destination) >= file_timestamp(source):
        return False
    destination.parent.mkdir(parents=True, exist_ok=True)
    shutil.copy2(source, destination)
    logger.debug("Copied %s -> %s", source, destination)
    return True
