"""Filesystem sandbox utilities for safe path resolution."""

import enum
import os
import stat
from pathlib import Path, PurePosixPath


class ForbiddenPath(Exception):
    """Raised when a requested path escapes the configured root."""


class PathKind(enum.Enum):
    """What a filesystem path points at."""

    FILE = "file"
    DIRECTORY = "directory"
    MISSING = "missing"


def resolve_sandbox_path(root: str, user_path: str) -> Path:
    """Resolve a URL path inside ``root``; an empty path maps to the root itself."""
    if "\x00" in user_path:
        raise ForbiddenPath(user_path)

    root_path = Path(root).resolve()
    relative_part = user_path.lstrip("/")
    if ".." in PurePosixPath(relative_part).parts:
        raise ForbiddenPath(user_path)

    target = (root_path / relative_part).resolve()
    if not (target == root_path or root_path in target.parents):
        raise ForbiddenPath(user_path)
    return target


def lookup_path(path: Path) -> PathKind:
    """Classify ``path``; permission and I/O errors propagate."""
    try:
        mode = os.stat(path).st_mode
    except (FileNotFoundError, NotADirectoryError):
        return PathKind.MISSING
    if stat.S_ISDIR(mode):
        return PathKind.DIRECTORY
    if stat.S_ISREG(mode):
        return PathKind.FILE
    return PathKind.MISSING


def has_hidden_segment(url_path: str) -> bool:
    """Return True when any segment of ``url_path`` starts with a dot."""
    return any(
        segment.startswith(".") for segment in url_path.split("/") if segment
    )
