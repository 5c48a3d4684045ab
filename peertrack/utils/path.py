"""
Utilities for validating and preparing file paths read back from checkpoints.
"""

import re
from pathlib import Path

from pathvalidate import ValidationError, validate_filepath

from peertrack.exceptions import UnsafePathError

_SEPARATORS = re.compile(r"[\\/]+")


def has_traversal_segment(path: str) -> bool:
    """
    Returns True if any segment of the path is '..'. Both separators are
    checked so a Windows-style path cannot slip through on POSIX.
    """
    return any(segment == ".." for segment in _SEPARATORS.split(path))


def ensure_safe_path(path: str) -> Path:
    """
    Validates a path stored in a checkpoint before it is touched.

    Raises:
        UnsafePathError: If the path is empty, contains a traversal segment or
        is not a valid file path on this platform.
    """
    if not path:
        raise UnsafePathError("Empty path in checkpoint.")
    if has_traversal_segment(path):
        raise UnsafePathError(f"Path contains a parent-directory segment: {path}")
    try:
        validate_filepath(path, platform="auto")
    except ValidationError as e:
        raise UnsafePathError(f"Invalid path '{path}': {e}") from e
    return Path(path)


def create_dir(directory_path: Path) -> None:
    """Creates a directory if it does not already exist."""
    directory_path.mkdir(parents=True, exist_ok=True)
