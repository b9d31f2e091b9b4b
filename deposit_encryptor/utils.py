"""
Shared utility helpers.

This module contains small, reusable helpers that do not belong
to marking, transformation, or finalization logic.
"""

from __future__ import annotations

import hashlib
import shutil
from pathlib import Path


# ---------------------------------------------------------------------------
# Hashing / identifiers
# ---------------------------------------------------------------------------


def md5_hex(text: str) -> str:
    """Return the lowercase hex MD5 of the UTF-8 encoding of text."""
    return hashlib.md5(text.encode("utf-8")).hexdigest()


# ---------------------------------------------------------------------------
# Filesystem helpers
# ---------------------------------------------------------------------------


def ensure_parent_dir(path: Path) -> None:
    """Ensure the parent directory of a file exists."""
    path.parent.mkdir(parents=True, exist_ok=True)


def copy_with_attributes(src: Path, dst: Path) -> None:
    """Copy a file, preserving permission bits and timestamps."""
    shutil.copy2(src, dst)


def move_file(src: Path, dst: Path) -> None:
    """Move a file, falling back to copy+delete across filesystems."""
    shutil.move(str(src), str(dst))


def delete_if_exists(path: Path) -> bool:
    """Delete a file; return False when it was already gone."""
    try:
        path.unlink()
    except FileNotFoundError:
        return False
    return True
