"""Filesystem helpers for extracted submission trees."""

from __future__ import annotations

import os
import shutil
from pathlib import Path


def directory_size(path: Path) -> int:
    """Total size in bytes of regular files under ``path``.

    Raises ``OSError`` when the tree cannot be walked, including when ``path``
    does not exist.
    """

    if not path.exists():
        raise FileNotFoundError(f"Directory does not exist: {path}")

    def _raise(error: OSError) -> None:
        raise error

    total = 0
    for dirpath, _dirnames, filenames in os.walk(path, onerror=_raise):
        for name in filenames:
            file_path = Path(dirpath) / name
            if file_path.is_symlink():
                continue
            total += file_path.stat().st_size
    return total


def prepare_directory(path: Path) -> None:
    """Create ``path``, wiping any previous content."""

    if path.exists():
        shutil.rmtree(path)
    path.mkdir(parents=True, exist_ok=True)


def remove_tree(path: Path) -> None:
    """Remove ``path`` recursively; a missing path is not an error."""

    if not path.exists():
        return
    shutil.rmtree(path)
