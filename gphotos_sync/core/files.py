"""
File system utilities for Google Photos Sync.
"""

import os
from datetime import datetime
from pathlib import Path
from typing import Set

from .constants import PARTIAL_SUFFIX


def list_filenames(folder_path: Path) -> Set[str]:
    """
    List names of regular files directly inside a folder.

    In-progress downloads (*.part) are ignored so a crashed download is never
    mistaken for a finished one.

    Args:
        folder_path: Download directory

    Returns:
        Set of file names (empty if the folder does not exist)
    """
    names = set()
    if not folder_path.exists():
        return names

    with os.scandir(folder_path) as entries:
        for entry in entries:
            if not entry.is_file(follow_symlinks=False):
                continue
            if entry.name.endswith(PARTIAL_SUFFIX):
                continue
            names.add(entry.name)

    return names


def set_file_mtime(path: Path, timestamp: datetime):
    """Set both atime and mtime of a file to the given timestamp."""
    ts = timestamp.timestamp()
    os.utime(path, (ts, ts))
