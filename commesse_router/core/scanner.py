from __future__ import annotations
"""
Folder scanner for the project-folder router.

Responsibilities:

- Walk a local root directory (unbounded depth with subfolders) or a
  OneDrive folder (depth-limited, to bound the number of Graph calls).
- For each file, collect a FileDescriptor whose `parent_path` is relative to
  the scan root.
- Skip unreadable subdirectories with a logged warning; the scan never
  fails part-way. Whatever was collected is returned, possibly nothing.
- Root validation (missing path, not a directory, invalid OneDrive path)
  raises before any traversal.
"""

import logging
import mimetypes
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, List

import pandas as pd

from .drive import DriveClient, item_to_descriptor
from .errors import DriveError, PathNotDirectoryError, PathNotFoundError
from .logger import DEFAULT_LOG_DIRNAME
from .models import FileDescriptor
from ..utils.paths import join_drive_path, join_relative, validate_drive_path

logger = logging.getLogger(__name__)

DEFAULT_DRIVE_DEPTH = 5
MAX_DRIVE_DEPTH = 10

FRAME_COLUMNS = [
    "id",
    "name",
    "extension",
    "relative_path",
    "parent_path",
    "size",
    "last_modified",
    "mime_type",
    "source",
]


# ---------------------------------------------------------------------------
# Local scan
# ---------------------------------------------------------------------------

def _list_dir(path: Path) -> List[os.DirEntry]:
    with os.scandir(path) as it:
        return sorted(it, key=lambda e: e.name)


def _local_descriptor(entry: os.DirEntry, parent_path: str) -> FileDescriptor:
    stat = entry.stat()
    mime_type, _ = mimetypes.guess_type(entry.name)
    return FileDescriptor(
        id=join_relative(parent_path, entry.name),
        name=entry.name,
        size=stat.st_size,
        last_modified=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
        parent_path=parent_path,
        mime_type=mime_type or "application/octet-stream",
        source="local",
    )


def scan_local(root: Path, include_subfolders: bool = True) -> List[FileDescriptor]:
    """
    Scan a local directory and return its files.

    Parameters
    ----------
    root : Path
        Directory to scan (typically already resolved via utils.paths.resolve_root).
    include_subfolders : bool
        Recurse into subdirectories (no depth limit). When False only the
        files directly inside `root` are returned.

    Raises
    ------
    PathNotFoundError
        If the path does not exist.
    PathNotDirectoryError
        If the path is not a directory.
    """
    root = Path(root)
    if not root.exists():
        raise PathNotFoundError(f"Path not found: {root}")
    if not root.is_dir():
        raise PathNotDirectoryError(f"Provided path is not a directory: {root}")

    files: List[FileDescriptor] = []
    pending = [(root, "")]

    while pending:
        directory, parent_path = pending.pop(0)
        try:
            entries = _list_dir(directory)
        except OSError as exc:
            logger.warning("Skipping unreadable folder '%s': %s", directory, exc)
            continue

        for entry in entries:
            try:
                if entry.is_dir(follow_symlinks=False):
                    # The router keeps its move logs here.
                    if include_subfolders and entry.name != DEFAULT_LOG_DIRNAME:
                        pending.append((Path(entry.path), join_relative(parent_path, entry.name)))
                    continue
                if not entry.is_file():
                    continue
                files.append(_local_descriptor(entry, parent_path))
            except OSError as exc:
                # File vanished between listing and stat, or is inaccessible.
                logger.warning("Skipping '%s': %s", entry.path, exc)

    logger.debug("Local scan of %s found %d files", root, len(files))
    return files


# ---------------------------------------------------------------------------
# OneDrive scan
# ---------------------------------------------------------------------------

def scan_drive(
    drive: DriveClient,
    folder_path: str,
    include_subfolders: bool = True,
    max_depth: int = DEFAULT_DRIVE_DEPTH,
) -> List[FileDescriptor]:
    """
    Scan a OneDrive folder through Microsoft Graph.

    The root folder is depth 0. A subfolder at depth d is listed only when
    `include_subfolders` is set and d <= max_depth, so at most one listing
    call is issued per folder at depth <= max_depth. `max_depth` is capped at
    MAX_DRIVE_DEPTH.

    A folder that cannot be listed (missing, forbidden, network error) is
    logged and skipped; its siblings are still scanned.

    Raises
    ------
    InvalidPathError
        If `folder_path` contains '..' or repeated slashes.
    """
    root_path = validate_drive_path(folder_path)
    max_depth = max(0, min(max_depth, MAX_DRIVE_DEPTH))

    files: List[FileDescriptor] = []
    _scan_drive_folder(drive, root_path, "", 0, max_depth, include_subfolders, files)
    logger.debug("OneDrive scan of %s found %d files", root_path, len(files))
    return files


def _scan_drive_folder(
    drive: DriveClient,
    folder_path: str,
    relative_path: str,
    depth: int,
    max_depth: int,
    include_subfolders: bool,
    files: List[FileDescriptor],
) -> None:
    try:
        items = drive.list_children(folder_path)
    except DriveError as exc:
        if exc.status_code == 404:
            logger.warning("Folder not found: %s (moved or deleted?)", folder_path)
        elif exc.status_code == 403:
            logger.warning("Access denied to folder: %s", folder_path)
        else:
            logger.warning("Failed to scan folder %s at depth %d: %s", folder_path, depth, exc)
        return

    for item in items:
        if "folder" in item:
            if include_subfolders and depth < max_depth:
                _scan_drive_folder(
                    drive,
                    join_drive_path(folder_path, item["name"]),
                    join_relative(relative_path, item["name"]),
                    depth + 1,
                    max_depth,
                    include_subfolders,
                    files,
                )
            continue
        files.append(item_to_descriptor(item, relative_path))


# ---------------------------------------------------------------------------
# DataFrame view
# ---------------------------------------------------------------------------

def to_frame(files: Iterable[FileDescriptor]) -> pd.DataFrame:
    """One row per file with the FRAME_COLUMNS columns."""
    data = [
        {
            "id": f.id,
            "name": f.name,
            "extension": f.extension,
            "relative_path": f.relative_path,
            "parent_path": f.parent_path,
            "size": f.size,
            "last_modified": f.last_modified,
            "mime_type": f.mime_type,
            "source": f.source,
        }
        for f in files
    ]
    return pd.DataFrame(data, columns=FRAME_COLUMNS)
