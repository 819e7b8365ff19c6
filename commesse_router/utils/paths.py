"""
Path utilities for the project-folder router.

Local root paths given on the command line go through resolve_root();
OneDrive folder paths go through validate_drive_path() before any Graph
request is made.
"""

from __future__ import annotations

from pathlib import Path

from ..core.errors import InvalidPathError, PathNotDirectoryError, PathNotFoundError

def resolve_root(path_str: str) -> Path:
    """
    Resolve a user-provided path string into an absolute directory Path.

    Raises:
    - PathNotFoundError: if the resolved path does not exist.
    - PathNotDirectoryError: if the path exists but is not a directory.
    """
    root = Path(path_str).expanduser().resolve()

    if not root.exists():
        raise PathNotFoundError(f"Path not found: {root}")

    if not root.is_dir():
        raise PathNotDirectoryError(f"Provided path is not a directory: {root}")

    return root


def validate_drive_path(folder_path: str) -> str:
    """
    Check a OneDrive folder path and return it with a leading '/'.

    Paths containing '..' or repeated slashes are rejected rather than
    silently rewritten.
    """
    if not folder_path or not isinstance(folder_path, str):
        raise InvalidPathError("Invalid folder path provided")
    if ".." in folder_path or "//" in folder_path:
        raise InvalidPathError(f"Invalid characters in folder path: {folder_path}")
    if not folder_path.startswith("/"):
        folder_path = "/" + folder_path
    if len(folder_path) > 1:
        folder_path = folder_path.rstrip("/")
    return folder_path


def join_drive_path(parent: str, name: str) -> str:
    """Join OneDrive path segments without doubling the root slash."""
    parent = parent.rstrip("/")
    name = name.strip("/")
    if not parent:
        return f"/{name}"
    return f"{parent}/{name}"


def join_relative(parent: str, name: str) -> str:
    """Join scan-relative path segments ('' is the scan root)."""
    if not parent:
        return name
    return f"{parent}/{name}"


def strip_folder_slash(folder: str) -> str:
    """'3_PROGETTO/ARC/' -> '3_PROGETTO/ARC'"""
    return folder.strip().strip("/")
