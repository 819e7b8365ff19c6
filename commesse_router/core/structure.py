"""
Project folder creation.

A commessa lives in `<root>/<code>_<name>/` with the chosen template's
folder tree inside it. Creation is idempotent: folders that already exist
are kept and reported as such, so the command can be re-run to complete a
partial tree.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from .drive import DriveClient
from .errors import DriveError, ExecutionError, ValidationError
from .templates import available_folders, get_template
from ..utils.paths import join_drive_path, validate_drive_path

logger = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r'[<>:"/\\|?*\x00-\x1f]')
_REPEATED_UNDERSCORES = re.compile(r"_{2,}")
MAX_PROJECT_NAME_LENGTH = 50


@dataclass
class StructureResult:
    """
    Outcome of creating a project tree.

    Local paths are relative to the root. On OneDrive existing folders cannot
    be told apart, so `created` lists every ensured folder.
    """

    project_path: str
    template: str
    created: List[str] = field(default_factory=list)
    existing: List[str] = field(default_factory=list)


def project_folder_name(project_code: str, project_name: str) -> str:
    """
    `<code>_<name>` with characters that are invalid in folder names replaced.

    Raises
    ------
    ValidationError
        If the code or the sanitized name is empty.
    """
    code = project_code.strip()
    if not code:
        raise ValidationError("A project code is required.")
    name = _UNSAFE_CHARS.sub("_", project_name.strip())
    name = _REPEATED_UNDERSCORES.sub("_", name).strip("_")[:MAX_PROJECT_NAME_LENGTH]
    if not name:
        raise ValidationError("A project name is required.")
    return f"{code}_{name}"


def find_project_folder(root: Path, project_code: str) -> Optional[Path]:
    """Existing folder of `project_code` directly under `root`, if any."""
    code = project_code.strip()
    if not code:
        return None
    matches = sorted(
        p for p in root.iterdir()
        if p.is_dir() and (p.name == code or p.name.startswith(f"{code}_"))
    )
    return matches[0] if matches else None


def create_project_structure(
    root: Path, project_code: str, project_name: str, template: str
) -> StructureResult:
    """
    Create the project folder and the template tree under a local root.

    An existing folder for the same project code is reused instead of
    creating a second one with a different name.
    """
    template_key = get_template(template).key
    folder_name = project_folder_name(project_code, project_name)

    try:
        project_dir = find_project_folder(root, project_code) or root / folder_name
    except OSError as exc:
        raise ExecutionError(f"Cannot read '{root}': {exc}") from exc

    result = StructureResult(project_path=project_dir.name, template=template_key)
    try:
        if project_dir.is_dir():
            result.existing.append(project_dir.name)
        else:
            project_dir.mkdir()
            result.created.append(project_dir.name)

        for folder in available_folders(template_key):
            path = project_dir / folder
            if path.is_dir():
                result.existing.append(f"{project_dir.name}/{folder}")
                continue
            path.mkdir(parents=True)
            result.created.append(f"{project_dir.name}/{folder}")
    except OSError as exc:
        raise ExecutionError(f"Failed to create folders under '{project_dir}': {exc}") from exc

    logger.info(
        "Project tree %s: %d created, %d already present",
        project_dir, len(result.created), len(result.existing),
    )
    return result


def create_drive_structure(
    drive: DriveClient, parent_path: str, project_code: str, project_name: str, template: str
) -> StructureResult:
    """OneDrive version of create_project_structure; every folder is ensured in turn."""
    template_key = get_template(template).key
    parent_path = validate_drive_path(parent_path)
    project_path = join_drive_path(parent_path, project_folder_name(project_code, project_name))

    result = StructureResult(project_path=project_path, template=template_key)
    try:
        drive.ensure_folder(project_path)
        result.created.append(project_path)
        for folder in available_folders(template_key):
            drive.ensure_folder(join_drive_path(project_path, folder))
            result.created.append(join_drive_path(project_path, folder))
    except DriveError as exc:
        raise ExecutionError(f"Failed to create OneDrive folders under '{project_path}': {exc}") from exc
    return result
