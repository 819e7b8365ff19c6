"""
Project-code prefixing for file names.

Every file of a commessa is expected to be named `<code>_<rest>`. The
deriver below computes the normalized name; it is idempotent, so applying it
to an already-renamed file is always a no-op.
"""

from __future__ import annotations

import re
from typing import Iterable, List, Tuple

from .errors import ValidationError
from .models import FileDescriptor, RenamePreview

# Any prior project-code prefix: uppercase letters/digits followed by '_'.
# Also matches names such as "2024_report.pdf"; see DESIGN.md.
PREFIX_PATTERN = re.compile(r"^[A-Z0-9]+_")


def split_extension(file_name: str) -> Tuple[str, str]:
    """
    Split a name into (stem, extension) at the last dot.

    The extension keeps its leading dot. A dot at index 0 is not a separator,
    so ".gitignore" has no extension.
    """
    dot = file_name.rfind(".")
    if dot <= 0:
        return file_name, ""
    return file_name[:dot], file_name[dot:]


def derive_file_name(file_name: str, project_code: str) -> str:
    """
    Return `file_name` carrying the `<project_code>_` prefix.

    - already prefixed with the code: unchanged
    - no extension: prefix prepended
    - stem starting with another `UPPERCASE-ALNUM_` prefix: prefix replaced
    - otherwise: prefix prepended

    Examples:
      report.pdf, 25ABC123           -> 25ABC123_report.pdf
      25ABC123_report.pdf, 25ABC123  -> 25ABC123_report.pdf
      25XYZ999_report.pdf, 25ABC123  -> 25ABC123_report.pdf
    """
    if not project_code:
        raise ValidationError("A project code is required to derive file names.")

    prefix = f"{project_code}_"
    stem, extension = split_extension(file_name)

    if not extension:
        if file_name.startswith(prefix):
            return file_name
        return f"{prefix}{file_name}"

    if stem.startswith(prefix):
        return file_name

    if PREFIX_PATTERN.match(stem):
        return f"{prefix}{PREFIX_PATTERN.sub('', stem, count=1)}{extension}"

    return f"{prefix}{stem}{extension}"


def has_foreign_prefix(file_name: str, project_code: str) -> bool:
    """True when the name carries a prefix that the deriver would replace."""
    stem, _ = split_extension(file_name)
    return bool(PREFIX_PATTERN.match(stem)) and not stem.startswith(f"{project_code}_")


def build_rename_plan(
    files: Iterable[FileDescriptor], project_code: str
) -> List[RenamePreview]:
    """Preview the bulk rename of `files`, in scan order."""
    return [
        RenamePreview(
            file=f,
            original=f.name,
            renamed=derive_file_name(f.name, project_code),
        )
        for f in files
        if not f.is_folder
    ]
