from __future__ import annotations

"""
Executor for the project-folder router.

Responsibilities:
- Rename files in place (bulk rename) or move them into their routed folder.
- Local files: read the original bytes, write them under the new name or
  location, delete the original. This is not atomic; when the delete fails
  the new copy is removed again before falling back.
- OneDrive files: a Graph PATCH (rename, or move with parentReference).
- When the in-place change is impossible (read-only folder, Graph error) the
  renamed content is written into the download directory instead and the
  outcome is `downloaded-fallback`. If that fails too the outcome is
  `failed`. Every file gets exactly one RenameOperation.
- Write the CSV move log via logger.write_move_log(...) and, for routed
  files, post audit records when an audit client is configured.
"""

import logging
import os
import time
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from .audit import build_record
from .drive import DriveClient
from .errors import FileMoveError, LoggingError, RouterError, ValidationError
from .logger import write_move_log
from .models import (
    BatchResult,
    FileDescriptor,
    RenameOperation,
    RenameOutcome,
    RenamePreview,
    RoutingSuggestion,
)
from .naming import split_extension
from .session import RoutingSession
from ..utils.paths import join_drive_path, join_relative, strip_folder_slash

logger = logging.getLogger(__name__)

MAX_NAME_CONFLICTS = 100
REMOTE_DELAY_SECONDS = 0.1
DEFAULT_MAX_WORKERS = 4
MANUAL_METHOD = "manual"

# ---------------------------------------------------------------------------
# File helpers
# ---------------------------------------------------------------------------

def _write_new_file(target: Path, data: bytes) -> Path:
    """
    Write `data` to `target`, or to the first free `<stem>_<n><ext>` next to
    it. Existing files are never overwritten; returns the path written.
    """
    stem, extension = split_extension(target.name)
    for counter in range(MAX_NAME_CONFLICTS + 1):
        candidate = target if counter == 0 else target.with_name(f"{stem}_{counter}{extension}")
        try:
            handle = open(candidate, "xb")
        except FileExistsError:
            continue
        try:
            with handle:
                handle.write(data)
        except OSError:
            _discard(candidate)
            raise
        return candidate
    raise FileMoveError(f"Too many naming conflicts for {target.name!r}")


def _discard(path: Path) -> None:
    try:
        path.unlink()
    except FileNotFoundError:
        pass
    except OSError as exc:
        logger.warning("Could not remove partial copy %s: %s", path, exc)


def _download_copy(data: bytes, download_dir: Path, target_rel: str) -> Path:
    destination = Path(download_dir) / target_rel
    destination.parent.mkdir(parents=True, exist_ok=True)
    return _write_new_file(destination, data)


# ---------------------------------------------------------------------------
# Single-file operations
# ---------------------------------------------------------------------------

def move_local(
    root: Path,
    source_rel: str,
    target_rel: str,
    download_dir: Path,
    **meta,
) -> RenameOperation:
    """
    Rename/move `root/source_rel` to `root/target_rel`.

    Name conflicts at the target get a `_<n>` suffix. `meta` fills the
    file_name/method/confidence fields of the returned operation.
    """
    if source_rel == target_rel:
        return RenameOperation(source_rel, target_rel, RenameOutcome.ALREADY_CORRECT, **meta)

    root = Path(root)
    source = root / source_rel
    target = root / target_rel
    data: Optional[bytes] = None

    try:
        data = source.read_bytes()
        target.parent.mkdir(parents=True, exist_ok=True)
        if not os.access(target.parent, os.W_OK):
            raise FileMoveError(f"Folder is not writable: {target.parent}")
        written = _write_new_file(target, data)
        try:
            source.unlink()
        except OSError:
            # Never leave two copies behind.
            _discard(written)
            raise
    except (OSError, FileMoveError) as exc:
        logger.warning("In-place change of %s failed, downloading instead: %s", source_rel, exc)
        if data is None:
            return RenameOperation(
                source_rel, target_rel, RenameOutcome.FAILED, error=f"Cannot read file: {exc}", **meta
            )
        try:
            downloaded = _download_copy(data, download_dir, target_rel)
        except (OSError, FileMoveError) as download_exc:
            logger.error("Download fallback for %s failed: %s", source_rel, download_exc)
            return RenameOperation(
                source_rel,
                target_rel,
                RenameOutcome.FAILED,
                error=f"{exc}; download failed: {download_exc}",
                **meta,
            )
        return RenameOperation(
            source_rel, str(downloaded), RenameOutcome.DOWNLOADED_FALLBACK, error=str(exc), **meta
        )

    return RenameOperation(
        source_rel,
        written.relative_to(root).as_posix(),
        RenameOutcome.SUCCEEDED_IN_PLACE,
        **meta,
    )


def _remote_fallback(
    drive: DriveClient,
    file: FileDescriptor,
    target_rel: str,
    download_dir: Path,
    reason: str,
    **meta,
) -> RenameOperation:
    try:
        data = drive.download_content(file.id, file.drive_id)
        downloaded = _download_copy(data, download_dir, target_rel)
    except (RouterError, OSError) as exc:
        logger.error("Download fallback for %s failed: %s", file.relative_path, exc)
        return RenameOperation(
            file.relative_path,
            target_rel,
            RenameOutcome.FAILED,
            error=f"{reason}; download failed: {exc}",
            **meta,
        )
    return RenameOperation(
        file.relative_path, str(downloaded), RenameOutcome.DOWNLOADED_FALLBACK, error=reason, **meta
    )


def rename_remote(
    drive: DriveClient, file: FileDescriptor, new_name: str, download_dir: Path, **meta
) -> RenameOperation:
    target_rel = join_relative(file.parent_path, new_name)
    if file.name == new_name:
        return RenameOperation(file.relative_path, target_rel, RenameOutcome.ALREADY_CORRECT, **meta)
    try:
        updated = drive.rename_item(file.id, new_name, file.drive_id)
    except RouterError as exc:
        logger.warning("OneDrive rename of %s failed, downloading instead: %s", file.name, exc)
        return _remote_fallback(drive, file, target_rel, download_dir, str(exc), **meta)
    return RenameOperation(
        file.relative_path,
        join_relative(file.parent_path, updated.get("name", new_name)),
        RenameOutcome.SUCCEEDED_IN_PLACE,
        **meta,
    )


def move_remote(
    drive: DriveClient,
    file: FileDescriptor,
    drive_root: str,
    folder: str,
    download_dir: Path,
    **meta,
) -> RenameOperation:
    folder_rel = strip_folder_slash(folder)
    target_rel = join_relative(folder_rel, file.name)
    if file.relative_path == target_rel:
        return RenameOperation(file.relative_path, target_rel, RenameOutcome.ALREADY_CORRECT, **meta)
    try:
        moved = drive.move_item(file.id, join_drive_path(drive_root, folder_rel), drive_id=file.drive_id)
    except RouterError as exc:
        logger.warning("OneDrive move of %s failed, downloading instead: %s", file.name, exc)
        return _remote_fallback(drive, file, target_rel, download_dir, str(exc), **meta)
    return RenameOperation(
        file.relative_path,
        join_relative(folder_rel, moved["name"]),
        RenameOutcome.SUCCEEDED_IN_PLACE,
        **meta,
    )


# ---------------------------------------------------------------------------
# Batches
# ---------------------------------------------------------------------------

def _check_target(root: Optional[Path], drive: Optional[DriveClient]) -> None:
    if (root is None) == (drive is None):
        raise ValidationError("Pass exactly one of a local root or a OneDrive client.")


def _finish(operations: List[RenameOperation], log_base: Path) -> BatchResult:
    result = BatchResult(operations=operations)
    try:
        result.log_path = write_move_log(operations, log_base)
    except LoggingError as exc:
        logger.warning("Move log not written: %s", exc)
    logger.info("Batch finished: %s", result.counts)
    return result


def apply_renames(
    previews: Sequence[RenamePreview],
    *,
    download_dir: Path,
    root: Optional[Path] = None,
    drive: Optional[DriveClient] = None,
    delay: float = REMOTE_DELAY_SECONDS,
    log_dir: Optional[Path] = None,
) -> BatchResult:
    """
    Apply a bulk-rename preview, one file after the other.

    Pass `root` for local files or `drive` for OneDrive files. OneDrive
    renames are spaced by `delay` seconds.

    Returns
    -------
    BatchResult
        One operation per preview, in order, plus the move-log path.
    """
    _check_target(root, drive)
    operations: List[RenameOperation] = []
    remote_calls = 0

    for preview in previews:
        file = preview.file
        if preview.already_correct:
            operations.append(
                RenameOperation(
                    file.relative_path,
                    file.relative_path,
                    RenameOutcome.ALREADY_CORRECT,
                    file_name=file.name,
                )
            )
            continue

        if root is not None:
            op = move_local(
                root,
                file.relative_path,
                join_relative(file.parent_path, preview.renamed),
                download_dir,
                file_name=file.name,
            )
        else:
            if remote_calls and delay:
                time.sleep(delay)
            remote_calls += 1
            op = rename_remote(drive, file, preview.renamed, download_dir, file_name=file.name)
        logger.debug("%s -> %s: %s", op.original, op.renamed, op.outcome.value)
        operations.append(op)

    return _finish(operations, root if root is not None else (log_dir or Path.cwd()))


def apply_routing(
    suggestions: Sequence[RoutingSuggestion],
    *,
    download_dir: Path,
    root: Optional[Path] = None,
    drive: Optional[DriveClient] = None,
    drive_root: str = "/",
    chosen_paths: Optional[Dict[str, str]] = None,
    session: Optional[RoutingSession] = None,
    concurrent: bool = False,
    max_workers: int = DEFAULT_MAX_WORKERS,
    log_dir: Optional[Path] = None,
) -> BatchResult:
    """
    Move every file into its routed folder.

    Parameters
    ----------
    suggestions : Sequence[RoutingSuggestion]
        Classifier output; each file is moved at most once.
    chosen_paths : dict, optional
        File id -> folder chosen by the user instead of the suggestion.
        Such moves are logged and audited with method "manual".
    session : RoutingSession, optional
        Supplies the audit client and project id for audit records.
    concurrent : bool
        Run the moves in a thread pool; every task touches a distinct file.
    """
    _check_target(root, drive)
    chosen_paths = chosen_paths or {}

    def _route_one(suggestion: RoutingSuggestion) -> RenameOperation:
        file = suggestion.file
        folder = chosen_paths.get(file.id, suggestion.suggested_path)
        method = suggestion.method if folder == suggestion.suggested_path else MANUAL_METHOD
        meta = {"file_name": file.name, "method": method, "confidence": suggestion.confidence}
        if root is not None:
            target_rel = join_relative(strip_folder_slash(folder), file.name)
            return move_local(root, file.relative_path, target_rel, download_dir, **meta)
        return move_remote(drive, file, drive_root, folder, download_dir, **meta)

    if concurrent and len(suggestions) > 1:
        with ThreadPoolExecutor(max_workers=max_workers) as pool:
            operations = list(pool.map(_route_one, suggestions))
    else:
        operations = [_route_one(s) for s in suggestions]

    if session is not None and session.audit is not None:
        for suggestion, op in zip(suggestions, operations):
            if op.outcome != RenameOutcome.SUCCEEDED_IN_PLACE:
                continue
            session.audit.record_routing(
                build_record(suggestion, op.renamed, session.project_id, method=op.method)
            )

    return _finish(operations, root if root is not None else (log_dir or Path.cwd()))


def accept_all(suggestions: Sequence[RoutingSuggestion], **kwargs) -> BatchResult:
    """Accept every suggestion as-is and move the files concurrently."""
    kwargs.pop("chosen_paths", None)
    return apply_routing(suggestions, concurrent=True, **kwargs)
