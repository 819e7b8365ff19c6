from __future__ import annotations
"""
Move log writer for the project-folder router.

Responsibilities:
- Write a CSV log of rename/move outcomes, one row per RenameOperation.

Expected usage:
- The executor collects RenameOperation records while processing a batch.
- At the end it calls write_move_log(operations, base_dir) and the CLI prints
  the returned path.
"""

from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, List, Sequence

import pandas as pd

from .errors import LoggingError
from .models import RenameOperation

# ---------------------------------------------------------------------------
# Defaults
# ---------------------------------------------------------------------------

# Local batches log inside the scanned root; remote batches inside the cwd.
DEFAULT_LOG_DIRNAME = ".commesse-router"
DEFAULT_LOG_SUBDIR = "logs"
DEFAULT_LOG_PREFIX = "move_log"

LOG_COLUMNS = [
    "file_name",
    "original",
    "renamed",
    "outcome",
    "method",
    "confidence",
    "error",
]


def log_directory(base_dir: Path) -> Path:
    return Path(base_dir) / DEFAULT_LOG_DIRNAME / DEFAULT_LOG_SUBDIR


def write_move_log(
    operations: Sequence[RenameOperation] | Iterable[RenameOperation],
    base_dir: Path,
    *,
    filename_prefix: str = DEFAULT_LOG_PREFIX,
) -> Path:
    """
    Write a CSV move log and return the written file path.

    The log is written under:
        {base_dir}/.commesse-router/logs/{filename_prefix}_YYYYmmdd_HHMMSS_ffffffZ.csv

    A file is written even for an empty batch so the CLI can always report
    a log path.

    Raises
    ------
    LoggingError
        If the log directory cannot be created or the file cannot be written.
    """
    log_dir = log_directory(base_dir)
    try:
        log_dir.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise LoggingError(f"Failed to create log directory: {log_dir}") from exc

    # UTC timestamp with microseconds so back-to-back batches do not collide.
    ts = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S_%fZ")
    log_path = log_dir / f"{filename_prefix}_{ts}.csv"

    rows: List[dict] = [
        {
            "file_name": op.file_name,
            "original": op.original,
            "renamed": op.renamed,
            "outcome": op.outcome.value,
            "method": op.method,
            "confidence": op.confidence,
            "error": op.error,
        }
        for op in operations
    ]
    df = pd.DataFrame(rows, columns=LOG_COLUMNS)

    try:
        df.to_csv(log_path, index=False)
    except OSError as exc:
        raise LoggingError(f"Failed to write move log to '{log_path}'.") from exc

    return log_path
