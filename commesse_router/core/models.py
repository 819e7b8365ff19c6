from __future__ import annotations
"""
Core domain models for the project-folder router.

These dataclasses define the structured data passed between:
- scanner -> classifier -> planner -> executor -> CLI
and allow the console layer (Rich output) to render summaries without
knowing internal implementation details.

Everything here is scoped to one routing session, except the corrections kept
by the learning store and the audit records posted to the backend.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Dict, List, Literal, Optional

import pandas as pd

# ---------------------------------------------------------------------------
# Basic types
# ---------------------------------------------------------------------------

RoutingMethod = Literal["learned", "rules", "ai", "fallback"]
ConfidenceLevel = Literal["high", "medium", "low"]
ScanSource = Literal["local", "drive"]

HIGH_CONFIDENCE = 0.8
MEDIUM_CONFIDENCE = 0.6


def confidence_level(confidence: float) -> ConfidenceLevel:
    """Map a confidence score to its display level."""
    if confidence >= HIGH_CONFIDENCE:
        return "high"
    if confidence >= MEDIUM_CONFIDENCE:
        return "medium"
    return "low"


class RenameOutcome(str, Enum):
    """Outcome of a single rename/move attempt."""

    SUCCEEDED_IN_PLACE = "succeeded-in-place"
    DOWNLOADED_FALLBACK = "downloaded-fallback"
    ALREADY_CORRECT = "already-correct"
    FAILED = "failed"


# ---------------------------------------------------------------------------
# Scanning / classification models
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class FileDescriptor:
    """
    Snapshot of a local or OneDrive file taken at scan time.

    `parent_path` is relative to the scan root, '/'-separated, and empty for
    files that sit directly in the root. For local files `id` is the relative
    path; for OneDrive files it is the Graph item id.
    """

    id: str
    name: str
    size: int
    last_modified: Optional[datetime]
    parent_path: str
    is_folder: bool = False
    mime_type: str = "application/octet-stream"
    source: ScanSource = "local"
    drive_id: Optional[str] = None
    download_url: Optional[str] = None
    web_url: Optional[str] = None

    @property
    def relative_path(self) -> str:
        if not self.parent_path:
            return self.name
        return f"{self.parent_path}/{self.name}"

    @property
    def extension(self) -> str:
        """Lowercase extension without the dot ('' when there is none)."""
        dot = self.name.rfind(".")
        if dot <= 0:
            return ""
        return self.name[dot + 1:].lower()


@dataclass
class RoutingSuggestion:
    """Destination proposed for one file by the classifier."""

    file: FileDescriptor
    suggested_path: str
    confidence: float
    reasoning: str
    method: RoutingMethod
    alternatives: List[str] = field(default_factory=list)

    @property
    def level(self) -> ConfidenceLevel:
        return confidence_level(self.confidence)


@dataclass
class Correction:
    """A user override remembered by the learning store."""

    signature: str
    path: str
    recorded_at: str  # ISO format datetime

    def to_dict(self) -> Dict[str, str]:
        return {"path": self.path, "recorded_at": self.recorded_at}


# ---------------------------------------------------------------------------
# Planning / summary models
# ---------------------------------------------------------------------------

@dataclass
class PlanFolderSummary:
    """
    Aggregated summary for one destination folder of a routing plan.

    - Destination folder
    - Number of files
    - Total size in MB
    - Average confidence
    - Sample filenames
    """

    folder: str
    file_count: int
    total_size_mb: float
    avg_confidence: Optional[float]
    sample_files: List[str]


@dataclass
class RoutingPlan:
    """
    Full routing plan for one run.

    Produced by the planner after classification; consumed by the console
    helpers for review and by the executor for the moves.
    """

    root: str
    template: str
    suggestions: List[RoutingSuggestion]
    # One row per suggestion with columns:
    # - name, relative_path, size, suggested_path, confidence, level, method
    df: pd.DataFrame
    folders: List[PlanFolderSummary]
    total_files: int
    total_size_mb: float
    level_counts: Dict[str, int]
    num_fallback: int


@dataclass
class RenamePreview:
    """One row of a bulk-rename preview."""

    file: FileDescriptor
    original: str
    renamed: str

    @property
    def already_correct(self) -> bool:
        return self.original == self.renamed


# ---------------------------------------------------------------------------
# Execution / logging models
# ---------------------------------------------------------------------------

@dataclass
class RenameOperation:
    """
    Outcome of renaming or moving a single file.

    `original` and `renamed` are paths relative to the scan root. For a
    downloaded-fallback `renamed` is the path of the downloaded copy.
    `error` carries the reason for a fallback or failure.
    """

    original: str
    renamed: str
    outcome: RenameOutcome
    file_name: str = ""
    method: Optional[str] = None
    confidence: Optional[float] = None
    error: Optional[str] = None


@dataclass
class BatchResult:
    """Aggregated outcome of a rename or move batch; nothing is dropped."""

    operations: List[RenameOperation]
    log_path: Optional[Path] = None

    def count(self, outcome: RenameOutcome) -> int:
        return sum(1 for op in self.operations if op.outcome == outcome)

    @property
    def counts(self) -> Dict[str, int]:
        return {outcome.value: self.count(outcome) for outcome in RenameOutcome}

    @property
    def total(self) -> int:
        return len(self.operations)


@dataclass
class FileRoutingRecord:
    """Audit record posted to the backend after a file was routed."""

    project_id: Optional[str]
    file_name: str
    file_type: Optional[str]
    suggested_path: str
    actual_path: Optional[str]
    confidence: int  # 0-100
    method: Optional[str]

    def to_payload(self) -> Dict[str, object]:
        return {
            "projectId": self.project_id,
            "fileName": self.file_name,
            "fileType": self.file_type,
            "suggestedPath": self.suggested_path,
            "actualPath": self.actual_path,
            "confidence": self.confidence,
            "method": self.method,
        }
