from __future__ import annotations
"""
Planner for the project-folder router.

Responsibilities:

- Take the classifier's suggestions + root + template key.
- Build one DataFrame row per suggestion.
- Compute aggregate stats per suggested folder:
  * file_count
  * total_size_mb
  * avg_confidence
  * 2-3 sample filenames
- Compute global stats:
  * total_files
  * total_size_mb
  * level_counts (high / medium / low confidence)
  * num_fallback (files routed by the fallback)
- Return a RoutingPlan that the CLI and executor can use.
"""

from typing import List, Optional, Sequence

import pandas as pd

from .errors import ClassificationError
from .models import PlanFolderSummary, RoutingPlan, RoutingSuggestion
from .templates import available_folders

PLAN_COLUMNS = [
    "id",
    "name",
    "relative_path",
    "size",
    "suggested_path",
    "confidence",
    "level",
    "method",
]


def _suggestions_to_frame(suggestions: Sequence[RoutingSuggestion]) -> pd.DataFrame:
    rows = [
        {
            "id": s.file.id,
            "name": s.file.name,
            "relative_path": s.file.relative_path,
            "size": s.file.size,
            "suggested_path": s.suggested_path,
            "confidence": s.confidence,
            "level": s.level,
            "method": s.method,
        }
        for s in suggestions
    ]
    return pd.DataFrame(rows, columns=PLAN_COLUMNS)


def build_plan(
    suggestions: Sequence[RoutingSuggestion], root: str, template: str
) -> RoutingPlan:
    """
    Build a RoutingPlan from classifier suggestions.

    Parameters
    ----------
    suggestions : Sequence[RoutingSuggestion]
        One suggestion per scanned file, as returned by classify_files.
    root : str
        Local directory or OneDrive folder the files were scanned from.
    template : str
        Template key; folders are listed in template order, then any other
        folder (such as the fallback) in order of appearance.

    Raises
    ------
    ClassificationError
        If a suggestion has no destination folder.
    """
    if any(not s.suggested_path for s in suggestions):
        raise ClassificationError("Every suggestion needs a destination folder before planning.")

    df = _suggestions_to_frame(suggestions)
    df["size"] = df["size"].astype(float)
    df["confidence"] = pd.to_numeric(df["confidence"], errors="coerce")

    total_files = int(len(df))
    total_size_mb = float(df["size"].sum() / (1024 * 1024))
    level_counts = {
        level: int((df["level"] == level).sum()) for level in ("high", "medium", "low")
    }
    num_fallback = int((df["method"] == "fallback").sum())

    folders: List[PlanFolderSummary] = []
    if total_files:
        grouped = df.groupby("suggested_path", sort=False)

        def _summary(folder: str) -> Optional[PlanFolderSummary]:
            if folder not in grouped.groups:
                return None
            group = grouped.get_group(folder)
            confidences = group["confidence"].dropna()
            return PlanFolderSummary(
                folder=folder,
                file_count=int(len(group)),
                total_size_mb=float(group["size"].sum() / (1024 * 1024)),
                avg_confidence=float(confidences.mean()) if len(confidences) else None,
                sample_files=group.sort_values("name")["name"].head(3).astype(str).tolist(),
            )

        seen = set()
        for folder in (f + "/" for f in available_folders(template)):
            summary = _summary(folder)
            if summary is not None:
                folders.append(summary)
                seen.add(folder)
        for folder in grouped.groups.keys():
            if folder not in seen:
                folders.append(_summary(folder))

    return RoutingPlan(
        root=str(root),
        template=template.upper(),
        suggestions=list(suggestions),
        df=df,
        folders=folders,
        total_files=total_files,
        total_size_mb=total_size_mb,
        level_counts=level_counts,
        num_fallback=num_fallback,
    )
