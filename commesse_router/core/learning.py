"""Learned routing corrections.

When the user overrides a suggestion (or supplies a path by hand) the chosen
folder is remembered under a normalized signature of the file name and
returned on later runs before any rule or LLM is consulted.

Signature: "<ext>:<kw1>,<kw2>,<kw3>" where the keywords are the first three
lowercase alphanumeric tokens longer than three characters. Names with no
such token use "<ext>:=<stem>" and match only exactly.

Stored in: <ROUTER_HOME>/storage.json under `learned_patterns`
"""

import logging
import re
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple

from .models import Correction
from ..utils.storage import LEARNED_PATTERNS_KEY, LocalStorage

logger = logging.getLogger(__name__)

_NON_ALNUM = re.compile(r"[^a-z0-9]")
MAX_KEYWORDS = 3
MIN_KEYWORD_LENGTH = 4


def file_extension(file_name: str) -> str:
    dot = file_name.rfind(".")
    if dot <= 0:
        return ""
    return file_name[dot + 1:].lower()


def extract_keywords(file_name: str) -> List[str]:
    words = _NON_ALNUM.sub(" ", file_name.lower()).split()
    return [w for w in words if len(w) >= MIN_KEYWORD_LENGTH][:MAX_KEYWORDS]


def file_signature(file_name: str) -> str:
    """
    Normalized key under which corrections for `file_name` are stored.

    Names whose stem has no long keyword (`a.pdf`, `01.xlsx`) are keyed on
    the whole normalized stem, "<ext>:=<stem>", and only ever match exactly.
    """
    ext = file_extension(file_name)
    stem = file_name[: -(len(ext) + 1)] if ext else file_name
    if extract_keywords(stem):
        return f"{ext}:{','.join(extract_keywords(file_name))}"
    return f"{ext}:={'_'.join(_NON_ALNUM.sub(' ', stem.lower()).split())}"


def _split_signature(signature: str) -> Tuple[str, List[str]]:
    ext, _, keywords = signature.partition(":")
    if keywords.startswith("="):
        return ext, []
    return ext, [k for k in keywords.split(",") if k]


class LearningStore:
    """
    Persistent map of file signature -> chosen destination folder.

    No eviction: every correction is kept until `clear()`.
    """

    def __init__(self, storage: LocalStorage) -> None:
        self.storage = storage

    def _load(self) -> Dict[str, Correction]:
        raw = self.storage.get(LEARNED_PATTERNS_KEY) or {}
        if not isinstance(raw, dict):
            logger.warning("Ignoring malformed learned patterns entry")
            return {}

        patterns: Dict[str, Correction] = {}
        for signature, value in raw.items():
            # Older entries stored only the path.
            if isinstance(value, str):
                patterns[signature] = Correction(signature, value, "")
            elif isinstance(value, dict) and value.get("path"):
                patterns[signature] = Correction(signature, value["path"], value.get("recorded_at", ""))
        return patterns

    def _save(self, patterns: Dict[str, Correction]) -> None:
        self.storage.set(
            LEARNED_PATTERNS_KEY,
            {sig: c.to_dict() for sig, c in patterns.items()},
        )

    def record(self, file_name: str, chosen_path: str) -> Correction:
        """Remember `chosen_path` for files named like `file_name`."""
        signature = file_signature(file_name)
        correction = Correction(
            signature=signature,
            path=chosen_path,
            recorded_at=datetime.now(timezone.utc).isoformat(),
        )
        patterns = self._load()
        patterns[signature] = correction
        self._save(patterns)
        logger.info("Learned: %s -> %s", signature, chosen_path)
        return correction

    def lookup(self, file_name: str) -> Optional[Correction]:
        """
        Most relevant correction for `file_name`, or None.

        Exact signature first. Otherwise, among corrections with the same
        extension, the one sharing the most keywords (at least
        min(2, number of keywords)); ties go to the most recent.
        """
        patterns = self._load()
        if not patterns:
            return None

        signature = file_signature(file_name)
        if signature in patterns:
            return patterns[signature]

        ext, keywords = _split_signature(signature)
        if not keywords:
            return None
        required = min(2, len(keywords))

        best: Optional[Correction] = None
        best_overlap = 0
        for candidate in patterns.values():
            cand_ext, cand_keywords = _split_signature(candidate.signature)
            if cand_ext != ext:
                continue
            overlap = len(set(keywords) & set(cand_keywords))
            if overlap < required:
                continue
            if overlap > best_overlap or (
                overlap == best_overlap and best is not None and candidate.recorded_at > best.recorded_at
            ):
                best = candidate
                best_overlap = overlap
        return best

    def patterns(self) -> List[Correction]:
        """All corrections, most recent first."""
        return sorted(self._load().values(), key=lambda c: c.recorded_at, reverse=True)

    def forget(self, file_name: str) -> bool:
        patterns = self._load()
        signature = file_signature(file_name)
        if signature not in patterns:
            return False
        del patterns[signature]
        self._save(patterns)
        return True

    def clear(self) -> None:
        self._save({})

    def stats(self) -> Dict[str, int]:
        return {"learned_patterns": len(self._load())}
