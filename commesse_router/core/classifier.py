from __future__ import annotations
"""
File classification logic for the project-folder router.

Responsibilities:

- classify_file(file, template, session) returns exactly one
  RoutingSuggestion, trying in order:
    1. the learning store (confidence 1.0, method "learned")
    2. the template's rule table, extension + filename keyword
       (confidence 0.8, method "rules")
    3. the LLM, with the template's folder list in the prompt
       (method "ai")
- Any LLM failure (missing key, network, unparsable answer) degrades to the
  fallback folder MATERIALE_RICEVUTO/ with confidence 0.5 and the error in
  `reasoning`. A single bad file never aborts a batch.
- classify_files(...) runs the files strictly one after the other.
"""

import json
import logging
import math
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, Optional, Tuple, Union

from .errors import LlmResponseParseError, LlmUnavailableError, RouterError, ValidationError
from .models import FileDescriptor, RoutingSuggestion
from .session import RoutingSession
from .templates import (
    available_folders,
    find_closest_folder,
    get_template,
    template_outline,
)

logger = logging.getLogger(__name__)

FALLBACK_PATH = "MATERIALE_RICEVUTO/"
FALLBACK_CONFIDENCE = 0.5
LEARNED_CONFIDENCE = 1.0
RULE_KEYWORD_CONFIDENCE = 0.8
CORRECTED_PATH_PENALTY = 0.8

PREVIEW_MAX_BYTES = 10_000
PREVIEW_CHARS = 200

_JSON_OBJECT = re.compile(r"\{[\s\S]*\}")

# ---------------------------------------------------------------------------
# Tagged LLM parse result
# ---------------------------------------------------------------------------

@dataclass
class LlmSuggestion:
    """A validated LLM answer."""

    suggested_path: str
    confidence: float
    reasoning: str
    alternatives: List[str] = field(default_factory=list)
    corrected: bool = False


@dataclass
class LlmParseFailure:
    """An LLM answer that could not be turned into a suggestion."""

    error: str
    raw: str


LlmParseResult = Union[LlmSuggestion, LlmParseFailure]

# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def classify_file(
    file: FileDescriptor,
    template: str,
    session: RoutingSession,
    preview: Optional[str] = None,
) -> RoutingSuggestion:
    """
    Suggest a destination folder for one file. Never raises for a single
    file's LLM failure; see module docstring for the lookup order.
    """
    if session.ai_config.learning:
        learned = session.learning.lookup(file.name)
        if learned is not None:
            logger.debug("Learned pattern for %s -> %s", file.name, learned.path)
            return RoutingSuggestion(
                file=file,
                suggested_path=learned.path,
                confidence=LEARNED_CONFIDENCE,
                reasoning=f"Pattern learned from previous corrections ({learned.signature})",
                method="learned",
            )

    rule_hit, extension_default = rules_route(file, template)
    if rule_hit is not None:
        return rule_hit

    alternatives = [extension_default] if extension_default else []
    try:
        if not session.ai_config.auto_routing:
            raise LlmUnavailableError("AI routing is disabled in ai_config")
        return llm_route(file, template, session, preview=preview)
    except RouterError as exc:
        logger.warning("AI routing failed for %s: %s", file.name, exc)
        return RoutingSuggestion(
            file=file,
            suggested_path=FALLBACK_PATH,
            confidence=FALLBACK_CONFIDENCE,
            reasoning=f"Analysis error: {exc}",
            method="fallback",
            alternatives=alternatives,
        )


def classify_files(
    files: List[FileDescriptor],
    template: str,
    session: RoutingSession,
    *,
    root: Optional[Path] = None,
    on_progress: Optional[Callable[[int, int, RoutingSuggestion], None]] = None,
) -> List[RoutingSuggestion]:
    """
    Classify `files` sequentially; returns one suggestion per file, in order.

    When `root` is given, small local text/PDF files contribute a short
    content preview to the prompt.
    """
    if not template:
        raise ValidationError("Select a project template before analysing files.")
    get_template(template)

    suggestions: List[RoutingSuggestion] = []
    total = len(files)
    for index, file in enumerate(files, start=1):
        preview = _text_preview(root, file) if root is not None else None
        suggestion = classify_file(file, template, session, preview=preview)
        suggestions.append(suggestion)
        logger.info(
            "Analysed %s: %s (%d%%, %s)",
            file.name,
            suggestion.suggested_path,
            round(suggestion.confidence * 100),
            suggestion.method,
        )
        if on_progress is not None:
            on_progress(index, total, suggestion)
    return suggestions


# ---------------------------------------------------------------------------
# Rule-based routing
# ---------------------------------------------------------------------------

def rules_route(
    file: FileDescriptor, template: str
) -> Tuple[Optional[RoutingSuggestion], Optional[str]]:
    """
    Apply the template's rule table.

    Returns (suggestion, extension_default). The suggestion is set only on a
    filename keyword hit; the extension default alone is not confident
    enough and is only offered as an alternative.
    """
    extension = file.extension
    name = file.name.lower()
    if not extension:
        return None, None

    for rule in get_template(template).rules:
        if extension not in rule.extensions:
            continue
        for pattern in rule.patterns:
            keyword = next((k for k in pattern.keywords if k in name), None)
            if keyword is None:
                continue
            alternatives = [rule.default] if rule.default != pattern.folder else []
            return (
                RoutingSuggestion(
                    file=file,
                    suggested_path=pattern.folder,
                    confidence=RULE_KEYWORD_CONFIDENCE,
                    reasoning=f'.{extension} file with keyword "{keyword}"',
                    method="rules",
                    alternatives=alternatives,
                ),
                rule.default,
            )
        return None, rule.default
    return None, None


# ---------------------------------------------------------------------------
# LLM routing
# ---------------------------------------------------------------------------

def build_prompt(file: FileDescriptor, template: str, preview: Optional[str] = None) -> str:
    folders = available_folders(template)
    folder_list = "\n".join(f"- {folder}/" for folder in folders)
    preview_line = (
        f"- Content preview (first {PREVIEW_CHARS} chars): {preview[:PREVIEW_CHARS]}...\n"
        if preview
        else ""
    )
    return (
        "You are an expert Italian structural engineer classifying project documents "
        "into the firm's standard project folder template.\n\n"
        "ANALYZE THIS FILE:\n"
        f"- Filename: {file.name}\n"
        f"- Extension: {file.extension}\n"
        f"- MIME Type: {file.mime_type}\n"
        f"- Size: {file.size} bytes\n"
        f"{preview_line}\n"
        f"PROJECT TEMPLATE: {template}\n"
        f"{template_outline(template)}\n\n"
        f"AVAILABLE FOLDERS FOR {template} (CHOOSE ONLY FROM THIS EXACT LIST):\n"
        f"{folder_list}\n\n"
        "Select exactly one folder from the list, explain why, and suggest 2-3 "
        "alternative folders from the same list.\n\n"
        "Return ONLY a JSON object, no other text:\n"
        "{\n"
        '  "suggestedPath": "EXACT_FOLDER_FROM_LIST/",\n'
        '  "confidence": 0.95,\n'
        '  "reasoning": "document type and why it belongs there",\n'
        '  "alternatives": ["ALTERNATIVE1/", "ALTERNATIVE2/"]\n'
        "}\n"
        "Confidence must be a decimal between 0.0 and 1.0."
    )


def llm_route(
    file: FileDescriptor,
    template: str,
    session: RoutingSession,
    preview: Optional[str] = None,
) -> RoutingSuggestion:
    """
    Ask the LLM for a destination folder.

    Raises
    ------
    MissingApiKeyError
        If no API key is configured.
    LlmUnavailableError
        If the API call fails.
    LlmResponseParseError
        If the answer cannot be parsed into a suggestion.
    """
    client = session.get_llm_client()
    prompt = build_prompt(file, template, preview)

    try:
        response = client.chat.completions.create(
            model=session.ai_config.model,
            messages=[{"role": "user", "content": prompt}],
        )
    except Exception as exc:
        # Wrap any client/network error so the caller can degrade per file.
        raise LlmUnavailableError(f"LLM API call failed: {exc}") from exc

    try:
        raw_text = response.choices[0].message.content or ""
    except (AttributeError, IndexError, TypeError) as exc:
        raise LlmResponseParseError(f"Unexpected LLM response structure: {exc}") from exc

    result = parse_llm_response(raw_text, template)
    if isinstance(result, LlmParseFailure):
        raise LlmResponseParseError(result.error)

    reasoning = result.reasoning
    if result.corrected:
        reasoning = f"{reasoning} (path corrected automatically)"
    return RoutingSuggestion(
        file=file,
        suggested_path=result.suggested_path,
        confidence=result.confidence,
        reasoning=reasoning,
        method="ai",
        alternatives=result.alternatives,
    )


def _clamp(value: object) -> float:
    try:
        confidence = float(value)
    except (TypeError, ValueError):
        return 0.0
    if not math.isfinite(confidence):
        return 0.0
    return min(max(confidence, 0.0), 1.0)


def parse_llm_response(raw_text: str, template: str) -> LlmParseResult:
    """
    Turn the model's text into an LlmSuggestion or an LlmParseFailure.

    The first {...} block is parsed as JSON. A suggested folder missing from
    the template is replaced by the closest template folder and its
    confidence reduced by CORRECTED_PATH_PENALTY. Alternatives not in the
    template are dropped.
    """
    match = _JSON_OBJECT.search(raw_text or "")
    if not match:
        return LlmParseFailure(error="No JSON object found in LLM response", raw=raw_text)
    try:
        parsed = json.loads(match.group(0))
    except json.JSONDecodeError as exc:
        return LlmParseFailure(error=f"Failed to parse LLM response as JSON: {exc}", raw=raw_text)
    if not isinstance(parsed, dict):
        return LlmParseFailure(error="LLM response JSON is not an object", raw=raw_text)

    suggested = parsed.get("suggestedPath")
    if not isinstance(suggested, str) or not suggested.strip():
        return LlmParseFailure(error="LLM response has no suggestedPath", raw=raw_text)

    folders = available_folders(template)
    confidence = _clamp(parsed.get("confidence", 0.0))
    reasoning = str(parsed.get("reasoning") or "AI analysis")

    raw_alternatives = parsed.get("alternatives") or []
    if not isinstance(raw_alternatives, list):
        raw_alternatives = []
    alternatives = [
        _with_slash(alt)
        for alt in raw_alternatives
        if isinstance(alt, str) and alt.strip().rstrip("/") in folders
    ]

    clean = suggested.strip().rstrip("/")
    if clean in folders:
        return LlmSuggestion(
            suggested_path=clean + "/",
            confidence=confidence,
            reasoning=reasoning,
            alternatives=alternatives,
        )

    closest = find_closest_folder(suggested, folders)
    logger.warning("AI suggested a folder outside %s: %s; using %s", template, suggested, closest)
    return LlmSuggestion(
        suggested_path=closest,
        confidence=confidence * CORRECTED_PATH_PENALTY,
        reasoning=reasoning,
        alternatives=alternatives,
        corrected=True,
    )


def _with_slash(folder: str) -> str:
    return folder.strip().rstrip("/") + "/"


def _text_preview(root: Path, file: FileDescriptor) -> Optional[str]:
    """First characters of a small local text-like file, or None."""
    if file.source != "local" or file.size >= PREVIEW_MAX_BYTES:
        return None
    if not (file.mime_type.startswith("text/") or file.extension == "pdf"):
        return None
    try:
        with open(Path(root) / file.relative_path, "r", encoding="utf-8", errors="ignore") as f:
            return f.read(PREVIEW_CHARS * 2) or None
    except OSError as exc:
        logger.debug("No preview for %s: %s", file.relative_path, exc)
        return None


def check_llm_connection(session: RoutingSession) -> str:
    """
    One-shot call to check the configured key, model and endpoint.

    Returns the model's reply; raises MissingApiKeyError or
    LlmUnavailableError.
    """
    client = session.get_llm_client()
    try:
        response = client.chat.completions.create(
            model=session.ai_config.model,
            messages=[{"role": "user", "content": "Reply with the single word OK."}],
        )
        return (response.choices[0].message.content or "").strip()
    except Exception as exc:
        raise LlmUnavailableError(f"LLM connection test failed: {exc}") from exc
