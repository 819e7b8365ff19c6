"""
JSON-file-backed key-value storage.

Holds the client-side state that must survive between runs:
- `ai_config`         LLM key, model, base url, feature toggles
- `folder_config`     root folder name and last verification timestamp
- `learned_patterns`  corrections recorded by the learning store

The whole store is one JSON object in `<ROUTER_HOME>/storage.json`.
"""

from __future__ import annotations

import json
import logging
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..core.errors import ConfigError

logger = logging.getLogger(__name__)

STORAGE_FILENAME = "storage.json"

AI_CONFIG_KEY = "ai_config"
FOLDER_CONFIG_KEY = "folder_config"
LEARNED_PATTERNS_KEY = "learned_patterns"


class LocalStorage:
    """Persistent string-keyed store; values are any JSON-serializable object."""

    def __init__(self, directory: Path) -> None:
        self.directory = Path(directory)
        self.path = self.directory / STORAGE_FILENAME
        self._lock = threading.Lock()

    def _read(self, strict: bool = False) -> Dict[str, Any]:
        """
        Whole store as a dict.

        An unreadable file reads as empty, unless `strict`: writers must not
        replace a file they could not parse, so they get a ConfigError.
        """
        if not self.path.exists():
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (json.JSONDecodeError, OSError) as exc:
            if strict:
                raise ConfigError(
                    f"Storage file '{self.path}' is unreadable ({exc}); "
                    "fix or remove it before saving settings."
                ) from exc
            logger.warning("Ignoring unreadable storage file %s: %s", self.path, exc)
            return {}
        if not isinstance(data, dict):
            if strict:
                raise ConfigError(f"Storage file '{self.path}' does not hold a JSON object.")
            logger.warning("Ignoring storage file %s: top-level value is not an object", self.path)
            return {}
        return data

    def _write(self, data: Dict[str, Any]) -> None:
        # Write a sibling temp file, then replace: readers see the old or the new store.
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(json.dumps(data, indent=2, ensure_ascii=False), encoding="utf-8")
            tmp_path.replace(self.path)
        except OSError as exc:
            tmp_path.unlink(missing_ok=True)
            raise ConfigError(f"Failed to write storage file '{self.path}': {exc}") from exc

    def get(self, key: str, default: Optional[Any] = None) -> Any:
        with self._lock:
            return self._read().get(key, default)

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            data = self._read(strict=True)
            data[key] = value
            self._write(data)

    def remove(self, key: str) -> None:
        with self._lock:
            data = self._read(strict=True)
            if key in data:
                del data[key]
                self._write(data)

    def keys(self) -> List[str]:
        with self._lock:
            return sorted(self._read().keys())

    def size(self) -> int:
        """Approximate size in characters (keys + serialized values)."""
        with self._lock:
            data = self._read()
        return sum(len(k) + len(json.dumps(v)) for k, v in data.items())
