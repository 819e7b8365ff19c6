"""
Environment and configuration helpers for the project-folder router.

Responsible for:
- Loading environment variables from a .env file.
- Resolving the LLM settings (key, model, base url) from the environment and
  the `ai_config` storage entry, in that order of precedence.
- Providing the Graph access token, backend URL and storage directory.
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
import os
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

from dotenv import load_dotenv

from ..core.errors import ConfigError, MissingApiKeyError, MissingDriveTokenError
from .storage import AI_CONFIG_KEY, FOLDER_CONFIG_KEY, LocalStorage

logger = logging.getLogger(__name__)

# Names of the env vars read by the tool.
LLM_API_KEY_ENV_VAR = "OPENAI_API_KEY"
LLM_MODEL_ENV_VAR = "ROUTER_LLM_MODEL"
LLM_BASE_URL_ENV_VAR = "ROUTER_LLM_BASE_URL"
GRAPH_TOKEN_ENV_VAR = "GRAPH_ACCESS_TOKEN"
API_URL_ENV_VAR = "ROUTER_API_URL"
HOME_ENV_VAR = "ROUTER_HOME"
HTTP_TIMEOUT_ENV_VAR = "ROUTER_HTTP_TIMEOUT"

DEFAULT_MODEL = "gpt-4o-mini"
DEFAULT_HOME = Path("~/.commesse-router")

# Load from a .env in the current working directory or its parents.
# This is called once at import time.
load_dotenv()

# ---------------------------------------------------------------------------
# Stored configuration
# ---------------------------------------------------------------------------

@dataclass
class AiConfig:
    """LLM settings as kept under the `ai_config` storage key."""

    api_key: Optional[str] = None
    model: str = DEFAULT_MODEL
    base_url: Optional[str] = None
    auto_routing: bool = True
    learning: bool = True

    def to_storage(self) -> Dict[str, Any]:
        return {
            "apiKey": self.api_key,
            "model": self.model,
            "baseUrl": self.base_url,
            "features": {"autoRouting": self.auto_routing, "learning": self.learning},
        }

    @classmethod
    def from_storage(cls, data: Dict[str, Any]) -> "AiConfig":
        features = data.get("features") or {}
        return cls(
            api_key=data.get("apiKey") or None,
            model=data.get("model") or DEFAULT_MODEL,
            base_url=data.get("baseUrl") or None,
            auto_routing=bool(features.get("autoRouting", True)),
            learning=bool(features.get("learning", True)),
        )


@dataclass
class FolderConfig:
    """Root folder bookkeeping kept under the `folder_config` storage key."""

    root_path: Optional[str] = None
    root_name: Optional[str] = None
    verified_at: Optional[str] = None


def _decode_ai_config(raw: Any) -> Dict[str, Any]:
    """
    Accept `ai_config` as a dict, a JSON string or a base64-encoded JSON string.
    """
    if isinstance(raw, dict):
        return raw
    if not isinstance(raw, str):
        raise ConfigError(f"Unsupported ai_config value of type {type(raw).__name__}")

    text = raw.strip()
    if not text.startswith("{"):
        try:
            text = base64.b64decode(text, validate=True).decode("utf-8")
        except (binascii.Error, UnicodeDecodeError):
            logger.warning("ai_config is not base64; trying it as JSON")

    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ConfigError(f"ai_config is not valid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError("ai_config must decode to a JSON object")
    return data


def load_stored_ai_config(storage: LocalStorage) -> AiConfig:
    """The `ai_config` entry alone, without environment overrides."""
    raw = storage.get(AI_CONFIG_KEY)
    return AiConfig.from_storage(_decode_ai_config(raw)) if raw else AiConfig()


def load_ai_config(storage: LocalStorage) -> AiConfig:
    """
    Resolve the effective LLM configuration.

    Environment variables override the stored `ai_config` entry, which
    overrides the defaults.
    """
    config = load_stored_ai_config(storage)

    env_key = os.getenv(LLM_API_KEY_ENV_VAR)
    if env_key:
        config.api_key = env_key
    env_model = os.getenv(LLM_MODEL_ENV_VAR)
    if env_model:
        config.model = env_model
    env_base_url = os.getenv(LLM_BASE_URL_ENV_VAR)
    if env_base_url:
        config.base_url = env_base_url
    return config


def save_ai_config(storage: LocalStorage, config: AiConfig) -> None:
    storage.set(AI_CONFIG_KEY, config.to_storage())


def load_folder_config(storage: LocalStorage) -> FolderConfig:
    data = storage.get(FOLDER_CONFIG_KEY) or {}
    if not isinstance(data, dict):
        raise ConfigError("folder_config must be a JSON object")
    return FolderConfig(
        root_path=data.get("rootPath"),
        root_name=data.get("rootName"),
        verified_at=data.get("verifiedAt"),
    )


def mark_folder_verified(storage: LocalStorage, root: Path) -> FolderConfig:
    """Remember the last root folder used, with a UTC verification timestamp."""
    config = FolderConfig(
        root_path=str(root),
        root_name=root.name,
        verified_at=datetime.now(timezone.utc).isoformat(),
    )
    storage.set(
        FOLDER_CONFIG_KEY,
        {"rootPath": config.root_path, "rootName": config.root_name, "verifiedAt": config.verified_at},
    )
    return config


# ---------------------------------------------------------------------------
# Public helpers
# ---------------------------------------------------------------------------

def get_router_home() -> Path:
    """Directory holding the local storage file."""
    return Path(os.getenv(HOME_ENV_VAR) or DEFAULT_HOME).expanduser()


def get_llm_api_key(config: AiConfig) -> str:
    """
    Return the LLM API key, raising MissingApiKeyError if it is not set.
    """
    if not config.api_key:
        raise MissingApiKeyError(
            f"{LLM_API_KEY_ENV_VAR} not set. "
            "Set it in your environment, in a .env file, or with `config set --api-key`."
        )
    return config.api_key


def is_llm_key_present(config: AiConfig) -> bool:
    return bool(config.api_key)


def get_graph_token() -> str:
    token = os.getenv(GRAPH_TOKEN_ENV_VAR)
    if not token:
        raise MissingDriveTokenError(
            f"{GRAPH_TOKEN_ENV_VAR} not set. OneDrive features are not connected."
        )
    return token


def get_api_url() -> Optional[str]:
    """Backend base URL for audit records, or None when auditing is off."""
    url = os.getenv(API_URL_ENV_VAR)
    return url.rstrip("/") if url else None


def get_http_timeout() -> Optional[float]:
    """Explicit HTTP timeout in seconds; None keeps the client default."""
    raw = os.getenv(HTTP_TIMEOUT_ENV_VAR)
    if not raw:
        return None
    try:
        return float(raw)
    except ValueError as exc:
        raise ConfigError(f"{HTTP_TIMEOUT_ENV_VAR} must be a number, got {raw!r}") from exc


def mask_secret(secret: Optional[str]) -> str:
    """Show only the last four characters of a key."""
    if not secret:
        return "not set"
    if len(secret) <= 4:
        return "****"
    return f"****{secret[-4:]}"


def describe_ai_config(config: AiConfig) -> Dict[str, Any]:
    """AiConfig as a dict with the key masked, for display."""
    data = asdict(config)
    data["api_key"] = mask_secret(config.api_key)
    return data
