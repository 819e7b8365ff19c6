"""
Routing session: everything one run needs, passed explicitly.

The session owns the local storage, the resolved AI configuration, the
learning store, and lazily-built clients for OneDrive, the LLM and the audit
backend. One session serves one routing run at a time.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

from openai import OpenAI

from .audit import AuditClient
from .drive import DriveClient
from .learning import LearningStore
from ..utils.env import (
    AiConfig,
    get_api_url,
    get_graph_token,
    get_http_timeout,
    get_llm_api_key,
    get_router_home,
    load_ai_config,
)
from ..utils.storage import LocalStorage

logger = logging.getLogger(__name__)


@dataclass
class RoutingSession:
    storage: LocalStorage
    ai_config: AiConfig
    learning: LearningStore
    drive: Optional[DriveClient] = None
    audit: Optional[AuditClient] = None
    llm: Optional[Any] = None
    http_timeout: Optional[float] = None
    project_id: Optional[str] = None

    @classmethod
    def create(
        cls,
        home: Optional[Path] = None,
        *,
        project_id: Optional[str] = None,
    ) -> "RoutingSession":
        """Build a session from the environment and the local storage directory."""
        storage = LocalStorage(home or get_router_home())
        timeout = get_http_timeout()
        api_url = get_api_url()
        return cls(
            storage=storage,
            ai_config=load_ai_config(storage),
            learning=LearningStore(storage),
            audit=AuditClient(api_url, timeout=timeout) if api_url else None,
            http_timeout=timeout,
            project_id=project_id,
        )

    def get_llm_client(self) -> Any:
        """OpenAI-compatible client; raises MissingApiKeyError without a key."""
        if self.llm is None:
            kwargs = {"api_key": get_llm_api_key(self.ai_config)}
            if self.ai_config.base_url:
                kwargs["base_url"] = self.ai_config.base_url
            if self.http_timeout is not None:
                kwargs["timeout"] = self.http_timeout
            self.llm = OpenAI(**kwargs)
        return self.llm

    def get_drive(self) -> DriveClient:
        """Graph client; raises MissingDriveTokenError without a token."""
        if self.drive is None:
            self.drive = DriveClient(get_graph_token(), timeout=self.http_timeout)
        return self.drive
