"""
Audit records for routed files.

After a file has been moved, one FileRoutingRecord is posted to
`{ROUTER_API_URL}/api/file-routings`. The records are write-only; a failed
post is logged and never affects the move itself.
"""

from __future__ import annotations

import logging
from typing import Optional

import requests

from .models import FileRoutingRecord, RoutingSuggestion

logger = logging.getLogger(__name__)

FILE_ROUTINGS_ENDPOINT = "/api/file-routings"


def build_record(
    suggestion: RoutingSuggestion,
    actual_path: Optional[str],
    project_id: Optional[str],
    method: Optional[str] = None,
) -> FileRoutingRecord:
    return FileRoutingRecord(
        project_id=project_id,
        file_name=suggestion.file.name,
        file_type=suggestion.file.mime_type or None,
        suggested_path=suggestion.suggested_path,
        actual_path=actual_path,
        confidence=int(round(suggestion.confidence * 100)),
        method=method or suggestion.method,
    )


class AuditClient:
    def __init__(
        self,
        api_url: str,
        *,
        session: Optional[requests.Session] = None,
        timeout: Optional[float] = None,
    ) -> None:
        self.api_url = api_url.rstrip("/")
        self.session = session or requests.Session()
        self.timeout = timeout

    def record_routing(self, record: FileRoutingRecord) -> bool:
        """Post one record; returns False (after logging) on any failure."""
        url = f"{self.api_url}{FILE_ROUTINGS_ENDPOINT}"
        try:
            response = self.session.post(url, json=record.to_payload(), timeout=self.timeout)
            response.raise_for_status()
        except requests.RequestException as exc:
            logger.warning("Could not save routing record for %s: %s", record.file_name, exc)
            return False
        return True
