"""Pytest configuration and fixtures for commesse-router tests"""

from datetime import datetime, timezone
from types import SimpleNamespace
from typing import Dict, List, Optional

import pytest

from commesse_router.core.errors import DriveError, DriveItemNotFoundError
from commesse_router.core.learning import LearningStore
from commesse_router.core.models import FileDescriptor
from commesse_router.core.session import RoutingSession
from commesse_router.utils.env import AiConfig
from commesse_router.utils.storage import LocalStorage

ROUTER_ENV_VARS = (
    "OPENAI_API_KEY",
    "ROUTER_LLM_MODEL",
    "ROUTER_LLM_BASE_URL",
    "GRAPH_ACCESS_TOKEN",
    "ROUTER_API_URL",
    "ROUTER_HTTP_TIMEOUT",
)


@pytest.fixture(autouse=True)
def router_home(tmp_path, monkeypatch):
    """Isolate every test from the user's storage and environment"""
    for name in ROUTER_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    home = tmp_path / "router-home"
    monkeypatch.setenv("ROUTER_HOME", str(home))
    return home


@pytest.fixture
def storage(router_home):
    return LocalStorage(router_home)


# ---------------------------------------------------------------------------
# LLM fake
# ---------------------------------------------------------------------------

class FakeLLM:
    """Stands in for openai.OpenAI: only chat.completions.create is used.

    A reply that is an exception is raised for that call only.
    """

    def __init__(self, replies: Optional[List[str]] = None, error: Optional[Exception] = None):
        self.replies = list(replies or [])
        self.error = error
        self.calls: List[dict] = []
        self.chat = SimpleNamespace(completions=SimpleNamespace(create=self._create))

    def _create(self, **kwargs):
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        text = self.replies.pop(0) if self.replies else "{}"
        if isinstance(text, Exception):
            raise text
        return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=text))])


@pytest.fixture
def fake_llm():
    return FakeLLM()


@pytest.fixture
def session(storage, fake_llm):
    """A session with an API key and the fake LLM already attached"""
    return RoutingSession(
        storage=storage,
        ai_config=AiConfig(api_key="sk-test"),
        learning=LearningStore(storage),
        llm=fake_llm,
    )


# ---------------------------------------------------------------------------
# OneDrive fake
# ---------------------------------------------------------------------------

class FakeDrive:
    """
    In-memory drive with the DriveClient methods used by scanner and executor.

    `tree` maps a folder path ("/" or "/A/B") to its child items (Graph
    driveItem dicts). Paths in `fail` raise the mapped DriveError on listing.
    """

    def __init__(self, tree: Dict[str, List[dict]], fail: Optional[Dict[str, DriveError]] = None):
        self.tree = tree
        self.fail = fail or {}
        self.listed: List[str] = []
        self.renamed: List[tuple] = []
        self.moved: List[tuple] = []
        self.contents: Dict[str, bytes] = {}
        self.rename_error: Optional[DriveError] = None
        self.move_error: Optional[DriveError] = None
        self.download_error: Optional[DriveError] = None
        self.ensured: List[str] = []
        self.ensure_error: Optional[DriveError] = None

    def list_children(self, folder_path):
        self.listed.append(folder_path)
        if folder_path in self.fail:
            raise self.fail[folder_path]
        if folder_path not in self.tree:
            raise DriveItemNotFoundError(f"Not found: {folder_path}", status_code=404)
        return self.tree[folder_path]

    def rename_item(self, item_id, new_name, drive_id=None):
        if self.rename_error is not None:
            raise self.rename_error
        self.renamed.append((item_id, new_name))
        return {"id": item_id, "name": new_name}

    def move_item(self, item_id, target_folder_path, new_name=None, drive_id=None):
        if self.move_error is not None:
            raise self.move_error
        self.moved.append((item_id, target_folder_path))
        return {"name": new_name or f"{item_id}.pdf", "path": target_folder_path, "parent_folder_id": "F"}

    def ensure_folder(self, folder_path):
        if self.ensure_error is not None:
            raise self.ensure_error
        self.ensured.append(folder_path)
        return f"id:{folder_path}"

    def download_content(self, item_id, drive_id=None):
        if self.download_error is not None:
            raise self.download_error
        return self.contents.get(item_id, b"remote-bytes")


def drive_file(item_id, name, size=100):
    return {
        "id": item_id,
        "name": name,
        "size": size,
        "lastModifiedDateTime": "2025-03-01T10:00:00Z",
        "file": {"mimeType": "application/pdf"},
        "parentReference": {"driveId": "drive-1"},
    }


def drive_folder(item_id, name):
    return {"id": item_id, "name": name, "folder": {"childCount": 1}}


@pytest.fixture
def make_file():
    """Factory for FileDescriptor objects"""

    def _make(name, parent_path="", size=100, **kwargs):
        defaults = {
            "id": f"{parent_path}/{name}" if parent_path else name,
            "last_modified": datetime(2025, 1, 1, tzinfo=timezone.utc),
        }
        defaults.update(kwargs)
        return FileDescriptor(name=name, size=size, parent_path=parent_path, **defaults)

    return _make
