"""Tests for local storage, AI configuration and path helpers"""

import base64
import json
from pathlib import Path

import pytest

from commesse_router.core.errors import ConfigError, InvalidPathError, MissingApiKeyError, MissingDriveTokenError
from commesse_router.core.templates import available_folders, find_closest_folder, get_template
from commesse_router.utils import env
from commesse_router.utils.paths import join_drive_path, validate_drive_path
from commesse_router.utils.storage import AI_CONFIG_KEY, LocalStorage


# ---------------------------------------------------------------------------
# Storage
# ---------------------------------------------------------------------------

def test_storage_round_trip(router_home):
    LocalStorage(router_home).set("folder_config", {"rootName": "25ABC123"})

    reopened = LocalStorage(router_home)
    assert reopened.get("folder_config") == {"rootName": "25ABC123"}
    assert reopened.keys() == ["folder_config"]

    reopened.remove("folder_config")
    assert reopened.get("folder_config") is None


def test_corrupt_storage_reads_as_empty_but_is_not_overwritten(router_home):
    router_home.mkdir(parents=True)
    corrupt = '{"ai_config": {"apiKey": "sk-keep"}, "learned_pat'
    (router_home / "storage.json").write_text(corrupt)

    storage = LocalStorage(router_home)
    assert storage.get("ai_config") is None

    with pytest.raises(ConfigError):
        storage.set("folder_config", {"rootName": "25ABC123"})
    with pytest.raises(ConfigError):
        storage.remove("ai_config")
    assert (router_home / "storage.json").read_text() == corrupt


def test_set_keeps_other_keys_and_leaves_no_temp_file(router_home):
    storage = LocalStorage(router_home)
    storage.set("ai_config", {"apiKey": "sk-keep"})
    storage.set("learned_patterns", {"pdf:fattura": "9_PARCELLA/"})

    storage.set("folder_config", {"rootName": "25ABC123"})

    assert storage.keys() == ["ai_config", "folder_config", "learned_patterns"]
    assert [p.name for p in router_home.iterdir()] == ["storage.json"]


def test_failed_write_keeps_previous_store(router_home, monkeypatch):
    storage = LocalStorage(router_home)
    storage.set("ai_config", {"apiKey": "sk-keep"})

    def broken_replace(self, target):
        raise OSError("disk full")

    monkeypatch.setattr(Path, "replace", broken_replace)
    with pytest.raises(ConfigError):
        storage.set("folder_config", {"rootName": "25ABC123"})

    assert LocalStorage(router_home).get("ai_config") == {"apiKey": "sk-keep"}
    assert not (router_home / "storage.json.tmp").exists()


# ---------------------------------------------------------------------------
# AI configuration
# ---------------------------------------------------------------------------

def test_defaults_without_config(storage):
    config = env.load_ai_config(storage)

    assert config.api_key is None
    assert config.model == env.DEFAULT_MODEL
    assert config.auto_routing and config.learning


def test_stored_config_as_base64_json(storage):
    raw = {"apiKey": "sk-stored", "model": "deepseek-chat", "features": {"learning": False}}
    storage.set(AI_CONFIG_KEY, base64.b64encode(json.dumps(raw).encode()).decode())

    config = env.load_ai_config(storage)

    assert config.api_key == "sk-stored"
    assert config.model == "deepseek-chat"
    assert config.learning is False
    assert config.auto_routing is True


def test_stored_config_as_json_string(storage):
    storage.set(AI_CONFIG_KEY, json.dumps({"apiKey": "sk-json"}))

    assert env.load_ai_config(storage).api_key == "sk-json"


def test_environment_overrides_storage(storage, monkeypatch):
    env.save_ai_config(storage, env.AiConfig(api_key="sk-stored", model="gpt-4o"))
    monkeypatch.setenv("OPENAI_API_KEY", "sk-env")
    monkeypatch.setenv("ROUTER_LLM_BASE_URL", "https://api.deepseek.com")

    config = env.load_ai_config(storage)

    assert config.api_key == "sk-env"
    assert config.model == "gpt-4o"
    assert config.base_url == "https://api.deepseek.com"
    assert env.load_stored_ai_config(storage).api_key == "sk-stored"


def test_invalid_ai_config_raises(storage):
    storage.set(AI_CONFIG_KEY, "!!!not-config!!!")

    with pytest.raises(ConfigError):
        env.load_ai_config(storage)


def test_missing_secrets_raise(monkeypatch):
    with pytest.raises(MissingApiKeyError):
        env.get_llm_api_key(env.AiConfig())
    with pytest.raises(MissingDriveTokenError):
        env.get_graph_token()

    monkeypatch.setenv("GRAPH_ACCESS_TOKEN", "tok")
    assert env.get_graph_token() == "tok"


def test_http_timeout(monkeypatch):
    assert env.get_http_timeout() is None
    monkeypatch.setenv("ROUTER_HTTP_TIMEOUT", "2.5")
    assert env.get_http_timeout() == 2.5
    monkeypatch.setenv("ROUTER_HTTP_TIMEOUT", "soon")
    with pytest.raises(ConfigError):
        env.get_http_timeout()


def test_mask_secret_and_describe():
    assert env.mask_secret(None) == "not set"
    assert env.mask_secret("sk-abcdef1234") == "****1234"
    assert env.describe_ai_config(env.AiConfig(api_key="sk-abcdef1234"))["api_key"] == "****1234"


def test_mark_folder_verified(storage, tmp_path):
    env.mark_folder_verified(storage, tmp_path)

    folder = env.load_folder_config(storage)
    assert folder.root_path == str(tmp_path)
    assert folder.root_name == tmp_path.name
    assert folder.verified_at


# ---------------------------------------------------------------------------
# Paths and templates
# ---------------------------------------------------------------------------

def test_validate_drive_path():
    assert validate_drive_path("Commesse/25ABC123/") == "/Commesse/25ABC123"
    assert validate_drive_path("/") == "/"
    for bad in ("/a/../b", "/a//b", ""):
        with pytest.raises(InvalidPathError):
            validate_drive_path(bad)
    assert join_drive_path("/", "A") == "/A"
    assert join_drive_path("/C", "3_PROGETTO/REL") == "/C/3_PROGETTO/REL"


def test_template_folders():
    lungo = available_folders("lungo")

    assert lungo[:3] == ["1_CONSEGNA", "2_PERMIT", "3_PROGETTO"]
    assert "5_CANTIERE/IMPRESA/CONTRATTO" in lungo
    assert available_folders("BREVE") == ["CONSEGNA", "ELABORAZIONI", "MATERIALE_RICEVUTO", "SOPRALLUOGHI"]
    with pytest.raises(ConfigError):
        get_template("MEDIO")


def test_find_closest_folder():
    folders = available_folders("LUNGO")

    assert find_closest_folder("3_progetto/arc", folders) == "3_PROGETTO/ARC/"
    assert find_closest_folder("VERBALI", folders) == "6_VERBALI_NOTIF_COMUNICAZIONI/"
    assert find_closest_folder("zzz", folders) == "1_CONSEGNA/"
