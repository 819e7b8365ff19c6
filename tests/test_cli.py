"""CLI flow tests using Typer's CliRunner"""

import pytest
from typer.testing import CliRunner

from commesse_router.cli import app
from commesse_router.core.learning import LearningStore
from commesse_router.utils.storage import LocalStorage

runner = CliRunner()


@pytest.fixture
def commessa(tmp_path):
    root = tmp_path / "commessa"
    root.mkdir()
    (root / "Pianta_piano_terra.dwg").write_bytes(b"dwg")
    (root / "documento.pdf").write_bytes(b"pdf")
    return root


def test_version():
    result = runner.invoke(app, ["version"])

    assert result.exit_code == 0
    assert "commesse-router" in result.output
    assert "not set" in result.output


def test_templates():
    result = runner.invoke(app, ["templates", "BREVE"])

    assert result.exit_code == 0
    assert "ELABORAZIONI" in result.output


def test_templates_unknown_key():
    result = runner.invoke(app, ["templates", "MEDIO"])

    assert result.exit_code == 1


def test_scan_missing_path(tmp_path):
    result = runner.invoke(app, ["scan", str(tmp_path / "nope")])

    assert result.exit_code == 1
    assert "Path not found" in result.output


def test_scan_empty_folder(tmp_path):
    empty = tmp_path / "empty"
    empty.mkdir()

    result = runner.invoke(app, ["scan", str(empty)])

    assert result.exit_code == 0
    assert "No files found" in result.output


def test_scan_lists_files(commessa):
    result = runner.invoke(app, ["scan", str(commessa)])

    assert result.exit_code == 0
    assert "Total files: 2" in result.output


def test_scan_remote_without_token():
    result = runner.invoke(app, ["scan", "--remote", "/Commesse"])

    assert result.exit_code == 1
    assert "not configured" in result.output


def test_rename_with_confirmation(commessa):
    result = runner.invoke(app, ["rename", str(commessa), "--code", "25ABC123"], input="y\n")

    assert result.exit_code == 0
    assert (commessa / "25ABC123_documento.pdf").exists()
    assert (commessa / "25ABC123_Pianta_piano_terra.dwg").exists()
    assert "Renamed in place: 2" in result.output


def test_rename_declined(commessa):
    result = runner.invoke(app, ["rename", str(commessa), "--code", "25ABC123"], input="n\n")

    assert result.exit_code == 0
    assert "No changes applied" in result.output
    assert (commessa / "documento.pdf").exists()


def test_rename_requires_code(commessa):
    result = runner.invoke(app, ["rename", str(commessa), "--code", "  "])

    assert result.exit_code == 1


def test_route_without_llm_key_uses_rules_and_fallback(commessa):
    result = runner.invoke(app, ["route", str(commessa), "--template", "LUNGO", "--yes"])

    assert result.exit_code == 0
    assert (commessa / "3_PROGETTO" / "ARC" / "Pianta_piano_terra.dwg").exists()
    assert (commessa / "MATERIALE_RICEVUTO" / "documento.pdf").exists()
    assert "Moved in place: 2" in result.output


def test_route_dry_run_moves_nothing(commessa):
    result = runner.invoke(app, ["route", str(commessa), "-t", "breve", "--dry-run"])

    assert result.exit_code == 0
    assert (commessa / "documento.pdf").exists()


def test_route_unknown_template(commessa):
    result = runner.invoke(app, ["route", str(commessa), "--template", "MEDIO"])

    assert result.exit_code == 1


def test_route_review_override_is_learned(commessa, router_home):
    # Scan order is by name: Pianta_piano_terra.dwg, then documento.pdf.
    result = runner.invoke(
        app,
        ["route", str(commessa), "--template", "LUNGO", "--review", "--yes"],
        input="\n2_PERMIT\n",
    )

    assert result.exit_code == 0
    assert (commessa / "2_PERMIT" / "documento.pdf").exists()
    learned = LearningStore(LocalStorage(router_home)).lookup("documento.pdf")
    assert learned.path == "2_PERMIT/"


def test_learn_and_patterns(router_home):
    result = runner.invoke(app, ["learn", "Fattura_gennaio.pdf", "9_PARCELLA", "--template", "LUNGO"])
    assert result.exit_code == 0

    listed = runner.invoke(app, ["patterns", "list"])
    assert listed.exit_code == 0
    assert "9_PARCELLA/" in listed.output

    cleared = runner.invoke(app, ["patterns", "clear", "--yes"])
    assert cleared.exit_code == 0
    assert LearningStore(LocalStorage(router_home)).patterns() == []


def test_learn_rejects_folder_outside_template():
    result = runner.invoke(app, ["learn", "a.pdf", "NOWHERE", "--template", "BREVE"])

    assert result.exit_code == 1


def test_config_set_and_show(router_home):
    result = runner.invoke(app, ["config", "set", "--api-key", "sk-secret-9876", "--model", "gpt-4o", "--no-learning"])
    assert result.exit_code == 0

    shown = runner.invoke(app, ["config", "show"])
    assert shown.exit_code == 0
    assert "****9876" in shown.output
    assert "sk-secret-9876" not in shown.output


def test_config_test_without_key():
    result = runner.invoke(app, ["config", "test"])

    assert result.exit_code == 1
    assert "not configured" in result.output


def test_create_project_tree(tmp_path):
    base = tmp_path / "commesse"
    base.mkdir()

    result = runner.invoke(
        app, ["create", str(base), "--code", "25ABC123", "--name", "Villa Rossi", "--template", "LUNGO"]
    )

    assert result.exit_code == 0
    assert (base / "25ABC123_Villa Rossi" / "5_CANTIERE" / "IMPRESA" / "CONTRATTO").is_dir()
    assert "already present" in result.output

    again = runner.invoke(app, ["create", str(base), "-c", "25ABC123", "-n", "Villa Rossi", "-t", "LUNGO"])
    assert again.exit_code == 0
    assert "0 folders created" in again.output


def test_create_rejects_unknown_template_and_missing_root(tmp_path):
    base = tmp_path / "commesse"
    base.mkdir()

    bad_template = runner.invoke(app, ["create", str(base), "-c", "25ABC123", "-n", "Villa", "-t", "MEDIO"])
    missing_root = runner.invoke(app, ["create", str(base / "nope"), "-c", "25ABC123", "-n", "Villa", "-t", "BREVE"])

    assert bad_template.exit_code == 1
    assert missing_root.exit_code == 1
    assert list(base.iterdir()) == []


def test_learn_with_corrupt_storage_reports_error(router_home):
    router_home.mkdir(parents=True)
    (router_home / "storage.json").write_text('{"learned_patterns": {')

    result = runner.invoke(app, ["learn", "Fattura_gennaio.pdf", "9_PARCELLA"])

    assert result.exit_code == 1
    assert "unreadable" in result.output
    assert (router_home / "storage.json").read_text() == '{"learned_patterns": {'
