"""Tests for project folder creation"""

import pytest

from commesse_router.core.errors import ConfigError, DrivePermissionError, ExecutionError, ValidationError
from commesse_router.core.structure import (
    create_drive_structure,
    create_project_structure,
    find_project_folder,
    project_folder_name,
)
from commesse_router.core.templates import available_folders

from conftest import FakeDrive


def test_project_folder_name_is_sanitized():
    assert project_folder_name("25ABC123", "Villa Rossi") == "25ABC123_Villa Rossi"
    assert project_folder_name(" 25ABC123 ", 'Scuola: ala "B" / palestra') == "25ABC123_Scuola_ ala _B_ _ palestra"
    assert project_folder_name("25ABC123", "x" * 80) == "25ABC123_" + "x" * 50


@pytest.mark.parametrize("code, name", [("", "Villa"), ("25ABC123", ""), ("25ABC123", "///")])
def test_project_folder_name_requires_code_and_name(code, name):
    with pytest.raises(ValidationError):
        project_folder_name(code, name)


def test_create_builds_whole_template_tree(tmp_path):
    result = create_project_structure(tmp_path, "25ABC123", "Villa Rossi", "breve")

    project = tmp_path / "25ABC123_Villa Rossi"
    assert project.is_dir()
    for folder in available_folders("BREVE"):
        assert (project / folder).is_dir()
    assert result.template == "BREVE"
    assert result.created[0] == "25ABC123_Villa Rossi"
    assert len(result.created) == len(available_folders("BREVE")) + 1
    assert result.existing == []


def test_create_keeps_existing_folders_and_files(tmp_path):
    project = tmp_path / "25ABC123_Villa Rossi"
    (project / "3_PROGETTO" / "ARC").mkdir(parents=True)
    (project / "3_PROGETTO" / "ARC" / "pianta.dwg").write_bytes(b"dwg")

    result = create_project_structure(tmp_path, "25ABC123", "Villa Rossi", "LUNGO")

    assert (project / "3_PROGETTO" / "ARC" / "pianta.dwg").read_bytes() == b"dwg"
    assert "25ABC123_Villa Rossi/3_PROGETTO/ARC" in result.existing
    assert "25ABC123_Villa Rossi/3_PROGETTO/REL" in result.created
    assert len(result.created) + len(result.existing) == len(available_folders("LUNGO")) + 1


def test_create_reuses_folder_of_same_project_code(tmp_path):
    (tmp_path / "25ABC123_Nome vecchio").mkdir()
    (tmp_path / "25ABC1234_Altro").mkdir()

    result = create_project_structure(tmp_path, "25ABC123", "Nome nuovo", "BREVE")

    assert result.project_path == "25ABC123_Nome vecchio"
    assert not (tmp_path / "25ABC123_Nome nuovo").exists()
    assert (tmp_path / "25ABC123_Nome vecchio" / "CONSEGNA").is_dir()


def test_find_project_folder(tmp_path):
    (tmp_path / "25ABC1234_Altro").mkdir()
    assert find_project_folder(tmp_path, "25ABC123") is None

    (tmp_path / "25ABC123_Villa").mkdir()
    assert find_project_folder(tmp_path, "25ABC123") == tmp_path / "25ABC123_Villa"


def test_create_unknown_template(tmp_path):
    with pytest.raises(ConfigError):
        create_project_structure(tmp_path, "25ABC123", "Villa", "MEDIO")
    assert list(tmp_path.iterdir()) == []


def test_file_in_the_way_is_an_execution_error(tmp_path):
    project = tmp_path / "25ABC123_Villa"
    project.mkdir()
    (project / "CONSEGNA").write_text("not a folder")

    with pytest.raises(ExecutionError):
        create_project_structure(tmp_path, "25ABC123", "Villa", "BREVE")


def test_create_drive_structure_ensures_every_folder_in_order():
    drive = FakeDrive({})

    result = create_drive_structure(drive, "/Commesse", "25ABC123", "Villa", "BREVE")

    assert drive.ensured == [
        "/Commesse/25ABC123_Villa",
        "/Commesse/25ABC123_Villa/CONSEGNA",
        "/Commesse/25ABC123_Villa/ELABORAZIONI",
        "/Commesse/25ABC123_Villa/MATERIALE_RICEVUTO",
        "/Commesse/25ABC123_Villa/SOPRALLUOGHI",
    ]
    assert result.created == drive.ensured


def test_create_drive_structure_wraps_drive_errors():
    drive = FakeDrive({})
    drive.ensure_error = DrivePermissionError("denied", status_code=403)

    with pytest.raises(ExecutionError):
        create_drive_structure(drive, "/Commesse", "25ABC123", "Villa", "BREVE")
