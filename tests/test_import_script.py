from __future__ import annotations

import json
from pathlib import Path

import pytest

from scripts.import_trip_export import main


@pytest.fixture()
def export_file(tmp_path: Path) -> Path:
    path = tmp_path / "export.csv"
    path.write_text("Trip Id,Date,Driver,DOB\nT1,01/15/2026,Driver A,01/01/1980\n", encoding="utf-8")
    return path


def test_import_prints_result(export_file: Path, capsys: pytest.CaptureFixture[str]) -> None:
    exit_code = main([str(export_file), "--opco-id", "SAHRAWI", "--broker-id", "MODIVCARE"])

    payload = json.loads(capsys.readouterr().out)
    assert exit_code == 0
    assert payload["imported_rows"] == 1
    assert payload["broker_account_id"] == "MODIVCARE_SAHRAWI"
    assert payload["ignored_columns"] == ["DOB"]


def test_preview_flag(export_file: Path, capsys: pytest.CaptureFixture[str]) -> None:
    exit_code = main([str(export_file), "--preview"])

    payload = json.loads(capsys.readouterr().out)
    assert exit_code == 0
    assert payload["total_rows"] == 1
    assert payload["sample_rows"][0]["DOB"] == "[IGNORED - not in allowlist]"


def test_unreadable_file(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    path = tmp_path / "empty.csv"
    path.write_bytes(b"")

    assert main([str(path)]) == 2
    assert "File is empty." in capsys.readouterr().err


def test_missing_file(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    path = tmp_path / "missing.csv"

    assert main([str(path)]) == 2
    assert "Cannot read" in capsys.readouterr().err


def test_directory_path(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    assert main([str(tmp_path)]) == 2
    assert "Cannot read" in capsys.readouterr().err
