"""Tests for bootstrapping a blank store workbook."""

from __future__ import annotations

from pathlib import Path

import openpyxl
import pytest

from pos_promotions import data_manager, setup_workbook


def _write_config(directory: Path, data_file: str = "store.xlsx") -> Path:
    config_path = directory / "config.ini"
    config_path.write_text(
        f"[System]\nDataFile = {data_file}\nStoreName = Corner Shop\nSchemaVersion = 2.0.0\n",
        encoding="utf-8",
    )
    return config_path


def test_create_master_workbook_writes_bold_headers(tmp_path):
    destination = setup_workbook.create_master_workbook(tmp_path / "store.xlsx")

    workbook = openpyxl.load_workbook(destination)
    assert workbook.sheetnames == list(setup_workbook.SHEET_COLUMNS)
    for sheet_name, columns in setup_workbook.SHEET_COLUMNS.items():
        header = [cell for cell in workbook[sheet_name][1]]
        assert [cell.value for cell in header] == list(columns)
        assert all(cell.font.bold for cell in header)


def test_create_master_workbook_seeds_default_settings(tmp_path):
    destination = setup_workbook.create_master_workbook(tmp_path / "store.xlsx")

    settings = data_manager.read_store_settings(data_manager.open_workbook(destination))

    assert settings.currency == "USD"
    assert settings.invoice_prefix == "INV"
    assert settings.invoice_counter == 1000


def test_create_master_workbook_refuses_overwrite(tmp_path):
    destination = setup_workbook.create_master_workbook(tmp_path / "store.xlsx")

    with pytest.raises(FileExistsError):
        setup_workbook.create_master_workbook(destination)

    assert setup_workbook.create_master_workbook(destination, overwrite=True) == destination


def test_load_settings_resolves_relative_data_file(tmp_path):
    config_path = _write_config(tmp_path, "data/store.xlsx")

    settings = setup_workbook.load_settings(config_path)

    assert settings.data_file == (tmp_path / "data" / "store.xlsx").resolve()
    assert settings.store_name == "Corner Shop"


def test_load_settings_requires_system_section(tmp_path):
    config_path = tmp_path / "config.ini"
    config_path.write_text("[Other]\nvalue = 1\n", encoding="utf-8")

    with pytest.raises(KeyError):
        setup_workbook.load_settings(config_path)


def test_main_creates_workbook_from_config(tmp_path, capsys):
    config_path = _write_config(tmp_path)

    assert setup_workbook.main(["--config", str(config_path)]) == 0
    assert (tmp_path / "store.xlsx").exists()
    assert "[SUCCESS]" in capsys.readouterr().out


def test_main_reports_existing_workbook_without_force(tmp_path, capsys):
    config_path = _write_config(tmp_path)
    setup_workbook.main(["--config", str(config_path)])
    capsys.readouterr()

    assert setup_workbook.main(["--config", str(config_path)]) == 1
    assert "--force" in capsys.readouterr().out
    assert setup_workbook.main(["--config", str(config_path), "--force"]) == 0


def test_main_reports_missing_config(tmp_path, capsys):
    assert setup_workbook.main(["--config", str(tmp_path / "absent.ini")]) == 1
    assert "[ERROR]" in capsys.readouterr().out
