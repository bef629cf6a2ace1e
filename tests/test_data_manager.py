"""Unit tests documenting the expected behavior of the data access layer."""

from __future__ import annotations

import configparser
import json
from datetime import UTC
from decimal import Decimal
from pathlib import Path

import openpyxl
from openpyxl.workbook import Workbook as OpenpyxlWorkbook
import pytest

from pos_promotions import constants, data_manager  # noqa: E402
from pos_promotions.setup_workbook import SHEET_COLUMNS


def _sale(sale_id: str = "S1", **overrides: object) -> data_manager.SaleRow:
    values = {
        "sale_id": sale_id,
        "invoice_number": "INV-001001",
        "receipt_number": "INV-001001",
        "timestamp_iso": "2026-03-04T12:00:00+00:00",
        "customer_id": None,
        "customer_name": None,
        "payment_method": constants.PaymentMethod.CASH.value,
        "status": constants.SaleStatus.COMPLETED.value,
        "subtotal": Decimal("1000"),
        "discount_amount": Decimal("200"),
        "tax_amount": Decimal("80"),
        "total": Decimal("880"),
        "items_json": json.dumps([{"product_id": "P1"}]),
        "applied_discounts_json": json.dumps([{"discount_id": "D1"}]),
        "free_gifts_json": "[]",
        "card_type": None,
        "bank_name": None,
        "notes": None,
    }
    values.update(overrides)
    return data_manager.SaleRow(**values)


def test_find_config_file_respects_explicit_path(config_file: Path):
    """Supplying an explicit path should be treated as the winning answer."""

    result = data_manager.find_config_file(config_file)
    assert result == config_file


def test_find_config_file_discovers_in_cwd(tmp_path, monkeypatch):
    """Auto-discovery should locate config.ini in the working directory tree."""

    config_dir = tmp_path / "nested"
    config_dir.mkdir(parents=True)
    config_file = config_dir / "config.ini"
    config_file.write_text("[System]\nDataFile=master_workbook.xlsx")
    monkeypatch.chdir(config_dir)

    result = data_manager.find_config_file()
    assert result == config_file


def test_find_config_file_raises_when_missing(tmp_path, monkeypatch):
    """Absent configuration should surface a clear FileNotFoundError."""

    monkeypatch.chdir(tmp_path)
    with pytest.raises(FileNotFoundError):
        data_manager.find_config_file()


def test_read_config_loads_sections(config_file: Path):
    """read_config should return a populated ConfigParser."""

    parser = data_manager.read_config(config_file)
    assert parser.get("System", "StoreName") == "Test Store"


def test_read_config_missing_file_raises(tmp_path):
    """Missing files should propagate a FileNotFoundError."""

    with pytest.raises(FileNotFoundError):
        data_manager.read_config(tmp_path / "not_there.ini")


def test_parse_settings_resolves_relative_paths(config_factory):
    """Relative DataFile entries should be anchored to the config location."""

    parser = configparser.ConfigParser()
    bundle = config_factory(make_relative=True)
    parser.read(bundle.config_path)
    settings = data_manager.parse_settings(parser, base_path=bundle.config_path.parent)
    assert settings.data_file == (bundle.config_path.parent / bundle.workbook_path.name).resolve()
    assert settings.store_name == "Test Store"
    assert settings.schema_version == constants.EXPECTED_SCHEMA_VERSION


def test_parse_settings_requires_expected_sections(tmp_path):
    """Missing keys should result in a descriptive KeyError."""

    parser = configparser.ConfigParser()
    parser.read_string("[Other]\nvalue=1")
    with pytest.raises(KeyError):
        data_manager.parse_settings(parser, base_path=tmp_path)


def test_open_workbook_returns_openpyxl_instance(master_workbook_path):
    """open_workbook should hand back a loaded Workbook object."""

    workbook = data_manager.open_workbook(master_workbook_path)
    assert isinstance(workbook, OpenpyxlWorkbook)


def test_open_workbook_missing_file_raises(tmp_path):
    """Missing workbook files should yield FileNotFoundError."""

    with pytest.raises(FileNotFoundError):
        data_manager.open_workbook(tmp_path / "missing.xlsx")


def test_save_workbook_with_destination_creates_copy(master_workbook_path, tmp_path):
    """Providing a destination should create a new file independent of the source."""

    workbook = data_manager.open_workbook(master_workbook_path)
    workbook[constants.SheetName.CUSTOMERS.value].append(["C2", "Jordan", "VIP", 0, 0, 0])
    copy_path = tmp_path / "nested" / "copy.xlsx"
    data_manager.save_workbook(workbook, destination=copy_path)

    copy = openpyxl.load_workbook(copy_path)
    rows = list(copy[constants.SheetName.CUSTOMERS.value].iter_rows(min_row=2, values_only=True))
    assert ("C2", "Jordan", "VIP", 0, 0, 0) in rows


def test_refresh_workbook_discards_unsaved_changes(master_workbook_path):
    """refresh_workbook should return a freshly loaded workbook from disk."""

    original = data_manager.open_workbook(master_workbook_path)
    original[constants.SheetName.PRODUCTS.value].append(["P200", "Bars", 4, 0, False, "piece", "", True])

    refreshed = data_manager.refresh_workbook(master_workbook_path)
    assert refreshed is not original
    assert list(data_manager.iter_products(refreshed)) == []


def test_append_and_iter_products_round_trip(master_workbook_path):
    """Products written through the DAL should read back as equal rows."""

    workbook = data_manager.open_workbook(master_workbook_path)
    record = data_manager.ProductRow(
        product_id="W1",
        product_name="Rice",
        price=Decimal("0"),
        price_per_unit=Decimal("2.5"),
        is_weight_based=True,
        unit="kg",
        category="Grocery",
        is_active=False,
    )
    data_manager.append_product(workbook, record)
    data_manager.save_workbook(workbook, master_workbook_path)

    rows = list(data_manager.iter_products(data_manager.open_workbook(master_workbook_path)))
    assert rows == [record]


def test_iter_products_coerces_numeric_ids(master_workbook_path):
    """Identifiers typed as numbers in Excel should still be strings."""

    workbook = data_manager.open_workbook(master_workbook_path)
    workbook[constants.SheetName.PRODUCTS.value].append([1001, "Soda", "5.00", None, None, None, None, True])

    rows = list(data_manager.iter_products(workbook))
    assert rows[0].product_id == "1001"
    assert rows[0].price == Decimal("5.00")
    assert rows[0].unit == "piece"


def test_iter_rows_skips_blank_lines(master_workbook_path):
    """Fully empty rows between records should be ignored."""

    workbook = data_manager.open_workbook(master_workbook_path)
    sheet = workbook[constants.SheetName.CUSTOMERS.value]
    sheet.append(["C1", "Ana", "Standard", 0, 0, 0])
    sheet.append([None] * 6)
    sheet.append(["C2", "Ben", "VIP", 100, 20, 0])

    rows = list(data_manager.iter_customers(workbook))
    assert [row.customer_id for row in rows] == ["C1", "C2"]
    assert rows[1].available_credit == Decimal("80")


def test_iter_discounts_keeps_raw_text(master_workbook_path):
    """Discount rows are returned as text so validation can happen later."""

    workbook = data_manager.open_workbook(master_workbook_path)
    workbook[constants.SheetName.DISCOUNTS.value].append(
        ["D1", "Promo", None, "percentage", 10, "[]", None, None, None, "2026-01-01", "bad date", None, None]
    )

    (row,) = data_manager.iter_discounts(workbook)
    assert row.value == "10"
    assert row.valid_to == "bad date"
    assert row.description == ""
    assert row.is_active is True


def test_append_sale_round_trip(master_workbook_path):
    """Sales should persist decimals and JSON payloads intact."""

    workbook = data_manager.open_workbook(master_workbook_path)
    data_manager.append_sale(workbook, _sale())
    data_manager.save_workbook(workbook, master_workbook_path)

    (row,) = data_manager.iter_sales(data_manager.open_workbook(master_workbook_path))
    assert row.total == Decimal("880")
    assert row.items == [{"product_id": "P1"}]
    assert row.applied_discounts == [{"discount_id": "D1"}]
    assert row.free_gifts == []


def test_read_store_settings_uses_seeded_defaults(master_workbook_path):
    """A fresh workbook should expose the default store settings."""

    workbook = data_manager.open_workbook(master_workbook_path)
    settings = data_manager.read_store_settings(workbook)
    assert settings == data_manager.StoreSettings()


def test_read_store_settings_falls_back_on_bad_values(master_workbook_path):
    """Unreadable numbers should fall back to defaults rather than fail."""

    workbook = data_manager.open_workbook(master_workbook_path)
    data_manager.write_store_setting(workbook, data_manager.SETTING_TAX_RATE, "ten")
    data_manager.write_store_setting(workbook, data_manager.SETTING_INVOICE_COUNTER, "many")

    settings = data_manager.read_store_settings(workbook)
    assert settings.tax_rate == Decimal("0")
    assert settings.invoice_counter == constants.DEFAULT_INVOICE_COUNTER


def test_read_store_settings_reads_time_zone(master_workbook_path):
    workbook = data_manager.open_workbook(master_workbook_path)
    assert data_manager.read_store_settings(workbook).zone is UTC

    data_manager.write_store_setting(workbook, data_manager.SETTING_TIME_ZONE, "Europe/Lisbon")
    settings = data_manager.read_store_settings(workbook)
    assert settings.time_zone == "Europe/Lisbon"
    assert str(settings.zone) == "Europe/Lisbon"

    data_manager.write_store_setting(workbook, data_manager.SETTING_TIME_ZONE, "Mars/Olympus")
    assert data_manager.read_store_settings(workbook).time_zone == constants.DEFAULT_TIME_ZONE


def test_write_store_setting_updates_and_appends(master_workbook_path):
    """write_store_setting should overwrite known keys and add unknown ones."""

    workbook = data_manager.open_workbook(master_workbook_path)
    data_manager.write_store_setting(workbook, data_manager.SETTING_INVOICE_COUNTER, 1001)
    data_manager.write_store_setting(workbook, data_manager.SETTING_TAX_RATE, "7.5")
    data_manager.write_store_setting(workbook, "Theme", "dark")

    settings = data_manager.read_store_settings(workbook)
    assert settings.invoice_counter == 1001
    assert settings.tax_rate == Decimal("7.5")
    assert data_manager.locate_row(workbook, constants.SheetName.SETTINGS.value, "Key", "Theme") is not None


def test_update_customer_modifies_existing_row(master_workbook_path):
    """update_customer should mutate values for the matching CustomerID."""

    workbook = data_manager.open_workbook(master_workbook_path)
    data_manager.append_customer(workbook, data_manager.CustomerRow("C5", "Dee", "VIP", Decimal("500")))
    data_manager.update_customer(workbook, "C5", field_values={"CreditUsed": Decimal("120")})

    (row,) = data_manager.iter_customers(workbook)
    assert row.credit_used == Decimal("120")
    assert row.available_credit == Decimal("380")


def test_update_customer_missing_raises(master_workbook_path):
    """Updating a nonexistent customer should surface a KeyError."""

    workbook = data_manager.open_workbook(master_workbook_path)
    with pytest.raises(KeyError):
        data_manager.update_customer(workbook, "NOPE", field_values={"CreditUsed": 1})


def test_update_discount_rejects_unknown_column(master_workbook_path):
    """Unknown column names should raise instead of writing stray cells."""

    workbook = data_manager.open_workbook(master_workbook_path)
    workbook[constants.SheetName.DISCOUNTS.value].append(["D1", "Promo"] + [None] * 11)
    with pytest.raises(KeyError):
        data_manager.update_discount(workbook, "D1", field_values={"Priority": 1})


def test_locate_row_returns_row_index(master_workbook_path):
    """locate_row should return the worksheet index of the matching key."""

    workbook = data_manager.open_workbook(master_workbook_path)
    data_manager.append_customer(workbook, data_manager.CustomerRow("C1", "Ana", "Standard"))
    data_manager.append_customer(workbook, data_manager.CustomerRow("C2", "Ben", "VIP"))

    assert data_manager.locate_row(workbook, constants.SheetName.CUSTOMERS.value, "CustomerID", "C2") == 3
    assert data_manager.locate_row(workbook, constants.SheetName.CUSTOMERS.value, "CustomerID", "C9") is None


def test_locate_row_matches_numeric_ids_as_text(master_workbook_path):
    """Ids typed into Excel as numbers should still be found by their text."""

    workbook = data_manager.open_workbook(master_workbook_path)
    workbook[constants.SheetName.CUSTOMERS.value].append([1001, "Numeric", "Standard", 500, 0, 0])

    assert data_manager.locate_row(workbook, constants.SheetName.CUSTOMERS.value, "CustomerID", "1001") == 2
    data_manager.update_customer(workbook, "1001", field_values={"CreditUsed": Decimal("25")})
    (row,) = data_manager.iter_customers(workbook)
    assert row.customer_id == "1001"
    assert row.credit_used == Decimal("25")


def test_update_with_unknown_column_writes_nothing(master_workbook_path):
    workbook = data_manager.open_workbook(master_workbook_path)
    data_manager.append_customer(workbook, data_manager.CustomerRow("C5", "Dee", "VIP", Decimal("500")))

    with pytest.raises(KeyError):
        data_manager.update_customer(
            workbook, "C5", field_values={"CreditUsed": Decimal("120"), "Nickname": "D"}
        )

    (row,) = data_manager.iter_customers(workbook)
    assert row.credit_used == Decimal("0")


def test_locate_row_unknown_column_raises(master_workbook_path):
    """A key column absent from the header is a programming error."""

    workbook = data_manager.open_workbook(master_workbook_path)
    with pytest.raises(KeyError):
        data_manager.locate_row(workbook, constants.SheetName.CUSTOMERS.value, "Email", "x")


def test_serialize_product_preserves_order():
    """serialize_product should follow the column ordering defined by setup."""

    record = data_manager.ProductRow("P1", "Name", Decimal("1.25"))
    assert data_manager.serialize_product(record) == ["P1", "Name", Decimal("1.25"), Decimal("0"), False, "piece", "", True]


def test_serialize_sale_matches_header_width():
    """Serialized sales should fill exactly one cell per Sales column."""

    assert len(data_manager.serialize_sale(_sale())) == len(SHEET_COLUMNS[constants.SheetName.SALES.value])


def test_deserialize_customer_defaults_blank_numbers():
    """Blank credit columns should read as zero."""

    record = data_manager.deserialize_customer(["C9", "Alex", None, None, "", None])
    assert record.credit_limit == Decimal("0")
    assert record.price_tier == ""
