"""Utility for initializing the point-of-sale master workbook.

The module doubles as a script (``python -m pos_promotions.setup_workbook``)
and as a library used by tests or other tooling. Shared helpers keep the
workbook bootstrap logic consistent regardless of the execution path.
"""

from __future__ import annotations

import argparse
import configparser
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Sequence, Tuple
import sys

import openpyxl
from openpyxl.styles import Font

from . import log
from .constants import (
    DEFAULT_CURRENCY,
    DEFAULT_INVOICE_COUNTER,
    DEFAULT_INVOICE_PREFIX,
    DEFAULT_TAX_RATE,
    DEFAULT_TIME_ZONE,
    SheetName,
)
from .data_manager import (
    SETTING_CURRENCY,
    SETTING_INVOICE_COUNTER,
    SETTING_INVOICE_PREFIX,
    SETTING_TAX_RATE,
    SETTING_TIME_ZONE,
)

# Column order must match the serializers in data_manager.
SHEET_COLUMNS: Mapping[str, Sequence[str]] = {
    SheetName.PRODUCTS.value: [
        "ProductID",
        "ProductName",
        "Price",
        "PricePerUnit",
        "IsWeightBased",
        "Unit",
        "Category",
        "IsActive",
    ],
    SheetName.CUSTOMERS.value: [
        "CustomerID",
        "CustomerName",
        "PriceTier",
        "CreditLimit",
        "CreditUsed",
        "TotalPurchases",
    ],
    SheetName.DISCOUNTS.value: [
        "DiscountID",
        "DiscountName",
        "Description",
        "DiscountType",
        "Value",
        "Conditions",
        "FreeGiftProducts",
        "MinAmount",
        "MaxDiscount",
        "ValidFrom",
        "ValidTo",
        "ValidDays",
        "IsActive",
    ],
    SheetName.SALES.value: [
        "SaleID",
        "InvoiceNumber",
        "ReceiptNumber",
        "Timestamp",
        "CustomerID",
        "CustomerName",
        "PaymentMethod",
        "Status",
        "Subtotal",
        "DiscountAmount",
        "TaxAmount",
        "Total",
        "Items",
        "AppliedDiscounts",
        "FreeGifts",
        "CardType",
        "BankName",
        "Notes",
    ],
    SheetName.SETTINGS.value: [
        "Key",
        "Value",
    ],
}

DEFAULT_SETTINGS: Sequence[Tuple[str, object]] = (
    (SETTING_TAX_RATE, str(DEFAULT_TAX_RATE)),
    (SETTING_CURRENCY, DEFAULT_CURRENCY),
    (SETTING_INVOICE_PREFIX, DEFAULT_INVOICE_PREFIX),
    (SETTING_INVOICE_COUNTER, DEFAULT_INVOICE_COUNTER),
    (SETTING_TIME_ZONE, DEFAULT_TIME_ZONE),
)

CONFIG_FILE = "config.ini"


@dataclass(frozen=True)
class SetupSettings:
    """Type-safe representation of configuration values used during setup."""

    data_file: Path
    store_name: str


def load_settings(config_path: Path) -> SetupSettings:
    """Read ``config.ini`` and produce :class:`SetupSettings`.

    Relative paths inside the config file are resolved against the config
    file's directory.
    """

    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    parser = configparser.ConfigParser()
    parser.read(config_path)

    try:
        data_file_raw = parser.get("System", "DataFile")
        store_name = parser.get("System", "StoreName")
    except (configparser.NoSectionError, configparser.NoOptionError) as exc:
        raise KeyError(f"Missing required configuration entry: {exc}") from exc

    data_file_path = Path(data_file_raw)
    if not data_file_path.is_absolute():
        data_file_path = (config_path.parent / data_file_path).resolve()

    return SetupSettings(data_file=data_file_path, store_name=store_name)


def create_master_workbook(
    destination: Path,
    *,
    sheet_columns: Mapping[str, Sequence[str]] = SHEET_COLUMNS,
    settings_rows: Sequence[Tuple[str, object]] = DEFAULT_SETTINGS,
    overwrite: bool = False,
) -> Path:
    """Create the master workbook at ``destination``.

    Every sheet gets a bold header row and the ``Settings`` sheet is seeded
    with the default tax rate, currency, invoice counter and time zone. When
    ``overwrite`` is ``False`` (the default) this function raises
    ``FileExistsError`` if the target already exists.
    """

    destination = destination.expanduser().resolve()
    if destination.exists() and not overwrite:
        raise FileExistsError(f"Refusing to overwrite existing master workbook: {destination}")

    destination.parent.mkdir(parents=True, exist_ok=True)

    workbook = openpyxl.Workbook()

    # Remove the default sheet openpyxl generates so we can create ours.
    if workbook.active and workbook.active.title == "Sheet":
        workbook.remove(workbook.active)

    bold_font = Font(bold=True)

    for sheet_name, columns in sheet_columns.items():
        worksheet = workbook.create_sheet(title=sheet_name)
        for column_index, column_name in enumerate(columns, start=1):
            cell = worksheet.cell(row=1, column=column_index)
            cell.value = column_name
            cell.font = bold_font

    settings_sheet = workbook[SheetName.SETTINGS.value]
    for key, value in settings_rows:
        settings_sheet.append([key, value])

    workbook.save(destination)
    log.info("Created master workbook '%s'", destination)
    return destination


def run_from_config(config_path: Path, *, overwrite: bool = False) -> Path:
    """Create the workbook named by ``config.ini``."""

    settings = load_settings(config_path)
    return create_master_workbook(settings.data_file, overwrite=overwrite)


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    """Parse CLI arguments for the setup script."""

    parser = argparse.ArgumentParser(description="Initialize the point-of-sale data file")
    parser.add_argument(
        "--config",
        default=CONFIG_FILE,
        help="Path to configuration file (default: config.ini)",
    )
    parser.add_argument(
        "--force",
        action="store_true",
        help="Overwrite the target workbook if it already exists.",
    )
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point for the setup script."""

    args = parse_args(argv)
    config_path = Path(args.config).expanduser().resolve()

    print("--- POS Workbook Setup ---")
    print(f"Using configuration: {config_path}")

    try:
        output_path = run_from_config(config_path, overwrite=args.force)
    except (FileNotFoundError, KeyError) as exc:
        print(f"\n[ERROR] {exc}")
        return 1
    except FileExistsError as exc:
        print(f"\n[ERROR] {exc}")
        print("Run with --force to overwrite the existing file if appropriate.")
        return 1
    except OSError as exc:
        print(f"\n[ERROR] Unable to write workbook: {exc}")
        return 1

    print(f"\n[SUCCESS] Created master workbook at '{output_path}'.")
    return 0


if __name__ == "__main__":  # pragma: no cover - exercised via manual runs
    sys.exit(main())
