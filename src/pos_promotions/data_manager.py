"""Data access layer for the point-of-sale record store.

This module provides low-level helpers that read from and write to the
master workbook. Business logic belongs elsewhere.

The public API is designed around three responsibilities:

1. Configuration handling: finding and parsing ``config.ini``.
2. Workbook lifecycle: opening and persisting the Excel file.
3. Sheet operations: loading structured records and appending or updating
   individual rows, including the key/value ``Settings`` sheet that holds the
   tax rate, currency and invoice counter.

Nested values (discount conditions, sale lines) are stored as JSON text so a
row always occupies exactly one worksheet line.
"""


from __future__ import annotations

import configparser
import json
from dataclasses import dataclass
from datetime import UTC, tzinfo
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Iterable, Optional, Sequence
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from openpyxl.workbook import Workbook
import openpyxl

from . import log
from .constants import (
    DEFAULT_CURRENCY,
    DEFAULT_INVOICE_COUNTER,
    DEFAULT_INVOICE_PREFIX,
    DEFAULT_TAX_RATE,
    DEFAULT_TIME_ZONE,
    SheetName,
)


CONFIG_FILE_NAME = "config.ini"
PRODUCTS_SHEET = SheetName.PRODUCTS.value
CUSTOMERS_SHEET = SheetName.CUSTOMERS.value
DISCOUNTS_SHEET = SheetName.DISCOUNTS.value
SALES_SHEET = SheetName.SALES.value
SETTINGS_SHEET = SheetName.SETTINGS.value

SETTING_TAX_RATE = "TaxRate"
SETTING_CURRENCY = "Currency"
SETTING_INVOICE_PREFIX = "InvoicePrefix"
SETTING_INVOICE_COUNTER = "InvoiceCounter"
SETTING_TIME_ZONE = "TimeZone"


@dataclass(frozen=True)
class ConfigSettings:
    """Typed representation of the ``config.ini`` settings we care about."""

    data_file: Path
    store_name: str
    schema_version: str


@dataclass(frozen=True)
class StoreSettings:
    """Checkout settings read from the ``Settings`` sheet.

    ``tax_rate`` is expressed in percent (``Decimal("10")`` means 10%).
    ``time_zone`` is the IANA name of the store's local clock; promotion
    weekdays are judged in it.
    """

    tax_rate: Decimal = DEFAULT_TAX_RATE
    currency: str = DEFAULT_CURRENCY
    invoice_prefix: str = DEFAULT_INVOICE_PREFIX
    invoice_counter: int = DEFAULT_INVOICE_COUNTER
    time_zone: str = DEFAULT_TIME_ZONE

    @property
    def zone(self) -> tzinfo:
        if self.time_zone == DEFAULT_TIME_ZONE:
            return UTC
        return ZoneInfo(self.time_zone)


@dataclass(frozen=True)
class ProductRow:
    """In-memory view of a row from the ``Products`` sheet."""

    product_id: str
    product_name: str
    price: Decimal
    is_active: bool = True
    is_weight_based: bool = False
    price_per_unit: Decimal = Decimal("0")
    unit: str = "piece"
    category: str = ""


@dataclass(frozen=True)
class CustomerRow:
    """In-memory view of a row from the ``Customers`` sheet."""

    customer_id: str
    customer_name: str
    price_tier: str
    credit_limit: Decimal = Decimal("0")
    credit_used: Decimal = Decimal("0")
    total_purchases: Decimal = Decimal("0")

    @property
    def available_credit(self) -> Decimal:
        return self.credit_limit - self.credit_used


@dataclass(frozen=True)
class DiscountRow:
    """Raw view of a row from the ``Discounts`` sheet.

    Values are kept close to their stored text form; turning a row into an
    evaluable promotion (and rejecting malformed ones) is the job of
    :func:`pos_promotions.discounts.load_discount`.
    """

    discount_id: str
    discount_name: str
    description: str
    discount_type: str
    value: Optional[str]
    conditions_json: Optional[str]
    free_gift_products_json: Optional[str]
    min_amount: Optional[str]
    max_discount: Optional[str]
    valid_from: Optional[str]
    valid_to: Optional[str]
    valid_days_json: Optional[str]
    is_active: bool


@dataclass(frozen=True)
class SaleRow:
    """In-memory view of a row from the ``Sales`` sheet."""

    sale_id: str
    invoice_number: str
    receipt_number: str
    timestamp_iso: str
    customer_id: Optional[str]
    customer_name: Optional[str]
    payment_method: str
    status: str
    subtotal: Decimal
    discount_amount: Decimal
    tax_amount: Decimal
    total: Decimal
    items_json: str
    applied_discounts_json: str
    free_gifts_json: str
    card_type: Optional[str]
    bank_name: Optional[str]
    notes: Optional[str]

    @property
    def items(self) -> list[dict[str, Any]]:
        return json.loads(self.items_json or "[]")

    @property
    def applied_discounts(self) -> list[dict[str, Any]]:
        return json.loads(self.applied_discounts_json or "[]")

    @property
    def free_gifts(self) -> list[dict[str, Any]]:
        return json.loads(self.free_gifts_json or "[]")


def find_config_file(explicit_path: Optional[Path] = None) -> Path:
    """Locate the configuration file that controls how the data layer behaves.

    If the caller provides ``explicit_path`` the value is returned immediately
    without any verification. Otherwise the function walks up from the current
    working directory toward the filesystem root looking for a file named
    ``CONFIG_FILE_NAME``; the first match is authoritative.

    Args:
        explicit_path (Path | None): Optional path to use instead of performing
            the upward search.

    Returns:
        Path: The path provided by the caller or the discovered configuration
            file.

    Raises:
        FileNotFoundError: If no parent directory contains ``CONFIG_FILE_NAME``.
    """

    if explicit_path:
        return explicit_path

    current = Path.cwd()
    for directory in (current, *current.parents):
        candidate = directory / CONFIG_FILE_NAME
        if candidate.exists():
            return candidate

    raise FileNotFoundError(f"Configuration file not found: {CONFIG_FILE_NAME}")


def read_config(config_path: Path) -> configparser.ConfigParser:
    """Load ``config.ini`` and return a populated ``ConfigParser`` instance.

    Args:
        config_path (Path): Path to the configuration file, relative or
            absolute. ``~`` is expanded.

    Returns:
        configparser.ConfigParser: Parser containing the raw configuration.

    Raises:
        FileNotFoundError: If ``config_path`` does not exist.
    """

    config_path = config_path.expanduser().resolve()
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    parser = configparser.ConfigParser()
    parser.read(config_path)
    return parser


def parse_settings(parser: configparser.ConfigParser, *, base_path: Optional[Path] = None) -> ConfigSettings:
    """Convert a ``ConfigParser`` into strongly typed :class:`ConfigSettings`.

    Relative ``DataFile`` entries are anchored to ``base_path`` (or the current
    working directory when omitted) and resolved to an absolute path.

    Args:
        parser (configparser.ConfigParser): Parsed configuration data.
        base_path (Path | None): Directory used to anchor relative paths.

    Returns:
        ConfigSettings: Immutable settings container.

    Raises:
        KeyError: If a required section or option is missing.
    """

    try:
        data_file_raw = parser.get("System", "DataFile")
        store_name = parser.get("System", "StoreName")
        schema_version = parser.get("System", "SchemaVersion")
    except (configparser.NoSectionError, configparser.NoOptionError) as exc:
        raise KeyError(f"Missing required configuration entry: {exc}") from exc

    data_file_path = Path(data_file_raw)
    if not data_file_path.is_absolute():
        if base_path is None:
            base_path = Path.cwd()
        data_file_path = (base_path / data_file_path).resolve()

    return ConfigSettings(
        data_file=data_file_path,
        store_name=store_name,
        schema_version=schema_version,
    )


def open_workbook(data_file: Path) -> Workbook:
    """Open the master workbook and return a live ``openpyxl`` workbook.

    Raises:
        FileNotFoundError: If ``data_file`` does not exist after expansion and
            resolution.
    """

    data_file = Path(data_file).expanduser().resolve()
    if not data_file.exists():
        raise FileNotFoundError(f"Workbook not found: {data_file}")

    return openpyxl.load_workbook(data_file)


def save_workbook(workbook: Workbook, destination: Path) -> None:
    """Persist the workbook to ``destination``, creating parent folders."""

    dest = Path(destination).expanduser().resolve()
    dest.parent.mkdir(parents=True, exist_ok=True)
    workbook.save(dest)


def refresh_workbook(data_file: Path) -> Workbook:
    """Reload the workbook from disk, discarding unsaved in-memory changes."""

    return open_workbook(data_file)


def _iter_rows(workbook: Workbook, sheet_name: str) -> Iterable[Sequence[object]]:
    sheet = workbook[sheet_name]
    for raw in sheet.iter_rows(min_row=2, values_only=True):
        # skip fully empty rows
        if any(cell is not None for cell in raw):
            yield raw


def iter_products(workbook: Workbook) -> Iterable[ProductRow]:
    """Iterate over product records stored on the ``Products`` worksheet."""

    for raw in _iter_rows(workbook, PRODUCTS_SHEET):
        yield deserialize_product(raw)


def iter_customers(workbook: Workbook) -> Iterable[CustomerRow]:
    """Iterate over customer records stored on the ``Customers`` worksheet."""

    for raw in _iter_rows(workbook, CUSTOMERS_SHEET):
        yield deserialize_customer(raw)


def iter_discounts(workbook: Workbook) -> Iterable[DiscountRow]:
    """Iterate over raw promotion definitions on the ``Discounts`` worksheet.

    Rows are returned even when their content is unusable; validation happens
    in the business layer so one bad definition never hides the others.
    """

    for raw in _iter_rows(workbook, DISCOUNTS_SHEET):
        yield deserialize_discount(raw)


def iter_sales(workbook: Workbook) -> Iterable[SaleRow]:
    """Stream sale records from the ``Sales`` worksheet in insertion order."""

    for raw in _iter_rows(workbook, SALES_SHEET):
        yield deserialize_sale(raw)


def read_store_settings(workbook: Workbook) -> StoreSettings:
    """Assemble :class:`StoreSettings` from the key/value ``Settings`` sheet.

    Missing keys fall back to the defaults declared on the dataclass, and
    unparseable numbers fall back the same way with a warning.
    """

    values = {}
    for raw in _iter_rows(workbook, SETTINGS_SHEET):
        key, value = raw[0], raw[1] if len(raw) > 1 else None
        if key is not None:
            values[str(key)] = value

    defaults = StoreSettings()
    tax_rate = _to_decimal(values.get(SETTING_TAX_RATE), defaults.tax_rate)
    try:
        counter_raw = values.get(SETTING_INVOICE_COUNTER)
        invoice_counter = int(counter_raw) if counter_raw is not None else defaults.invoice_counter
    except (TypeError, ValueError):
        log.warning("Invalid invoice counter '%s' in settings; using default", values.get(SETTING_INVOICE_COUNTER))
        invoice_counter = defaults.invoice_counter

    time_zone = _to_text(values.get(SETTING_TIME_ZONE)) or defaults.time_zone
    try:
        if time_zone != DEFAULT_TIME_ZONE:
            ZoneInfo(time_zone)
    except (ZoneInfoNotFoundError, ValueError):
        log.warning("Unknown time zone '%s' in settings; using %s", time_zone, defaults.time_zone)
        time_zone = defaults.time_zone

    return StoreSettings(
        tax_rate=tax_rate,
        currency=_to_text(values.get(SETTING_CURRENCY)) or defaults.currency,
        invoice_prefix=_to_text(values.get(SETTING_INVOICE_PREFIX)) or defaults.invoice_prefix,
        invoice_counter=invoice_counter,
        time_zone=time_zone,
    )


def write_store_setting(workbook: Workbook, key: str, value: object) -> None:
    """Set ``key`` in the ``Settings`` sheet, appending the row when absent."""

    row_index = locate_row(workbook, SETTINGS_SHEET, "Key", key)
    sheet = workbook[SETTINGS_SHEET]
    if row_index is None:
        sheet.append([key, value])
    else:
        sheet.cell(row=row_index, column=2, value=value)


def append_product(workbook: Workbook, record: ProductRow) -> None:
    """Append a product record to the ``Products`` worksheet."""

    workbook[PRODUCTS_SHEET].append(serialize_product(record))


def append_customer(workbook: Workbook, record: CustomerRow) -> None:
    """Append a customer record to the ``Customers`` worksheet."""

    workbook[CUSTOMERS_SHEET].append(serialize_customer(record))


def append_discount(workbook: Workbook, record: DiscountRow) -> None:
    """Append a promotion definition to the ``Discounts`` worksheet."""

    workbook[DISCOUNTS_SHEET].append(serialize_discount(record))


def append_sale(workbook: Workbook, record: SaleRow) -> None:
    """Append a sale to the ``Sales`` worksheet.

    Monetary fields remain :class:`~decimal.Decimal` instances after
    serialization so precision is preserved when the workbook is saved.
    """

    workbook[SALES_SHEET].append(serialize_sale(record))


def _update_row(workbook: Workbook, sheet_name: str, key_column: str, key_value: str, field_values: dict[str, Any]) -> None:
    row_index = locate_row(workbook, sheet_name, key_column, key_value)
    if row_index is None:
        raise KeyError(f"{sheet_name} row not found: {key_value}")

    sheet = workbook[sheet_name]
    header_map = {cell.value: idx + 1 for idx, cell in enumerate(sheet[1])}

    unknown = [field for field in field_values if field not in header_map]
    if unknown:
        raise KeyError(f"Unknown {sheet_name} field: {unknown[0]}")
    for field, value in field_values.items():
        sheet.cell(row=row_index, column=header_map[field], value=value)


def update_customer(workbook: Workbook, customer_id: str, *, field_values: dict[str, Any]) -> None:
    """Update selected columns for an existing customer.

    Raises:
        KeyError: If the customer or any referenced column is missing.
    """

    _update_row(workbook, CUSTOMERS_SHEET, "CustomerID", customer_id, field_values)


def update_discount(workbook: Workbook, discount_id: str, *, field_values: dict[str, Any]) -> None:
    """Update selected columns for an existing promotion definition.

    Raises:
        KeyError: If the discount or any referenced column is missing.
    """

    _update_row(workbook, DISCOUNTS_SHEET, "DiscountID", discount_id, field_values)


def locate_row(workbook: Workbook, sheet_name: str, key_column: str, key_value: str) -> Optional[int]:
    """Find a row by matching a key value within the specified worksheet.

    Returns:
        int | None: 1-based Excel row index when a match is found, otherwise
            ``None``.

    Raises:
        KeyError: If ``key_column`` is not present in the worksheet header.
    """

    sheet = workbook[sheet_name]
    header_map = {cell.value: idx + 1 for idx, cell in enumerate(sheet[1])}
    if key_column not in header_map:
        raise KeyError(f"Unknown column: {key_column}")

    key_col_index = header_map[key_column]
    for row_idx, row in enumerate(sheet.iter_rows(min_row=2, values_only=True), start=2):
        cell = row[key_col_index - 1]
        # ids typed into Excel may come back as numbers
        if cell is not None and str(cell) == str(key_value):
            return row_idx

    return None


def serialize_product(record: ProductRow) -> list[object]:
    """Convert a product dataclass into the worksheet column ordering."""

    return [
        record.product_id,
        record.product_name,
        record.price,
        record.price_per_unit,
        record.is_weight_based,
        record.unit,
        record.category,
        record.is_active,
    ]


def serialize_customer(record: CustomerRow) -> list[object]:
    """Convert a customer dataclass into the worksheet column ordering."""

    return [
        record.customer_id,
        record.customer_name,
        record.price_tier,
        record.credit_limit,
        record.credit_used,
        record.total_purchases,
    ]


def serialize_discount(record: DiscountRow) -> list[object]:
    """Convert a discount row into the worksheet column ordering."""

    return [
        record.discount_id,
        record.discount_name,
        record.description,
        record.discount_type,
        record.value,
        record.conditions_json,
        record.free_gift_products_json,
        record.min_amount,
        record.max_discount,
        record.valid_from,
        record.valid_to,
        record.valid_days_json,
        record.is_active,
    ]


def serialize_sale(record: SaleRow) -> list[object]:
    """Convert a sale dataclass into the ``Sales`` column ordering."""

    return [
        record.sale_id,
        record.invoice_number,
        record.receipt_number,
        record.timestamp_iso,
        record.customer_id,
        record.customer_name,
        record.payment_method,
        record.status,
        record.subtotal,
        record.discount_amount,
        record.tax_amount,
        record.total,
        record.items_json,
        record.applied_discounts_json,
        record.free_gifts_json,
        record.card_type,
        record.bank_name,
        record.notes,
    ]


def _to_decimal(raw: object, default: Decimal = Decimal("0")) -> Decimal:
    if raw is None or raw == "":
        return default
    try:
        return Decimal(str(raw))
    except InvalidOperation:
        log.warning("Could not read '%s' as a number; using %s", raw, default)
        return default


def _to_text(raw: object) -> Optional[str]:
    if raw is None:
        return None
    text = str(raw)
    return text if text != "" else None


def deserialize_product(raw_row: Sequence[object]) -> ProductRow:
    """Convert a raw worksheet row into a strongly typed product record.

    Identifiers are coerced to ``str`` so Excel's automatic number detection
    never leaks into lookups.
    """

    (
        product_id,
        product_name,
        price,
        price_per_unit,
        is_weight_based,
        unit,
        category,
        is_active,
    ) = raw_row
    return ProductRow(
        product_id=str(product_id),
        product_name=str(product_name),
        price=_to_decimal(price),
        price_per_unit=_to_decimal(price_per_unit),
        is_weight_based=bool(is_weight_based),
        unit=_to_text(unit) or "piece",
        category=_to_text(category) or "",
        is_active=bool(is_active),
    )


def deserialize_customer(raw_row: Sequence[object]) -> CustomerRow:
    """Convert a raw worksheet row into a strongly typed customer record."""

    customer_id, customer_name, price_tier, credit_limit, credit_used, total_purchases = raw_row
    return CustomerRow(
        customer_id=str(customer_id),
        customer_name=str(customer_name),
        price_tier=_to_text(price_tier) or "",
        credit_limit=_to_decimal(credit_limit),
        credit_used=_to_decimal(credit_used),
        total_purchases=_to_decimal(total_purchases),
    )


def deserialize_discount(raw_row: Sequence[object]) -> DiscountRow:
    """Convert a raw worksheet row into a :class:`DiscountRow`.

    No validation happens here; every cell is kept as optional text.
    """

    (
        discount_id,
        discount_name,
        description,
        discount_type,
        value,
        conditions,
        free_gift_products,
        min_amount,
        max_discount,
        valid_from,
        valid_to,
        valid_days,
        is_active,
    ) = raw_row
    return DiscountRow(
        discount_id=str(discount_id),
        discount_name=_to_text(discount_name) or "",
        description=_to_text(description) or "",
        discount_type=_to_text(discount_type) or "",
        value=_to_text(value),
        conditions_json=_to_text(conditions),
        free_gift_products_json=_to_text(free_gift_products),
        min_amount=_to_text(min_amount),
        max_discount=_to_text(max_discount),
        valid_from=_to_text(valid_from),
        valid_to=_to_text(valid_to),
        valid_days_json=_to_text(valid_days),
        # Absent flag means active, mirroring the admin form default.
        is_active=True if is_active is None else bool(is_active),
    )


def deserialize_sale(raw_row: Sequence[object]) -> SaleRow:
    """Convert a raw worksheet row into a strongly typed sale record."""

    (
        sale_id,
        invoice_number,
        receipt_number,
        timestamp_iso,
        customer_id,
        customer_name,
        payment_method,
        status,
        subtotal,
        discount_amount,
        tax_amount,
        total,
        items_json,
        applied_discounts_json,
        free_gifts_json,
        card_type,
        bank_name,
        notes,
    ) = raw_row
    return SaleRow(
        sale_id=str(sale_id),
        invoice_number=_to_text(invoice_number) or "",
        receipt_number=_to_text(receipt_number) or "",
        timestamp_iso=_to_text(timestamp_iso) or "",
        customer_id=_to_text(customer_id),
        customer_name=_to_text(customer_name),
        payment_method=_to_text(payment_method) or "",
        status=_to_text(status) or "",
        subtotal=_to_decimal(subtotal),
        discount_amount=_to_decimal(discount_amount),
        tax_amount=_to_decimal(tax_amount),
        total=_to_decimal(total),
        items_json=_to_text(items_json) or "[]",
        applied_discounts_json=_to_text(applied_discounts_json) or "[]",
        free_gifts_json=_to_text(free_gifts_json) or "[]",
        card_type=_to_text(card_type),
        bank_name=_to_text(bank_name),
        notes=_to_text(notes),
    )
