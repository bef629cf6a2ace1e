"""Enumerations shared across the promotion engine and checkout layers.

Condition, discount and payment identifiers are compared as plain strings in
stored records, so every enum derives from ``str`` and can be written to the
workbook through ``.value`` without extra conversion.
"""

from __future__ import annotations

from decimal import Decimal
from enum import Enum


# Central schema version expected by all layers when validating workbooks.
EXPECTED_SCHEMA_VERSION = "2.0.0"

# Width of the zero-padded counter in invoice numbers (``INV-001001``).
INVOICE_COUNTER_WIDTH = 6

DEFAULT_INVOICE_PREFIX = "INV"
DEFAULT_INVOICE_COUNTER = 1000
DEFAULT_CURRENCY = "USD"
DEFAULT_TAX_RATE = Decimal("0")
DEFAULT_TIME_ZONE = "UTC"

DRAFT_PREFIX = "DRAFT"


class DiscountType(str, Enum):
    """Enumerate how a promotion affects the checkout."""

    PERCENTAGE = "percentage"
    FIXED = "fixed"
    FREE_GIFT = "free_gift"
    # Reserved: accepted when reading stored rows, never evaluated.
    BOGO = "bogo"


class ConditionType(str, Enum):
    """Enumerate the condition kinds a promotion can require."""

    MIN_AMOUNT = "min_amount"
    SPECIFIC_PRODUCTS = "specific_products"
    PAYMENT_METHOD = "payment_method"
    CUSTOMER_TIER = "customer_tier"
    CARD_TYPE = "card_type"
    BANK_NAME = "bank_name"


class ManualDiscountType(str, Enum):
    """Enumerate how a cashier-entered line discount is expressed."""

    PERCENTAGE = "percentage"
    FIXED = "fixed"


class PaymentMethod(str, Enum):
    """Enumerate supported payment mechanisms at checkout."""

    CASH = "cash"
    CARD = "card"
    DIGITAL = "digital"
    CREDIT = "credit"


class CardType(str, Enum):
    """Enumerate card networks recognised from a card number prefix."""

    VISA = "visa"
    MASTERCARD = "mastercard"
    AMEX = "amex"
    DISCOVER = "discover"
    UNKNOWN = "unknown"


class SaleStatus(str, Enum):
    """Enumerate the lifecycle states recorded on a sale."""

    COMPLETED = "completed"
    CREDIT = "credit"
    DRAFT = "draft"


class SheetName(str, Enum):
    """Enumerate the workbook sheet names managed by the DAL."""

    PRODUCTS = "Products"
    CUSTOMERS = "Customers"
    DISCOUNTS = "Discounts"
    SALES = "Sales"
    SETTINGS = "Settings"


__all__ = [
    "EXPECTED_SCHEMA_VERSION",
    "INVOICE_COUNTER_WIDTH",
    "DEFAULT_INVOICE_PREFIX",
    "DEFAULT_INVOICE_COUNTER",
    "DEFAULT_CURRENCY",
    "DEFAULT_TAX_RATE",
    "DEFAULT_TIME_ZONE",
    "DRAFT_PREFIX",
    "DiscountType",
    "ConditionType",
    "ManualDiscountType",
    "PaymentMethod",
    "CardType",
    "SaleStatus",
    "SheetName",
]
