"""Invoice number sequencing.

The counter is plain state carried in :class:`~pos_promotions.data_manager.StoreSettings`.
Nothing here mutates it: :func:`next_invoice_number` hands back the new value
and the caller stores it together with the sale it stamps, so an abandoned
checkout never consumes a number.
"""

from __future__ import annotations

from datetime import datetime
from typing import Tuple

from .constants import DRAFT_PREFIX, INVOICE_COUNTER_WIDTH
from .data_manager import StoreSettings


def format_invoice_number(prefix: str, counter: int) -> str:
    """Render ``counter`` as ``PREFIX-NNNNNN`` with six-digit zero padding.

    Raises:
        ValueError: If ``counter`` is negative.
    """

    if counter < 0:
        raise ValueError("Invoice counter cannot be negative")
    return f"{prefix}-{counter:0{INVOICE_COUNTER_WIDTH}d}"


def next_invoice_number(settings: StoreSettings) -> Tuple[str, int]:
    """Return the next invoice number and the counter value it consumes.

    Calling this twice with the same settings yields the same pair; persist the
    returned counter to advance the sequence.
    """

    new_counter = settings.invoice_counter + 1
    return format_invoice_number(settings.invoice_prefix, new_counter), new_counter


def peek_invoice_number(settings: StoreSettings) -> str:
    """Return the number the next committed sale will receive."""

    invoice_number, _ = next_invoice_number(settings)
    return invoice_number


def draft_reference(when: datetime) -> str:
    """Build the reference stamped on a draft sale instead of an invoice number.

    Drafts do not consume the invoice counter; the reference is derived from
    the draft's timestamp down to microseconds.
    """

    return f"{DRAFT_PREFIX}-{when.strftime('%Y%m%d%H%M%S%f')}"
