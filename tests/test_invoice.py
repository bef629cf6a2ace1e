"""Unit tests for invoice number sequencing."""

from __future__ import annotations

from datetime import UTC, datetime

import pytest

from pos_promotions import data_manager, invoice


def test_next_invoice_number_formats_and_advances():
    settings = data_manager.StoreSettings(invoice_prefix="INV", invoice_counter=1000)

    assert invoice.next_invoice_number(settings) == ("INV-001001", 1001)


def test_next_invoice_number_is_pure():
    settings = data_manager.StoreSettings(invoice_prefix="INV", invoice_counter=1000)

    first = invoice.next_invoice_number(settings)
    second = invoice.next_invoice_number(settings)

    assert first == second
    assert settings.invoice_counter == 1000


def test_feeding_back_counter_continues_sequence():
    settings = data_manager.StoreSettings(invoice_prefix="SHOP", invoice_counter=41)

    _, counter = invoice.next_invoice_number(settings)
    number, _ = invoice.next_invoice_number(data_manager.StoreSettings(invoice_prefix="SHOP", invoice_counter=counter))

    assert number == "SHOP-000043"


def test_counter_wider_than_padding_is_not_truncated():
    assert invoice.format_invoice_number("INV", 1234567) == "INV-1234567"


def test_negative_counter_is_rejected():
    with pytest.raises(ValueError):
        invoice.format_invoice_number("INV", -1)


def test_peek_matches_next_without_consuming():
    settings = data_manager.StoreSettings(invoice_counter=7)

    assert invoice.peek_invoice_number(settings) == "INV-000008"
    assert invoice.peek_invoice_number(settings) == "INV-000008"


def test_draft_reference_uses_timestamp():
    moment = datetime(2026, 3, 4, 12, 30, 15, 123456, tzinfo=UTC)

    assert invoice.draft_reference(moment) == "DRAFT-20260304123015123456"
