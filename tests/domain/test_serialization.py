"""Tests for payload serialization and the settings value object."""

from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import Decimal
from uuid import UUID

import pytest

from fieldwork_kernel.db.types import format_money, format_quantity, round_money, to_decimal
from fieldwork_kernel.domain.documents import DocumentKind
from fieldwork_kernel.domain.serialization import to_payload
from fieldwork_kernel.domain.settings import DocumentSettings


class TestMoneyFormatting:
    def test_two_fraction_digits(self):
        assert format_money(Decimal("82.5")) == "82.50"
        assert format_money(Decimal("275")) == "275.00"

    def test_storage_padding_removed(self):
        assert format_money(Decimal("100.000000000")) == "100.00"
        assert format_quantity(Decimal("2.500000000")) == "2.5"
        assert format_quantity(Decimal("3.000000000")) == "3"

    def test_round_half_up(self):
        assert round_money(Decimal("0.005")) == Decimal("0.01")
        assert round_money(Decimal("2.675")) == Decimal("2.68")

    def test_floats_refused(self):
        with pytest.raises(TypeError):
            to_decimal(0.1)
        with pytest.raises(TypeError):
            to_decimal(True)

    def test_non_finite_refused(self):
        with pytest.raises(ValueError):
            to_decimal("NaN")


class TestToPayload:
    def test_nested_dataclass(self):
        @dataclass(frozen=True)
        class Inner:
            amount: Decimal
            kind: DocumentKind

        @dataclass(frozen=True)
        class Outer:
            id: UUID
            on: date
            at: datetime
            items: tuple
            extra: dict

        value = Outer(
            id=UUID("00000000-0000-0000-0000-000000000001"),
            on=date(2026, 3, 2),
            at=datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc),
            items=(Inner(Decimal("1.5"), DocumentKind.QUOTE),),
            extra={"paid": True, "count": 2, "note": None},
        )
        assert to_payload(value) == {
            "id": "00000000-0000-0000-0000-000000000001",
            "on": "2026-03-02",
            "at": "2026-03-02T09:00:00+00:00",
            "items": [{"amount": "1.50", "kind": "quote"}],
            "extra": {"paid": True, "count": 2, "note": None},
        }

    def test_enum_becomes_plain_string(self):
        payload = to_payload(DocumentKind.INVOICE)
        assert payload == "invoice"
        assert type(payload) is str

    def test_unknown_type(self):
        with pytest.raises(TypeError):
            to_payload(object())


class TestDocumentSettings:
    def test_document_numbers(self):
        settings = DocumentSettings()
        assert settings.format_document_number(DocumentKind.QUOTE, 2026, 1) == "QTE-2026-001"
        assert settings.format_document_number(DocumentKind.INVOICE, 2026, 42) == "INV-2026-042"

    def test_counter_widens_past_width(self):
        assert DocumentSettings().format_document_number(DocumentKind.QUOTE, 2026, 1234) == "QTE-2026-1234"

    def test_payment_terms_label(self):
        settings = DocumentSettings(default_payment_terms_days=7)
        assert settings.payment_terms_label() == "Net 7 days"
        assert settings.payment_terms_label(30) == "Net 30 days"
