"""Tests for LineItem arithmetic and the LineItemLedger."""

from decimal import Decimal
from uuid import uuid4

import pytest

from fieldwork_kernel.domain.documents import ItemType, LineItem, LineItemSpec
from fieldwork_kernel.domain.line_items import LineItemLedger
from fieldwork_kernel.exceptions import ValidationError
from tests.builders import labour, material


def _item(quantity, unit_price, **kwargs):
    return LineItem(
        id=uuid4(),
        item_type=kwargs.pop("item_type", ItemType.LABOR),
        description=kwargs.pop("description", "Work"),
        quantity=quantity,
        unit_price=unit_price,
        line_order=0,
        **kwargs,
    )


class TestLineItemAmounts:
    def test_whole_dollar_line(self):
        item = _item(Decimal("2"), Decimal("100.00"))
        assert item.line_subtotal == Decimal("200.00")
        assert item.gst_amount == Decimal("20.00")
        assert item.line_total == Decimal("220.00")

    def test_line_total_rounds_gross_once(self):
        """1.5 x 33.33 = 49.995; gross 54.9945 rounds to 54.99, GST is the remainder."""
        item = _item(Decimal("1.5"), Decimal("33.33"))
        assert item.line_subtotal == Decimal("50.00")
        assert item.line_total == Decimal("54.99")
        assert item.gst_amount == Decimal("4.99")

    def test_zero_price_line_is_allowed(self):
        item = _item(Decimal("3"), Decimal("0"))
        assert item.line_total == Decimal("0.00")

    def test_string_inputs_are_parsed(self):
        item = _item("2.5", "10")
        assert item.quantity == Decimal("2.5")
        assert item.line_total == Decimal("27.50")

    def test_item_type_string_is_parsed(self):
        item = _item(Decimal("1"), Decimal("1"), item_type="material")
        assert item.item_type is ItemType.MATERIAL

    def test_custom_gst_rate(self):
        item = _item(Decimal("1"), Decimal("100"), gst_rate=Decimal("0"))
        assert item.gst_amount == Decimal("0.00")
        assert item.line_total == Decimal("100.00")


class TestLineItemValidation:
    @pytest.mark.parametrize(
        "quantity", [Decimal("0"), Decimal("-1"), "abc", None, "0.0000000001", "1.00005"],
    )
    def test_bad_quantity(self, quantity):
        with pytest.raises(ValidationError) as exc_info:
            _item(quantity, Decimal("10"))
        assert exc_info.value.field == "quantity"

    def test_negative_unit_price(self):
        with pytest.raises(ValidationError) as exc_info:
            _item(Decimal("1"), Decimal("-0.01"))
        assert exc_info.value.field == "unit_price"

    def test_unit_price_beyond_four_places(self):
        with pytest.raises(ValidationError) as exc_info:
            _item(Decimal("1"), "12.34567")
        assert exc_info.value.field == "unit_price"

    def test_four_places_is_the_limit(self):
        item = _item("0.0001", "0.0125")
        assert item.quantity == Decimal("0.0001")
        assert item.line_subtotal == Decimal("0.00")

    def test_storage_padding_is_not_counted(self):
        item = _item(Decimal("2.500000000"), Decimal("40.000000000"))
        assert item.line_subtotal == Decimal("100.00")

    def test_float_is_refused(self):
        with pytest.raises(ValidationError) as exc_info:
            _item(1.5, Decimal("10"))
        assert exc_info.value.field == "quantity"

    def test_blank_description(self):
        with pytest.raises(ValidationError) as exc_info:
            _item(Decimal("1"), Decimal("10"), description="   ")
        assert exc_info.value.field == "description"

    def test_unknown_item_type(self):
        with pytest.raises(ValidationError) as exc_info:
            _item(Decimal("1"), Decimal("10"), item_type="subscription")
        assert exc_info.value.field == "item_type"


class TestLedger:
    def test_add_assigns_increasing_order(self):
        ledger = LineItemLedger()
        first = ledger.add_item(labour())
        second = ledger.add_item(material())
        assert (first.line_order, second.line_order) == (0, 1)
        assert [i.id for i in ledger.items()] == [first.id, second.id]
        assert ledger.dirty

    def test_explicit_line_order_is_respected(self):
        ledger = LineItemLedger()
        later = ledger.add_item(labour())
        earlier = ledger.add_item(
            LineItemSpec(ItemType.FEE, "Call-out", Decimal("1"), Decimal("80"), line_order=-1)
        )
        assert ledger.items()[0].id == earlier.id
        assert ledger.items()[1].id == later.id

    def test_new_items_take_ledger_gst_rate(self):
        ledger = LineItemLedger(gst_rate=Decimal("0.15"))
        item = ledger.add_item(labour("1", "100"))
        assert item.line_total == Decimal("115.00")

    def test_update_recomputes_amounts(self):
        ledger = LineItemLedger()
        item = ledger.add_item(labour("1", "100.00"))
        updated = ledger.update_item(item.id, quantity=Decimal("3"))
        assert updated.line_total == Decimal("330.00")
        assert ledger.get(item.id) == updated

    def test_update_rejects_derived_fields(self):
        ledger = LineItemLedger()
        item = ledger.add_item(labour())
        with pytest.raises(ValidationError) as exc_info:
            ledger.update_item(item.id, line_total=Decimal("1"))
        assert exc_info.value.field == "line_total"

    def test_failed_update_leaves_item_unchanged(self):
        ledger = LineItemLedger()
        item = ledger.add_item(labour("2", "100.00"))
        ledger.mark_clean()
        with pytest.raises(ValidationError):
            ledger.update_item(item.id, quantity=Decimal("0"))
        assert ledger.get(item.id) == item
        assert not ledger.dirty

    def test_remove(self):
        ledger = LineItemLedger()
        item = ledger.add_item(labour())
        ledger.remove_item(item.id)
        assert len(ledger) == 0

    def test_unknown_item(self):
        ledger = LineItemLedger()
        with pytest.raises(ValidationError) as exc_info:
            ledger.remove_item(uuid4())
        assert exc_info.value.field == "line_item_id"

    def test_copy_is_independent(self):
        ledger = LineItemLedger()
        item = ledger.add_item(labour())
        clone = ledger.copy()
        clone.remove_item(item.id)
        assert len(ledger) == 1
        assert len(clone) == 0
