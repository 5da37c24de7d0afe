"""
LineItemLedger -- the ordered set of line items for one document.

Responsibility:
    Owns add / update / remove of line items and keeps each item's derived
    amounts consistent with its inputs.  Every mutation marks the ledger
    dirty; ``TotalsCalculator.reconcile`` must run before the document's
    totals are trusted again.

Architecture position:
    Kernel > Domain -- pure, zero I/O.  Has no notion of document status:
    the caller (DocumentService via VariationPolicy) decides whether an edit
    is authorized before touching the ledger.

Invariants enforced:
    - quantity > 0, unit_price >= 0, description non-empty on every
      mutation (ValidationError otherwise, with the offending field).
    - A failed mutation leaves the ledger exactly as it was.
    - ``items()`` is ordered by ``line_order``, ties by insertion order.
"""

from __future__ import annotations

import dataclasses
from collections.abc import Callable, Iterable
from decimal import Decimal
from uuid import UUID, uuid4

from fieldwork_kernel.domain.documents import DEFAULT_GST_RATE, LineItem, LineItemSpec
from fieldwork_kernel.exceptions import ValidationError
from fieldwork_kernel.logging_config import get_logger

logger = get_logger("domain.line_items")

EDITABLE_FIELDS = frozenset({"item_type", "description", "quantity", "unit_price", "line_order"})


class LineItemLedger:
    """Mutable ledger of line items for a single quote or invoice."""

    def __init__(
        self,
        items: Iterable[LineItem] = (),
        gst_rate: Decimal = DEFAULT_GST_RATE,
        id_factory: Callable[[], UUID] = uuid4,
    ):
        self._gst_rate = gst_rate
        self._id_factory = id_factory
        self._items: dict[UUID, LineItem] = {item.id: item for item in items}
        self._dirty = False

    @property
    def dirty(self) -> bool:
        """True when items changed since totals were last reconciled."""
        return self._dirty

    @property
    def gst_rate(self) -> Decimal:
        return self._gst_rate

    def mark_clean(self) -> None:
        self._dirty = False

    def __len__(self) -> int:
        return len(self._items)

    def items(self) -> tuple[LineItem, ...]:
        """Line items in display order."""
        return tuple(sorted(self._items.values(), key=lambda i: i.line_order))

    def get(self, item_id: UUID) -> LineItem:
        try:
            return self._items[item_id]
        except KeyError:
            raise ValidationError(
                "line_item_id", "is not on this document", item_id
            ) from None

    def add_item(self, spec: LineItemSpec) -> LineItem:
        """Append a line item built from ``spec``."""
        line_order = spec.line_order if spec.line_order is not None else self._next_order()
        item = LineItem(
            id=self._id_factory(),
            item_type=spec.item_type,
            description=spec.description,
            quantity=spec.quantity,
            unit_price=spec.unit_price,
            line_order=line_order,
            gst_rate=self._gst_rate,
        )
        self._items[item.id] = item
        self._dirty = True
        logger.debug(
            "line_item_added",
            extra={
                "line_item_id": str(item.id),
                "item_type": item.item_type.value,
                "line_total": str(item.line_total),
            },
        )
        return item

    def update_item(self, item_id: UUID, **fields: object) -> LineItem:
        """Replace editable fields on one item; derived amounts are recomputed."""
        current = self.get(item_id)
        unknown = set(fields) - EDITABLE_FIELDS
        if unknown:
            raise ValidationError(sorted(unknown)[0], "is not an editable line item field")
        updated = dataclasses.replace(current, **fields)
        self._items[item_id] = updated
        self._dirty = True
        logger.debug(
            "line_item_updated",
            extra={
                "line_item_id": str(item_id),
                "fields": sorted(fields),
                "line_total": str(updated.line_total),
            },
        )
        return updated

    def remove_item(self, item_id: UUID) -> LineItem:
        removed = self.get(item_id)
        del self._items[item_id]
        self._dirty = True
        logger.debug("line_item_removed", extra={"line_item_id": str(item_id)})
        return removed

    def copy(self) -> LineItemLedger:
        """Independent ledger with the same items; used for all-or-nothing edits."""
        clone = LineItemLedger(self._items.values(), self._gst_rate, self._id_factory)
        clone._dirty = self._dirty
        return clone

    def _next_order(self) -> int:
        if not self._items:
            return 0
        return max(item.line_order for item in self._items.values()) + 1
