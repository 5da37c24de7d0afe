"""
Module: fieldwork_kernel.models.line_item
Responsibility: ORM persistence for quote and invoice line items.
Architecture position: Kernel > Models.  May import from db/ and domain/.

Invariants enforced:
    - A line item belongs to exactly one document; deleting the document
      deletes its lines (cascade on the parent relationship).
    - line_subtotal, gst_amount and line_total are written only from a
      domain ``LineItem`` (``apply``), never set independently.
"""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from sqlalchemy import CheckConstraint, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from fieldwork_kernel.db.base import Base, UUIDString
from fieldwork_kernel.domain.documents import LineItem


class LineItemColumns:
    """Columns shared by quote and invoice line items."""

    item_type: Mapped[str] = mapped_column(String(20), nullable=False)
    description: Mapped[str] = mapped_column(String(4000), nullable=False)
    quantity: Mapped[Decimal] = mapped_column(nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(nullable=False)
    gst_rate: Mapped[Decimal] = mapped_column(nullable=False)
    line_subtotal: Mapped[Decimal] = mapped_column(nullable=False)
    gst_amount: Mapped[Decimal] = mapped_column(nullable=False)
    line_total: Mapped[Decimal] = mapped_column(nullable=False)
    line_order: Mapped[int] = mapped_column(nullable=False, default=0)

    def to_dto(self) -> LineItem:
        """Rebuild the domain item; derived amounts are recomputed, not trusted."""
        return LineItem(
            id=self.id,
            item_type=self.item_type,
            description=self.description,
            quantity=self.quantity,
            unit_price=self.unit_price,
            line_order=self.line_order,
            gst_rate=self.gst_rate,
        )

    def apply(self, item: LineItem) -> None:
        """Copy a domain item's inputs and derived amounts onto this row."""
        self.item_type = item.item_type.value
        self.description = item.description
        self.quantity = item.quantity
        self.unit_price = item.unit_price
        self.gst_rate = item.gst_rate
        self.line_subtotal = item.line_subtotal
        self.gst_amount = item.gst_amount
        self.line_total = item.line_total
        self.line_order = item.line_order


class QuoteLineItemModel(LineItemColumns, Base):
    __tablename__ = "quote_line_items"

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_quote_line_items_quantity_positive"),
        CheckConstraint("unit_price >= 0", name="ck_quote_line_items_price_non_negative"),
        Index("idx_quote_line_items_quote", "quote_id", "line_order"),
    )

    quote_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("quotes.id", ondelete="CASCADE"),
        nullable=False,
    )

    @classmethod
    def from_dto(cls, item: LineItem) -> QuoteLineItemModel:
        model = cls(id=item.id)
        model.apply(item)
        return model

    def __repr__(self) -> str:
        return f"<QuoteLineItem {self.description!r} x{self.quantity}>"


class InvoiceLineItemModel(LineItemColumns, Base):
    __tablename__ = "invoice_line_items"

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_invoice_line_items_quantity_positive"),
        CheckConstraint("unit_price >= 0", name="ck_invoice_line_items_price_non_negative"),
        Index("idx_invoice_line_items_invoice", "invoice_id", "line_order"),
    )

    invoice_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("invoices.id", ondelete="CASCADE"),
        nullable=False,
    )

    @classmethod
    def from_dto(cls, item: LineItem) -> InvoiceLineItemModel:
        model = cls(id=item.id)
        model.apply(item)
        return model

    def __repr__(self) -> str:
        return f"<InvoiceLineItem {self.description!r} x{self.quantity}>"
