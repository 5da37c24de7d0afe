"""
Module: fieldwork_kernel.models.invoice
Responsibility: ORM persistence for invoices and the payments against them.
Architecture position: Kernel > Models.  May import from db/ and domain/.

Invariants enforced:
    - Stored status is one of draft/sent/partially_paid/paid/cancelled.
      ``overdue`` is derived at read time and rejected by a check constraint.
    - 0 <= paid_amount <= total_amount (check constraint; PaymentRecorder
      enforces it first and reports OverpaymentError).
    - Payments are append-only (ORM listener in db/immutability.py).
    - version is a SQLAlchemy version counter (optimistic concurrency).

Failure modes:
    - IntegrityError on duplicate document number or token, or on a paid
      amount outside [0, total].
    - ImmutabilityViolationError on payment UPDATE/DELETE or token change.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import CheckConstraint, ForeignKey, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from fieldwork_kernel.db.base import TrackedBase, UUIDString
from fieldwork_kernel.db.types import ZERO, round_money
from fieldwork_kernel.domain.documents import (
    DocumentTotals,
    Invoice,
    InvoiceStatus,
    Payment,
    PaymentMethod,
)
from fieldwork_kernel.models.line_item import InvoiceLineItemModel


class PaymentModel(TrackedBase):
    """Money received against an invoice.  Append-only."""

    __tablename__ = "invoice_payments"

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_invoice_payments_amount_positive"),
        CheckConstraint(
            "method IN ('bank_transfer', 'cash', 'card', 'cheque', 'other')",
            name="ck_invoice_payments_valid_method",
        ),
        Index("idx_invoice_payments_invoice", "invoice_id", "payment_date"),
    )

    invoice_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("invoices.id"),
        nullable=False,
    )
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    payment_date: Mapped[date] = mapped_column(nullable=False)
    method: Mapped[str] = mapped_column(String(20), nullable=False)
    reference_number: Mapped[str | None] = mapped_column(String(100), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return f"<Payment {self.amount} on {self.payment_date}>"

    def to_dto(self) -> Payment:
        return Payment(
            id=self.id,
            invoice_id=self.invoice_id,
            amount=round_money(self.amount),
            payment_date=self.payment_date,
            method=PaymentMethod(self.method),
            reference_number=self.reference_number,
            notes=self.notes,
            recorded_by_id=self.created_by_id,
        )


class InvoiceModel(TrackedBase):
    """
    A bill for one client.

    Totals columns are a cache of the line items; paid_amount is the running
    sum of payments and only PaymentRecorder writes it.
    """

    __tablename__ = "invoices"

    __table_args__ = (
        UniqueConstraint("organization_id", "document_number", name="uq_invoice_org_number"),
        CheckConstraint(
            "status IN ('draft', 'sent', 'partially_paid', 'paid', 'cancelled')",
            name="ck_invoices_valid_status",
        ),
        CheckConstraint("paid_amount >= 0", name="ck_invoices_paid_non_negative"),
        CheckConstraint("paid_amount <= total_amount", name="ck_invoices_not_overpaid"),
        Index("idx_invoices_org_status", "organization_id", "status"),
        Index("idx_invoices_client", "client_id"),
    )

    organization_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    client_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    job_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    quote_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("quotes.id"), nullable=True,
    )

    document_number: Mapped[str] = mapped_column(String(50), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=InvoiceStatus.DRAFT.value,
    )
    due_date: Mapped[date | None] = mapped_column(nullable=True)
    payment_terms: Mapped[str | None] = mapped_column(String(200), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    subtotal: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    gst_amount: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    total_amount: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    paid_amount: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)

    public_token: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)

    sent_at: Mapped[datetime | None] = mapped_column(nullable=True)
    paid_at: Mapped[datetime | None] = mapped_column(nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(nullable=True)

    version: Mapped[int] = mapped_column(nullable=False)

    line_items: Mapped[list[InvoiceLineItemModel]] = relationship(
        InvoiceLineItemModel,
        cascade="all, delete-orphan",
        order_by=InvoiceLineItemModel.line_order,
        lazy="selectin",
    )

    payments: Mapped[list[PaymentModel]] = relationship(
        PaymentModel,
        order_by=[PaymentModel.payment_date, PaymentModel.created_at],
        lazy="selectin",
    )

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return f"<Invoice {self.document_number} status={self.status}>"

    def to_dto(self) -> Invoice:
        """Convert ORM model to frozen domain DTO."""
        return Invoice(
            id=self.id,
            organization_id=self.organization_id,
            client_id=self.client_id,
            document_number=self.document_number,
            status=InvoiceStatus(self.status),
            line_items=tuple(
                item.to_dto() for item in sorted(self.line_items, key=lambda i: i.line_order)
            ),
            totals=DocumentTotals(
                subtotal=round_money(self.subtotal),
                gst_amount=round_money(self.gst_amount),
                total_amount=round_money(self.total_amount),
            ),
            due_date=self.due_date,
            paid_amount=round_money(self.paid_amount),
            public_token=self.public_token,
            version=self.version,
            payment_terms=self.payment_terms,
            notes=self.notes,
            job_id=self.job_id,
            quote_id=self.quote_id,
            created_at=self.created_at,
            sent_at=self.sent_at,
            paid_at=self.paid_at,
            cancelled_at=self.cancelled_at,
        )
