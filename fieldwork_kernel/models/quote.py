"""
Module: fieldwork_kernel.models.quote
Responsibility: ORM persistence for quotes.
Architecture position: Kernel > Models.  May import from db/ and domain/.

Invariants enforced:
    - Stored status is one of draft/sent/accepted/rejected.  ``expired`` is
      derived at read time and rejected by a check constraint.
    - document_number is unique per organization.
    - public_token is globally unique and write-once (ORM listener in
      db/immutability.py).
    - version is a SQLAlchemy version counter: a flush against a stale
      row raises StaleDataError (mapped to OptimisticLockError by services).

Failure modes:
    - IntegrityError on duplicate document number or token.
    - ImmutabilityViolationError on public_token change.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Boolean, CheckConstraint, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from fieldwork_kernel.db.base import TrackedBase, UUIDString
from fieldwork_kernel.db.types import ZERO, round_money
from fieldwork_kernel.domain.documents import (
    DepositTerms,
    DepositType,
    DocumentTotals,
    Quote,
    QuoteStatus,
)
from fieldwork_kernel.models.line_item import QuoteLineItemModel


class QuoteModel(TrackedBase):
    """
    A priced proposal for one client.

    Totals columns are a cache of the line items, rewritten by
    DocumentService every time the ledger changes.
    """

    __tablename__ = "quotes"

    __table_args__ = (
        UniqueConstraint("organization_id", "document_number", name="uq_quote_org_number"),
        CheckConstraint(
            "status IN ('draft', 'sent', 'accepted', 'rejected')",
            name="ck_quotes_valid_status",
        ),
        CheckConstraint(
            "deposit_type IS NULL OR deposit_type IN ('percentage', 'amount')",
            name="ck_quotes_valid_deposit_type",
        ),
        Index("idx_quotes_org_status", "organization_id", "status"),
        Index("idx_quotes_client", "client_id"),
    )

    organization_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    client_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    job_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    document_number: Mapped[str] = mapped_column(String(50), nullable=False)
    title: Mapped[str | None] = mapped_column(String(200), nullable=True)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=QuoteStatus.DRAFT.value,
    )
    valid_until_date: Mapped[date | None] = mapped_column(nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    subtotal: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    gst_amount: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    total_amount: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)

    deposit_required: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    deposit_type: Mapped[str | None] = mapped_column(String(20), nullable=True)
    deposit_value: Mapped[Decimal | None] = mapped_column(nullable=True)
    deposit_amount: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    deposit_paid: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    deposit_paid_at: Mapped[datetime | None] = mapped_column(nullable=True)

    # Opaque capability for the client-facing page; never listed
    public_token: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)

    sent_at: Mapped[datetime | None] = mapped_column(nullable=True)
    accepted_at: Mapped[datetime | None] = mapped_column(nullable=True)
    accepted_by_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    accepted_by_email: Mapped[str | None] = mapped_column(String(320), nullable=True)
    # Staff member who accepted on the client's behalf; None for the public page
    accepted_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    rejected_at: Mapped[datetime | None] = mapped_column(nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    version: Mapped[int] = mapped_column(nullable=False)

    line_items: Mapped[list[QuoteLineItemModel]] = relationship(
        QuoteLineItemModel,
        cascade="all, delete-orphan",
        order_by=QuoteLineItemModel.line_order,
        lazy="selectin",
    )

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return f"<Quote {self.document_number} status={self.status}>"

    @property
    def deposit_terms(self) -> DepositTerms:
        if not self.deposit_required:
            return DepositTerms(required=False)
        return DepositTerms(
            required=True,
            deposit_type=DepositType(self.deposit_type),
            value=self.deposit_value,
        )

    def to_dto(self) -> Quote:
        """Convert ORM model to frozen domain DTO."""
        return Quote(
            id=self.id,
            organization_id=self.organization_id,
            client_id=self.client_id,
            document_number=self.document_number,
            status=QuoteStatus(self.status),
            line_items=tuple(
                item.to_dto() for item in sorted(self.line_items, key=lambda i: i.line_order)
            ),
            totals=DocumentTotals(
                subtotal=round_money(self.subtotal),
                gst_amount=round_money(self.gst_amount),
                total_amount=round_money(self.total_amount),
            ),
            valid_until_date=self.valid_until_date,
            deposit=self.deposit_terms,
            deposit_amount=round_money(self.deposit_amount),
            deposit_paid=self.deposit_paid,
            public_token=self.public_token,
            version=self.version,
            title=self.title,
            notes=self.notes,
            job_id=self.job_id,
            created_at=self.created_at,
            sent_at=self.sent_at,
            accepted_at=self.accepted_at,
            accepted_by_name=self.accepted_by_name,
            accepted_by_email=self.accepted_by_email,
            accepted_by_id=self.accepted_by_id,
            rejected_at=self.rejected_at,
            rejection_reason=self.rejection_reason,
            deposit_paid_at=self.deposit_paid_at,
        )
