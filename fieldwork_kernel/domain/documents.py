"""
Document Domain Models (``fieldwork_kernel.domain.documents``).

Responsibility
--------------
Frozen dataclass value objects for the nouns of the document engine: line
items, totals, quotes, invoices, payments and transition events, plus the
status enums for each document kind.

Quotes and invoices are two tagged variants.  They share the
``SendableDocument`` capability (line items, totals, a deadline, a status)
but not a base class: their workflows and fields genuinely differ.

Architecture position
---------------------
**Kernel domain layer** -- pure data definitions with ZERO I/O.  Returned by
services and selectors; produced from ORM rows via ``to_dto()``.

Invariants enforced
-------------------
* All models are ``frozen=True``.
* All monetary fields use ``Decimal`` -- NEVER ``float``.
* ``LineItem`` derived amounts are computed in ``__post_init__`` from
  quantity, unit price and GST rate; they cannot be passed in.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Protocol
from uuid import UUID

from fieldwork_kernel.db.types import ZERO, round_money
from fieldwork_kernel.domain.validation import (
    require_non_negative,
    require_positive,
    require_precision,
    require_text,
)
from fieldwork_kernel.exceptions import ValidationError

DEFAULT_GST_RATE = Decimal("0.10")

# Quantity and unit price are stored at scale 9; finer input would not
# survive a reload, and q*p must stay exact within that scale.
LINE_INPUT_DECIMAL_PLACES = 4


class DocumentKind(str, Enum):
    QUOTE = "quote"
    INVOICE = "invoice"


class ItemType(str, Enum):
    """What a line item bills for."""
    LABOR = "labor"
    MATERIAL = "material"
    EQUIPMENT = "equipment"
    FEE = "fee"
    OTHER = "other"


class QuoteStatus(str, Enum):
    """Quote lifecycle states.  EXPIRED is derived at read time, never stored."""
    DRAFT = "draft"
    SENT = "sent"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    EXPIRED = "expired"


class InvoiceStatus(str, Enum):
    """Invoice lifecycle states.  OVERDUE is derived at read time, never stored."""
    DRAFT = "draft"
    SENT = "sent"
    PARTIALLY_PAID = "partially_paid"
    PAID = "paid"
    OVERDUE = "overdue"
    CANCELLED = "cancelled"


class DepositType(str, Enum):
    PERCENTAGE = "percentage"
    AMOUNT = "amount"


class PaymentMethod(str, Enum):
    BANK_TRANSFER = "bank_transfer"
    CASH = "cash"
    CARD = "card"
    CHEQUE = "cheque"
    OTHER = "other"


@dataclass(frozen=True)
class ActorContext:
    """Who is acting, and on behalf of which organization.

    Passed explicitly into every staff operation; the engine never reads an
    ambient "current organization".
    """
    organization_id: UUID
    actor_id: UUID


def parse_item_type(value: ItemType | str) -> ItemType:
    try:
        return ItemType(value)
    except ValueError as exc:
        raise ValidationError("item_type", f"unknown item type {value!r}") from exc


def parse_deposit_type(value: DepositType | str) -> DepositType:
    try:
        return DepositType(value)
    except ValueError as exc:
        raise ValidationError("deposit_type", f"unknown deposit type {value!r}") from exc


@dataclass(frozen=True)
class LineItem:
    """A single billable line on a quote or invoice.

    ``line_subtotal``, ``gst_amount`` and ``line_total`` are always derived
    from ``quantity``, ``unit_price`` and ``gst_rate``.  Use
    ``dataclasses.replace`` to change an input; the derived amounts follow.
    """
    id: UUID
    item_type: ItemType
    description: str
    quantity: Decimal
    unit_price: Decimal
    line_order: int
    gst_rate: Decimal = DEFAULT_GST_RATE
    line_subtotal: Decimal = field(init=False)
    gst_amount: Decimal = field(init=False)
    line_total: Decimal = field(init=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "item_type", parse_item_type(self.item_type))
        object.__setattr__(self, "description", require_text("description", self.description))
        quantity = require_precision(
            "quantity", require_positive("quantity", self.quantity), LINE_INPUT_DECIMAL_PLACES,
        )
        unit_price = require_precision(
            "unit_price",
            require_non_negative("unit_price", self.unit_price),
            LINE_INPUT_DECIMAL_PLACES,
        )
        object.__setattr__(self, "quantity", quantity)
        object.__setattr__(self, "unit_price", unit_price)

        raw = quantity * unit_price
        line_subtotal = round_money(raw)
        # Round the gross once so line_total == round(q*p*(1+rate), 2) exactly;
        # GST is the remainder.
        line_total = round_money(raw + raw * self.gst_rate)
        object.__setattr__(self, "line_subtotal", line_subtotal)
        object.__setattr__(self, "line_total", line_total)
        object.__setattr__(self, "gst_amount", line_total - line_subtotal)


@dataclass(frozen=True)
class LineItemSpec:
    """Caller input for a new line item; values are validated by the ledger."""
    item_type: ItemType | str
    description: str
    quantity: Any
    unit_price: Any
    line_order: int | None = None


@dataclass(frozen=True)
class DocumentTotals:
    """Aggregated money for one document."""
    subtotal: Decimal = ZERO
    gst_amount: Decimal = ZERO
    total_amount: Decimal = ZERO


@dataclass(frozen=True)
class DepositTerms:
    """Client down-payment requirement attached to a quote."""
    required: bool = False
    deposit_type: DepositType | None = None
    value: Decimal | None = None


class SendableDocument(Protocol):
    """Capability shared by quotes and invoices."""

    @property
    def kind(self) -> DocumentKind: ...

    @property
    def id(self) -> UUID: ...

    @property
    def document_number(self) -> str: ...

    @property
    def line_items(self) -> tuple[LineItem, ...]: ...

    @property
    def totals(self) -> DocumentTotals: ...

    @property
    def deadline(self) -> date | None: ...


@dataclass(frozen=True)
class Quote:
    """A priced proposal sent to a client for acceptance."""
    id: UUID
    organization_id: UUID
    client_id: UUID
    document_number: str
    status: QuoteStatus
    line_items: tuple[LineItem, ...]
    totals: DocumentTotals
    valid_until_date: date | None
    deposit: DepositTerms
    deposit_amount: Decimal
    deposit_paid: bool
    public_token: str
    version: int
    title: str | None = None
    notes: str | None = None
    job_id: UUID | None = None
    created_at: datetime | None = None
    sent_at: datetime | None = None
    accepted_at: datetime | None = None
    accepted_by_name: str | None = None
    accepted_by_email: str | None = None
    accepted_by_id: UUID | None = None
    rejected_at: datetime | None = None
    rejection_reason: str | None = None
    deposit_paid_at: datetime | None = None

    @property
    def kind(self) -> DocumentKind:
        return DocumentKind.QUOTE

    @property
    def deadline(self) -> date | None:
        return self.valid_until_date


@dataclass(frozen=True)
class Invoice:
    """A bill issued to a client; payments reduce its outstanding balance."""
    id: UUID
    organization_id: UUID
    client_id: UUID
    document_number: str
    status: InvoiceStatus
    line_items: tuple[LineItem, ...]
    totals: DocumentTotals
    due_date: date | None
    paid_amount: Decimal
    public_token: str
    version: int
    payment_terms: str | None = None
    notes: str | None = None
    job_id: UUID | None = None
    quote_id: UUID | None = None
    created_at: datetime | None = None
    sent_at: datetime | None = None
    paid_at: datetime | None = None
    cancelled_at: datetime | None = None

    @property
    def kind(self) -> DocumentKind:
        return DocumentKind.INVOICE

    @property
    def deadline(self) -> date | None:
        return self.due_date

    @property
    def outstanding_amount(self) -> Decimal:
        return self.totals.total_amount - self.paid_amount


@dataclass(frozen=True)
class Payment:
    """Money received against one invoice.  Immutable once recorded."""
    id: UUID
    invoice_id: UUID
    amount: Decimal
    payment_date: date
    method: PaymentMethod
    reference_number: str | None = None
    notes: str | None = None
    recorded_by_id: UUID | None = None


@dataclass(frozen=True)
class DocumentEvent:
    """A committed state change that outside collaborators may react to."""
    seq: int
    event_type: str
    document_kind: DocumentKind
    document_id: UUID
    organization_id: UUID
    document_number: str
    from_status: str | None
    to_status: str | None
    occurred_at: datetime
    actor_id: UUID | None = None
    actor_label: str | None = None
    payload: dict = field(default_factory=dict)
