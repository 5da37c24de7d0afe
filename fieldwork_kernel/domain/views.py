"""
Read models handed to callers: staff lists and details, and the client-facing
public pages.

All money on a view is already a 2-dp string and every status is the
*effective* status.  List summaries never carry the public token.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Protocol
from uuid import UUID

from fieldwork_kernel.db.types import format_money, format_quantity
from fieldwork_kernel.domain.documents import Invoice, LineItem, Payment, Quote
from fieldwork_kernel.domain.serialization import to_payload


class _View:
    def to_dict(self) -> dict[str, Any]:
        return to_payload(self)


@dataclass(frozen=True)
class LineItemView(_View):
    id: UUID
    item_type: str
    description: str
    quantity: str
    unit_price: str
    line_subtotal: str
    gst_amount: str
    line_total: str
    line_order: int

    @classmethod
    def from_item(cls, item: LineItem) -> LineItemView:
        return cls(
            id=item.id,
            item_type=item.item_type.value,
            description=item.description,
            quantity=format_quantity(item.quantity),
            unit_price=format_money(item.unit_price),
            line_subtotal=format_money(item.line_subtotal),
            gst_amount=format_money(item.gst_amount),
            line_total=format_money(item.line_total),
            line_order=item.line_order,
        )


@dataclass(frozen=True)
class PaymentView(_View):
    id: UUID
    amount: str
    payment_date: date
    method: str
    reference_number: str | None = None

    @classmethod
    def from_payment(cls, payment: Payment) -> PaymentView:
        return cls(
            id=payment.id,
            amount=format_money(payment.amount),
            payment_date=payment.payment_date,
            method=payment.method.value,
            reference_number=payment.reference_number,
        )


# -----------------------------------------------------------------------------
# Staff views
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class QuoteSummary(_View):
    id: UUID
    document_number: str
    client_id: UUID
    title: str | None
    status: str
    total_amount: str
    valid_until_date: date | None
    created_at: datetime | None

    @classmethod
    def from_quote(cls, quote: Quote, effective_status: str) -> QuoteSummary:
        return cls(
            id=quote.id,
            document_number=quote.document_number,
            client_id=quote.client_id,
            title=quote.title,
            status=effective_status,
            total_amount=format_money(quote.totals.total_amount),
            valid_until_date=quote.valid_until_date,
            created_at=quote.created_at,
        )


@dataclass(frozen=True)
class InvoiceSummary(_View):
    id: UUID
    document_number: str
    client_id: UUID
    status: str
    total_amount: str
    paid_amount: str
    outstanding_amount: str
    due_date: date | None
    created_at: datetime | None

    @classmethod
    def from_invoice(cls, invoice: Invoice, effective_status: str) -> InvoiceSummary:
        return cls(
            id=invoice.id,
            document_number=invoice.document_number,
            client_id=invoice.client_id,
            status=effective_status,
            total_amount=format_money(invoice.totals.total_amount),
            paid_amount=format_money(invoice.paid_amount),
            outstanding_amount=format_money(invoice.outstanding_amount),
            due_date=invoice.due_date,
            created_at=invoice.created_at,
        )


@dataclass(frozen=True)
class QuoteDetail(_View):
    id: UUID
    document_number: str
    client_id: UUID
    job_id: UUID | None
    title: str | None
    status: str
    stored_status: str
    line_items: tuple[LineItemView, ...]
    subtotal: str
    gst_amount: str
    total_amount: str
    valid_until_date: date | None
    deposit_required: bool
    deposit_type: str | None
    deposit_amount: str
    deposit_paid: bool
    public_token: str
    notes: str | None
    sent_at: datetime | None
    accepted_at: datetime | None
    accepted_by_name: str | None
    accepted_by_email: str | None
    accepted_by_id: UUID | None
    rejected_at: datetime | None
    rejection_reason: str | None
    version: int

    @classmethod
    def from_quote(cls, quote: Quote, effective_status: str) -> QuoteDetail:
        return cls(
            id=quote.id,
            document_number=quote.document_number,
            client_id=quote.client_id,
            job_id=quote.job_id,
            title=quote.title,
            status=effective_status,
            stored_status=quote.status.value,
            line_items=tuple(LineItemView.from_item(i) for i in quote.line_items),
            subtotal=format_money(quote.totals.subtotal),
            gst_amount=format_money(quote.totals.gst_amount),
            total_amount=format_money(quote.totals.total_amount),
            valid_until_date=quote.valid_until_date,
            deposit_required=quote.deposit.required,
            deposit_type=quote.deposit.deposit_type.value if quote.deposit.deposit_type else None,
            deposit_amount=format_money(quote.deposit_amount),
            deposit_paid=quote.deposit_paid,
            public_token=quote.public_token,
            notes=quote.notes,
            sent_at=quote.sent_at,
            accepted_at=quote.accepted_at,
            accepted_by_name=quote.accepted_by_name,
            accepted_by_email=quote.accepted_by_email,
            accepted_by_id=quote.accepted_by_id,
            rejected_at=quote.rejected_at,
            rejection_reason=quote.rejection_reason,
            version=quote.version,
        )


@dataclass(frozen=True)
class InvoiceDetail(_View):
    id: UUID
    document_number: str
    client_id: UUID
    job_id: UUID | None
    quote_id: UUID | None
    status: str
    stored_status: str
    line_items: tuple[LineItemView, ...]
    payments: tuple[PaymentView, ...]
    subtotal: str
    gst_amount: str
    total_amount: str
    paid_amount: str
    outstanding_amount: str
    due_date: date | None
    payment_terms: str | None
    public_token: str
    notes: str | None
    sent_at: datetime | None
    paid_at: datetime | None
    cancelled_at: datetime | None
    version: int

    @classmethod
    def from_invoice(
        cls, invoice: Invoice, effective_status: str, payments: tuple[Payment, ...] = ()
    ) -> InvoiceDetail:
        return cls(
            id=invoice.id,
            document_number=invoice.document_number,
            client_id=invoice.client_id,
            job_id=invoice.job_id,
            quote_id=invoice.quote_id,
            status=effective_status,
            stored_status=invoice.status.value,
            line_items=tuple(LineItemView.from_item(i) for i in invoice.line_items),
            payments=tuple(PaymentView.from_payment(p) for p in payments),
            subtotal=format_money(invoice.totals.subtotal),
            gst_amount=format_money(invoice.totals.gst_amount),
            total_amount=format_money(invoice.totals.total_amount),
            paid_amount=format_money(invoice.paid_amount),
            outstanding_amount=format_money(invoice.outstanding_amount),
            due_date=invoice.due_date,
            payment_terms=invoice.payment_terms,
            public_token=invoice.public_token,
            notes=invoice.notes,
            sent_at=invoice.sent_at,
            paid_at=invoice.paid_at,
            cancelled_at=invoice.cancelled_at,
            version=invoice.version,
        )


# -----------------------------------------------------------------------------
# Public (token-scoped) views
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class OrganizationBranding(_View):
    """How the issuing business presents itself on the public page."""
    name: str
    logo_url: str | None = None
    address: str | None = None
    abn: str | None = None
    phone: str | None = None
    email: str | None = None
    bank_details: str | None = None


@dataclass(frozen=True)
class ClientContact(_View):
    name: str
    email: str | None = None
    phone: str | None = None


class DirectoryLookup(Protocol):
    """Read-only lookups owned by the surrounding application."""

    def organization_branding(self, organization_id: UUID) -> OrganizationBranding | None: ...

    def client_contact(self, client_id: UUID) -> ClientContact | None: ...


@dataclass(frozen=True)
class PublicQuoteView(_View):
    document_number: str
    title: str | None
    status: str
    line_items: tuple[LineItemView, ...]
    subtotal: str
    gst_amount: str
    total_amount: str
    valid_until_date: date | None
    deposit_required: bool
    deposit_amount: str | None
    deposit_paid: bool
    can_accept: bool
    can_reject: bool
    notes: str | None = None
    accepted_at: datetime | None = None
    accepted_by_name: str | None = None
    rejected_at: datetime | None = None
    organization: OrganizationBranding | None = None
    client: ClientContact | None = None


@dataclass(frozen=True)
class PublicInvoiceView(_View):
    document_number: str
    status: str
    line_items: tuple[LineItemView, ...]
    payments: tuple[PaymentView, ...]
    subtotal: str
    gst_amount: str
    total_amount: str
    paid_amount: str
    outstanding_amount: str
    due_date: date | None
    payment_terms: str | None
    notes: str | None = None
    organization: OrganizationBranding | None = None
    client: ClientContact | None = None
