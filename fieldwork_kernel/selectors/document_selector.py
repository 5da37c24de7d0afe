"""
Module: fieldwork_kernel.selectors.document_selector
Responsibility: Staff-side read access to quotes, invoices and payments,
    always scoped to one organization.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - Every status returned is the *effective* status for the clock's today:
      a sent quote past valid_until_date reads as ``expired``; a sent or
      partially paid invoice past due_date reads as ``overdue``.  Nothing is
      written back.
    - A document in another organization is DocumentNotFoundError, exactly
      like an unknown id.
    - Lists are ordered newest first, then by document number.
"""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from fieldwork_kernel.domain.clock import Clock
from fieldwork_kernel.domain.documents import ActorContext, DocumentKind, Payment
from fieldwork_kernel.domain.state_machine import DocumentStateMachine
from fieldwork_kernel.domain.views import (
    InvoiceDetail,
    InvoiceSummary,
    QuoteDetail,
    QuoteSummary,
)
from fieldwork_kernel.exceptions import DocumentNotFoundError
from fieldwork_kernel.models.invoice import InvoiceModel, PaymentModel
from fieldwork_kernel.models.quote import QuoteModel
from fieldwork_kernel.selectors.base import BaseSelector


class DocumentSelector(BaseSelector[QuoteModel]):
    """
    Selector for staff document screens.

    Non-goals:
        - Free-text search and pagination belong to the host application.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock,
        state_machine: DocumentStateMachine | None = None,
    ):
        super().__init__(session)
        self._clock = clock
        self._state_machine = state_machine or DocumentStateMachine()

    def list_quotes(
        self,
        ctx: ActorContext,
        status: str | None = None,
        client_id: UUID | None = None,
    ) -> list[QuoteSummary]:
        """Quotes for the organization, optionally filtered by effective status."""
        stmt = select(QuoteModel).where(QuoteModel.organization_id == ctx.organization_id)
        if client_id is not None:
            stmt = stmt.where(QuoteModel.client_id == client_id)
        stmt = stmt.order_by(QuoteModel.created_at.desc(), QuoteModel.document_number)

        summaries = []
        for model in self.session.execute(stmt).scalars():
            quote = model.to_dto()
            effective = self._effective(DocumentKind.QUOTE, quote.status, quote.valid_until_date)
            if status is None or effective == status:
                summaries.append(QuoteSummary.from_quote(quote, effective))
        return summaries

    def list_invoices(
        self,
        ctx: ActorContext,
        status: str | None = None,
        client_id: UUID | None = None,
    ) -> list[InvoiceSummary]:
        stmt = select(InvoiceModel).where(InvoiceModel.organization_id == ctx.organization_id)
        if client_id is not None:
            stmt = stmt.where(InvoiceModel.client_id == client_id)
        stmt = stmt.order_by(InvoiceModel.created_at.desc(), InvoiceModel.document_number)

        summaries = []
        for model in self.session.execute(stmt).scalars():
            invoice = model.to_dto()
            effective = self._effective(DocumentKind.INVOICE, invoice.status, invoice.due_date)
            if status is None or effective == status:
                summaries.append(InvoiceSummary.from_invoice(invoice, effective))
        return summaries

    def get_quote(self, ctx: ActorContext, quote_id: UUID) -> QuoteDetail:
        model = self._scoped(QuoteModel, ctx, quote_id, DocumentKind.QUOTE)
        quote = model.to_dto()
        return QuoteDetail.from_quote(
            quote, self._effective(DocumentKind.QUOTE, quote.status, quote.valid_until_date)
        )

    def get_invoice(self, ctx: ActorContext, invoice_id: UUID) -> InvoiceDetail:
        model = self._scoped(InvoiceModel, ctx, invoice_id, DocumentKind.INVOICE)
        invoice = model.to_dto()
        return InvoiceDetail.from_invoice(
            invoice,
            self._effective(DocumentKind.INVOICE, invoice.status, invoice.due_date),
            tuple(p.to_dto() for p in model.payments),
        )

    def payments_for(self, ctx: ActorContext, invoice_id: UUID) -> list[Payment]:
        """Payments on one invoice in payment-date order."""
        self._scoped(InvoiceModel, ctx, invoice_id, DocumentKind.INVOICE)
        rows = self.session.execute(
            select(PaymentModel)
            .where(PaymentModel.invoice_id == invoice_id)
            .order_by(PaymentModel.payment_date, PaymentModel.created_at)
        ).scalars()
        return [row.to_dto() for row in rows]

    def _effective(self, kind: DocumentKind, status, deadline) -> str:
        return self._state_machine.effective_status(kind, status, deadline, self._clock.today())

    def _scoped(self, model_cls, ctx: ActorContext, document_id: UUID, kind: DocumentKind):
        row = self.session.execute(
            select(model_cls).where(
                model_cls.id == document_id,
                model_cls.organization_id == ctx.organization_id,
            )
        ).scalar_one_or_none()
        if row is None:
            raise DocumentNotFoundError(kind.value, str(document_id))
        return row
