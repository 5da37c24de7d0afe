"""
PublicAcceptanceGateway -- the client-facing, token-scoped surface.

Responsibility:
    Resolves an opaque public token to a read-only document view and, for
    quotes, executes the client's accept or reject.  The token is the only
    credential: there is no organization context on this path.

Architecture position:
    Kernel > Services.  Reads the same rows and totals as the staff paths;
    writes only through DocumentStateMachine transitions.

Invariants enforced:
    - Accept/reject require the *effective* status to be ``sent``; an
      expired, accepted or rejected quote reports NotActionableError.  A
      second accept therefore fails instead of overwriting the first
      acceptor's identity.
    - Accept requires a paid deposit when one is asked for.
    - Unknown tokens and undelivered (draft) documents are both
      DocumentNotFoundError, so a token reveals nothing about documents
      it does not open.
    - Tokens never appear in log records.
"""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from fieldwork_kernel.db.types import format_money, round_money
from fieldwork_kernel.domain.clock import Clock
from fieldwork_kernel.domain.documents import DocumentKind, InvoiceStatus, QuoteStatus
from fieldwork_kernel.domain.state_machine import DocumentStateMachine
from fieldwork_kernel.domain.validation import require_email, require_text
from fieldwork_kernel.domain.views import (
    DirectoryLookup,
    LineItemView,
    PaymentView,
    PublicInvoiceView,
    PublicQuoteView,
)
from fieldwork_kernel.exceptions import (
    DepositRequiredError,
    DocumentNotFoundError,
    NotActionableError,
)
from fieldwork_kernel.logging_config import LogContext, get_logger
from fieldwork_kernel.models.invoice import InvoiceModel
from fieldwork_kernel.models.quote import QuoteModel
from fieldwork_kernel.services.base import BaseService
from fieldwork_kernel.services.document_service import (
    apply_acceptance,
    apply_rejection,
    quote_context,
)
from fieldwork_kernel.services.event_recorder import TransitionEventRecorder

logger = get_logger("services.public_gateway")


def _public_log_context(model: QuoteModel):
    return LogContext.bind(
        organization_id=model.organization_id,
        document_kind=DocumentKind.QUOTE,
        document_id=model.id,
        channel="public",
    )


class PublicAcceptanceGateway(BaseService[QuoteModel]):
    """Token-addressed view/accept/reject for clients."""

    def __init__(
        self,
        session: Session,
        clock: Clock,
        state_machine: DocumentStateMachine | None = None,
        directory: DirectoryLookup | None = None,
    ):
        super().__init__(session)
        self._clock = clock
        self._state_machine = state_machine or DocumentStateMachine()
        self._directory = directory
        self._events = TransitionEventRecorder(session, clock)

    # -------------------------------------------------------------------------
    # Quotes
    # -------------------------------------------------------------------------

    def view(self, token: str) -> PublicQuoteView:
        model = self._by_token(QuoteModel, token, DocumentKind.QUOTE, lock=False)
        return self._quote_view(model)

    def accept(self, token: str, name: str, email: str) -> PublicQuoteView:
        """Client accepts the quote, recording who did it."""
        name = require_text("accepted_by_name", name)
        email = require_email("accepted_by_email", email)
        model = self._by_token(QuoteModel, token, DocumentKind.QUOTE, lock=True)

        with _public_log_context(model):
            self._require_actionable(model, "accept")
            if model.deposit_required and not model.deposit_paid:
                logger.warning(
                    "public_accept_deposit_required",
                    extra={
                        "quote_id": str(model.id),
                        "deposit_amount": format_money(model.deposit_amount),
                    },
                )
                raise DepositRequiredError(model.document_number, format_money(model.deposit_amount))

            transition = self._state_machine.transition(
                DocumentKind.QUOTE, model.id, model.status, "accept", quote_context(model)
            )
            now = self._clock.now()
            apply_acceptance(model, now, name, email)
            model.updated_at = now
            self._flush("quote", model.id)
            self._events.record(
                DocumentKind.QUOTE,
                model,
                "accepted",
                transition.from_state,
                transition.to_state,
                actor_label=f"{name} <{email}>",
                payload={"channel": "public"},
            )
            logger.info(
                "quote_accepted",
                extra={"quote_id": str(model.id)},
            )
            return self._quote_view(model)

    def reject(self, token: str, reason: str | None = None) -> PublicQuoteView:
        model = self._by_token(QuoteModel, token, DocumentKind.QUOTE, lock=True)

        with _public_log_context(model):
            self._require_actionable(model, "reject")
            transition = self._state_machine.transition(
                DocumentKind.QUOTE, model.id, model.status, "reject", quote_context(model)
            )
            now = self._clock.now()
            apply_rejection(model, now, (reason or "").strip() or None)
            model.updated_at = now
            self._flush("quote", model.id)
            self._events.record(
                DocumentKind.QUOTE,
                model,
                "rejected",
                transition.from_state,
                transition.to_state,
                payload={"channel": "public", "has_reason": model.rejection_reason is not None},
            )
            logger.info(
                "quote_rejected",
                extra={"quote_id": str(model.id)},
            )
            return self._quote_view(model)

    # -------------------------------------------------------------------------
    # Invoices
    # -------------------------------------------------------------------------

    def view_invoice(self, token: str) -> PublicInvoiceView:
        """Read-only invoice page with balances and payment history."""
        model = self._by_token(InvoiceModel, token, DocumentKind.INVOICE, lock=False)
        invoice = model.to_dto()
        status = self._state_machine.effective_status(
            DocumentKind.INVOICE, invoice.status, invoice.due_date, self._clock.today()
        )
        return PublicInvoiceView(
            document_number=invoice.document_number,
            status=status,
            line_items=tuple(LineItemView.from_item(i) for i in invoice.line_items),
            payments=tuple(PaymentView.from_payment(p.to_dto()) for p in model.payments),
            subtotal=format_money(invoice.totals.subtotal),
            gst_amount=format_money(invoice.totals.gst_amount),
            total_amount=format_money(invoice.totals.total_amount),
            paid_amount=format_money(invoice.paid_amount),
            outstanding_amount=format_money(invoice.outstanding_amount),
            due_date=invoice.due_date,
            payment_terms=invoice.payment_terms,
            notes=invoice.notes,
            organization=self._branding(model),
            client=self._client(model),
        )

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _by_token(self, model_cls, token: str, kind: DocumentKind, lock: bool):
        stmt = select(model_cls).where(model_cls.public_token == (token or ""))
        if lock:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        row = self.session.execute(stmt).scalar_one_or_none()
        draft = (QuoteStatus.DRAFT.value, InvoiceStatus.DRAFT.value)
        if row is None or row.status in draft:
            logger.warning(
                "public_token_not_resolved",
                extra={"document_kind": kind.value, "found": row is not None},
            )
            raise DocumentNotFoundError(kind.value, "public_token")
        return row

    def _effective(self, model: QuoteModel) -> str:
        return self._state_machine.effective_status(
            DocumentKind.QUOTE, model.status, model.valid_until_date, self._clock.today()
        )

    def _require_actionable(self, model: QuoteModel, action: str) -> None:
        effective = self._effective(model)
        if effective != QuoteStatus.SENT.value:
            logger.warning(
                "public_action_not_actionable",
                extra={"quote_id": str(model.id), "action": action, "effective_status": effective},
            )
            raise NotActionableError(model.document_number, effective)

    def _quote_view(self, model: QuoteModel) -> PublicQuoteView:
        quote = model.to_dto()
        status = self._effective(model)
        actionable = status == QuoteStatus.SENT.value
        deposit_due = quote.deposit.required and not quote.deposit_paid
        return PublicQuoteView(
            document_number=quote.document_number,
            title=quote.title,
            status=status,
            line_items=tuple(LineItemView.from_item(i) for i in quote.line_items),
            subtotal=format_money(quote.totals.subtotal),
            gst_amount=format_money(quote.totals.gst_amount),
            total_amount=format_money(quote.totals.total_amount),
            valid_until_date=quote.valid_until_date,
            deposit_required=quote.deposit.required,
            deposit_amount=format_money(round_money(quote.deposit_amount)) if quote.deposit.required else None,
            deposit_paid=quote.deposit_paid,
            can_accept=actionable and not deposit_due,
            can_reject=actionable,
            notes=quote.notes,
            accepted_at=quote.accepted_at,
            accepted_by_name=quote.accepted_by_name,
            rejected_at=quote.rejected_at,
            organization=self._branding(model),
            client=self._client(model),
        )

    def _branding(self, model):
        if self._directory is None:
            return None
        return self._directory.organization_branding(model.organization_id)

    def _client(self, model):
        if self._directory is None:
            return None
        return self._directory.client_contact(model.client_id)
