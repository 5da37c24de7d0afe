"""
DocumentService -- staff write paths for quotes and invoices.

Responsibility:
    Creates documents, edits their line items (through VariationPolicy
    once they have left draft), manages quote deposits, and performs the
    staff-driven status transitions.  Every change is validated by the pure
    domain layer first and only then written to the ORM rows.

Architecture position:
    Kernel > Services -- imperative shell around LineItemLedger,
    TotalsCalculator, DocumentStateMachine and VariationPolicy.

Invariants enforced:
    - Every write loads the document with ``SELECT ... FOR UPDATE`` scoped
      to the caller's organization; the row's version counter catches any
      writer that slipped past the lock.
    - Totals columns are rewritten from the reconciled ledger on every edit.
    - Status columns only change through a transition the state machine
      resolved; every change appends a DocumentEvent in the same flush.
    - A rejected operation raises before any ORM attribute is touched.

Failure modes:
    - DocumentNotFoundError, ValidationError, IllegalTransitionError,
      GuardFailedError, DecisionRequiredError, OptimisticLockError,
      DocumentInUseError.
"""

from __future__ import annotations

import dataclasses
import secrets
from collections.abc import Iterable
from datetime import date, timedelta
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.orm import Session

from fieldwork_kernel.db.types import ZERO, format_money, round_money
from fieldwork_kernel.domain.clock import Clock
from fieldwork_kernel.domain.documents import (
    ActorContext,
    DepositTerms,
    DocumentKind,
    DocumentTotals,
    Invoice,
    InvoiceStatus,
    LineItemSpec,
    Quote,
    QuoteStatus,
)
from fieldwork_kernel.domain.line_items import LineItemLedger
from fieldwork_kernel.domain.settings import DocumentSettings
from fieldwork_kernel.domain.state_machine import (
    RESET_FOR_REAPPROVAL,
    DocumentStateMachine,
    TransitionContext,
)
from fieldwork_kernel.domain.totals import TotalsCalculator
from fieldwork_kernel.domain.validation import require_email, require_text
from fieldwork_kernel.domain.variation import (
    AddLineItem,
    LineItemChange,
    RemoveLineItem,
    UpdateLineItem,
    VariationDecision,
    VariationPolicy,
    VariationProposal,
)
from fieldwork_kernel.domain.workflow import Transition
from fieldwork_kernel.exceptions import (
    DocumentInUseError,
    DocumentNotFoundError,
    IllegalTransitionError,
    ValidationError,
)
from fieldwork_kernel.logging_config import get_logger
from fieldwork_kernel.models.invoice import InvoiceModel
from fieldwork_kernel.models.line_item import InvoiceLineItemModel, QuoteLineItemModel
from fieldwork_kernel.models.quote import QuoteModel
from fieldwork_kernel.services.base import BaseService
from fieldwork_kernel.services.event_recorder import TransitionEventRecorder
from fieldwork_kernel.services.sequence_service import SequenceService

logger = get_logger("services.documents")

# Outbox event name per action; payment-driven moves are named by target state.
_EVENT_FOR_ACTION = {
    "send": "sent",
    "accept": "accepted",
    "reject": "rejected",
    "cancel": "cancelled",
    RESET_FOR_REAPPROVAL: "reset_for_reapproval",
}


def transition_event_name(transition: Transition) -> str:
    return _EVENT_FOR_ACTION.get(transition.action, transition.to_state)


def quote_context(model: QuoteModel) -> TransitionContext:
    return TransitionContext(
        line_item_count=len(model.line_items),
        total_amount=round_money(model.total_amount),
    )


def invoice_context(model: InvoiceModel) -> TransitionContext:
    return TransitionContext(
        line_item_count=len(model.line_items),
        has_due_date=model.due_date is not None,
        paid_amount=round_money(model.paid_amount),
        total_amount=round_money(model.total_amount),
    )


def apply_acceptance(
    model: QuoteModel,
    when,
    name: str | None,
    email: str | None,
    actor_id: UUID | None = None,
) -> None:
    """Stamp an acceptance onto a quote row that the state machine cleared."""
    model.status = QuoteStatus.ACCEPTED.value
    model.accepted_at = when
    model.accepted_by_name = name
    model.accepted_by_email = email
    model.accepted_by_id = actor_id


def apply_rejection(model: QuoteModel, when, reason: str | None) -> None:
    model.status = QuoteStatus.REJECTED.value
    model.rejected_at = when
    model.rejection_reason = reason


class DocumentService(BaseService[QuoteModel]):
    """
    Staff operations on quotes and invoices.

    Usage:
        with session_scope() as session:
            service = DocumentService(session, clock, settings)
            quote = service.create_quote(ctx, client_id)
            quote = service.add_line_item(ctx, DocumentKind.QUOTE, quote.id, spec)
            quote = service.send_quote(ctx, quote.id)
    """

    def __init__(
        self,
        session: Session,
        clock: Clock,
        settings: DocumentSettings | None = None,
        state_machine: DocumentStateMachine | None = None,
        calculator: TotalsCalculator | None = None,
        variation_policy: VariationPolicy | None = None,
    ):
        super().__init__(session)
        self._clock = clock
        self._settings = settings or DocumentSettings()
        self._state_machine = state_machine or DocumentStateMachine()
        self._calculator = calculator or TotalsCalculator()
        self._variations = variation_policy or VariationPolicy(
            self._state_machine, self._calculator
        )
        self._sequence = SequenceService(session)
        self._events = TransitionEventRecorder(session, clock)

    # =========================================================================
    # Creation
    # =========================================================================

    def create_quote(
        self,
        ctx: ActorContext,
        client_id: UUID,
        valid_until_date: date | None = None,
        notes: str | None = None,
        title: str | None = None,
        job_id: UUID | None = None,
        deposit: DepositTerms | None = None,
    ) -> Quote:
        """Open a draft quote with an empty ledger and a fresh public token."""
        terms = self._calculator.validate_deposit_terms(deposit or DepositTerms())
        today = self._clock.today()
        now = self._clock.now()
        if valid_until_date is None:
            valid_until_date = today + timedelta(days=self._settings.default_quote_validity_days)

        model = QuoteModel(
            id=uuid4(),
            organization_id=ctx.organization_id,
            client_id=client_id,
            job_id=job_id,
            document_number=self._next_number(DocumentKind.QUOTE, ctx, today),
            title=title,
            status=QuoteStatus.DRAFT.value,
            valid_until_date=valid_until_date,
            notes=notes,
            subtotal=ZERO,
            gst_amount=ZERO,
            total_amount=ZERO,
            deposit_paid=False,
            public_token=self._new_token(),
            created_at=now,
            updated_at=now,
            created_by_id=ctx.actor_id,
        )
        self._store_deposit_terms(model, terms)
        self.session.add(model)
        self._flush("Quote", model.id)
        self._events.record(
            DocumentKind.QUOTE, model, "created", None, model.status, actor_id=ctx.actor_id
        )
        logger.info(
            "quote_created",
            extra={
                "quote_id": str(model.id),
                "document_number": model.document_number,
                "valid_until_date": valid_until_date.isoformat(),
                "deposit_required": terms.required,
            },
        )
        return model.to_dto()

    def create_invoice(
        self,
        ctx: ActorContext,
        client_id: UUID,
        due_date: date | None = None,
        payment_terms: str | None = None,
        notes: str | None = None,
        job_id: UUID | None = None,
        quote_id: UUID | None = None,
    ) -> Invoice:
        """Open a draft invoice.  ``due_date`` defaults to today + payment terms."""
        if quote_id is not None:
            self._get_scoped(QuoteModel, ctx, quote_id, DocumentKind.QUOTE)
        model = self._new_invoice(ctx, client_id, due_date, payment_terms, notes, job_id, quote_id)
        self._flush("Invoice", model.id)
        self._events.record(
            DocumentKind.INVOICE, model, "created", None, model.status, actor_id=ctx.actor_id
        )
        logger.info(
            "invoice_created",
            extra={
                "invoice_id": str(model.id),
                "document_number": model.document_number,
                "due_date": model.due_date.isoformat() if model.due_date else None,
            },
        )
        return model.to_dto()

    def create_invoice_from_quote(
        self,
        ctx: ActorContext,
        quote_id: UUID,
        due_date: date | None = None,
        payment_terms: str | None = None,
    ) -> Invoice:
        """Copy an accepted quote's lines into a new draft invoice."""
        quote = self._lock(QuoteModel, ctx, quote_id, DocumentKind.QUOTE.value)
        if quote.status != QuoteStatus.ACCEPTED.value:
            logger.warning(
                "quote_conversion_rejected",
                extra={"quote_id": str(quote.id), "status": quote.status},
            )
            raise IllegalTransitionError(
                DocumentKind.QUOTE.value, str(quote.id), quote.status, "convert_to_invoice"
            )

        model = self._new_invoice(
            ctx, quote.client_id, due_date, payment_terms, quote.notes, quote.job_id, quote.id
        )
        ledger = LineItemLedger(
            (dataclasses.replace(row.to_dto(), id=uuid4()) for row in quote.line_items),
            gst_rate=self._settings.gst_rate,
        )
        self._write_ledger(model, ledger)
        self._write_totals(model, self._calculator.reconcile(ledger))
        self._flush("Invoice", model.id)
        self._events.record(
            DocumentKind.INVOICE,
            model,
            "created",
            None,
            model.status,
            actor_id=ctx.actor_id,
            payload={"quote_id": str(quote.id), "quote_number": quote.document_number},
        )
        logger.info(
            "invoice_created_from_quote",
            extra={
                "invoice_id": str(model.id),
                "document_number": model.document_number,
                "quote_id": str(quote.id),
                "total_amount": format_money(model.total_amount),
            },
        )
        return model.to_dto()

    # =========================================================================
    # Header details
    # =========================================================================

    def update_quote(
        self,
        ctx: ActorContext,
        quote_id: UUID,
        valid_until_date: date | None = None,
        title: str | None = None,
        notes: str | None = None,
    ) -> Quote:
        """
        Change a draft quote's validity date, title or notes.

        ``None`` leaves a field as it is; an empty string clears title or
        notes.  A quote reset for re-approval is a draft again, so this is
        how it gets a fresh validity date before being re-sent.
        """
        model = self._lock(QuoteModel, ctx, quote_id, DocumentKind.QUOTE.value)
        self._require_draft(DocumentKind.QUOTE, model, "update_details")
        if valid_until_date is not None and valid_until_date < self._clock.today():
            raise ValidationError("valid_until_date", "is already in the past", valid_until_date)

        if valid_until_date is not None:
            model.valid_until_date = valid_until_date
        if title is not None:
            model.title = title.strip() or None
        if notes is not None:
            model.notes = notes.strip() or None
        self._touch(model, ctx)
        self._flush("Quote", model.id)
        logger.info(
            "quote_updated",
            extra={
                "quote_id": str(model.id),
                "valid_until_date": (
                    model.valid_until_date.isoformat() if model.valid_until_date else None
                ),
            },
        )
        return model.to_dto()

    def update_invoice(
        self,
        ctx: ActorContext,
        invoice_id: UUID,
        due_date: date | None = None,
        payment_terms: str | None = None,
        notes: str | None = None,
    ) -> Invoice:
        """Change a draft invoice's due date, payment terms or notes."""
        model = self._lock(InvoiceModel, ctx, invoice_id, DocumentKind.INVOICE.value)
        self._require_draft(DocumentKind.INVOICE, model, "update_details")
        terms = require_text("payment_terms", payment_terms) if payment_terms is not None else None

        if due_date is not None:
            model.due_date = due_date
        if terms is not None:
            model.payment_terms = terms
        if notes is not None:
            model.notes = notes.strip() or None
        self._touch(model, ctx)
        self._flush("Invoice", model.id)
        logger.info(
            "invoice_updated",
            extra={
                "invoice_id": str(model.id),
                "due_date": model.due_date.isoformat() if model.due_date else None,
            },
        )
        return model.to_dto()

    # =========================================================================
    # Line items and variations
    # =========================================================================

    def propose_edit(
        self,
        ctx: ActorContext,
        kind: DocumentKind,
        document_id: UUID,
        changes: Iterable[LineItemChange],
    ) -> VariationProposal:
        """Tell the caller whether ``changes`` need a reconciliation decision."""
        kind = DocumentKind(kind)
        model = self._get_scoped(self._model_for(kind), ctx, document_id, kind)
        return self._variations.propose_edit(kind, model.id, model.status, changes)

    def edit_line_items(
        self,
        ctx: ActorContext,
        kind: DocumentKind,
        document_id: UUID,
        changes: Iterable[LineItemChange],
        decision: VariationDecision | str | None = None,
    ) -> Quote | Invoice:
        """
        Apply ``changes`` all-or-nothing.

        Draft documents take them directly.  Otherwise ``decision`` must be
        given; without it DecisionRequiredError is raised and nothing on the
        document changes.
        """
        kind = DocumentKind(kind)
        model = self._lock_document(ctx, kind, document_id)
        paid_amount = round_money(model.paid_amount) if kind == DocumentKind.INVOICE else ZERO
        previous_total = round_money(model.total_amount)

        outcome = self._variations.apply(
            kind,
            model.id,
            model.status,
            self._ledger_for(model),
            changes,
            decision=decision,
            paid_amount=paid_amount,
        )

        deposit_amount = None
        if kind == DocumentKind.QUOTE:
            deposit_amount = self._deposit_for(
                model,
                outcome.totals.total_amount,
                enforce=outcome.to_status != QuoteStatus.DRAFT.value,
            )

        self._write_ledger(model, outcome.ledger)
        self._write_totals(model, outcome.totals)
        if deposit_amount is not None:
            model.deposit_amount = deposit_amount
        if outcome.transition is not None:
            self._apply_variation_transition(model, outcome.transition)
        self._touch(model, ctx)
        self._flush(kind.value, model.id)

        if outcome.decision is not None:
            self._events.record(
                kind,
                model,
                "variation_applied",
                outcome.from_status,
                outcome.to_status,
                actor_id=ctx.actor_id,
                payload={
                    "decision": outcome.decision.value,
                    "previous_total": format_money(previous_total),
                    "total_amount": format_money(outcome.totals.total_amount),
                },
            )
        if outcome.transition is not None:
            self._events.record(
                kind,
                model,
                transition_event_name(outcome.transition),
                outcome.from_status,
                outcome.to_status,
                actor_id=ctx.actor_id,
            )
        return model.to_dto()

    def add_line_item(
        self,
        ctx: ActorContext,
        kind: DocumentKind,
        document_id: UUID,
        spec: LineItemSpec,
        decision: VariationDecision | str | None = None,
    ) -> Quote | Invoice:
        return self.edit_line_items(ctx, kind, document_id, [AddLineItem(spec)], decision)

    def update_line_item(
        self,
        ctx: ActorContext,
        kind: DocumentKind,
        document_id: UUID,
        line_item_id: UUID,
        decision: VariationDecision | str | None = None,
        **fields,
    ) -> Quote | Invoice:
        return self.edit_line_items(
            ctx, kind, document_id, [UpdateLineItem(line_item_id, fields)], decision
        )

    def remove_line_item(
        self,
        ctx: ActorContext,
        kind: DocumentKind,
        document_id: UUID,
        line_item_id: UUID,
        decision: VariationDecision | str | None = None,
    ) -> Quote | Invoice:
        return self.edit_line_items(
            ctx, kind, document_id, [RemoveLineItem(line_item_id)], decision
        )

    # =========================================================================
    # Deposits
    # =========================================================================

    def set_deposit_terms(self, ctx: ActorContext, quote_id: UUID, terms: DepositTerms) -> Quote:
        """Replace a draft quote's deposit requirement."""
        model = self._lock(QuoteModel, ctx, quote_id, DocumentKind.QUOTE.value)
        if model.status != QuoteStatus.DRAFT.value:
            logger.warning(
                "deposit_terms_locked",
                extra={"quote_id": str(model.id), "status": model.status},
            )
            raise IllegalTransitionError(
                DocumentKind.QUOTE.value, str(model.id), model.status, "set_deposit_terms"
            )
        terms = self._calculator.validate_deposit_terms(terms)
        self._store_deposit_terms(model, terms)
        self._touch(model, ctx)
        self._flush("Quote", model.id)
        logger.info(
            "deposit_terms_set",
            extra={
                "quote_id": str(model.id),
                "deposit_required": terms.required,
                "deposit_type": terms.deposit_type.value if terms.deposit_type else None,
                "deposit_value": str(terms.value) if terms.value is not None else None,
                "deposit_amount": format_money(model.deposit_amount),
            },
        )
        return model.to_dto()

    def mark_deposit_paid(self, ctx: ActorContext, quote_id: UUID) -> Quote:
        """Record that the client's deposit has landed.  Idempotent."""
        model = self._lock(QuoteModel, ctx, quote_id, DocumentKind.QUOTE.value)
        if not model.deposit_required:
            raise ValidationError("deposit_required", "quote does not ask for a deposit")
        if model.status == QuoteStatus.REJECTED.value:
            raise IllegalTransitionError(
                DocumentKind.QUOTE.value, str(model.id), model.status, "mark_deposit_paid"
            )
        if model.deposit_paid:
            logger.info("deposit_already_paid", extra={"quote_id": str(model.id)})
            return model.to_dto()

        model.deposit_paid = True
        model.deposit_paid_at = self._clock.now()
        self._touch(model, ctx)
        self._flush("Quote", model.id)
        self._events.record(
            DocumentKind.QUOTE,
            model,
            "deposit_paid",
            model.status,
            model.status,
            actor_id=ctx.actor_id,
            payload={"deposit_amount": format_money(model.deposit_amount)},
        )
        logger.info(
            "deposit_marked_paid",
            extra={
                "quote_id": str(model.id),
                "deposit_amount": format_money(model.deposit_amount),
            },
        )
        return model.to_dto()

    # =========================================================================
    # Staff transitions
    # =========================================================================

    def send_quote(self, ctx: ActorContext, quote_id: UUID) -> Quote:
        model = self._lock(QuoteModel, ctx, quote_id, DocumentKind.QUOTE.value)
        transition = self._state_machine.transition(
            DocumentKind.QUOTE, model.id, model.status, "send", quote_context(model)
        )
        today = self._clock.today()
        if model.valid_until_date is not None and model.valid_until_date < today:
            raise ValidationError(
                "valid_until_date", "is already in the past", model.valid_until_date
            )
        deposit_amount = self._deposit_for(model, round_money(model.total_amount), enforce=True)

        model.deposit_amount = deposit_amount
        model.status = transition.to_state
        model.sent_at = self._clock.now()
        self._record_transition(ctx, DocumentKind.QUOTE, model, transition)
        logger.info(
            "quote_sent",
            extra={
                "quote_id": str(model.id),
                "document_number": model.document_number,
                "total_amount": format_money(model.total_amount),
                "deposit_amount": format_money(model.deposit_amount),
            },
        )
        return model.to_dto()

    def send_invoice(self, ctx: ActorContext, invoice_id: UUID) -> Invoice:
        model = self._lock(InvoiceModel, ctx, invoice_id, DocumentKind.INVOICE.value)
        transition = self._state_machine.transition(
            DocumentKind.INVOICE, model.id, model.status, "send", invoice_context(model)
        )
        model.status = transition.to_state
        model.sent_at = self._clock.now()
        self._record_transition(ctx, DocumentKind.INVOICE, model, transition)
        logger.info(
            "invoice_sent",
            extra={
                "invoice_id": str(model.id),
                "document_number": model.document_number,
                "total_amount": format_money(model.total_amount),
            },
        )
        return model.to_dto()

    def staff_accept_quote(
        self,
        ctx: ActorContext,
        quote_id: UUID,
        accepted_by_name: str | None = None,
        accepted_by_email: str | None = None,
    ) -> Quote:
        """
        Accept on the client's behalf (phone, on site).

        Not gated on the deposit; staff are asserting the agreement.  The
        staff actor is stored as ``accepted_by_id``; the client's name and
        email are optional.
        """
        model = self._lock(QuoteModel, ctx, quote_id, DocumentKind.QUOTE.value)
        transition = self._state_machine.transition(
            DocumentKind.QUOTE, model.id, model.status, "accept", quote_context(model)
        )
        name = require_text("accepted_by_name", accepted_by_name) if accepted_by_name else None
        email = require_email("accepted_by_email", accepted_by_email) if accepted_by_email else None

        apply_acceptance(model, self._clock.now(), name, email, actor_id=ctx.actor_id)
        self._record_transition(
            ctx, DocumentKind.QUOTE, model, transition, payload={"override": True}
        )
        logger.info(
            "quote_accepted",
            extra={"quote_id": str(model.id), "channel": "staff"},
        )
        return model.to_dto()

    def staff_reject_quote(
        self, ctx: ActorContext, quote_id: UUID, reason: str | None = None
    ) -> Quote:
        model = self._lock(QuoteModel, ctx, quote_id, DocumentKind.QUOTE.value)
        transition = self._state_machine.transition(
            DocumentKind.QUOTE, model.id, model.status, "reject", quote_context(model)
        )
        apply_rejection(model, self._clock.now(), (reason or "").strip() or None)
        self._record_transition(
            ctx, DocumentKind.QUOTE, model, transition, payload={"override": True}
        )
        logger.info(
            "quote_rejected",
            extra={"quote_id": str(model.id), "channel": "staff"},
        )
        return model.to_dto()

    def cancel_invoice(self, ctx: ActorContext, invoice_id: UUID) -> Invoice:
        """Cancel a draft or sent invoice that has no payments against it."""
        model = self._lock(InvoiceModel, ctx, invoice_id, DocumentKind.INVOICE.value)
        transition = self._state_machine.transition(
            DocumentKind.INVOICE, model.id, model.status, "cancel", invoice_context(model)
        )
        model.status = transition.to_state
        model.cancelled_at = self._clock.now()
        self._record_transition(ctx, DocumentKind.INVOICE, model, transition)
        logger.info(
            "invoice_cancelled",
            extra={"invoice_id": str(model.id), "from_status": transition.from_state},
        )
        return model.to_dto()

    def set_quote_status(self, ctx: ActorContext, quote_id: UUID, status: QuoteStatus | str) -> Quote:
        """Generic status change; only send/accept/reject are reachable this way."""
        model = self._get_scoped(QuoteModel, ctx, quote_id, DocumentKind.QUOTE)
        transition = self._state_machine.request_status(
            DocumentKind.QUOTE, model.id, model.status, status, quote_context(model)
        )
        if transition.action == "send":
            return self.send_quote(ctx, quote_id)
        if transition.action == "accept":
            return self.staff_accept_quote(ctx, quote_id)
        return self.staff_reject_quote(ctx, quote_id)

    def set_invoice_status(
        self, ctx: ActorContext, invoice_id: UUID, status: InvoiceStatus | str
    ) -> Invoice:
        """Generic status change; payment-driven and derived states are refused."""
        model = self._get_scoped(InvoiceModel, ctx, invoice_id, DocumentKind.INVOICE)
        transition = self._state_machine.request_status(
            DocumentKind.INVOICE, model.id, model.status, status, invoice_context(model)
        )
        if transition.action == "send":
            return self.send_invoice(ctx, invoice_id)
        return self.cancel_invoice(ctx, invoice_id)

    # =========================================================================
    # Deletion
    # =========================================================================

    def delete_quote(self, ctx: ActorContext, quote_id: UUID) -> None:
        """
        Delete a draft quote and its line items.

        Refused while any invoice was built from the quote; a quote reset
        after conversion is a draft but still has that invoice.
        """
        model = self._lock(QuoteModel, ctx, quote_id, DocumentKind.QUOTE.value)
        self._require_draft(DocumentKind.QUOTE, model, "delete")
        invoice_number = self.session.execute(
            select(InvoiceModel.document_number).where(InvoiceModel.quote_id == model.id).limit(1)
        ).scalar_one_or_none()
        if invoice_number is not None:
            logger.warning(
                "quote_delete_blocked",
                extra={"quote_id": str(model.id), "invoice_number": invoice_number},
            )
            raise DocumentInUseError(DocumentKind.QUOTE.value, str(model.id), invoice_number)
        self._delete(ctx, DocumentKind.QUOTE, model)

    def delete_invoice(self, ctx: ActorContext, invoice_id: UUID) -> None:
        """Delete a draft invoice and its line items.  Paid money is never deleted."""
        model = self._lock(InvoiceModel, ctx, invoice_id, DocumentKind.INVOICE.value)
        self._require_draft(DocumentKind.INVOICE, model, "delete")
        if model.payments:
            raise IllegalTransitionError(
                DocumentKind.INVOICE.value, str(model.id), model.status, "delete"
            )
        self._delete(ctx, DocumentKind.INVOICE, model)

    # =========================================================================
    # Internals
    # =========================================================================

    @staticmethod
    def _model_for(kind: DocumentKind) -> type:
        return QuoteModel if kind == DocumentKind.QUOTE else InvoiceModel

    def _lock_document(self, ctx: ActorContext, kind: DocumentKind, document_id: UUID):
        return self._lock(self._model_for(kind), ctx, document_id, kind.value)

    @staticmethod
    def _require_draft(kind: DocumentKind, model, action: str) -> None:
        if model.status in (QuoteStatus.DRAFT.value, InvoiceStatus.DRAFT.value):
            return
        logger.warning(
            "document_not_draft",
            extra={
                "document_kind": kind.value,
                "document_id": str(model.id),
                "status": model.status,
                "action": action,
            },
        )
        raise IllegalTransitionError(kind.value, str(model.id), model.status, action)

    def _delete(self, ctx: ActorContext, kind: DocumentKind, model) -> None:
        line_count = len(model.line_items)
        self._events.record(kind, model, "deleted", model.status, None, actor_id=ctx.actor_id)
        # Line items go with the document through the delete-orphan cascade
        self.session.delete(model)
        self._flush(kind.value, model.id)
        logger.info(
            "document_deleted",
            extra={
                "document_kind": kind.value,
                "document_id": str(model.id),
                "document_number": model.document_number,
                "line_count": line_count,
            },
        )

    def _get_scoped(self, model_cls, ctx: ActorContext, document_id: UUID, kind: DocumentKind):
        row = self.session.execute(
            select(model_cls).where(
                model_cls.id == document_id,
                model_cls.organization_id == ctx.organization_id,
            )
        ).scalar_one_or_none()
        if row is None:
            raise DocumentNotFoundError(DocumentKind(kind).value, str(document_id))
        return row

    def _new_invoice(
        self,
        ctx: ActorContext,
        client_id: UUID,
        due_date: date | None,
        payment_terms: str | None,
        notes: str | None,
        job_id: UUID | None,
        quote_id: UUID | None,
    ) -> InvoiceModel:
        today = self._clock.today()
        now = self._clock.now()
        if due_date is None:
            due_date = today + timedelta(days=self._settings.default_payment_terms_days)
        model = InvoiceModel(
            id=uuid4(),
            organization_id=ctx.organization_id,
            client_id=client_id,
            job_id=job_id,
            quote_id=quote_id,
            document_number=self._next_number(DocumentKind.INVOICE, ctx, today),
            status=InvoiceStatus.DRAFT.value,
            due_date=due_date,
            payment_terms=payment_terms or self._settings.payment_terms_label(),
            notes=notes,
            subtotal=ZERO,
            gst_amount=ZERO,
            total_amount=ZERO,
            paid_amount=ZERO,
            public_token=self._new_token(),
            created_at=now,
            updated_at=now,
            created_by_id=ctx.actor_id,
        )
        self.session.add(model)
        return model

    def _next_number(self, kind: DocumentKind, ctx: ActorContext, today: date) -> str:
        value = self._sequence.next_value(
            SequenceService.document_sequence_name(kind, ctx.organization_id, today)
        )
        return self._settings.format_document_number(kind, today.year, value)

    def _new_token(self) -> str:
        return secrets.token_urlsafe(self._settings.public_token_bytes)

    def _ledger_for(self, model) -> LineItemLedger:
        return LineItemLedger(
            (row.to_dto() for row in model.line_items),
            gst_rate=self._settings.gst_rate,
        )

    def _write_ledger(self, model, ledger: LineItemLedger) -> None:
        """Make the row's line-item collection match ``ledger`` exactly."""
        line_cls = QuoteLineItemModel if isinstance(model, QuoteModel) else InvoiceLineItemModel
        existing = {row.id: row for row in model.line_items}
        rows = []
        for item in ledger.items():
            row = existing.get(item.id)
            if row is None:
                row = line_cls.from_dto(item)
            else:
                row.apply(item)
            rows.append(row)
        # Rows missing from ``rows`` are deleted by the delete-orphan cascade
        model.line_items = rows

    @staticmethod
    def _write_totals(model, totals: DocumentTotals) -> None:
        model.subtotal = totals.subtotal
        model.gst_amount = totals.gst_amount
        model.total_amount = totals.total_amount

    def _store_deposit_terms(self, model: QuoteModel, terms: DepositTerms) -> None:
        model.deposit_required = terms.required
        model.deposit_type = terms.deposit_type.value if terms.deposit_type else None
        model.deposit_value = terms.value
        model.deposit_amount = self._calculator.deposit_amount(
            terms, round_money(model.total_amount)
        )

    def _deposit_for(self, model: QuoteModel, total, enforce: bool):
        terms = model.deposit_terms
        if enforce:
            return self._calculator.require_valid_deposit(terms, total)
        return self._calculator.deposit_amount(terms, total)

    def _apply_variation_transition(self, model, transition: Transition) -> None:
        model.status = transition.to_state
        if transition.action != RESET_FOR_REAPPROVAL:
            return
        model.sent_at = None
        if isinstance(model, QuoteModel):
            model.accepted_at = None
            model.accepted_by_name = None
            model.accepted_by_email = None
            model.accepted_by_id = None

    def _touch(self, model, ctx: ActorContext | None) -> None:
        # Always dirties the row so the version counter moves with the lines
        model.updated_at = self._clock.now()
        model.updated_by_id = ctx.actor_id if ctx else None

    def _record_transition(
        self,
        ctx: ActorContext,
        kind: DocumentKind,
        model,
        transition: Transition,
        payload: dict | None = None,
    ) -> None:
        self._touch(model, ctx)
        self._flush(kind.value, model.id)
        self._events.record(
            kind,
            model,
            transition_event_name(transition),
            transition.from_state,
            transition.to_state,
            actor_id=ctx.actor_id,
            payload=payload,
        )
