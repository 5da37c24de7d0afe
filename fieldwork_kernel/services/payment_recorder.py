"""
PaymentRecorder -- the only write path for invoice payments.

Responsibility:
    Validates a payment against the invoice's *current* outstanding
    balance, appends an immutable Payment row, advances ``paid_amount`` and
    drives the payment-derived status (``partially_paid`` / ``paid``).

Architecture position:
    Kernel > Services.  The state machine's ``apply_payment`` transitions
    are ``system_only``; this service is the system that takes them.

Invariants enforced:
    - paid_amount == sum(payments.amount) <= total_amount, always.
    - The outstanding balance is read under the invoice row lock
      (``FOR UPDATE`` + ``populate_existing``), never from a cached copy,
      so two concurrent payments cannot both fit into the same balance.
    - A rejected payment leaves paid_amount and status untouched.

Failure modes:
    - ValidationError: amount <= 0, more than two decimal places, or an
      unknown method.
    - OverpaymentError: amount exceeds outstanding (checked before status,
      so a fully paid invoice reports overpayment for any further amount).
    - IllegalTransitionError: invoice is draft or cancelled.
    - OptimisticLockError: a concurrent writer won the version race.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy.orm import Session

from fieldwork_kernel.db.types import format_money, round_money
from fieldwork_kernel.domain.clock import Clock
from fieldwork_kernel.domain.documents import (
    ActorContext,
    DocumentKind,
    Invoice,
    InvoiceStatus,
    Payment,
    PaymentMethod,
)
from fieldwork_kernel.domain.state_machine import DocumentStateMachine, TransitionContext
from fieldwork_kernel.domain.validation import require_money_precision, require_positive
from fieldwork_kernel.exceptions import (
    IllegalTransitionError,
    OverpaymentError,
    ValidationError,
)
from fieldwork_kernel.logging_config import LogContext, get_logger
from fieldwork_kernel.models.invoice import InvoiceModel, PaymentModel
from fieldwork_kernel.services.base import BaseService
from fieldwork_kernel.services.event_recorder import TransitionEventRecorder

logger = get_logger("services.payments")


def parse_payment_method(value: PaymentMethod | str) -> PaymentMethod:
    try:
        return PaymentMethod(value)
    except ValueError as exc:
        raise ValidationError("method", f"unknown payment method {value!r}") from exc


class PaymentRecorder(BaseService[InvoiceModel]):
    """Records payments against invoices."""

    def __init__(
        self,
        session: Session,
        clock: Clock,
        state_machine: DocumentStateMachine | None = None,
    ):
        super().__init__(session)
        self._clock = clock
        self._state_machine = state_machine or DocumentStateMachine()
        self._events = TransitionEventRecorder(session, clock)

    def record_payment(
        self,
        ctx: ActorContext,
        invoice_id: UUID,
        amount: Decimal | str | int,
        payment_date: date | None = None,
        method: PaymentMethod | str = PaymentMethod.BANK_TRANSFER,
        reference_number: str | None = None,
        notes: str | None = None,
    ) -> tuple[Invoice, Payment]:
        """
        Apply one payment and return the updated invoice and the new payment.

        ``payment_date`` defaults to today.  Payments on an overdue invoice
        are accepted; overdue is a display state over ``sent`` /
        ``partially_paid``.
        """
        amount = require_money_precision("amount", require_positive("amount", amount))
        method = parse_payment_method(method)

        with LogContext.bind(
            organization_id=ctx.organization_id,
            actor_id=ctx.actor_id,
            document_kind=DocumentKind.INVOICE,
            document_id=invoice_id,
            channel="payment",
        ):
            model = self._lock(InvoiceModel, ctx, invoice_id, DocumentKind.INVOICE.value)
            total = round_money(model.total_amount)
            paid_before = round_money(model.paid_amount)
            outstanding = total - paid_before

            if amount > outstanding:
                logger.warning(
                    "overpayment_rejected",
                    extra={
                        "invoice_id": str(model.id),
                        "amount": format_money(amount),
                        "outstanding": format_money(outstanding),
                    },
                )
                raise OverpaymentError(str(model.id), format_money(amount), format_money(outstanding))

            if not self._state_machine.can(DocumentKind.INVOICE, model.status, "apply_payment"):
                logger.warning(
                    "payment_status_rejected",
                    extra={"invoice_id": str(model.id), "status": model.status},
                )
                raise IllegalTransitionError(
                    DocumentKind.INVOICE.value, str(model.id), model.status, "apply_payment"
                )

            paid_after = paid_before + amount
            from_status = model.status
            transition = None
            target = InvoiceStatus.PAID.value if paid_after == total else InvoiceStatus.PARTIALLY_PAID.value
            if target != from_status:
                transition = self._state_machine.transition(
                    DocumentKind.INVOICE,
                    model.id,
                    from_status,
                    "apply_payment",
                    TransitionContext(
                        line_item_count=len(model.line_items),
                        has_due_date=model.due_date is not None,
                        paid_amount=paid_after,
                        total_amount=total,
                    ),
                    system=True,
                )

            now = self._clock.now()
            payment = PaymentModel(
                id=uuid4(),
                amount=amount,
                payment_date=payment_date or self._clock.today(),
                method=method.value,
                reference_number=reference_number,
                notes=notes,
                created_at=now,
                updated_at=now,
                created_by_id=ctx.actor_id,
            )
            model.payments.append(payment)
            model.paid_amount = paid_after
            if transition is not None:
                model.status = transition.to_state
            if model.status == InvoiceStatus.PAID.value:
                model.paid_at = now
            model.updated_at = now
            model.updated_by_id = ctx.actor_id
            self._flush("invoice", model.id)

            self._events.record(
                DocumentKind.INVOICE,
                model,
                "payment_recorded",
                from_status,
                model.status,
                actor_id=ctx.actor_id,
                payload={
                    "payment_id": str(payment.id),
                    "amount": format_money(amount),
                    "method": method.value,
                    "paid_amount": format_money(paid_after),
                    "outstanding_amount": format_money(total - paid_after),
                },
            )
            if transition is not None:
                self._events.record(
                    DocumentKind.INVOICE,
                    model,
                    transition.to_state,
                    transition.from_state,
                    transition.to_state,
                    actor_id=ctx.actor_id,
                )

            logger.info(
                "payment_recorded",
                extra={
                    "invoice_id": str(model.id),
                    "payment_id": str(payment.id),
                    "amount": format_money(amount),
                    "paid_amount": format_money(paid_after),
                    "outstanding_amount": format_money(total - paid_after),
                    "status": model.status,
                },
            )
            return model.to_dto(), payment.to_dto()
