"""
Document state machines (``fieldwork_kernel.domain.state_machine``).

Responsibility
--------------
Declares the quote and invoice workflows and decides whether a requested
status change is legal.  Also derives the *effective* status shown to users:
a sent quote past its validity date reads as ``expired`` and an unpaid
invoice past its due date reads as ``overdue``.  Those two states are never
persisted and never a transition target.

Architecture position
---------------------
**Kernel domain layer** -- pure, zero I/O.  Services call
``DocumentStateMachine.transition`` before touching a status column.

Invariants enforced
-------------------
* Initial state is ``draft`` for both document kinds.
* ``accepted``/``rejected``/``paid``/``cancelled`` are terminal; the only
  ways out are the variation paths named in ``reopen_actions``.
* ``paid``/``partially_paid`` are reachable only through ``system_only``
  transitions, i.e. the payment recorder.
* Anything else raises ``IllegalTransitionError``; nothing is coerced.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from fieldwork_kernel.db.types import ZERO
from fieldwork_kernel.domain.documents import DocumentKind, InvoiceStatus, QuoteStatus
from fieldwork_kernel.domain.workflow import Guard, Transition, Workflow
from fieldwork_kernel.exceptions import GuardFailedError, IllegalTransitionError
from fieldwork_kernel.logging_config import get_logger

logger = get_logger("domain.state_machine")


# -----------------------------------------------------------------------------
# Guards
# -----------------------------------------------------------------------------

HAS_LINE_ITEMS = Guard(
    name="has_line_items",
    description="Document has at least one line item",
)

HAS_DUE_DATE = Guard(
    name="has_due_date",
    description="Invoice has a due date",
)

NO_PAYMENTS_RECORDED = Guard(
    name="no_payments_recorded",
    description="No payment has been recorded against the invoice",
)

BALANCE_SETTLED = Guard(
    name="balance_settled",
    description="Outstanding balance is zero",
)

BALANCE_OPEN = Guard(
    name="balance_open",
    description="Something has been paid and something is still owed",
)


@dataclass(frozen=True)
class TransitionContext:
    """Facts about the document that guards are evaluated against."""
    line_item_count: int = 0
    has_due_date: bool = False
    paid_amount: Decimal = ZERO
    total_amount: Decimal = ZERO


_GUARD_CHECKS: dict[str, Callable[[TransitionContext], bool]] = {
    HAS_LINE_ITEMS.name: lambda c: c.line_item_count > 0,
    HAS_DUE_DATE.name: lambda c: c.has_due_date,
    NO_PAYMENTS_RECORDED.name: lambda c: c.paid_amount == 0,
    BALANCE_SETTLED.name: lambda c: c.total_amount - c.paid_amount == 0,
    BALANCE_OPEN.name: lambda c: 0 < c.paid_amount < c.total_amount,
}


# -----------------------------------------------------------------------------
# Workflows
# -----------------------------------------------------------------------------

RESET_FOR_REAPPROVAL = "reset_for_reapproval"
REBALANCE = "rebalance"

QUOTE_WORKFLOW = Workflow(
    name="quote",
    description="Quote lifecycle from draft to client decision",
    initial_state=QuoteStatus.DRAFT.value,
    states=tuple(s.value for s in QuoteStatus),
    transitions=(
        Transition("draft", "sent", action="send", guards=(HAS_LINE_ITEMS,)),
        Transition("sent", "accepted", action="accept"),
        Transition("sent", "rejected", action="reject"),
        Transition("sent", "draft", action=RESET_FOR_REAPPROVAL),
        Transition("accepted", "draft", action=RESET_FOR_REAPPROVAL),
    ),
    terminal_states=("accepted", "rejected"),
    derived_states=("expired",),
    reopen_actions=(RESET_FOR_REAPPROVAL,),
)

INVOICE_WORKFLOW = Workflow(
    name="invoice",
    description="Invoice lifecycle from draft to settlement",
    initial_state=InvoiceStatus.DRAFT.value,
    states=tuple(s.value for s in InvoiceStatus),
    transitions=(
        Transition("draft", "sent", action="send", guards=(HAS_LINE_ITEMS, HAS_DUE_DATE)),
        Transition("draft", "cancelled", action="cancel"),
        Transition("sent", "cancelled", action="cancel", guards=(NO_PAYMENTS_RECORDED,)),
        Transition("sent", "partially_paid", action="apply_payment",
                   guards=(BALANCE_OPEN,), system_only=True),
        Transition("sent", "paid", action="apply_payment",
                   guards=(BALANCE_SETTLED,), system_only=True),
        Transition("partially_paid", "paid", action="apply_payment",
                   guards=(BALANCE_SETTLED,), system_only=True),
        Transition("sent", "draft", action=RESET_FOR_REAPPROVAL, guards=(NO_PAYMENTS_RECORDED,)),
        Transition("paid", "partially_paid", action=REBALANCE,
                   guards=(BALANCE_OPEN,), system_only=True),
        Transition("partially_paid", "paid", action=REBALANCE,
                   guards=(BALANCE_SETTLED,), system_only=True),
    ),
    terminal_states=("paid", "cancelled"),
    derived_states=("overdue",),
    reopen_actions=(REBALANCE,),
)

# Actions a user may trigger by picking a status; everything else has a
# dedicated operation (payments, variations).
USER_STATUS_ACTIONS = frozenset({"send", "accept", "reject", "cancel"})

logger.info(
    "document_workflows_registered",
    extra={
        "workflows": [QUOTE_WORKFLOW.name, INVOICE_WORKFLOW.name],
        "quote_transition_count": len(QUOTE_WORKFLOW.transitions),
        "invoice_transition_count": len(INVOICE_WORKFLOW.transitions),
    },
)


class DocumentStateMachine:
    """Legal-transition oracle for quotes and invoices."""

    def __init__(self) -> None:
        self._workflows = {
            DocumentKind.QUOTE: QUOTE_WORKFLOW,
            DocumentKind.INVOICE: INVOICE_WORKFLOW,
        }

    def workflow(self, kind: DocumentKind) -> Workflow:
        return self._workflows[DocumentKind(kind)]

    def effective_status(
        self,
        kind: DocumentKind,
        status: str,
        deadline: date | None,
        today: date,
    ) -> str:
        """Status for display: stored status, or expired/overdue once past deadline."""
        status = str(getattr(status, "value", status))
        if deadline is None or today <= deadline:
            return status
        if kind == DocumentKind.QUOTE and status == QuoteStatus.SENT.value:
            return QuoteStatus.EXPIRED.value
        if kind == DocumentKind.INVOICE and status in (
            InvoiceStatus.SENT.value,
            InvoiceStatus.PARTIALLY_PAID.value,
        ):
            return InvoiceStatus.OVERDUE.value
        return status

    def can(self, kind: DocumentKind, from_status: str, action: str) -> bool:
        """True if ``action`` has any transition out of ``from_status``."""
        return bool(self.workflow(kind).transitions_from(str(from_status), action))

    def transition(
        self,
        kind: DocumentKind,
        document_id: object,
        from_status: str,
        action: str,
        context: TransitionContext,
        to_status: str | None = None,
        system: bool = False,
    ) -> Transition:
        """
        Resolve ``action`` from ``from_status`` to a single legal transition.

        Args:
            to_status: Restrict to this target (user status edits).
            system: Allow ``system_only`` transitions (payment recorder,
                variation rebalance).

        Raises:
            IllegalTransitionError: no such transition, or it is system-only.
            GuardFailedError: the transition exists but no guard set passes.
        """
        from_status = str(getattr(from_status, "value", from_status))
        to_status = None if to_status is None else str(getattr(to_status, "value", to_status))
        workflow = self.workflow(kind)
        candidates = [
            t for t in workflow.transitions_from(from_status, action)
            if to_status is None or t.to_state == to_status
        ]
        if not system:
            candidates = [t for t in candidates if not t.system_only]

        if not candidates:
            self._reject(kind, document_id, from_status, action, to_status)

        first_failure: Guard | None = None
        for candidate in candidates:
            failed = self._failed_guard(candidate, context)
            if failed is None:
                logger.debug(
                    "transition_resolved",
                    extra={
                        "workflow": workflow.name,
                        "document_id": str(document_id),
                        "action": action,
                        "from_state": candidate.from_state,
                        "to_state": candidate.to_state,
                    },
                )
                return candidate
            first_failure = first_failure or failed

        logger.warning(
            "transition_guard_failed",
            extra={
                "workflow": workflow.name,
                "document_id": str(document_id),
                "action": action,
                "from_state": from_status,
                "guard": first_failure.name,
            },
        )
        raise GuardFailedError(
            kind.value, str(document_id), from_status, action, to_status, first_failure.name
        )

    def request_status(
        self,
        kind: DocumentKind,
        document_id: object,
        from_status: str,
        to_status: str,
        context: TransitionContext,
    ) -> Transition:
        """
        Validate a user-requested status change (the "status dropdown" path).

        Payment-driven and time-derived statuses are never accepted here.
        """
        from_status = str(getattr(from_status, "value", from_status))
        to_status = str(getattr(to_status, "value", to_status))
        workflow = self.workflow(kind)
        actions = {
            t.action for t in workflow.transitions_from(from_status)
            if t.to_state == to_status and t.action in USER_STATUS_ACTIONS and not t.system_only
        }
        if len(actions) != 1:
            self._reject(kind, document_id, from_status, "set_status", to_status)
        return self.transition(
            kind, document_id, from_status, actions.pop(), context, to_status=to_status
        )

    def _failed_guard(self, transition: Transition, context: TransitionContext) -> Guard | None:
        for guard in transition.guards:
            if not _GUARD_CHECKS[guard.name](context):
                return guard
        return None

    def _reject(
        self,
        kind: DocumentKind,
        document_id: object,
        from_status: str,
        action: str,
        to_status: str | None,
    ) -> None:
        logger.warning(
            "illegal_transition_rejected",
            extra={
                "document_kind": DocumentKind(kind).value,
                "document_id": str(document_id),
                "action": action,
                "from_state": from_status,
                "to_state": to_status,
            },
        )
        raise IllegalTransitionError(
            DocumentKind(kind).value, str(document_id), from_status, action, to_status
        )
