"""
Variation policy (``fieldwork_kernel.domain.variation``).

Responsibility
--------------
Decides how a line-item edit on an already-sent document is reconciled.
Draft documents take edits directly.  Anything past draft needs one of two
named outcomes before the edit lands:

* ``RESET_FOR_REAPPROVAL`` -- apply, recompute, move the document back to
  ``draft`` so the client reviews it again.
* ``SELF_APPROVE`` -- apply, recompute, keep the status; staff assert the
  client already agreed out of band.

Architecture position
---------------------
**Kernel domain layer** -- pure.  Works on a *copy* of the ledger; the caller
persists the returned ledger only after ``apply`` returns.  A missing
decision therefore leaves the caller's ledger untouched.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Union
from uuid import UUID

from fieldwork_kernel.db.types import ZERO
from fieldwork_kernel.domain.documents import (
    DocumentKind,
    DocumentTotals,
    InvoiceStatus,
    LineItemSpec,
    QuoteStatus,
)
from fieldwork_kernel.domain.line_items import LineItemLedger
from fieldwork_kernel.domain.state_machine import (
    REBALANCE,
    RESET_FOR_REAPPROVAL,
    DocumentStateMachine,
    TransitionContext,
)
from fieldwork_kernel.domain.totals import TotalsCalculator
from fieldwork_kernel.domain.workflow import Transition
from fieldwork_kernel.exceptions import (
    DecisionRequiredError,
    IllegalTransitionError,
    ValidationError,
)
from fieldwork_kernel.logging_config import get_logger

logger = get_logger("domain.variation")


class VariationDecision(str, Enum):
    RESET_FOR_REAPPROVAL = "reset_for_reapproval"
    SELF_APPROVE = "self_approve"


@dataclass(frozen=True)
class AddLineItem:
    spec: LineItemSpec


@dataclass(frozen=True)
class UpdateLineItem:
    line_item_id: UUID
    fields: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class RemoveLineItem:
    line_item_id: UUID


LineItemChange = Union[AddLineItem, UpdateLineItem, RemoveLineItem]


_BOTH = (VariationDecision.RESET_FOR_REAPPROVAL, VariationDecision.SELF_APPROVE)
_SELF_ONLY = (VariationDecision.SELF_APPROVE,)

# Stored status -> decisions a variation may resolve with.  Draft needs none;
# a status missing from the table cannot be varied at all.
ALLOWED_DECISIONS: dict[DocumentKind, dict[str, tuple[VariationDecision, ...]]] = {
    DocumentKind.QUOTE: {
        QuoteStatus.DRAFT.value: (),
        QuoteStatus.SENT.value: _BOTH,
        QuoteStatus.ACCEPTED.value: _BOTH,
    },
    DocumentKind.INVOICE: {
        InvoiceStatus.DRAFT.value: (),
        InvoiceStatus.SENT.value: _BOTH,
        InvoiceStatus.PARTIALLY_PAID.value: _SELF_ONLY,
        InvoiceStatus.PAID.value: _SELF_ONLY,
    },
}


@dataclass(frozen=True)
class VariationProposal:
    """Answer to "can I edit this, and do I need to choose an outcome?"."""
    document_kind: DocumentKind
    document_id: UUID
    status: str
    changes: tuple[LineItemChange, ...]
    requires_decision: bool
    allowed_decisions: tuple[VariationDecision, ...] = ()


@dataclass(frozen=True)
class VariationOutcome:
    """Result of a resolved variation; nothing has been persisted yet."""
    ledger: LineItemLedger
    totals: DocumentTotals
    decision: VariationDecision | None
    from_status: str
    to_status: str
    transition: Transition | None = None

    @property
    def status_changed(self) -> bool:
        return self.from_status != self.to_status


class VariationPolicy:
    """Routes edits on non-draft documents through an explicit decision."""

    def __init__(
        self,
        state_machine: DocumentStateMachine | None = None,
        calculator: TotalsCalculator | None = None,
    ):
        self._state_machine = state_machine or DocumentStateMachine()
        self._calculator = calculator or TotalsCalculator()

    def propose_edit(
        self,
        kind: DocumentKind,
        document_id: UUID,
        status: str,
        changes: Iterable[LineItemChange],
    ) -> VariationProposal:
        status = str(getattr(status, "value", status))
        kind = DocumentKind(kind)
        allowed = ALLOWED_DECISIONS[kind].get(status)
        if allowed is None:
            logger.warning(
                "variation_not_permitted",
                extra={"document_kind": kind.value, "document_id": str(document_id), "status": status},
            )
            raise IllegalTransitionError(kind.value, str(document_id), status, "edit_line_items")
        return VariationProposal(
            document_kind=kind,
            document_id=document_id,
            status=status,
            changes=tuple(changes),
            requires_decision=bool(allowed),
            allowed_decisions=allowed,
        )

    def apply(
        self,
        kind: DocumentKind,
        document_id: UUID,
        status: str,
        ledger: LineItemLedger,
        changes: Iterable[LineItemChange],
        decision: VariationDecision | str | None = None,
        paid_amount: Decimal = ZERO,
    ) -> VariationOutcome:
        """
        Apply ``changes`` to a copy of ``ledger`` under ``decision``.

        Raises:
            DecisionRequiredError: non-draft document and no decision given.
            IllegalTransitionError: status cannot be varied, or the decision
                is not available from it.
            ValidationError: a change is malformed, a sent document would
                be left without lines, or an invoice total would drop below
                what has already been paid.
        """
        proposal = self.propose_edit(kind, document_id, status, changes)
        kind = proposal.document_kind
        status = proposal.status

        if proposal.requires_decision and decision is None:
            logger.info(
                "variation_decision_required",
                extra={"document_kind": kind.value, "document_id": str(document_id), "status": status},
            )
            raise DecisionRequiredError(kind.value, str(document_id), status)

        chosen = VariationDecision(decision) if proposal.requires_decision else None
        if chosen is not None and chosen not in proposal.allowed_decisions:
            raise IllegalTransitionError(kind.value, str(document_id), status, chosen.value)

        working = ledger.copy()
        for change in proposal.changes:
            self._apply_change(working, change)
        totals = self._calculator.reconcile(working)

        if chosen is not None and len(working) == 0:
            raise ValidationError("line_items", "a sent document must keep at least one line item")

        transition = None
        to_status = status
        context = TransitionContext(
            line_item_count=len(working),
            paid_amount=paid_amount,
            total_amount=totals.total_amount,
        )
        if chosen == VariationDecision.RESET_FOR_REAPPROVAL:
            transition = self._state_machine.transition(
                kind, document_id, status, RESET_FOR_REAPPROVAL, context
            )
            to_status = transition.to_state
        elif chosen == VariationDecision.SELF_APPROVE and kind == DocumentKind.INVOICE:
            if totals.total_amount < paid_amount:
                raise ValidationError(
                    "total_amount",
                    f"cannot fall below the {paid_amount} already paid",
                    totals.total_amount,
                )
            transition = self._rebalance(document_id, status, context)
            if transition is not None:
                to_status = transition.to_state

        logger.info(
            "variation_applied",
            extra={
                "document_kind": kind.value,
                "document_id": str(document_id),
                "decision": chosen.value if chosen else None,
                "change_count": len(proposal.changes),
                "from_status": status,
                "to_status": to_status,
                "total_amount": str(totals.total_amount),
            },
        )
        return VariationOutcome(
            ledger=working,
            totals=totals,
            decision=chosen,
            from_status=status,
            to_status=to_status,
            transition=transition,
        )

    def _rebalance(
        self, document_id: UUID, status: str, context: TransitionContext
    ) -> Transition | None:
        """Re-derive paid / partially_paid after a self-approved total change."""
        if status not in (InvoiceStatus.PAID.value, InvoiceStatus.PARTIALLY_PAID.value):
            return None
        settled = context.total_amount == context.paid_amount
        target = InvoiceStatus.PAID.value if settled else InvoiceStatus.PARTIALLY_PAID.value
        if target == status:
            return None
        return self._state_machine.transition(
            DocumentKind.INVOICE, document_id, status, REBALANCE, context, system=True
        )

    @staticmethod
    def _apply_change(ledger: LineItemLedger, change: LineItemChange) -> None:
        if isinstance(change, AddLineItem):
            ledger.add_item(change.spec)
        elif isinstance(change, UpdateLineItem):
            ledger.update_item(change.line_item_id, **dict(change.fields))
        elif isinstance(change, RemoveLineItem):
            ledger.remove_item(change.line_item_id)
        else:
            raise ValidationError("changes", f"unsupported line item change {type(change).__name__}")
