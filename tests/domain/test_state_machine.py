"""Tests for the quote and invoice workflows."""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from fieldwork_kernel.domain.documents import DocumentKind, InvoiceStatus, QuoteStatus
from fieldwork_kernel.domain.state_machine import (
    INVOICE_WORKFLOW,
    QUOTE_WORKFLOW,
    DocumentStateMachine,
    TransitionContext,
)
from fieldwork_kernel.domain.workflow import Transition, Workflow
from fieldwork_kernel.exceptions import GuardFailedError, IllegalTransitionError

QUOTE = DocumentKind.QUOTE
INVOICE = DocumentKind.INVOICE

WITH_LINES = TransitionContext(line_item_count=2, has_due_date=True, total_amount=Decimal("275.00"))


@pytest.fixture
def machine():
    return DocumentStateMachine()


class TestQuoteWorkflow:
    def test_initial_state_is_draft(self):
        assert QUOTE_WORKFLOW.initial_state == "draft"
        assert INVOICE_WORKFLOW.initial_state == "draft"

    def test_send_requires_line_items(self, machine):
        with pytest.raises(GuardFailedError) as exc_info:
            machine.transition(QUOTE, uuid4(), "draft", "send", TransitionContext())
        assert exc_info.value.guard == "has_line_items"

    def test_send_accept(self, machine):
        sent = machine.transition(QUOTE, uuid4(), "draft", "send", WITH_LINES)
        accepted = machine.transition(QUOTE, uuid4(), sent.to_state, "accept", WITH_LINES)
        assert (sent.to_state, accepted.to_state) == ("sent", "accepted")

    def test_cannot_accept_draft(self, machine):
        with pytest.raises(IllegalTransitionError) as exc_info:
            machine.transition(QUOTE, uuid4(), "draft", "accept", WITH_LINES)
        assert exc_info.value.from_status == "draft"
        assert exc_info.value.action == "accept"

    @pytest.mark.parametrize("terminal", ["accepted", "rejected"])
    def test_terminal_quote_states_refuse_client_actions(self, machine, terminal):
        for action in ("accept", "reject", "send"):
            with pytest.raises(IllegalTransitionError):
                machine.transition(QUOTE, uuid4(), terminal, action, WITH_LINES)

    def test_enum_status_accepted(self, machine):
        result = machine.transition(QUOTE, uuid4(), QuoteStatus.SENT, "reject", WITH_LINES)
        assert result.to_state == "rejected"


class TestInvoiceWorkflow:
    def test_send_requires_due_date(self, machine):
        context = TransitionContext(line_item_count=1, has_due_date=False)
        with pytest.raises(GuardFailedError) as exc_info:
            machine.transition(INVOICE, uuid4(), "draft", "send", context)
        assert exc_info.value.guard == "has_due_date"

    def test_cancel_sent_invoice_without_payments(self, machine):
        result = machine.transition(INVOICE, uuid4(), "sent", "cancel", WITH_LINES)
        assert result.to_state == "cancelled"

    def test_cancel_refused_once_paid_into(self, machine):
        context = TransitionContext(
            line_item_count=1, paid_amount=Decimal("10"), total_amount=Decimal("275")
        )
        with pytest.raises(GuardFailedError) as exc_info:
            machine.transition(INVOICE, uuid4(), "sent", "cancel", context)
        assert exc_info.value.guard == "no_payments_recorded"

    def test_payment_transitions_are_system_only(self, machine):
        context = TransitionContext(paid_amount=Decimal("275"), total_amount=Decimal("275"))
        with pytest.raises(IllegalTransitionError):
            machine.transition(INVOICE, uuid4(), "sent", "apply_payment", context)
        result = machine.transition(
            INVOICE, uuid4(), "sent", "apply_payment", context, system=True
        )
        assert result.to_state == "paid"

    def test_partial_payment_resolves_to_partially_paid(self, machine):
        context = TransitionContext(paid_amount=Decimal("100"), total_amount=Decimal("275"))
        result = machine.transition(
            INVOICE, uuid4(), "sent", "apply_payment", context, system=True
        )
        assert result.to_state == "partially_paid"

    def test_cancelled_is_terminal(self, machine):
        assert machine.workflow(INVOICE).is_terminal("cancelled")
        assert not machine.workflow(INVOICE).is_terminal("partially_paid")
        assert not machine.can(INVOICE, "cancelled", "send")
        assert not machine.can(INVOICE, "cancelled", "apply_payment")


class TestRequestStatus:
    """The generic status-dropdown path."""

    @pytest.mark.parametrize("target", ["paid", "partially_paid", "overdue"])
    def test_payment_and_derived_states_refused(self, machine, target):
        with pytest.raises(IllegalTransitionError):
            machine.request_status(INVOICE, uuid4(), "sent", target, WITH_LINES)

    def test_expired_refused(self, machine):
        with pytest.raises(IllegalTransitionError):
            machine.request_status(QUOTE, uuid4(), "sent", "expired", WITH_LINES)

    def test_reset_to_draft_refused(self, machine):
        with pytest.raises(IllegalTransitionError):
            machine.request_status(QUOTE, uuid4(), "sent", "draft", WITH_LINES)

    def test_send_via_status(self, machine):
        result = machine.request_status(INVOICE, uuid4(), "draft", InvoiceStatus.SENT, WITH_LINES)
        assert result.action == "send"

    def test_guards_still_apply(self, machine):
        with pytest.raises(GuardFailedError):
            machine.request_status(QUOTE, uuid4(), "draft", "sent", TransitionContext())


class TestEffectiveStatus:
    def test_sent_quote_expires_after_valid_until(self, machine):
        assert machine.effective_status(QUOTE, "sent", date(2026, 3, 1), date(2026, 3, 2)) == "expired"

    def test_quote_valid_through_its_last_day(self, machine):
        assert machine.effective_status(QUOTE, "sent", date(2026, 3, 2), date(2026, 3, 2)) == "sent"

    @pytest.mark.parametrize("status", ["draft", "accepted", "rejected"])
    def test_only_sent_quotes_expire(self, machine, status):
        assert machine.effective_status(QUOTE, status, date(2020, 1, 1), date(2026, 3, 2)) == status

    @pytest.mark.parametrize("status", ["sent", "partially_paid"])
    def test_unpaid_invoice_overdue(self, machine, status):
        assert machine.effective_status(INVOICE, status, date(2026, 3, 1), date(2026, 3, 2)) == "overdue"

    @pytest.mark.parametrize("status", ["draft", "paid", "cancelled"])
    def test_settled_or_unsent_invoice_never_overdue(self, machine, status):
        assert machine.effective_status(INVOICE, status, date(2020, 1, 1), date(2026, 3, 2)) == status

    def test_no_deadline(self, machine):
        assert machine.effective_status(QUOTE, "sent", None, date(2030, 1, 1)) == "sent"


class TestWorkflowDefinition:
    def test_unknown_state_rejected(self):
        with pytest.raises(ValueError):
            Workflow(
                name="broken",
                description="",
                initial_state="draft",
                states=("draft",),
                transitions=(Transition("draft", "sent", action="send"),),
            )

    def test_derived_state_cannot_be_target(self):
        with pytest.raises(ValueError):
            Workflow(
                name="broken",
                description="",
                initial_state="draft",
                states=("draft", "expired"),
                transitions=(Transition("draft", "expired", action="expire"),),
                derived_states=("expired",),
            )

    def test_terminal_state_only_leaves_by_reopen_action(self):
        with pytest.raises(ValueError):
            Workflow(
                name="broken",
                description="",
                initial_state="draft",
                states=("draft", "done"),
                transitions=(Transition("done", "draft", action="undo"),),
                terminal_states=("done",),
            )
