"""
Tests for DocumentService: creation, numbering, deposits, staff transitions
and post-send variations.
"""

from datetime import date, timedelta
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import func, select

from fieldwork_kernel.domain.documents import (
    DepositTerms,
    DepositType,
    DocumentKind,
    InvoiceStatus,
    QuoteStatus,
)
from fieldwork_kernel.domain.variation import VariationDecision
from fieldwork_kernel.exceptions import (
    DecisionRequiredError,
    DocumentInUseError,
    DocumentNotFoundError,
    GuardFailedError,
    IllegalTransitionError,
    ValidationError,
)
from fieldwork_kernel.models.line_item import InvoiceLineItemModel, QuoteLineItemModel
from tests.builders import labour, material
from tests.conftest import TODAY

QUOTE = DocumentKind.QUOTE
INVOICE = DocumentKind.INVOICE
RESET = VariationDecision.RESET_FOR_REAPPROVAL
SELF = VariationDecision.SELF_APPROVE


def _thirty_percent():
    return DepositTerms(required=True, deposit_type=DepositType.PERCENTAGE, value=Decimal("30"))


class TestCreation:
    def test_new_quote_defaults(self, documents, ctx, client_id):
        quote = documents.create_quote(ctx, client_id, notes="Access via side gate")

        assert quote.status is QuoteStatus.DRAFT
        assert quote.document_number == "QTE-2026-001"
        assert quote.valid_until_date == TODAY + timedelta(days=30)
        assert quote.totals.total_amount == Decimal("0.00")
        assert quote.line_items == ()
        assert len(quote.public_token) >= 22
        assert quote.notes == "Access via side gate"

    def test_new_invoice_defaults(self, documents, ctx, client_id):
        invoice = documents.create_invoice(ctx, client_id)

        assert invoice.status is InvoiceStatus.DRAFT
        assert invoice.document_number == "INV-2026-001"
        assert invoice.due_date == TODAY + timedelta(days=14)
        assert invoice.payment_terms == "Net 14 days"
        assert invoice.paid_amount == Decimal("0.00")

    def test_numbers_increase_per_kind(self, documents, ctx, client_id):
        first = documents.create_quote(ctx, client_id)
        second = documents.create_quote(ctx, client_id)
        invoice = documents.create_invoice(ctx, client_id)
        assert (first.document_number, second.document_number) == ("QTE-2026-001", "QTE-2026-002")
        assert invoice.document_number == "INV-2026-001"

    def test_numbers_are_per_organization(self, documents, ctx, other_ctx, client_id):
        documents.create_quote(ctx, client_id)
        other = documents.create_quote(other_ctx, client_id)
        assert other.document_number == "QTE-2026-001"

    def test_tokens_are_unique(self, documents, ctx, client_id):
        tokens = {documents.create_quote(ctx, client_id).public_token for _ in range(5)}
        tokens.add(documents.create_invoice(ctx, client_id).public_token)
        assert len(tokens) == 6

    def test_invalid_deposit_terms_refused(self, documents, ctx, client_id):
        terms = DepositTerms(required=True, deposit_type=DepositType.PERCENTAGE, value=Decimal("120"))
        with pytest.raises(ValidationError):
            documents.create_quote(ctx, client_id, deposit=terms)

    def test_invoice_for_foreign_quote(self, documents, ctx, other_ctx, client_id):
        foreign = documents.create_quote(other_ctx, client_id)
        with pytest.raises(DocumentNotFoundError):
            documents.create_invoice(ctx, client_id, quote_id=foreign.id)


class TestLineItemsOnDrafts:
    def test_scenario_a_totals(self, draft_quote):
        assert draft_quote.totals.subtotal == Decimal("250.00")
        assert draft_quote.totals.gst_amount == Decimal("25.00")
        assert draft_quote.totals.total_amount == Decimal("275.00")
        assert [i.line_order for i in draft_quote.line_items] == [0, 1]

    def test_scenario_a_survives_send(self, documents, ctx, draft_quote):
        sent = documents.send_quote(ctx, draft_quote.id)
        assert sent.status is QuoteStatus.SENT
        assert sent.totals.total_amount == Decimal("275.00")
        assert sent.sent_at is not None

    def test_update_and_remove(self, documents, ctx, draft_quote):
        labour_line, material_line = draft_quote.line_items
        quote = documents.update_line_item(
            ctx, QUOTE, draft_quote.id, labour_line.id, quantity=Decimal("3")
        )
        assert quote.totals.total_amount == Decimal("385.00")
        quote = documents.remove_line_item(ctx, QUOTE, draft_quote.id, material_line.id)
        assert quote.totals.total_amount == Decimal("330.00")
        assert len(quote.line_items) == 1

    def test_invalid_line_leaves_document_unchanged(self, documents, ctx, selector, draft_quote):
        with pytest.raises(ValidationError) as exc_info:
            documents.add_line_item(ctx, QUOTE, draft_quote.id, labour("0", "10"))
        assert exc_info.value.field == "quantity"
        assert selector.get_quote(ctx, draft_quote.id).total_amount == "275.00"

    def test_quantity_finer_than_storage_is_refused(
        self, documents, ctx, session, selector, draft_quote
    ):
        with pytest.raises(ValidationError) as exc_info:
            documents.add_line_item(ctx, QUOTE, draft_quote.id, labour("0.0000000001", "10.00"))
        assert exc_info.value.field == "quantity"

        documents.add_line_item(ctx, QUOTE, draft_quote.id, material("0.0001", "12.3456"))
        session.expire_all()
        detail = selector.get_quote(ctx, draft_quote.id)
        assert [line.quantity for line in detail.line_items] == ["2", "1", "0.0001"]
        assert detail.total_amount == "275.00"

    def test_other_organization_cannot_edit(self, documents, other_ctx, draft_quote):
        with pytest.raises(DocumentNotFoundError):
            documents.add_line_item(other_ctx, QUOTE, draft_quote.id, labour())


class TestSending:
    def test_empty_quote_cannot_be_sent(self, documents, ctx, client_id):
        quote = documents.create_quote(ctx, client_id)
        with pytest.raises(GuardFailedError) as exc_info:
            documents.send_quote(ctx, quote.id)
        assert exc_info.value.guard == "has_line_items"

    def test_stale_validity_date_refused(self, documents, ctx, client_id):
        quote = documents.create_quote(ctx, client_id, valid_until_date=TODAY - timedelta(days=1))
        documents.add_line_item(ctx, QUOTE, quote.id, labour())
        with pytest.raises(ValidationError) as exc_info:
            documents.send_quote(ctx, quote.id)
        assert exc_info.value.field == "valid_until_date"

    def test_send_twice_is_illegal(self, documents, ctx, sent_quote):
        with pytest.raises(IllegalTransitionError):
            documents.send_quote(ctx, sent_quote.id)

    def test_send_invoice(self, documents, ctx, draft_invoice):
        invoice = documents.send_invoice(ctx, draft_invoice.id)
        assert invoice.status is InvoiceStatus.SENT

    def test_other_organization_cannot_send(self, documents, other_ctx, draft_quote):
        with pytest.raises(DocumentNotFoundError):
            documents.send_quote(other_ctx, draft_quote.id)


class TestDeposits:
    def test_scenario_b_percentage_deposit(self, documents, ctx, client_id):
        quote = documents.create_quote(ctx, client_id, deposit=_thirty_percent())
        documents.add_line_item(ctx, QUOTE, quote.id, labour("2", "100.00"))
        quote = documents.add_line_item(ctx, QUOTE, quote.id, material("1", "50.00"))
        assert quote.deposit_amount == Decimal("82.50")

        quote = documents.send_quote(ctx, quote.id)
        assert quote.deposit_amount == Decimal("82.50")
        assert quote.deposit.deposit_type is DepositType.PERCENTAGE

    def test_fixed_deposit_above_total_blocks_send(self, documents, ctx, selector, draft_quote):
        terms = DepositTerms(required=True, deposit_type=DepositType.AMOUNT, value=Decimal("500"))
        documents.set_deposit_terms(ctx, draft_quote.id, terms)
        with pytest.raises(ValidationError) as exc_info:
            documents.send_quote(ctx, draft_quote.id)
        assert exc_info.value.field == "deposit_value"
        assert selector.get_quote(ctx, draft_quote.id).status == "draft"

    def test_terms_locked_after_send(self, documents, ctx, sent_quote):
        with pytest.raises(IllegalTransitionError):
            documents.set_deposit_terms(ctx, sent_quote.id, _thirty_percent())

    def test_mark_paid_requires_deposit(self, documents, ctx, sent_quote):
        with pytest.raises(ValidationError) as exc_info:
            documents.mark_deposit_paid(ctx, sent_quote.id)
        assert exc_info.value.field == "deposit_required"

    def test_mark_paid_is_idempotent(self, documents, ctx, events, draft_quote):
        documents.set_deposit_terms(ctx, draft_quote.id, _thirty_percent())
        documents.send_quote(ctx, draft_quote.id)

        first = documents.mark_deposit_paid(ctx, draft_quote.id)
        second = documents.mark_deposit_paid(ctx, draft_quote.id)

        assert first.deposit_paid and second.deposit_paid
        assert first.deposit_paid_at is not None
        history = [e.event_type for e in events.for_document(QUOTE, draft_quote.id)]
        assert history.count("quote.deposit_paid") == 1

    def test_variation_rechecks_deposit(self, documents, ctx, draft_quote):
        terms = DepositTerms(required=True, deposit_type=DepositType.AMOUNT, value=Decimal("200"))
        documents.set_deposit_terms(ctx, draft_quote.id, terms)
        quote = documents.send_quote(ctx, draft_quote.id)
        labour_line = quote.line_items[0]
        with pytest.raises(ValidationError) as exc_info:
            documents.remove_line_item(ctx, QUOTE, quote.id, labour_line.id, decision=SELF)
        assert exc_info.value.field == "deposit_value"


class TestStaffTransitions:
    def test_staff_accept_ignores_deposit(self, documents, ctx, draft_quote):
        documents.set_deposit_terms(ctx, draft_quote.id, _thirty_percent())
        documents.send_quote(ctx, draft_quote.id)
        quote = documents.staff_accept_quote(
            ctx, draft_quote.id, accepted_by_name="Sam Client", accepted_by_email="sam@example.com"
        )
        assert quote.status is QuoteStatus.ACCEPTED
        assert quote.accepted_by_name == "Sam Client"
        assert quote.accepted_at is not None
        assert quote.accepted_by_id == ctx.actor_id

    def test_staff_accept_of_expired_quote(self, documents, ctx, sent_quote, deterministic_clock):
        deterministic_clock.advance_days(45)
        quote = documents.staff_accept_quote(ctx, sent_quote.id)
        assert quote.status is QuoteStatus.ACCEPTED
        assert quote.accepted_by_id == ctx.actor_id
        assert quote.accepted_by_name is None

    def test_staff_accept_validates_email(self, documents, ctx, sent_quote):
        with pytest.raises(ValidationError):
            documents.staff_accept_quote(ctx, sent_quote.id, accepted_by_email="not-an-email")

    def test_staff_reject(self, documents, ctx, sent_quote):
        quote = documents.staff_reject_quote(ctx, sent_quote.id, reason="  Went with another quote ")
        assert quote.status is QuoteStatus.REJECTED
        assert quote.rejection_reason == "Went with another quote"

    def test_rejected_quote_cannot_be_revived(self, documents, ctx, sent_quote):
        documents.staff_reject_quote(ctx, sent_quote.id)
        with pytest.raises(IllegalTransitionError):
            documents.add_line_item(ctx, QUOTE, sent_quote.id, labour(), decision=RESET)

    def test_cancel_draft_and_sent(self, documents, ctx, client_id, sent_invoice):
        draft = documents.create_invoice(ctx, client_id)
        assert documents.cancel_invoice(ctx, draft.id).status is InvoiceStatus.CANCELLED
        cancelled = documents.cancel_invoice(ctx, sent_invoice.id)
        assert cancelled.status is InvoiceStatus.CANCELLED
        assert cancelled.cancelled_at is not None

    def test_cancel_refused_after_payment(self, documents, payments, ctx, sent_invoice):
        payments.record_payment(ctx, sent_invoice.id, Decimal("10.00"))
        with pytest.raises(IllegalTransitionError):
            documents.cancel_invoice(ctx, sent_invoice.id)


class TestStatusDropdown:
    @pytest.mark.parametrize("target", ["paid", "partially_paid", "overdue", "draft"])
    def test_refused_invoice_targets(self, documents, ctx, sent_invoice, target):
        with pytest.raises(IllegalTransitionError):
            documents.set_invoice_status(ctx, sent_invoice.id, target)

    def test_expired_is_not_settable(self, documents, ctx, sent_quote):
        with pytest.raises(IllegalTransitionError):
            documents.set_quote_status(ctx, sent_quote.id, "expired")

    def test_legal_targets_route_to_operations(self, documents, ctx, draft_quote, draft_invoice):
        assert documents.set_quote_status(ctx, draft_quote.id, "sent").status is QuoteStatus.SENT
        assert documents.set_quote_status(ctx, draft_quote.id, QuoteStatus.ACCEPTED).status is QuoteStatus.ACCEPTED
        assert documents.set_invoice_status(ctx, draft_invoice.id, "sent").status is InvoiceStatus.SENT
        assert documents.set_invoice_status(ctx, draft_invoice.id, "cancelled").status is InvoiceStatus.CANCELLED


class TestVariations:
    def test_edit_without_decision_changes_nothing(self, documents, ctx, selector, sent_invoice):
        before = selector.get_invoice(ctx, sent_invoice.id)
        with pytest.raises(DecisionRequiredError):
            documents.add_line_item(ctx, INVOICE, sent_invoice.id, labour())
        after = selector.get_invoice(ctx, sent_invoice.id)
        assert after.line_items == before.line_items
        assert (after.status, after.total_amount) == ("sent", "275.00")

    def test_propose_edit(self, documents, ctx, sent_invoice, draft_quote):
        proposal = documents.propose_edit(ctx, INVOICE, sent_invoice.id, [])
        assert proposal.requires_decision
        assert not documents.propose_edit(ctx, QUOTE, draft_quote.id, []).requires_decision

    def test_scenario_e_reset_invoice(self, documents, ctx, events, sent_invoice):
        invoice = documents.add_line_item(
            ctx, INVOICE, sent_invoice.id, labour("1", "10.00"), decision=RESET
        )
        assert invoice.status is InvoiceStatus.DRAFT
        assert invoice.sent_at is None
        assert invoice.totals.total_amount == Decimal("286.00")
        history = [e.event_type for e in events.for_document(INVOICE, invoice.id)]
        assert history[-2:] == ["invoice.variation_applied", "invoice.reset_for_reapproval"]

    def test_scenario_e_reset_accepted_quote_clears_acceptance(self, documents, ctx, sent_quote):
        documents.staff_accept_quote(ctx, sent_quote.id, accepted_by_name="Sam")
        quote = documents.add_line_item(ctx, QUOTE, sent_quote.id, labour(), decision=RESET)
        assert quote.status is QuoteStatus.DRAFT
        assert quote.accepted_at is None
        assert quote.accepted_by_name is None
        assert quote.accepted_by_id is None

    def test_scenario_e_self_approve_keeps_sent(self, documents, ctx, sent_invoice):
        invoice = documents.add_line_item(
            ctx, INVOICE, sent_invoice.id, labour("1", "10.00"), decision="self_approve"
        )
        assert invoice.status is InvoiceStatus.SENT
        assert invoice.totals.total_amount == Decimal("286.00")

    def test_self_approve_rebalances_paid_invoice(self, documents, payments, ctx, sent_invoice):
        payments.record_payment(ctx, sent_invoice.id, Decimal("275.00"))
        invoice = documents.add_line_item(
            ctx, INVOICE, sent_invoice.id, material("1", "10.00"), decision=SELF
        )
        assert invoice.status is InvoiceStatus.PARTIALLY_PAID
        assert invoice.outstanding_amount == Decimal("11.00")

    def test_cancelled_invoice_cannot_be_varied(self, documents, ctx, sent_invoice):
        documents.cancel_invoice(ctx, sent_invoice.id)
        with pytest.raises(IllegalTransitionError):
            documents.add_line_item(ctx, INVOICE, sent_invoice.id, labour(), decision=SELF)


class TestConvertQuote:
    def test_accepted_quote_becomes_invoice(self, documents, ctx, sent_quote):
        documents.staff_accept_quote(ctx, sent_quote.id)
        invoice = documents.create_invoice_from_quote(ctx, sent_quote.id)

        assert invoice.quote_id == sent_quote.id
        assert invoice.status is InvoiceStatus.DRAFT
        assert invoice.totals == sent_quote.totals
        assert [i.description for i in invoice.line_items] == [
            i.description for i in sent_quote.line_items
        ]
        assert {i.id for i in invoice.line_items}.isdisjoint({i.id for i in sent_quote.line_items})

    def test_only_accepted_quotes_convert(self, documents, ctx, sent_quote):
        with pytest.raises(IllegalTransitionError) as exc_info:
            documents.create_invoice_from_quote(ctx, sent_quote.id)
        assert exc_info.value.action == "convert_to_invoice"

    def test_explicit_due_date(self, documents, ctx, sent_quote):
        documents.staff_accept_quote(ctx, sent_quote.id)
        invoice = documents.create_invoice_from_quote(
            ctx, sent_quote.id, due_date=date(2026, 4, 30), payment_terms="Due end of April"
        )
        assert invoice.due_date == date(2026, 4, 30)
        assert invoice.payment_terms == "Due end of April"

    def test_unknown_quote(self, documents, ctx):
        with pytest.raises(DocumentNotFoundError):
            documents.create_invoice_from_quote(ctx, uuid4())


class TestHeaderDetails:
    def test_expired_quote_can_be_redated_and_resent(
        self, documents, ctx, sent_quote, deterministic_clock
    ):
        deterministic_clock.advance_days(45)
        labour_line = sent_quote.line_items[0]
        quote = documents.update_line_item(
            ctx, QUOTE, sent_quote.id, labour_line.id, decision=RESET, quantity=Decimal("3")
        )
        assert quote.status is QuoteStatus.DRAFT
        with pytest.raises(ValidationError):
            documents.send_quote(ctx, sent_quote.id)

        new_date = deterministic_clock.today() + timedelta(days=30)
        documents.update_quote(ctx, sent_quote.id, valid_until_date=new_date)
        quote = documents.send_quote(ctx, sent_quote.id)
        assert quote.status is QuoteStatus.SENT
        assert quote.valid_until_date == new_date
        assert quote.totals.total_amount == Decimal("385.00")

    def test_draft_quote_details(self, documents, ctx, draft_quote):
        quote = documents.update_quote(
            ctx, draft_quote.id, title="  Ensuite refit ", notes="Tiles supplied by client"
        )
        assert quote.title == "Ensuite refit"
        assert quote.notes == "Tiles supplied by client"
        assert quote.valid_until_date == draft_quote.valid_until_date

        quote = documents.update_quote(ctx, draft_quote.id, notes="")
        assert quote.notes is None
        assert quote.title == "Ensuite refit"

    def test_past_validity_date_refused(self, documents, ctx, draft_quote):
        with pytest.raises(ValidationError) as exc_info:
            documents.update_quote(ctx, draft_quote.id, valid_until_date=TODAY - timedelta(days=1))
        assert exc_info.value.field == "valid_until_date"

    def test_sent_quote_details_are_locked(self, documents, ctx, sent_quote):
        with pytest.raises(IllegalTransitionError) as exc_info:
            documents.update_quote(ctx, sent_quote.id, title="Changed")
        assert exc_info.value.action == "update_details"

    def test_draft_invoice_details(self, documents, ctx, draft_invoice):
        invoice = documents.update_invoice(
            ctx,
            draft_invoice.id,
            due_date=date(2026, 4, 15),
            payment_terms=" Net 45 ",
            notes="Thanks for your business",
        )
        assert invoice.due_date == date(2026, 4, 15)
        assert invoice.payment_terms == "Net 45"
        assert invoice.notes == "Thanks for your business"

    def test_blank_payment_terms_refused(self, documents, ctx, draft_invoice):
        with pytest.raises(ValidationError) as exc_info:
            documents.update_invoice(ctx, draft_invoice.id, payment_terms="  ")
        assert exc_info.value.field == "payment_terms"

    def test_sent_invoice_details_are_locked(self, documents, ctx, sent_invoice):
        with pytest.raises(IllegalTransitionError):
            documents.update_invoice(ctx, sent_invoice.id, due_date=date(2026, 5, 1))

    def test_other_organization_cannot_update(self, documents, other_ctx, draft_quote):
        with pytest.raises(DocumentNotFoundError):
            documents.update_quote(other_ctx, draft_quote.id, title="Mine now")


def _line_rows(session, model, column, document_id):
    return session.execute(
        select(func.count()).select_from(model).where(column == document_id)
    ).scalar_one()


class TestDeletion:
    def test_draft_quote_and_its_lines_are_removed(
        self, documents, session, selector, events, ctx, draft_quote
    ):
        def quote_lines():
            return _line_rows(
                session, QuoteLineItemModel, QuoteLineItemModel.quote_id, draft_quote.id
            )

        assert quote_lines() == 2
        documents.delete_quote(ctx, draft_quote.id)
        assert quote_lines() == 0
        with pytest.raises(DocumentNotFoundError):
            selector.get_quote(ctx, draft_quote.id)
        last = events.for_document(QUOTE, draft_quote.id)[-1]
        assert last.event_type == "quote.deleted"
        assert (last.from_status, last.to_status) == ("draft", None)

    def test_draft_invoice_and_its_lines_are_removed(self, documents, session, ctx, draft_invoice):
        documents.delete_invoice(ctx, draft_invoice.id)
        count = _line_rows(
            session, InvoiceLineItemModel, InvoiceLineItemModel.invoice_id, draft_invoice.id
        )
        assert count == 0

    def test_sent_documents_cannot_be_deleted(self, documents, ctx, sent_quote, sent_invoice):
        with pytest.raises(IllegalTransitionError) as exc_info:
            documents.delete_quote(ctx, sent_quote.id)
        assert exc_info.value.action == "delete"
        with pytest.raises(IllegalTransitionError):
            documents.delete_invoice(ctx, sent_invoice.id)

    def test_converted_quote_is_kept(self, documents, ctx, sent_quote):
        documents.staff_accept_quote(ctx, sent_quote.id)
        invoice = documents.create_invoice_from_quote(ctx, sent_quote.id)
        documents.add_line_item(ctx, QUOTE, sent_quote.id, labour(), decision=RESET)

        with pytest.raises(DocumentInUseError) as exc_info:
            documents.delete_quote(ctx, sent_quote.id)
        assert exc_info.value.referenced_by == invoice.document_number

    def test_other_organization_cannot_delete(self, documents, other_ctx, draft_quote):
        with pytest.raises(DocumentNotFoundError):
            documents.delete_quote(other_ctx, draft_quote.id)
