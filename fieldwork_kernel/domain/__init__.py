"""
Pure domain layer.

This module contains value objects and document rules
with NO dependencies on:
- ORM (SQLAlchemy)
- Database
- I/O

Time enters only through an injected Clock.
"""

from fieldwork_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from fieldwork_kernel.domain.documents import (
    DEFAULT_GST_RATE,
    ActorContext,
    DepositTerms,
    DepositType,
    DocumentEvent,
    DocumentKind,
    DocumentTotals,
    Invoice,
    InvoiceStatus,
    ItemType,
    LineItem,
    LineItemSpec,
    Payment,
    PaymentMethod,
    Quote,
    QuoteStatus,
    SendableDocument,
)
from fieldwork_kernel.domain.line_items import LineItemLedger
from fieldwork_kernel.domain.serialization import to_payload
from fieldwork_kernel.domain.settings import DocumentSettings
from fieldwork_kernel.domain.state_machine import (
    INVOICE_WORKFLOW,
    QUOTE_WORKFLOW,
    DocumentStateMachine,
    TransitionContext,
)
from fieldwork_kernel.domain.totals import TotalsCalculator
from fieldwork_kernel.domain.variation import (
    AddLineItem,
    RemoveLineItem,
    UpdateLineItem,
    VariationDecision,
    VariationOutcome,
    VariationPolicy,
    VariationProposal,
)
from fieldwork_kernel.domain.workflow import Guard, Transition, Workflow

__all__ = [
    # Clock
    "Clock",
    "SystemClock",
    "DeterministicClock",
    # Documents
    "DEFAULT_GST_RATE",
    "ActorContext",
    "DepositTerms",
    "DepositType",
    "DocumentEvent",
    "DocumentKind",
    "DocumentTotals",
    "Invoice",
    "InvoiceStatus",
    "ItemType",
    "LineItem",
    "LineItemSpec",
    "Payment",
    "PaymentMethod",
    "Quote",
    "QuoteStatus",
    "SendableDocument",
    # Settings and payloads
    "DocumentSettings",
    "to_payload",
    # Ledger and totals
    "LineItemLedger",
    "TotalsCalculator",
    # State machine
    "Guard",
    "Transition",
    "Workflow",
    "QUOTE_WORKFLOW",
    "INVOICE_WORKFLOW",
    "DocumentStateMachine",
    "TransitionContext",
    # Variations
    "AddLineItem",
    "UpdateLineItem",
    "RemoveLineItem",
    "VariationDecision",
    "VariationProposal",
    "VariationOutcome",
    "VariationPolicy",
]
