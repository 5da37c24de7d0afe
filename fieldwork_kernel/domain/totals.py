"""
Module: fieldwork_kernel.domain.totals
Responsibility:
    Aggregate a ledger's line items into document totals and derive the
    deposit a quote asks for.

Architecture position:
    Kernel > Domain -- pure calculation, zero I/O.

Invariants enforced:
    - subtotal = sum of line_subtotal; gst_amount = sum of per-line GST
      (never rate x summed subtotal); total_amount = subtotal + gst_amount.
    - Sums are independent of line order and idempotent.
    - A required deposit satisfies 0 < deposit_amount <= total_amount.

Failure modes:
    - ValidationError from validate_deposit_terms / require_valid_deposit
      with field ``deposit_value``.

Usage:
    calculator = TotalsCalculator()
    totals = calculator.reconcile(ledger)
    deposit = calculator.deposit_amount(terms, totals.total_amount)
"""

from __future__ import annotations

from collections.abc import Iterable
from decimal import Decimal

from fieldwork_kernel.db.types import ZERO, round_money
from fieldwork_kernel.domain.documents import (
    DepositTerms,
    DepositType,
    DocumentTotals,
    LineItem,
    parse_deposit_type,
)
from fieldwork_kernel.domain.line_items import LineItemLedger
from fieldwork_kernel.domain.validation import require_money_precision, require_positive
from fieldwork_kernel.exceptions import ValidationError
from fieldwork_kernel.logging_config import get_logger

logger = get_logger("domain.totals")

HUNDRED = Decimal("100")


class TotalsCalculator:
    """Stateless totals and deposit arithmetic."""

    def totals(self, items: Iterable[LineItem]) -> DocumentTotals:
        subtotal = ZERO
        gst_amount = ZERO
        for item in items:
            subtotal += item.line_subtotal
            gst_amount += item.gst_amount
        return DocumentTotals(
            subtotal=subtotal,
            gst_amount=gst_amount,
            total_amount=subtotal + gst_amount,
        )

    def reconcile(self, ledger: LineItemLedger) -> DocumentTotals:
        """Recompute totals for ``ledger`` and clear its dirty flag."""
        result = self.totals(ledger.items())
        ledger.mark_clean()
        logger.debug(
            "totals_reconciled",
            extra={
                "line_count": len(ledger),
                "subtotal": str(result.subtotal),
                "gst_amount": str(result.gst_amount),
                "total_amount": str(result.total_amount),
            },
        )
        return result

    def deposit_amount(self, terms: DepositTerms, total_amount: Decimal) -> Decimal:
        """Deposit asked of the client; zero when no deposit is required."""
        if not terms.required or terms.value is None:
            return ZERO
        if terms.deposit_type == DepositType.PERCENTAGE:
            return round_money(total_amount * terms.value / HUNDRED)
        return round_money(terms.value)

    def validate_deposit_terms(self, terms: DepositTerms) -> DepositTerms:
        """Check the shape of deposit terms independent of any total."""
        if not terms.required:
            return DepositTerms(required=False)
        if terms.deposit_type is None:
            raise ValidationError("deposit_type", "is required when a deposit is required")
        deposit_type = parse_deposit_type(terms.deposit_type)
        value = require_positive("deposit_value", terms.value)
        if deposit_type == DepositType.PERCENTAGE:
            if value > HUNDRED:
                raise ValidationError("deposit_value", "percentage cannot exceed 100", value)
        else:
            require_money_precision("deposit_value", value)
        return DepositTerms(required=True, deposit_type=deposit_type, value=value)

    def require_valid_deposit(self, terms: DepositTerms, total_amount: Decimal) -> Decimal:
        """Deposit amount for ``total_amount``, enforcing 0 < deposit <= total."""
        amount = self.deposit_amount(terms, total_amount)
        if not terms.required:
            return amount
        if amount <= 0:
            raise ValidationError(
                "deposit_value", "deposit must be greater than zero for this total", amount
            )
        if amount > total_amount:
            raise ValidationError(
                "deposit_value",
                f"deposit {amount} exceeds document total {total_amount}",
                amount,
            )
        return amount
