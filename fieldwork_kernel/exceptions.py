"""
Typed Exception Hierarchy for the Fieldwork document engine.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Quotes and invoices are edited from the mobile app, the web dashboard and the
public client page.  Every one of those callers has to react differently to
"the client already accepted this quote" versus "the payment is larger than
what is owed".  Matching on message text is fragile, so:

  1. Every error has a TYPED exception class (catch by type, not message)
  2. Every exception has a CODE attribute (machine-readable, API-safe)
  3. Exceptions carry structured DATA (not just a message string)

Example:
    try:
        recorder.record_payment(ctx, invoice_id, amount=Decimal("50.00"), ...)
    except OverpaymentError as e:
        api_response(code=e.code, outstanding=e.outstanding)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    FieldworkError (base)
    |
    +-- ValidationError
    |
    +-- DocumentError
    |   +-- DocumentNotFoundError
    |   +-- DocumentInUseError
    |
    +-- TransitionError
    |   +-- IllegalTransitionError
    |       +-- GuardFailedError
    |
    +-- VariationError
    |   +-- DecisionRequiredError
    |
    +-- PaymentError
    |   +-- OverpaymentError
    |
    +-- GatewayError
    |   +-- DepositRequiredError
    |   +-- NotActionableError
    |
    +-- ConcurrencyError
    |   +-- OptimisticLockError
    |
    +-- ImmutabilityError
        +-- ImmutabilityViolationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
Validation      | VALIDATION_ERROR            | Malformed line item, payment, deposit
----------------|-----------------------------|-----------------------------------------
Document        | DOCUMENT_NOT_FOUND          | Unknown id/token, or other organization
                | DOCUMENT_IN_USE             | Deleting a quote an invoice was built from
----------------|-----------------------------|-----------------------------------------
Transition      | ILLEGAL_TRANSITION          | Status change not in the workflow table
                | TRANSITION_GUARD_FAILED     | Transition exists but precondition fails
----------------|-----------------------------|-----------------------------------------
Variation       | DECISION_REQUIRED           | Edit to a non-draft document, no outcome
----------------|-----------------------------|-----------------------------------------
Payment         | OVERPAYMENT                 | Payment exceeds outstanding balance
----------------|-----------------------------|-----------------------------------------
Gateway         | DEPOSIT_REQUIRED            | Public accept before deposit is paid
                | NOT_ACTIONABLE              | Public action on a non-sent/expired quote
----------------|-----------------------------|-----------------------------------------
Concurrency     | OPTIMISTIC_LOCK_CONFLICT    | Write from a stale document snapshot
----------------|-----------------------------|-----------------------------------------
Immutability    | IMMUTABILITY_VIOLATION      | Editing a payment, event or public token

===============================================================================
HANDLING PATTERNS
===============================================================================

All errors are terminal for the triggering request.  The engine never
retries; the caller decides whether to re-fetch and retry (typically only
for ConcurrencyError) or surface the error to a human.

    except ConcurrencyError:
        retry_with_fresh_read()
    except GatewayError as e:
        render_public_error(e.code)
"""


class FieldworkError(Exception):
    """
    Base exception for all document engine errors.

    All subclasses must have a ``code`` class attribute for machine-readable
    error identification.
    """

    code: str = "FIELDWORK_ERROR"


# Validation


class ValidationError(FieldworkError):
    """Malformed input, reported with the offending field."""

    code: str = "VALIDATION_ERROR"

    def __init__(self, field: str, reason: str, value: object = None):
        self.field = field
        self.reason = reason
        self.value = None if value is None else str(value)
        super().__init__(f"Invalid {field}: {reason}")


# Document lookup


class DocumentError(FieldworkError):
    """Base exception for document lookup errors."""

    code: str = "DOCUMENT_ERROR"


class DocumentNotFoundError(DocumentError):
    """
    Document does not exist or is not visible to the caller.

    Raised for an unknown id, an id owned by another organization, and an
    unknown public token alike, so callers cannot test whether a document
    exists.
    """

    code: str = "DOCUMENT_NOT_FOUND"

    def __init__(self, document_kind: str, reference: str):
        self.document_kind = document_kind
        self.reference = reference
        super().__init__(f"{document_kind} not found: {reference}")


class DocumentInUseError(DocumentError):
    """Document cannot be deleted while another document refers to it."""

    code: str = "DOCUMENT_IN_USE"

    def __init__(self, document_kind: str, document_id: str, referenced_by: str):
        self.document_kind = document_kind
        self.document_id = document_id
        self.referenced_by = referenced_by
        super().__init__(f"{document_kind} {document_id} is referenced by {referenced_by}")


# State machine


class TransitionError(FieldworkError):
    """Base exception for status transition errors."""

    code: str = "TRANSITION_ERROR"


class IllegalTransitionError(TransitionError):
    """
    Requested status change is not in the document's workflow table.

    Never coerced to a "closest legal" state.
    """

    code: str = "ILLEGAL_TRANSITION"

    def __init__(
        self,
        document_kind: str,
        document_id: str,
        from_status: str,
        action: str,
        to_status: str | None = None,
    ):
        self.document_kind = document_kind
        self.document_id = document_id
        self.from_status = from_status
        self.action = action
        self.to_status = to_status
        target = f" -> {to_status}" if to_status else ""
        super().__init__(
            f"Illegal {document_kind} transition '{action}' from "
            f"{from_status}{target} on {document_id}"
        )


class GuardFailedError(IllegalTransitionError):
    """Transition exists in the table but its guard condition is not met."""

    code: str = "TRANSITION_GUARD_FAILED"

    def __init__(
        self,
        document_kind: str,
        document_id: str,
        from_status: str,
        action: str,
        to_status: str | None,
        guard: str,
    ):
        self.guard = guard
        super().__init__(document_kind, document_id, from_status, action, to_status)
        self.args = (
            f"Guard '{guard}' failed for {document_kind} transition "
            f"'{action}' from {from_status} on {document_id}",
        )


# Variations


class VariationError(FieldworkError):
    """Base exception for post-send edit errors."""

    code: str = "VARIATION_ERROR"


class DecisionRequiredError(VariationError):
    """
    Edit to a non-draft document without a reconciliation decision.

    The ledger is left untouched when this is raised.
    """

    code: str = "DECISION_REQUIRED"

    def __init__(self, document_kind: str, document_id: str, status: str):
        self.document_kind = document_kind
        self.document_id = document_id
        self.status = status
        super().__init__(
            f"{document_kind} {document_id} is {status}: choose "
            "reset_for_reapproval or self_approve before editing"
        )


# Payments


class PaymentError(FieldworkError):
    """Base exception for payment recording errors."""

    code: str = "PAYMENT_ERROR"


class OverpaymentError(PaymentError):
    """Payment amount exceeds the invoice's outstanding balance."""

    code: str = "OVERPAYMENT"

    def __init__(self, invoice_id: str, amount: str, outstanding: str):
        self.invoice_id = invoice_id
        self.amount = amount
        self.outstanding = outstanding
        super().__init__(
            f"Payment {amount} exceeds outstanding balance {outstanding} "
            f"on invoice {invoice_id}"
        )


# Public gateway


class GatewayError(FieldworkError):
    """Base exception for public acceptance gateway preconditions."""

    code: str = "GATEWAY_ERROR"


class DepositRequiredError(GatewayError):
    """Quote requires a deposit that has not been paid."""

    code: str = "DEPOSIT_REQUIRED"

    def __init__(self, document_number: str, deposit_amount: str):
        self.document_number = document_number
        self.deposit_amount = deposit_amount
        super().__init__(
            f"Deposit of {deposit_amount} must be paid before quote "
            f"{document_number} can be accepted"
        )


class NotActionableError(GatewayError):
    """Quote is not in a state the client can act on."""

    code: str = "NOT_ACTIONABLE"

    def __init__(self, document_number: str, effective_status: str):
        self.document_number = document_number
        self.effective_status = effective_status
        super().__init__(
            f"Quote {document_number} is {effective_status} and can no "
            "longer be accepted or rejected"
        )


# Concurrency


class ConcurrencyError(FieldworkError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class OptimisticLockError(ConcurrencyError):
    """Optimistic locking conflict detected."""

    code: str = "OPTIMISTIC_LOCK_CONFLICT"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(
            f"Optimistic lock conflict on {entity_type} {entity_id}: "
            "entity was modified by another transaction"
        )


# Immutability


class ImmutabilityError(FieldworkError):
    """Base exception for immutability-related errors."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """
    Attempted to modify or delete an immutable record.

    Payments and document events are append-only; a public token never
    changes once issued.
    """

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )
