"""
ORM-Level Immutability Enforcement.

===============================================================================
WHY THIS EXISTS
===============================================================================

Money received and transitions announced to the outside world cannot be
taken back by editing a row.  A payment that was recorded stays recorded;
an outbox event that a mailer may already have consumed stays as it was;
the public token a client was emailed keeps working.

SQLAlchemy fires events before UPDATE/DELETE operations reach the database.
We register listeners that intercept these events and check our invariants:

    session.flush()
         |
         v
    [before_update event] --> _check_*_immutability() --> ImmutabilityViolationError
         |                                                        ^
         v                                                        |
    [before_delete event] --> _check_*_delete() -----------------+
         |
         v
    SQL sent to database (only if checks pass)

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity                 | When Immutable         | Why
-----------------------|------------------------|--------------------------------
PaymentModel           | ALWAYS (from creation) | paid_amount == sum(payments)
DocumentEventModel     | ALWAYS (from creation) | Consumers read by seq cursor
QuoteModel.public_token| ALWAYS (from creation) | Emailed links must keep working
InvoiceModel.public_token | ALWAYS              | Same

===============================================================================
USAGE
===============================================================================

Called automatically by ``init_engine_from_url`` and ``create_tables``:

    from fieldwork_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()

To temporarily disable (TESTS ONLY):

    from fieldwork_kernel.db.immutability import unregister_immutability_listeners
    unregister_immutability_listeners()
"""

from sqlalchemy import event
from sqlalchemy.orm.attributes import get_history

from fieldwork_kernel.exceptions import ImmutabilityViolationError
from fieldwork_kernel.logging_config import get_logger

logger = get_logger("db.immutability")


def _block(entity_type: str, target, operation: str, reason: str):
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(target.id),
            "operation": operation,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(target.id),
        reason=reason,
    )


def _check_payment_immutability(mapper, connection, target):
    """Payments are never edited; a correction is a new record."""
    from fieldwork_kernel.models.invoice import PaymentModel

    if not isinstance(target, PaymentModel):
        return
    _block("Payment", target, "UPDATE", "Payments are immutable once recorded")


def _check_payment_delete(mapper, connection, target):
    from fieldwork_kernel.models.invoice import PaymentModel

    if not isinstance(target, PaymentModel):
        return
    _block("Payment", target, "DELETE", "Payments cannot be deleted")


def _check_document_event_immutability(mapper, connection, target):
    from fieldwork_kernel.models.document_event import DocumentEventModel

    if not isinstance(target, DocumentEventModel):
        return
    _block("DocumentEvent", target, "UPDATE", "Document events are append-only")


def _check_document_event_delete(mapper, connection, target):
    from fieldwork_kernel.models.document_event import DocumentEventModel

    if not isinstance(target, DocumentEventModel):
        return
    _block("DocumentEvent", target, "DELETE", "Document events cannot be deleted")


def _check_public_token_immutability(mapper, connection, target):
    """
    Block changes to ``public_token`` on quotes and invoices.

    Everything else on the document row stays mutable; the status machine
    and variation policy govern those fields.
    """
    history = get_history(target, "public_token")
    if history.deleted and history.added and history.deleted[0] != history.added[0]:
        _block(
            type(target).__name__.removesuffix("Model"),
            target,
            "UPDATE",
            "Public tokens are issued once and never regenerated",
        )


def register_immutability_listeners():
    """
    Register all immutability enforcement event listeners.

    Idempotent: listeners already present are not added twice.
    """
    from fieldwork_kernel.models.document_event import DocumentEventModel
    from fieldwork_kernel.models.invoice import InvoiceModel, PaymentModel
    from fieldwork_kernel.models.quote import QuoteModel

    for target, event_name, listener_fn in (
        (PaymentModel, "before_update", _check_payment_immutability),
        (PaymentModel, "before_delete", _check_payment_delete),
        (DocumentEventModel, "before_update", _check_document_event_immutability),
        (DocumentEventModel, "before_delete", _check_document_event_delete),
        (QuoteModel, "before_update", _check_public_token_immutability),
        (InvoiceModel, "before_update", _check_public_token_immutability),
    ):
        if not event.contains(target, event_name, listener_fn):
            event.listen(target, event_name, listener_fn)

    logger.debug("immutability_listeners_registered")


def _safe_remove_listener(target, event_name, listener_fn):
    """Remove an event listener, ignoring it if not registered."""
    if event.contains(target, event_name, listener_fn):
        event.remove(target, event_name, listener_fn)


def unregister_immutability_listeners():
    """
    Remove immutability enforcement event listeners.

    WARNING: Only use this in tests where you need to intentionally
    violate immutability rules to verify detection.
    """
    from fieldwork_kernel.models.document_event import DocumentEventModel
    from fieldwork_kernel.models.invoice import InvoiceModel, PaymentModel
    from fieldwork_kernel.models.quote import QuoteModel

    _safe_remove_listener(PaymentModel, "before_update", _check_payment_immutability)
    _safe_remove_listener(PaymentModel, "before_delete", _check_payment_delete)
    _safe_remove_listener(DocumentEventModel, "before_update", _check_document_event_immutability)
    _safe_remove_listener(DocumentEventModel, "before_delete", _check_document_event_delete)
    _safe_remove_listener(QuoteModel, "before_update", _check_public_token_immutability)
    _safe_remove_listener(InvoiceModel, "before_update", _check_public_token_immutability)

    logger.debug("immutability_listeners_unregistered")
