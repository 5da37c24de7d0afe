"""ORM models for the document engine."""

from fieldwork_kernel.models.document_event import DocumentEventModel
from fieldwork_kernel.models.invoice import InvoiceModel, PaymentModel
from fieldwork_kernel.models.line_item import (
    InvoiceLineItemModel,
    LineItemColumns,
    QuoteLineItemModel,
)
from fieldwork_kernel.models.quote import QuoteModel

__all__ = [
    "QuoteModel",
    "InvoiceModel",
    "PaymentModel",
    "LineItemColumns",
    "QuoteLineItemModel",
    "InvoiceLineItemModel",
    "DocumentEventModel",
]
