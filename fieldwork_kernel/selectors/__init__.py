"""Selectors for the document engine (read side)."""

from fieldwork_kernel.selectors.document_selector import DocumentSelector
from fieldwork_kernel.selectors.event_selector import DocumentEventSelector

__all__ = [
    "DocumentSelector",
    "DocumentEventSelector",
]
