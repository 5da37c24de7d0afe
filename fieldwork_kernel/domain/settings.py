"""
Runtime knobs the services need, as a frozen value object.

The kernel never reads configuration files.  ``fieldwork_config.bridges``
builds a ``DocumentSettings`` from the active configuration set; tests
construct one directly.
"""

from dataclasses import dataclass
from decimal import Decimal

from fieldwork_kernel.domain.documents import DEFAULT_GST_RATE, DocumentKind


@dataclass(frozen=True)
class DocumentSettings:
    currency: str = "AUD"
    gst_rate: Decimal = DEFAULT_GST_RATE
    quote_number_prefix: str = "QTE"
    invoice_number_prefix: str = "INV"
    document_number_width: int = 3
    public_token_bytes: int = 16
    default_quote_validity_days: int = 30
    default_payment_terms_days: int = 14
    config_id: str | None = None
    config_checksum: str | None = None

    def number_prefix(self, kind: DocumentKind) -> str:
        if kind == DocumentKind.QUOTE:
            return self.quote_number_prefix
        return self.invoice_number_prefix

    def format_document_number(self, kind: DocumentKind, year: int, value: int) -> str:
        """QTE-2026-007; the counter widens past ``document_number_width`` rather than wrapping."""
        return f"{self.number_prefix(kind)}-{year}-{value:0{self.document_number_width}d}"

    def payment_terms_label(self, days: int | None = None) -> str:
        return f"Net {days if days is not None else self.default_payment_terms_days} days"
