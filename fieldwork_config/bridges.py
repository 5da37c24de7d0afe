"""
Config -> Kernel Bridges.

Converts an ``EngineConfiguration`` into kernel inputs.  Lives here (the
producer) because the kernel must NEVER import fieldwork_config.

Usage:
    from fieldwork_config import get_active_config
    from fieldwork_config.bridges import build_document_settings

    settings = build_document_settings(get_active_config(ctx.organization_id))
"""

from fieldwork_config.schema import EngineConfiguration
from fieldwork_kernel.domain.settings import DocumentSettings


def build_document_settings(config: EngineConfiguration) -> DocumentSettings:
    return DocumentSettings(
        currency=config.currency,
        gst_rate=config.gst_rate,
        quote_number_prefix=config.quote_number_prefix,
        invoice_number_prefix=config.invoice_number_prefix,
        document_number_width=config.document_number_width,
        public_token_bytes=config.public_token_bytes,
        default_quote_validity_days=config.default_quote_validity_days,
        default_payment_terms_days=config.default_payment_terms_days,
        config_id=config.config_id,
        config_checksum=config.checksum,
    )
