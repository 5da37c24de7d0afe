"""
EngineConfiguration schema.

The human-authored, reviewable source artifact for engine settings.  YAML
sets are parsed into these types by the loader and turned into kernel
inputs by ``fieldwork_config.bridges``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from uuid import UUID


@dataclass(frozen=True)
class ConfigScope:
    """Which organizations a configuration set applies to."""

    organizations: tuple[UUID, ...] = ()
    default: bool = False

    def covers(self, organization_id: UUID | None) -> bool:
        return organization_id is not None and organization_id in self.organizations


@dataclass(frozen=True)
class EngineConfiguration:
    """One configuration set, frozen after loading."""

    config_id: str
    version: int
    checksum: str
    scope: ConfigScope = field(default_factory=ConfigScope)
    currency: str = "AUD"
    gst_rate: Decimal = Decimal("0.10")
    money_places: int = 2
    quote_number_prefix: str = "QTE"
    invoice_number_prefix: str = "INV"
    document_number_width: int = 3
    public_token_bytes: int = 16
    default_quote_validity_days: int = 30
    default_payment_terms_days: int = 14
