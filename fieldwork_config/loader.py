"""
Configuration Loader (``fieldwork_config.loader``).

Responsibility
--------------
Loads a configuration set's ``root.yaml`` and parses it into a typed
``EngineConfiguration``.  This is internal tooling: runtime callers go
through ``fieldwork_config.get_active_config()``.

Invariants enforced
-------------------
* Every parsed object is a frozen dataclass from ``schema.py``.
* ``validate_configuration`` rejects values the engine cannot honour.
* ``compute_checksum`` produces a deterministic SHA-256 hash for
  configuration identity and change detection.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing ``config_id``  -> ``KeyError`` propagates.
* Out-of-range values  -> ``ValueError`` from ``validate_configuration``.
"""

from __future__ import annotations

import hashlib
import json
import re
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any
from uuid import UUID

import yaml

from fieldwork_config.schema import ConfigScope, EngineConfiguration

_PREFIX_PATTERN = re.compile(r"^[A-Z]{2,8}$")


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def parse_decimal(name: str, value: Any) -> Decimal:
    # YAML floats are refused; rates are written as strings
    if isinstance(value, float):
        raise ValueError(f"{name} must be quoted as a decimal string, got float {value!r}")
    try:
        return Decimal(str(value))
    except InvalidOperation as exc:
        raise ValueError(f"{name} is not a decimal: {value!r}") from exc


def parse_scope(data: dict[str, Any]) -> ConfigScope:
    return ConfigScope(
        organizations=tuple(UUID(str(org)) for org in data.get("organizations") or ()),
        default=bool(data.get("default", False)),
    )


def parse_configuration(data: dict[str, Any]) -> EngineConfiguration:
    """Parse a root.yaml dict into an ``EngineConfiguration``."""
    numbering = data.get("numbering") or {}
    defaults = data.get("defaults") or {}
    return EngineConfiguration(
        config_id=data["config_id"],
        version=int(data.get("version", 1)),
        checksum=compute_checksum(data),
        scope=parse_scope(data.get("scope") or {}),
        currency=data.get("currency", "AUD"),
        gst_rate=parse_decimal("gst_rate", data.get("gst_rate", "0.10")),
        money_places=int(data.get("money_places", 2)),
        quote_number_prefix=numbering.get("quote_prefix", "QTE"),
        invoice_number_prefix=numbering.get("invoice_prefix", "INV"),
        document_number_width=int(numbering.get("width", 3)),
        public_token_bytes=int(data.get("public_token_bytes", 16)),
        default_quote_validity_days=int(defaults.get("quote_validity_days", 30)),
        default_payment_terms_days=int(defaults.get("payment_terms_days", 14)),
    )


def load_configuration(set_dir: Path) -> EngineConfiguration:
    return parse_configuration(load_yaml_file(set_dir / "root.yaml"))


def validate_configuration(config: EngineConfiguration) -> list[str]:
    """Return a list of problems; empty means the set is usable."""
    errors: list[str] = []
    if not Decimal("0") <= config.gst_rate < Decimal("1"):
        errors.append(f"gst_rate must be in [0, 1), got {config.gst_rate}")
    if config.money_places != 2:
        errors.append(f"money_places must be 2, got {config.money_places}")
    for name in ("quote_number_prefix", "invoice_number_prefix"):
        prefix = getattr(config, name)
        if not _PREFIX_PATTERN.match(prefix):
            errors.append(f"{name} must be 2-8 uppercase letters, got {prefix!r}")
    if config.quote_number_prefix == config.invoice_number_prefix:
        errors.append("quote and invoice prefixes must differ")
    if not 1 <= config.document_number_width <= 9:
        errors.append(f"document_number_width must be 1-9, got {config.document_number_width}")
    if config.public_token_bytes < 16:
        errors.append(f"public_token_bytes must be at least 16, got {config.public_token_bytes}")
    if config.default_quote_validity_days < 1:
        errors.append("default_quote_validity_days must be positive")
    if config.default_payment_terms_days < 0:
        errors.append("default_payment_terms_days must not be negative")
    return errors
