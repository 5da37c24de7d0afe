"""
Payload serialization for views and DTOs leaving the engine.

Money leaves as a base-10 string with exactly two fraction digits; never as
a float.  Dates and datetimes leave as ISO 8601, UUIDs and enums as strings.
"""

from dataclasses import fields, is_dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from fieldwork_kernel.db.types import format_money


def to_payload(value: Any) -> Any:
    """Recursively convert a DTO/view (or container of them) to JSON-safe data."""
    if isinstance(value, Enum):
        return value.value
    if value is None or isinstance(value, (bool, int, str)):
        return value
    if isinstance(value, Decimal):
        return format_money(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, UUID):
        return str(value)
    if is_dataclass(value) and not isinstance(value, type):
        return {f.name: to_payload(getattr(value, f.name)) for f in fields(value)}
    if isinstance(value, dict):
        return {str(k): to_payload(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_payload(v) for v in value]
    raise TypeError(f"Cannot serialize {type(value).__name__}")
