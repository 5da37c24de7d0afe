"""Field-level validation shared by the ledger, payments and the public gateway."""

import re
from decimal import Decimal

from fieldwork_kernel.db.types import MONEY_DECIMAL_PLACES, decimal_places_of, to_decimal
from fieldwork_kernel.exceptions import ValidationError

# Same shape the public page enforces: something@something.tld, no spaces
EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def require_decimal(field: str, value: object) -> Decimal:
    """Parse a numeric input or report it against ``field``."""
    if value is None:
        raise ValidationError(field, "is required")
    try:
        return to_decimal(value)
    except (TypeError, ValueError) as exc:
        raise ValidationError(field, str(exc), value) from exc


def require_positive(field: str, value: object) -> Decimal:
    amount = require_decimal(field, value)
    if amount <= 0:
        raise ValidationError(field, "must be greater than zero", amount)
    return amount


def require_non_negative(field: str, value: object) -> Decimal:
    amount = require_decimal(field, value)
    if amount < 0:
        raise ValidationError(field, "must not be negative", amount)
    return amount


def require_precision(field: str, amount: Decimal, places: int) -> Decimal:
    """Refuse fraction digits the storage column would round away."""
    if decimal_places_of(amount) > places:
        raise ValidationError(field, f"must have at most {places} decimal places", amount)
    return amount


def require_money_precision(field: str, amount: Decimal) -> Decimal:
    return require_precision(field, amount, MONEY_DECIMAL_PLACES)


def require_text(field: str, value: str | None) -> str:
    text = (value or "").strip()
    if not text:
        raise ValidationError(field, "must not be empty")
    return text


def require_email(field: str, value: str | None) -> str:
    email = require_text(field, value)
    if not EMAIL_PATTERN.match(email):
        raise ValidationError(field, "is not a valid email address", email)
    return email
