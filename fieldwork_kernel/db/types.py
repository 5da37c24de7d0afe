"""
Module: fieldwork_kernel.db.types
Responsibility: Annotated column aliases and the single rounding and
    serialization functions for money.  Every model, domain object and
    view uses identical precision rules through this module.
Architecture position: Kernel > DB.  May be imported by models/, domain/,
    services/, and selectors/.  MUST NOT import from any of those layers.

Invariants enforced:
    - round_money() is the ONLY sanctioned rounding function for monetary
      values (ROUND_HALF_UP, 2 places by default).
    - format_money() is the ONLY sanctioned money serializer: base-10 string
      with exactly two fraction digits, never a binary float.
    - CRITICAL: no floats anywhere.  to_decimal() rejects them.

Failure modes:
    - TypeError from to_decimal() when given a float or bool.
    - ValueError from to_decimal() on a non-numeric string.
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Annotated

from sqlalchemy import BigInteger, Numeric, String

# Monetary amount, 38 digits total, 9 decimal places
Money = Annotated[Decimal, Numeric(38, 9)]

# Quantities share money precision; hours and metres are fractional
Quantity = Annotated[Decimal, Numeric(38, 9)]

# Monotonic sequence number for ordering
Sequence = Annotated[int, BigInteger]

# Short identifier strings (document numbers, enum values)
ShortCode = Annotated[str, String(50)]

# Long text for descriptions and notes
LongText = Annotated[str, String(4000)]


MONEY_DECIMAL_PLACES = 2
DEFAULT_ROUNDING = ROUND_HALF_UP
ZERO = Decimal("0.00")


def round_money(
    value: Decimal,
    decimal_places: int = MONEY_DECIMAL_PLACES,
    rounding: str = DEFAULT_ROUNDING,
) -> Decimal:
    """
    Round a monetary value to specified decimal places.

    This is the ONLY sanctioned rounding function for money in the engine.

    Args:
        value: The Decimal value to round.
        decimal_places: Number of decimal places to round to.
        rounding: Rounding mode (default: ROUND_HALF_UP).

    Returns:
        Rounded Decimal value.
    """
    quantize_str = "0." + "0" * decimal_places if decimal_places > 0 else "1"
    return value.quantize(Decimal(quantize_str), rounding=rounding)


def to_decimal(value: object) -> Decimal:
    """
    Coerce user input (str, int, Decimal) to Decimal.

    Floats are refused outright: a float has already lost the value the
    user typed.

    Raises:
        TypeError: value is a float, bool or unsupported type.
        ValueError: value is a string that is not a finite number.
    """
    if isinstance(value, bool) or isinstance(value, float):
        raise TypeError(f"Refusing non-decimal numeric input: {value!r}")
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, int):
        result = Decimal(value)
    elif isinstance(value, str):
        try:
            result = Decimal(value.strip())
        except InvalidOperation as exc:
            raise ValueError(f"Not a decimal number: {value!r}") from exc
    else:
        raise TypeError(f"Unsupported numeric input: {type(value).__name__}")
    if not result.is_finite():
        raise ValueError(f"Not a finite number: {value!r}")
    return result


def decimal_places_of(value: Decimal) -> int:
    """Number of significant fraction digits (trailing zeros ignored)."""
    normalized = value.normalize()
    exponent = normalized.as_tuple().exponent
    return max(0, -exponent) if isinstance(exponent, int) else 0


def format_money(value: Decimal | None) -> str | None:
    """Serialize money as a base-10 string with exactly two fraction digits."""
    if value is None:
        return None
    return str(round_money(value))


def format_quantity(value: Decimal | None) -> str | None:
    """Serialize a quantity without storage padding: 2.500000000 -> "2.5"."""
    if value is None:
        return None
    return format(value.normalize(), "f")
