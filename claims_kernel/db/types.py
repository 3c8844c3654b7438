"""
Module: claims_kernel.db.types
Responsibility: Annotated type aliases and rounding helpers for hours, rates and
    money.  Centralizes precision so every model and service uses identical
    column definitions and the same rounding rule.
Architecture position: Kernel > DB.  May be imported by models/, domain/,
    services/, and selectors/.  MUST NOT import from any of those layers.

Invariants enforced:
    - No floats anywhere: hours, rates and amounts are Decimal.
    - round_money() is the only sanctioned rounding function for amounts.
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Annotated

from sqlalchemy import Numeric, String

# Monetary amount, 2 decimal places
Money = Annotated[Decimal, Numeric(18, 2)]

# Hourly rate, 2 decimal places
Rate = Annotated[Decimal, Numeric(12, 2)]

# Hours worked on a claim, 2 decimal places (e.g. 7.25)
Hours = Annotated[Decimal, Numeric(7, 2)]

# SHA-256 hash as hex string (64 characters)
PayloadHash = Annotated[str, String(64)]

# Short identifier strings
ShortCode = Annotated[str, String(50)]

# Long text for notes and messages
LongText = Annotated[str, String(4000)]


MONEY_DECIMAL_PLACES = 2
DEFAULT_ROUNDING = ROUND_HALF_UP


def to_decimal(value: Decimal | int | str) -> Decimal:
    """
    Coerce user input to Decimal.

    Floats are refused: converting them would carry binary rounding error
    into amounts.

    Raises:
        ValueError: If value is a float or not numeric.
    """
    if isinstance(value, float):
        raise ValueError(f"Float not allowed for decimal quantities: {value!r}")
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value))
        except InvalidOperation as exc:
            raise ValueError(f"Not a decimal number: {value!r}") from exc
    if not result.is_finite():
        raise ValueError(f"Not a finite decimal number: {value!r}")
    return result


def round_money(
    value: Decimal,
    decimal_places: int = MONEY_DECIMAL_PLACES,
    rounding: str = DEFAULT_ROUNDING,
) -> Decimal:
    """
    Round a monetary value to ``decimal_places`` (default 2, half-up).

    Args:
        value: The Decimal value to round.
        decimal_places: Number of decimal places to round to.
        rounding: Rounding mode (default: ROUND_HALF_UP).

    Returns:
        Rounded Decimal value.

    Raises:
        ValueError: If the value has too many digits to hold
            ``decimal_places`` places.
    """
    quantum = Decimal(1).scaleb(-decimal_places)
    try:
        return value.quantize(quantum, rounding=rounding)
    except InvalidOperation as exc:
        raise ValueError(f"Too many digits for {decimal_places} decimal places: {value}") from exc
