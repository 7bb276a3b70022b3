"""Decimal helpers for monetary and price values."""

from decimal import ROUND_HALF_UP, Decimal
from typing import Union

CENT = Decimal("0.01")
ZERO = Decimal("0")
HUNDRED = Decimal("100")

Number = Union[Decimal, int, str]


def to_decimal(value: Number) -> Decimal:
    """Convert to Decimal without passing through float."""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        raise TypeError("Monetary values must not be floats")
    return Decimal(str(value))


def quantize_money(value: Decimal) -> Decimal:
    """Round to cents. Only call at the point of persistence."""
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def percent_of(amount: Decimal, percent: Number) -> Decimal:
    """Return ``percent`` percent of ``amount`` at full precision."""
    return amount * to_decimal(percent) / HUNDRED
