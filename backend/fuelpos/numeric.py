# Overview: Decimal helpers shared by measurement and money calculations.

from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, Union

Number = Union[int, float, str, Decimal]

CENT = Decimal("0.01")
MILLI = Decimal("0.001")


def to_decimal(value: Number) -> Decimal:
    """Coerce user/DB input into Decimal without binary float artifacts."""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise TypeError("boolean is not a numeric value")
    if isinstance(value, float):
        return Decimal(repr(value))
    return Decimal(value)


def round2(value: Number) -> Decimal:
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def round3(value: Number) -> Decimal:
    return to_decimal(value).quantize(MILLI, rounding=ROUND_HALF_UP)


def money_cents(quantity: Number, unit_price_cents: int) -> int:
    """quantity x unit price, rounded half-up to whole cents."""
    total = to_decimal(quantity) * Decimal(unit_price_cents)
    return int(total.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def decimal_str(value: Optional[Decimal]) -> Optional[str]:
    """JSON-safe rendering of Decimal columns."""
    if value is None:
        return None
    return format(to_decimal(value), "f")
