"""Decimal helpers for monetary amounts (two places, half-up)."""

from __future__ import annotations

from decimal import ROUND_HALF_UP
from decimal import Decimal
from decimal import InvalidOperation

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def quantize_money(value: Decimal | int | str) -> Decimal:
    """Round to cents, half away from zero."""
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def to_decimal(value) -> Decimal | None:
    """Coerce ints, strings and floats to Decimal; None if not a finite number."""
    if isinstance(value, bool):
        return None
    try:
        result = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        return None
    if not result.is_finite():
        return None
    return result


def percentage_of(amount: Decimal, rate: Decimal) -> Decimal:
    """``amount * rate / 100`` rounded to cents."""
    return quantize_money(Decimal(amount) * Decimal(rate) / Decimal(100))
