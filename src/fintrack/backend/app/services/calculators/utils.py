"""Utility helpers for calculator modules."""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal

_CENT = Decimal("0.01")
_RATE_STEP = Decimal("0.0001")


def round_currency(value: Decimal) -> Decimal:
    """Round monetary amounts to two decimals, halves away from zero."""

    return value.quantize(_CENT, rounding=ROUND_HALF_UP)


def round_rate(value: Decimal) -> Decimal:
    """Round rate values to four decimals."""

    return value.quantize(_RATE_STEP, rounding=ROUND_HALF_UP)


def non_negative(value: Decimal) -> Decimal:
    return value if value > 0 else Decimal(0)
