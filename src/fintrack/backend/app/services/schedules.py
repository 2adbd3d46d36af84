"""Expand deferred-cash grants into the monthly payments a forecast consumes."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from decimal import Decimal

from fintrack.backend.app.models import (
    LongTermCashGrant,
    LongTermCashPaid,
    YearMonth,
    month_range,
)
from fintrack.backend.errors import InvalidInput

from .calculators import round_currency

DEFAULT_QUARTERS = 16
DEFAULT_PAYOUT_MONTHS: tuple[int, ...] = (1, 4, 7, 10)


def expand_long_term_cash(
    grants: Iterable[LongTermCashGrant],
    start: YearMonth | str,
    end: YearMonth | str,
    quarters: int = DEFAULT_QUARTERS,
    payout_months: Sequence[int] = DEFAULT_PAYOUT_MONTHS,
) -> list[LongTermCashPaid]:
    """Return one payment per grant and payout month between ``start`` and ``end``.

    A grant pays ``total_amount / quarters`` in each payout month whose
    calendar quarter lies within ``quarters`` quarters of the quarter the
    grant became effective, the effective quarter itself included.
    """

    if quarters <= 0:
        raise InvalidInput("Long-term cash must pay out over at least one quarter")
    if any(not 1 <= month <= 12 for month in payout_months):
        raise InvalidInput("Payout months must be between 1 and 12")

    payout = frozenset(payout_months)
    months = [
        period
        for period in month_range(YearMonth.parse(start), YearMonth.parse(end))
        if period.month in payout
    ]

    payments: list[LongTermCashPaid] = []
    for grant in grants:
        first_quarter = YearMonth.parse(grant.effective_date).quarter_index
        instalment = round_currency(grant.total_amount / Decimal(quarters))
        for period in months:
            if 0 <= period.quarter_index - first_quarter < quarters:
                payments.append(LongTermCashPaid(period, instalment))

    payments.sort(key=lambda payment: payment.month)
    return payments


__all__ = ["DEFAULT_PAYOUT_MONTHS", "DEFAULT_QUARTERS", "expand_long_term_cash"]
