"""Month-by-month withholding forecast over an income timeline."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from decimal import Decimal

from fintrack.backend.app.models import (
    AnnualSummary,
    CumulativeState,
    ForecastEvent,
    ForecastMarkers,
    ForecastMonth,
    IncomeTimeline,
    MonthlyIncomeInput,
    PolicyChanged,
    WithholdingOptions,
    YearMonth,
    month_range,
)
from fintrack.backend.config.repository import PolicyRepository
from fintrack.backend.errors import ConfigNotFound

from .calculators import compute_month

_LOGGER = logging.getLogger(__name__)


def forecast(
    region: str,
    start: YearMonth | str,
    end: YearMonth | str,
    timeline: IncomeTimeline,
    repository: PolicyRepository,
    options: WithholdingOptions | None = None,
    anchor_day: int = 1,
) -> list[ForecastMonth]:
    """Project withholding for every month from ``start`` to ``end`` inclusive.

    Policies are resolved once for the whole range at ``anchor_day`` of each
    month. A month without an effective policy becomes an error row and the
    forecast carries on; the cumulative state restarts every calendar year.
    """

    months = month_range(YearMonth.parse(start), YearMonth.parse(end))
    anchors = {period: period.anchor(anchor_day) for period in months}
    policies = repository.resolve_many(region, anchors.values())

    rows: list[ForecastMonth] = []
    state: CumulativeState | None = None
    previous_signature: str | None = None

    for period in months:
        if state is None or state.year != period.year:
            state = CumulativeState.initial(period.year)

        salary_changes = timeline.salary_changes_in(period)
        bonuses = timeline.bonuses_in(period)
        payments = timeline.long_term_cash_in(period)
        bonus_total = sum((bonus.amount for bonus in bonuses), Decimal(0))
        long_term_cash = sum((payment.quarterly_amount for payment in payments), Decimal(0))
        events: list[ForecastEvent] = [*salary_changes, *bonuses, *payments]

        policy = policies[anchors[period]]
        if isinstance(policy, ConfigNotFound):
            _LOGGER.warning("Skipping %s in forecast for %s: %s", period, region, policy)
            rows.append(
                ForecastMonth(
                    period=period,
                    result=None,
                    markers=ForecastMarkers(
                        salary_change=bool(salary_changes),
                        bonus_paid=bool(bonuses),
                        long_term_cash_paid=bool(payments),
                        long_term_cash_count=len(payments),
                    ),
                    events=tuple(events),
                    long_term_cash=long_term_cash,
                    error=str(policy),
                )
            )
            continue

        income = MonthlyIncomeInput(
            year=period.year,
            month=period.month,
            gross_salary=timeline.gross_for(period),
            bonus=bonus_total + long_term_cash,
        )
        state, result = compute_month(state, income, policy, options)

        signature = result.policy_signature
        tax_change = previous_signature is not None and signature != previous_signature
        if tax_change:
            events.append(PolicyChanged(period, previous_signature, signature))
        previous_signature = signature

        rows.append(
            ForecastMonth(
                period=period,
                result=result,
                markers=ForecastMarkers(
                    salary_change=bool(salary_changes),
                    bonus_paid=bool(bonuses),
                    long_term_cash_paid=bool(payments),
                    long_term_cash_count=len(payments),
                    tax_change=tax_change,
                ),
                events=tuple(events),
                long_term_cash=long_term_cash,
            )
        )

    _LOGGER.debug("Forecast for %s produced %d month(s)", region, len(rows))
    return rows


def summarise_forecast(rows: Iterable[ForecastMonth]) -> list[AnnualSummary]:
    """Fold forecast rows into one summary per calendar year, in order."""

    summaries: dict[int, AnnualSummary] = {}
    for row in rows:
        year = row.period.year
        if year not in summaries:
            summaries[year] = AnnualSummary(year=year)
        summaries[year].add(row)
    return list(summaries.values())


__all__ = ["forecast", "summarise_forecast"]
