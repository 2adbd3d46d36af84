"""Time-weighted and money-weighted returns over valuation snapshots.

Amounts stay :class:`~decimal.Decimal` for reconciliation (``pnl`` and
``net_flow``); the return rates are floats. A cash flow dated exactly on a
valuation boundary belongs to the period starting at that boundary, except
that flows on the final valuation date are folded into the last period so
that a window's flows are always fully accounted for.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Iterable, Iterator, Sequence
from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from fintrack.backend.app.models import CashFlow, PerformanceResult, Period, ValuationSnapshot
from fintrack.backend.errors import InvalidInput, NoConvergence

_LOGGER = logging.getLogger(__name__)

_DAYS_PER_YEAR = 365.0
_RATE_FLOOR = -0.999
_RATE_CEILING = 10.0
_NEWTON_ITERATIONS = 100
_GRID_STEPS = 2000
_BISECTION_ITERATIONS = 200
_RATE_TOLERANCE = 1e-12
_NPV_TOLERANCE = 1e-9


def twr(periods: Iterable[Period]) -> float:
    """Chain period returns geometrically.

    Each period contributes ``(end - start) / (start + net_flow)``; periods
    whose denominator is zero or negative carry no meaningful factor and are
    skipped. Returns ``0.0`` when no period is usable.
    """

    growth = 1.0
    for period in periods:
        denominator = period.start_value + period.net_flow_during
        if denominator <= 0:
            continue
        growth *= 1.0 + float((period.end_value - period.start_value) / denominator)
    return growth - 1.0


@dataclass(frozen=True)
class _Term:
    amount: float
    years: float


def _npv(rate: float, terms: Sequence[_Term]) -> float:
    try:
        return math.fsum(term.amount / (1.0 + rate) ** term.years for term in terms)
    except (OverflowError, ZeroDivisionError):
        return math.nan


def _npv_derivative(rate: float, terms: Sequence[_Term]) -> float:
    try:
        return math.fsum(
            -term.years * term.amount / (1.0 + rate) ** (term.years + 1.0) for term in terms
        )
    except (OverflowError, ZeroDivisionError):
        return math.nan


def _newton(guess: float, terms: Sequence[_Term], tolerance: float) -> float | None:
    rate = guess
    for _ in range(_NEWTON_ITERATIONS):
        value = _npv(rate, terms)
        if not math.isfinite(value):
            return None
        if abs(value) <= tolerance:
            return rate
        slope = _npv_derivative(rate, terms)
        if not math.isfinite(slope) or slope == 0.0:
            return None
        candidate = rate - value / slope
        if not math.isfinite(candidate) or not _RATE_FLOOR < candidate < _RATE_CEILING:
            return None
        if abs(candidate - rate) <= _RATE_TOLERANCE:
            return candidate
        rate = candidate
    return None


def _bracket_root(terms: Sequence[_Term]) -> tuple[float, float] | None:
    step = (_RATE_CEILING - _RATE_FLOOR) / _GRID_STEPS
    previous_rate = _RATE_FLOOR
    previous_value = _npv(previous_rate, terms)
    for index in range(1, _GRID_STEPS):
        rate = _RATE_FLOOR + index * step
        value = _npv(rate, terms)
        if math.isfinite(previous_value) and math.isfinite(value):
            if value == 0.0:
                return rate, rate
            if (previous_value < 0.0) != (value < 0.0):
                return previous_rate, rate
        previous_rate, previous_value = rate, value
    return None


def _bisect(low: float, high: float, terms: Sequence[_Term], tolerance: float) -> float:
    low_value = _npv(low, terms)
    for _ in range(_BISECTION_ITERATIONS):
        middle = (low + high) / 2.0
        value = _npv(middle, terms)
        if abs(value) <= tolerance or (high - low) / 2.0 <= _RATE_TOLERANCE:
            return middle
        if (value < 0.0) == (low_value < 0.0):
            low, low_value = middle, value
        else:
            high = middle
    return (low + high) / 2.0


def xirr(cashflows: Iterable[CashFlow], guess: float = 0.1) -> float:
    """Annualised rate ``r`` solving ``sum(a / (1 + r) ** (days / 365)) == 0``.

    Newton's method runs first from ``guess``; when it leaves the domain
    ``(-0.999, 10)`` or stalls, a grid scan looks for a sign change that is
    then refined by bisection. Raises :class:`NoConvergence` when no root can
    be bracketed.
    """

    flows = list(cashflows)
    if len(flows) < 2:
        raise InvalidInput("XIRR requires at least two cash flows")

    origin = min(flow.date for flow in flows)
    terms = [
        _Term(float(flow.amount), (flow.date - origin).days / _DAYS_PER_YEAR)
        for flow in flows
    ]
    scale = max(abs(term.amount) for term in terms)
    if scale == 0.0:
        raise NoConvergence("XIRR is undefined when every cash flow is zero")
    tolerance = _NPV_TOLERANCE * scale

    if _RATE_FLOOR < guess < _RATE_CEILING:
        rate = _newton(guess, terms, tolerance)
        if rate is not None:
            return rate

    bracket = _bracket_root(terms)
    if bracket is None:
        raise NoConvergence(
            f"XIRR found no sign change in ({_RATE_FLOOR}, {_RATE_CEILING}) "
            f"for {len(flows)} cash flow(s)"
        )
    low, high = bracket
    if low == high:
        return low
    return _bisect(low, high, terms, tolerance)


def _ordered_valuations(valuations: Iterable[ValuationSnapshot]) -> list[ValuationSnapshot]:
    ordered = sorted(valuations, key=lambda snapshot: snapshot.as_of)
    if not ordered:
        raise InvalidInput("At least one valuation snapshot is required")
    for previous, current in zip(ordered, ordered[1:]):
        if previous.as_of == current.as_of:
            raise InvalidInput(f"Duplicate valuation snapshots dated {current.as_of}")
    return ordered


def _flows_between(
    flows: Sequence[CashFlow], start: date, end: date, *, include_end: bool
) -> list[CashFlow]:
    return [
        flow
        for flow in flows
        if start <= flow.date < end or (include_end and flow.date == end)
    ]


def _build_periods(
    ordered: Sequence[ValuationSnapshot], flows: Sequence[CashFlow]
) -> list[Period]:
    periods: list[Period] = []
    last_index = len(ordered) - 2
    for index, (start, end) in enumerate(zip(ordered, ordered[1:])):
        during = _flows_between(flows, start.as_of, end.as_of, include_end=index == last_index)
        periods.append(
            Period(
                start_value=start.total_value,
                end_value=end.total_value,
                net_flow_during=sum((flow.amount for flow in during), Decimal(0)),
            )
        )
    return periods


def _investor_cashflows(
    start: ValuationSnapshot, end: ValuationSnapshot, flows: Sequence[CashFlow]
) -> list[CashFlow]:
    investor = [CashFlow(start.as_of, -start.total_value)]
    investor.extend(CashFlow(flow.date, -flow.amount) for flow in flows)
    investor.append(CashFlow(end.as_of, end.total_value))
    return investor


def _evaluate(
    ordered: Sequence[ValuationSnapshot],
    flows: Iterable[CashFlow],
    *,
    strict: bool,
) -> PerformanceResult:
    start, end = ordered[0], ordered[-1]
    window = sorted(
        (flow for flow in flows if start.as_of <= flow.date <= end.as_of),
        key=lambda flow: flow.date,
    )
    net_flow = sum((flow.amount for flow in window), Decimal(0))
    pnl = end.total_value - start.total_value - net_flow

    money_weighted: float | None = None
    if start.as_of != end.as_of:
        try:
            money_weighted = xirr(_investor_cashflows(start, end, window))
        except NoConvergence as exc:
            if strict:
                raise
            _LOGGER.warning(
                "XIRR unavailable for %s to %s: %s", start.as_of, end.as_of, exc
            )

    return PerformanceResult(
        start_value=start.total_value,
        end_value=end.total_value,
        net_flow=net_flow,
        pnl=pnl,
        twr=twr(_build_periods(ordered, window)),
        xirr=money_weighted,
        start_date=start.as_of,
        end_date=end.as_of,
    )


def compute_performance(
    valuations: Iterable[ValuationSnapshot], flows: Iterable[CashFlow]
) -> PerformanceResult:
    """Reconcile the window spanned by ``valuations``.

    ``pnl = end_value - start_value - net_flow`` where ``net_flow`` sums the
    flows dated within ``[start_date, end_date]``. ``xirr`` is ``None`` for a
    single valuation; a failure to solve it raises :class:`NoConvergence`.
    """

    return _evaluate(_ordered_valuations(valuations), flows, strict=True)


class PerformanceSeries:
    """Lazy per-pair performance over adjacent valuations.

    Iterating yields one :class:`PerformanceResult` per adjacent pair with
    ``cumulative_twr`` chained from the first pair. Every iteration starts
    over from the first pair.
    """

    def __init__(
        self, valuations: Iterable[ValuationSnapshot], flows: Iterable[CashFlow]
    ) -> None:
        self._valuations = tuple(_ordered_valuations(valuations))
        self._flows = tuple(sorted(flows, key=lambda flow: flow.date))

    def __len__(self) -> int:
        return len(self._valuations) - 1

    def __iter__(self) -> Iterator[PerformanceResult]:
        growth = 1.0
        last_index = len(self) - 1
        for index, (start, end) in enumerate(zip(self._valuations, self._valuations[1:])):
            pair_flows = _flows_between(
                self._flows, start.as_of, end.as_of, include_end=index == last_index
            )
            result = _evaluate((start, end), pair_flows, strict=False)
            growth *= 1.0 + result.twr
            yield result.with_cumulative_twr(growth - 1.0)

    def __repr__(self) -> str:
        return f"PerformanceSeries(pairs={len(self)})"


def compute_performance_series(
    valuations: Iterable[ValuationSnapshot], flows: Iterable[CashFlow]
) -> PerformanceSeries:
    """Return the restartable per-pair series for ``valuations``."""

    return PerformanceSeries(valuations, flows)


__all__ = [
    "PerformanceSeries",
    "compute_performance",
    "compute_performance_series",
    "twr",
    "xirr",
]
