"""Unit tests for the time- and money-weighted return engine."""

from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal

import pytest

from fintrack.backend.app.models import CashFlow, Period, ValuationSnapshot
from fintrack.backend.app.services.calculators import (
    compute_performance,
    compute_performance_series,
    twr,
    xirr,
)
from fintrack.backend.errors import InvalidInput, NoConvergence


@pytest.fixture()
def quarter_valuations() -> list[ValuationSnapshot]:
    return [
        ValuationSnapshot(date(2024, 1, 1), Decimal(1000)),
        ValuationSnapshot(date(2024, 2, 1), Decimal(1300)),
        ValuationSnapshot(date(2024, 3, 1), Decimal(1600)),
    ]


@pytest.fixture()
def contribution() -> list[CashFlow]:
    return [CashFlow(date(2024, 2, 1), Decimal(200))]


def test_twr_chains_period_returns() -> None:
    periods = [Period(Decimal(100), Decimal(110)), Period(Decimal(110), Decimal(121))]

    assert twr(periods) == pytest.approx(0.21)


def test_twr_adds_flows_to_the_starting_value() -> None:
    assert twr([Period(Decimal(1000), Decimal(1300), Decimal(200))]) == pytest.approx(0.25)


def test_twr_skips_periods_without_capital() -> None:
    periods = [
        Period(Decimal(0), Decimal(50)),
        Period(Decimal(100), Decimal(150), Decimal(-100)),
        Period(Decimal(100), Decimal(110)),
    ]

    assert twr(periods) == pytest.approx(0.10)
    assert twr([]) == 0.0


def test_xirr_matches_simple_annual_growth() -> None:
    flows = [
        CashFlow(date(2023, 1, 1), Decimal(-1000)),
        CashFlow(date(2024, 1, 1), Decimal(1100)),
    ]

    assert xirr(flows) == pytest.approx(0.10, abs=1e-6)


def test_xirr_handles_losses_and_unordered_flows() -> None:
    flows = [
        CashFlow(date(2024, 1, 1), Decimal(900)),
        CashFlow(date(2023, 1, 1), Decimal(-1000)),
    ]

    assert xirr(flows) == pytest.approx(-0.10, abs=1e-6)


def test_xirr_falls_back_when_guess_is_outside_the_domain() -> None:
    flows = [
        CashFlow(date(2023, 1, 1), Decimal(-1000)),
        CashFlow(date(2024, 1, 1), Decimal(1100)),
    ]

    assert xirr(flows, guess=50.0) == pytest.approx(0.10, abs=1e-6)


def test_xirr_with_interim_contributions_is_positive() -> None:
    flows = [
        CashFlow(date(2024, 1, 1), Decimal(-1000)),
        CashFlow(date(2024, 4, 1), Decimal(-500)),
        CashFlow(date(2024, 12, 31), Decimal(1700)),
    ]

    assert xirr(flows) > 0.05


def test_xirr_requires_two_flows() -> None:
    with pytest.raises(InvalidInput):
        xirr([CashFlow(date(2024, 1, 1), Decimal(-1000))])


@pytest.mark.parametrize(
    "amounts",
    [
        (Decimal(100), Decimal(200)),
        (Decimal(-100), Decimal(-200)),
        (Decimal(0), Decimal(0)),
    ],
)
def test_xirr_without_sign_change_does_not_converge(amounts) -> None:
    flows = [
        CashFlow(date(2024, 1, 1), amounts[0]),
        CashFlow(date(2025, 1, 1), amounts[1]),
    ]

    with pytest.raises(NoConvergence):
        xirr(flows)


def test_performance_reconciles_pnl(quarter_valuations, contribution) -> None:
    result = compute_performance(quarter_valuations, contribution)

    assert result.net_flow == Decimal(200)
    assert result.pnl == Decimal(400)
    assert result.end_value - result.start_value - result.net_flow == result.pnl
    assert result.start_date == date(2024, 1, 1)
    assert result.end_date == date(2024, 3, 1)


def test_boundary_flow_belongs_to_the_following_period(quarter_valuations, contribution) -> None:
    """The contribution on Feb 1st is capital for February, not a January gain."""

    result = compute_performance(quarter_valuations, contribution)

    assert result.twr == pytest.approx(1.3 * 1.2 - 1)
    assert result.xirr is not None and result.xirr > 0


def test_flows_on_the_final_valuation_date_are_counted(quarter_valuations) -> None:
    flows = [CashFlow(date(2024, 3, 1), Decimal(100))]

    result = compute_performance(quarter_valuations, flows)

    assert result.net_flow == Decimal(100)
    assert result.pnl == Decimal(500)


def test_flows_outside_the_window_are_ignored(quarter_valuations) -> None:
    flows = [
        CashFlow(date(2023, 12, 31), Decimal(5000)),
        CashFlow(date(2024, 3, 2), Decimal(-5000)),
    ]

    result = compute_performance(quarter_valuations, flows)

    assert result.net_flow == Decimal(0)
    assert result.pnl == Decimal(600)


def test_valuation_order_does_not_matter(quarter_valuations, contribution) -> None:
    shuffled = [quarter_valuations[2], quarter_valuations[0], quarter_valuations[1]]

    assert compute_performance(shuffled, contribution) == compute_performance(
        quarter_valuations, contribution
    )


def test_single_valuation_has_no_money_weighted_return() -> None:
    result = compute_performance([ValuationSnapshot(date(2024, 1, 1), Decimal(1000))], [])

    assert result.pnl == Decimal(0)
    assert result.twr == 0.0
    assert result.xirr is None


def test_invalid_valuation_sets_are_rejected() -> None:
    with pytest.raises(InvalidInput):
        compute_performance([], [])
    with pytest.raises(InvalidInput):
        compute_performance(
            [
                ValuationSnapshot(date(2024, 1, 1), Decimal(1000)),
                ValuationSnapshot(date(2024, 1, 1), Decimal(1100)),
            ],
            [],
        )


def test_unsolvable_xirr_propagates_from_compute_performance() -> None:
    valuations = [
        ValuationSnapshot(date(2024, 1, 1), Decimal(0)),
        ValuationSnapshot(date(2024, 2, 1), Decimal(0)),
    ]

    with pytest.raises(NoConvergence):
        compute_performance(valuations, [])


def test_series_yields_one_result_per_adjacent_pair(quarter_valuations, contribution) -> None:
    series = compute_performance_series(quarter_valuations, contribution)

    first, second = list(series)

    assert len(series) == 2
    assert (first.start_date, first.end_date) == (date(2024, 1, 1), date(2024, 2, 1))
    assert first.net_flow == Decimal(0)
    assert first.pnl == Decimal(300)
    assert second.net_flow == Decimal(200)
    assert second.pnl == Decimal(100)
    assert first.twr == pytest.approx(0.3)
    assert second.twr == pytest.approx(0.2)


def test_series_chains_cumulative_twr(quarter_valuations, contribution) -> None:
    results = list(compute_performance_series(quarter_valuations, contribution))
    overall = compute_performance(quarter_valuations, contribution)

    assert results[0].cumulative_twr == pytest.approx(0.3)
    assert results[-1].cumulative_twr == pytest.approx(overall.twr)
    assert sum(result.pnl for result in results) == overall.pnl


def test_series_can_be_iterated_repeatedly(quarter_valuations, contribution) -> None:
    series = compute_performance_series(quarter_valuations, contribution)

    assert list(series) == list(series)
    assert repr(series) == "PerformanceSeries(pairs=2)"


def test_series_of_a_single_valuation_is_empty() -> None:
    series = compute_performance_series(
        [ValuationSnapshot(date(2024, 1, 1), Decimal(1000))], []
    )

    assert len(series) == 0
    assert list(series) == []


def test_series_logs_and_continues_when_xirr_fails(caplog, quarter_valuations) -> None:
    valuations = [
        ValuationSnapshot(date(2023, 12, 1), Decimal(0)),
        *quarter_valuations,
    ]

    with caplog.at_level(logging.WARNING):
        results = list(compute_performance_series(valuations, []))

    assert results[0].xirr is None
    assert results[1].xirr is not None
    assert "XIRR unavailable" in caplog.text


def test_snapshots_coerce_iso_strings() -> None:
    snapshot = ValuationSnapshot("2024-05-31", "1234.50")
    flow = CashFlow("2024-05-01", -250)

    assert snapshot.as_of == date(2024, 5, 31)
    assert snapshot.total_value == Decimal("1234.50")
    assert flow.amount == Decimal(-250)

    with pytest.raises(InvalidInput):
        CashFlow("31/05/2024", 10)
    with pytest.raises(InvalidInput):
        ValuationSnapshot("2024-05-31", "lots")
