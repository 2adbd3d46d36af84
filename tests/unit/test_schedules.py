"""Unit tests for long-term cash payout schedules."""

from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest

from fintrack.backend.app.models import LongTermCashGrant, YearMonth
from fintrack.backend.app.services.schedules import expand_long_term_cash
from fintrack.backend.errors import InvalidInput


def test_grant_pays_sixteen_quarterly_instalments() -> None:
    grant = LongTermCashGrant(Decimal(16000), date(2024, 1, 1))

    payments = expand_long_term_cash([grant], "2024-01", "2028-12")

    assert len(payments) == 16
    assert payments[0].month == YearMonth(2024, 1)
    assert payments[-1].month == YearMonth(2027, 10)
    assert {payment.quarterly_amount for payment in payments} == {Decimal("1000.00")}


def test_grant_pays_from_its_own_quarter() -> None:
    grant = LongTermCashGrant(Decimal(8000), date(2024, 5, 20))

    payments = expand_long_term_cash([grant], "2024-01", "2024-12", quarters=4)

    assert [str(payment.month) for payment in payments] == ["2024-04", "2024-07", "2024-10"]
    assert payments[0].quarterly_amount == Decimal("2000.00")


def test_window_limits_the_payments() -> None:
    grant = LongTermCashGrant(Decimal(16000), date(2023, 1, 1))

    payments = expand_long_term_cash([grant], "2024-03", "2024-08")

    assert [str(payment.month) for payment in payments] == ["2024-04", "2024-07"]


def test_instalments_are_rounded_to_cents() -> None:
    grant = LongTermCashGrant(Decimal(1000), date(2024, 1, 1))

    payments = expand_long_term_cash([grant], "2024-01", "2024-12", quarters=3)

    assert [payment.quarterly_amount for payment in payments] == [Decimal("333.33")] * 3


def test_payments_from_several_grants_are_sorted_by_month() -> None:
    grants = [
        LongTermCashGrant(Decimal(4000), date(2024, 7, 1)),
        LongTermCashGrant(Decimal(4000), date(2024, 1, 1)),
    ]

    payments = expand_long_term_cash(grants, "2024-01", "2024-12", quarters=4)

    months = [str(payment.month) for payment in payments]
    assert months == ["2024-01", "2024-04", "2024-07", "2024-07", "2024-10", "2024-10"]


def test_custom_payout_months() -> None:
    grant = LongTermCashGrant(Decimal(1200), date(2024, 1, 1))

    payments = expand_long_term_cash(
        [grant], "2024-01", "2024-12", quarters=4, payout_months=(3, 6, 9, 12)
    )

    assert [payment.month.month for payment in payments] == [3, 6, 9, 12]


@pytest.mark.parametrize(
    "kwargs",
    [{"quarters": 0}, {"payout_months": (0, 4)}, {"payout_months": (13,)}],
)
def test_invalid_schedules_are_rejected(kwargs) -> None:
    grant = LongTermCashGrant(Decimal(1000), date(2024, 1, 1))

    with pytest.raises(InvalidInput):
        expand_long_term_cash([grant], "2024-01", "2024-12", **kwargs)


def test_negative_grant_is_rejected() -> None:
    with pytest.raises(InvalidInput):
        LongTermCashGrant(Decimal(-1), date(2024, 1, 1))
