"""Income, withholding-state and forecast records consumed by the calculators.

Monetary values are :class:`~decimal.Decimal` throughout so cumulative sums
never drift. Constructors coerce and validate their inputs, raising
:class:`~fintrack.backend.errors.InvalidInput` for caller mistakes.
"""

from __future__ import annotations

import calendar
import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any, ClassVar, Union

from fintrack.backend.config.schema import to_decimal
from fintrack.backend.errors import ConfigurationError, InvalidInput

__all__ = [
    "AnnualSummary",
    "BonusPaid",
    "ContributionOverrides",
    "CumulativeState",
    "ForecastEvent",
    "ForecastMarkers",
    "ForecastMonth",
    "IncomeTimeline",
    "LongTermCashGrant",
    "LongTermCashPaid",
    "MonthResult",
    "MonthlyIncomeInput",
    "PolicyChanged",
    "SalaryChange",
    "WithholdingOptions",
    "YearMonth",
    "coerce_amount",
    "month_range",
]

_ZERO = Decimal(0)
_YEAR_MONTH_PATTERN = re.compile(r"^(\d{4})-(\d{1,2})$")


def coerce_amount(value: Any, field_name: str, *, allow_negative: bool = False) -> Decimal:
    """Coerce ``value`` to :class:`Decimal`, rejecting negatives unless allowed."""

    try:
        converted = to_decimal(value)
    except ConfigurationError as exc:
        raise InvalidInput(f"Field '{field_name}': {exc}") from exc
    if not converted.is_finite():
        raise InvalidInput(f"Field '{field_name}' must be a finite amount")
    if not allow_negative and converted < 0:
        raise InvalidInput(f"Field '{field_name}' cannot be negative")
    return converted


def _check_integer(value: Any, field_name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidInput(f"Field '{field_name}' must be an integer")
    return value


@dataclass(frozen=True, order=True)
class YearMonth:
    """Calendar month used as the forecast time key."""

    year: int
    month: int

    def __post_init__(self) -> None:
        _check_integer(self.year, "year")
        _check_integer(self.month, "month")
        if not 1 <= self.month <= 12:
            raise InvalidInput(f"Month must be between 1 and 12, got {self.month}")

    @classmethod
    def parse(cls, value: YearMonth | str | date | Mapping[str, Any]) -> YearMonth:
        if isinstance(value, YearMonth):
            return value
        if isinstance(value, date):
            return cls(value.year, value.month)
        if isinstance(value, Mapping):
            return cls(value.get("year"), value.get("month"))  # type: ignore[arg-type]
        if isinstance(value, str):
            match = _YEAR_MONTH_PATTERN.match(value.strip())
            if match:
                return cls(int(match.group(1)), int(match.group(2)))
        raise InvalidInput(f"Expected a 'YYYY-MM' month, got {value!r}")

    def next(self) -> YearMonth:
        if self.month == 12:
            return YearMonth(self.year + 1, 1)
        return YearMonth(self.year, self.month + 1)

    def anchor(self, day: int = 1) -> date:
        """Return the ``day`` of this month, clamped to the month length."""

        last_day = calendar.monthrange(self.year, self.month)[1]
        return date(self.year, self.month, min(max(day, 1), last_day))

    @property
    def quarter_index(self) -> int:
        return self.year * 4 + (self.month - 1) // 3

    def __str__(self) -> str:
        return f"{self.year:04d}-{self.month:02d}"


def month_range(start: YearMonth, end: YearMonth) -> list[YearMonth]:
    """Return every month from ``start`` to ``end`` inclusive."""

    if end < start:
        raise InvalidInput(f"Range end {end} precedes range start {start}")
    months: list[YearMonth] = []
    current = start
    while current <= end:
        months.append(current)
        current = current.next()
    return months


@dataclass(frozen=True)
class ContributionOverrides:
    """Explicit contribution bases replacing the clamped computed ones.

    ``None`` keeps the computed base; any other value is used verbatim.
    """

    social_insurance_base: Decimal | None = None
    housing_fund_base: Decimal | None = None

    def __post_init__(self) -> None:
        for name in ("social_insurance_base", "housing_fund_base"):
            value = getattr(self, name)
            if value is not None:
                object.__setattr__(self, name, coerce_amount(value, f"overrides.{name}"))


@dataclass(frozen=True)
class MonthlyIncomeInput:
    """Income paid in one calendar month."""

    year: int
    month: int
    gross_salary: Decimal
    bonus: Decimal = _ZERO
    special_deductions: Decimal | None = None
    overrides: ContributionOverrides | None = None

    def __post_init__(self) -> None:
        period = YearMonth(self.year, self.month)
        object.__setattr__(self, "year", period.year)
        object.__setattr__(self, "gross_salary", coerce_amount(self.gross_salary, "gross_salary"))
        object.__setattr__(self, "bonus", coerce_amount(self.bonus, "bonus"))
        if self.special_deductions is not None:
            object.__setattr__(
                self,
                "special_deductions",
                coerce_amount(self.special_deductions, "special_deductions"),
            )

    @property
    def period(self) -> YearMonth:
        return YearMonth(self.year, self.month)


@dataclass(frozen=True)
class WithholdingOptions:
    """Switches for the bonus-taxation mode and negative-month handling."""

    merge_bonus_into_comprehensive: bool = True
    clamp_negative_monthly_tax: bool = False


@dataclass(frozen=True)
class CumulativeState:
    """Year-to-date totals carried from one processed month to the next."""

    year: int
    months_elapsed: int = 0
    last_month: int | None = None
    cumulative_gross: Decimal = _ZERO
    cumulative_taxable_gross: Decimal = _ZERO
    cumulative_basic_deduction: Decimal = _ZERO
    cumulative_social_insurance: Decimal = _ZERO
    cumulative_housing_fund: Decimal = _ZERO
    cumulative_special_deductions: Decimal = _ZERO
    cumulative_taxable_income: Decimal = _ZERO
    cumulative_tax_due: Decimal = _ZERO
    cumulative_tax_withheld: Decimal = _ZERO

    @classmethod
    def initial(cls, year: int) -> CumulativeState:
        return cls(year=year)

    def for_year(self, year: int) -> CumulativeState:
        """Return ``self`` or a fresh state when ``year`` starts a new tax year."""

        return self if self.year == year else CumulativeState.initial(year)


@dataclass(frozen=True)
class MonthResult:
    """Withholding figures for one processed month."""

    year: int
    month: int
    gross_salary: Decimal
    bonus: Decimal
    social_insurance_base: Decimal
    housing_fund_base: Decimal
    social_insurance: Decimal
    housing_fund: Decimal
    special_deductions: Decimal
    months_elapsed: int
    basic_deduction_cumulative: Decimal
    taxable_income_cumulative: Decimal
    tax_due_cumulative: Decimal
    tax_this_month: Decimal
    bonus_tax: Decimal
    net_income: Decimal
    applied_rate: Decimal
    applied_quick_deduction: Decimal
    policy_signature: str

    @property
    def period(self) -> YearMonth:
        return YearMonth(self.year, self.month)

    @property
    def total_tax(self) -> Decimal:
        return self.tax_this_month + self.bonus_tax

    @property
    def gross_this_month(self) -> Decimal:
        return self.gross_salary + self.bonus

    def as_dict(self) -> dict[str, Any]:
        return {
            "period": str(self.period),
            "year": self.year,
            "month": self.month,
            "gross_salary": self.gross_salary,
            "bonus": self.bonus,
            "gross_this_month": self.gross_this_month,
            "social_insurance_base": self.social_insurance_base,
            "housing_fund_base": self.housing_fund_base,
            "social_insurance": self.social_insurance,
            "housing_fund": self.housing_fund,
            "special_deductions": self.special_deductions,
            "months_elapsed": self.months_elapsed,
            "basic_deduction_cumulative": self.basic_deduction_cumulative,
            "taxable_income_cumulative": self.taxable_income_cumulative,
            "tax_due_cumulative": self.tax_due_cumulative,
            "tax_this_month": self.tax_this_month,
            "bonus_tax": self.bonus_tax,
            "total_tax": self.total_tax,
            "net_income": self.net_income,
            "applied_rate": self.applied_rate,
            "applied_quick_deduction": self.applied_quick_deduction,
            "policy_signature": self.policy_signature,
        }


@dataclass(frozen=True)
class SalaryChange:
    kind: ClassVar[str] = "salary_change"

    effective_month: YearMonth
    new_gross: Decimal

    def __post_init__(self) -> None:
        object.__setattr__(self, "effective_month", YearMonth.parse(self.effective_month))
        object.__setattr__(self, "new_gross", coerce_amount(self.new_gross, "new_gross"))

    @property
    def month(self) -> YearMonth:
        return self.effective_month

    def as_dict(self) -> dict[str, Any]:
        return {"type": self.kind, "month": str(self.month), "new_gross": self.new_gross}


@dataclass(frozen=True)
class BonusPaid:
    kind: ClassVar[str] = "bonus_paid"

    month: YearMonth
    amount: Decimal

    def __post_init__(self) -> None:
        object.__setattr__(self, "month", YearMonth.parse(self.month))
        object.__setattr__(self, "amount", coerce_amount(self.amount, "bonus.amount"))

    def as_dict(self) -> dict[str, Any]:
        return {"type": self.kind, "month": str(self.month), "amount": self.amount}


@dataclass(frozen=True)
class LongTermCashPaid:
    kind: ClassVar[str] = "long_term_cash_paid"

    month: YearMonth
    quarterly_amount: Decimal

    def __post_init__(self) -> None:
        object.__setattr__(self, "month", YearMonth.parse(self.month))
        object.__setattr__(
            self,
            "quarterly_amount",
            coerce_amount(self.quarterly_amount, "long_term_cash.quarterly_amount"),
        )

    def as_dict(self) -> dict[str, Any]:
        return {
            "type": self.kind,
            "month": str(self.month),
            "quarterly_amount": self.quarterly_amount,
        }


@dataclass(frozen=True)
class PolicyChanged:
    kind: ClassVar[str] = "policy_changed"

    month: YearMonth
    previous_signature: str | None = None
    signature: str | None = None

    def as_dict(self) -> dict[str, Any]:
        return {
            "type": self.kind,
            "month": str(self.month),
            "previous_signature": self.previous_signature,
            "signature": self.signature,
        }


ForecastEvent = Union[SalaryChange, BonusPaid, LongTermCashPaid, PolicyChanged]


@dataclass(frozen=True)
class LongTermCashGrant:
    """Deferred cash award paid out in equal quarterly instalments."""

    total_amount: Decimal
    effective_date: date

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "total_amount", coerce_amount(self.total_amount, "long_term_cash.total_amount")
        )


@dataclass(frozen=True)
class IncomeTimeline:
    """Ordered salary, bonus and long-term cash events for one forecast."""

    salary_changes: tuple[SalaryChange, ...] = ()
    bonuses: tuple[BonusPaid, ...] = ()
    long_term_cash: tuple[LongTermCashPaid, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(
            self,
            "salary_changes",
            tuple(sorted(self.salary_changes, key=lambda event: event.effective_month)),
        )
        object.__setattr__(self, "bonuses", tuple(self.bonuses))
        object.__setattr__(self, "long_term_cash", tuple(self.long_term_cash))

    def gross_for(self, period: YearMonth) -> Decimal:
        """Gross salary from the latest change effective on or before ``period``."""

        gross = _ZERO
        for change in self.salary_changes:
            if change.effective_month > period:
                break
            gross = change.new_gross
        return gross

    def salary_changes_in(self, period: YearMonth) -> tuple[SalaryChange, ...]:
        return tuple(
            change for change in self.salary_changes if change.effective_month == period
        )

    def bonuses_in(self, period: YearMonth) -> tuple[BonusPaid, ...]:
        return tuple(bonus for bonus in self.bonuses if bonus.month == period)

    def long_term_cash_in(self, period: YearMonth) -> tuple[LongTermCashPaid, ...]:
        return tuple(payment for payment in self.long_term_cash if payment.month == period)

    def with_long_term_cash(self, payments: Iterable[LongTermCashPaid]) -> IncomeTimeline:
        return IncomeTimeline(
            salary_changes=self.salary_changes,
            bonuses=self.bonuses,
            long_term_cash=self.long_term_cash + tuple(payments),
        )


@dataclass(frozen=True)
class ForecastMarkers:
    """Boolean annotations explaining why a forecast row looks the way it does."""

    salary_change: bool = False
    bonus_paid: bool = False
    long_term_cash_paid: bool = False
    long_term_cash_count: int = 0
    tax_change: bool = False

    def as_dict(self) -> dict[str, Any]:
        return {
            "salary_change": self.salary_change,
            "bonus_paid": self.bonus_paid,
            "long_term_cash_paid": self.long_term_cash_paid,
            "long_term_cash_count": self.long_term_cash_count,
            "tax_change": self.tax_change,
        }


@dataclass(frozen=True)
class ForecastMonth:
    """One forecast row: the month result or the error that prevented it."""

    period: YearMonth
    result: MonthResult | None
    markers: ForecastMarkers = field(default_factory=ForecastMarkers)
    events: tuple[ForecastEvent, ...] = ()
    long_term_cash: Decimal = _ZERO
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.result is not None

    def as_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "period": str(self.period),
            "markers": self.markers.as_dict(),
            "events": [event.as_dict() for event in self.events],
            "long_term_cash": self.long_term_cash,
        }
        if self.result is not None:
            payload["result"] = self.result.as_dict()
        if self.error is not None:
            payload["error"] = self.error
        return payload


@dataclass
class AnnualSummary:
    """Per-year totals folded from forecast rows."""

    year: int
    month_count: int = 0
    total_gross: Decimal = _ZERO
    total_bonus: Decimal = _ZERO
    total_long_term_cash: Decimal = _ZERO
    total_social_insurance: Decimal = _ZERO
    total_housing_fund: Decimal = _ZERO
    total_tax: Decimal = _ZERO
    total_net: Decimal = _ZERO
    failed_months: int = 0

    @property
    def total_income(self) -> Decimal:
        return self.total_gross + self.total_bonus + self.total_long_term_cash

    @property
    def effective_tax_rate(self) -> Decimal:
        if self.total_income <= 0:
            return _ZERO
        return self.total_tax / self.total_income

    def add(self, row: ForecastMonth) -> None:
        if row.result is None:
            self.failed_months += 1
            return
        result = row.result
        self.month_count += 1
        self.total_gross += result.gross_salary
        # MonthResult.bonus carries long-term cash as well; split it back out.
        self.total_bonus += result.bonus - row.long_term_cash
        self.total_long_term_cash += row.long_term_cash
        self.total_social_insurance += result.social_insurance
        self.total_housing_fund += result.housing_fund
        self.total_tax += result.total_tax
        self.total_net += result.net_income
