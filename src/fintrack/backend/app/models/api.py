"""Pydantic models describing the public API surface."""

from __future__ import annotations

import datetime as dt
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from .performance import CashFlow, ValuationSnapshot
from .tax import (
    BonusPaid,
    ContributionOverrides,
    CumulativeState,
    IncomeTimeline,
    LongTermCashGrant,
    LongTermCashPaid,
    MonthlyIncomeInput,
    SalaryChange,
    WithholdingOptions,
    YearMonth,
)

__all__ = [
    "BonusInput",
    "CashFlowInput",
    "ForecastRequest",
    "IncomeInput",
    "LongTermCashGrantInput",
    "LongTermCashPaymentInput",
    "OptionsInput",
    "OverridesInput",
    "PerformanceRequest",
    "SalaryChangeInput",
    "StateInput",
    "ValuationInput",
    "WithholdingRequest",
    "XirrRequest",
    "format_validation_error",
]

_MONTH_PATTERN = r"^\d{4}-\d{1,2}$"


class _RequestModel(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)


class OverridesInput(_RequestModel):
    """Contribution bases supplied verbatim by the caller."""

    social_insurance_base: Decimal | None = Field(default=None, ge=0)
    housing_fund_base: Decimal | None = Field(default=None, ge=0)

    def to_domain(self) -> ContributionOverrides:
        return ContributionOverrides(
            social_insurance_base=self.social_insurance_base,
            housing_fund_base=self.housing_fund_base,
        )


class IncomeInput(_RequestModel):
    """Income paid in a single month."""

    year: int = Field(..., ge=1900, le=2100)
    month: int = Field(..., ge=1, le=12)
    gross_salary: Decimal = Field(..., ge=0)
    bonus: Decimal = Field(default=Decimal(0), ge=0)
    special_deductions: Decimal | None = Field(default=None, ge=0)
    overrides: OverridesInput | None = None

    def to_domain(self) -> MonthlyIncomeInput:
        return MonthlyIncomeInput(
            year=self.year,
            month=self.month,
            gross_salary=self.gross_salary,
            bonus=self.bonus,
            special_deductions=self.special_deductions,
            overrides=self.overrides.to_domain() if self.overrides else None,
        )


class StateInput(_RequestModel):
    """Year-to-date totals returned by a previous withholding call."""

    year: int = Field(..., ge=1900, le=2100)
    months_elapsed: int = Field(default=0, ge=0, le=12)
    last_month: int | None = Field(default=None, ge=1, le=12)
    cumulative_gross: Decimal = Field(default=Decimal(0), ge=0)
    cumulative_taxable_gross: Decimal = Field(default=Decimal(0), ge=0)
    cumulative_basic_deduction: Decimal = Field(default=Decimal(0), ge=0)
    cumulative_social_insurance: Decimal = Field(default=Decimal(0), ge=0)
    cumulative_housing_fund: Decimal = Field(default=Decimal(0), ge=0)
    cumulative_special_deductions: Decimal = Field(default=Decimal(0), ge=0)
    cumulative_taxable_income: Decimal = Field(default=Decimal(0), ge=0)
    cumulative_tax_due: Decimal = Field(default=Decimal(0), ge=0)
    cumulative_tax_withheld: Decimal = Decimal(0)

    def to_domain(self) -> CumulativeState:
        return CumulativeState(**self.model_dump())


class OptionsInput(_RequestModel):
    merge_bonus_into_comprehensive: bool = True
    clamp_negative_monthly_tax: bool | None = None

    def to_domain(self, default_clamp: bool = False) -> WithholdingOptions:
        clamp = self.clamp_negative_monthly_tax
        return WithholdingOptions(
            merge_bonus_into_comprehensive=self.merge_bonus_into_comprehensive,
            clamp_negative_monthly_tax=default_clamp if clamp is None else clamp,
        )


class WithholdingRequest(_RequestModel):
    """Payload accepted by the single-month withholding endpoint."""

    region: str = Field(..., min_length=1)
    income: IncomeInput
    state: StateInput | None = None
    options: OptionsInput = Field(default_factory=OptionsInput)
    anchor_day: int = Field(default=1, ge=1, le=31)

    @model_validator(mode="after")
    def _check_state_year(self) -> WithholdingRequest:
        if self.state is not None and self.state.last_month is not None:
            if self.state.year == self.income.year and self.income.month <= self.state.last_month:
                raise ValueError("income.month must follow state.last_month")
        return self

    def cumulative_state(self) -> CumulativeState:
        if self.state is None:
            return CumulativeState.initial(self.income.year)
        return self.state.to_domain()


class SalaryChangeInput(_RequestModel):
    effective_month: str = Field(..., pattern=_MONTH_PATTERN)
    new_gross: Decimal = Field(..., ge=0)

    def to_domain(self) -> SalaryChange:
        return SalaryChange(YearMonth.parse(self.effective_month), self.new_gross)


class BonusInput(_RequestModel):
    month: str = Field(..., pattern=_MONTH_PATTERN)
    amount: Decimal = Field(..., ge=0)

    def to_domain(self) -> BonusPaid:
        return BonusPaid(YearMonth.parse(self.month), self.amount)


class LongTermCashPaymentInput(_RequestModel):
    month: str = Field(..., pattern=_MONTH_PATTERN)
    quarterly_amount: Decimal = Field(..., ge=0)

    def to_domain(self) -> LongTermCashPaid:
        return LongTermCashPaid(YearMonth.parse(self.month), self.quarterly_amount)


class LongTermCashGrantInput(_RequestModel):
    total_amount: Decimal = Field(..., ge=0)
    effective_date: dt.date

    def to_domain(self) -> LongTermCashGrant:
        return LongTermCashGrant(self.total_amount, self.effective_date)


class ForecastRequest(_RequestModel):
    """Payload accepted by the forecast endpoint."""

    region: str = Field(..., min_length=1)
    start: str = Field(..., pattern=_MONTH_PATTERN)
    end: str = Field(..., pattern=_MONTH_PATTERN)
    salary_changes: list[SalaryChangeInput] = Field(default_factory=list)
    bonuses: list[BonusInput] = Field(default_factory=list)
    long_term_cash: list[LongTermCashPaymentInput] = Field(default_factory=list)
    long_term_cash_grants: list[LongTermCashGrantInput] = Field(default_factory=list)
    options: OptionsInput = Field(default_factory=OptionsInput)
    anchor_day: int = Field(default=1, ge=1, le=31)

    @model_validator(mode="after")
    def _check_range(self) -> ForecastRequest:
        start = YearMonth.parse(self.start)
        end = YearMonth.parse(self.end)
        if end < start:
            raise ValueError("end must not precede start")
        return self

    @property
    def start_month(self) -> YearMonth:
        return YearMonth.parse(self.start)

    @property
    def end_month(self) -> YearMonth:
        return YearMonth.parse(self.end)

    def timeline(self) -> IncomeTimeline:
        return IncomeTimeline(
            salary_changes=tuple(change.to_domain() for change in self.salary_changes),
            bonuses=tuple(bonus.to_domain() for bonus in self.bonuses),
            long_term_cash=tuple(payment.to_domain() for payment in self.long_term_cash),
        )

    def grants(self) -> list[LongTermCashGrant]:
        return [grant.to_domain() for grant in self.long_term_cash_grants]


class ValuationInput(_RequestModel):
    as_of: dt.date
    total_value: Decimal

    def to_domain(self) -> ValuationSnapshot:
        return ValuationSnapshot(self.as_of, self.total_value)


class CashFlowInput(_RequestModel):
    on: dt.date = Field(..., alias="date")
    amount: Decimal

    def to_domain(self) -> CashFlow:
        return CashFlow(self.on, self.amount)


class PerformanceRequest(_RequestModel):
    """Payload accepted by the performance endpoint."""

    valuations: list[ValuationInput] = Field(..., min_length=1)
    flows: list[CashFlowInput] = Field(default_factory=list)
    include_series: bool = False

    def snapshots(self) -> list[ValuationSnapshot]:
        return [valuation.to_domain() for valuation in self.valuations]

    def cash_flows(self) -> list[CashFlow]:
        return [flow.to_domain() for flow in self.flows]


class XirrRequest(_RequestModel):
    cashflows: list[CashFlowInput]
    guess: float = Field(default=0.1, gt=-1, lt=10)

    def cash_flows(self) -> list[CashFlow]:
        return [flow.to_domain() for flow in self.cashflows]


def format_validation_error(error: ValidationError, subject: str = "request") -> str:
    """Return a concise human-readable description of validation issues."""

    messages: list[str] = []
    for issue in error.errors():
        location = ".".join(str(part) for part in issue.get("loc", ()))
        message: Any = issue.get("msg", "Invalid value")
        if "greater than or equal to 0" in str(message).lower():
            message = "value cannot be negative"
        if location:
            messages.append(f"{location}: {message}")
        else:
            messages.append(str(message))

    details = "; ".join(messages) if messages else str(error)
    return f"Invalid {subject} payload: {details}"
