"""Cumulative withholding for salary and bonus income.

Each month the year-to-date taxable income is recomputed from the carried
:class:`CumulativeState`, the cumulative tax due is read off the bracket
table with its quick deduction, and the tax withheld this month is the
difference from what has already been withheld.
"""

from __future__ import annotations

from decimal import Decimal

from fintrack.backend.app.models import (
    CumulativeState,
    MonthlyIncomeInput,
    MonthResult,
    WithholdingOptions,
)
from fintrack.backend.config.schema import PolicyConfig
from fintrack.backend.errors import InvalidInput

from .contributions import calculate_contributions
from .utils import non_negative, round_currency

_MONTHS_PER_YEAR = Decimal(12)


def calculate_cumulative_tax(
    taxable_income: Decimal, policy: PolicyConfig
) -> tuple[Decimal, Decimal, Decimal]:
    """Return ``(tax_due, rate, quick_deduction)`` for year-to-date income."""

    bracket = policy.bracket_for(taxable_income)
    tax_due = non_negative(taxable_income * bracket.rate - bracket.quick_deduction)
    return round_currency(tax_due), bracket.rate, bracket.quick_deduction


def calculate_separate_bonus_tax(bonus: Decimal, policy: PolicyConfig) -> Decimal:
    """Tax a bonus on its own using the table converted to monthly amounts."""

    if bonus <= 0:
        return Decimal(0)
    bracket = policy.monthly_bracket_for(bonus / _MONTHS_PER_YEAR)
    tax = bonus * bracket.rate - bracket.quick_deduction / _MONTHS_PER_YEAR
    return round_currency(non_negative(tax))


def compute_month(
    state_before: CumulativeState,
    income: MonthlyIncomeInput,
    policy: PolicyConfig,
    options: WithholdingOptions | None = None,
) -> tuple[CumulativeState, MonthResult]:
    """Process one month of income and return the new state and its result."""

    options = options or WithholdingOptions()
    state = state_before.for_year(income.year)
    if state.last_month is not None and income.month <= state.last_month:
        raise InvalidInput(
            f"Month {income.year}-{income.month:02d} does not follow the last "
            f"processed month {state.year}-{state.last_month:02d}"
        )

    months_elapsed = state.months_elapsed + 1
    contributions = calculate_contributions(income.gross_salary, policy, income.overrides)

    special_deductions = income.special_deductions
    if special_deductions is None:
        special_deductions = policy.total_special_deductions

    merge_bonus = options.merge_bonus_into_comprehensive
    taxable_gross = income.gross_salary + income.bonus if merge_bonus else income.gross_salary

    cumulative_gross = state.cumulative_gross + income.gross_salary + income.bonus
    cumulative_taxable_gross = state.cumulative_taxable_gross + taxable_gross
    cumulative_basic_deduction = policy.monthly_basic_deduction * months_elapsed
    cumulative_social_insurance = (
        state.cumulative_social_insurance + contributions.social_insurance
    )
    cumulative_housing_fund = state.cumulative_housing_fund + contributions.housing_fund
    cumulative_special_deductions = state.cumulative_special_deductions + special_deductions

    taxable_income = non_negative(
        cumulative_taxable_gross
        - cumulative_basic_deduction
        - cumulative_social_insurance
        - cumulative_housing_fund
        - cumulative_special_deductions
    )
    tax_due, rate, quick_deduction = calculate_cumulative_tax(taxable_income, policy)

    tax_this_month = tax_due - state.cumulative_tax_withheld
    if options.clamp_negative_monthly_tax:
        tax_this_month = non_negative(tax_this_month)
    # Over-withholding stays in the baseline and offsets later months.
    tax_withheld = state.cumulative_tax_withheld + tax_this_month

    bonus_tax = Decimal(0)
    if not merge_bonus:
        bonus_tax = calculate_separate_bonus_tax(income.bonus, policy)

    net_income = (
        income.gross_salary
        + income.bonus
        - contributions.social_insurance
        - contributions.housing_fund
        - tax_this_month
        - bonus_tax
    )

    state_after = CumulativeState(
        year=income.year,
        months_elapsed=months_elapsed,
        last_month=income.month,
        cumulative_gross=cumulative_gross,
        cumulative_taxable_gross=cumulative_taxable_gross,
        cumulative_basic_deduction=cumulative_basic_deduction,
        cumulative_social_insurance=cumulative_social_insurance,
        cumulative_housing_fund=cumulative_housing_fund,
        cumulative_special_deductions=cumulative_special_deductions,
        cumulative_taxable_income=taxable_income,
        cumulative_tax_due=tax_due,
        cumulative_tax_withheld=tax_withheld,
    )
    result = MonthResult(
        year=income.year,
        month=income.month,
        gross_salary=income.gross_salary,
        bonus=income.bonus,
        social_insurance_base=contributions.social_insurance_base,
        housing_fund_base=contributions.housing_fund_base,
        social_insurance=contributions.social_insurance,
        housing_fund=contributions.housing_fund,
        special_deductions=special_deductions,
        months_elapsed=months_elapsed,
        basic_deduction_cumulative=cumulative_basic_deduction,
        taxable_income_cumulative=taxable_income,
        tax_due_cumulative=tax_due,
        tax_this_month=tax_this_month,
        bonus_tax=bonus_tax,
        net_income=round_currency(net_income),
        applied_rate=rate,
        applied_quick_deduction=quick_deduction,
        policy_signature=policy.signature,
    )
    return state_after, result


__all__ = [
    "calculate_cumulative_tax",
    "calculate_separate_bonus_tax",
    "compute_month",
]
