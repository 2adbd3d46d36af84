"""Typed request models and domain records shared across the services.

Request payloads are validated by the Pydantic models in :mod:`.api` and then
converted into the frozen dataclasses of :mod:`.tax` and :mod:`.performance`,
which are what the calculators consume and produce.
"""

from .api import (
    BonusInput,
    CashFlowInput,
    ForecastRequest,
    IncomeInput,
    LongTermCashGrantInput,
    LongTermCashPaymentInput,
    OptionsInput,
    OverridesInput,
    PerformanceRequest,
    SalaryChangeInput,
    StateInput,
    ValuationInput,
    WithholdingRequest,
    XirrRequest,
    format_validation_error,
)
from .performance import CashFlow, PerformanceResult, Period, ValuationSnapshot
from .tax import (
    AnnualSummary,
    BonusPaid,
    ContributionOverrides,
    CumulativeState,
    ForecastEvent,
    ForecastMarkers,
    ForecastMonth,
    IncomeTimeline,
    LongTermCashGrant,
    LongTermCashPaid,
    MonthlyIncomeInput,
    MonthResult,
    PolicyChanged,
    SalaryChange,
    WithholdingOptions,
    YearMonth,
    coerce_amount,
    month_range,
)

__all__ = [
    "AnnualSummary",
    "BonusInput",
    "BonusPaid",
    "CashFlow",
    "CashFlowInput",
    "ContributionOverrides",
    "CumulativeState",
    "ForecastEvent",
    "ForecastMarkers",
    "ForecastMonth",
    "ForecastRequest",
    "IncomeInput",
    "IncomeTimeline",
    "LongTermCashGrant",
    "LongTermCashGrantInput",
    "LongTermCashPaid",
    "LongTermCashPaymentInput",
    "MonthResult",
    "MonthlyIncomeInput",
    "OptionsInput",
    "OverridesInput",
    "PerformanceRequest",
    "PerformanceResult",
    "Period",
    "PolicyChanged",
    "SalaryChange",
    "SalaryChangeInput",
    "StateInput",
    "ValuationInput",
    "ValuationSnapshot",
    "WithholdingOptions",
    "WithholdingRequest",
    "XirrRequest",
    "YearMonth",
    "coerce_amount",
    "format_validation_error",
    "month_range",
]
