"""Domain-specific calculation helpers."""

from .contributions import Contributions, calculate_contributions
from .performance import (
    PerformanceSeries,
    compute_performance,
    compute_performance_series,
    twr,
    xirr,
)
from .utils import round_currency, round_rate
from .withholding import calculate_cumulative_tax, calculate_separate_bonus_tax, compute_month

__all__ = [
    "Contributions",
    "PerformanceSeries",
    "calculate_contributions",
    "calculate_cumulative_tax",
    "calculate_separate_bonus_tax",
    "compute_month",
    "compute_performance",
    "compute_performance_series",
    "round_currency",
    "round_rate",
    "twr",
    "xirr",
]
