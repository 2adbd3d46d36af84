"""Valuation, cash-flow and result records used by the performance engine."""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import date
from decimal import Decimal
from typing import Any

from fintrack.backend.config.schema import to_decimal
from fintrack.backend.errors import ConfigurationError, InvalidInput


def _as_decimal(value: Any, field_name: str) -> Decimal:
    try:
        converted = to_decimal(value)
    except ConfigurationError as exc:
        raise InvalidInput(f"Field '{field_name}': {exc}") from exc
    if not converted.is_finite():
        raise InvalidInput(f"Field '{field_name}' must be a finite amount")
    return converted


def _as_date(value: Any, field_name: str) -> date:
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value)
        except ValueError as exc:
            raise InvalidInput(f"Field '{field_name}' must be an ISO date") from exc
    raise InvalidInput(f"Field '{field_name}' must be a date")


@dataclass(frozen=True)
class ValuationSnapshot:
    """Total portfolio value observed at the end of ``as_of``."""

    as_of: date
    total_value: Decimal

    def __post_init__(self) -> None:
        object.__setattr__(self, "as_of", _as_date(self.as_of, "as_of"))
        object.__setattr__(
            self, "total_value", _as_decimal(self.total_value, "total_value")
        )


@dataclass(frozen=True)
class CashFlow:
    """External flow into (positive) or out of (negative) the portfolio."""

    date: date
    amount: Decimal

    def __post_init__(self) -> None:
        object.__setattr__(self, "date", _as_date(self.date, "date"))
        object.__setattr__(self, "amount", _as_decimal(self.amount, "amount"))


@dataclass(frozen=True)
class Period:
    start_value: Decimal
    end_value: Decimal
    net_flow_during: Decimal = Decimal(0)

    def __post_init__(self) -> None:
        for name in ("start_value", "end_value", "net_flow_during"):
            object.__setattr__(self, name, _as_decimal(getattr(self, name), name))


@dataclass(frozen=True)
class PerformanceResult:
    """Reconciliation and return figures for one valuation window."""

    start_value: Decimal
    end_value: Decimal
    net_flow: Decimal
    pnl: Decimal
    twr: float
    xirr: float | None
    start_date: date
    end_date: date
    cumulative_twr: float | None = None

    def with_cumulative_twr(self, value: float) -> PerformanceResult:
        return replace(self, cumulative_twr=value)

    def as_dict(self) -> dict[str, Any]:
        return {
            "start_date": self.start_date.isoformat(),
            "end_date": self.end_date.isoformat(),
            "start_value": self.start_value,
            "end_value": self.end_value,
            "net_flow": self.net_flow,
            "pnl": self.pnl,
            "twr": self.twr,
            "xirr": self.xirr,
            "cumulative_twr": self.cumulative_twr,
        }


__all__ = ["CashFlow", "PerformanceResult", "Period", "ValuationSnapshot"]
