"""Orchestrate request validation, policy resolution and the calculators.

The HTTP layer hands raw JSON mappings to the functions below; they validate
them against the request models, resolve policies through the injected
:class:`~fintrack.backend.config.repository.PolicyRepository`, run the pure
engines and attach translated labels. Profiling hooks live here so that the
engines themselves stay free of timing concerns.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from contextlib import contextmanager
from dataclasses import asdict
from time import perf_counter
from typing import Any, TypeVar

from pydantic import BaseModel, ValidationError

from fintrack.backend.app.localization import Translator, get_translator
from fintrack.backend.app.models import (
    AnnualSummary,
    ForecastMonth,
    ForecastRequest,
    PerformanceRequest,
    WithholdingRequest,
    XirrRequest,
    YearMonth,
    format_validation_error,
)
from fintrack.backend.config.repository import PolicyRepository

from .calculators import (
    compute_month,
    compute_performance,
    compute_performance_series,
    round_currency,
    round_rate,
    xirr,
)
from .forecast_service import forecast, summarise_forecast
from .schedules import expand_long_term_cash

_LOGGER = logging.getLogger(__name__)
_TRUTHY = {"1", "true", "yes", "on"}

RequestModel = TypeVar("RequestModel", bound=BaseModel)


def _profiling_enabled() -> bool:
    """Return ``True`` when calculation profiling should be captured."""

    flag = os.getenv("FINTRACK_PROFILE_CALCULATIONS", "")
    return flag.strip().lower() in _TRUTHY


def clamp_negative_tax_default() -> bool:
    """Default for ``clamp_negative_monthly_tax`` when a request omits it."""

    flag = os.getenv("FINTRACK_CLAMP_NEGATIVE_TAX", "")
    return flag.strip().lower() in _TRUTHY


@contextmanager
def _profile_section(name: str, store: dict[str, float] | None):
    """Capture the duration of a named section when profiling is enabled."""

    if store is None:
        yield
        return

    start = perf_counter()
    try:
        yield
    finally:
        store[name] = perf_counter() - start


def _log_timings(operation: str, timings: dict[str, float] | None) -> None:
    if timings is None:
        return
    _LOGGER.debug(
        "%s timings (ms): %s",
        operation,
        {name: round(duration * 1000, 3) for name, duration in timings.items()},
    )


def _validate_request(
    model: type[RequestModel], payload: Mapping[str, Any], subject: str
) -> tuple[RequestModel, str | None]:
    if not isinstance(payload, Mapping):
        raise ValueError("Payload must be a mapping")

    data = dict(payload)
    locale = data.pop("locale", None)
    try:
        return model.model_validate(data), locale
    except ValidationError as exc:
        raise ValueError(format_validation_error(exc, subject)) from exc


def _describe_event(event: Any, translator: Translator) -> dict[str, Any]:
    entry = event.as_dict()
    params = {key: value for key, value in entry.items() if key != "type"}
    entry["label"] = translator(f"event.{event.kind}", **params)
    return entry


def _serialise_row(row: ForecastMonth, translator: Translator) -> dict[str, Any]:
    payload = row.as_dict()
    payload["events"] = [_describe_event(event, translator) for event in row.events]
    payload["marker_labels"] = [
        translator(f"marker.{name}")
        for name, active in row.markers.as_dict().items()
        if active is True
    ]
    if row.error is not None:
        payload["error_label"] = translator("error.no_policy")
    return payload


def _serialise_summary(summary: AnnualSummary, translator: Translator) -> dict[str, Any]:
    return {
        "year": summary.year,
        "month_count": summary.month_count,
        "failed_months": summary.failed_months,
        "total_gross": round_currency(summary.total_gross),
        "total_bonus": round_currency(summary.total_bonus),
        "total_long_term_cash": round_currency(summary.total_long_term_cash),
        "total_income": round_currency(summary.total_income),
        "total_social_insurance": round_currency(summary.total_social_insurance),
        "total_housing_fund": round_currency(summary.total_housing_fund),
        "total_tax": round_currency(summary.total_tax),
        "total_net": round_currency(summary.total_net),
        "effective_tax_rate": round_rate(summary.effective_tax_rate),
        "labels": {
            key: translator(f"summary.{key}")
            for key in (
                "total_gross",
                "total_bonus",
                "total_long_term_cash",
                "total_income",
                "total_social_insurance",
                "total_housing_fund",
                "total_tax",
                "total_net",
                "effective_tax_rate",
                "month_count",
                "failed_months",
            )
        },
    }


def calculate_withholding(
    payload: Mapping[str, Any], repository: PolicyRepository
) -> dict[str, Any]:
    """Withhold tax for the single month described by ``payload``."""

    request_model, locale = _validate_request(WithholdingRequest, payload, "withholding")
    timings: dict[str, float] | None = {} if _profiling_enabled() else None

    income = request_model.income.to_domain()
    on = YearMonth(income.year, income.month).anchor(request_model.anchor_day)
    with _profile_section("resolve", timings):
        policy = repository.resolve(request_model.region, on)

    options = request_model.options.to_domain(clamp_negative_tax_default())
    with _profile_section("compute_month", timings):
        state, result = compute_month(
            request_model.cumulative_state(), income, policy, options
        )
    _log_timings("calculate_withholding", timings)

    translator = get_translator(locale)
    return {
        "result": result.as_dict(),
        "state": asdict(state),
        "labels": {
            key: translator(f"withholding.{key}")
            for key in (
                "social_insurance",
                "housing_fund",
                "tax_this_month",
                "bonus_tax",
                "net_income",
            )
        },
        "meta": {
            "region": request_model.region,
            "locale": translator.locale,
            "policy_effective_from": policy.effective_from.isoformat(),
            "policy_signature": policy.signature,
        },
    }


def calculate_forecast(
    payload: Mapping[str, Any], repository: PolicyRepository
) -> dict[str, Any]:
    """Forecast every month of the requested range with annual summaries."""

    request_model, locale = _validate_request(ForecastRequest, payload, "forecast")
    timings: dict[str, float] | None = {} if _profiling_enabled() else None
    overall_start = perf_counter() if timings is not None else None

    start, end = request_model.start_month, request_model.end_month
    with _profile_section("expand_long_term_cash", timings):
        payments = expand_long_term_cash(request_model.grants(), start, end)
    timeline = request_model.timeline().with_long_term_cash(payments)

    with _profile_section("forecast", timings):
        rows = forecast(
            request_model.region,
            start,
            end,
            timeline,
            repository,
            options=request_model.options.to_domain(clamp_negative_tax_default()),
            anchor_day=request_model.anchor_day,
        )

    with _profile_section("summarise", timings):
        summaries = summarise_forecast(rows)

    if timings is not None and overall_start is not None:
        timings["total"] = perf_counter() - overall_start
    _log_timings("calculate_forecast", timings)

    translator = get_translator(locale)
    return {
        "months": [_serialise_row(row, translator) for row in rows],
        "summary": [_serialise_summary(summary, translator) for summary in summaries],
        "meta": {
            "region": request_model.region,
            "start": str(start),
            "end": str(end),
            "locale": translator.locale,
        },
    }


def calculate_performance(payload: Mapping[str, Any]) -> dict[str, Any]:
    """Reconcile a valuation window and optionally its per-pair series."""

    request_model, locale = _validate_request(PerformanceRequest, payload, "performance")
    valuations = request_model.snapshots()
    flows = request_model.cash_flows()

    result = compute_performance(valuations, flows)
    translator = get_translator(locale)
    response: dict[str, Any] = {
        "result": result.as_dict(),
        "labels": {
            key: translator(f"performance.{key}")
            for key in ("pnl", "net_flow", "twr", "xirr")
        },
        "meta": {"locale": translator.locale},
    }
    if request_model.include_series:
        response["series"] = [
            entry.as_dict() for entry in compute_performance_series(valuations, flows)
        ]
    return response


def calculate_xirr(payload: Mapping[str, Any]) -> dict[str, Any]:
    """Solve the XIRR of an explicit cash-flow list."""

    request_model, _ = _validate_request(XirrRequest, payload, "xirr")
    rate = xirr(request_model.cash_flows(), guess=request_model.guess)
    return {"xirr": rate}


__all__ = [
    "calculate_forecast",
    "calculate_performance",
    "calculate_withholding",
    "calculate_xirr",
    "clamp_negative_tax_default",
]
