#!/usr/bin/env python3
"""Collect baseline timings for the forecast and performance engines."""

from __future__ import annotations

import json
import os
import sys
from datetime import date, timedelta
from pathlib import Path
from time import perf_counter
from typing import Any, Callable

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from fintrack.backend.app.services.calculation_service import (  # noqa: E402
    calculate_forecast,
    calculate_performance,
)
from fintrack.backend.config.repository import YamlPolicyRepository  # noqa: E402

FORECAST_PAYLOAD: dict[str, Any] = {
    "region": "hangzhou",
    "start": "2024-01",
    "end": "2026-12",
    "locale": "en",
    "salary_changes": [
        {"effective_month": "2024-01", "new_gross": 30000},
        {"effective_month": "2025-04", "new_gross": 34000},
    ],
    "bonuses": [{"month": "2024-03", "amount": 60000}, {"month": "2025-03", "amount": 72000}],
    "long_term_cash_grants": [{"total_amount": 160000, "effective_date": "2024-02-15"}],
}


def _performance_payload(points: int) -> dict[str, Any]:
    start = date(2022, 1, 3)
    valuations = [
        {
            "as_of": (start + timedelta(days=7 * index)).isoformat(),
            "total_value": 100000 + 350 * index + (index % 5) * 120,
        }
        for index in range(points)
    ]
    flows = [
        {"date": (start + timedelta(days=7 * index)).isoformat(), "amount": 1000}
        for index in range(4, points, 4)
    ]
    return {"valuations": valuations, "flows": flows, "include_series": True}


def _time(operation: Callable[[], Any], iterations: int) -> dict[str, float]:
    operation()  # Warm caches
    start = perf_counter()
    for _ in range(iterations):
        operation()
    elapsed = perf_counter() - start
    return {
        "iterations": iterations,
        "total_ms": elapsed * 1000,
        "average_ms": (elapsed / iterations) * 1000,
    }


def main() -> None:
    iterations = int(os.getenv("FINTRACK_PROFILE_ITERATIONS", "25"))
    repository = YamlPolicyRepository()
    performance_payload = _performance_payload(156)
    report = {
        "forecast": _time(lambda: calculate_forecast(FORECAST_PAYLOAD, repository), iterations),
        "performance": _time(lambda: calculate_performance(performance_payload), iterations),
    }
    print(json.dumps(report, indent=2, sort_keys=True))


if __name__ == "__main__":
    main()
