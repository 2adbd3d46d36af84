"""Integration tests for the forecast endpoint."""

from __future__ import annotations

from decimal import Decimal
from http import HTTPStatus

import pytest
from flask.testing import FlaskClient


def _payload(**extra) -> dict:
    payload = {
        "region": "testville",
        "start": "2024-01",
        "end": "2024-12",
        "salary_changes": [{"effective_month": "2024-01", "new_gross": 40000}],
    }
    payload.update(extra)
    return payload


def test_forecast_endpoint_returns_months_and_summary(memory_client: FlaskClient) -> None:
    response = memory_client.post(
        "/api/v1/forecast",
        json=_payload(bonuses=[{"month": "2024-06", "amount": 10000}]),
    )

    assert response.status_code == HTTPStatus.OK
    payload = response.get_json()
    months = payload["months"]
    assert [row["period"] for row in months][:2] == ["2024-01", "2024-02"]
    assert len(months) == 12

    june = months[5]
    assert june["markers"]["bonus_paid"] is True
    assert "Bonus paid" in june["marker_labels"]
    assert june["events"][0]["label"] == "Bonus of 10000 paid"

    (summary,) = payload["summary"]
    assert summary["month_count"] == 12
    assert Decimal(summary["total_bonus"]) == Decimal("10000")
    assert Decimal(summary["total_income"]) == Decimal("490000")
    assert summary["labels"]["total_tax"] == "Total tax"
    assert payload["meta"] == {
        "region": "testville",
        "start": "2024-01",
        "end": "2024-12",
        "locale": "en",
    }


def test_forecast_marks_policy_change(memory_client: FlaskClient) -> None:
    months = memory_client.post("/api/v1/forecast", json=_payload()).get_json()["months"]

    flagged = [row["period"] for row in months if row["markers"]["tax_change"]]
    assert flagged == ["2024-07"]
    event = months[6]["events"][-1]
    assert event["type"] == "policy_changed"
    assert event["previous_signature"] != event["signature"]


def test_forecast_expands_long_term_cash_grants(memory_client: FlaskClient) -> None:
    response = memory_client.post(
        "/api/v1/forecast",
        json=_payload(
            long_term_cash_grants=[{"total_amount": 16000, "effective_date": "2024-01-15"}]
        ),
    )

    payload = response.get_json()
    paid = [row["period"] for row in payload["months"] if row["markers"]["long_term_cash_paid"]]
    assert paid == ["2024-01", "2024-04", "2024-07", "2024-10"]
    assert Decimal(payload["months"][0]["long_term_cash"]) == Decimal("1000")
    assert Decimal(payload["summary"][0]["total_long_term_cash"]) == Decimal("4000")
    assert Decimal(payload["summary"][0]["total_bonus"]) == Decimal(0)


def test_forecast_reports_months_without_policy(memory_client: FlaskClient) -> None:
    response = memory_client.post(
        "/api/v1/forecast", json=_payload(start="2023-11", end="2024-01"), query_string={"locale": "zh"}
    )

    assert response.status_code == HTTPStatus.OK
    payload = response.get_json()
    first = payload["months"][0]
    assert "result" not in first
    assert "testville" in first["error"]
    assert first["error_label"]
    assert payload["months"][2]["result"]["months_elapsed"] == 1
    assert [entry["failed_months"] for entry in payload["summary"]] == [2, 0]
    assert payload["meta"]["locale"] == "zh"


@pytest.mark.parametrize(
    "overrides",
    [
        {"end": "2023-12"},
        {"start": "January"},
        {"salary_changes": [{"effective_month": "2024-01", "new_gross": -5}]},
        {"bonuses": [{"month": "2024-13", "amount": 100}]},
        {"anchor_day": 0},
        {"horizon": 12},
    ],
)
def test_invalid_forecast_payload_returns_validation_error(
    memory_client: FlaskClient, overrides: dict
) -> None:
    response = memory_client.post("/api/v1/forecast", json=_payload(**overrides))

    assert response.status_code == HTTPStatus.BAD_REQUEST
    problem = response.get_json()
    assert problem["error"] == "validation_error"
    assert problem["status"] == HTTPStatus.BAD_REQUEST


def test_forecast_over_shipped_policies(client: FlaskClient) -> None:
    response = client.post(
        "/api/v1/forecast",
        json={
            "region": "hangzhou",
            "start": "2024-01",
            "end": "2025-12",
            "salary_changes": [{"effective_month": "2024-01", "new_gross": 30000}],
        },
    )

    assert response.status_code == HTTPStatus.OK
    months = response.get_json()["months"]
    flagged = [row["period"] for row in months if row["markers"]["tax_change"]]
    assert flagged == ["2024-07", "2025-07"]
