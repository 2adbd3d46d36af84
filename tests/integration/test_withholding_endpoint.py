"""Integration tests for the single-month withholding endpoint."""

from __future__ import annotations

from decimal import Decimal
from http import HTTPStatus

import pytest
from flask.testing import FlaskClient


def _payload(month: int, **extra) -> dict:
    payload = {
        "region": "testville",
        "income": {"year": 2024, "month": month, "gross_salary": 20000},
    }
    payload.update(extra)
    return payload


def test_withholding_endpoint_returns_month_result(memory_client: FlaskClient) -> None:
    response = memory_client.post("/api/v1/withholding", json=_payload(1))

    assert response.status_code == HTTPStatus.OK
    payload = response.get_json()
    result = payload["result"]
    assert result["period"] == "2024-01"
    assert Decimal(result["social_insurance"]) == Decimal("2100")
    assert Decimal(result["housing_fund"]) == Decimal("2400")
    assert Decimal(result["taxable_income_cumulative"]) == Decimal("10500")
    assert Decimal(result["tax_this_month"]) == Decimal("315")
    assert Decimal(result["net_income"]) == Decimal("15185")
    assert payload["state"]["last_month"] == 1
    assert payload["meta"]["policy_effective_from"] == "2024-01-01"
    assert payload["meta"]["policy_signature"] == result["policy_signature"]


def test_returned_state_continues_the_year(memory_client: FlaskClient) -> None:
    first = memory_client.post("/api/v1/withholding", json=_payload(1)).get_json()

    response = memory_client.post(
        "/api/v1/withholding", json=_payload(2, state=first["state"])
    )

    assert response.status_code == HTTPStatus.OK
    result = response.get_json()["result"]
    assert result["months_elapsed"] == 2
    assert Decimal(result["tax_due_cumulative"]) == Decimal("630")
    assert Decimal(result["tax_this_month"]) == Decimal("315")


def test_state_must_precede_the_income_month(memory_client: FlaskClient) -> None:
    first = memory_client.post("/api/v1/withholding", json=_payload(3)).get_json()

    response = memory_client.post(
        "/api/v1/withholding", json=_payload(3, state=first["state"])
    )

    assert response.status_code == HTTPStatus.BAD_REQUEST
    payload = response.get_json()
    assert payload["error"] == "validation_error"
    assert "state.last_month" in payload["message"]


def test_separate_bonus_mode_reports_bonus_tax(memory_client: FlaskClient) -> None:
    payload = _payload(1, options={"merge_bonus_into_comprehensive": False})
    payload["income"]["bonus"] = 36000

    response = memory_client.post("/api/v1/withholding", json=payload)

    result = response.get_json()["result"]
    assert Decimal(result["bonus_tax"]) == Decimal("3390")
    assert Decimal(result["total_tax"]) == Decimal("3705")


def test_clamp_default_comes_from_the_environment(
    memory_client: FlaskClient, monkeypatch: pytest.MonkeyPatch
) -> None:
    first = memory_client.post("/api/v1/withholding", json=_payload(1)).get_json()
    refund_month = _payload(2, state=first["state"])
    refund_month["income"]["special_deductions"] = 30000

    monkeypatch.setenv("FINTRACK_CLAMP_NEGATIVE_TAX", "true")
    clamped = memory_client.post("/api/v1/withholding", json=refund_month).get_json()

    monkeypatch.setenv("FINTRACK_CLAMP_NEGATIVE_TAX", "0")
    refunded = memory_client.post("/api/v1/withholding", json=refund_month).get_json()

    assert Decimal(clamped["result"]["tax_this_month"]) == Decimal(0)
    assert Decimal(refunded["result"]["tax_this_month"]) == Decimal("-315")


def test_withholding_labels_follow_locale(memory_client: FlaskClient) -> None:
    response = memory_client.post(
        "/api/v1/withholding", json=_payload(1), headers={"Accept-Language": "zh-CN"}
    )

    payload = response.get_json()
    assert payload["meta"]["locale"] == "zh"
    assert payload["labels"]["net_income"] != "Net income"


def test_month_without_policy_returns_not_found(memory_client: FlaskClient) -> None:
    payload = _payload(12)
    payload["income"]["year"] = 2023

    response = memory_client.post("/api/v1/withholding", json=payload)

    assert response.status_code == HTTPStatus.NOT_FOUND
    problem = response.get_json()
    assert problem["error"] == "not_found"
    assert problem["region"] == "testville"
    assert problem["date"] == "2023-12-01"


@pytest.mark.parametrize(
    "income",
    [
        {"year": 2024, "month": 13, "gross_salary": 20000},
        {"year": 2024, "month": 1, "gross_salary": -1},
        {"year": 2024, "month": 1},
        {"year": 2024, "month": 1, "gross_salary": 20000, "commission": 5},
    ],
)
def test_invalid_income_returns_validation_error(
    memory_client: FlaskClient, income: dict
) -> None:
    response = memory_client.post(
        "/api/v1/withholding", json={"region": "testville", "income": income}
    )

    assert response.status_code == HTTPStatus.BAD_REQUEST
    problem = response.get_json()
    assert problem["error"] == "validation_error"
    assert problem["message"].startswith("Invalid withholding payload:")


def test_non_json_body_is_rejected(memory_client: FlaskClient) -> None:
    response = memory_client.post(
        "/api/v1/withholding", data="region=testville", content_type="text/plain"
    )

    assert response.status_code == HTTPStatus.BAD_REQUEST
    assert response.get_json()["error"] == "bad_request"
