"""REST endpoint for multi-month withholding forecasts."""

from __future__ import annotations

from typing import Any

from flask import Blueprint, request

from fintrack.backend.app.http import current_repository
from fintrack.backend.app.services.calculation_service import calculate_forecast
from fintrack.backend.services import build_json_response, parse_json_payload

blueprint = Blueprint("forecast", __name__, url_prefix="/api/v1")


@blueprint.post("/forecast")
def create_forecast() -> tuple[Any, int]:
    """Forecast withholding over a month range and an income timeline."""

    payload = parse_json_payload(request)
    result = calculate_forecast(payload, current_repository())

    return build_json_response(result)
