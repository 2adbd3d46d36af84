"""REST endpoint for single-month withholding."""

from __future__ import annotations

from typing import Any

from flask import Blueprint, request

from fintrack.backend.app.http import current_repository
from fintrack.backend.app.services.calculation_service import calculate_withholding
from fintrack.backend.services import build_json_response, parse_json_payload

blueprint = Blueprint("withholding", __name__, url_prefix="/api/v1")


@blueprint.post("/withholding")
def create_withholding() -> tuple[Any, int]:
    """Withhold tax for one month, continuing from an optional prior state."""

    payload = parse_json_payload(request)
    result = calculate_withholding(payload, current_repository())

    return build_json_response(result)
