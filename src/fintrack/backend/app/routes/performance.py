"""REST endpoints for portfolio performance."""

from __future__ import annotations

from typing import Any

from flask import Blueprint, request

from fintrack.backend.app.services.calculation_service import (
    calculate_performance,
    calculate_xirr,
)
from fintrack.backend.services import build_json_response, parse_json_payload

blueprint = Blueprint("performance", __name__, url_prefix="/api/v1/performance")


@blueprint.post("")
def create_performance() -> tuple[Any, int]:
    """Reconcile valuations and cash flows into returns and P&L."""

    payload = parse_json_payload(request)
    return build_json_response(calculate_performance(payload))


@blueprint.post("/xirr")
def create_xirr() -> tuple[Any, int]:
    """Solve the money-weighted return of explicit cash flows."""

    payload = parse_json_payload(request)
    return build_json_response(calculate_xirr(payload))
