"""Expose the time-versioned withholding policies.

These endpoints let clients discover the configured regions, inspect every
published policy of a region and preview which one applies on a given date,
without duplicating the resolution rule.
"""

from __future__ import annotations

from datetime import date
from typing import Any

from flask import Blueprint, jsonify, request
from werkzeug.exceptions import BadRequest

from fintrack.backend.app.http import current_repository, problem_response
from fintrack.backend.app.localization import get_translator
from fintrack.backend.config.schema import PolicyConfig
from fintrack.backend.version import get_project_version

blueprint = Blueprint("config", __name__, url_prefix="/api/v1/config")


def get_configuration_metadata() -> dict[str, Any]:
    """Expose runtime metadata derived from the active policy repository."""

    regions = list(current_repository().regions())
    return {
        "version": get_project_version(),
        "regions": regions,
        "default_region": regions[0] if regions else None,
    }


def serialise_policy(policy: PolicyConfig) -> dict[str, Any]:
    """Return a JSON-ready view of ``policy`` including its signature."""

    return {
        "region": policy.region,
        "effective_from": policy.effective_from.isoformat(),
        "effective_to": policy.effective_to.isoformat() if policy.effective_to else None,
        "signature": policy.signature,
        "parameters": policy.parameters(),
        "meta": dict(policy.meta),
    }


def _parse_date(raw: str | None) -> date:
    if not raw:
        return date.today()
    try:
        return date.fromisoformat(raw)
    except ValueError as exc:
        raise BadRequest("Query parameter 'date' must be an ISO date (YYYY-MM-DD)") from exc


@blueprint.get("/meta")
def get_application_metadata() -> tuple[Any, int]:
    """Expose lightweight application metadata such as the version identifier."""

    return jsonify(get_configuration_metadata()), 200


@blueprint.get("/regions")
def list_regions() -> tuple[Any, int]:
    """Return every configured region with its policy windows."""

    repository = current_repository()
    translator = get_translator(request.args.get("locale"))

    regions = []
    for region in repository.regions():
        records = repository.records(region)
        regions.append(
            {
                "id": region,
                "label": translator(f"region.{region}"),
                "policy_count": len(records),
                "windows": [
                    {
                        "effective_from": record.effective_from.isoformat(),
                        "effective_to": (
                            record.effective_to.isoformat() if record.effective_to else None
                        ),
                    }
                    for record in records
                ],
            }
        )

    return jsonify({"regions": regions, "locale": translator.locale}), 200


@blueprint.get("/regions/<region>/policies")
def list_region_policies(region: str) -> tuple[Any, int]:
    """Return the full parameters of each policy published for ``region``."""

    records = current_repository().records(region)
    if not records:
        return problem_response(
            "not_found", status=404, message=f"Unknown region '{region}'"
        ).to_response()

    payload = {"region": region, "policies": [serialise_policy(record) for record in records]}
    return jsonify(payload), 200


@blueprint.get("/regions/<region>/resolve")
def resolve_region_policy(region: str) -> tuple[Any, int]:
    """Return the policy effective for ``region`` on the ``date`` query value."""

    on = _parse_date(request.args.get("date"))
    policy = current_repository().resolve(region, on)
    payload = {"date": on.isoformat(), "policy": serialise_policy(policy)}
    return jsonify(payload), 200
