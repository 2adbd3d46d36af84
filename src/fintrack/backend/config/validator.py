"""Utilities for validating policy data and surfacing issues."""

from __future__ import annotations

import argparse
from datetime import timedelta
from decimal import Decimal
from typing import Sequence

from fintrack.backend.errors import ConfigurationError

from .policy_config import available_regions, load_region_policies
from .repository import ensure_no_overlap
from .schema import HousingFundConfig, PolicyConfig, SocialInsuranceConfig, TaxBracket

_CONTINUITY_TOLERANCE = Decimal("0.01")


def _format_scope(scope: str, message: str) -> str:
    return f"{scope}: {message}"


def _policy_scope(config: PolicyConfig) -> str:
    return f"{config.region}@{config.effective_from.isoformat()}"


def _validate_brackets(scope: str, brackets: Sequence[TaxBracket]) -> list[str]:
    errors: list[str] = []

    for previous, current in zip(brackets, brackets[1:]):
        if current.rate < previous.rate:
            errors.append(
                _format_scope(
                    scope,
                    f"bracket rate drops from {previous.rate} to {current.rate} "
                    f"at threshold {current.threshold}",
                )
            )

        # Quick deductions keep the cumulative tax continuous across thresholds.
        below = current.threshold * previous.rate - previous.quick_deduction
        above = current.threshold * current.rate - current.quick_deduction
        if abs(below - above) > _CONTINUITY_TOLERANCE:
            errors.append(
                _format_scope(
                    scope,
                    (
                        f"quick deduction {current.quick_deduction} at threshold "
                        f"{current.threshold} is discontinuous ({below} vs {above})"
                    ),
                )
            )

    return errors


def _validate_social_insurance(scope: str, social: SocialInsuranceConfig) -> list[str]:
    errors: list[str] = []

    if social.total_rate > 1:
        errors.append(
            _format_scope(scope, f"combined social insurance rate {social.total_rate} exceeds 1")
        )
    if social.base_max == 0:
        errors.append(_format_scope(scope, "social insurance base maximum is zero"))

    return errors


def _validate_housing_fund(scope: str, housing_fund: HousingFundConfig | None) -> list[str]:
    if housing_fund is None:
        return []

    errors: list[str] = []
    if housing_fund.rate == 0:
        errors.append(
            _format_scope(scope, "housing fund is configured with a zero rate; omit it instead")
        )
    if housing_fund.base_max == 0:
        errors.append(_format_scope(scope, "housing fund base maximum is zero"))
    return errors


def validate_policy_configuration(config: PolicyConfig) -> list[str]:
    """Return a list of human-readable issues detected in ``config``."""

    scope = _policy_scope(config)
    errors: list[str] = []

    if config.monthly_basic_deduction == 0:
        errors.append(_format_scope(scope, "monthly basic deduction is zero"))

    errors.extend(_validate_brackets(f"{scope}.brackets", config.brackets))
    errors.extend(
        _validate_social_insurance(f"{scope}.social_insurance", config.social_insurance)
    )
    errors.extend(_validate_housing_fund(f"{scope}.housing_fund", config.housing_fund))

    return errors


def validate_policy_timeline(records: Sequence[PolicyConfig]) -> list[str]:
    """Check that a region's sorted records neither overlap nor leave gaps."""

    if not records:
        return []

    region = records[0].region
    try:
        ensure_no_overlap(records)
    except ConfigurationError as exc:
        return [_format_scope(region, str(exc))]

    errors: list[str] = []
    for previous, current in zip(records, records[1:]):
        if previous.effective_to is None:
            continue
        expected_start = previous.effective_to + timedelta(days=1)
        if current.effective_from != expected_start:
            errors.append(
                _format_scope(
                    region,
                    (
                        f"no policy covers {expected_start.isoformat()} to "
                        f"{(current.effective_from - timedelta(days=1)).isoformat()}"
                    ),
                )
            )
    return errors


def validate_region(region: str) -> list[str]:
    """Validate every policy declared for ``region``."""

    try:
        records = load_region_policies(region)
    except (FileNotFoundError, ConfigurationError) as exc:
        return [_format_scope(region, str(exc))]

    errors: list[str] = []
    for record in records:
        errors.extend(validate_policy_configuration(record))
    errors.extend(validate_policy_timeline(records))
    return errors


def validate_all_regions() -> dict[str, list[str]]:
    """Validate each configured region and return the collected issues."""

    return {region: validate_region(region) for region in available_regions()}


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Validate FinTrack policy files")
    parser.add_argument(
        "regions",
        nargs="*",
        help="Regions to validate (defaults to every region in the manifest)",
    )
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    args = _parse_args(argv)
    regions = args.regions or list(available_regions())

    exit_code = 0
    for region in regions:
        issues = validate_region(region)
        if issues:
            exit_code = 1
            print(f"[{region}] {len(issues)} issue(s) detected:")
            for issue in issues:
                print(f"  - {issue}")
        else:
            print(f"[{region}] OK")

    return exit_code


if __name__ == "__main__":  # pragma: no cover - CLI invocation
    raise SystemExit(main())
