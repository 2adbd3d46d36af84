"""Social-insurance and housing-fund contribution helpers."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from fintrack.backend.app.models import ContributionOverrides
from fintrack.backend.config.schema import PolicyConfig

from .utils import round_currency


@dataclass(frozen=True)
class Contributions:
    """Employee contributions withheld from one month of salary."""

    social_insurance_base: Decimal
    housing_fund_base: Decimal
    social_insurance: Decimal
    housing_fund: Decimal


def calculate_contributions(
    gross_salary: Decimal,
    policy: PolicyConfig,
    overrides: ContributionOverrides | None = None,
) -> Contributions:
    """Compute SI and HF for ``gross_salary``.

    Only salary feeds the bases; bonuses and long-term cash never do. An
    override base replaces the clamped one as given, including zero.
    """

    social = policy.social_insurance
    si_base = social.clamp_base(gross_salary)
    if overrides is not None and overrides.social_insurance_base is not None:
        si_base = overrides.social_insurance_base
    social_insurance = round_currency(si_base * social.total_rate)

    housing_fund_config = policy.housing_fund
    if housing_fund_config is None:
        hf_base = Decimal(0)
        housing_fund = Decimal(0)
    else:
        hf_base = housing_fund_config.clamp_base(gross_salary)
        if overrides is not None and overrides.housing_fund_base is not None:
            hf_base = overrides.housing_fund_base
        housing_fund = round_currency(hf_base * housing_fund_config.rate)

    return Contributions(
        social_insurance_base=si_base,
        housing_fund_base=hf_base,
        social_insurance=social_insurance,
        housing_fund=housing_fund,
    )


__all__ = ["Contributions", "calculate_contributions"]
