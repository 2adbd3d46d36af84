"""Pydantic models describing the time-versioned withholding policy schema."""

from __future__ import annotations

import hashlib
import json
from bisect import bisect_right
from collections.abc import Iterable, Mapping, Sequence
from datetime import date
from decimal import Decimal, InvalidOperation
from functools import cached_property
from typing import Any

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)
from typing_extensions import Self

from fintrack.backend.errors import ConfigurationError, InvalidBracketTable

_MONTHS_PER_YEAR = Decimal(12)


def to_decimal(value: Any) -> Decimal:
    """Convert YAML/JSON scalars to :class:`Decimal` without float artefacts."""

    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise ConfigurationError("Boolean values are not valid amounts")
    if isinstance(value, int):
        return Decimal(value)
    if isinstance(value, float):
        return Decimal(repr(value))
    if isinstance(value, str):
        try:
            return Decimal(value.strip())
        except InvalidOperation as exc:
            raise ConfigurationError(f"'{value}' is not a decimal amount") from exc
    raise ConfigurationError(f"Unsupported amount type: {type(value).__name__}")


def _canonical(value: Decimal) -> str:
    return format(value.normalize(), "f")


def _validate_rate(label: str, value: Decimal) -> None:
    if value < 0 or value > 1:
        raise ConfigurationError(f"{label} must be between 0 and 1")


def _clamp(amount: Decimal, lower: Decimal, upper: Decimal) -> Decimal:
    return min(max(amount, lower), upper)


class ImmutableModel(BaseModel):
    """Base class that freezes instances and rejects unknown fields."""

    model_config = ConfigDict(frozen=True, extra="forbid", populate_by_name=True)


class TaxBracket(ImmutableModel):
    """A progressive bracket: closed lower ``threshold`` and its quick deduction."""

    threshold: Decimal = Field(alias="from")
    rate: Decimal
    quick_deduction: Decimal = Decimal(0)

    @field_validator("threshold", "rate", "quick_deduction", mode="before")
    @classmethod
    def _coerce_amounts(cls, value: Any) -> Decimal:
        return to_decimal(value)

    @model_validator(mode="after")
    def _validate_values(self) -> TaxBracket:
        if self.threshold < 0:
            raise ConfigurationError("Bracket thresholds must be non-negative")
        _validate_rate("Tax rates", self.rate)
        if self.quick_deduction < 0:
            raise ConfigurationError("Quick deductions must be non-negative")
        return self


class SocialInsuranceConfig(ImmutableModel):
    """Employee social-insurance rates and the contribution base bounds."""

    base_min: Decimal
    base_max: Decimal
    pension_rate: Decimal
    medical_rate: Decimal = Decimal(0)
    unemployment_rate: Decimal = Decimal(0)

    @field_validator(
        "base_min",
        "base_max",
        "pension_rate",
        "medical_rate",
        "unemployment_rate",
        mode="before",
    )
    @classmethod
    def _coerce_amounts(cls, value: Any) -> Decimal:
        return to_decimal(value)

    @model_validator(mode="after")
    def _validate_values(self) -> Self:
        if self.base_min < 0:
            raise ConfigurationError("Social insurance base minimum must be non-negative")
        if self.base_max < self.base_min:
            raise ConfigurationError(
                "Social insurance base maximum cannot be lower than the minimum"
            )
        _validate_rate("Pension rate", self.pension_rate)
        _validate_rate("Medical rate", self.medical_rate)
        _validate_rate("Unemployment rate", self.unemployment_rate)
        return self

    @property
    def total_rate(self) -> Decimal:
        return self.pension_rate + self.medical_rate + self.unemployment_rate

    def clamp_base(self, gross_salary: Decimal) -> Decimal:
        return _clamp(gross_salary, self.base_min, self.base_max)


class HousingFundConfig(ImmutableModel):
    """Housing-fund contribution rate and base bounds."""

    rate: Decimal
    base_min: Decimal
    base_max: Decimal

    @field_validator("rate", "base_min", "base_max", mode="before")
    @classmethod
    def _coerce_amounts(cls, value: Any) -> Decimal:
        return to_decimal(value)

    @model_validator(mode="after")
    def _validate_values(self) -> Self:
        _validate_rate("Housing fund rate", self.rate)
        if self.base_min < 0:
            raise ConfigurationError("Housing fund base minimum must be non-negative")
        if self.base_max < self.base_min:
            raise ConfigurationError(
                "Housing fund base maximum cannot be lower than the minimum"
            )
        return self

    def clamp_base(self, gross_salary: Decimal) -> Decimal:
        return _clamp(gross_salary, self.base_min, self.base_max)


def validate_bracket_table(brackets: Sequence[TaxBracket]) -> None:
    """Reject bracket tables that cannot support a "find last <=" lookup."""

    if not brackets:
        raise InvalidBracketTable("At least one tax bracket must be defined")
    if brackets[0].threshold != 0:
        raise InvalidBracketTable("The first tax bracket must start at 0")
    previous: Decimal | None = None
    for bracket in brackets:
        if previous is not None and bracket.threshold <= previous:
            raise InvalidBracketTable("Tax bracket thresholds must be strictly increasing")
        previous = bracket.threshold


class PolicyConfig(ImmutableModel):
    """Immutable withholding policy for a region and an effective window."""

    region: str
    effective_from: date
    effective_to: date | None = None
    monthly_basic_deduction: Decimal = Decimal(5000)
    brackets: tuple[TaxBracket, ...]
    social_insurance: SocialInsuranceConfig
    housing_fund: HousingFundConfig | None = None
    special_deductions: Mapping[str, Decimal] = Field(default_factory=dict)
    meta: Mapping[str, Any] = Field(default_factory=dict)

    @field_validator("monthly_basic_deduction", mode="before")
    @classmethod
    def _coerce_basic_deduction(cls, value: Any) -> Decimal:
        return to_decimal(value)

    @field_validator("brackets", mode="before")
    @classmethod
    def _coerce_brackets(cls, value: Any) -> tuple[Any, ...]:
        if isinstance(value, Iterable) and not isinstance(value, (str, Mapping)):
            return tuple(value)
        raise ConfigurationError("'brackets' must be a list of bracket definitions")

    @field_validator("special_deductions", mode="before")
    @classmethod
    def _coerce_special_deductions(cls, value: Any) -> Mapping[str, Decimal]:
        if value is None:
            return {}
        if isinstance(value, Mapping):
            return {str(key): to_decimal(amount) for key, amount in value.items()}
        raise ConfigurationError("'special_deductions' must be a mapping")

    @field_validator("meta", mode="before")
    @classmethod
    def _coerce_meta(cls, value: Any) -> Mapping[str, Any]:
        if value is None:
            return {}
        if isinstance(value, Mapping):
            return dict(value)
        raise ConfigurationError("'meta' section must be a mapping if provided")

    @model_validator(mode="after")
    def _validate_policy(self) -> PolicyConfig:
        if not self.region.strip():
            raise ConfigurationError("Policies must name a region")
        if self.effective_to is not None and self.effective_to < self.effective_from:
            raise ConfigurationError("'effective_to' cannot precede 'effective_from'")
        if self.monthly_basic_deduction < 0:
            raise ConfigurationError("Monthly basic deduction must be non-negative")
        for name, amount in self.special_deductions.items():
            if amount < 0:
                raise ConfigurationError(f"Special deduction '{name}' must be non-negative")
        validate_bracket_table(self.brackets)
        return self

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> PolicyConfig:
        """Build a policy, surfacing bracket problems as :class:`InvalidBracketTable`."""

        try:
            return cls.model_validate(data)
        except ValidationError as error:
            for detail in error.errors():
                cause = (detail.get("ctx") or {}).get("error")
                if isinstance(cause, InvalidBracketTable):
                    raise InvalidBracketTable(str(cause)) from error
            raise ConfigurationError(f"Policy validation failed: {error}") from error

    def covers(self, on: date) -> bool:
        if on < self.effective_from:
            return False
        return self.effective_to is None or on <= self.effective_to

    @property
    def total_special_deductions(self) -> Decimal:
        return sum(self.special_deductions.values(), Decimal(0))

    def bracket_for(self, taxable_income: Decimal) -> TaxBracket:
        """Return the last bracket whose threshold is ``<= taxable_income``."""

        thresholds = [bracket.threshold for bracket in self.brackets]
        index = bisect_right(thresholds, max(taxable_income, Decimal(0))) - 1
        return self.brackets[max(index, 0)]

    def monthly_bracket_for(self, average_monthly_amount: Decimal) -> TaxBracket:
        """Return the bracket of the table converted to monthly amounts."""

        thresholds = [bracket.threshold / _MONTHS_PER_YEAR for bracket in self.brackets]
        index = bisect_right(thresholds, max(average_monthly_amount, Decimal(0))) - 1
        return self.brackets[max(index, 0)]

    def parameters(self) -> dict[str, Any]:
        """Return the canonical, JSON-ready parameters used for the signature."""

        housing_fund = None
        if self.housing_fund is not None:
            housing_fund = {
                "rate": _canonical(self.housing_fund.rate),
                "base_min": _canonical(self.housing_fund.base_min),
                "base_max": _canonical(self.housing_fund.base_max),
            }
        social = self.social_insurance
        return {
            "monthly_basic_deduction": _canonical(self.monthly_basic_deduction),
            "brackets": [
                [
                    _canonical(bracket.threshold),
                    _canonical(bracket.rate),
                    _canonical(bracket.quick_deduction),
                ]
                for bracket in self.brackets
            ],
            "social_insurance": {
                "base_min": _canonical(social.base_min),
                "base_max": _canonical(social.base_max),
                "pension_rate": _canonical(social.pension_rate),
                "medical_rate": _canonical(social.medical_rate),
                "unemployment_rate": _canonical(social.unemployment_rate),
            },
            "housing_fund": housing_fund,
            "special_deductions": {
                name: _canonical(amount)
                for name, amount in sorted(self.special_deductions.items())
            },
        }

    @cached_property
    def signature(self) -> str:
        """Structural hash of the policy parameters (region and window excluded)."""

        canonical = json.dumps(self.parameters(), sort_keys=True, separators=(",", ":"))
        return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


class RegionManifestEntry(ImmutableModel):
    """Manifest entry listing the policy files published for a region."""

    id: str
    label_key: str | None = None
    policies: tuple[str, ...]

    @field_validator("policies", mode="before")
    @classmethod
    def _coerce_policies(cls, value: Any) -> tuple[str, ...]:
        if isinstance(value, Iterable) and not isinstance(value, (str, Mapping)):
            return tuple(str(entry) for entry in value)
        raise ConfigurationError("Region 'policies' must be a list of filenames")

    @model_validator(mode="after")
    def _validate_entry(self) -> Self:
        if not self.policies:
            raise ConfigurationError(f"Region '{self.id}' must declare at least one policy")
        return self


class PolicyManifest(ImmutableModel):
    """Manifest describing the available regions and their policy files."""

    regions: tuple[RegionManifestEntry, ...]

    @model_validator(mode="after")
    def _validate_regions(self) -> PolicyManifest:
        seen: set[str] = set()
        for entry in self.regions:
            if entry.id in seen:
                raise ConfigurationError(
                    f"Duplicate region '{entry.id}' declared in the policy manifest"
                )
            seen.add(entry.id)
        return self

    def get_entry(self, region: str) -> RegionManifestEntry:
        for entry in self.regions:
            if entry.id == region:
                return entry
        raise KeyError(region)

    @property
    def region_ids(self) -> tuple[str, ...]:
        return tuple(sorted(entry.id for entry in self.regions))


__all__ = [
    "ConfigurationError",
    "HousingFundConfig",
    "ImmutableModel",
    "InvalidBracketTable",
    "PolicyConfig",
    "PolicyManifest",
    "RegionManifestEntry",
    "SocialInsuranceConfig",
    "TaxBracket",
    "ValidationError",
    "to_decimal",
    "validate_bracket_table",
]
