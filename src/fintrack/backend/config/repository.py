"""Read-only policy repositories keyed by ``(region, date)``.

Calculators never fetch configuration themselves: the forecast engine and the
HTTP layer receive a :class:`PolicyRepository` and resolve the policy that is
effective for each month. ``records`` is the only hook an adapter has to
implement; resolution, batch resolution and the bracket / social-insurance
lookups are derived from it so every backend shares the same selection rule.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from bisect import bisect_right
from collections import defaultdict
from collections.abc import Iterable, Sequence
from datetime import date

from fintrack.backend.errors import ConfigNotFound, ConfigurationError

from . import policy_config
from .schema import PolicyConfig, SocialInsuranceConfig, TaxBracket

_LOGGER = logging.getLogger(__name__)


def select_policy(
    records: Sequence[PolicyConfig], region: str, on: date
) -> PolicyConfig:
    """Pick the record with the latest ``effective_from <= on`` that covers ``on``.

    ``records`` must be sorted by ``effective_from``.
    """

    starts = [record.effective_from for record in records]
    index = bisect_right(starts, on) - 1
    if index < 0:
        raise ConfigNotFound(region, on)
    candidate = records[index]
    if not candidate.covers(on):
        raise ConfigNotFound(region, on)
    return candidate


def ensure_no_overlap(records: Sequence[PolicyConfig]) -> None:
    """Raise when two sorted records of one region share any effective date."""

    for previous, current in zip(records, records[1:]):
        if previous.effective_from == current.effective_from:
            raise ConfigurationError(
                f"Region '{current.region}' declares two policies effective from "
                f"{current.effective_from}"
            )
        if previous.effective_to is None or previous.effective_to >= current.effective_from:
            raise ConfigurationError(
                f"Region '{current.region}' policy effective from "
                f"{previous.effective_from} overlaps the one effective from "
                f"{current.effective_from}"
            )


class PolicyRepository(ABC):
    """Abstract source of time-versioned policies."""

    @abstractmethod
    def records(self, region: str) -> Sequence[PolicyConfig]:
        """Return every policy of ``region`` sorted by ``effective_from``."""

    @abstractmethod
    def regions(self) -> Sequence[str]:
        """Return the regions known to the repository."""

    def resolve(self, region: str, on: date) -> PolicyConfig:
        """Return the policy effective for ``region`` on ``on``."""

        policy = select_policy(self.records(region), region, on)
        _LOGGER.debug(
            "Resolved %s on %s to policy effective from %s",
            region,
            on,
            policy.effective_from,
        )
        return policy

    def resolve_many(
        self, region: str, dates: Iterable[date]
    ) -> dict[date, PolicyConfig | ConfigNotFound]:
        """Resolve several dates with a single ``records`` fetch.

        Missing policies are returned as :class:`ConfigNotFound` instances so the
        caller can decide per date whether the gap is fatal.
        """

        records = self.records(region)
        resolved: dict[date, PolicyConfig | ConfigNotFound] = {}
        for on in dates:
            try:
                resolved[on] = select_policy(records, region, on)
            except ConfigNotFound as exc:
                resolved[on] = exc
        return resolved

    def get_brackets(self, region: str, on: date) -> tuple[TaxBracket, ...]:
        try:
            return self.resolve(region, on).brackets
        except ConfigNotFound:
            return ()

    def get_social_insurance_config(
        self, region: str, on: date
    ) -> SocialInsuranceConfig | None:
        try:
            return self.resolve(region, on).social_insurance
        except ConfigNotFound:
            return None


class InMemoryPolicyRepository(PolicyRepository):
    """Repository over an explicit list of policies, validated on construction."""

    def __init__(self, policies: Iterable[PolicyConfig] = ()) -> None:
        grouped: dict[str, list[PolicyConfig]] = defaultdict(list)
        for policy in policies:
            grouped[policy.region].append(policy)

        self._records: dict[str, tuple[PolicyConfig, ...]] = {}
        for region, items in grouped.items():
            items.sort(key=lambda policy: policy.effective_from)
            ensure_no_overlap(items)
            self._records[region] = tuple(items)

    def records(self, region: str) -> Sequence[PolicyConfig]:
        return self._records.get(region, ())

    def regions(self) -> Sequence[str]:
        return tuple(sorted(self._records))


class YamlPolicyRepository(PolicyRepository):
    """Repository backed by the YAML policy files declared in the manifest."""

    def records(self, region: str) -> Sequence[PolicyConfig]:
        if region not in policy_config.available_regions():
            return ()
        records = policy_config.load_region_policies(region)
        ensure_no_overlap(records)
        return records

    def regions(self) -> Sequence[str]:
        return tuple(policy_config.available_regions())


__all__ = [
    "InMemoryPolicyRepository",
    "PolicyRepository",
    "YamlPolicyRepository",
    "ensure_no_overlap",
    "select_policy",
]
