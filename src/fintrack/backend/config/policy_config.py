"""Policy loader wrapping the shared schema models."""

from __future__ import annotations

import logging
import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Sequence

import yaml
from pydantic import ValidationError

from fintrack.backend.errors import ConfigurationError

from .schema import PolicyConfig, PolicyManifest

DEFAULT_DIRECTORY = Path(__file__).resolve().parent / "data"
CONFIG_DIRECTORY = Path(os.getenv("FINTRACK_POLICY_DIR") or DEFAULT_DIRECTORY)
MANIFEST_FILE = CONFIG_DIRECTORY / "manifest.yaml"

_LOGGER = logging.getLogger(__name__)


def _load_yaml(path: Path) -> dict[str, Any]:
    with path.open("r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle) or {}
    if not isinstance(data, dict):
        raise ConfigurationError("Configuration file must define a mapping at the top level")
    return data


@lru_cache(maxsize=1)
def load_manifest() -> PolicyManifest:
    """Load and cache the policy manifest."""

    if not MANIFEST_FILE.exists():
        raise FileNotFoundError("Policy manifest not found")

    raw_manifest = _load_yaml(MANIFEST_FILE)

    try:
        return PolicyManifest.model_validate(raw_manifest)
    except ValidationError as error:
        raise ConfigurationError(f"Manifest validation failed: {error}") from error


def load_policy_file(path: Path, region: str) -> PolicyConfig:
    """Parse a single policy file, defaulting its region to ``region``."""

    if not path.exists():
        raise FileNotFoundError(f"Policy file for region '{region}' missing: {path.name}")

    raw_config = _load_yaml(path)
    raw_config.setdefault("region", region)

    configuration = PolicyConfig.from_mapping(raw_config)
    if configuration.region != region:
        raise ConfigurationError(
            f"Policy region mismatch in {path.name}: expected {region}, "
            f"found {configuration.region}"
        )
    return configuration


@lru_cache(maxsize=16)
def load_region_policies(region: str) -> tuple[PolicyConfig, ...]:
    """Load every policy declared for ``region``, ordered by ``effective_from``."""

    try:
        entry = load_manifest().get_entry(region)
    except KeyError as exc:
        raise FileNotFoundError(f"Region '{region}' not declared in manifest") from exc

    policies = [
        load_policy_file(CONFIG_DIRECTORY / filename, region) for filename in entry.policies
    ]
    policies.sort(key=lambda policy: policy.effective_from)
    _LOGGER.debug("Loaded %d policy record(s) for region %s", len(policies), region)
    return tuple(policies)


def available_regions() -> Sequence[str]:
    """Return the regions declared in the manifest."""

    return load_manifest().region_ids


__all__ = [
    "CONFIG_DIRECTORY",
    "DEFAULT_DIRECTORY",
    "MANIFEST_FILE",
    "available_regions",
    "load_manifest",
    "load_policy_file",
    "load_region_policies",
]
