"""Exception taxonomy shared by the calculators, configuration layer and routes."""

from __future__ import annotations


class FinTrackError(Exception):
    """Base class for domain errors raised by the FinTrack engines."""


class ConfigurationError(FinTrackError, ValueError):
    """Raised when policy configuration values violate schema expectations."""


class InvalidBracketTable(ConfigurationError):
    """Raised when a tax bracket table is empty, unordered or misses zero."""


class ConfigNotFound(FinTrackError, LookupError):
    """Raised when no policy record is effective for a region and date."""

    def __init__(self, region: str, on: object) -> None:
        super().__init__(f"No policy configured for region '{region}' on {on}")
        self.region = region
        self.on = on


class InvalidInput(FinTrackError, ValueError):
    """Raised when caller supplied amounts or periods are unusable."""


class NoConvergence(FinTrackError, ArithmeticError):
    """Raised when the XIRR root finder cannot locate a rate."""


__all__ = [
    "ConfigNotFound",
    "ConfigurationError",
    "FinTrackError",
    "InvalidBracketTable",
    "InvalidInput",
    "NoConvergence",
]
