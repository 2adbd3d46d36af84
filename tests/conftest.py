"""Test configuration utilities and shared fixtures."""

import sys
from datetime import date
from pathlib import Path
from typing import Any, Callable

# Ensure the ``src`` directory is importable when tests are executed without an
# editable install.
ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

import pytest  # noqa: E402
from flask import Flask  # noqa: E402
from flask.testing import FlaskClient  # noqa: E402

from fintrack.backend.app import create_app  # noqa: E402
from fintrack.backend.config.repository import InMemoryPolicyRepository  # noqa: E402
from fintrack.backend.config.schema import PolicyConfig  # noqa: E402

STANDARD_BRACKETS: list[dict[str, Any]] = [
    {"threshold": 0, "rate": "0.03", "quick_deduction": 0},
    {"threshold": 36000, "rate": "0.10", "quick_deduction": 2520},
    {"threshold": 144000, "rate": "0.20", "quick_deduction": 16920},
    {"threshold": 300000, "rate": "0.25", "quick_deduction": 31920},
    {"threshold": 420000, "rate": "0.30", "quick_deduction": 52920},
    {"threshold": 660000, "rate": "0.35", "quick_deduction": 85920},
    {"threshold": 960000, "rate": "0.45", "quick_deduction": 181920},
]

PolicyFactory = Callable[..., PolicyConfig]


def build_policy(**overrides: Any) -> PolicyConfig:
    """Return a policy for the fictional ``testville`` region."""

    data: dict[str, Any] = {
        "region": "testville",
        "effective_from": date(2024, 1, 1),
        "effective_to": None,
        "monthly_basic_deduction": 5000,
        "brackets": STANDARD_BRACKETS,
        "social_insurance": {
            "base_min": 5000,
            "base_max": 30000,
            "pension_rate": "0.08",
            "medical_rate": "0.02",
            "unemployment_rate": "0.005",
        },
        "housing_fund": {"rate": "0.12", "base_min": 2000, "base_max": 35000},
    }
    data.update(overrides)
    return PolicyConfig.from_mapping(data)


@pytest.fixture()
def policy_factory() -> PolicyFactory:
    """Expose :func:`build_policy` to tests that need bespoke policies."""

    return build_policy


@pytest.fixture()
def single_bracket_policy() -> PolicyConfig:
    """A flat 3% table with pension-only social insurance and no housing fund."""

    return build_policy(
        brackets=[{"threshold": 0, "rate": "0.03", "quick_deduction": 0}],
        social_insurance={"base_min": 5000, "base_max": 30000, "pension_rate": "0.08"},
        housing_fund=None,
    )


@pytest.fixture()
def standard_policy() -> PolicyConfig:
    return build_policy()


@pytest.fixture()
def memory_repository() -> InMemoryPolicyRepository:
    """Two consecutive ``testville`` policies that differ in their SI ceiling."""

    return InMemoryPolicyRepository(
        [
            build_policy(effective_to=date(2024, 6, 30)),
            build_policy(
                effective_from=date(2024, 7, 1),
                social_insurance={
                    "base_min": 5000,
                    "base_max": 32000,
                    "pension_rate": "0.08",
                    "medical_rate": "0.02",
                    "unemployment_rate": "0.005",
                },
            ),
        ]
    )


@pytest.fixture()
def app() -> Flask:
    """Return a configured Flask application backed by the shipped policies."""

    application = create_app()
    application.config.update(TESTING=True)
    return application


@pytest.fixture()
def client(app: Flask) -> FlaskClient:
    """Provide a test client bound to the configured Flask app."""

    return app.test_client()


@pytest.fixture()
def memory_client(memory_repository: InMemoryPolicyRepository) -> FlaskClient:
    """Provide a test client whose app resolves policies from memory."""

    application = create_app(memory_repository)
    application.config.update(TESTING=True)
    return application.test_client()
