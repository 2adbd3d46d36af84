from datetime import date

from fintrack.backend.config.policy_config import load_region_policies
from fintrack.backend.config.schema import TaxBracket
from fintrack.backend.config.validator import (
    main,
    validate_all_regions,
    validate_policy_configuration,
    validate_policy_timeline,
)


def test_current_policies_are_valid() -> None:
    results = validate_all_regions()
    assert set(results) == {"hangzhou", "shanghai"}
    assert all(not issues for issues in results.values()), results


def test_validator_flags_discontinuous_quick_deduction() -> None:
    config = load_region_policies("hangzhou")[0]
    brackets = list(config.brackets)
    brackets[1] = TaxBracket(threshold=36000, rate="0.10", quick_deduction=2000)
    broken = config.model_copy(update={"brackets": tuple(brackets)})

    errors = validate_policy_configuration(broken)

    assert any("brackets" in error and "discontinuous" in error for error in errors)


def test_validator_flags_combined_social_insurance_rate() -> None:
    config = load_region_policies("hangzhou")[0]
    social = config.social_insurance.model_copy(
        update={"pension_rate": config.social_insurance.pension_rate + 1}
    )
    broken = config.model_copy(update={"social_insurance": social})

    errors = validate_policy_configuration(broken)

    assert any("social_insurance" in error and "exceeds 1" in error for error in errors)


def test_validator_flags_gaps_between_policies() -> None:
    first, second, _ = load_region_policies("hangzhou")
    shifted = second.model_copy(update={"effective_from": date(2024, 8, 1)})

    errors = validate_policy_timeline([first, shifted])

    assert errors == ["hangzhou: no policy covers 2024-07-01 to 2024-07-31"]


def test_validator_flags_overlapping_policies() -> None:
    first, second, _ = load_region_policies("hangzhou")
    overlapping = second.model_copy(update={"effective_from": date(2024, 6, 1)})

    errors = validate_policy_timeline([first, overlapping])

    assert len(errors) == 1
    assert "overlaps" in errors[0]


def test_cli_reports_each_region(capsys) -> None:
    assert main(["shanghai"]) == 0

    captured = capsys.readouterr()
    assert "[shanghai] OK" in captured.out


def test_cli_flags_unknown_region(capsys) -> None:
    assert main(["atlantis"]) == 1

    captured = capsys.readouterr()
    assert "[atlantis] 1 issue(s) detected:" in captured.out
