"""Tests for the metrics calculator."""

from datetime import date

import pytest

from plan_engine.domain.errors import ValidationError
from plan_engine.domain.metrics import ActivityLevel, Goal, Sex
from plan_engine.services.calculator import MetricsCalculator, round_half_up
from tests.conftest import make_biometrics

AS_OF = date(2025, 3, 3)


def test_compute_moderately_active_male_losing_weight() -> None:
    targets = MetricsCalculator().compute(make_biometrics(), as_of=AS_OF)

    assert targets.bmr == 1780
    assert targets.tdee == 2759
    assert targets.calorie_target == 2259
    assert targets.protein_target == 176
    assert targets.water_target == 2800
    assert targets.weekly_rate == -0.5
    assert targets.estimated_weeks == 20
    assert targets.projected_date == date(2025, 7, 21)
    assert targets.calorie_floor_applied is False


def test_compute_is_deterministic() -> None:
    calculator = MetricsCalculator()
    biometrics = make_biometrics(weight_kg=91.3, height_cm=172.4, age=47)

    assert calculator.compute(biometrics, as_of=AS_OF) == calculator.compute(
        biometrics, as_of=AS_OF
    )


def test_bmr_increases_with_weight() -> None:
    calculator = MetricsCalculator()
    bmrs = [
        calculator.bmr(make_biometrics(weight_kg=float(weight)))
        for weight in range(40, 200, 5)
    ]

    assert bmrs == sorted(bmrs)
    assert len(set(bmrs)) == len(bmrs)


def test_bmr_rounds_half_up() -> None:
    # 450 + 937.5 - 300 - 161 = 926.5
    biometrics = make_biometrics(
        weight_kg=45.0, height_cm=150.0, age=60, sex=Sex.FEMALE
    )

    assert MetricsCalculator().bmr(biometrics) == 927


def test_calorie_floor_is_applied_and_flagged() -> None:
    biometrics = make_biometrics(
        weight_kg=45.0,
        height_cm=150.0,
        age=60,
        sex=Sex.FEMALE,
        activity_level=ActivityLevel.SEDENTARY,
        target_weight_kg=42.0,
    )

    targets = MetricsCalculator().compute(biometrics, as_of=AS_OF)

    assert targets.tdee == 1112
    assert targets.calorie_target == 1200
    assert targets.calorie_floor_applied is True


def test_other_sex_uses_mean_offset() -> None:
    biometrics = make_biometrics(sex=Sex.OTHER)

    assert MetricsCalculator().bmr(biometrics) == 1697


def test_maintain_goal_has_no_projection() -> None:
    biometrics = make_biometrics(goal=Goal.MAINTAIN)

    targets = MetricsCalculator().compute(biometrics, as_of=AS_OF)

    assert targets.calorie_target == targets.tdee
    assert targets.protein_target == 128
    assert targets.weekly_rate == 0.0
    assert targets.estimated_weeks is None
    assert targets.projected_date is None


def test_improve_health_behaves_like_maintain() -> None:
    calculator = MetricsCalculator()
    maintain = calculator.compute(make_biometrics(goal=Goal.MAINTAIN), as_of=AS_OF)
    improve = calculator.compute(
        make_biometrics(goal=Goal.IMPROVE_HEALTH), as_of=AS_OF
    )

    assert improve == maintain


def test_gain_goal_adds_surplus_and_projects_timeline() -> None:
    biometrics = make_biometrics(goal=Goal.GAIN, target_weight_kg=84.0)

    targets = MetricsCalculator().compute(biometrics, as_of=AS_OF)

    assert targets.calorie_target == targets.tdee + 400
    assert targets.weekly_rate == 0.4
    assert targets.estimated_weeks == 10
    assert targets.projected_date == date(2025, 5, 12)


def test_no_target_weight_means_no_timeline() -> None:
    biometrics = make_biometrics(target_weight_kg=None)

    targets = MetricsCalculator().compute(biometrics, as_of=AS_OF)

    assert targets.weekly_rate == -0.5
    assert targets.estimated_weeks is None
    assert targets.projected_date is None


def test_weekly_rate_limit_caps_rate() -> None:
    biometrics = make_biometrics(weekly_rate_limit_kg=0.3)

    targets = MetricsCalculator().compute(biometrics, as_of=AS_OF)

    assert targets.weekly_rate == -0.3
    assert targets.estimated_weeks == 34


@pytest.mark.parametrize(
    "overrides",
    [
        {"weight_kg": 20.0},
        {"weight_kg": float("nan")},
        {"height_cm": 300.0},
        {"age": 12},
        {"age": 30.5},
        {"target_weight_kg": 500.0},
        {"weekly_rate_limit_kg": -1.0},
        {"goal": "bulk"},
    ],
)
def test_invalid_biometrics_raise_validation_error(
    overrides: dict[str, object],
) -> None:
    with pytest.raises(ValidationError):
        MetricsCalculator().compute(make_biometrics(**overrides), as_of=AS_OF)


def test_round_half_up() -> None:
    assert round_half_up(2.5) == 3
    assert round_half_up(3.5) == 4
    assert round_half_up(-0.25, places=1) == -0.3
    assert round_half_up(0.449, places=1) == 0.4
