"""Deterministic BMR/TDEE and daily target calculations."""

import math
from dataclasses import dataclass
from datetime import UTC, date, datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal

from plan_engine.domain.errors import ValidationError
from plan_engine.domain.metrics import (
    ActivityLevel,
    ComputedTargets,
    Goal,
    Sex,
    UserBiometrics,
)

ACTIVITY_MULTIPLIERS = {
    ActivityLevel.SEDENTARY: 1.2,
    ActivityLevel.LIGHT: 1.375,
    ActivityLevel.MODERATE: 1.55,
    ActivityLevel.ACTIVE: 1.725,
    ActivityLevel.EXTREME: 1.9,
}

# Mifflin-St Jeor offsets; "other" is the mean of male and female.
SEX_OFFSETS = {
    Sex.MALE: 5.0,
    Sex.FEMALE: -161.0,
    Sex.OTHER: -78.0,
}

CALORIE_ADJUSTMENTS = {
    Goal.LOSE: -500,
    Goal.GAIN: 400,
    Goal.MAINTAIN: 0,
    Goal.IMPROVE_HEALTH: 0,
}

PROTEIN_G_PER_KG = {
    Goal.LOSE: 2.2,
    Goal.GAIN: 2.2,
    Goal.MAINTAIN: 1.6,
    Goal.IMPROVE_HEALTH: 1.6,
}

WEEKLY_RATES_KG = {
    Goal.LOSE: -0.5,
    Goal.GAIN: 0.4,
    Goal.MAINTAIN: 0.0,
    Goal.IMPROVE_HEALTH: 0.0,
}

WATER_ML_PER_KG = 35
CALORIE_FLOOR = 1200

WEIGHT_RANGE_KG = (30.0, 272.0)
HEIGHT_RANGE_CM = (100.0, 244.0)
AGE_RANGE = (13, 120)


@dataclass(frozen=True)
class MetricsCalculator:
    """Pure calculator turning biometrics into daily targets.

    Identical input (including ``as_of``) always yields identical output, which
    the plan cache relies on.
    """

    calorie_floor: int = CALORIE_FLOOR

    def compute(
        self, biometrics: UserBiometrics, as_of: date | None = None
    ) -> ComputedTargets:
        """Compute all targets for validated biometrics."""
        _validate(biometrics)
        today = as_of or datetime.now(tz=UTC).date()

        bmr = self.bmr(biometrics)
        tdee = round_half_up(bmr * ACTIVITY_MULTIPLIERS[biometrics.activity_level])
        calorie_target = tdee + CALORIE_ADJUSTMENTS[biometrics.goal]
        floor_applied = calorie_target < self.calorie_floor
        if floor_applied:
            calorie_target = self.calorie_floor

        protein_target = round_half_up(
            biometrics.weight_kg * PROTEIN_G_PER_KG[biometrics.goal]
        )
        water_target = round_half_up(biometrics.weight_kg * WATER_ML_PER_KG)
        weekly_rate = self.weekly_rate(biometrics)
        estimated_weeks = _estimated_weeks(biometrics, weekly_rate)
        projected_date = (
            today + timedelta(weeks=estimated_weeks)
            if estimated_weeks is not None
            else None
        )

        return ComputedTargets(
            bmr=bmr,
            tdee=tdee,
            calorie_target=calorie_target,
            protein_target=protein_target,
            water_target=water_target,
            weekly_rate=weekly_rate,
            estimated_weeks=estimated_weeks,
            projected_date=projected_date,
            calorie_floor_applied=floor_applied,
        )

    def bmr(self, biometrics: UserBiometrics) -> int:
        """Basal metabolic rate via Mifflin-St Jeor, in kcal/day."""
        raw = (
            10 * biometrics.weight_kg
            + 6.25 * biometrics.height_cm
            - 5 * biometrics.age
            + SEX_OFFSETS[biometrics.sex]
        )
        return round_half_up(raw)

    def weekly_rate(self, biometrics: UserBiometrics) -> float:
        """Planned weekly weight change in kg, capped by any safe bound."""
        rate = WEEKLY_RATES_KG[biometrics.goal]
        limit = biometrics.weekly_rate_limit_kg
        if limit is not None and abs(rate) > limit:
            rate = math.copysign(limit, rate)
        return round_half_up(rate, places=1)


def round_half_up(value: float, places: int = 0) -> int | float:
    """Round half away from zero, independent of float tie behaviour."""
    quantum = Decimal(1).scaleb(-places)
    rounded = Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP)
    if places == 0:
        return int(rounded)
    return float(rounded)


def _estimated_weeks(biometrics: UserBiometrics, weekly_rate: float) -> int | None:
    target = biometrics.target_weight_kg
    if target is None or weekly_rate == 0 or target == biometrics.weight_kg:
        return None
    difference = Decimal(str(target)) - Decimal(str(biometrics.weight_kg))
    weeks = abs(difference) / abs(Decimal(str(weekly_rate)))
    return math.ceil(weeks)


def _validate(biometrics: UserBiometrics) -> None:
    _check_range("weight_kg", biometrics.weight_kg, WEIGHT_RANGE_KG)
    _check_range("height_cm", biometrics.height_cm, HEIGHT_RANGE_CM)
    if isinstance(biometrics.age, bool) or not isinstance(biometrics.age, int):
        raise ValidationError(f"age must be an integer, got {biometrics.age!r}")
    _check_range("age", biometrics.age, AGE_RANGE)
    if biometrics.target_weight_kg is not None:
        _check_range("target_weight_kg", biometrics.target_weight_kg, WEIGHT_RANGE_KG)
    limit = biometrics.weekly_rate_limit_kg
    if limit is not None and (not math.isfinite(limit) or limit < 0):
        raise ValidationError(f"weekly_rate_limit_kg must be >= 0, got {limit!r}")
    try:
        Sex(biometrics.sex)
        ActivityLevel(biometrics.activity_level)
        Goal(biometrics.goal)
    except ValueError as exc:
        raise ValidationError(str(exc)) from exc


def _check_range(name: str, value: float, bounds: tuple[float, float]) -> None:
    low, high = bounds
    if isinstance(value, bool) or not isinstance(value, int | float):
        raise ValidationError(f"{name} must be numeric, got {value!r}")
    if not math.isfinite(value) or not low <= value <= high:
        raise ValidationError(f"{name} must be within [{low}, {high}], got {value}")
