"""Domain models for biometrics and computed targets."""

from dataclasses import dataclass
from datetime import date
from enum import Enum


class Sex(str, Enum):
    """Biological sex used by the Mifflin-St Jeor offset."""

    MALE = "male"
    FEMALE = "female"
    OTHER = "other"


class ActivityLevel(str, Enum):
    """Self-reported activity level."""

    SEDENTARY = "sedentary"
    LIGHT = "light"
    MODERATE = "moderate"
    ACTIVE = "active"
    EXTREME = "extreme"


class Goal(str, Enum):
    """Primary body-composition goal."""

    LOSE = "lose"
    GAIN = "gain"
    MAINTAIN = "maintain"
    IMPROVE_HEALTH = "improve_health"


@dataclass(frozen=True)
class UserBiometrics:
    """Inputs to the targets computation."""

    weight_kg: float
    height_cm: float
    age: int
    sex: Sex
    activity_level: ActivityLevel
    goal: Goal
    target_weight_kg: float | None = None
    weekly_rate_limit_kg: float | None = None


@dataclass(frozen=True)
class ComputedTargets:
    """Daily targets derived from a user's biometrics."""

    bmr: int
    tdee: int
    calorie_target: int
    protein_target: int
    water_target: int
    weekly_rate: float
    estimated_weeks: int | None
    projected_date: date | None
    calorie_floor_applied: bool = False


def age_on(date_of_birth: date, today: date) -> int:
    """Return full years elapsed between a birth date and ``today``."""
    age = today.year - date_of_birth.year
    if (today.month, today.day) < (date_of_birth.month, date_of_birth.day):
        age -= 1
    return age
