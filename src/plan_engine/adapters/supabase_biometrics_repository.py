"""Supabase-backed biometrics store over the user_settings table."""

from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, date, datetime
from uuid import UUID

import httpx
from postgrest.exceptions import APIError
from supabase import Client

from plan_engine.adapters.supabase_errors import translate_error
from plan_engine.domain.errors import UserNotFoundError, ValidationError
from plan_engine.domain.metrics import (
    ActivityLevel,
    Goal,
    Sex,
    UserBiometrics,
    age_on,
)
from plan_engine.domain.operations import OperationType, PendingOperation
from plan_engine.services.recompute import BiometricsStore

_COLUMNS = (
    "current_weight, height, date_of_birth, gender, activity_level, "
    "primary_goal, target_weight, weekly_rate_limit"
)

_MUTATION_COLUMNS = {
    OperationType.UPDATE_WEIGHT: ("current_weight", "weight_kg"),
    OperationType.UPDATE_TARGET_WEIGHT: ("target_weight", "weight_kg"),
    OperationType.UPDATE_ACTIVITY_LEVEL: ("activity_level", "activity_level"),
    OperationType.UPDATE_GOAL: ("primary_goal", "goal"),
}


def _today() -> date:
    return datetime.now(tz=UTC).date()


@dataclass
class SupabaseBiometricsRepository(BiometricsStore):
    """Supabase implementation of the external profile store."""

    client: Client
    today: Callable[[], date] = _today

    def read_biometrics(self, user_id: UUID) -> UserBiometrics:
        """Return the user's biometrics with age derived from date of birth."""
        try:
            response = (
                self.client.table("user_settings")
                .select(_COLUMNS)
                .eq("user_id", str(user_id))
                .limit(1)
                .execute()
            )
        except (httpx.HTTPError, APIError) as exc:
            raise translate_error(exc, "read biometrics") from exc
        if not response.data:
            raise UserNotFoundError(f"No settings for user {user_id}")
        return _to_biometrics(response.data[0], self.today())

    def apply_mutation(self, operation: PendingOperation) -> None:
        """Write the mutation's value into user_settings.

        Raises UserNotFoundError when no settings row matched the user.
        """
        column, key = _MUTATION_COLUMNS[operation.type]
        try:
            response = (
                self.client.table("user_settings")
                .update(
                    {
                        column: operation.payload[key],
                        "updated_at": datetime.now(tz=UTC).isoformat(),
                    }
                )
                .eq("user_id", str(operation.user_id))
                .execute()
            )
        except (httpx.HTTPError, APIError) as exc:
            raise translate_error(exc, f"apply {operation.type.value}") from exc
        if not response.data:
            raise UserNotFoundError(f"No settings for user {operation.user_id}")


def _to_biometrics(row: dict[str, object], today: date) -> UserBiometrics:
    try:
        date_of_birth = date.fromisoformat(str(row["date_of_birth"]))
        target = row.get("target_weight")
        rate_limit = row.get("weekly_rate_limit")
        return UserBiometrics(
            weight_kg=float(row["current_weight"]),
            height_cm=float(row["height"]),
            age=age_on(date_of_birth, today),
            sex=Sex(row["gender"]),
            activity_level=ActivityLevel(row["activity_level"]),
            goal=Goal(row["primary_goal"]),
            target_weight_kg=float(target) if target is not None else None,
            weekly_rate_limit_kg=float(rate_limit) if rate_limit is not None else None,
        )
    except (KeyError, TypeError, ValueError) as exc:
        raise ValidationError(f"Incomplete biometrics: {exc}") from exc
