"""Domain models for queued offline mutations."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from uuid import UUID

from plan_engine.domain.errors import QueueExhaustedError, ValidationError
from plan_engine.domain.metrics import ActivityLevel, Goal

WEIGHT_RANGE_KG = (30.0, 272.0)


class OperationType(str, Enum):
    """Mutations that can be queued while offline."""

    UPDATE_WEIGHT = "update_weight"
    UPDATE_TARGET_WEIGHT = "update_target_weight"
    UPDATE_ACTIVITY_LEVEL = "update_activity_level"
    UPDATE_GOAL = "update_goal"


class OperationStatus(str, Enum):
    """Lifecycle state of a queued mutation."""

    PENDING = "pending"
    INFLIGHT = "inflight"
    FAILED = "failed"


@dataclass(frozen=True)
class PendingOperation:
    """A mutation waiting to be replayed."""

    id: UUID
    user_id: UUID
    type: OperationType
    payload: dict[str, object]
    enqueued_at: datetime
    sequence: int = 0
    retry_count: int = 0
    status: OperationStatus = OperationStatus.PENDING
    next_attempt_at: datetime | None = None
    last_error: str | None = None


@dataclass
class ProcessResult:
    """Outcome of one pass over the offline queue."""

    applied: list[PendingOperation] = field(default_factory=list)
    retried: list[PendingOperation] = field(default_factory=list)
    exhausted: list[QueueExhaustedError] = field(default_factory=list)
    blocked_users: set[UUID] = field(default_factory=set)

    @property
    def has_failures(self) -> bool:
        """True when any operation reached the terminal failed state."""
        return bool(self.exhausted)


def validate_payload(op_type: OperationType, payload: dict[str, object]) -> None:
    """Check that a mutation payload matches its operation type."""
    if op_type in {OperationType.UPDATE_WEIGHT, OperationType.UPDATE_TARGET_WEIGHT}:
        value = payload.get("weight_kg")
        if isinstance(value, bool) or not isinstance(value, int | float):
            raise ValidationError(f"{op_type.value} requires numeric weight_kg")
        low, high = WEIGHT_RANGE_KG
        if not low <= float(value) <= high:
            raise ValidationError(f"weight_kg must be within [{low}, {high}]")
        return
    if op_type is OperationType.UPDATE_ACTIVITY_LEVEL:
        _require_enum(ActivityLevel, payload.get("activity_level"), "activity_level")
        return
    _require_enum(Goal, payload.get("goal"), "goal")


def _require_enum(enum_type: type[Enum], value: object, name: str) -> None:
    try:
        enum_type(value)
    except ValueError as exc:
        raise ValidationError(f"Invalid {name}: {value!r}") from exc
