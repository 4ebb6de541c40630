"""Error types raised by the plan engine."""

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from plan_engine.domain.operations import PendingOperation


class PlanEngineError(Exception):
    """Base class for plan engine errors."""


class ValidationError(PlanEngineError):
    """Biometrics or a mutation payload are out of range or malformed.

    Never retried: reaching the engine with invalid input is an upstream bug.
    """


class NetworkError(PlanEngineError):
    """A remote compute/persist/mutation call failed transiently."""


class UserNotFoundError(PlanEngineError):
    """No profile exists for the requested user."""


class CacheCorruptionError(PlanEngineError):
    """A persisted plan record could not be deserialized."""


class RecomputeTimeoutError(PlanEngineError, TimeoutError):
    """A caller stopped waiting for an in-flight recompute."""


_USER_MESSAGES = {
    "update_weight": "Couldn't sync your weight update.",
    "update_target_weight": "Couldn't sync your target weight.",
    "update_activity_level": "Couldn't sync your activity level.",
    "update_goal": "Couldn't sync your goal change.",
}


class QueueExhaustedError(PlanEngineError):
    """A queued mutation failed after exhausting its retries."""

    def __init__(self, operation: "PendingOperation") -> None:
        self.operation = operation
        super().__init__(
            f"Operation {operation.id} ({operation.type.value}) failed after "
            f"{operation.retry_count} attempts: {operation.last_error}"
        )

    @property
    def user_message(self) -> str:
        """Actionable message for the user, paired with a manual retry."""
        base = _USER_MESSAGES.get(
            self.operation.type.value, "Couldn't sync your changes."
        )
        return f"{base} Tap to retry."
