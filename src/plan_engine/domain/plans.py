"""Domain models for cached plan records."""

from dataclasses import dataclass
from datetime import date, datetime
from uuid import UUID

from plan_engine.domain.errors import CacheCorruptionError
from plan_engine.domain.metrics import ComputedTargets

CALORIE_CHANGE_THRESHOLD = 50
PROTEIN_CHANGE_THRESHOLD = 10


@dataclass(frozen=True)
class PlanRecord:
    """A computed set of targets for a user at a given version."""

    id: UUID
    user_id: UUID
    targets: ComputedTargets
    computed_at: datetime
    version: int
    previous_targets: ComputedTargets | None = None

    @property
    def calorie_delta(self) -> int:
        """Calorie target change against the superseded targets."""
        if self.previous_targets is None:
            return 0
        return self.targets.calorie_target - self.previous_targets.calorie_target

    @property
    def protein_delta(self) -> int:
        """Protein target change against the superseded targets."""
        if self.previous_targets is None:
            return 0
        return self.targets.protein_target - self.previous_targets.protein_target

    def has_significant_changes(self) -> bool:
        """Return True when the change is worth surfacing to the user."""
        return (
            abs(self.calorie_delta) > CALORIE_CHANGE_THRESHOLD
            or abs(self.protein_delta) > PROTEIN_CHANGE_THRESHOLD
        )


@dataclass(frozen=True)
class CacheEntry:
    """Storage wrapper for a cached plan record."""

    record: PlanRecord
    stored_at: datetime
    ttl_seconds: int

    def is_stale(self, now: datetime) -> bool:
        """Staleness follows computation time, not storage time."""
        age = (now - self.record.computed_at).total_seconds()
        return age > self.ttl_seconds


def targets_to_dict(targets: ComputedTargets) -> dict[str, object]:
    """Serialize targets into a JSON-compatible dict."""
    return {
        "bmr": targets.bmr,
        "tdee": targets.tdee,
        "calorie_target": targets.calorie_target,
        "protein_target": targets.protein_target,
        "water_target": targets.water_target,
        "weekly_rate": targets.weekly_rate,
        "estimated_weeks": targets.estimated_weeks,
        "projected_date": (
            targets.projected_date.isoformat() if targets.projected_date else None
        ),
        "calorie_floor_applied": targets.calorie_floor_applied,
    }


def targets_from_dict(data: dict[str, object]) -> ComputedTargets:
    """Build targets from a dict produced by ``targets_to_dict``."""
    projected = data.get("projected_date")
    estimated = data.get("estimated_weeks")
    return ComputedTargets(
        bmr=int(data["bmr"]),
        tdee=int(data["tdee"]),
        calorie_target=int(data["calorie_target"]),
        protein_target=int(data["protein_target"]),
        water_target=int(data["water_target"]),
        weekly_rate=float(data["weekly_rate"]),
        estimated_weeks=int(estimated) if estimated is not None else None,
        projected_date=date.fromisoformat(str(projected)) if projected else None,
        calorie_floor_applied=bool(data.get("calorie_floor_applied", False)),
    )


def plan_record_to_dict(record: PlanRecord) -> dict[str, object]:
    """Serialize a plan record for the persistent cache tier."""
    return {
        "id": str(record.id),
        "user_id": str(record.user_id),
        "targets": targets_to_dict(record.targets),
        "computed_at": record.computed_at.isoformat(),
        "version": record.version,
        "previous_targets": (
            targets_to_dict(record.previous_targets)
            if record.previous_targets
            else None
        ),
    }


def plan_record_from_dict(data: dict[str, object]) -> PlanRecord:
    """Deserialize a plan record, raising CacheCorruptionError on bad data."""
    try:
        previous = data.get("previous_targets")
        return PlanRecord(
            id=UUID(str(data["id"])),
            user_id=UUID(str(data["user_id"])),
            targets=targets_from_dict(data["targets"]),  # type: ignore[arg-type]
            computed_at=datetime.fromisoformat(str(data["computed_at"])),
            version=int(data["version"]),
            previous_targets=(
                targets_from_dict(previous)  # type: ignore[arg-type]
                if previous
                else None
            ),
        )
    except (KeyError, TypeError, ValueError, AttributeError) as exc:
        raise CacheCorruptionError(f"Malformed plan record: {exc}") from exc
