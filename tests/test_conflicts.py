"""Tests for version-based conflict resolution."""

from datetime import UTC, datetime
from uuid import UUID, uuid4

from plan_engine.domain.metrics import ComputedTargets
from plan_engine.domain.plans import PlanRecord
from plan_engine.services.conflicts import ConflictResolver


def _record(user_id: UUID, version: int) -> PlanRecord:
    targets = ComputedTargets(
        bmr=1780,
        tdee=2759,
        calorie_target=2259,
        protein_target=176,
        water_target=2800,
        weekly_rate=-0.5,
        estimated_weeks=None,
        projected_date=None,
    )
    return PlanRecord(
        id=uuid4(),
        user_id=user_id,
        targets=targets,
        computed_at=datetime(2025, 1, 1, tzinfo=UTC),
        version=version,
    )


def test_accepts_when_nothing_cached() -> None:
    resolver = ConflictResolver()

    assert resolver.accept(_record(uuid4(), 1), None) is True
    assert resolver.discarded_total == 0


def test_accepts_only_strictly_newer_versions() -> None:
    resolver = ConflictResolver()
    user_id = uuid4()
    current = _record(user_id, 3)

    assert resolver.accept(_record(user_id, 4), current) is True
    assert resolver.accept(_record(user_id, 3), current) is False
    assert resolver.accept(_record(user_id, 2), current) is False


def test_stats_count_discards_per_user() -> None:
    resolver = ConflictResolver()
    first, second = uuid4(), uuid4()
    resolver.accept(_record(first, 1), _record(first, 2))
    resolver.accept(_record(first, 1), _record(first, 2))
    resolver.accept(_record(second, 1), _record(second, 1))

    stats = resolver.stats()

    assert stats["discarded_total"] == 3
    assert stats["discarded_by_user"] == {str(first): 2, str(second): 1}
