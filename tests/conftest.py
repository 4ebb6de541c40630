"""Shared test fixtures."""

from dataclasses import dataclass, field, replace
from datetime import UTC, datetime, timedelta
from pathlib import Path
from uuid import UUID

import pytest

from plan_engine.adapters.remote_compute_client import RemoteComputeClient
from plan_engine.config import Settings
from plan_engine.containers import AppContainer
from plan_engine.domain.errors import (
    CacheCorruptionError,
    NetworkError,
    UserNotFoundError,
)
from plan_engine.domain.metrics import (
    ActivityLevel,
    ComputedTargets,
    Goal,
    Sex,
    UserBiometrics,
)
from plan_engine.domain.operations import (
    OperationStatus,
    OperationType,
    PendingOperation,
)
from plan_engine.domain.plans import PlanRecord
from plan_engine.services.cache import PlanCache, PlanStore
from plan_engine.services.calculator import MetricsCalculator
from plan_engine.services.conflicts import ConflictResolver
from plan_engine.services.offline_queue import OfflineOperationQueue, OperationJournal
from plan_engine.services.plans import PlanService
from plan_engine.services.recompute import (
    BiometricsStore,
    ComputationSink,
    RecomputeCoordinator,
)

START = datetime(2025, 3, 3, 9, 0, tzinfo=UTC)


def make_biometrics(**overrides: object) -> UserBiometrics:
    """80kg/180cm/30y male, moderately active, losing towards 70kg."""
    values: dict[str, object] = {
        "weight_kg": 80.0,
        "height_cm": 180.0,
        "age": 30,
        "sex": Sex.MALE,
        "activity_level": ActivityLevel.MODERATE,
        "goal": Goal.LOSE,
        "target_weight_kg": 70.0,
    }
    values.update(overrides)
    return UserBiometrics(**values)  # type: ignore[arg-type]


@dataclass
class ManualClock:
    """Clock that only moves when told to."""

    now: datetime = START

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


async def no_sleep(_seconds: float) -> None:
    return None


@dataclass
class InMemoryPlanStore(PlanStore):
    """In-memory persistent tier for tests."""

    records: dict[UUID, PlanRecord] = field(default_factory=dict)
    corrupted: set[UUID] = field(default_factory=set)
    loads: int = 0

    def load(self, user_id: UUID) -> PlanRecord | None:
        self.loads += 1
        if user_id in self.corrupted:
            raise CacheCorruptionError("bad payload")
        return self.records.get(user_id)

    def save(self, record: PlanRecord) -> None:
        self.records[record.user_id] = record

    def delete(self, user_id: UUID) -> None:
        self.records.pop(user_id, None)
        self.corrupted.discard(user_id)


@dataclass
class InMemoryOperationJournal(OperationJournal):
    """In-memory operation journal for tests."""

    operations: dict[UUID, PendingOperation] = field(default_factory=dict)
    next_sequence: int = 1

    def append(self, operation: PendingOperation) -> PendingOperation:
        stored = replace(operation, sequence=self.next_sequence)
        self.next_sequence += 1
        self.operations[stored.id] = stored
        return stored

    def get(self, operation_id: UUID) -> PendingOperation | None:
        return self.operations.get(operation_id)

    def list_operations(
        self,
        user_id: UUID | None = None,
        statuses: set[OperationStatus] | None = None,
    ) -> list[PendingOperation]:
        return sorted(
            (
                op
                for op in self.operations.values()
                if (user_id is None or op.user_id == user_id)
                and (not statuses or op.status in statuses)
            ),
            key=lambda op: op.sequence,
        )

    def update(self, operation: PendingOperation) -> None:
        self.operations[operation.id] = operation

    def remove(self, operation_id: UUID) -> None:
        self.operations.pop(operation_id, None)


@dataclass
class InMemoryBiometricsStore(BiometricsStore):
    """Profile store that records applied mutations and can fail on demand."""

    profiles: dict[UUID, UserBiometrics] = field(default_factory=dict)
    applied: list[PendingOperation] = field(default_factory=list)
    failures: dict[UUID, int] = field(default_factory=dict)
    always_fail: bool = False
    read_failures: int = 0
    read_errors: dict[UUID, Exception] = field(default_factory=dict)
    deleted_users: set[UUID] = field(default_factory=set)
    reads: int = 0

    def read_biometrics(self, user_id: UUID) -> UserBiometrics:
        self.reads += 1
        if self.read_failures:
            self.read_failures -= 1
            raise NetworkError("connection reset")
        if user_id in self.read_errors:
            raise self.read_errors[user_id]
        if user_id not in self.profiles:
            raise UserNotFoundError(f"No settings for user {user_id}")
        return self.profiles[user_id]

    def apply_mutation(self, operation: PendingOperation) -> None:
        if self.always_fail:
            raise NetworkError("offline")
        if operation.user_id in self.deleted_users:
            raise UserNotFoundError(f"No settings for user {operation.user_id}")
        remaining = self.failures.get(operation.id, 0)
        if remaining:
            self.failures[operation.id] = remaining - 1
            raise NetworkError("connection reset")
        self.applied.append(operation)
        profile = self.profiles.get(operation.user_id)
        if profile is None:
            return
        payload = operation.payload
        if operation.type is OperationType.UPDATE_WEIGHT:
            profile = replace(profile, weight_kg=float(payload["weight_kg"]))
        elif operation.type is OperationType.UPDATE_TARGET_WEIGHT:
            profile = replace(profile, target_weight_kg=float(payload["weight_kg"]))
        elif operation.type is OperationType.UPDATE_ACTIVITY_LEVEL:
            profile = replace(
                profile, activity_level=ActivityLevel(payload["activity_level"])
            )
        else:
            profile = replace(profile, goal=Goal(payload["goal"]))
        self.profiles[operation.user_id] = profile


@dataclass
class FakeComputationSink(ComputationSink):
    """Sink that records persisted computations."""

    persisted: list[tuple[UUID, ComputedTargets]] = field(default_factory=list)
    failures: int = 0

    def persist_computation(self, user_id: UUID, targets: ComputedTargets) -> None:
        if self.failures:
            self.failures -= 1
            raise NetworkError("persist timeout")
        self.persisted.append((user_id, targets))


@dataclass
class FakeRemoteComputeClient(RemoteComputeClient):
    """Remote client computing locally, with injectable transient failures."""

    calculator: MetricsCalculator = field(default_factory=MetricsCalculator)
    failures: int = 0
    calls: int = 0

    async def compute_targets(self, biometrics: UserBiometrics) -> ComputedTargets:
        self.calls += 1
        if self.failures:
            self.failures -= 1
            raise NetworkError("gateway timeout")
        return self.calculator.compute(biometrics, as_of=START.date())


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        supabase_url="https://example.supabase.co",
        supabase_service_key=(
            "eyJhbGciOiJIUzI1NiIsInR5cCI6IkpXVCJ9."
            "eyJyb2xlIjoic2VydmljZV9yb2xlIn0."
            "c2lnbmF0dXJl"
        ),
        admin_token="admin-token",
        database_url=f"sqlite:///{tmp_path / 'plan_engine.db'}",
    )


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def plan_store() -> InMemoryPlanStore:
    return InMemoryPlanStore()


@pytest.fixture
def journal() -> InMemoryOperationJournal:
    return InMemoryOperationJournal()


@pytest.fixture
def biometrics_store() -> InMemoryBiometricsStore:
    return InMemoryBiometricsStore()


@pytest.fixture
def plan_cache(plan_store: InMemoryPlanStore, clock: ManualClock) -> PlanCache:
    return PlanCache(store=plan_store, resolver=ConflictResolver(), clock=clock)


@pytest.fixture
def coordinator(
    plan_cache: PlanCache,
    biometrics_store: InMemoryBiometricsStore,
    clock: ManualClock,
) -> RecomputeCoordinator:
    return RecomputeCoordinator(
        cache=plan_cache,
        calculator=MetricsCalculator(),
        biometrics_store=biometrics_store,
        clock=clock,
        sleep=no_sleep,
    )


@pytest.fixture
def offline_queue(
    journal: InMemoryOperationJournal,
    biometrics_store: InMemoryBiometricsStore,
    coordinator: RecomputeCoordinator,
    clock: ManualClock,
) -> OfflineOperationQueue:
    return OfflineOperationQueue(
        journal=journal,
        biometrics_store=biometrics_store,
        coordinator=coordinator,
        backoff_base_seconds=0,
        clock=clock,
    )


@pytest.fixture
def container(
    settings: Settings,
    plan_cache: PlanCache,
    coordinator: RecomputeCoordinator,
    offline_queue: OfflineOperationQueue,
    biometrics_store: InMemoryBiometricsStore,
) -> AppContainer:
    plan_service = PlanService(
        cache=plan_cache, coordinator=coordinator, queue=offline_queue
    )

    async def close_resources() -> None:
        return None

    return AppContainer(
        settings=settings,
        calculator=coordinator.calculator,
        conflict_resolver=plan_cache.resolver,
        plan_cache=plan_cache,
        coordinator=coordinator,
        offline_queue=offline_queue,
        plan_service=plan_service,
        biometrics_store=biometrics_store,
        close_resources=close_resources,
    )
