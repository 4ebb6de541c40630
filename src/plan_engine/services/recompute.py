"""Get-or-recompute orchestration with per-user in-flight deduplication."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Protocol, TypeVar
from uuid import UUID, uuid4

from plan_engine.adapters.remote_compute_client import RemoteComputeClient
from plan_engine.domain.errors import NetworkError, RecomputeTimeoutError
from plan_engine.domain.metrics import ComputedTargets, UserBiometrics
from plan_engine.domain.operations import PendingOperation
from plan_engine.domain.plans import PlanRecord
from plan_engine.services.cache import PlanCache
from plan_engine.services.calculator import MetricsCalculator

_logger = logging.getLogger(__name__)

T = TypeVar("T")


class BiometricsStore(Protocol):
    """External profile store holding validated user biometrics."""

    def read_biometrics(self, user_id: UUID) -> UserBiometrics:
        """Return the user's current biometrics."""

    def apply_mutation(self, operation: PendingOperation) -> None:
        """Apply a queued mutation to the user's profile."""


class ComputationSink(Protocol):
    """Sync boundary that records remotely computed targets."""

    def persist_computation(self, user_id: UUID, targets: ComputedTargets) -> None:
        """Persist the targets; returning normally acknowledges the write."""


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


@dataclass
class _InFlight:
    task: "asyncio.Task[PlanRecord]"
    biometrics: UserBiometrics


@dataclass
class RecomputeCoordinator:
    """Serve cached plans and recompute them at most once per user at a time."""

    cache: PlanCache
    calculator: MetricsCalculator
    biometrics_store: BiometricsStore
    remote_client: RemoteComputeClient | None = None
    computation_sink: ComputationSink | None = None
    max_attempts: int = 3
    backoff_base_seconds: float = 1.0
    backoff_cap_seconds: float = 10.0
    wait_timeout_seconds: float | None = None
    clock: Callable[[], datetime] = _utcnow
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
    _in_flight: dict[UUID, _InFlight] = field(default_factory=dict, init=False)
    _versions: dict[UUID, int] = field(default_factory=dict, init=False)
    computations: int = field(default=0, init=False)

    async def get_or_recompute(
        self,
        user_id: UUID,
        biometrics: UserBiometrics | None = None,
        force_recompute: bool = False,
        timeout: float | None = None,
    ) -> PlanRecord:
        """Return a fresh plan for the user, recomputing when needed."""
        if not force_recompute and not self.cache.is_stale(user_id):
            cached = self.cache.get(user_id)
            if cached is not None:
                return cached

        resolved = biometrics or await self._read_biometrics(user_id)
        wait_timeout = timeout if timeout is not None else self.wait_timeout_seconds

        while True:
            in_flight = self._in_flight.get(user_id)
            if in_flight is None:
                in_flight = self._start(user_id, resolved)
                break
            if not force_recompute or in_flight.biometrics == resolved:
                _logger.debug("Joining in-flight recompute: user_id=%s", user_id)
                break
            # Inputs changed under a running computation: let it settle first.
            await asyncio.gather(asyncio.shield(in_flight.task), return_exceptions=True)

        return await self._await(user_id, in_flight.task, wait_timeout)

    def in_flight(self, user_id: UUID) -> bool:
        """Return True while a computation for the user is running."""
        return user_id in self._in_flight

    async def _read_biometrics(self, user_id: UUID) -> UserBiometrics:
        async def read() -> UserBiometrics:
            return self.biometrics_store.read_biometrics(user_id)

        return await self._call_with_retry(read, action=f"read_biometrics:{user_id}")

    def _start(self, user_id: UUID, biometrics: UserBiometrics) -> _InFlight:
        task = asyncio.create_task(self._recompute(user_id, biometrics))
        in_flight = _InFlight(task=task, biometrics=biometrics)
        self._in_flight[user_id] = in_flight

        def _clear(done: "asyncio.Task[PlanRecord]") -> None:
            if self._in_flight.get(user_id) is in_flight:
                del self._in_flight[user_id]
            if not done.cancelled() and done.exception() is not None:
                _logger.warning(
                    "Recompute failed: user_id=%s error=%s", user_id, done.exception()
                )

        task.add_done_callback(_clear)
        return in_flight

    async def _await(
        self, user_id: UUID, task: "asyncio.Task[PlanRecord]", timeout: float | None
    ) -> PlanRecord:
        if timeout is None:
            return await asyncio.shield(task)
        try:
            return await asyncio.wait_for(asyncio.shield(task), timeout)
        except TimeoutError as exc:
            raise RecomputeTimeoutError(
                f"Gave up waiting for recompute of user {user_id} after {timeout}s"
            ) from exc

    async def _recompute(self, user_id: UUID, biometrics: UserBiometrics) -> PlanRecord:
        previous = self.cache.get(user_id)
        version = self._next_version(user_id, previous)
        computed_at = self.clock()
        self.computations += 1
        _logger.info("Recomputing plan: user_id=%s version=%s", user_id, version)

        targets = await self._compute_targets(user_id, biometrics, computed_at)
        record = PlanRecord(
            id=uuid4(),
            user_id=user_id,
            targets=targets,
            computed_at=computed_at,
            version=version,
            previous_targets=previous.targets if previous else None,
        )
        if self.cache.put(user_id, record):
            if record.has_significant_changes():
                _logger.info(
                    "Plan changed significantly: user_id=%s calories=%+d protein=%+d",
                    user_id,
                    record.calorie_delta,
                    record.protein_delta,
                )
            return record

        newer = self.cache.get(user_id)
        return newer if newer is not None else record

    def _next_version(self, user_id: UUID, previous: PlanRecord | None) -> int:
        floor = previous.version if previous else 0
        version = max(self._versions.get(user_id, 0), floor) + 1
        self._versions[user_id] = version
        return version

    async def _compute_targets(
        self, user_id: UUID, biometrics: UserBiometrics, computed_at: datetime
    ) -> ComputedTargets:
        if self.remote_client is None:
            return self.calculator.compute(biometrics, as_of=computed_at.date())

        remote = self.remote_client
        targets = await self._call_with_retry(
            lambda: remote.compute_targets(biometrics),
            action=f"remote_compute:{user_id}",
        )
        if self.computation_sink is not None:
            sink = self.computation_sink

            async def persist() -> None:
                sink.persist_computation(user_id, targets)

            await self._call_with_retry(persist, action=f"persist:{user_id}")
        return targets

    async def _call_with_retry(
        self, func: Callable[[], Awaitable[T]], *, action: str
    ) -> T:
        """Retry transient failures with capped exponential backoff."""
        attempt = 0
        while True:
            try:
                return await func()
            except NetworkError as exc:
                attempt += 1
                _logger.warning(
                    "Recompute %s failed (attempt %s/%s): %s",
                    action,
                    attempt,
                    self.max_attempts,
                    exc,
                )
                if attempt >= self.max_attempts:
                    raise
                await self.sleep(self.backoff_delay(attempt))

    def backoff_delay(self, attempt: int) -> float:
        """Delay before retry number ``attempt`` (1-based)."""
        return min(
            self.backoff_base_seconds * 2 ** (attempt - 1), self.backoff_cap_seconds
        )
