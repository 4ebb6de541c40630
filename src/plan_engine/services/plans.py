"""Caller-facing plan operations: reads, mutations and connectivity."""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from uuid import UUID

from plan_engine.domain.operations import (
    OperationType,
    PendingOperation,
    ProcessResult,
    validate_payload,
)
from plan_engine.domain.plans import PlanRecord
from plan_engine.services.cache import PlanCache, PlanListener
from plan_engine.services.offline_queue import OfflineOperationQueue
from plan_engine.services.recompute import RecomputeCoordinator

_logger = logging.getLogger(__name__)


@dataclass
class MutationOutcome:
    """Result of submitting a mutation."""

    applied: bool
    operation: PendingOperation | None = None
    plan: PlanRecord | None = None


@dataclass
class PlanService:
    """Application service wiring the cache, coordinator and offline queue."""

    cache: PlanCache
    coordinator: RecomputeCoordinator
    queue: OfflineOperationQueue
    online: bool = True

    async def get_plan(
        self, user_id: UUID, force_recompute: bool = False
    ) -> PlanRecord:
        """Return the user's plan, recomputing if stale or forced."""
        return await self.coordinator.get_or_recompute(
            user_id, force_recompute=force_recompute
        )

    def enqueue_mutation(
        self, user_id: UUID, op_type: OperationType, payload: dict[str, object]
    ) -> PendingOperation:
        """Queue a mutation for replay once connectivity allows."""
        return self.queue.enqueue(user_id, op_type, payload)

    async def submit_mutation(
        self, user_id: UUID, op_type: OperationType, payload: dict[str, object]
    ) -> MutationOutcome:
        """Apply a mutation now when online, otherwise queue it."""
        validate_payload(op_type, payload)
        if not self.online or self.queue.peek(user_id):
            # Earlier queued work for this user must be replayed first.
            operation = self.enqueue_mutation(user_id, op_type, payload)
            return MutationOutcome(applied=False, operation=operation)

        operation = self.enqueue_mutation(user_id, op_type, payload)
        result = await self.queue.process_user(user_id)
        if any(applied.id == operation.id for applied in result.applied):
            plan = self.cache.get(user_id)
            return MutationOutcome(applied=True, operation=operation, plan=plan)

        if any(retried.id == operation.id for retried in result.retried):
            self.mark_offline()
        return MutationOutcome(
            applied=False, operation=self.queue.journal.get(operation.id)
        )

    def mark_offline(self) -> None:
        """Record that the sync boundary is unreachable."""
        if self.online:
            _logger.info("Connectivity lost; queueing mutations")
        self.online = False

    async def on_connectivity_restored(self) -> ProcessResult:
        """Replay everything queued while offline."""
        self.online = True
        _logger.info("Connectivity restored; processing offline queue")
        return await self.queue.process_queue()

    def retry_failed(self, user_id: UUID) -> list[PendingOperation]:
        """Manual retry affordance for operations that exhausted retries."""
        return self.queue.retry_failed(user_id)

    def subscribe(self, listener: PlanListener) -> Callable[[], None]:
        """Observe accepted plan updates."""
        return self.cache.subscribe(listener)

    async def process_pending(self) -> ProcessResult | None:
        """Periodic replay hook; does nothing while offline."""
        if not self.online:
            return None
        return await self.queue.process_queue()
