"""Durable, per-user ordered queue of mutations made while offline."""

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime, timedelta
from typing import Protocol
from uuid import UUID, uuid4

from plan_engine.domain.errors import (
    PlanEngineError,
    QueueExhaustedError,
    UserNotFoundError,
    ValidationError,
)
from plan_engine.domain.operations import (
    OperationStatus,
    OperationType,
    PendingOperation,
    ProcessResult,
    validate_payload,
)
from plan_engine.services.recompute import BiometricsStore, RecomputeCoordinator

_logger = logging.getLogger(__name__)


class OperationJournal(Protocol):
    """Append-only operation log with atomic per-operation status updates."""

    def append(self, operation: PendingOperation) -> PendingOperation:
        """Append an operation and return it with its journal sequence."""

    def get(self, operation_id: UUID) -> PendingOperation | None:
        """Return an operation by id, if present."""

    def list_operations(
        self,
        user_id: UUID | None = None,
        statuses: set[OperationStatus] | None = None,
    ) -> list[PendingOperation]:
        """Return operations in enqueue order, optionally filtered."""

    def update(self, operation: PendingOperation) -> None:
        """Atomically replace the stored state of an operation."""

    def remove(self, operation_id: UUID) -> None:
        """Remove an acknowledged operation."""


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


@dataclass
class OfflineOperationQueue:
    """Replays queued mutations in enqueue order, one user at a time."""

    journal: OperationJournal
    biometrics_store: BiometricsStore
    coordinator: RecomputeCoordinator
    max_retries: int = 5
    backoff_base_seconds: float = 1.0
    backoff_cap_seconds: float = 300.0
    clock: Callable[[], datetime] = _utcnow
    _locks: dict[UUID, asyncio.Lock] = field(default_factory=dict, init=False)

    def enqueue(
        self, user_id: UUID, op_type: OperationType, payload: dict[str, object]
    ) -> PendingOperation:
        """Validate and durably append a mutation for later replay."""
        validate_payload(op_type, payload)
        operation = self.journal.append(
            PendingOperation(
                id=uuid4(),
                user_id=user_id,
                type=op_type,
                payload=dict(payload),
                enqueued_at=self.clock(),
            )
        )
        _logger.info(
            "Queued operation: user_id=%s type=%s sequence=%s",
            user_id,
            op_type.value,
            operation.sequence,
        )
        return operation

    def peek(self, user_id: UUID) -> list[PendingOperation]:
        """Return the user's queued operations in replay order."""
        return self.journal.list_operations(user_id)

    def failed(self, user_id: UUID | None = None) -> list[PendingOperation]:
        """Return operations that exhausted their retries."""
        return self.journal.list_operations(user_id, {OperationStatus.FAILED})

    def recover(self) -> int:
        """Return operations interrupted mid-replay to the pending state."""
        interrupted = self.journal.list_operations(statuses={OperationStatus.INFLIGHT})
        for operation in interrupted:
            self.journal.update(replace(operation, status=OperationStatus.PENDING))
        if interrupted:
            _logger.warning("Recovered %s interrupted operations", len(interrupted))
        return len(interrupted)

    def retry_failed(self, user_id: UUID) -> list[PendingOperation]:
        """Give the user's failed operations a fresh set of retries."""
        reset = []
        for operation in self.failed(user_id):
            pending = replace(
                operation,
                status=OperationStatus.PENDING,
                retry_count=0,
                next_attempt_at=None,
            )
            self.journal.update(pending)
            reset.append(pending)
        return reset

    def discard(self, operation_id: UUID) -> bool:
        """Drop an operation the user chose not to sync."""
        operation = self.journal.get(operation_id)
        if operation is None:
            return False
        self.journal.remove(operation_id)
        _logger.info(
            "Discarded operation: user_id=%s id=%s", operation.user_id, operation_id
        )
        return True

    async def process_user(self, user_id: UUID) -> ProcessResult:
        """Replay a single user's queued operations."""
        result = ProcessResult()
        await self._process_user(user_id, result)
        return result

    async def process_queue(self) -> ProcessResult:
        """Replay queued operations; users proceed independently in parallel."""
        result = ProcessResult()
        user_ids: list[UUID] = []
        for operation in self.journal.list_operations():
            if operation.user_id not in user_ids:
                user_ids.append(operation.user_id)
        outcomes = await asyncio.gather(
            *(self._process_user(user_id, result) for user_id in user_ids),
            return_exceptions=True,
        )
        for user_id, outcome in zip(user_ids, outcomes, strict=True):
            if isinstance(outcome, Exception):
                _logger.error(
                    "Queue processing aborted: user_id=%s error=%s", user_id, outcome
                )
        if result.applied or result.exhausted:
            _logger.info(
                "Queue processed: applied=%s retried=%s exhausted=%s",
                len(result.applied),
                len(result.retried),
                len(result.exhausted),
            )
        return result

    async def _process_user(self, user_id: UUID, result: ProcessResult) -> None:
        lock = self._locks.setdefault(user_id, asyncio.Lock())
        async with lock:
            applied_any = False
            for operation in self.journal.list_operations(user_id):
                if operation.status is OperationStatus.FAILED:
                    result.blocked_users.add(user_id)
                    break
                if not self._is_due(operation):
                    break
                if not self._replay(operation, result):
                    break
                applied_any = True
            if applied_any:
                await self._refresh_plan(user_id)

    def _is_due(self, operation: PendingOperation) -> bool:
        due_at = operation.next_attempt_at
        return due_at is None or due_at <= self.clock()

    def _replay(self, operation: PendingOperation, result: ProcessResult) -> bool:
        inflight = replace(operation, status=OperationStatus.INFLIGHT)
        self.journal.update(inflight)
        try:
            self.biometrics_store.apply_mutation(inflight)
        except (ValidationError, UserNotFoundError) as exc:
            self._fail(inflight, operation.retry_count + 1, exc, result)
            return False
        except Exception as exc:
            retry_count = operation.retry_count + 1
            if retry_count >= self.max_retries:
                self._fail(inflight, retry_count, exc, result)
                return False
            retrying = replace(
                operation,
                status=OperationStatus.PENDING,
                retry_count=retry_count,
                next_attempt_at=self.clock() + self.backoff_delay(retry_count),
                last_error=str(exc),
            )
            self.journal.update(retrying)
            result.retried.append(retrying)
            _logger.warning(
                "Operation replay failed (attempt %s/%s): user_id=%s id=%s error=%s",
                retry_count,
                self.max_retries,
                operation.user_id,
                operation.id,
                exc,
            )
            return False

        self.journal.remove(operation.id)
        result.applied.append(operation)
        return True

    def _fail(
        self,
        operation: PendingOperation,
        retry_count: int,
        exc: Exception,
        result: ProcessResult,
    ) -> None:
        failed = replace(
            operation,
            status=OperationStatus.FAILED,
            retry_count=retry_count,
            next_attempt_at=None,
            last_error=str(exc),
        )
        self.journal.update(failed)
        error = QueueExhaustedError(failed)
        result.exhausted.append(error)
        result.blocked_users.add(failed.user_id)
        _logger.error(
            "Operation failed permanently: user_id=%s id=%s error=%s",
            failed.user_id,
            failed.id,
            exc,
        )

    async def _refresh_plan(self, user_id: UUID) -> None:
        try:
            await self.coordinator.get_or_recompute(user_id, force_recompute=True)
        except PlanEngineError as exc:
            _logger.warning(
                "Plan refresh after replay failed: user_id=%s error=%s", user_id, exc
            )

    def backoff_delay(self, retry_count: int) -> timedelta:
        """Delay before the next replay attempt of a failing operation."""
        seconds = min(
            self.backoff_base_seconds * 2 ** (retry_count - 1), self.backoff_cap_seconds
        )
        return timedelta(seconds=seconds)
