"""SQLAlchemy-backed durable journal for offline operations."""

import json
from dataclasses import dataclass, replace
from datetime import datetime
from uuid import UUID

from sqlalchemy import delete, select
from sqlalchemy.orm import Session, sessionmaker

from plan_engine.adapters.db import (
    PendingOperationRow,
    from_storage_time,
    to_storage_time,
)
from plan_engine.domain.operations import (
    OperationStatus,
    OperationType,
    PendingOperation,
)
from plan_engine.services.offline_queue import OperationJournal


@dataclass
class SqlAlchemyOperationJournal(OperationJournal):
    """Each status transition commits in its own transaction."""

    session_factory: sessionmaker[Session]

    def append(self, operation: PendingOperation) -> PendingOperation:
        """Insert the operation and return it with its assigned sequence."""
        with self.session_factory.begin() as session:
            row = PendingOperationRow(
                id=str(operation.id),
                user_id=str(operation.user_id),
                type=operation.type.value,
                payload=json.dumps(operation.payload),
                enqueued_at=to_storage_time(operation.enqueued_at),
                retry_count=operation.retry_count,
                status=operation.status.value,
                next_attempt_at=_optional_storage_time(operation),
                last_error=operation.last_error,
            )
            session.add(row)
            session.flush()
            sequence = row.sequence
        return replace(operation, sequence=sequence)

    def get(self, operation_id: UUID) -> PendingOperation | None:
        """Return an operation by id, if present."""
        with self.session_factory() as session:
            row = session.scalars(
                select(PendingOperationRow).where(
                    PendingOperationRow.id == str(operation_id)
                )
            ).first()
            return _to_operation(row) if row else None

    def list_operations(
        self,
        user_id: UUID | None = None,
        statuses: set[OperationStatus] | None = None,
    ) -> list[PendingOperation]:
        """Return operations ordered by journal sequence."""
        query = select(PendingOperationRow).order_by(PendingOperationRow.sequence)
        if user_id is not None:
            query = query.where(PendingOperationRow.user_id == str(user_id))
        if statuses:
            query = query.where(
                PendingOperationRow.status.in_([status.value for status in statuses])
            )
        with self.session_factory() as session:
            return [_to_operation(row) for row in session.scalars(query)]

    def update(self, operation: PendingOperation) -> None:
        """Persist status, retry and scheduling fields atomically."""
        with self.session_factory.begin() as session:
            row = session.scalars(
                select(PendingOperationRow).where(
                    PendingOperationRow.id == str(operation.id)
                )
            ).first()
            if row is None:
                raise KeyError(f"Unknown operation {operation.id}")
            row.status = operation.status.value
            row.retry_count = operation.retry_count
            row.next_attempt_at = _optional_storage_time(operation)
            row.last_error = operation.last_error

    def remove(self, operation_id: UUID) -> None:
        """Delete an acknowledged operation."""
        with self.session_factory.begin() as session:
            session.execute(
                delete(PendingOperationRow).where(
                    PendingOperationRow.id == str(operation_id)
                )
            )


def _optional_storage_time(operation: PendingOperation) -> datetime | None:
    if operation.next_attempt_at is None:
        return None
    return to_storage_time(operation.next_attempt_at)


def _to_operation(row: PendingOperationRow) -> PendingOperation:
    return PendingOperation(
        id=UUID(row.id),
        user_id=UUID(row.user_id),
        type=OperationType(row.type),
        payload=json.loads(row.payload),
        enqueued_at=from_storage_time(row.enqueued_at),
        sequence=row.sequence,
        retry_count=row.retry_count,
        status=OperationStatus(row.status),
        next_attempt_at=(
            from_storage_time(row.next_attempt_at) if row.next_attempt_at else None
        ),
        last_error=row.last_error,
    )
