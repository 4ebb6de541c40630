"""SQLAlchemy-backed persistent tier of the plan cache."""

import json
from dataclasses import dataclass
from uuid import UUID

from sqlalchemy import delete
from sqlalchemy.orm import Session, sessionmaker

from plan_engine.adapters.db import PlanCacheRow, to_storage_time
from plan_engine.domain.errors import CacheCorruptionError
from plan_engine.domain.plans import (
    PlanRecord,
    plan_record_from_dict,
    plan_record_to_dict,
)
from plan_engine.services.cache import PlanStore


@dataclass
class SqlAlchemyPlanStore(PlanStore):
    """Stores the latest plan record per user as a JSON document."""

    session_factory: sessionmaker[Session]

    def load(self, user_id: UUID) -> PlanRecord | None:
        """Return the stored record, if present."""
        with self.session_factory() as session:
            row = session.get(PlanCacheRow, str(user_id))
            if row is None:
                return None
            payload = row.payload
        try:
            data = json.loads(payload)
        except json.JSONDecodeError as exc:
            raise CacheCorruptionError(f"Unreadable plan payload: {exc}") from exc
        if not isinstance(data, dict):
            raise CacheCorruptionError("Plan payload is not an object")
        return plan_record_from_dict(data)

    def save(self, record: PlanRecord) -> None:
        """Upsert the user's current record."""
        with self.session_factory.begin() as session:
            row = session.get(PlanCacheRow, str(record.user_id))
            if row is None:
                row = PlanCacheRow(user_id=str(record.user_id))
                session.add(row)
            row.version = record.version
            row.computed_at = to_storage_time(record.computed_at)
            row.payload = json.dumps(plan_record_to_dict(record))

    def delete(self, user_id: UUID) -> None:
        """Remove the user's record."""
        with self.session_factory.begin() as session:
            session.execute(
                delete(PlanCacheRow).where(PlanCacheRow.user_id == str(user_id))
            )
