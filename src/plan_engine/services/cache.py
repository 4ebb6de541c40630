"""Two-tier plan cache: in-memory map backed by a persistent store."""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Protocol
from uuid import UUID

from plan_engine.domain.errors import CacheCorruptionError
from plan_engine.domain.plans import CacheEntry, PlanRecord
from plan_engine.services.conflicts import ConflictResolver

DEFAULT_TTL_SECONDS = 3600

_logger = logging.getLogger(__name__)

PlanListener = Callable[[PlanRecord], None]


class PlanStore(Protocol):
    """Persistent tier for plan records, surviving process restarts."""

    def load(self, user_id: UUID) -> PlanRecord | None:
        """Return the stored record, raising CacheCorruptionError if unreadable."""

    def save(self, record: PlanRecord) -> None:
        """Persist the record as the user's current plan."""

    def delete(self, user_id: UUID) -> None:
        """Remove the user's stored record, if any."""


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


@dataclass
class PlanCache:
    """Per-user plan cache; all writes go through the conflict resolver."""

    store: PlanStore
    resolver: ConflictResolver
    ttl_seconds: int = DEFAULT_TTL_SECONDS
    clock: Callable[[], datetime] = _utcnow
    _entries: dict[UUID, CacheEntry] = field(default_factory=dict, init=False)
    _listeners: list[PlanListener] = field(default_factory=list, init=False)

    def get(self, user_id: UUID) -> PlanRecord | None:
        """Return the cached record from memory, falling back to the store."""
        entry = self._entries.get(user_id)
        if entry is not None:
            return entry.record

        try:
            record = self.store.load(user_id)
        except CacheCorruptionError as exc:
            _logger.warning(
                "Evicting corrupted plan: user_id=%s error=%s", user_id, exc
            )
            self.store.delete(user_id)
            return None
        if record is None:
            return None
        self._remember(record)
        return record

    def put(self, user_id: UUID, record: PlanRecord) -> bool:
        """Store the record if it is newer than the cached one."""
        if record.user_id != user_id:
            raise ValueError(
                f"Record for user {record.user_id} cannot be cached under {user_id}"
            )
        current = self.get(user_id)
        if not self.resolver.accept(record, current):
            return False
        self.store.save(record)
        self._remember(record)
        self._notify(record)
        return True

    def is_stale(self, user_id: UUID) -> bool:
        """Return True when nothing is cached or the record outlived the TTL."""
        record = self.get(user_id)
        if record is None:
            return True
        entry = self._entries[user_id]
        return entry.is_stale(self.clock())

    def invalidate(self, user_id: UUID) -> None:
        """Drop the memory entry so the next read goes to the store."""
        self._entries.pop(user_id, None)

    def subscribe(self, listener: PlanListener) -> Callable[[], None]:
        """Register a listener for accepted records; returns an unsubscriber."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _remember(self, record: PlanRecord) -> None:
        self._entries[record.user_id] = CacheEntry(
            record=record, stored_at=self.clock(), ttl_seconds=self.ttl_seconds
        )

    def _notify(self, record: PlanRecord) -> None:
        for listener in list(self._listeners):
            try:
                listener(record)
            except Exception:
                _logger.exception(
                    "Plan listener failed: user_id=%s version=%s",
                    record.user_id,
                    record.version,
                )
