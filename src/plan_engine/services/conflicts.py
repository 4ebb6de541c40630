"""Last-write-wins conflict resolution by logical version."""

import logging
from collections import Counter
from dataclasses import dataclass, field
from uuid import UUID

from plan_engine.domain.plans import PlanRecord

_logger = logging.getLogger(__name__)


@dataclass
class ConflictResolver:
    """Decide whether a candidate record may replace the cached one."""

    discarded: Counter[UUID] = field(default_factory=Counter)

    def accept(self, candidate: PlanRecord, current: PlanRecord | None) -> bool:
        """Accept iff nothing is cached or the candidate's version is newer."""
        if current is None or candidate.version > current.version:
            return True
        self.discarded[candidate.user_id] += 1
        _logger.info(
            "Discarded superseded plan: user_id=%s candidate_version=%s "
            "current_version=%s",
            candidate.user_id,
            candidate.version,
            current.version,
        )
        return False

    @property
    def discarded_total(self) -> int:
        """Total number of discarded candidates."""
        return sum(self.discarded.values())

    def stats(self) -> dict[str, object]:
        """Return discard counters for diagnostics."""
        return {
            "discarded_total": self.discarded_total,
            "discarded_by_user": {
                str(user_id): count for user_id, count in self.discarded.items()
            },
        }
