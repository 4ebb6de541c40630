"""Supabase sink for remotely computed targets."""

from dataclasses import dataclass
from datetime import UTC, datetime
from uuid import UUID

import httpx
from postgrest.exceptions import APIError
from supabase import Client

from plan_engine.adapters.supabase_errors import translate_error
from plan_engine.domain.errors import NetworkError
from plan_engine.domain.metrics import ComputedTargets
from plan_engine.domain.plans import targets_to_dict
from plan_engine.services.recompute import ComputationSink


@dataclass
class SupabaseComputationRepository(ComputationSink):
    """Records computations in the plan_computations table."""

    client: Client

    def persist_computation(self, user_id: UUID, targets: ComputedTargets) -> None:
        """Insert a computation row; raises NetworkError when not acknowledged."""
        try:
            response = (
                self.client.table("plan_computations")
                .insert(
                    {
                        "user_id": str(user_id),
                        **targets_to_dict(targets),
                        "computed_at": datetime.now(tz=UTC).isoformat(),
                    }
                )
                .execute()
            )
        except (httpx.HTTPError, APIError) as exc:
            raise translate_error(exc, "persist computation") from exc
        if not response.data:
            raise NetworkError("Computation write was not acknowledged")
