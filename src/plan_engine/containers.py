"""Dependency container wiring for the application."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from supabase import create_client

from plan_engine.adapters.db import create_session_factory
from plan_engine.adapters.remote_compute_client import HttpxRemoteComputeClient
from plan_engine.adapters.sqlalchemy_operation_journal import (
    SqlAlchemyOperationJournal,
)
from plan_engine.adapters.sqlalchemy_plan_store import SqlAlchemyPlanStore
from plan_engine.adapters.supabase_biometrics_repository import (
    SupabaseBiometricsRepository,
)
from plan_engine.adapters.supabase_computation_repository import (
    SupabaseComputationRepository,
)
from plan_engine.config import Settings, parse_remote_compute_url
from plan_engine.services.cache import PlanCache
from plan_engine.services.calculator import MetricsCalculator
from plan_engine.services.conflicts import ConflictResolver
from plan_engine.services.offline_queue import OfflineOperationQueue
from plan_engine.services.plans import PlanService
from plan_engine.services.recompute import BiometricsStore, RecomputeCoordinator


@dataclass
class AppContainer:
    """Holds application-wide dependencies."""

    settings: Settings
    calculator: MetricsCalculator
    conflict_resolver: ConflictResolver
    plan_cache: PlanCache
    coordinator: RecomputeCoordinator
    offline_queue: OfflineOperationQueue
    plan_service: PlanService
    biometrics_store: BiometricsStore
    close_resources: Callable[[], Awaitable[None]]


def build_container(settings: Settings | None = None) -> AppContainer:
    """Create the default dependency container."""
    resolved_settings = settings or Settings()
    supabase_client = create_client(
        resolved_settings.supabase_url, resolved_settings.supabase_service_key
    )
    session_factory = create_session_factory(resolved_settings.database_url)

    biometrics_store = SupabaseBiometricsRepository(supabase_client)
    calculator = MetricsCalculator()
    conflict_resolver = ConflictResolver()
    plan_cache = PlanCache(
        store=SqlAlchemyPlanStore(session_factory),
        resolver=conflict_resolver,
        ttl_seconds=resolved_settings.plan_cache_ttl_seconds,
    )

    remote_url = parse_remote_compute_url(resolved_settings.remote_compute_url)
    remote_client = HttpxRemoteComputeClient.create(remote_url) if remote_url else None
    coordinator = RecomputeCoordinator(
        cache=plan_cache,
        calculator=calculator,
        biometrics_store=biometrics_store,
        remote_client=remote_client,
        computation_sink=(
            SupabaseComputationRepository(supabase_client) if remote_client else None
        ),
        max_attempts=resolved_settings.recompute_max_attempts,
        backoff_base_seconds=resolved_settings.recompute_backoff_base_seconds,
        backoff_cap_seconds=resolved_settings.recompute_backoff_cap_seconds,
        wait_timeout_seconds=resolved_settings.recompute_wait_timeout_seconds,
    )
    offline_queue = OfflineOperationQueue(
        journal=SqlAlchemyOperationJournal(session_factory),
        biometrics_store=biometrics_store,
        coordinator=coordinator,
        max_retries=resolved_settings.queue_max_retries,
        backoff_base_seconds=resolved_settings.queue_backoff_base_seconds,
        backoff_cap_seconds=resolved_settings.queue_backoff_cap_seconds,
    )
    offline_queue.recover()
    plan_service = PlanService(
        cache=plan_cache, coordinator=coordinator, queue=offline_queue
    )

    async def close_resources() -> None:
        if remote_client is not None:
            await remote_client.close()
        bind = session_factory.kw.get("bind")
        if bind is not None:
            bind.dispose()

    return AppContainer(
        settings=resolved_settings,
        calculator=calculator,
        conflict_resolver=conflict_resolver,
        plan_cache=plan_cache,
        coordinator=coordinator,
        offline_queue=offline_queue,
        plan_service=plan_service,
        biometrics_store=biometrics_store,
        close_resources=close_resources,
    )
