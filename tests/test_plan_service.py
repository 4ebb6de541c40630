"""Tests for the caller-facing plan service."""

import asyncio
from uuid import uuid4

import pytest

from plan_engine.containers import AppContainer
from plan_engine.domain.errors import ValidationError
from plan_engine.domain.operations import OperationType
from plan_engine.domain.plans import PlanRecord
from tests.conftest import InMemoryBiometricsStore, make_biometrics


def test_online_mutation_is_applied_and_plan_refreshed(
    container: AppContainer, biometrics_store: InMemoryBiometricsStore
) -> None:
    service = container.plan_service
    user_id = uuid4()
    biometrics_store.profiles[user_id] = make_biometrics()

    outcome = asyncio.run(
        service.submit_mutation(
            user_id, OperationType.UPDATE_WEIGHT, {"weight_kg": 90.0}
        )
    )

    assert outcome.applied is True
    assert outcome.plan is not None
    assert outcome.plan.targets.protein_target == 198
    assert container.offline_queue.peek(user_id) == []


def test_offline_mutations_queue_until_connectivity_restored(
    container: AppContainer, biometrics_store: InMemoryBiometricsStore
) -> None:
    service = container.plan_service
    user_id = uuid4()
    biometrics_store.profiles[user_id] = make_biometrics()
    service.mark_offline()

    outcomes = [
        asyncio.run(
            service.submit_mutation(
                user_id, OperationType.UPDATE_WEIGHT, {"weight_kg": weight}
            )
        )
        for weight in (79.0, 78.0)
    ]

    assert [outcome.applied for outcome in outcomes] == [False, False]
    assert biometrics_store.applied == []
    assert asyncio.run(service.process_pending()) is None

    result = asyncio.run(service.on_connectivity_restored())

    assert service.online is True
    assert [op.payload["weight_kg"] for op in result.applied] == [79.0, 78.0]
    assert biometrics_store.profiles[user_id].weight_kg == 78.0


def test_mutation_waits_behind_queued_operations(
    container: AppContainer, biometrics_store: InMemoryBiometricsStore
) -> None:
    service = container.plan_service
    user_id = uuid4()
    biometrics_store.profiles[user_id] = make_biometrics()
    queued = service.enqueue_mutation(
        user_id, OperationType.UPDATE_WEIGHT, {"weight_kg": 79.0}
    )

    outcome = asyncio.run(
        service.submit_mutation(user_id, OperationType.UPDATE_GOAL, {"goal": "gain"})
    )

    assert outcome.applied is False
    assert [op.id for op in container.offline_queue.peek(user_id)] == [
        queued.id,
        outcome.operation.id,
    ]


def test_transient_failure_switches_service_offline(
    container: AppContainer, biometrics_store: InMemoryBiometricsStore
) -> None:
    service = container.plan_service
    user_id = uuid4()
    biometrics_store.profiles[user_id] = make_biometrics()
    biometrics_store.always_fail = True

    outcome = asyncio.run(
        service.submit_mutation(
            user_id, OperationType.UPDATE_WEIGHT, {"weight_kg": 79.0}
        )
    )

    assert outcome.applied is False
    assert outcome.operation is not None
    assert outcome.operation.retry_count == 1
    assert service.online is False


def test_invalid_mutation_is_rejected_without_queueing(
    container: AppContainer,
) -> None:
    user_id = uuid4()

    with pytest.raises(ValidationError):
        asyncio.run(
            container.plan_service.submit_mutation(
                user_id, OperationType.UPDATE_WEIGHT, {"weight_kg": "heavy"}
            )
        )

    assert container.offline_queue.peek(user_id) == []


def test_subscribers_observe_plan_updates(
    container: AppContainer, biometrics_store: InMemoryBiometricsStore
) -> None:
    service = container.plan_service
    user_id = uuid4()
    biometrics_store.profiles[user_id] = make_biometrics()
    seen: list[PlanRecord] = []
    unsubscribe = service.subscribe(seen.append)

    asyncio.run(service.get_plan(user_id))
    asyncio.run(service.get_plan(user_id, force_recompute=True))
    unsubscribe()
    asyncio.run(service.get_plan(user_id, force_recompute=True))

    assert [record.version for record in seen] == [1, 2]


def test_retry_failed_resets_operations(
    container: AppContainer, biometrics_store: InMemoryBiometricsStore
) -> None:
    service = container.plan_service
    user_id = uuid4()
    biometrics_store.profiles[user_id] = make_biometrics()
    operation = service.enqueue_mutation(
        user_id, OperationType.UPDATE_WEIGHT, {"weight_kg": 79.0}
    )
    biometrics_store.failures[operation.id] = 5
    for _ in range(5):
        asyncio.run(service.process_pending())

    reset = service.retry_failed(user_id)

    assert [op.id for op in reset] == [operation.id]
    result = asyncio.run(service.process_pending())
    assert result is not None
    assert [op.id for op in result.applied] == [operation.id]
