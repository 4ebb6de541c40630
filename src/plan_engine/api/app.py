"""FastAPI application factory."""

import asyncio
import contextlib
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from uuid import UUID

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from plan_engine.api.admin import router as admin_router
from plan_engine.api.models import (
    BiometricsModel,
    MutationRequest,
    MutationResponse,
    PendingOperationModel,
    PlanRecordModel,
    ProcessResultModel,
    TargetsModel,
)
from plan_engine.app_logging import configure_logging
from plan_engine.containers import AppContainer
from plan_engine.domain.errors import (
    NetworkError,
    RecomputeTimeoutError,
    UserNotFoundError,
    ValidationError,
)


def create_app(container: AppContainer) -> FastAPI:  # noqa: PLR0915
    """Create a FastAPI app configured with dependencies."""
    configure_logging(container.settings.log_level)
    logger = logging.getLogger(__name__)

    async def replay_periodically(interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            try:
                await container.plan_service.process_pending()
            except Exception:
                logger.exception("Periodic queue processing failed")

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        interval = app.state.container.settings.queue_poll_interval_seconds
        poller = (
            asyncio.create_task(replay_periodically(interval)) if interval else None
        )
        yield
        if poller is not None:
            poller.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await poller
        await app.state.container.close_resources()

    app = FastAPI(lifespan=lifespan)
    app.state.container = container

    app.include_router(admin_router)

    @app.exception_handler(ValidationError)
    async def validation_error(_: Request, exc: ValidationError) -> JSONResponse:
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={"detail": str(exc)},
        )

    @app.exception_handler(UserNotFoundError)
    async def user_not_found(_: Request, exc: UserNotFoundError) -> JSONResponse:
        return JSONResponse(
            status_code=status.HTTP_404_NOT_FOUND, content={"detail": str(exc)}
        )

    @app.exception_handler(NetworkError)
    async def network_error(_: Request, exc: NetworkError) -> JSONResponse:
        logger.warning("Upstream unavailable: %s", exc)
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"detail": "Plan service temporarily unavailable. Try again."},
        )

    @app.exception_handler(RecomputeTimeoutError)
    async def recompute_timeout(_: Request, exc: RecomputeTimeoutError) -> JSONResponse:
        return JSONResponse(
            status_code=status.HTTP_504_GATEWAY_TIMEOUT, content={"detail": str(exc)}
        )

    @app.get("/health")
    async def health() -> dict[str, str]:
        """Simple health check endpoint."""
        return {"status": "ok"}

    @app.get("/plans/{user_id}")
    async def get_plan(
        user_id: UUID, request: Request, force_recompute: bool = False
    ) -> PlanRecordModel:
        """Return the user's plan, recomputing when stale or forced."""
        state_container: AppContainer = request.app.state.container
        record = await state_container.plan_service.get_plan(
            user_id, force_recompute=force_recompute
        )
        return PlanRecordModel.from_domain(record)

    @app.post("/users/{user_id}/mutations", status_code=status.HTTP_202_ACCEPTED)
    async def submit_mutation(
        user_id: UUID, mutation: MutationRequest, request: Request, defer: bool = False
    ) -> MutationResponse:
        """Apply a mutation now, or queue it when offline or deferred."""
        state_container: AppContainer = request.app.state.container
        service = state_container.plan_service
        if defer:
            operation = service.enqueue_mutation(
                user_id, mutation.type, mutation.payload
            )
            return MutationResponse(
                applied=False, operation=PendingOperationModel.from_domain(operation)
            )

        outcome = await service.submit_mutation(
            user_id, mutation.type, mutation.payload
        )
        return MutationResponse(
            applied=outcome.applied,
            operation=(
                PendingOperationModel.from_domain(outcome.operation)
                if outcome.operation
                else None
            ),
            plan=PlanRecordModel.from_domain(outcome.plan) if outcome.plan else None,
        )

    @app.get("/users/{user_id}/pending-operations")
    async def pending_operations(
        user_id: UUID, request: Request
    ) -> list[PendingOperationModel]:
        """Return the user's queued mutations in replay order."""
        state_container: AppContainer = request.app.state.container
        return [
            PendingOperationModel.from_domain(operation)
            for operation in state_container.offline_queue.peek(user_id)
        ]

    @app.post("/users/{user_id}/failed-operations/retry")
    async def retry_failed(user_id: UUID, request: Request) -> ProcessResultModel:
        """Reset failed mutations and replay them."""
        state_container: AppContainer = request.app.state.container
        state_container.plan_service.retry_failed(user_id)
        result = await state_container.offline_queue.process_user(user_id)
        return ProcessResultModel.from_domain(result)

    @app.post("/connectivity/restored")
    async def connectivity_restored(request: Request) -> ProcessResultModel:
        """Replay everything queued while offline."""
        state_container: AppContainer = request.app.state.container
        result = await state_container.plan_service.on_connectivity_restored()
        return ProcessResultModel.from_domain(result)

    @app.post("/connectivity/lost")
    async def connectivity_lost(request: Request) -> dict[str, str]:
        """Queue subsequent mutations until connectivity returns."""
        state_container: AppContainer = request.app.state.container
        state_container.plan_service.mark_offline()
        return {"status": "offline"}

    @app.post("/metrics/compute")
    async def compute_metrics(
        biometrics: BiometricsModel, request: Request
    ) -> TargetsModel:
        """Compute targets for the given biometrics without caching."""
        state_container: AppContainer = request.app.state.container
        targets = state_container.calculator.compute(biometrics.to_domain())
        return TargetsModel.from_domain(targets)

    return app
