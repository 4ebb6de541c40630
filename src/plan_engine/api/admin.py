"""Admin API endpoints with simple token auth."""

from __future__ import annotations

import secrets
from typing import TYPE_CHECKING
from uuid import UUID  # noqa: TC003

from fastapi import APIRouter, Depends, Header, HTTPException, Request, status

from plan_engine.api.models import PendingOperationModel

if TYPE_CHECKING:
    from plan_engine.containers import AppContainer

router = APIRouter(prefix="/admin", tags=["admin"])


def _configured_admin_token(request: Request) -> str:
    container: AppContainer = request.app.state.container
    return container.settings.admin_token


async def require_admin(
    x_admin_token: str | None = Header(default=None),
    admin_token: str = Depends(_configured_admin_token),
) -> None:
    """Reject requests whose X-Admin-Token does not match the configured token."""
    if not x_admin_token or not secrets.compare_digest(
        x_admin_token.encode(), admin_token.encode()
    ):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED)


@router.get("/health", dependencies=[Depends(require_admin)])
async def admin_health(request: Request) -> dict[str, object]:
    """Admin health check with connectivity state."""
    container: AppContainer = request.app.state.container
    return {"status": "ok", "online": container.plan_service.online}


@router.get("/conflicts", dependencies=[Depends(require_admin)])
async def conflict_stats(request: Request) -> dict[str, object]:
    """Return counts of discarded superseded plan results."""
    container: AppContainer = request.app.state.container
    return container.conflict_resolver.stats()


@router.get("/failed-operations", dependencies=[Depends(require_admin)])
async def failed_operations(
    request: Request, user_id: UUID | None = None
) -> dict[str, object]:
    """Return mutations that exhausted their retries."""
    container: AppContainer = request.app.state.container
    operations = container.offline_queue.failed(user_id)
    return {
        "operations": [
            PendingOperationModel.from_domain(operation).model_dump(
                mode="json", by_alias=True
            )
            for operation in operations
        ]
    }


@router.delete(
    "/operations/{operation_id}",
    dependencies=[Depends(require_admin)],
    status_code=status.HTTP_204_NO_CONTENT,
)
async def discard_operation(operation_id: UUID, request: Request) -> None:
    """Drop a queued operation."""
    container: AppContainer = request.app.state.container
    if not container.offline_queue.discard(operation_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND)
