"""Liveness and readiness endpoints.

- /healthz: process is up
- /readyz: database, workflow engine and backend query service reachable
"""

from datetime import datetime, timezone
from typing import Annotated, Any

import httpx
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from gateway.app.api.deps import get_container
from gateway.app.container import ServiceContainer
from gateway.app.services.workflows import WorkflowError

router = APIRouter(tags=["health"])


async def check_db(container: ServiceContainer) -> tuple[bool, str]:
    """Check database connectivity.

    Returns:
        (is_ok, status_message)
    """
    try:
        await container.check_database()
        return (True, "ok")
    except (SQLAlchemyError, OSError) as e:
        return (False, f"error: {type(e).__name__}")


async def check_workflows(container: ServiceContainer) -> tuple[bool, str]:
    """Check workflow engine connectivity.

    Returns:
        (is_ok, status_message)
    """
    try:
        await container.workflows.check_health()
        return (True, "ok")
    except WorkflowError as e:
        return (False, f"error: {type(e).__name__}")


async def check_backend(container: ServiceContainer) -> tuple[bool, str]:
    """Check the backend query service readiness endpoint.

    Returns:
        (is_ok, status_message)
    """
    if container.backend_client is None:
        return (True, "not_configured")

    try:
        response = await container.backend_client.get("/readyz")
    except httpx.HTTPError as e:
        return (False, f"error: {type(e).__name__}")

    if response.status_code != httpx.codes.OK:
        return (False, f"error: status {response.status_code}")
    return (True, "ok")


@router.get("/healthz")
async def healthz() -> dict[str, str]:
    """Liveness check for Docker/k8s.

    Returns:
        200 OK always (application is running)
    """
    return {"status": "healthy", "timestamp": datetime.now(timezone.utc).isoformat()}


@router.get("/readyz", response_model=None)
async def readyz(
    container: Annotated[ServiceContainer, Depends(get_container)],
) -> dict[str, Any] | JSONResponse:
    """Readiness check.

    Returns:
        200 with dependency status if every dependency is reachable
        503 otherwise
    """
    db_ok, db_status = await check_db(container)
    workflows_ok, workflows_status = await check_workflows(container)
    backend_ok, backend_status = await check_backend(container)

    ready = db_ok and workflows_ok and backend_ok
    body = {
        "status": "ready" if ready else "not_ready",
        "dependencies": {
            "database": db_status,
            "workflow_engine": workflows_status,
            "python_core": backend_status,
        },
    }

    if not ready:
        return JSONResponse(content=body, status_code=503)
    return body
