"""FastAPI application - KB gateway."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import APIRouter, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from gateway.app.api.routes.conversations import router as conversations_router
from gateway.app.api.routes.documents import router as documents_router
from gateway.app.api.routes.health import router as health_router
from gateway.app.api.routes.metrics import router as metrics_router
from gateway.app.api.routes.query import router as query_router
from gateway.app.config import get_settings
from gateway.app.container import ServiceContainer, build_container
from gateway.app.errors import AuthenticationError, GatewayError, InternalError, ValidationError
from gateway.app.utils.logging import configure_logging

logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1"


async def handle_gateway_error(request: Request, exc: GatewayError) -> JSONResponse:
    """Render a GatewayError as the JSON error envelope."""
    if exc.status_code >= 500:
        logger.warning(
            f"{request.method} {request.url.path} failed: {exc.code}: {exc.message}",
            extra={"structured": {"code": exc.code, "details": exc.details}},
        )
    headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, AuthenticationError) else None
    return JSONResponse(status_code=exc.status_code, content=exc.to_envelope(), headers=headers)


async def handle_request_validation_error(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Render request-body/query validation failures as VALIDATION_ERROR."""
    errors = [
        {"field": ".".join(str(part) for part in err.get("loc", ())), "message": err.get("msg", "")}
        for err in exc.errors()
    ]
    error = ValidationError("Invalid request", details={"errors": errors})
    return JSONResponse(status_code=error.status_code, content=error.to_envelope())


async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    """Log and hide anything that is not a GatewayError."""
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    error = InternalError("Internal server error")
    return JSONResponse(status_code=error.status_code, content=error.to_envelope())


def create_app(container: ServiceContainer | None = None) -> FastAPI:
    """Build the application.

    Args:
        container: Prebuilt services; when omitted, services are built from
            settings at startup and closed at shutdown
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if container is not None:
            yield
            return

        settings = get_settings()
        configure_logging(settings.log_level)
        app.state.container = build_container(settings)
        try:
            yield
        finally:
            await app.state.container.aclose()

    app = FastAPI(title="KB Gateway", version="0.1.0", lifespan=lifespan)
    if container is not None:
        app.state.container = container

    app.add_exception_handler(GatewayError, handle_gateway_error)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, handle_request_validation_error)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, handle_unexpected_error)

    api = APIRouter(prefix=API_PREFIX)
    api.include_router(documents_router)
    api.include_router(conversations_router)
    api.include_router(query_router)

    # Register routes
    app.include_router(health_router)
    app.include_router(metrics_router, tags=["metrics"])
    app.include_router(api)

    return app


app = create_app()
