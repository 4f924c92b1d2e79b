"""FastAPI application entry point.

Configures the application with logging, service wiring, exception
handling, metrics and health checks.
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import Any

from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse

from event_search import __version__
from event_search.api.dependencies import build_services
from event_search.api.routes import router
from event_search.config import get_settings
from event_search.exceptions import ErrorCode, EventSearchError
from event_search.logging_config import get_logger, setup_logging
from event_search.observability.metrics import (
    MetricsMiddleware,
    get_metrics,
    get_metrics_content_type,
)

logger = get_logger(__name__)

# Errors reported to clients with their own code and message; everything
# else collapses into a generic internal error.
_CLIENT_ERROR_STATUS = {
    ErrorCode.INVALID_QUERY: 400,
    ErrorCode.EVENT_NOT_FOUND: 404,
}


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager.

    Builds the process-wide services on startup and closes them on shutdown.
    """
    settings = get_settings()
    setup_logging(level=settings.log_level)
    logger.info(
        "Starting Event Search",
        extra={
            "version": __version__,
            "environment": settings.environment.value,
            "embedding_backend": settings.embedding.backend.value,
        },
    )

    app.state.services = build_services(settings)

    yield

    logger.info("Shutting down Event Search")
    await app.state.services.close()
    app.state.services = None


def create_app() -> FastAPI:
    """Create and configure the FastAPI application.

    Returns:
        Configured FastAPI application instance.
    """
    settings = get_settings()

    app = FastAPI(
        title="Event Search",
        description="Semantic event search and ranking service",
        version=__version__,
        lifespan=lifespan,
        debug=settings.debug,
    )

    app.add_middleware(MetricsMiddleware)
    app.add_exception_handler(EventSearchError, event_search_exception_handler)

    app.add_api_route("/health", health_check, methods=["GET"], tags=["Health"])
    app.add_api_route("/health/ready", readiness_check, methods=["GET"], tags=["Health"])
    app.add_api_route("/health/live", liveness_check, methods=["GET"], tags=["Health"])
    app.add_api_route("/metrics", metrics_endpoint, methods=["GET"], tags=["Monitoring"])
    app.include_router(router)

    return app


async def event_search_exception_handler(
    request: Request,
    exc: Exception,
) -> JSONResponse:
    """Handle EventSearchError exceptions.

    Client errors keep their code and message. Embedding, index, store and
    other internal failures are logged in full and returned as a generic
    internal error.
    """
    if not isinstance(exc, EventSearchError):
        return JSONResponse(
            status_code=500,
            content=EventSearchError("Internal server error").to_dict(),
        )

    status_code = _CLIENT_ERROR_STATUS.get(exc.code)
    if status_code is not None:
        logger.info(
            f"Request rejected: {exc.message}",
            extra={"error_code": exc.code.value, "path": request.url.path},
        )
        return JSONResponse(status_code=status_code, content=exc.to_dict())

    logger.error(
        f"Request failed: {exc.message}",
        extra={
            "error_code": exc.code.value,
            "path": request.url.path,
            "details": exc.details,
        },
    )
    return JSONResponse(
        status_code=500,
        content=EventSearchError("Internal server error").to_dict(),
    )


async def health_check() -> dict[str, Any]:
    """Basic health check endpoint.

    Returns:
        Health status with version and timestamp.
    """
    return {
        "status": "healthy",
        "version": __version__,
        "timestamp": datetime.now(UTC).isoformat(),
    }


async def readiness_check(request: Request) -> dict[str, Any]:
    """Kubernetes readiness probe.

    Reports whether services are wired and the embedding model is loaded.
    The model loads lazily, so "not_loaded" does not make the service unready.
    """
    services = getattr(request.app.state, "services", None)
    checks: dict[str, str] = {
        "config": "ok",
        "services": "ok" if services is not None else "not_initialized",
    }

    if services is not None:
        loaded = getattr(services.embedding_provider, "is_loaded", True)
        checks["embedding_model"] = "loaded" if loaded else "not_loaded"

    ready = checks["services"] == "ok"

    return {
        "status": "ready" if ready else "not_ready",
        "checks": checks,
        "timestamp": datetime.now(UTC).isoformat(),
    }


async def liveness_check() -> dict[str, str]:
    """Kubernetes liveness probe.

    Returns:
        Liveness status.
    """
    return {"status": "alive"}


async def metrics_endpoint() -> Response:
    """Prometheus scrape endpoint."""
    return Response(content=get_metrics(), media_type=get_metrics_content_type())


# Create the application instance
app = create_app()
