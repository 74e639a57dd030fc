"""
Main FastAPI application.

Local service for the checkout orchestrator with:
- Payment dispatch with gateway failover
- Offline sale recording and reconciliation
- Request ID tracking and structured logging
- Health probes and Prometheus metrics
"""
import asyncio
import time
import uuid
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Optional

import structlog
from fastapi import FastAPI, Request, Response, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from pos_resilience import __version__
from pos_resilience.config import Settings, get_settings
from pos_resilience.database.connection import close_db, init_db
from pos_resilience.monitoring.logging import setup_logging

from .dependencies import ServiceContainer, build_services
from .routes import (
    gateway_router,
    monitoring_router,
    offline_router,
    payment_router,
    sync_router,
)

logger = structlog.get_logger(__name__)


def create_app(
    services: Optional[ServiceContainer] = None,
    settings: Optional[Settings] = None,
) -> FastAPI:
    """
    Build the application.

    Args:
        services: Prebuilt services; when given, the lifespan neither builds
            services nor touches the global database engine
        settings: Settings override

    Returns:
        FastAPI: Configured application
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, Any]:
        logger.info(
            "application_startup",
            app_name=settings.app_name,
            env=settings.app_env,
            sync_enabled=settings.sync_enabled,
        )

        owned = services is None
        if owned:
            try:
                await init_db()
                logger.info("database_initialized")
            except Exception as e:
                logger.error("database_initialization_failed", error=str(e))
                raise
            app.state.services = build_services(settings)

        container: ServiceContainer = app.state.services
        worker_task: Optional[asyncio.Task] = None
        if owned and settings.sync_enabled:
            worker_task = asyncio.create_task(container.sync_worker.start())

        yield

        logger.info("application_shutdown")
        container.sync_worker.stop()
        if worker_task is not None:
            worker_task.cancel()
            try:
                await worker_task
            except asyncio.CancelledError:
                pass

        if owned:
            try:
                await container.close()
                await close_db()
                logger.info("database_connections_closed")
            except Exception as e:
                logger.error("shutdown_error", error=str(e))

    app = FastAPI(
        title="POS Resilience",
        description=(
            "Payment dispatch with gateway failover, retry and circuit breaking, "
            "plus offline sale storage and reconciliation with the order ledger."
        ),
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )
    if services is not None:
        app.state.services = services

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.get_allowed_origins_list(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def add_request_id_middleware(request: Request, call_next: Any) -> Response:
        """Tag each request with an id and log its timing."""
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        start_time = time.time()

        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            method=request.method,
            path=request.url.path,
        )

        try:
            response = await call_next(request)
            response.headers["X-Request-ID"] = request_id
            logger.info(
                "request_completed",
                status_code=response.status_code,
                duration_seconds=time.time() - start_time,
            )
            return response

        except Exception as e:
            logger.error(
                "request_failed",
                error=str(e),
                duration_seconds=time.time() - start_time,
            )
            raise

        finally:
            structlog.contextvars.clear_contextvars()

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.error(
            "unhandled_exception",
            error=str(exc),
            error_type=type(exc).__name__,
            path=request.url.path,
        )

        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "error": "Internal server error",
                "message": "An unexpected error occurred. Please try again later.",
            },
        )

    app.include_router(payment_router)
    app.include_router(gateway_router)
    app.include_router(offline_router)
    app.include_router(sync_router)
    app.include_router(monitoring_router)

    @app.get("/", tags=["root"])
    async def root() -> dict[str, Any]:
        """Service information."""
        return {
            "service": settings.app_name,
            "version": __version__,
            "status": "operational",
            "environment": settings.app_env,
            "docs": "/docs",
            "health": "/health",
            "metrics": "/metrics",
        }

    return app


def run() -> None:
    """Console entry point."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "pos_resilience.api.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.debug,
        workers=settings.api_workers if not settings.debug else 1,
        log_level=settings.log_level.lower(),
    )


setup_logging()
app = create_app()


if __name__ == "__main__":
    run()
