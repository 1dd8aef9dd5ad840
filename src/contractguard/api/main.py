"""
FastAPI application entry point.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from redis.exceptions import RedisError

from contractguard import __version__
from contractguard.config import get_settings
from contractguard.container import ServiceContainer
from contractguard.errors import AppError
from contractguard.logging_config import configure_logging
from contractguard.models.api import HealthResponse

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager."""
    # Startup
    logger.info("application_starting")

    owns_container = app.state.container is None
    if owns_container:
        settings = get_settings()
        configure_logging(settings.log_level, settings.json_logs)
        app.state.container = ServiceContainer.from_settings(settings)
        logger.info(
            "configuration_loaded",
            environment=settings.environment,
            debug=settings.debug,
        )

    yield

    # Shutdown
    logger.info("application_shutting_down")
    if owns_container:
        await app.state.container.aclose()
        app.state.container = None


def create_app(container: ServiceContainer | None = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    A prebuilt container is used as-is and never closed by the app;
    otherwise the lifespan builds one from settings.
    """
    settings = get_settings()

    app = FastAPI(
        title="ContractGuard API",
        description="Contract risk analysis and semantic search",
        version=__version__,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )
    app.state.container = container

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if settings.debug else settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Exception handlers
    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
        logger.warning(
            "request_failed",
            path=request.url.path,
            status=exc.status_code,
            error=exc.message,
        )
        return JSONResponse(
            status_code=exc.status_code,
            content=exc.to_response(instance=request.url.path),
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(
        request: Request,
        exc: Exception,
    ) -> JSONResponse:
        logger.error(
            "unhandled_exception",
            path=request.url.path,
            method=request.method,
            error=str(exc),
        )
        return JSONResponse(
            status_code=500,
            content={
                "error": {
                    "type": "internal-error",
                    "title": "Internal Server Error",
                    "status": 500,
                    "detail": str(exc) if settings.debug else None,
                }
            },
        )

    # Include routers
    from contractguard.api.routes import contracts, search

    app.include_router(contracts.router, prefix="/api/v1/contracts", tags=["contracts"])
    app.include_router(search.router, prefix="/api/v1/search", tags=["search"])

    # Health check
    @app.get("/health", response_model=HealthResponse)
    async def health_check(request: Request) -> HealthResponse:
        """Database, cache and queue status."""
        services: ServiceContainer = request.app.state.container

        database_ok = await services.db.health_check()
        cache_ok = await services.cache.health_check()

        queues: dict[str, dict] = {}
        for queue in (services.analysis_queue, services.embedding_queue):
            try:
                queues[queue.name] = await queue.stats()
            except RedisError as e:
                logger.warning("queue_stats_failed", queue=queue.name, error=str(e))
                queues[queue.name] = {"error": str(e)}

        return HealthResponse(
            status="healthy" if database_ok and cache_ok else "degraded",
            version=__version__,
            services={
                "database": database_ok,
                "cache": cache_ok,
                "queues": queues,
            },
        )

    return app
