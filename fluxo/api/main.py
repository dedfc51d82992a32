"""
FastAPI application with assembled routers.

Initializes FastAPI app with all API routers and configures uvicorn server.

Dependencies: fastapi, fluxo.api.routers, uvicorn
System role: API entry point with router assembly and server launch
"""

import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from fluxo.api.deps.dependencies import get_service_cache
from fluxo.boundary.db.create_tables import create_all_tables
from fluxo.configs import get_settings
from fluxo.observability.logger import configure_logging
from fluxo.observability.middleware import CorrelationMiddleware, RequestLoggingMiddleware
from .routers import (
    admin_billing_router,
    admin_sources_router,
    billing_router,
    health_router,
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan context manager.

    Configures logging, creates tables on SQLite deployments, and clears
    cached clients on shutdown.
    """
    settings = get_settings()
    configure_logging(settings.log_level)

    if settings.database.is_sqlite:
        await create_all_tables()

    logger.info("Application started", extra={"environment": settings.environment})

    yield

    get_service_cache().clear()
    logger.info("Service cache cleared")


def create_app() -> FastAPI:
    """
    Create and configure FastAPI application with routers.

    Returns:
        FastAPI: Configured application instance with all routers registered
    """
    settings = get_settings()

    app = FastAPI(
        title="Fluxo Alfa API",
        description="Subscription billing and knowledge-base ingestion for the Fluxo chat platform",
        version="0.1.0",
        lifespan=lifespan,
        docs_url=None if settings.is_production else "/docs",
        redoc_url=None if settings.is_production else "/redoc",
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Added last so it runs first and the request log carries the correlation ID
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(CorrelationMiddleware)

    # Register all routers with /api/v1 prefix for versioning
    app.include_router(health_router, prefix="/api/v1")
    app.include_router(billing_router, prefix="/api/v1")
    app.include_router(admin_sources_router, prefix="/api/v1")
    app.include_router(admin_billing_router, prefix="/api/v1")

    return app


app = create_app()


if __name__ == "__main__":
    uvicorn.run(
        "fluxo.api.main:app",
        host="0.0.0.0",
        port=8000,
    )
