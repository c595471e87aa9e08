"""
Application factory for the identity API.

Wires storage, notifications and the identity service at startup, installs
the error envelope handlers and mounts the versioned routes.
"""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from psycopg_pool import ConnectionPool

from src.adapters.repository.postgres import run_migrations
from src.api.dependencies import build_identity_service, build_notification_sink, build_stores
from src.api.errors import register_exception_handlers
from src.api.v1 import router as v1_router
from src.config.settings import get_settings

logger = logging.getLogger(__name__)

# OpenAPI tags for documentation grouping
tags_metadata = [
    {
        "name": "v1",
        "description": "Identity API v1 - Signup, verification, sign-in and sessions",
    },
]


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Startup and shutdown of shared resources:

    - Creates database connection pool and runs migrations (postgres backend)
    - Wires the identity service onto app state
    - Drains the notification queue and closes the pool on shutdown
    """
    settings = get_settings()
    logging.basicConfig(level=settings.log_level.upper())

    logger.info("Starting application (%s)...", settings.environment)

    pool = None
    if settings.storage_backend == "postgres":
        logger.info(
            "Opening PostgreSQL pool (%d-%d connections)",
            settings.pool_min_size,
            settings.pool_max_size,
        )
        pool = ConnectionPool(
            conninfo=settings.database_url,
            min_size=settings.pool_min_size,
            max_size=settings.pool_max_size,
        )
        logger.info("Applying schema migrations")
        run_migrations(pool)

    notifications = build_notification_sink(settings)
    stores = build_stores(settings, pool)

    app.state.pool = pool
    app.state.notifications = notifications
    app.state.identity_service = build_identity_service(settings, stores, notifications)

    logger.info("Identity service ready (storage=%s)", settings.storage_backend)

    yield

    logger.info("Draining notification queue")
    notifications.shutdown(wait=True)
    if pool is not None:
        pool.close()
        logger.info("PostgreSQL pool closed")


def create_app() -> FastAPI:
    """Build the application with routes and error handlers installed."""
    settings = get_settings()
    application = FastAPI(
        title="verigate",
        description="Identity, verification and session lifecycle API",
        version="0.1.0",
        openapi_tags=tags_metadata,
        lifespan=lifespan,
    )
    register_exception_handlers(application, include_debug=not settings.is_production)
    application.include_router(v1_router, prefix="/v1")

    @application.get("/health")
    def health_check(request: Request) -> dict[str, str]:
        """
        Liveness check. Touches the database when the postgres backend is active.
        """
        pool = getattr(request.app.state, "pool", None)
        if pool is not None:
            with pool.connection() as conn:
                conn.execute("SELECT 1")
        return {"status": "healthy"}

    return application


app = create_app()
