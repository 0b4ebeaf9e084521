"""FastAPI application setup and configuration."""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from redis.exceptions import RedisError

from .api import api_router
from .cache import NullCacheInvalidator, ProviderCacheInvalidator, RedisCache
from .config import Settings, get_settings
from .database import DatabaseManager
from .middleware import ErrorHandlerMiddleware, LoggingMiddleware
from .utils.effects import NonCriticalEffects
from .utils.logging_config import setup_logging

logger = logging.getLogger(__name__)

EFFECTS_DRAIN_TIMEOUT = 10.0


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup and shutdown events."""
    settings: Settings = app.state.settings

    # Startup
    logger.info("Starting Barber Booking Platform")
    db_manager = DatabaseManager(settings)
    await db_manager.initialize()
    app.state.db_manager = db_manager

    cache: Optional[RedisCache] = None
    if settings.enable_cache:
        cache = RedisCache(settings)
        try:
            await cache.initialize()
        except RedisError as e:
            # Invalidations will fail and be logged until Redis comes back
            logger.warning(f"Redis unavailable at startup: {e}")
        app.state.cache_invalidator = ProviderCacheInvalidator(cache)
    else:
        app.state.cache_invalidator = NullCacheInvalidator()
    app.state.cache = cache

    app.state.effects = NonCriticalEffects()
    logger.info("Barber Booking Platform started")

    yield

    # Shutdown
    logger.info("Shutting down Barber Booking Platform")
    await app.state.effects.drain(timeout=EFFECTS_DRAIN_TIMEOUT)
    if cache is not None:
        await cache.close()
    await db_manager.close()
    logger.info("Database connections closed")


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Build the FastAPI application.

    Database, cache and the effects runner are created in the lifespan and
    kept on ``app.state``; routes get them through dependencies.
    """
    settings = settings or get_settings()
    setup_logging(settings)

    app = FastAPI(
        title="Barber Booking Platform API",
        description=(
            "Scheduling and lifecycle engine for barber appointments: conflict-free "
            "slot allocation per barber, a strict booking state machine and an "
            "append-only audit trail."
        ),
        version="1.0.0",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_tags=[
            {
                "name": "bookings",
                "description": "Booking creation, rescheduling, status changes and history"
            },
            {
                "name": "health",
                "description": "System health and monitoring endpoints"
            }
        ],
        lifespan=lifespan,
    )
    app.state.settings = settings

    # 1. Logging middleware (first to capture all requests)
    app.add_middleware(
        LoggingMiddleware,
        log_requests=settings.enable_request_logging,
        log_responses=settings.enable_request_logging
    )

    # 2. Error handling middleware (catch all errors)
    app.add_middleware(ErrorHandlerMiddleware, debug=settings.debug)

    # 3. CORS middleware
    if settings.debug:
        cors_origins = ["*"]
        cors_allow_credentials = False  # Cannot use credentials with wildcard origins
    else:
        cors_origins = settings.cors_origins
        cors_allow_credentials = settings.cors_allow_credentials

    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=cors_allow_credentials,
        allow_methods=settings.cors_allow_methods,
        allow_headers=settings.cors_allow_headers,
        expose_headers=settings.cors_expose_headers
    )

    app.include_router(api_router)

    @app.get("/health", tags=["health"])
    async def health_check():
        """Basic health check endpoint for uptime monitoring."""
        return {"status": "healthy", "service": "barber-booking-platform"}

    @app.get("/health/detailed", tags=["health"])
    async def detailed_health_check():
        """Health of the database and the cache."""
        db_manager: Optional[DatabaseManager] = getattr(app.state, "db_manager", None)
        cache: Optional[RedisCache] = getattr(app.state, "cache", None)

        database_ok = False
        if db_manager is not None:
            try:
                database_ok = await db_manager.ping()
            except Exception as e:
                logger.error(f"Database health check failed: {e}")

        checks = {
            "database": database_ok,
            "cache": await cache.ping() if cache is not None else None,
        }
        return {
            "status": "healthy" if database_ok else "degraded",
            "checks": checks,
            "pending_effects": app.state.effects.pending if hasattr(app.state, "effects") else 0,
        }

    return app


app = create_app()
