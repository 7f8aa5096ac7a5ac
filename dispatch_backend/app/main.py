"""
FastAPI Application Entry Point.

This is the main application file for the Route Dispatch Backend.
"""

import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from dispatch_backend.app.core.config import settings
from dispatch_backend.app.api.v1.router import router as api_v1_router
from dispatch_backend.app.core.observability import ObservabilityMiddleware
from dispatch_backend.app.core.redis_client import ping_redis, close_redis
from dispatch_backend.app.db.session import engine, Base
from dispatch_backend.app.core.exceptions import (
    AppException,
    app_exception_handler,
    http_exception_handler,
    validation_exception_handler,
    generic_exception_handler
)

# Import models to ensure they are registered with Base
from dispatch_backend.app.models.route import Route  # noqa: F401
from dispatch_backend.app.models.route_stop import RouteStop  # noqa: F401
from dispatch_backend.app.models.route_substitution import RouteSubstitution  # noqa: F401
from dispatch_backend.app.models.driver_availability import DriverAvailability  # noqa: F401
from dispatch_backend.app.models.dispatch_event import DispatchEvent  # noqa: F401
from dispatch_backend.app.models.dispatch_event_stop import DispatchEventStop  # noqa: F401
from dispatch_backend.app.models.audit_log import AuditLog  # noqa: F401

logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for application startup/shutdown.

    Creates database tables on startup; releases the database and Redis
    pools on shutdown.
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    await close_redis()
    await engine.dispose()

# Initialize FastAPI application
app = FastAPI(
    title=settings.app_name,
    version=settings.api_version,
    debug=settings.debug,
    description="Dispatch event lifecycle and stop execution engine",
    lifespan=lifespan,
)

app.add_middleware(ObservabilityMiddleware)

# Register global exception handlers
app.add_exception_handler(AppException, app_exception_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(Exception, generic_exception_handler)


@app.get("/health", tags=["Health"])
async def health_check():
    """
    Health check endpoint.

    Returns:
        dict: Status and application information
    """
    return {
        "status": "healthy",
        "app_name": settings.app_name,
        "version": settings.api_version,
        "redis": await ping_redis(),
    }


# Include API v1 router
app.include_router(api_v1_router, prefix=f"/{settings.api_version}")


@app.get("/", tags=["Root"])
async def root():
    return {
        "message": "Welcome to the Route Dispatch Backend API",
        "docs": "/docs",
        "health": "/health",
    }
