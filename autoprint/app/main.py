"""
FastAPI Application Entry Point.

This is the main application file for the AutoPrint campus print service.
"""

import asyncio
import contextlib
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from autoprint.app.core.config import settings
from autoprint.app.api.v1.router import router as api_v1_router
from autoprint.app.db.session import engine, Base, AsyncSessionLocal
from autoprint.app.core.observability import ObservabilityMiddleware
from autoprint.app.core.sessions import build_session_store
from autoprint.app.services.maintenance import maintenance_loop
from autoprint.app.core.exceptions import (
    AppException,
    app_exception_handler,
    http_exception_handler,
    validation_exception_handler,
    generic_exception_handler
)

# Import models to ensure they are registered with Base
from autoprint.app.models.account import Account
from autoprint.app.models.document import Document
from autoprint.app.models.payment import Payment
from autoprint.app.models.print_job import PrintJob
from autoprint.app.models.ledger_entry import LedgerEntry
from autoprint.app.models.pricing_rule import PricingRule
from autoprint.app.models.audit_log import AuditLog

logger = logging.getLogger("autoprint")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for application startup/shutdown.

    1. Creates database tables on startup.
    2. Runs the maintenance sweep until shutdown.
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    maintenance = asyncio.create_task(
        maintenance_loop(AsyncSessionLocal, app.state.session_store, settings.maintenance_interval_seconds)
    )
    logger.info("AutoPrint started (session backend: %s)", settings.session_backend)
    yield

    maintenance.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await maintenance
    await engine.dispose()


# Initialize FastAPI application
app = FastAPI(
    title=settings.app_name,
    version=settings.api_version,
    debug=settings.debug,
    description="Print-job lifecycle and payment reconciliation for campus printing",
    lifespan=lifespan,
)

# Operator sessions belong to the application instance
app.state.session_store = build_session_store(settings)

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
    health = {
        "status": "healthy",
        "app_name": settings.app_name,
        "version": settings.api_version,
        "session_backend": settings.session_backend,
    }
    if settings.session_backend == "redis":
        from autoprint.app.core.redis_client import ping_redis
        redis_ok = await ping_redis()
        health["redis"] = "ok" if redis_ok else "unavailable"
        if not redis_ok:
            health["status"] = "degraded"
    return health


# Include API v1 router
app.include_router(api_v1_router, prefix=f"/{settings.api_version}")


@app.get("/", tags=["Root"])
async def root():
    """
    Root endpoint.

    Returns:
        dict: Welcome message and API documentation links
    """
    return {
        "message": "Welcome to the AutoPrint Campus Print Service API",
        "docs": "/docs",
        "health": "/health",
    }
