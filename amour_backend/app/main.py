"""
FastAPI Application Entry Point.

Accounting core of the Amour back end: payment crediting, influencer
payouts and AI usage accounting.
"""

import asyncio
import contextlib
from contextlib import asynccontextmanager
from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from amour_backend.app.core.config import settings
from amour_backend.app.api.v1.router import router as api_v1_router
from amour_backend.app.db.session import engine, Base, AsyncSessionLocal
from amour_backend.app.core.observability import ObservabilityMiddleware, configure_logging
from amour_backend.app.core.exceptions import (
    AppException,
    STORE_ERRORS,
    app_exception_handler,
    http_exception_handler,
    validation_exception_handler,
    store_exception_handler,
    generic_exception_handler
)
from amour_backend.app.services.usage_accounting import run_usage_purge_loop

# Import models to ensure they are registered with Base
from amour_backend.app.models.account import Account
from amour_backend.app.models.applied_order import AppliedOrder
from amour_backend.app.models.payment_event import PaymentEvent
from amour_backend.app.models.influencer import Influencer
from amour_backend.app.models.payout_history import PayoutHistory
from amour_backend.app.models.usage_event import UsageEvent
from amour_backend.app.models.usage_aggregate import UsageAggregate
from amour_backend.app.models.dlq import DeadLetterQueue
from amour_backend.app.models.audit_log import AuditLog

configure_logging(settings.log_level)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for application startup/shutdown.

    1. Creates database tables on startup.
    2. Runs the usage log purge loop until shutdown.
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    purge_task = asyncio.create_task(
        run_usage_purge_loop(AsyncSessionLocal, settings.usage_purge_interval_seconds)
    )
    yield
    purge_task.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await purge_task
    await engine.dispose()


# Initialize FastAPI application
app = FastAPI(
    title=settings.app_name,
    version=settings.api_version,
    debug=settings.debug,
    description="Credit ledger, influencer payouts and AI usage accounting",
    lifespan=lifespan,
)

app.add_middleware(ObservabilityMiddleware)

# Register global exception handlers
app.add_exception_handler(AppException, app_exception_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
for store_error in STORE_ERRORS:
    app.add_exception_handler(store_error, store_exception_handler)
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
    }


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
        "message": "Welcome to the Amour Accounting API",
        "docs": "/docs",
        "health": "/health",
    }
