"""
Merchant Billing Sync - Main Application
========================================

FastAPI application entry point with middleware configuration
and route registration.
"""

import logging
import time
from contextlib import asynccontextmanager
from typing import AsyncGenerator

import newrelic.agent

# Configure logging for the application (root logger defaults to WARNING)
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from merchant_billing.config import settings
from merchant_billing.db.session import init_db, close_db
from merchant_billing.services.cache import init_redis, close_redis
from merchant_billing.core.errors import setup_exception_handlers

logger = logging.getLogger(__name__)

VERSION = "1.0.0"


# =============================================================================
# New Relic Transaction Enrichment Middleware (Raw ASGI)
# =============================================================================

class NewRelicTransactionMiddleware:
    """
    Raw ASGI middleware that enriches every New Relic transaction with
    custom attributes for filtering and alerting on webhook traffic.

    Uses raw ASGI instead of BaseHTTPMiddleware to preserve the async
    context chain, so DB and Redis spans stay attached to the transaction.

    Captures: response status, latency, HTTP method and route pattern.
    """

    def __init__(self, app):
        self.app = app

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        start = time.perf_counter()
        status_code = 500  # default until we capture the real one

        async def send_wrapper(message):
            nonlocal status_code
            if message["type"] == "http.response.start":
                status_code = message["status"]
            await send(message)

        try:
            await self.app(scope, receive, send_wrapper)
        finally:
            duration_ms = (time.perf_counter() - start) * 1000

            txn = newrelic.agent.current_transaction()
            if txn:
                route = scope.get("route")
                route_path = route.path if route else scope.get("path", "unknown")

                newrelic.agent.add_custom_attributes([
                    ("http.method", scope.get("method", "")),
                    ("http.route", route_path),
                    ("http.status_code", status_code),
                    ("http.duration_ms", round(duration_ms, 2)),
                    ("environment", settings.ENVIRONMENT),
                    ("polar.environment", settings.POLAR_ENVIRONMENT),
                ])


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan manager.

    Handles startup and shutdown events for:
    - Database connection
    - Redis connection
    """
    logger.info(
        "Starting Merchant Billing Sync (environment=%s, polar=%s)",
        settings.ENVIRONMENT,
        settings.POLAR_ENVIRONMENT,
    )

    if not settings.POLAR_WEBHOOK_SECRET:
        logger.warning("POLAR_WEBHOOK_SECRET is not set; webhook signatures are not verified")

    # Continue startup even if DB/Redis fail (for health checks)
    try:
        await init_db()
    except Exception as e:
        logger.warning("Database connection failed: %s", e)

    try:
        await init_redis()
    except Exception as e:
        logger.warning("Redis connection failed: %s", e)

    yield

    logger.info("Shutting down Merchant Billing Sync")
    await close_db()
    await close_redis()


# Create FastAPI application
app = FastAPI(
    title="Merchant Billing Sync",
    description="""
## Storefront merchant billing backend

Receives Polar webhooks and keeps each merchant's subscription
status, plan and billing period in sync in Supabase.
    """,
    version=VERSION,
    docs_url="/docs" if settings.is_development else None,
    redoc_url="/redoc" if settings.is_development else None,
    openapi_url="/openapi.json" if settings.is_development else None,
    lifespan=lifespan,
    responses={
        400: {"description": "Malformed payload"},
        401: {"description": "Invalid webhook signature"},
        500: {"description": "Internal server error"},
    },
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# New Relic transaction enrichment (adds custom attrs to every transaction)
app.add_middleware(NewRelicTransactionMiddleware)

# Setup exception handlers
setup_exception_handlers(app)


# =============================================================================
# Health Check Endpoints
# =============================================================================

@app.get("/health", tags=["Health"])
async def health_check() -> dict:
    """
    Health check endpoint.

    Returns the current status of the API.
    """
    return {
        "status": "healthy",
        "version": VERSION,
        "environment": settings.ENVIRONMENT,
    }


@app.get("/", tags=["Health"])
async def root() -> dict:
    """Root endpoint with API information."""
    return {
        "status": "ok",
        "name": "Merchant Billing Sync",
        "version": VERSION,
        "polar_environment": settings.POLAR_ENVIRONMENT,
    }


# =============================================================================
# API Routes
# =============================================================================

from merchant_billing.api.v1 import webhooks
app.include_router(webhooks.router, prefix="/api", tags=["Webhooks"])
