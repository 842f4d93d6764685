"""
CV Transformer - FastAPI Application

Main entry point for the billing backend.
Provides endpoints for entitlements, subscription changes, quota usage,
Stripe webhooks and admin role management.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.config.settings import settings
from app.domain.plans import validate_catalog
from app.infrastructure.db.database import close_db, init_db
from app.infrastructure.exceptions import (
    BillingError,
    ConcurrentModificationError,
    ConfigurationError,
    CVTransformerError,
    EmailAlreadyRegisteredError,
    InvalidTransitionError,
    NotFoundError,
    PermissionDeniedError,
    QuotaExceededError,
    SubscriptionRequiredError,
    UnknownPlanError,
    UnverifiedPaymentEventError,
)

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper()),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown."""
    # Startup
    logger.info(f"CV Transformer Backend starting in {settings.environment} mode...")

    # A malformed catalog is fatal
    validate_catalog()

    try:
        await init_db()
        logger.info("SQLModel database connection pool initialized")
    except Exception as e:
        logger.warning(f"SQLModel database initialization skipped: {e}")

    yield

    # Shutdown
    await close_db()
    logger.info("CV Transformer Backend shutting down...")


app = FastAPI(
    title="CV Transformer",
    description="Subscription, entitlement and quota backend for CV Transformer",
    version="1.0.0",
    lifespan=lifespan,
    debug=settings.debug,
)

# CORS configuration from Settings
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ============================================================================
# Exception Handlers
# ============================================================================

# Most specific class first; the first match in the exception's MRO wins.
ERROR_STATUS_CODES = {
    InvalidTransitionError: 409,
    ConcurrentModificationError: 409,
    EmailAlreadyRegisteredError: 409,
    QuotaExceededError: 429,
    SubscriptionRequiredError: 402,
    UnverifiedPaymentEventError: 400,
    UnknownPlanError: 400,
    NotFoundError: 404,
    PermissionDeniedError: 403,
    ConfigurationError: 503,
    BillingError: 502,
}


def status_code_for(exc: CVTransformerError) -> int:
    for cls in type(exc).__mro__:
        if cls in ERROR_STATUS_CODES:
            return ERROR_STATUS_CODES[cls]
    return 500


@app.exception_handler(CVTransformerError)
async def application_error_handler(request: Request, exc: CVTransformerError):
    """Map domain and infrastructure errors to HTTP responses."""
    status_code = status_code_for(exc)
    if status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")

    return JSONResponse(
        status_code=status_code,
        content=exc.to_dict(),
    )


# ============================================================================
# Health Check
# ============================================================================

@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "service": "cv-transformer"}


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "message": "CV Transformer API",
        "version": "1.0.0",
        "docs": "/docs",
    }


# ============================================================================
# Import and register routers
# ============================================================================

from app.api.routes import admin, subscriptions, webhooks  # noqa: E402

app.include_router(subscriptions.router, prefix="/api", tags=["Subscriptions"])
app.include_router(webhooks.router, prefix="/api", tags=["Webhooks"])
app.include_router(admin.router, prefix="/api", tags=["Admin"])
