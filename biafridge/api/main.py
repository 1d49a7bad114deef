"""
Bia Fridge FastAPI Application - Main Entry Point
REST API for a household fridge-inventory tracker.

Features:
- Email/password and Google sign-in with JWT bearer auth
- Personal fridges created by an idempotent ensure protocol
- Shared fridges materialised when an invite is accepted
- Perishable items and per-fridge categories
- Notifications (welcome, first item, expiring tomorrow, invites, joins)
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from biafridge.api.config import get_settings
from biafridge.api.errors import FridgeAppError, IntegrityViolation
from biafridge.api.middleware.request_id import RequestIDLogFilter, RequestIDMiddleware
from biafridge.api.routers import (
    auth,
    fridges,
    invites,
    fridge_items,
    categories,
    notifications,
)
from biafridge.api.services.google_identity import GoogleTokenVerifier
from biafridge.api.services.mail_service import resolve_mail_sender
from biafridge.shared.database import init_database, close_database, check_database_health
from biafridge.shared.timeutils import utcnow

settings = get_settings()


def configure_logging() -> None:
    handlers = [logging.StreamHandler()]
    if settings.LOG_FILE:
        handlers.append(logging.FileHandler(settings.LOG_FILE))
    for handler in handlers:
        handler.addFilter(RequestIDLogFilter())
    logging.basicConfig(
        level=settings.LOG_LEVEL.upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - [%(request_id)s] %(message)s",
        handlers=handlers,
    )


# Configure logging
configure_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan manager.
    Handles startup and shutdown events.
    """
    # Startup
    logger.info("Starting Bia Fridge API...")
    try:
        await init_database()
        logger.info("Database initialized successfully")

        health = await check_database_health()
        logger.info(f"Database health: {health}")

        app.state.mailer = resolve_mail_sender(settings)
        logger.info(f"Mail transport: {app.state.mailer.name}")

        app.state.google_verifier = GoogleTokenVerifier.from_settings(settings)
        if not app.state.google_verifier.configured:
            logger.warning("Google sign-in is not configured")

        logger.info("Bia Fridge API is ready!")
    except Exception as e:
        logger.error(f"Startup failed: {e}")
        raise

    yield

    # Shutdown
    logger.info("Shutting down Bia Fridge API...")
    try:
        await close_database()
    except Exception as e:
        logger.error(f"Shutdown error: {e}")


# Create FastAPI application
app = FastAPI(
    title=settings.APP_NAME,
    description=(
        "REST API for the Bia Fridge household inventory tracker.\n\n"
        "Features:\n"
        "- Email/password and Google sign-in\n"
        "- Personal and shared fridges with invites\n"
        "- Item expiry tracking and notifications"
    ),
    version=settings.APP_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
)

# ============================================================================
# Middleware Configuration
# ============================================================================

# CORS - Allow frontend access
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Request-ID"],
)

# GZip compression for responses
app.add_middleware(GZipMiddleware, minimum_size=1000)

# Request ID tracking
app.add_middleware(RequestIDMiddleware)


# ============================================================================
# Exception Handlers
# ============================================================================

HTTP_ERROR_CODES = {
    status.HTTP_401_UNAUTHORIZED: "unauthorized",
    status.HTTP_403_FORBIDDEN: "forbidden",
    status.HTTP_404_NOT_FOUND: "not_found",
    status.HTTP_405_METHOD_NOT_ALLOWED: "method_not_allowed",
}


def error_response(status_code: int, error: str, message: str, headers=None, **extra) -> JSONResponse:
    """Every error leaves the API as ``{"error", "message", "timestamp", ...}``."""
    return JSONResponse(
        status_code=status_code,
        content={"error": error, "message": message, **extra, "timestamp": utcnow().isoformat()},
        headers=headers,
    )


@app.exception_handler(FridgeAppError)
async def fridge_app_exception_handler(request: Request, exc: FridgeAppError) -> JSONResponse:
    """Translate domain errors into their status code and JSON body."""
    if isinstance(exc, IntegrityViolation):
        # Broken invariants are logged in full but never described to the client
        logger.error(f"Integrity violation: {exc.message}", exc_info=exc)
        return error_response(
            exc.status_code, exc.code, "An internal data error occurred. Please contact support."
        )
    return error_response(exc.status_code, exc.code, exc.message, **exc.extra)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Auth failures and unknown routes, in the same body shape."""
    return error_response(
        exc.status_code,
        HTTP_ERROR_CODES.get(exc.status_code, "http_error"),
        str(exc.detail),
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed bodies and parameters are 400s."""
    details = [
        {
            "field": ".".join(str(loc) for loc in error["loc"]),
            "message": error["msg"],
            "type": error["type"],
        }
        for error in exc.errors()
    ]
    return error_response(
        status.HTTP_400_BAD_REQUEST, "validation_error", "Request validation failed", details=details
    )


@app.exception_handler(SQLAlchemyError)
async def sqlalchemy_exception_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.error(f"Database error on {request.method} {request.url.path}: {exc}", exc_info=True)
    return error_response(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "database_error",
        "A database error occurred. Please try again later.",
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(f"Unexpected error on {request.method} {request.url.path}: {exc}", exc_info=True)
    return error_response(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "internal_error",
        "An unexpected error occurred. Please contact support.",
    )


# ============================================================================
# Router Registration
# ============================================================================

# Authentication endpoints
app.include_router(
    auth.router,
    prefix="/auth",
    tags=["Authentication"],
)

# Fridges & membership
app.include_router(
    fridges.router,
    prefix="/fridges",
    tags=["Fridges"],
)

# Invites
app.include_router(
    invites.router,
    prefix="/invites",
    tags=["Invites"],
)

# Fridge inventory
app.include_router(
    fridge_items.router,
    prefix="/fridge-items",
    tags=["Fridge Items"],
)

# Categories
app.include_router(
    categories.router,
    prefix="/categories",
    tags=["Categories"],
)

# Notifications
app.include_router(
    notifications.router,
    prefix="/notifications",
    tags=["Notifications"],
)


# ============================================================================
# Health Check Endpoints
# ============================================================================

@app.get(
    "/",
    summary="Root endpoint",
    description="Welcome message and API information",
)
async def root() -> dict:
    """Root endpoint - API information."""
    return {
        "service": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "status": "operational",
        "documentation": "/docs",
        "timestamp": utcnow().isoformat(),
    }


@app.get(
    "/health",
    summary="Health check",
    description="Check API and database health status",
    tags=["Health"],
)
async def health_check() -> dict:
    """Health check endpoint."""
    db_health = await check_database_health()
    return {
        "status": "healthy" if db_health["status"] == "healthy" else "unhealthy",
        "timestamp": utcnow().isoformat(),
        "database": db_health,
        "api": {
            "version": settings.APP_VERSION,
            "environment": settings.ENVIRONMENT,
        },
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "biafridge.api.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower(),
    )
