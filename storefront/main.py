"""Storefront API main application module.

This module initializes the FastAPI application and configures
core middleware, routers, and startup/shutdown events.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

import structlog
from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from storefront.api import (
    admin_router,
    carts_router,
    health_router,
    orders_router,
    webhooks_router,
)
from storefront.api.middleware import setup_middleware
from storefront.domain.exceptions import DomainError
from storefront.infrastructure.config import settings
from storefront.infrastructure.database import dispose_engine
from storefront.infrastructure.logging import configure_logging
from storefront.infrastructure.notifier import create_notifier
from storefront.infrastructure.prodamus import ProdamusGateway

configure_logging(settings.log_level, json_output=settings.log_json)

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Handle application startup and shutdown events.

    Args:
        app: The FastAPI application instance.

    Yields:
        None after startup, cleanup happens after yield.
    """
    # Startup
    logger.info(
        "Starting storefront API",
        version=settings.api_version,
        debug=settings.debug,
    )

    app.state.notifier = create_notifier(
        settings.telegram_bot_token,
        settings.telegram_admin_chat_id,
        timeout=settings.telegram_timeout_seconds,
    )
    app.state.payment_gateway = ProdamusGateway(
        secret_key=settings.prodamus_secret_key,
        payment_form_url=settings.prodamus_payment_form_url,
    )
    if not app.state.payment_gateway.is_configured:
        logger.warning("Payment gateway secret is not configured, online payment is disabled")

    yield

    # Shutdown
    await app.state.notifier.close()
    await dispose_engine()
    logger.info("Shutting down storefront API")


app = FastAPI(
    title="Storefront API",
    description="Cart pricing, order placement and payment reconciliation",
    version=settings.api_version,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# CORS middleware (must be added before custom middleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.frontend_url],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Setup custom middleware (request ID, admin auth, error handling)
setup_middleware(app)

# Include routers
app.include_router(health_router, tags=["Health"])
app.include_router(carts_router)
app.include_router(orders_router)
app.include_router(admin_router)
app.include_router(webhooks_router)


# ============================================================================
# Custom Exception Handlers
# ============================================================================


@app.exception_handler(DomainError)
async def domain_exception_handler(request: Request, exc: DomainError) -> JSONResponse:
    """Map domain errors to their HTTP status with the standard error body."""
    request_id = getattr(request.state, "request_id", None)

    if exc.status_code >= 500:
        logger.error("Domain error", error_code=exc.error_code, error=exc.message)
    else:
        logger.info("Request rejected", error_code=exc.error_code, error=exc.message)

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error_code": exc.error_code,
            "message": exc.message,
            "details": exc.details,
            "request_id": request_id,
        },
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Handle HTTP exceptions with consistent format."""
    request_id = getattr(request.state, "request_id", None)

    detail = exc.detail
    if isinstance(detail, dict):
        error_code = detail.get("error_code", "ERROR")
        message = detail.get("message", str(detail))
        details = detail.get("details", [])
    else:
        error_code = "ERROR"
        message = str(detail)
        details = []

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error_code": error_code,
            "message": message,
            "details": details,
            "request_id": request_id,
        },
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle uncaught exceptions with consistent format."""
    request_id = getattr(request.state, "request_id", None)

    logger.exception(
        "Unhandled exception in handler",
        path=request.url.path,
        method=request.method,
        error=str(exc),
    )

    return JSONResponse(
        status_code=500,
        content={
            "error_code": "INTERNAL_ERROR",
            "message": "An internal error occurred",
            "details": [],
            "request_id": request_id,
        },
    )
