"""Health check endpoints.

Provides endpoints for monitoring service health and readiness.
"""

import structlog
from fastapi import APIRouter, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError

from storefront.api.dependencies import SessionDep
from storefront.infrastructure.config import settings
from storefront.infrastructure.database import ping

logger = structlog.get_logger()

router = APIRouter()


class HealthResponse(BaseModel):
    """Health check response schema."""

    status: str
    service: str
    version: str


@router.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """Check service health.

    Returns:
        Health status with service name and version.
    """
    return HealthResponse(
        status="healthy",
        service="storefront",
        version=settings.api_version,
    )


@router.get("/ready")
async def readiness_check(session: SessionDep) -> JSONResponse:
    """Check that the database answers.

    Returns:
        200 when ready, 503 otherwise.
    """
    try:
        await ping(session)
    except SQLAlchemyError as e:
        logger.warning("Readiness check failed", error=str(e))
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"status": "unavailable"},
        )
    return JSONResponse(content={"status": "ready"})
