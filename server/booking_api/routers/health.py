"""Health check router."""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter

from ..schemas.health import HealthResponse, HealthStatus

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/health", tags=["health"])


@router.post("/ping", response_model=HealthResponse)
async def health_ping() -> HealthResponse:
    """Return current service status and timestamp."""
    response_data = HealthResponse(
        status=HealthStatus.HEALTHY,
        timestamp=datetime.now(timezone.utc),
        version="1.0.0",
    )
    logger.debug(
        "Health check requested",
        extra={"status": response_data.status, "timestamp": response_data.timestamp.isoformat()},
    )
    return response_data
