"""Health check router."""

import logging

from fastapi import APIRouter

from ..core.clock import utcnow
from ..core.observability import SERVICE_VERSION
from ..core.responses import success_response
from ..schemas.health import HealthStatus, PingResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/health", tags=["health"])


@router.post("/ping")
async def health_ping():
    """Liveness ping returning the server time."""
    response_data = PingResponse(
        status=HealthStatus.HEALTHY,
        timestamp=utcnow(),
        version=SERVICE_VERSION,
    )
    logger.debug("Health ping", extra={"timestamp": response_data.timestamp.isoformat()})
    return success_response(response_data)
