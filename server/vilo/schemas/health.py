"""Health and readiness Pydantic schemas."""

from datetime import datetime
from enum import Enum
from typing import Dict

from pydantic import BaseModel, Field


class HealthStatus(str, Enum):
    """Health status enumeration."""
    HEALTHY = "healthy"
    READY = "ready"
    NOT_READY = "not_ready"


class PingResponse(BaseModel):
    """Ping response schema."""

    status: HealthStatus = Field(..., description="Service status")
    timestamp: datetime = Field(..., description="Current server time (UTC)")
    version: str = Field("1.0.0", description="API version")


class ReadinessResponse(BaseModel):
    """Readiness probe result with one entry per dependency."""

    status: HealthStatus
    service: str
    checks: Dict[str, str]
