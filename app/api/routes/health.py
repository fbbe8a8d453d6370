"""Health check endpoint; exempt from request protection."""

import time
from datetime import UTC, datetime

from fastapi import APIRouter

from app.schemas.health import HealthResponse

router = APIRouter()

_STARTED_AT = time.monotonic()


@router.get("", response_model=HealthResponse)
def get_health() -> HealthResponse:
    """
    Return service status, server time and uptime in seconds.
    Used by load balancers and monitoring.
    """
    return HealthResponse(
        status="OK",
        timestamp=datetime.now(UTC).isoformat(),
        uptime=round(time.monotonic() - _STARTED_AT, 3),
    )
