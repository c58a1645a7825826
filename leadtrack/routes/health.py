# leadtrack/routes/health.py
from __future__ import annotations

import time
from datetime import datetime, timezone

from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse

from leadtrack import __version__
from leadtrack.core.config import settings
from leadtrack.core.logging import get_structlog_logger
from leadtrack.schemas.tracking import HealthResponse

logger = get_structlog_logger(__name__)

router = APIRouter(tags=["health"])

STARTED_AT = time.time()


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


@router.get("/health", response_model=HealthResponse, status_code=status.HTTP_200_OK)
async def health_check(request: Request):
    """Service status and the ad platforms it is currently sending to."""
    service = getattr(request.app.state, "tracking_service", None)
    enabled = service.enabled_platforms() if service is not None else []

    # No enabled platform means every tracked event is dropped.
    overall_status = "healthy" if enabled else "degraded"
    if overall_status != "healthy":
        logger.warning("health.check", status=overall_status, enabled_platforms=enabled)

    return HealthResponse(
        status=overall_status,
        service="leadtrack",
        environment=settings.environment,
        version=__version__,
        timestamp=_now_iso(),
        uptime=time.time() - STARTED_AT,
        enabled_platforms=enabled,
    )


@router.get("/health/live", status_code=status.HTTP_200_OK)
async def liveness_probe():
    """Simple liveness probe for Kubernetes/containers."""
    return {
        "status": "alive",
        "timestamp": _now_iso(),
    }


@router.get("/health/ready")
async def readiness_probe(request: Request):
    """Ready once the lifespan has built the tracking services."""
    is_ready = getattr(request.app.state, "tracking_service", None) is not None
    return JSONResponse(
        status_code=status.HTTP_200_OK if is_ready else status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"status": "ready" if is_ready else "not_ready", "timestamp": _now_iso()},
    )
