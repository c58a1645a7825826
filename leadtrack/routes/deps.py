# leadtrack/routes/deps.py
"""Request-scoped access to the services built in the application lifespan."""
from __future__ import annotations

from fastapi import Request

from leadtrack.core.exceptions import ServiceUnavailableError
from leadtrack.services.lifecycle import LifecycleService
from leadtrack.services.tracking import TrackingService


def get_tracking_service(request: Request) -> TrackingService:
    service = getattr(request.app.state, "tracking_service", None)
    if service is None:
        raise ServiceUnavailableError("Tracking service is not initialised")
    return service


def get_lifecycle_service(request: Request) -> LifecycleService:
    service = getattr(request.app.state, "lifecycle_service", None)
    if service is None:
        raise ServiceUnavailableError("Lifecycle service is not initialised")
    return service
