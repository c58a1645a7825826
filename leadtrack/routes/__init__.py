# leadtrack/routes/__init__.py
"""
API route handlers organized by domain.
"""

from leadtrack.routes.health import router as health_router
from leadtrack.routes.hubspot import router as hubspot_router
from leadtrack.routes.tracking import router as tracking_router

__all__ = [
    "health_router",
    "hubspot_router",
    "tracking_router",
]
