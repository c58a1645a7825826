# leadtrack/schemas/__init__.py
"""
Pydantic schemas for submissions, canonical events and API responses.
"""

from leadtrack.schemas.tracking import (
    EnhancedTrackingResponse,
    LeadSubmission,
    MultiPlatformTrackingResponse,
    PageViewSubmission,
    PixelEventSubmission,
    TrackingEvent,
    TrackingResponse,
)

__all__ = [
    "EnhancedTrackingResponse",
    "LeadSubmission",
    "MultiPlatformTrackingResponse",
    "PageViewSubmission",
    "PixelEventSubmission",
    "TrackingEvent",
    "TrackingResponse",
]
