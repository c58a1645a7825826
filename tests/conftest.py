import os

# Settings are read at import time; pin a quiet, deterministic test environment.
os.environ["ENVIRONMENT"] = "testing"
os.environ.setdefault("LOG_LEVEL", "WARNING")
os.environ.pop("META_DATASET_ID", None)
os.environ.pop("SENTRY_DSN", None)
os.environ.pop("HUBSPOT_WEBHOOK_SECRET", None)

import time  # noqa: E402
from typing import List, Optional  # noqa: E402

import pytest  # noqa: E402

from leadtrack.schemas.tracking import TrackingEvent, TrackingResponse  # noqa: E402
from leadtrack.services.enrichment import EnrichmentService  # noqa: E402
from leadtrack.services.hashing import HashingService  # noqa: E402
from leadtrack.services.tracking import TrackingService  # noqa: E402


class FakeAdapter:
    """Stands in for a platform adapter and records what it was sent."""

    def __init__(self, name: str, success: bool = True, error: Optional[str] = None, raises: Optional[Exception] = None):
        self.name = name
        self.success = success
        self.error = error
        self.raises = raises
        self.events: List[TrackingEvent] = []

    async def send(self, event: TrackingEvent) -> TrackingResponse:
        self.events.append(event)
        if self.raises is not None:
            raise self.raises
        return TrackingResponse(
            platform=self.name,
            success=self.success,
            event_id=event.event_id,
            error=None if self.success else (self.error or f"{self.name} API error: HTTP 500"),
            response_data={"ok": True} if self.success else None,
            timestamp=int(time.time() * 1000),
        )


@pytest.fixture
def make_adapter():
    return FakeAdapter


@pytest.fixture
def adapters():
    return [FakeAdapter("meta"), FakeAdapter("google"), FakeAdapter("tiktok"), FakeAdapter("snapchat")]


@pytest.fixture
def make_tracking_service():
    def factory(adapters):
        return TrackingService(
            adapters,
            HashingService(default_calling_code="966"),
            EnrichmentService(base_lead_value=500.0, currency="SAR"),
            default_country="sa",
            content_name="رفوف تخزين معدنية",
            content_category="storage_solutions",
            lifecycle_platforms=["meta"],
        )
    return factory


@pytest.fixture
def tracking_service(adapters, make_tracking_service):
    return make_tracking_service(adapters)
