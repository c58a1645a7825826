# leadtrack/services/tracking.py
from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, replace
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from leadtrack.core.config import Settings
from leadtrack.core.exceptions import MissingFieldsError, ValidationError
from leadtrack.core.logging import get_structlog_logger
from leadtrack.schemas.tracking import (
    ActionSource,
    EnrichedCustomData,
    EnrichedUserData,
    LeadSubmission,
    MultiPlatformTrackingResponse,
    PageViewSubmission,
    PixelEventSubmission,
    TrackingEvent,
    TrackingResponse,
)
from leadtrack.services.enrichment import EnrichmentService
from leadtrack.services.events import assemble_event
from leadtrack.services.hashing import HashingService, RawIdentity, split_full_name
from leadtrack.services.platforms import PlatformAdapter, build_adapters
from leadtrack.services.signals import AmbientSignals

logger = get_structlog_logger(__name__)

REQUIRED_LEAD_FIELDS = ("email", "phone", "name")
UTM_FIELDS = ("utm_source", "utm_medium", "utm_campaign", "utm_term", "utm_content")


@dataclass(frozen=True)
class TrackingOutcome:
    event: TrackingEvent
    result: MultiPlatformTrackingResponse


class TrackingService:
    """Validates, enriches, hashes and fans events out to the ad platforms.

    Built once at startup. Holds no per-request state, so one instance
    serves concurrent requests.
    """

    def __init__(
        self,
        adapters: Sequence[PlatformAdapter],
        hashing: HashingService,
        enrichment: EnrichmentService,
        *,
        default_country: str = "sa",
        content_name: Optional[str] = None,
        content_category: Optional[str] = None,
        lifecycle_platforms: Iterable[str] = ("meta",),
    ):
        self.adapters = list(adapters)
        self.hashing = hashing
        self.enrichment = enrichment
        self.default_country = default_country
        self.content_name = content_name
        self.content_category = content_category
        self.lifecycle_platforms = list(lifecycle_platforms)

    def enabled_platforms(self) -> List[str]:
        return [adapter.name for adapter in self.adapters]

    # Fan-out

    @staticmethod
    async def _settle(adapter: PlatformAdapter, event: TrackingEvent) -> TrackingResponse:
        try:
            return await adapter.send(event)
        except Exception as e:
            logger.error("platform.send_failed", platform=adapter.name, event_id=event.event_id, error=str(e))
            return TrackingResponse(
                platform=adapter.name,
                success=False,
                event_id=event.event_id,
                error=str(e) or type(e).__name__,
                timestamp=int(time.time() * 1000),
            )

    async def track_event(
        self,
        event: TrackingEvent,
        platforms: Optional[Iterable[str]] = None,
    ) -> MultiPlatformTrackingResponse:
        """Send ``event`` to every selected adapter concurrently.

        Results keep adapter order. A failing platform never affects the
        others; the call itself does not raise.
        """
        if platforms is None:
            selected = self.adapters
        else:
            wanted = {name.lower() for name in platforms}
            selected = [adapter for adapter in self.adapters if adapter.name in wanted]

        results = list(await asyncio.gather(*(self._settle(adapter, event) for adapter in selected)))
        success_count = sum(1 for result in results if result.success)

        response = MultiPlatformTrackingResponse(
            event_id=event.event_id,
            results=results,
            success_count=success_count,
            failure_count=len(results) - success_count,
            total_platforms=len(results),
            timestamp=int(time.time() * 1000),
        )
        logger.info(
            "tracking.event_dispatched",
            event_id=event.event_id,
            event_name=event.event_name,
            action_source=event.action_source.value,
            total_platforms=response.total_platforms,
            success_count=response.success_count,
            failure_count=response.failure_count,
            failed_platforms=[result.platform for result in results if not result.success],
        )
        return response

    # Leads

    @staticmethod
    def validate_lead(lead: LeadSubmission) -> None:
        missing = [
            field for field in REQUIRED_LEAD_FIELDS
            if not str(getattr(lead, field) or "").strip()
        ]
        if missing:
            raise MissingFieldsError(missing, REQUIRED_LEAD_FIELDS)

    def build_lead_event(self, lead: LeadSubmission, signals: AmbientSignals) -> TrackingEvent:
        first_name, last_name = split_full_name(lead.name)
        identity = RawIdentity(
            email=lead.email,
            phone=lead.phone,
            first_name=first_name,
            last_name=last_name,
            gender=lead.gender,
            date_of_birth=lead.date_of_birth,
            city=lead.city or signals.geo_city,
            state=lead.state or signals.geo_region,
            zip_code=lead.zip_code,
            country=lead.country or signals.geo_country or self.default_country,
            external_id=self.enrichment.external_id(signals),
        )
        user_data = self.enrichment.enrich_user_data(self.hashing.hash_identity(identity), signals)

        form = lead.model_dump()
        utm = {key: form.get(key) for key in UTM_FIELDS}
        custom_data = self.enrichment.enrich_custom_data(
            {"content_name": self.content_name, "content_category": self.content_category},
            form,
            signals,
        )
        return assemble_event(
            "Lead",
            user_data,
            custom_data,
            self.enrichment.collect_device_data(signals),
            self.enrichment.collect_session_data(signals, utm),
            source_url=signals.page_url or lead.url,
            referrer=signals.referrer or lead.referrer,
            event_id=lead.event_id,
        )

    async def track_lead(self, lead: LeadSubmission, signals: AmbientSignals) -> TrackingOutcome:
        self.validate_lead(lead)
        event = self.build_lead_event(lead, signals)
        result = await self.track_event(event)
        logger.info(
            "tracking.lead_dispatched",
            event_id=event.event_id,
            lead_type=event.custom_data.lead_type.value if event.custom_data.lead_type else None,
            value=event.custom_data.value,
            success_count=result.success_count,
        )
        return TrackingOutcome(event=event, result=result)

    # Page views

    def build_page_view_event(self, page: PageViewSubmission, signals: AmbientSignals) -> TrackingEvent:
        custom_data = self.enrichment.enrich_custom_data(
            {
                "value": 1,
                "content_name": page.content_name or self.content_name,
                "content_category": "lead_magnet",
                "content_type": "product_catalog",
                "custom_data": {
                    key: value
                    for key, value in (("page_type", "landing_page"), ("city", page.city))
                    if value
                },
            },
            None,
            signals,
        )
        return assemble_event(
            "ViewContent",
            EnrichedUserData(),
            custom_data,
            self.enrichment.collect_device_data(signals),
            self.enrichment.collect_session_data(signals),
            source_url=page.page_url,
            referrer=page.referrer or signals.referrer,
            event_id=page.event_id,
        )

    async def track_page_view(self, page: PageViewSubmission, signals: AmbientSignals) -> TrackingOutcome:
        if not (page.page_url or "").strip():
            raise MissingFieldsError(["page_url"], ["page_url"])
        event = self.build_page_view_event(page, signals)
        return TrackingOutcome(event=event, result=await self.track_event(event))

    # Generic pixel relay

    async def track_pixel_event(self, submission: PixelEventSubmission, signals: AmbientSignals) -> TrackingOutcome:
        event_name = (submission.event or "").strip()
        if not event_name:
            raise ValidationError("Missing event name", code="missing_event")

        hashed = self.hashing.hash_identity(RawIdentity(email=submission.email, phone=submission.phone))
        event = assemble_event(
            event_name,
            self.enrichment.enrich_user_data(hashed, signals),
            EnrichedCustomData(currency=self.enrichment.currency),
            source_url=submission.url or signals.page_url,
            referrer=signals.referrer,
            event_id=submission.event_id,
        )
        return TrackingOutcome(event=event, result=await self.track_event(event))

    # CRM lifecycle

    async def track_status_change(
        self,
        event_name: str,
        identity: RawIdentity,
        custom_data: Mapping[str, Any],
        *,
        event_time: Optional[int] = None,
        source_url: Optional[str] = None,
    ) -> TrackingOutcome:
        """Report a server-side status change (qualification, deal, sale)."""
        if not identity.country:
            identity = replace(identity, country=self.default_country)
        user_data = EnrichedUserData(**self.hashing.hash_identity(identity))
        custom: Dict[str, Any] = {
            "currency": self.enrichment.currency,
            "content_name": self.content_name,
            "content_category": self.content_category,
        }
        custom.update({key: value for key, value in custom_data.items() if value is not None})

        event = assemble_event(
            event_name,
            user_data,
            EnrichedCustomData(**custom),
            source_url=source_url,
            action_source=ActionSource.SYSTEM,
            event_time=event_time,
        )
        result = await self.track_event(event, platforms=self.lifecycle_platforms)
        return TrackingOutcome(event=event, result=result)


def build_tracking_service(settings: Settings) -> TrackingService:
    enrichment = EnrichmentService(
        base_lead_value=settings.base_lead_value,
        currency=settings.default_currency,
    )
    return TrackingService(
        build_adapters(settings.platform_configs()),
        HashingService(default_calling_code=settings.default_calling_code),
        enrichment,
        default_country=settings.default_country,
        content_name=settings.content_name,
        content_category=settings.content_category,
        lifecycle_platforms=settings.lifecycle_platform_names(),
    )
