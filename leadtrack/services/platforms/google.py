from __future__ import annotations

from typing import Any, Dict, Optional

from leadtrack.core.config import GooglePlatformConfig
from leadtrack.schemas.tracking import TrackingEvent
from leadtrack.services.platforms.base import PlatformAdapter, PlatformRequest, compact

GA4_EVENT_NAMES = {
    "Lead": "generate_lead",
    "ViewContent": "view_item",
    "PageView": "page_view",
    "InitiateCheckout": "begin_checkout",
    "Purchase": "purchase",
}


class GoogleAdapter(PlatformAdapter[GooglePlatformConfig]):
    """GA4 Measurement Protocol."""

    name = "google"

    @staticmethod
    def client_id(event: TrackingEvent) -> str:
        user = event.user_data
        return user.ga_client_id or user.external_id or event.session_data.visitor_id or event.event_id

    def build_request(self, event: TrackingEvent) -> PlatformRequest:
        custom = event.custom_data
        params = compact({
            "event_id": event.event_id,
            "event_category": "lead_generation" if event.event_name == "Lead" else "engagement",
            "event_label": custom.lead_type.value if custom.lead_type else None,
            "value": custom.value,
            "currency": custom.currency,
            "content_name": custom.content_name,
            "content_category": custom.content_category,
            "page_location": event.event_source_url,
            "page_referrer": event.referrer_url,
            "user_agent": event.user_data.client_user_agent,
            "ip_override": event.user_data.client_ip_address,
        })
        user_properties = {
            key: {"value": value}
            for key, value in (
                ("lead_source", custom.lead_source),
                ("customer_segmentation", custom.customer_segmentation.value if custom.customer_segmentation else None),
                ("device_type", custom.device_type),
            )
            if value
        }
        payload: Dict[str, Any] = {
            "client_id": self.client_id(event),
            "timestamp_micros": event.event_time * 1_000_000,
            "events": [{
                "name": GA4_EVENT_NAMES.get(event.event_name, event.event_name.lower()),
                "params": params,
            }],
        }
        if user_properties:
            payload["user_properties"] = user_properties

        base = self.config.endpoint.rstrip("/")
        return PlatformRequest(
            url=f"{base}/mp/collect",
            payload=payload,
            params={"measurement_id": self.config.measurement_id, "api_secret": self.config.api_secret},
        )

    def parse_response(self, status: int, body: Optional[Any]) -> Any:
        super().parse_response(status, body)
        return body if body is not None else "Success"
