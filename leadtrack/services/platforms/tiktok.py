from __future__ import annotations

from typing import Any, Optional

from leadtrack.core.config import TikTokPlatformConfig
from leadtrack.schemas.tracking import TrackingEvent
from leadtrack.services.platforms.base import PlatformAdapter, PlatformError, PlatformRequest, compact

TIKTOK_EVENT_NAMES = {
    "Lead": "CompleteRegistration",
    "ViewContent": "ViewContent",
    "InitiateCheckout": "InitiateCheckout",
    "Purchase": "CompletePayment",
}


class TikTokAdapter(PlatformAdapter[TikTokPlatformConfig]):
    """TikTok Events API (v1.3)."""

    name = "tiktok"

    def build_request(self, event: TrackingEvent) -> PlatformRequest:
        user = event.user_data
        custom = event.custom_data
        context = compact({
            "page": compact({"url": event.event_source_url, "referrer": event.referrer_url}),
            "user": compact({"email": user.em, "phone_number": user.ph, "external_id": user.external_id}),
            "ad": compact({"callback": event.session_data.ttclid}),
            "user_agent": user.client_user_agent,
            "ip": user.client_ip_address,
        })
        payload = {
            "pixel_code": self.config.pixel_id,
            "event": TIKTOK_EVENT_NAMES.get(event.event_name, event.event_name),
            "event_id": event.event_id,
            "timestamp": str(event.event_time * 1000),
            "context": context,
            "properties": compact({
                "value": custom.value,
                "currency": custom.currency,
                "content_type": custom.content_type,
                "content_name": custom.content_name,
                "content_category": custom.content_category,
            }),
        }
        base = self.config.endpoint.rstrip("/")
        return PlatformRequest(
            url=f"{base}/open_api/v1.3/event/track/",
            payload=payload,
            headers={"Access-Token": self.config.access_token},
        )

    def parse_response(self, status: int, body: Optional[Any]) -> Any:
        super().parse_response(status, body)
        if not isinstance(body, dict):
            raise PlatformError("TikTok API returned a malformed response")
        if body.get("code", 0) != 0:
            raise PlatformError(f"TikTok API error: {body.get('message', 'unknown')} (code {body.get('code')})")
        return body
