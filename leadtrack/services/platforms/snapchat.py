from __future__ import annotations

from typing import Any, Optional

from leadtrack.core.config import SnapchatPlatformConfig
from leadtrack.schemas.tracking import TrackingEvent
from leadtrack.services.hashing import sha256_hex
from leadtrack.services.platforms.base import PlatformAdapter, PlatformError, PlatformRequest, compact

SNAPCHAT_EVENT_NAMES = {
    "Lead": "SIGN_UP",
    "ViewContent": "VIEW_CONTENT",
    "PageView": "PAGE_VIEW",
    "InitiateCheckout": "START_CHECKOUT",
    "Purchase": "PURCHASE",
}


class SnapchatAdapter(PlatformAdapter[SnapchatPlatformConfig]):
    """Snapchat Conversions API (v2)."""

    name = "snapchat"

    def build_request(self, event: TrackingEvent) -> PlatformRequest:
        user = event.user_data
        custom = event.custom_data
        payload = compact({
            "pixel_id": self.config.pixel_id,
            "event": SNAPCHAT_EVENT_NAMES.get(event.event_name, event.event_name.upper()),
            "event_conversion_type": "WEB",
            "event_tag": event.event_id,
            "timestamp": event.event_time * 1000,
            "hashed_email": user.em,
            "hashed_phone_number": user.ph,
            "hashed_ip_address": sha256_hex(user.client_ip_address) if user.client_ip_address else None,
            "user_agent": user.client_user_agent,
            "page_url": event.event_source_url,
            "custom_data": compact({
                "value": custom.value,
                "currency": custom.currency,
                "content_name": custom.content_name,
            }),
        })
        base = self.config.endpoint.rstrip("/")
        return PlatformRequest(
            url=f"{base}/v2/conversion",
            payload=payload,
            headers={"Authorization": f"Bearer {self.config.access_token}"},
        )

    def parse_response(self, status: int, body: Optional[Any]) -> Any:
        super().parse_response(status, body)
        if isinstance(body, dict) and str(body.get("status", "")).upper() == "FAILED":
            raise PlatformError(f"Snapchat API error: {body.get('reason', 'event rejected')}")
        return body
