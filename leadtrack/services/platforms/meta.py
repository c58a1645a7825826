from __future__ import annotations

from typing import Any, Dict, Optional

from leadtrack.core.config import MetaPlatformConfig
from leadtrack.schemas.tracking import TrackingEvent
from leadtrack.services.platforms.base import PlatformAdapter, PlatformError, PlatformRequest, compact

# Fields Meta accepts inside user_data.
META_USER_FIELDS = (
    "em", "ph", "fn", "ln", "ge", "db", "ct", "st", "zp", "country", "external_id",
    "client_ip_address", "client_user_agent", "fbc", "fbp", "lead_id",
)


class MetaAdapter(PlatformAdapter[MetaPlatformConfig]):
    """Meta Conversions API, routed by the pixel id."""

    name = "meta"

    @property
    def url(self) -> str:
        base = self.config.graph_url.rstrip("/")
        return f"{base}/{self.config.api_version}/{self.config.pixel_id}/events"

    def build_event(self, event: TrackingEvent) -> Dict[str, Any]:
        user_data = event.user_data.model_dump(include=set(META_USER_FIELDS), exclude_none=True)
        return compact({
            "event_name": event.event_name,
            "event_time": event.event_time,
            "event_id": event.event_id,
            "event_source_url": event.event_source_url,
            "action_source": event.action_source.value,
            "referrer_url": event.referrer_url,
            "user_data": user_data,
            "custom_data": event.custom_data.model_dump(mode="json", exclude_none=True),
            "data_processing_options": [],
        })

    def build_request(self, event: TrackingEvent) -> PlatformRequest:
        payload: Dict[str, Any] = {
            "data": [self.build_event(event)],
            "access_token": self.config.access_token,
        }
        if self.config.test_event_code:
            payload["test_event_code"] = self.config.test_event_code
        return PlatformRequest(url=self.url, payload=payload)

    def parse_response(self, status: int, body: Optional[Any]) -> Any:
        if 200 <= status < 300:
            if not isinstance(body, dict):
                raise PlatformError("Meta API returned a malformed response")
            return body
        message = None
        if isinstance(body, dict):
            message = (body.get("error") or {}).get("message")
        raise PlatformError(f"Meta API error: {message or f'HTTP {status}'}")
