from __future__ import annotations

import time
from typing import Optional, Union

from leadtrack.schemas.tracking import (
    ActionSource,
    DeviceData,
    EnrichedCustomData,
    EnrichedUserData,
    SessionData,
    TrackingEvent,
)
from leadtrack.services.enrichment import random_suffix


def generate_event_id(event_name: str, now: Optional[float] = None) -> str:
    """Return ``<event name lowercased>_<unix millis>_<9 char suffix>``."""
    millis = int((time.time() if now is None else now) * 1000)
    return f"{event_name.lower()}_{millis}_{random_suffix()}"


def assemble_event(
    event_name: str,
    user_data: Optional[EnrichedUserData] = None,
    custom_data: Optional[EnrichedCustomData] = None,
    device_data: Optional[DeviceData] = None,
    session_data: Optional[SessionData] = None,
    source_url: Optional[str] = None,
    referrer: Optional[str] = None,
    *,
    action_source: Union[ActionSource, str] = ActionSource.WEBSITE,
    event_id: Optional[str] = None,
    event_time: Optional[int] = None,
) -> TrackingEvent:
    now = time.time()
    return TrackingEvent(
        event_name=event_name,
        event_time=int(now) if event_time is None else int(event_time),
        event_id=event_id or generate_event_id(event_name, now),
        event_source_url=source_url or "",
        action_source=ActionSource(action_source),
        referrer_url=referrer or None,
        user_data=user_data or EnrichedUserData(),
        custom_data=custom_data or EnrichedCustomData(),
        device_data=device_data or DeviceData(),
        session_data=session_data or SessionData(),
    )
