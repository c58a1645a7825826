from __future__ import annotations

import asyncio
import json
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Generic, Optional, Tuple, TypeVar

import aiohttp
from prometheus_client import Counter

from leadtrack.core.logging import get_structlog_logger
from leadtrack.schemas.tracking import TrackingEvent, TrackingResponse

logger = get_structlog_logger(__name__)

PLATFORM_DISPATCHES = Counter(
    "tracking_platform_dispatch_total",
    "Conversion events sent to ad platforms, by outcome.",
    ["platform", "outcome"],
)

ConfigT = TypeVar("ConfigT")


class PlatformError(Exception):
    """The platform answered, but not with an accepted event."""


@dataclass(frozen=True)
class PlatformRequest:
    url: str
    payload: Dict[str, Any]
    headers: Dict[str, str] = field(default_factory=dict)
    params: Dict[str, str] = field(default_factory=dict)


def compact(mapping: Dict[str, Any]) -> Dict[str, Any]:
    """Drop keys whose value is None or an empty string/dict."""
    return {key: value for key, value in mapping.items() if value not in (None, "", {})}


def now_millis() -> int:
    return int(time.time() * 1000)


class PlatformAdapter(ABC, Generic[ConfigT]):
    """One ad platform's server-side conversions endpoint.

    ``send`` never raises: network errors, timeouts, non-2xx statuses and
    rejected or malformed bodies all come back as a failed
    :class:`TrackingResponse`.
    """

    name: str = "platform"
    user_agent = "LeadTrack-Conversions/1.0"

    def __init__(self, config: ConfigT):
        self.config = config

    @property
    def timeout(self) -> float:
        return getattr(self.config, "timeout", 10.0)

    @abstractmethod
    def build_request(self, event: TrackingEvent) -> PlatformRequest:
        """Translate the canonical event into this platform's wire format."""

    def parse_response(self, status: int, body: Optional[Any]) -> Any:
        if not 200 <= status < 300:
            raise PlatformError(f"{self.name} API error: HTTP {status}")
        return body

    async def _post(self, request: PlatformRequest) -> Tuple[int, str]:
        headers = {
            "Content-Type": "application/json",
            "User-Agent": self.user_agent,
            **request.headers,
        }
        timeout = aiohttp.ClientTimeout(total=self.timeout)
        async with aiohttp.ClientSession(timeout=timeout) as session:
            async with session.post(
                request.url,
                json=request.payload,
                headers=headers,
                params=request.params or None,
            ) as response:
                return response.status, await response.text()

    @staticmethod
    def _decode(text: str) -> Optional[Any]:
        if not text or not text.strip():
            return None
        try:
            return json.loads(text)
        except ValueError:
            return text

    def _result(
        self,
        event: TrackingEvent,
        success: bool,
        *,
        error: Optional[str] = None,
        response_data: Optional[Any] = None,
    ) -> TrackingResponse:
        PLATFORM_DISPATCHES.labels(platform=self.name, outcome="success" if success else "failure").inc()
        return TrackingResponse(
            platform=self.name,
            success=success,
            event_id=event.event_id,
            error=error,
            response_data=response_data,
            timestamp=now_millis(),
        )

    async def send(self, event: TrackingEvent) -> TrackingResponse:
        log = logger.bind(platform=self.name, event_id=event.event_id, event_name=event.event_name)
        try:
            request = self.build_request(event)
            status, text = await self._post(request)
            data = self.parse_response(status, self._decode(text))
        except PlatformError as e:
            log.warning("platform.rejected", error=str(e))
            return self._result(event, False, error=str(e))
        except asyncio.TimeoutError:
            log.warning("platform.timeout", timeout=self.timeout)
            return self._result(event, False, error=f"Request timeout after {self.timeout:g}s")
        except aiohttp.ClientError as e:
            log.warning("platform.client_error", error=str(e))
            return self._result(event, False, error=f"Client error: {str(e)[:200]}")
        except Exception as e:
            log.error("platform.unexpected_error", error=str(e), error_type=type(e).__name__)
            return self._result(event, False, error=f"Unexpected error: {str(e)[:200]}")

        log.info("platform.sent")
        return self._result(event, True, response_data=data)
