# leadtrack/services/lifecycle.py
"""
CRM lifecycle tracking.

HubSpot notifies us when a contact's lead status or lifecycle stage changes
and when deals are created or move between stages. Each notification is
turned into a server-side ("system") conversion event so the ad platforms
learn which leads became qualified, opportunities or customers.
"""
from __future__ import annotations

import asyncio
import hashlib
import hmac
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Mapping, Optional

import aiohttp

from leadtrack.core.config import Settings
from leadtrack.core.exceptions import AuthenticationError, ExternalServiceError
from leadtrack.core.logging import get_structlog_logger
from leadtrack.services.hashing import RawIdentity
from leadtrack.services.tracking import TrackingOutcome, TrackingService

logger = get_structlog_logger(__name__)

CONTACT_PROPERTIES = (
    "email", "firstname", "lastname", "phone", "hs_lead_status", "lifecyclestage",
    "date_of_birth", "city", "state", "zip", "country",
)
DEAL_PROPERTIES = ("dealname", "amount", "dealstage", "pipeline", "closedate")
STATUS_PROPERTIES = ("hs_lead_status", "lifecyclestage")
DEFAULT_DEAL_VALUE = 1000.0


@dataclass(frozen=True)
class StatusEvent:
    event_name: str
    value: float
    lead_status: Optional[str] = None


@dataclass(frozen=True)
class WebhookSummary:
    processed: int
    failed: int


def verify_signature(payload: bytes, signature: str, secret: str) -> bool:
    """Check an HMAC-SHA256 hex signature, with or without a ``sha256=`` prefix."""
    if not signature or not secret:
        return False

    if signature.startswith("sha256="):
        signature = signature[7:]

    expected_signature = hmac.new(secret.encode(), payload, hashlib.sha256).hexdigest()
    return hmac.compare_digest(signature.lower().encode(), expected_signature.encode())


def _amount(value: Any) -> Optional[float]:
    try:
        amount = float(value)
    except (TypeError, ValueError):
        return None
    return amount or None


def map_contact_status(properties: Mapping[str, Any]) -> StatusEvent:
    """Lead status picks the event first; lifecycle stage overrides it."""
    raw_status = properties.get("hs_lead_status") or "new"
    event_name, value, lead_status = "Lead", 50.0, raw_status

    status = str(raw_status).lower()
    if status in ("qualified", "mql"):
        value, lead_status = 100.0, "qualified"
    elif status == "sql":
        value, lead_status = 200.0, "sales_qualified"
    elif status == "opportunity":
        event_name, value, lead_status = "InitiateCheckout", 500.0, "opportunity"

    stage = str(properties.get("lifecyclestage") or "").lower()
    if stage == "opportunity":
        event_name, value = "InitiateCheckout", 500.0
    elif stage == "customer":
        event_name, value = "Purchase", 1000.0

    return StatusEvent(event_name=event_name, value=value, lead_status=lead_status)


def map_deal_stage(properties: Mapping[str, Any]) -> StatusEvent:
    amount = _amount(properties.get("amount")) or DEFAULT_DEAL_VALUE
    stage = str(properties.get("dealstage") or "").lower()

    if "closed" in stage and "won" in stage:
        return StatusEvent(event_name="Purchase", value=amount)
    if "proposal" in stage or "negotiation" in stage:
        # Half the amount for deals still being negotiated.
        return StatusEvent(event_name="InitiateCheckout", value=amount * 0.5)
    return StatusEvent(event_name="InitiateCheckout", value=amount)


def contact_identity(contact_id: str, properties: Mapping[str, Any]) -> RawIdentity:
    return RawIdentity(
        email=properties.get("email"),
        phone=properties.get("phone"),
        first_name=properties.get("firstname"),
        last_name=properties.get("lastname"),
        date_of_birth=properties.get("date_of_birth"),
        city=properties.get("city"),
        state=properties.get("state"),
        zip_code=properties.get("zip"),
        country=properties.get("country"),
        external_id=contact_id,
    )


def _event_time(occurred_at: Any) -> Optional[int]:
    try:
        return int(occurred_at) // 1000
    except (TypeError, ValueError):
        return None


class HubSpotClient:
    """Read-only HubSpot CRM client for contacts and deals."""

    def __init__(self, access_token: str, api_url: str = "https://api.hubapi.com", timeout: float = 10.0):
        self.access_token = access_token
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout

    async def _get(self, path: str, params: Dict[str, str]) -> Dict[str, Any]:
        headers = {"Authorization": f"Bearer {self.access_token}"}
        try:
            async with aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=self.timeout)) as session:
                async with session.get(f"{self.api_url}{path}", params=params, headers=headers) as response:
                    if response.status != 200:
                        raise ExternalServiceError(
                            f"HubSpot request failed: HTTP {response.status}",
                            details={"path": path, "status": response.status},
                        )
                    return await response.json(content_type=None)
        except asyncio.TimeoutError:
            raise ExternalServiceError("HubSpot request timed out", details={"path": path})
        except aiohttp.ClientError as e:
            raise ExternalServiceError(f"HubSpot request failed: {str(e)[:200]}", details={"path": path})
        except ValueError:
            raise ExternalServiceError("HubSpot returned a malformed response", details={"path": path})

    async def get_contact(self, contact_id: str) -> Dict[str, Any]:
        return await self._get(
            f"/crm/v3/objects/contacts/{contact_id}",
            {"properties": ",".join(CONTACT_PROPERTIES)},
        )

    async def get_deal(self, deal_id: str) -> Dict[str, Any]:
        return await self._get(
            f"/crm/v3/objects/deals/{deal_id}",
            {"properties": ",".join(DEAL_PROPERTIES), "associations": "contacts"},
        )


class LifecycleService:
    def __init__(
        self,
        client: HubSpotClient,
        tracking: TrackingService,
        *,
        webhook_secret: Optional[str] = None,
        require_signature: bool = False,
        site_url: Optional[str] = None,
    ):
        self.client = client
        self.tracking = tracking
        self.webhook_secret = webhook_secret
        self.require_signature = require_signature
        self.site_url = site_url

    def authenticate(self, body: bytes, signature: Optional[str]) -> None:
        if not self.webhook_secret:
            if self.require_signature:
                raise AuthenticationError("Webhook secret is not configured", code="webhook_secret_missing")
            logger.warning("hubspot.webhook_unverified", reason="no webhook secret configured")
            return

        if not verify_signature(body, signature or "", self.webhook_secret):
            raise AuthenticationError("Invalid signature", code="invalid_signature")

    async def handle_contact_change(self, event: Mapping[str, Any]) -> TrackingOutcome:
        contact_id = str(event["objectId"])
        contact = await self.client.get_contact(contact_id)
        properties = contact.get("properties") or {}

        status = map_contact_status(properties)
        return await self.tracking.track_status_change(
            status.event_name,
            contact_identity(contact_id, properties),
            {
                "value": status.value,
                "lead_status": status.lead_status,
                "hubspot_contact_id": contact_id,
            },
            event_time=_event_time(event.get("occurredAt")),
            source_url=self.site_url,
        )

    async def handle_deal_event(self, event: Mapping[str, Any]) -> Optional[TrackingOutcome]:
        deal_id = str(event["objectId"])
        deal = await self.client.get_deal(deal_id)
        properties = deal.get("properties") or {}

        contacts = ((deal.get("associations") or {}).get("contacts") or {}).get("results") or []
        if not contacts:
            logger.info("hubspot.deal_without_contact", deal_id=deal_id)
            return None

        contact_id = str(contacts[0]["id"])
        contact = await self.client.get_contact(contact_id)
        status = map_deal_stage(properties)
        return await self.tracking.track_status_change(
            status.event_name,
            contact_identity(contact_id, contact.get("properties") or {}),
            {
                "value": status.value,
                "content_name": properties.get("dealname"),
                "hubspot_contact_id": contact_id,
                "hubspot_deal_id": deal_id,
                "deal_stage": properties.get("dealstage"),
                "deal_amount": _amount(properties.get("amount")) or 0.0,
            },
            event_time=_event_time(event.get("occurredAt")),
            source_url=self.site_url,
        )

    async def handle_event(self, event: Mapping[str, Any]) -> Optional[TrackingOutcome]:
        subscription = event.get("subscriptionType")
        if subscription == "contact.propertyChange" and event.get("propertyName") in STATUS_PROPERTIES:
            return await self.handle_contact_change(event)
        if subscription in ("deal.creation", "deal.propertyChange"):
            return await self.handle_deal_event(event)
        return None

    async def process(self, events: Iterable[Mapping[str, Any]]) -> WebhookSummary:
        """Handle each notification independently; failures are counted, not raised."""
        processed = failed = 0
        for event in events:
            processed += 1
            log = logger.bind(
                subscription_type=event.get("subscriptionType"),
                object_id=event.get("objectId"),
                hubspot_event_id=event.get("eventId"),
            )
            try:
                outcome = await self.handle_event(event)
            except Exception as e:
                failed += 1
                log.error("hubspot.event_failed", error=str(e), error_type=type(e).__name__)
                continue

            if outcome is None:
                log.debug("hubspot.event_ignored")
            elif outcome.result.failure_count:
                failed += 1
                log.warning(
                    "hubspot.event_dispatch_failed",
                    event_id=outcome.event.event_id,
                    failure_count=outcome.result.failure_count,
                )
            else:
                log.info("hubspot.event_tracked", event_id=outcome.event.event_id, event_name=outcome.event.event_name)

        return WebhookSummary(processed=processed, failed=failed)


def build_lifecycle_service(settings: Settings, tracking: TrackingService) -> LifecycleService:
    return LifecycleService(
        HubSpotClient(settings.hubspot_access_token, settings.hubspot_api_url, settings.hubspot_timeout),
        tracking,
        webhook_secret=settings.hubspot_webhook_secret,
        require_signature=settings.is_production,
        site_url=settings.site_url,
    )
