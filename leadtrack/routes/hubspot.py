# leadtrack/routes/hubspot.py
from __future__ import annotations

import json
from typing import Optional

from fastapi import APIRouter, Depends, Header, Request

from leadtrack.core.exceptions import ValidationError
from leadtrack.core.logging import get_structlog_logger
from leadtrack.routes.deps import get_lifecycle_service
from leadtrack.schemas.tracking import HubSpotWebhookResponse
from leadtrack.services.lifecycle import LifecycleService

logger = get_structlog_logger(__name__)

router = APIRouter(tags=["hubspot"])


@router.post("/hubspot/webhook", response_model=HubSpotWebhookResponse)
async def hubspot_webhook(
    request: Request,
    x_hubspot_signature_256: Optional[str] = Header(None, alias="X-HubSpot-Signature-256"),
    service: LifecycleService = Depends(get_lifecycle_service),
):
    """Receive HubSpot contact and deal notifications.

    The signature is checked against the raw body before it is parsed.
    Individual notifications that fail are counted in ``failed``; the
    webhook itself still answers 200 so HubSpot does not redeliver.
    """
    body = await request.body()
    service.authenticate(body, x_hubspot_signature_256)

    try:
        events = json.loads(body or b"[]")
    except ValueError:
        raise ValidationError("Invalid JSON payload", code="invalid_json")

    if isinstance(events, dict):
        events = [events]
    if not isinstance(events, list) or not all(isinstance(event, dict) for event in events):
        raise ValidationError("Expected a list of webhook events", code="invalid_payload")

    logger.info("hubspot.webhook_received", event_count=len(events))
    summary = await service.process(events)
    return HubSpotWebhookResponse(success=True, processed=summary.processed, failed=summary.failed)
