# leadtrack/routes/tracking.py
from __future__ import annotations

import time
from typing import Any, Dict, Mapping, Optional

from fastapi import APIRouter, Depends, Header, Query, Request
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from leadtrack.core.exceptions import ValidationError
from leadtrack.core.logging import get_structlog_logger
from leadtrack.routes.deps import get_tracking_service
from leadtrack.schemas.tracking import (
    EnhancedTrackingResponse,
    LeadSubmission,
    PageViewSubmission,
    PixelEventSubmission,
    PixelResult,
    PixelTrackResponse,
    PlatformDetail,
    TrackingHealthResponse,
    TrackingResponse,
    TrackingResultsSummary,
)
from leadtrack.services.hashing import is_valid_email, is_valid_phone
from leadtrack.services.signals import signals_from_request
from leadtrack.services.tracking import TrackingOutcome, TrackingService

logger = get_structlog_logger(__name__)

router = APIRouter(tags=["tracking"])

USER_DATA_FIELDS = ("email", "phone", "name", "city", "state", "zipCode", "zip_code", "country", "client_ip", "user_agent")
CUSTOM_DATA_FIELDS = (
    "quantity", "utm_source", "utm_medium", "utm_campaign", "utm_term", "utm_content",
    "industry", "company_size", "job_title", "interest_level", "budget_range", "timeline",
)
FORM_DATA_FIELDS = ("form_name", "form_page", "form_step", "completion_time")
META_DATA_FIELDS = ("url", "referrer", "timestamp")
HASHED_USER_FIELDS = ("em", "ph", "fn", "ln", "ge", "db", "ct", "st", "zp", "country", "external_id")


async def _json_object(request: Request) -> Dict[str, Any]:
    try:
        payload = await request.json()
    except ValueError:
        raise ValidationError("Invalid JSON payload", code="invalid_json")
    if not isinstance(payload, dict):
        raise ValidationError("Request body must be a JSON object", code="invalid_payload")
    return payload


def _parse(model: type[BaseModel], payload: Mapping[str, Any]):
    try:
        return model.model_validate(payload)
    except PydanticValidationError as e:
        errors = [
            {"loc": list(error.get("loc", [])), "msg": error.get("msg", "Validation error")}
            for error in e.errors()
        ]
        raise ValidationError("Request validation failed", code="validation_error", details={"errors": errors})


def _debug_requested(debug: bool, header: Optional[str]) -> bool:
    return debug or (header or "").strip().lower() == "true"


def _present(payload: Mapping[str, Any], fields) -> int:
    return sum(1 for field in fields if payload.get(field) not in (None, ""))


def _platform_debug(result: TrackingResponse) -> Dict[str, Any]:
    details: Dict[str, Any] = {"platform": result.platform, "success": result.success}
    if result.error:
        details["error"] = result.error
    details["response_data"] = "included" if result.response_data is not None else "not included"
    return details


def build_debug_info(outcome: TrackingOutcome, payload: Mapping[str, Any]) -> Dict[str, Any]:
    """Counts of what the caller submitted plus per-platform outcome details."""
    user_data = _present(payload, USER_DATA_FIELDS)
    custom_data = _present(payload, CUSTOM_DATA_FIELDS)
    form_data = _present(payload, FORM_DATA_FIELDS)
    meta_data = _present(payload, META_DATA_FIELDS)
    event = outcome.event

    return {
        "enhanced_parameters": {
            "total": sum(1 for value in payload.values() if value not in (None, "")),
            "user_data": user_data,
            "custom_data": custom_data,
            "form_data": form_data,
            "meta_data": meta_data,
        },
        "identity_quality": {
            "valid_email": is_valid_email(payload.get("email")),
            "valid_phone": is_valid_phone(payload.get("phone")),
            "hashed_fields": [field for field in HASHED_USER_FIELDS if getattr(event.user_data, field)],
        },
        "event": {
            "event_name": event.event_name,
            "event_time": event.event_time,
            "lead_type": event.custom_data.lead_type.value if event.custom_data.lead_type else None,
            "value": event.custom_data.value,
        },
        "platform_results": [_platform_debug(result) for result in outcome.result.results],
    }


def build_tracking_response(
    outcome: TrackingOutcome,
    debug_info: Optional[Dict[str, Any]] = None,
) -> EnhancedTrackingResponse:
    result = outcome.result
    return EnhancedTrackingResponse(
        success=True,
        event_id=result.event_id,
        tracking_results=TrackingResultsSummary(
            total_platforms=result.total_platforms,
            successful_platforms=result.success_count,
            failed_platforms=result.failure_count,
            platform_details=[
                PlatformDetail(platform=r.platform, success=r.success, error=r.error)
                for r in result.results
            ],
        ),
        timestamp=result.timestamp,
        debug_info=debug_info,
    )


@router.post(
    "/tracking/enhanced",
    response_model=EnhancedTrackingResponse,
    response_model_exclude_none=True,
)
async def track_enhanced(
    request: Request,
    debug: bool = Query(False),
    x_debug_mode: Optional[str] = Header(None, alias="X-Debug-Mode"),
    service: TrackingService = Depends(get_tracking_service),
):
    """Track a lead submission on every enabled ad platform."""
    payload = await _json_object(request)
    lead = _parse(LeadSubmission, payload)
    signals = signals_from_request(request, payload)

    outcome = await service.track_lead(lead, signals)

    debug_info = None
    if _debug_requested(debug, x_debug_mode):
        debug_info = build_debug_info(outcome, payload)
        logger.info("tracking.debug", event_id=outcome.event.event_id, platform_results=debug_info["platform_results"])

    return build_tracking_response(outcome, debug_info)


@router.get("/tracking/enhanced", response_model=TrackingHealthResponse)
async def tracking_status(service: TrackingService = Depends(get_tracking_service)):
    return TrackingHealthResponse(
        status="healthy",
        service="enhanced_tracking",
        enabled_platforms=service.enabled_platforms(),
        timestamp=int(time.time() * 1000),
    )


@router.post(
    "/tracking/page-view",
    response_model=EnhancedTrackingResponse,
    response_model_exclude_none=True,
)
async def track_page_view(
    request: Request,
    service: TrackingService = Depends(get_tracking_service),
):
    """Track a landing-page view as a ViewContent event."""
    payload = await _json_object(request)
    page = _parse(PageViewSubmission, payload)
    signals = signals_from_request(request, payload, page_url=page.page_url, referrer=page.referrer)

    outcome = await service.track_page_view(page, signals)
    return build_tracking_response(outcome)


@router.post("/pixels/track", response_model=PixelTrackResponse)
async def track_pixel(
    request: Request,
    service: TrackingService = Depends(get_tracking_service),
):
    payload = await _json_object(request)
    submission = _parse(PixelEventSubmission, payload)
    signals = signals_from_request(request, payload, page_url=submission.url)

    outcome = await service.track_pixel_event(submission, signals)
    return PixelTrackResponse(
        success=True,
        event_id=outcome.result.event_id,
        results=[PixelResult(platform=r.platform, success=r.success) for r in outcome.result.results],
    )
