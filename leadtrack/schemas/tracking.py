# leadtrack/schemas/tracking.py
from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class LeadType(str, Enum):
    STANDARD = "standard_lead"
    MEDIUM_VALUE = "medium_value_lead"
    HIGH_VALUE = "high_value_lead"
    GENERAL_INQUIRY = "general_inquiry"


class CustomerSegmentation(str, Enum):
    NEW_CUSTOMER_TO_BUSINESS = "new_customer_to_business"
    NEW_CUSTOMER_TO_BUSINESS_LINE = "new_customer_to_business_line"
    NEW_CUSTOMER_TO_PRODUCT_AREA = "new_customer_to_product_area"
    NEW_CUSTOMER_TO_MEDIUM = "new_customer_to_medium"
    EXISTING_CUSTOMER_TO_BUSINESS = "existing_customer_to_business"
    EXISTING_CUSTOMER_TO_BUSINESS_LINE = "existing_customer_to_business_line"
    EXISTING_CUSTOMER_TO_PRODUCT_AREA = "existing_customer_to_product_area"
    EXISTING_CUSTOMER_TO_MEDIUM = "existing_customer_to_medium"
    CUSTOMER_IN_LOYALTY_PROGRAM = "customer_in_loyalty_program"


class ActionSource(str, Enum):
    WEBSITE = "website"
    SYSTEM = "system"


# Inbound submissions

class LeadSubmission(BaseModel):
    """Raw lead as posted by the landing-page form.

    email, phone and name are checked by the tracking service rather than
    by the model so a missing field is reported as a 400 with the list of
    required fields.
    """

    model_config = ConfigDict(extra="ignore", populate_by_name=True, coerce_numbers_to_str=True)

    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    quantity: Optional[Union[str, int, float]] = None

    company: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = Field(default=None, alias="zipCode")
    country: Optional[str] = None
    gender: Optional[str] = None
    date_of_birth: Optional[str] = None

    industry: Optional[str] = None
    company_size: Optional[str] = None
    job_title: Optional[str] = None
    interest_level: Optional[str] = None
    budget_range: Optional[str] = None
    timeline: Optional[str] = None

    form_name: Optional[str] = None
    form_page: Optional[str] = None
    form_step: Optional[str] = None
    completion_time: Optional[float] = None

    utm_source: Optional[str] = None
    utm_medium: Optional[str] = None
    utm_campaign: Optional[str] = None
    utm_term: Optional[str] = None
    utm_content: Optional[str] = None

    url: Optional[str] = None
    referrer: Optional[str] = None
    timestamp: Optional[str] = None

    user_agent: Optional[str] = None
    client_ip: Optional[str] = None

    event_id: Optional[str] = None


class PageViewSubmission(BaseModel):
    model_config = ConfigDict(extra="ignore")

    page_url: Optional[str] = None
    page_title: Optional[str] = None
    city: Optional[str] = None
    referrer: Optional[str] = None
    content_name: Optional[str] = None
    event_id: Optional[str] = None


class PixelEventSubmission(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True, coerce_numbers_to_str=True)

    event: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    url: Optional[str] = None
    event_id: Optional[str] = Field(default=None, alias="eventId")


# Canonical event

class EnrichedUserData(BaseModel):
    model_config = ConfigDict(frozen=True)

    em: Optional[str] = None
    ph: Optional[str] = None
    fn: Optional[str] = None
    ln: Optional[str] = None
    ge: Optional[str] = None
    db: Optional[str] = None
    ct: Optional[str] = None
    st: Optional[str] = None
    zp: Optional[str] = None
    country: Optional[str] = None
    external_id: Optional[str] = None

    client_ip_address: Optional[str] = None
    client_user_agent: Optional[str] = None
    fbc: Optional[str] = None
    fbp: Optional[str] = None
    lead_id: Optional[str] = None
    ga_client_id: Optional[str] = None


class EnrichedCustomData(BaseModel):
    model_config = ConfigDict(frozen=True)

    currency: str = "SAR"
    value: Optional[float] = None
    content_name: Optional[str] = None
    content_category: Optional[str] = None
    content_type: Optional[str] = None
    order_id: Optional[str] = None
    status: Optional[str] = None

    lead_type: Optional[LeadType] = None
    lead_source: Optional[str] = None
    acquisition_channel: Optional[str] = None
    customer_lifetime_value: Optional[float] = None
    customer_segmentation: Optional[CustomerSegmentation] = None

    utm_source: Optional[str] = None
    utm_medium: Optional[str] = None
    utm_campaign: Optional[str] = None
    utm_term: Optional[str] = None
    utm_content: Optional[str] = None

    form_name: Optional[str] = None
    form_page: Optional[str] = None
    form_step: Optional[str] = None
    form_completion_time: Optional[float] = None

    company: Optional[str] = None
    industry: Optional[str] = None
    company_size: Optional[str] = None
    job_title: Optional[str] = None
    interest_level: Optional[str] = None
    budget_range: Optional[str] = None
    timeline: Optional[str] = None

    device_type: Optional[str] = None
    browser_name: Optional[str] = None
    browser_version: Optional[str] = None
    operating_system: Optional[str] = None
    device_model: Optional[str] = None
    screen_width: Optional[int] = None
    screen_height: Optional[int] = None
    timezone: Optional[str] = None
    locale: Optional[str] = None
    language: Optional[str] = None

    page_views: Optional[int] = None
    session_duration: Optional[int] = None

    lead_status: Optional[str] = None
    hubspot_contact_id: Optional[str] = None
    hubspot_deal_id: Optional[str] = None
    deal_stage: Optional[str] = None
    deal_amount: Optional[float] = None

    custom_data: Optional[Dict[str, Any]] = None


class DeviceData(BaseModel):
    model_config = ConfigDict(frozen=True)

    user_agent: Optional[str] = None
    browser_name: Optional[str] = None
    browser_version: Optional[str] = None
    os_name: Optional[str] = None
    device_type: Optional[str] = None
    device_model: Optional[str] = None
    accept_language: Optional[str] = None
    language: Optional[str] = None
    timezone: Optional[str] = None
    screen_width: Optional[int] = None
    screen_height: Optional[int] = None
    viewport_width: Optional[int] = None
    viewport_height: Optional[int] = None
    pixel_ratio: Optional[float] = None
    touch_support: Optional[bool] = None
    connection_type: Optional[str] = None


class SessionData(BaseModel):
    model_config = ConfigDict(frozen=True)

    session_id: Optional[str] = None
    session_start: Optional[int] = None
    session_duration: Optional[int] = None
    page_views: Optional[int] = None
    is_returning_visitor: Optional[bool] = None
    visitor_id: Optional[str] = None
    visit_count: Optional[int] = None
    days_since_last_visit: Optional[int] = None
    traffic_source: Optional[str] = None
    landing_page: Optional[str] = None
    exit_page: Optional[str] = None
    time_on_page: Optional[int] = None
    scroll_depth: Optional[int] = None

    first_touch_source: Optional[str] = None
    first_touch_medium: Optional[str] = None
    first_touch_campaign: Optional[str] = None
    last_touch_source: Optional[str] = None
    last_touch_medium: Optional[str] = None
    last_touch_campaign: Optional[str] = None

    gclid: Optional[str] = None
    fbclid: Optional[str] = None
    ttclid: Optional[str] = None


class TrackingEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    event_name: str
    event_time: int
    event_id: str
    event_source_url: str = ""
    action_source: ActionSource = ActionSource.WEBSITE
    referrer_url: Optional[str] = None
    user_data: EnrichedUserData = Field(default_factory=EnrichedUserData)
    custom_data: EnrichedCustomData = Field(default_factory=EnrichedCustomData)
    device_data: DeviceData = Field(default_factory=DeviceData)
    session_data: SessionData = Field(default_factory=SessionData)


# Results

class TrackingResponse(BaseModel):
    platform: str
    success: bool
    event_id: str
    error: Optional[str] = None
    response_data: Optional[Any] = None
    timestamp: int


class MultiPlatformTrackingResponse(BaseModel):
    event_id: str
    results: List[TrackingResponse]
    success_count: int
    failure_count: int
    total_platforms: int
    timestamp: int


# HTTP responses

class PlatformDetail(BaseModel):
    platform: str
    success: bool
    error: Optional[str] = None


class TrackingResultsSummary(BaseModel):
    total_platforms: int
    successful_platforms: int
    failed_platforms: int
    platform_details: List[PlatformDetail]


class EnhancedTrackingResponse(BaseModel):
    success: bool
    event_id: str
    tracking_results: TrackingResultsSummary
    timestamp: int
    debug_info: Optional[Dict[str, Any]] = None


class TrackingHealthResponse(BaseModel):
    status: str
    service: str
    enabled_platforms: List[str]
    timestamp: int


class PixelResult(BaseModel):
    platform: str
    success: bool


class PixelTrackResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool
    event_id: str = Field(serialization_alias="eventId")
    results: List[PixelResult]


class HubSpotWebhookResponse(BaseModel):
    success: bool
    processed: int
    failed: int


class HealthResponse(BaseModel):
    status: str
    service: str
    environment: str
    version: str
    timestamp: str
    uptime: float
    enabled_platforms: List[str]
