from __future__ import annotations

import re
import secrets
import string
from typing import Any, Dict, Mapping, Optional, Union
from urllib.parse import urlsplit

from leadtrack.schemas.tracking import (
    CustomerSegmentation,
    DeviceData,
    EnrichedCustomData,
    EnrichedUserData,
    LeadType,
    SessionData,
)
from leadtrack.services.signals import AmbientSignals, TrafficSource

QUANTITY_MULTIPLIERS: Dict[str, float] = {
    "10+": 15.0,
    "5-10": 7.5,
    "1-5": 3.0,
}
DEFAULT_QUANTITY_MULTIPLIER = 3.0

LEAD_TYPES: Dict[str, LeadType] = {
    "10+": LeadType.HIGH_VALUE,
    "5-10": LeadType.MEDIUM_VALUE,
    "1-5": LeadType.STANDARD,
}

_TABLET_UA = re.compile(r"tablet|ipad|playbook|silk", re.IGNORECASE)
_MOBILE_UA = re.compile(
    r"mobile|iphone|ipod|android|blackberry|opera|mini|windows\sce|palm|smartphone|iemobile",
    re.IGNORECASE,
)
_BROWSER_VERSION = re.compile(r"(edg|opr|chrome|firefox|version|safari|edge|opera)/(\d+)", re.IGNORECASE)
_DEVICE_MODEL = re.compile(r"\(([^)]+)\)")

# Order matters: Edge and Opera user agents also contain "Chrome" and "Safari".
_BROWSERS = (
    ("Edg", "Edge"),
    ("OPR", "Opera"),
    ("Opera", "Opera"),
    ("Chrome", "Chrome"),
    ("CriOS", "Chrome"),
    ("Firefox", "Firefox"),
    ("FxiOS", "Firefox"),
    ("Safari", "Safari"),
)
_OPERATING_SYSTEMS = (
    ("Windows", "Windows"),
    ("Android", "Android"),
    ("iPhone", "iOS"),
    ("iPad", "iOS"),
    ("iPod", "iOS"),
    ("Mac", "macOS"),
    ("Linux", "Linux"),
)

_ID_ALPHABET = string.ascii_lowercase + string.digits


def random_suffix(length: int = 9) -> str:
    return "".join(secrets.choice(_ID_ALPHABET) for _ in range(length))


def normalize_quantity(quantity: Union[str, int, float, None]) -> Optional[str]:
    """Map a categorical or numeric quantity onto "1-5" / "5-10" / "10+"."""
    if quantity is None:
        return None
    text = str(quantity).strip()
    if not text:
        return None
    if text in QUANTITY_MULTIPLIERS:
        return text
    try:
        count = float(text)
    except ValueError:
        return text
    if count >= 10:
        return "10+"
    if count >= 5:
        return "5-10"
    if count >= 1:
        return "1-5"
    return text


def calculate_lead_value(quantity: Union[str, int, float, None], base_value: float) -> float:
    bucket = normalize_quantity(quantity)
    return base_value * QUANTITY_MULTIPLIERS.get(bucket or "", DEFAULT_QUANTITY_MULTIPLIER)


def determine_lead_type(quantity: Union[str, int, float, None]) -> LeadType:
    return LEAD_TYPES.get(normalize_quantity(quantity) or "", LeadType.GENERAL_INQUIRY)


def detect_device_type(user_agent: Optional[str]) -> Optional[str]:
    if not user_agent:
        return None
    if _TABLET_UA.search(user_agent):
        return "tablet"
    if _MOBILE_UA.search(user_agent):
        return "mobile"
    return "desktop"


def detect_browser(user_agent: Optional[str]) -> Optional[str]:
    if not user_agent:
        return None
    for token, name in _BROWSERS:
        if token in user_agent:
            return name
    return "Unknown"


def detect_browser_version(user_agent: Optional[str]) -> Optional[str]:
    if not user_agent:
        return None
    versions = {key.lower(): value for key, value in _BROWSER_VERSION.findall(user_agent)}
    browser = detect_browser(user_agent)
    preferred = {
        "Edge": ("edg", "edge"),
        "Opera": ("opr", "opera"),
        "Chrome": ("chrome",),
        "Firefox": ("firefox",),
        "Safari": ("version", "safari"),
    }.get(browser, ())
    for key in preferred:
        if key in versions:
            return versions[key]
    return "Unknown"


def detect_operating_system(user_agent: Optional[str]) -> Optional[str]:
    if not user_agent:
        return None
    for token, name in _OPERATING_SYSTEMS:
        if token in user_agent:
            return name
    return "Unknown"


def detect_device_model(user_agent: Optional[str]) -> Optional[str]:
    if not user_agent:
        return None
    match = _DEVICE_MODEL.search(user_agent)
    return match.group(1).split(";")[0].strip() if match else "Unknown"


def resolve_traffic_source(
    referrer: Optional[str],
    query_params: Mapping[str, str],
    utm_overrides: Optional[Mapping[str, Optional[str]]] = None,
) -> TrafficSource:
    """Referrer-based attribution, overridden by UTM parameters."""
    source, medium, campaign = "direct", "none", "none"

    domain = urlsplit(referrer).hostname if referrer else None
    if domain:
        if "google" in domain:
            source, medium = "google", "organic"
        elif "facebook" in domain:
            source, medium = "facebook", "social"
        elif "instagram" in domain:
            source, medium = "instagram", "social"
        else:
            source, medium = domain, "referral"

    utm = {key: query_params.get(key) for key in ("utm_source", "utm_medium", "utm_campaign")}
    for key, value in (utm_overrides or {}).items():
        if value:
            utm[key] = value

    if utm.get("utm_source"):
        source = utm["utm_source"]
        medium = utm.get("utm_medium") or medium
        campaign = utm.get("utm_campaign") or campaign

    return TrafficSource(source=source, medium=medium, campaign=campaign)


def determine_lead_source(traffic_source: Optional[str]) -> str:
    if traffic_source == "google":
        return "search_engine"
    if traffic_source in ("facebook", "instagram"):
        return "social_media"
    if traffic_source == "direct":
        return "direct_traffic"
    return "referral"


def determine_acquisition_channel(utm_medium: Optional[str], traffic_source: Optional[str]) -> str:
    channel = {
        "cpc": "paid_search",
        "social": "social_media",
        "email": "email_marketing",
        "display": "display_advertising",
    }.get(utm_medium or "")
    return channel or determine_lead_source(traffic_source)


def determine_customer_segmentation(is_returning_visitor: bool) -> CustomerSegmentation:
    if is_returning_visitor:
        return CustomerSegmentation.EXISTING_CUSTOMER_TO_BUSINESS
    return CustomerSegmentation.NEW_CUSTOMER_TO_BUSINESS


def ga_client_id_from_cookie(value: Optional[str]) -> Optional[str]:
    # _ga cookie: GA1.1.<random>.<timestamp>
    if not value:
        return None
    parts = value.split(".")
    if len(parts) < 4:
        return None
    return ".".join(parts[-2:])


class EnrichmentService:
    """Derives business and context fields from a submission and its signals."""

    def __init__(
        self,
        *,
        base_lead_value: float = 500.0,
        currency: str = "SAR",
    ):
        self.base_lead_value = base_lead_value
        self.currency = currency

    def facebook_click_id(self, signals: AmbientSignals) -> Optional[str]:
        fbclid = signals.query("fbclid")
        if fbclid:
            return f"fb.1.{int(signals.now * 1000)}.{fbclid}"
        return signals.cookie("_fbc")

    def external_id(self, signals: AmbientSignals) -> str:
        if signals.visitor_id:
            return signals.visitor_id
        return f"ext_{int(signals.now * 1000)}_{random_suffix()}"

    def attribution(self, signals: AmbientSignals, utm: Optional[Mapping[str, Optional[str]]] = None):
        """Return (first_touch, last_touch); first touch is never overwritten."""
        last_touch = resolve_traffic_source(signals.referrer, signals.query_params, utm)
        first_touch = signals.first_touch or last_touch
        return first_touch, last_touch

    def enrich_user_data(self, hashed_identity: Mapping[str, str], signals: AmbientSignals) -> EnrichedUserData:
        return EnrichedUserData(
            **dict(hashed_identity),
            client_ip_address=signals.client_ip,
            client_user_agent=signals.user_agent,
            fbc=self.facebook_click_id(signals),
            fbp=signals.cookie("_fbp"),
            lead_id=signals.query("lead_id"),
            ga_client_id=ga_client_id_from_cookie(signals.cookie("_ga")),
        )

    def collect_device_data(self, signals: AmbientSignals) -> DeviceData:
        ua = signals.user_agent
        language = signals.accept_language.split(",")[0].strip() if signals.accept_language else None
        return DeviceData(
            user_agent=ua,
            browser_name=detect_browser(ua),
            browser_version=detect_browser_version(ua),
            os_name=detect_operating_system(ua),
            device_type=detect_device_type(ua),
            device_model=detect_device_model(ua),
            accept_language=signals.accept_language,
            language=language,
            timezone=signals.timezone,
            screen_width=signals.screen_width,
            screen_height=signals.screen_height,
            viewport_width=signals.viewport_width,
            viewport_height=signals.viewport_height,
            pixel_ratio=signals.pixel_ratio,
            touch_support=signals.touch_support,
            connection_type=signals.connection_type,
        )

    def collect_session_data(
        self,
        signals: AmbientSignals,
        utm: Optional[Mapping[str, Optional[str]]] = None,
    ) -> SessionData:
        first_touch, last_touch = self.attribution(signals, utm)

        session_duration = None
        if signals.session_start:
            session_duration = max(0, round(signals.now - signals.session_start))

        days_since_last_visit = None
        if signals.last_visit:
            days_since_last_visit = max(0, int((signals.now - signals.last_visit) // 86400))

        return SessionData(
            session_id=signals.session_id,
            session_start=int(signals.session_start) if signals.session_start else None,
            session_duration=session_duration,
            page_views=signals.page_views,
            is_returning_visitor=signals.is_returning_visitor,
            visitor_id=signals.visitor_id,
            visit_count=signals.visit_count,
            days_since_last_visit=days_since_last_visit,
            traffic_source=last_touch.source,
            landing_page=signals.landing_page,
            exit_page=signals.page_url,
            time_on_page=signals.time_on_page,
            scroll_depth=signals.scroll_depth,
            first_touch_source=first_touch.source,
            first_touch_medium=first_touch.medium,
            first_touch_campaign=first_touch.campaign,
            last_touch_source=last_touch.source,
            last_touch_medium=last_touch.medium,
            last_touch_campaign=last_touch.campaign,
            gclid=signals.query("gclid"),
            fbclid=signals.query("fbclid"),
            ttclid=signals.query("ttclid"),
        )

    def enrich_custom_data(
        self,
        base: Mapping[str, Any],
        form_context: Optional[Mapping[str, Any]],
        signals: AmbientSignals,
    ) -> EnrichedCustomData:
        """Merge ``base`` with campaign, device, session and business fields.

        ``form_context`` is the submitted form (a lead or a page view); when it
        carries a quantity the lead value and type are derived from it.
        Values already present in ``base`` win over derived ones.
        """
        form = dict(form_context or {})
        utm = {
            key: form.get(key) or signals.query(key)
            for key in ("utm_source", "utm_medium", "utm_campaign", "utm_term", "utm_content")
        }
        session = self.collect_session_data(signals, utm)
        device = self.collect_device_data(signals)

        derived: Dict[str, Any] = {
            "currency": self.currency,
            **utm,
            "device_type": device.device_type,
            "browser_name": device.browser_name,
            "browser_version": device.browser_version,
            "operating_system": device.os_name,
            "device_model": device.device_model,
            "screen_width": device.screen_width,
            "screen_height": device.screen_height,
            "timezone": device.timezone,
            "locale": device.language,
            "language": device.language.split("-")[0] if device.language else None,
            "page_views": session.page_views,
            "session_duration": session.session_duration,
            "lead_source": determine_lead_source(session.last_touch_source),
            "acquisition_channel": determine_acquisition_channel(utm.get("utm_medium"), session.last_touch_source),
            "customer_segmentation": determine_customer_segmentation(signals.is_returning_visitor),
            "order_id": f"order_{int(signals.now * 1000)}_{random_suffix()}",
        }

        if form:
            derived.update(
                form_name=form.get("form_name") or "lead_form",
                form_page=form.get("form_page") or (urlsplit(signals.page_url).path if signals.page_url else None),
                form_step=form.get("form_step") or "completion",
                form_completion_time=form.get("completion_time"),
                company=form.get("company"),
                industry=form.get("industry"),
                company_size=form.get("company_size"),
                job_title=form.get("job_title"),
                interest_level=form.get("interest_level"),
                budget_range=form.get("budget_range"),
                timeline=form.get("timeline"),
            )
            if "quantity" in form:
                value = calculate_lead_value(form.get("quantity"), self.base_lead_value)
                derived.update(
                    value=value,
                    customer_lifetime_value=value,
                    lead_type=determine_lead_type(form.get("quantity")),
                )

        merged = {key: value for key, value in derived.items() if value is not None}
        merged.update({key: value for key, value in base.items() if value is not None})
        return EnrichedCustomData(**merged)
