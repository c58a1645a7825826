import re
from dataclasses import replace

import pytest

from leadtrack.schemas.tracking import CustomerSegmentation, LeadType
from leadtrack.services.enrichment import (
    EnrichmentService,
    calculate_lead_value,
    detect_browser,
    detect_browser_version,
    detect_device_model,
    detect_device_type,
    detect_operating_system,
    determine_acquisition_channel,
    determine_lead_source,
    determine_lead_type,
    ga_client_id_from_cookie,
    normalize_quantity,
    resolve_traffic_source,
)
from leadtrack.services.signals import AmbientSignals, TrafficSource, build_signals

IPHONE_UA = (
    "Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.0 Mobile/15E148 Safari/604.1"
)
CHROME_WINDOWS_UA = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
EDGE_UA = CHROME_WINDOWS_UA + " Edg/120.0.2210.91"
IPAD_UA = "Mozilla/5.0 (iPad; CPU OS 16_0 like Mac OS X) AppleWebKit/605.1.15 Version/16.0 Safari/604.1"

enrichment = EnrichmentService(base_lead_value=500.0)


@pytest.mark.parametrize(
    "quantity,expected",
    [("10+", 7500.0), ("5-10", 3750.0), ("1-5", 1500.0), (None, 1500.0), ("lots", 1500.0), (12, 7500.0), ("7", 3750.0), (2, 1500.0)],
)
def test_lead_value_by_quantity(quantity, expected):
    assert calculate_lead_value(quantity, 500.0) == expected


def test_quantity_buckets():
    assert normalize_quantity(10) == "10+"
    assert normalize_quantity(9.5) == "5-10"
    assert normalize_quantity(5) == "5-10"
    assert normalize_quantity(1) == "1-5"
    assert normalize_quantity(" 10+ ") == "10+"
    assert normalize_quantity("") is None


def test_lead_type_by_quantity():
    assert determine_lead_type("10+") == LeadType.HIGH_VALUE
    assert determine_lead_type("5-10") == LeadType.MEDIUM_VALUE
    assert determine_lead_type("1-5") == LeadType.STANDARD
    assert determine_lead_type(None) == LeadType.GENERAL_INQUIRY
    assert determine_lead_type("unknown") == LeadType.GENERAL_INQUIRY


def test_device_type_detection():
    assert detect_device_type(IPHONE_UA) == "mobile"
    assert detect_device_type(IPAD_UA) == "tablet"
    assert detect_device_type(CHROME_WINDOWS_UA) == "desktop"
    assert detect_device_type(None) is None


def test_browser_and_os_detection():
    assert detect_browser(CHROME_WINDOWS_UA) == "Chrome"
    assert detect_browser_version(CHROME_WINDOWS_UA) == "120"
    assert detect_browser(EDGE_UA) == "Edge"
    assert detect_browser(IPHONE_UA) == "Safari"
    assert detect_browser_version(IPHONE_UA) == "17"
    assert detect_browser("curl/8.0") == "Unknown"
    assert detect_operating_system(CHROME_WINDOWS_UA) == "Windows"
    assert detect_operating_system(IPHONE_UA) == "iOS"
    assert detect_operating_system("curl/8.0") == "Unknown"
    assert detect_device_model(IPHONE_UA) == "iPhone"
    assert detect_device_model("curl/8.0") == "Unknown"


def test_traffic_source_from_referrer():
    assert resolve_traffic_source("https://www.google.com/search?q=x", {}) == TrafficSource("google", "organic", "none")
    assert resolve_traffic_source("https://m.facebook.com/", {}) == TrafficSource("facebook", "social", "none")
    assert resolve_traffic_source("https://blog.example.org/post", {}) == TrafficSource("blog.example.org", "referral", "none")
    assert resolve_traffic_source(None, {}) == TrafficSource()


def test_utm_parameters_override_referrer():
    source = resolve_traffic_source(
        "https://www.google.com/",
        {"utm_source": "snapchat", "utm_medium": "cpc", "utm_campaign": "ramadan"},
    )
    assert source == TrafficSource("snapchat", "cpc", "ramadan")


def test_lead_source_and_channel():
    assert determine_lead_source("google") == "search_engine"
    assert determine_lead_source("instagram") == "social_media"
    assert determine_lead_source("direct") == "direct_traffic"
    assert determine_lead_source("example.org") == "referral"
    assert determine_acquisition_channel("cpc", "google") == "paid_search"
    assert determine_acquisition_channel("email", "direct") == "email_marketing"
    assert determine_acquisition_channel(None, "facebook") == "social_media"


def test_ga_client_id_from_cookie():
    assert ga_client_id_from_cookie("GA1.1.1234567890.1700000000") == "1234567890.1700000000"
    assert ga_client_id_from_cookie("garbage") is None
    assert ga_client_id_from_cookie(None) is None


def test_user_data_transport_fields():
    signals = AmbientSignals(
        user_agent=IPHONE_UA,
        client_ip="203.0.113.7",
        query_params={"fbclid": "abc123", "lead_id": "L-1"},
        cookies={"_fbp": "fb.1.1700000000000.42", "_ga": "GA1.1.99.1700000000"},
        now=1_700_000_000.0,
    )
    user_data = enrichment.enrich_user_data({"em": "digest"}, signals)
    assert user_data.em == "digest"
    assert user_data.client_ip_address == "203.0.113.7"
    assert user_data.client_user_agent == IPHONE_UA
    assert user_data.fbc == "fb.1.1700000000000.abc123"
    assert user_data.fbp == "fb.1.1700000000000.42"
    assert user_data.ga_client_id == "99.1700000000"
    assert user_data.lead_id == "L-1"


def test_fbc_falls_back_to_cookie():
    signals = AmbientSignals(cookies={"_fbc": "fb.1.1.cookie"})
    assert enrichment.facebook_click_id(signals) == "fb.1.1.cookie"
    assert enrichment.facebook_click_id(AmbientSignals()) is None


def test_external_id_prefers_visitor_id():
    assert enrichment.external_id(AmbientSignals(visitor_id="visitor-1")) == "visitor-1"
    generated = enrichment.external_id(AmbientSignals(now=1_700_000_000.0))
    assert re.fullmatch(r"ext_1700000000000_[a-z0-9]{9}", generated)


def test_first_touch_is_write_once():
    signals = AmbientSignals(
        referrer="https://www.google.com/",
        first_touch=TrafficSource("facebook", "social", "launch"),
    )
    first, last = enrichment.attribution(signals)
    assert first == TrafficSource("facebook", "social", "launch")
    assert last == TrafficSource("google", "organic", "none")

    first, last = enrichment.attribution(AmbientSignals(referrer="https://www.google.com/"))
    assert first == last


def test_session_data_from_signals():
    signals = build_signals(
        headers={"user-agent": IPHONE_UA},
        cookies={},
        page_url="https://example.com/offer?ttclid=tt-1&gclid=g-1",
        context={
            "session_id": "s-1",
            "session_start": 1_700_000_000_000,
            "page_views": "3",
            "visit_count": 2,
            "last_visit": 1_699_800_000,
            "scroll_depth": 80,
        },
    )
    signals = replace(signals, now=1_700_000_090.0)
    session = enrichment.collect_session_data(signals)
    assert session.session_id == "s-1"
    assert session.session_duration == 90
    assert session.page_views == 3
    assert session.is_returning_visitor is True
    assert session.days_since_last_visit == 2
    assert session.scroll_depth == 80
    assert session.ttclid == "tt-1"
    assert session.gclid == "g-1"
    assert session.traffic_source == "direct"


def test_missing_signals_leave_fields_absent():
    session = enrichment.collect_session_data(AmbientSignals())
    assert session.session_duration is None
    assert session.page_views is None
    device = enrichment.collect_device_data(AmbientSignals())
    assert device.device_type is None
    assert device.browser_name is None


def test_custom_data_from_lead_form():
    signals = AmbientSignals(
        user_agent=CHROME_WINDOWS_UA,
        accept_language="ar-SA,ar;q=0.9",
        page_url="https://example.com/shelves?utm_source=google&utm_medium=cpc",
        is_returning_visitor=True,
    )
    custom = enrichment.enrich_custom_data(
        {"content_name": "shelves", "content_category": "storage_solutions"},
        {"quantity": "10+", "company": "Acme", "form_name": None},
        signals,
    )
    assert custom.currency == "SAR"
    assert custom.value == 7500.0
    assert custom.customer_lifetime_value == 7500.0
    assert custom.lead_type == LeadType.HIGH_VALUE
    assert custom.utm_source == "google"
    assert custom.acquisition_channel == "paid_search"
    assert custom.customer_segmentation == CustomerSegmentation.EXISTING_CUSTOMER_TO_BUSINESS
    assert custom.device_type == "desktop"
    assert custom.locale == "ar-SA"
    assert custom.language == "ar"
    assert custom.form_name == "lead_form"
    assert custom.form_page == "/shelves"
    assert custom.company == "Acme"
    assert custom.order_id.startswith("order_")


def test_base_values_win_over_derived():
    custom = enrichment.enrich_custom_data({"value": 1, "currency": "USD"}, {"quantity": "10+"}, AmbientSignals())
    assert custom.value == 1
    assert custom.currency == "USD"
    assert custom.customer_lifetime_value == 7500.0


def test_custom_data_without_form_has_no_lead_value():
    custom = enrichment.enrich_custom_data({}, None, AmbientSignals())
    assert custom.value is None
    assert custom.lead_type is None
    assert custom.customer_segmentation == CustomerSegmentation.NEW_CUSTOMER_TO_BUSINESS
