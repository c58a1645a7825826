import re
import time

import pytest

from leadtrack.schemas.tracking import ActionSource, EnrichedCustomData, EnrichedUserData
from leadtrack.services.enrichment import EnrichmentService
from leadtrack.services.events import assemble_event, generate_event_id
from leadtrack.services.signals import build_signals, client_ip_from_headers, query_params_from_url

EVENT_ID = re.compile(r"^lead_\d+_[a-z0-9]{9}$")


def test_generate_event_id_format():
    assert EVENT_ID.match(generate_event_id("Lead"))
    assert generate_event_id("ViewContent", now=1_700_000_000.123).startswith("viewcontent_1700000000123_")


def test_generated_ids_are_unique():
    assert len({generate_event_id("Lead") for _ in range(50)}) == 50


def test_assemble_event_defaults():
    event = assemble_event("Lead")
    assert EVENT_ID.match(event.event_id)
    assert event.action_source == ActionSource.WEBSITE
    assert event.event_source_url == ""
    assert event.referrer_url is None
    assert event.user_data == EnrichedUserData()
    assert event.custom_data.currency == "SAR"
    assert abs(event.event_time - int(time.time())) <= 2


def test_assemble_event_keeps_caller_values():
    event = assemble_event(
        "Purchase",
        EnrichedUserData(em="digest"),
        EnrichedCustomData(value=1000),
        source_url="https://example.com/",
        referrer="https://www.google.com/",
        action_source="system",
        event_id="fixed-id",
        event_time=1_700_000_000,
    )
    assert event.event_id == "fixed-id"
    assert event.event_time == 1_700_000_000
    assert event.action_source == ActionSource.SYSTEM
    assert event.user_data.em == "digest"
    assert event.custom_data.value == 1000
    assert event.referrer_url == "https://www.google.com/"


def test_client_ip_prefers_forwarded_headers():
    assert client_ip_from_headers({"x-forwarded-for": "203.0.113.7, 10.0.0.1"}, "127.0.0.1") == "203.0.113.7"
    assert client_ip_from_headers({"x-real-ip": "198.51.100.2"}, "127.0.0.1") == "198.51.100.2"
    assert client_ip_from_headers({}, "127.0.0.1") == "127.0.0.1"


def test_query_params_from_url():
    assert query_params_from_url("https://example.com/?fbclid=a&utm_source=b") == {"fbclid": "a", "utm_source": "b"}
    assert query_params_from_url(None) == {}


def test_build_signals_reads_context_block():
    signals = build_signals(
        headers={"user-agent": "UA", "accept-language": "ar-SA", "x-forwarded-for": "203.0.113.7"},
        cookies={"_fbp": "fbp-1"},
        page_url="https://example.com/?lead_id=9",
        context={
            "visitor_id": "v-1",
            "first_touch_source": "facebook",
            "first_touch_medium": "social",
            "screen_width": "390",
            "touch_support": True,
            "geo_city": "Riyadh",
        },
    )
    assert signals.user_agent == "UA"
    assert signals.client_ip == "203.0.113.7"
    assert signals.accept_language == "ar-SA"
    assert signals.query("lead_id") == "9"
    assert signals.cookie("_fbp") == "fbp-1"
    assert signals.visitor_id == "v-1"
    assert signals.first_touch.source == "facebook"
    assert signals.first_touch.campaign == "none"
    assert signals.screen_width == 390
    assert signals.touch_support is True
    assert signals.geo_city == "Riyadh"
    assert signals.is_returning_visitor is False


def test_build_signals_ignores_malformed_context_values():
    signals = build_signals(headers={}, cookies={}, context={"page_views": "many", "pixel_ratio": "x"})
    assert signals.page_views is None
    assert signals.pixel_ratio is None
    assert signals.user_agent is None


@pytest.mark.parametrize(
    "context",
    [
        {"page_views": 1e400},
        {"page_views": float("nan")},
        {"session_start": "inf"},
        {"session_start": "nan"},
        {"last_visit": "nan"},
        {"last_visit": float("-inf")},
        {"pixel_ratio": "Infinity"},
    ],
)
def test_build_signals_drops_non_finite_context_values(context):
    signals = build_signals(headers={}, cookies={}, context=context)
    assert signals.page_views is None
    assert signals.session_start is None
    assert signals.last_visit is None
    assert signals.pixel_ratio is None

    session = EnrichmentService().collect_session_data(signals)
    assert session.session_duration is None
    assert session.days_since_last_visit is None
