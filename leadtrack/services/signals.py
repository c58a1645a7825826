"""Ambient client signals gathered at the HTTP edge.

Enrichment never reads the request directly; it receives an
:class:`AmbientSignals` value built here from headers, cookies, the page URL
and the optional ``context`` block the landing page posts with a form.
"""
from __future__ import annotations

import math
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional
from urllib.parse import parse_qsl, urlsplit

from fastapi import Request


@dataclass(frozen=True)
class TrafficSource:
    source: str = "direct"
    medium: str = "none"
    campaign: str = "none"


@dataclass(frozen=True)
class AmbientSignals:
    user_agent: Optional[str] = None
    client_ip: Optional[str] = None
    accept_language: Optional[str] = None
    page_url: Optional[str] = None
    referrer: Optional[str] = None
    query_params: Mapping[str, str] = field(default_factory=dict)
    cookies: Mapping[str, str] = field(default_factory=dict)

    visitor_id: Optional[str] = None
    is_returning_visitor: bool = False
    visit_count: Optional[int] = None
    last_visit: Optional[float] = None
    first_touch: Optional[TrafficSource] = None

    session_id: Optional[str] = None
    session_start: Optional[float] = None
    page_views: Optional[int] = None
    landing_page: Optional[str] = None
    scroll_depth: Optional[int] = None
    time_on_page: Optional[int] = None

    screen_width: Optional[int] = None
    screen_height: Optional[int] = None
    viewport_width: Optional[int] = None
    viewport_height: Optional[int] = None
    pixel_ratio: Optional[float] = None
    touch_support: Optional[bool] = None
    connection_type: Optional[str] = None
    timezone: Optional[str] = None

    geo_city: Optional[str] = None
    geo_region: Optional[str] = None
    geo_country: Optional[str] = None

    now: float = field(default_factory=time.time)

    def query(self, name: str) -> Optional[str]:
        value = self.query_params.get(name)
        return value or None

    def cookie(self, name: str) -> Optional[str]:
        value = self.cookies.get(name)
        return value or None


def _int(value: Any) -> Optional[int]:
    try:
        return int(value) if value is not None and value != "" else None
    except (TypeError, ValueError, OverflowError):
        return None


def _float(value: Any) -> Optional[float]:
    try:
        number = float(value) if value is not None and value != "" else None
    except (TypeError, ValueError):
        return None
    if number is None or not math.isfinite(number):
        return None
    return number


def _str(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _timestamp_seconds(value: Any) -> Optional[float]:
    # Browsers report Date.now() in milliseconds.
    number = _float(value)
    if number is None:
        return None
    return number / 1000 if number > 10_000_000_000 else number


def query_params_from_url(url: Optional[str]) -> Dict[str, str]:
    if not url:
        return {}
    try:
        return dict(parse_qsl(urlsplit(url).query))
    except ValueError:
        return {}


def client_ip_from_headers(headers: Mapping[str, str], fallback: Optional[str] = None) -> Optional[str]:
    forwarded = headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    real_ip = headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()
    return fallback


def build_signals(
    *,
    headers: Mapping[str, str],
    cookies: Mapping[str, str],
    page_url: Optional[str] = None,
    referrer: Optional[str] = None,
    context: Optional[Mapping[str, Any]] = None,
    user_agent: Optional[str] = None,
    client_ip: Optional[str] = None,
    peer_ip: Optional[str] = None,
) -> AmbientSignals:
    """Build signals from request parts and the client-posted context block."""
    context = context or {}

    first_touch = None
    if context.get("first_touch_source"):
        first_touch = TrafficSource(
            source=str(context["first_touch_source"]),
            medium=_str(context.get("first_touch_medium")) or "none",
            campaign=_str(context.get("first_touch_campaign")) or "none",
        )

    visit_count = _int(context.get("visit_count"))
    returning = context.get("is_returning_visitor")
    if returning is None:
        returning = bool(visit_count and visit_count > 1)

    return AmbientSignals(
        user_agent=user_agent or headers.get("user-agent"),
        client_ip=client_ip or client_ip_from_headers(headers, peer_ip),
        accept_language=headers.get("accept-language"),
        page_url=page_url,
        referrer=referrer,
        query_params=query_params_from_url(page_url),
        cookies=dict(cookies),
        visitor_id=_str(context.get("visitor_id")),
        is_returning_visitor=bool(returning),
        visit_count=visit_count,
        last_visit=_timestamp_seconds(context.get("last_visit")),
        first_touch=first_touch,
        session_id=_str(context.get("session_id")),
        session_start=_timestamp_seconds(context.get("session_start")),
        page_views=_int(context.get("page_views")),
        landing_page=_str(context.get("landing_page")),
        scroll_depth=_int(context.get("scroll_depth")),
        time_on_page=_int(context.get("time_on_page")),
        screen_width=_int(context.get("screen_width")),
        screen_height=_int(context.get("screen_height")),
        viewport_width=_int(context.get("viewport_width")),
        viewport_height=_int(context.get("viewport_height")),
        pixel_ratio=_float(context.get("pixel_ratio")),
        touch_support=context.get("touch_support") if isinstance(context.get("touch_support"), bool) else None,
        connection_type=_str(context.get("connection_type")),
        timezone=_str(context.get("timezone")),
        geo_city=_str(context.get("geo_city")),
        geo_region=_str(context.get("geo_region")),
        geo_country=_str(context.get("geo_country")),
    )


def signals_from_request(
    request: Request,
    payload: Mapping[str, Any],
    *,
    page_url: Optional[str] = None,
    referrer: Optional[str] = None,
) -> AmbientSignals:
    context = payload.get("context")
    return build_signals(
        headers=request.headers,
        cookies=request.cookies,
        page_url=page_url or _str(payload.get("url")),
        referrer=referrer or _str(payload.get("referrer")),
        context=context if isinstance(context, Mapping) else None,
        user_agent=_str(payload.get("user_agent")),
        client_ip=_str(payload.get("client_ip")),
        peer_ip=request.client.host if request.client else None,
    )
