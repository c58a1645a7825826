import hashlib
import hmac
import json
from unittest.mock import AsyncMock

import pytest
from aiohttp import test_utils, web
from fastapi.testclient import TestClient

from leadtrack.core.exceptions import AuthenticationError, ExternalServiceError
from leadtrack.main import app
from leadtrack.routes.deps import get_lifecycle_service
from leadtrack.services.hashing import sha256_hex
from leadtrack.services.lifecycle import (
    HubSpotClient,
    LifecycleService,
    map_contact_status,
    map_deal_stage,
    verify_signature,
)

client = TestClient(app)

SECRET = "hubspot-secret"
CONTACT = {
    "id": "42",
    "properties": {
        "email": "a@b.com",
        "phone": "0501234567",
        "firstname": "Ahmed",
        "lastname": "Ali",
        "hs_lead_status": "SQL",
        "lifecyclestage": "lead",
    },
}


def sign(body: bytes, secret: str = SECRET) -> str:
    return hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()


def contact_event(**overrides):
    event = {
        "eventId": 1,
        "subscriptionType": "contact.propertyChange",
        "objectId": 42,
        "propertyName": "hs_lead_status",
        "propertyValue": "SQL",
        "occurredAt": 1_700_000_000_123,
    }
    event.update(overrides)
    return event


@pytest.fixture
def hubspot():
    mock = AsyncMock(spec=HubSpotClient)
    mock.get_contact.return_value = CONTACT
    return mock


@pytest.fixture
def lifecycle(hubspot, tracking_service):
    return LifecycleService(hubspot, tracking_service, webhook_secret=SECRET, site_url="https://example.com")


def test_verify_signature():
    body = b'[{"objectId": 1}]'
    assert verify_signature(body, sign(body), SECRET)
    assert verify_signature(body, "sha256=" + sign(body), SECRET)
    assert not verify_signature(body, sign(body, "other"), SECRET)
    assert not verify_signature(body, "", SECRET)


@pytest.mark.parametrize(
    "properties,expected",
    [
        ({"hs_lead_status": "qualified"}, ("Lead", 100.0, "qualified")),
        ({"hs_lead_status": "MQL"}, ("Lead", 100.0, "qualified")),
        ({"hs_lead_status": "sql"}, ("Lead", 200.0, "sales_qualified")),
        ({"hs_lead_status": "opportunity"}, ("InitiateCheckout", 500.0, "opportunity")),
        ({"hs_lead_status": "IN_PROGRESS"}, ("Lead", 50.0, "IN_PROGRESS")),
        ({}, ("Lead", 50.0, "new")),
        ({"hs_lead_status": "sql", "lifecyclestage": "opportunity"}, ("InitiateCheckout", 500.0, "sales_qualified")),
        ({"hs_lead_status": "sql", "lifecyclestage": "customer"}, ("Purchase", 1000.0, "sales_qualified")),
    ],
)
def test_map_contact_status(properties, expected):
    status = map_contact_status(properties)
    assert (status.event_name, status.value, status.lead_status) == expected


@pytest.mark.parametrize(
    "properties,expected",
    [
        ({"dealstage": "closedwon", "amount": "2500"}, ("Purchase", 2500.0)),
        ({"dealstage": "closedwon"}, ("Purchase", 1000.0)),
        ({"dealstage": "proposal_sent", "amount": "2000"}, ("InitiateCheckout", 1000.0)),
        ({"dealstage": "negotiation"}, ("InitiateCheckout", 500.0)),
        ({"dealstage": "appointmentscheduled", "amount": "abc"}, ("InitiateCheckout", 1000.0)),
    ],
)
def test_map_deal_stage(properties, expected):
    status = map_deal_stage(properties)
    assert (status.event_name, status.value) == expected


@pytest.mark.asyncio
async def test_contact_change_is_tracked(lifecycle, hubspot, adapters):
    summary = await lifecycle.process([contact_event()])

    assert (summary.processed, summary.failed) == (1, 0)
    hubspot.get_contact.assert_awaited_once_with("42")
    assert [len(adapter.events) for adapter in adapters] == [1, 0, 0, 0]

    event = adapters[0].events[0]
    assert event.event_name == "Lead"
    assert event.action_source.value == "system"
    assert event.event_time == 1_700_000_000
    assert event.event_source_url == "https://example.com"
    assert event.user_data.em == sha256_hex("a@b.com")
    assert event.user_data.ph == sha256_hex("966501234567")
    assert event.user_data.external_id == sha256_hex("42")
    assert event.user_data.country == sha256_hex("sa")
    assert event.custom_data.value == 200.0
    assert event.custom_data.lead_status == "sales_qualified"
    assert event.custom_data.hubspot_contact_id == "42"


@pytest.mark.asyncio
async def test_deal_event_uses_first_contact(lifecycle, hubspot, adapters):
    hubspot.get_deal.return_value = {
        "id": "900",
        "properties": {"dealname": "Warehouse racks", "amount": "4000", "dealstage": "closedwon"},
        "associations": {"contacts": {"results": [{"id": "42", "type": "deal_to_contact"}]}},
    }
    summary = await lifecycle.process([{"subscriptionType": "deal.propertyChange", "objectId": 900, "occurredAt": 1_700_000_000_000}])

    assert summary.failed == 0
    hubspot.get_deal.assert_awaited_once_with("900")
    hubspot.get_contact.assert_awaited_once_with("42")

    event = adapters[0].events[0]
    assert event.event_name == "Purchase"
    assert event.custom_data.value == 4000.0
    assert event.custom_data.deal_amount == 4000.0
    assert event.custom_data.hubspot_deal_id == "900"
    assert event.custom_data.content_name == "Warehouse racks"
    assert event.custom_data.deal_stage == "closedwon"


@pytest.mark.asyncio
async def test_deal_without_contact_is_skipped(lifecycle, hubspot, adapters):
    hubspot.get_deal.return_value = {"id": "900", "properties": {"dealstage": "closedwon"}}
    summary = await lifecycle.process([{"subscriptionType": "deal.creation", "objectId": 900}])

    assert (summary.processed, summary.failed) == (1, 0)
    hubspot.get_contact.assert_not_awaited()
    assert adapters[0].events == []


@pytest.mark.asyncio
async def test_failing_event_is_counted_not_raised(lifecycle, hubspot, adapters):
    hubspot.get_contact.side_effect = [ExternalServiceError("HubSpot request failed: HTTP 404"), CONTACT]
    summary = await lifecycle.process([contact_event(), contact_event(eventId=2)])

    assert (summary.processed, summary.failed) == (2, 1)
    assert len(adapters[0].events) == 1


@pytest.mark.asyncio
async def test_platform_failure_counts_as_failed(make_adapter, make_tracking_service, hubspot):
    service = LifecycleService(hubspot, make_tracking_service([make_adapter("meta", success=False)]))
    summary = await service.process([contact_event()])
    assert summary.failed == 1


@pytest.mark.asyncio
async def test_unrelated_notifications_are_ignored(lifecycle, hubspot):
    summary = await lifecycle.process([
        contact_event(propertyName="email"),
        {"subscriptionType": "company.creation", "objectId": 7},
    ])
    assert (summary.processed, summary.failed) == (2, 0)
    hubspot.get_contact.assert_not_awaited()


def test_authenticate(hubspot, tracking_service):
    body = b"[]"
    LifecycleService(hubspot, tracking_service, webhook_secret=SECRET).authenticate(body, sign(body))
    LifecycleService(hubspot, tracking_service).authenticate(body, None)

    with pytest.raises(AuthenticationError):
        LifecycleService(hubspot, tracking_service, webhook_secret=SECRET).authenticate(body, "bad")
    with pytest.raises(AuthenticationError):
        LifecycleService(hubspot, tracking_service, require_signature=True).authenticate(body, None)


@pytest.mark.asyncio
async def test_hubspot_client_reads_contact():
    seen = {}

    async def handler(request):
        seen["authorization"] = request.headers.get("Authorization")
        seen["properties"] = request.query.get("properties")
        return web.json_response(CONTACT)

    hub = web.Application()
    hub.router.add_get("/crm/v3/objects/contacts/42", handler)
    server = test_utils.TestServer(hub)
    await server.start_server()
    try:
        hubspot = HubSpotClient("token", str(server.make_url("")))
        contact = await hubspot.get_contact("42")
        with pytest.raises(ExternalServiceError):
            await hubspot.get_deal("900")
    finally:
        await server.close()

    assert contact == CONTACT
    assert seen["authorization"] == "Bearer token"
    assert "hs_lead_status" in seen["properties"].split(",")


# Webhook route

@pytest.fixture
def webhook(lifecycle):
    app.dependency_overrides[get_lifecycle_service] = lambda: lifecycle
    yield lifecycle
    app.dependency_overrides.clear()


def test_webhook_processes_signed_events(webhook, adapters):
    body = json.dumps([contact_event()]).encode()
    response = client.post(
        "/api/hubspot/webhook",
        content=body,
        headers={"Content-Type": "application/json", "X-HubSpot-Signature-256": "sha256=" + sign(body)},
    )
    assert response.status_code == 200
    assert response.json() == {"success": True, "processed": 1, "failed": 0}
    assert len(adapters[0].events) == 1


def test_webhook_rejects_bad_signature(webhook, adapters):
    body = json.dumps([contact_event()]).encode()
    response = client.post(
        "/api/hubspot/webhook",
        content=body,
        headers={"Content-Type": "application/json", "X-HubSpot-Signature-256": "deadbeef"},
    )
    assert response.status_code == 401
    assert response.json()["error"] == "Invalid signature"
    assert adapters[0].events == []


def test_webhook_rejects_invalid_json(webhook):
    body = b"not json"
    response = client.post(
        "/api/hubspot/webhook",
        content=body,
        headers={"X-HubSpot-Signature-256": sign(body)},
    )
    assert response.status_code == 400
