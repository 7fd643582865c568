"""Tests for analytics gateways."""
import asyncio
import hashlib
import httpx
import orjson
import pytest
from leadrelay.adapters.memory import InMemoryStore
from leadrelay.services.dedup import DedupStore, Namespace
from leadrelay.services.ga4 import MeasurementProtocolClient
from leadrelay.services.gateways import (
    DUPLICATE,
    SENT,
    AnalyticsGateway,
    GA4Gateway,
    GatewayState,
    MetaPixelGateway,
)
from leadrelay.services.meta import ConversionsApiClient


class FakeGateway(AnalyticsGateway):
    name = "fake"
    namespace = Namespace.DEFAULT

    def __init__(self, dedup, ready=True, fail_emit=False):
        super().__init__(dedup)
        self.ready = ready
        self.fail_emit = fail_emit
        self.init_calls = 0
        self.emitted = []

    async def _init(self):
        self.init_calls += 1
        await asyncio.sleep(0)
        return self.ready

    async def _emit(self, event_name, params, user_data):
        if self.fail_emit:
            raise RuntimeError("upstream unavailable")
        self.emitted.append((event_name, params, user_data))


@pytest.fixture
def dedup():
    return DedupStore(store=InMemoryStore())


def recording_transport(requests, status=200, body=None):
    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(status, json=body if body is not None else {})

    return httpx.MockTransport(handler)


@pytest.mark.asyncio
async def test_initialize_runs_init_once(dedup):
    gateway = FakeGateway(dedup)
    assert gateway.state is GatewayState.UNINITIALIZED

    results = await asyncio.gather(*(gateway.initialize() for _ in range(5)))

    assert results == [True] * 5
    assert gateway.init_calls == 1
    assert gateway.state is GatewayState.INITIALIZED
    assert gateway.is_initialized is True


@pytest.mark.asyncio
async def test_failed_init_leaves_gateway_uninitialized(dedup):
    gateway = FakeGateway(dedup, ready=False)

    assert await gateway.initialize() is False
    assert gateway.state is GatewayState.UNINITIALIZED


@pytest.mark.asyncio
async def test_events_before_init_are_dropped(dedup):
    gateway = FakeGateway(dedup)

    outcome = await gateway.track_event("Contact")

    assert not outcome
    assert outcome.error == "not_initialized"
    assert gateway.emitted == []

    # Dropped, not queued
    await gateway.initialize()
    assert gateway.emitted == []


@pytest.mark.asyncio
async def test_duplicate_events_are_suppressed(dedup):
    gateway = FakeGateway(dedup)
    await gateway.initialize()

    first = await gateway.track_event("Contact", {"value": 1}, identifier="5511999998888")
    second = await gateway.track_event("Contact", {"value": 1}, identifier="5511999998888")

    assert first.value == SENT
    assert second.ok and second.value == DUPLICATE
    assert len(gateway.emitted) == 1
    assert await dedup.is_already_sent("Contact", "5511999998888", namespace=Namespace.DEFAULT)


@pytest.mark.asyncio
async def test_dedupe_can_be_bypassed(dedup):
    gateway = FakeGateway(dedup)
    await gateway.initialize()

    await gateway.track_event("Contact", dedupe=False)
    await gateway.track_event("Contact", dedupe=False)

    assert len(gateway.emitted) == 2


@pytest.mark.asyncio
async def test_emit_failure_is_returned_and_not_marked(dedup):
    gateway = FakeGateway(dedup, fail_emit=True)
    await gateway.initialize()

    outcome = await gateway.track_event("Contact")

    assert not outcome
    assert "upstream unavailable" in outcome.error
    assert await dedup.is_already_sent("Contact", namespace=Namespace.DEFAULT) is False


@pytest.mark.asyncio
async def test_meta_gateway_sends_hashed_user_data(dedup):
    requests = []
    client = ConversionsApiClient(
        pixel_id="123456",
        access_token="token-abc",
        test_event_code="TEST1",
        api_version="v17.0",
        transport=recording_transport(requests, body={"events_received": 1}),
    )
    gateway = MetaPixelGateway(client=client, dedup=dedup)
    await gateway.initialize()

    outcome = await gateway.track_event(
        "Lead",
        {"value": 100, "currency": "BRL", "event_source_url": "https://site.example/obrigado"},
        identifier="ana@example.com",
        user_data={"email": "ana@example.com", "client_user_agent": "UA"},
    )

    assert outcome.value == SENT
    request = requests[0]
    assert str(request.url) == "https://graph.facebook.com/v17.0/123456/events"
    body = orjson.loads(request.content)
    assert body["access_token"] == "token-abc"
    assert body["test_event_code"] == "TEST1"
    event = body["data"][0]
    assert event["event_name"] == "Lead"
    assert event["action_source"] == "website"
    assert event["event_source_url"] == "https://site.example/obrigado"
    assert event["custom_data"] == {"value": 100, "currency": "BRL"}
    assert event["user_data"]["em"] == hashlib.sha256(b"ana@example.com").hexdigest()
    assert "email" not in event["user_data"]
    assert event["event_id"]
    assert await dedup.is_already_sent("Lead", "ana@example.com", namespace=Namespace.META)


@pytest.mark.asyncio
async def test_meta_gateway_upstream_rejection(dedup):
    requests = []
    client = ConversionsApiClient(
        pixel_id="123456",
        access_token="token-abc",
        transport=recording_transport(requests, status=400, body={"error": {"message": "bad"}}),
    )
    gateway = MetaPixelGateway(client=client, dedup=dedup)
    await gateway.initialize()

    outcome = await gateway.track_event("Lead")

    assert not outcome
    assert "rejected" in outcome.error


@pytest.mark.asyncio
async def test_meta_gateway_not_configured_stays_uninitialized(dedup):
    client = ConversionsApiClient(pixel_id="123456", access_token=None)
    client.access_token = None
    gateway = MetaPixelGateway(client=client, dedup=dedup)

    assert await gateway.initialize() is False
    assert (await gateway.track_event("Lead")).error == "not_initialized"


@pytest.mark.asyncio
async def test_ga4_gateway_sends_measurement_protocol_event(dedup):
    requests = []
    client = MeasurementProtocolClient(
        measurement_id="G-TEST",
        api_secret="secret",
        debug=False,
        transport=recording_transport(requests, status=204),
    )
    gateway = GA4Gateway(client=client, dedup=dedup)
    await gateway.initialize()

    outcome = await gateway.track_event(
        "QualifiedLead",
        {"value": 45},
        identifier="5511999998888",
        user_data={"client_id": "GA1.1.111.222", "user_id": "u-1"},
    )

    assert outcome.value == SENT
    request = requests[0]
    assert request.url.path == "/mp/collect"
    assert request.url.params["measurement_id"] == "G-TEST"
    assert request.url.params["api_secret"] == "secret"
    body = orjson.loads(request.content)
    assert body["client_id"] == "GA1.1.111.222"
    assert body["user_id"] == "u-1"
    assert body["events"] == [{"name": "QualifiedLead", "params": {"value": 45, "engagement_time_msec": 100}}]
    assert await dedup.is_already_sent("QualifiedLead", "5511999998888", namespace=Namespace.GA4)


@pytest.mark.asyncio
async def test_ga4_gateway_generates_client_id(dedup):
    requests = []
    client = MeasurementProtocolClient(
        measurement_id="G-TEST",
        api_secret="secret",
        transport=recording_transport(requests, status=204),
    )
    gateway = GA4Gateway(client=client, dedup=dedup)
    await gateway.initialize()

    await gateway.track_event("page_view")

    body = orjson.loads(requests[0].content)
    assert body["client_id"].startswith("GA1.1.")


@pytest.mark.asyncio
async def test_meta_gateway_drops_ga4_client_id(dedup):
    requests = []
    client = ConversionsApiClient(
        pixel_id="123456",
        access_token="token-abc",
        transport=recording_transport(requests, body={"events_received": 1}),
    )
    gateway = MetaPixelGateway(client=client, dedup=dedup)
    await gateway.initialize()

    await gateway.track_event("Lead", user_data={"email": "ana@example.com", "client_id": "GA1.1.123.456"})

    event = orjson.loads(requests[0].content)["data"][0]
    assert sorted(event["user_data"]) == ["em"]
