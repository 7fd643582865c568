"""Tests for the Meta Conversions API relay."""
import hashlib
import time
import httpx
import orjson
import pytest
from fastapi.testclient import TestClient
from leadrelay.main import app
from leadrelay.services.meta import ConversionsApiClient, get_meta_client


def sha256(value: str) -> str:
    return hashlib.sha256(value.encode("utf-8")).hexdigest()


class Upstream:
    def __init__(self, status=200, body=None):
        self.status = status
        self.response_body = body if body is not None else {"events_received": 1, "fbtrace_id": "abc"}
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(self.status, json=self.response_body)

    @property
    def body(self):
        return orjson.loads(self.requests[-1].content)


@pytest.fixture
def upstream():
    return Upstream()


@pytest.fixture
def meta_client(upstream):
    return ConversionsApiClient(
        pixel_id="123456",
        access_token="token-abc",
        test_event_code="SERVER_CODE",
        api_version="v17.0",
        transport=httpx.MockTransport(upstream),
    )


@pytest.fixture
def client(meta_client):
    app.dependency_overrides[get_meta_client] = lambda: meta_client
    yield TestClient(app, cookies={"_vfx_extid": "visitor-1"})
    app.dependency_overrides.clear()


def event(**overrides):
    body = {
        "event_name": "Lead",
        "event_time": int(time.time()),
        "user_data": {"email": "ana@example.com", "phone": "11999998888"},
        "custom_data": {"value": 45, "currency": "BRL"},
    }
    body.update(overrides)
    return body


def test_conversion_is_forwarded(client, upstream):
    r = client.post(
        "/api/meta-conversions",
        json=event(test_event_code="CLIENT_CODE"),
        headers={"user-agent": "pytest-agent", "x-forwarded-for": "203.0.113.7"},
    )

    assert r.status_code == 200
    data = r.json()
    assert data["success"] is True
    assert data["event_name"] == "Lead"
    assert data["event_id"]
    assert data["data"]["events_received"] == 1

    body = upstream.body
    assert body["access_token"] == "token-abc"
    assert body["test_event_code"] == "SERVER_CODE"
    sent = body["data"][0]
    assert "test_event_code" not in sent
    assert sent["event_id"] == data["event_id"]
    assert sent["custom_data"] == {"value": 45, "currency": "BRL"}
    user_data = sent["user_data"]
    assert user_data["em"] == sha256("ana@example.com")
    assert user_data["ph"] == sha256("5511999998888")
    assert "email" not in user_data and "phone" not in user_data
    assert user_data["client_user_agent"] == "pytest-agent"
    assert user_data["client_ip_address"] == "203.0.113.7"
    assert user_data["external_id"] == sha256("visitor-1")


def test_client_event_id_is_kept(client, upstream):
    r = client.post("/api/meta-conversions", json=event(event_id="evt-1"))

    assert r.json()["event_id"] == "evt-1"
    assert upstream.body["data"][0]["event_id"] == "evt-1"


def test_singular_alias(client, upstream):
    r = client.post("/api/meta-conversion", json=event())

    assert r.status_code == 200
    assert len(upstream.requests) == 1


@pytest.mark.parametrize("missing", ["event_name", "event_time", "user_data"])
def test_incomplete_event_is_rejected(client, upstream, missing):
    body = event()
    del body[missing]

    r = client.post("/api/meta-conversions", json=body)

    assert r.status_code == 400
    assert r.json()["error"] == "Missing required fields"
    assert upstream.requests == []


def test_missing_token_is_a_server_error(upstream):
    unconfigured = ConversionsApiClient(pixel_id="123456", transport=httpx.MockTransport(upstream))
    unconfigured.access_token = None
    app.dependency_overrides[get_meta_client] = lambda: unconfigured
    try:
        r = TestClient(app).post("/api/meta-conversions", json=event())
    finally:
        app.dependency_overrides.clear()

    assert r.status_code == 500
    assert r.json()["error"] == "Meta access token is not configured"
    assert upstream.requests == []


def test_upstream_error_is_propagated(client, upstream):
    upstream.status = 400
    upstream.response_body = {"error": {"message": "Invalid parameter", "code": 100}}

    r = client.post("/api/meta-conversions", json=event())

    assert r.status_code == 400
    data = r.json()
    assert data["success"] is False
    assert data["details"] == {"error": {"message": "Invalid parameter", "code": 100}}


def test_preflight(client):
    r = client.options("/api/meta-conversions")

    assert r.status_code == 204
    assert r.headers["access-control-allow-origin"] == "*"
