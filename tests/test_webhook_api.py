"""Tests for the webhook forwarding endpoint."""
import httpx
import orjson
import pytest
from fastapi.testclient import TestClient
from leadrelay.main import app
from leadrelay.services.webhook import WebhookDispatcher, get_webhook_dispatcher


async def no_sleep(seconds):
    return None


def make_client(statuses, requests):
    remaining = list(statuses)

    def handler(request):
        requests.append(request)
        return httpx.Response(remaining.pop(0))

    dispatcher = WebhookDispatcher(transport=httpx.MockTransport(handler), sleep=no_sleep)
    app.dependency_overrides[get_webhook_dispatcher] = lambda: dispatcher
    return TestClient(app)


@pytest.fixture(autouse=True)
def clear_overrides():
    yield
    app.dependency_overrides.clear()


def test_webhook_forwarded():
    requests = []
    client = make_client([200], requests)

    r = client.post(
        "/api/webhook",
        json={"webhookUrl": "https://crm.example.com/hook", "name": "Ana"},
        headers={"origin": "https://site.example"},
    )

    assert r.status_code == 200
    assert r.json() == {"success": True}
    assert r.headers["access-control-allow-origin"] == "https://site.example"
    body = orjson.loads(requests[0].content)
    assert body["name"] == "Ana"
    assert "webhookUrl" not in body


@pytest.mark.parametrize("url", [None, "http://crm.example.com/hook", "crm.example.com"])
def test_invalid_webhook_url(url):
    requests = []
    client = make_client([200], requests)

    r = client.post("/api/webhook", json={"webhookUrl": url, "name": "Ana"})

    assert r.status_code == 400
    assert r.json()["error"] == "Invalid webhook URL"
    assert requests == []


def test_webhook_failure_after_retries():
    requests = []
    client = make_client([500, 500, 500], requests)

    r = client.post("/api/webhook", json={"webhookUrl": "https://crm.example.com/hook"})

    assert r.status_code == 500
    assert r.json()["error"].startswith("Webhook failed after 3 attempts")
    assert len(requests) == 3


def test_webhook_preflight():
    r = TestClient(app).options("/api/webhook")

    assert r.status_code == 204
    assert r.content == b""
    assert r.headers["access-control-allow-methods"] == "POST, OPTIONS"
