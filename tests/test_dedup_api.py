"""Tests for the sent-event debug endpoints."""
import pytest
from fastapi.testclient import TestClient
from leadrelay.adapters.memory import InMemoryStore
from leadrelay.main import app
from leadrelay.services.dedup import DedupStore, get_dedup_store


@pytest.fixture
def dedup():
    return DedupStore(store=InMemoryStore())


@pytest.fixture
def client(dedup):
    app.dependency_overrides[get_dedup_store] = lambda: dedup
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.mark.asyncio
async def test_list_and_clear(client, dedup):
    await dedup.mark_as_sent("Lead", "ana@example.com")
    await dedup.mark_as_sent("PageView")

    r = client.get("/api/dedup/events")
    assert r.status_code == 200
    data = r.json()
    assert data["total"] == 2
    assert data["events"]["GA4"][0]["event_name"] == "Lead"
    assert data["events"]["META"][0]["event_name"] == "PageView"

    r = client.get("/api/dedup/events", params={"namespace": "META"})
    assert list(r.json()["events"]) == ["META"]

    r = client.delete("/api/dedup/events", params={"event_name": "Lead"})
    assert r.json() == {"success": True, "removed": 1}
    assert await dedup.is_already_sent("Lead", "ana@example.com") is False

    r = client.delete("/api/dedup/events")
    assert r.status_code == 200
    assert client.get("/api/dedup/events").json()["total"] == 0


def test_unknown_namespace_is_rejected(client):
    r = client.get("/api/dedup/events", params={"namespace": "TIKTOK"})

    assert r.status_code == 400
