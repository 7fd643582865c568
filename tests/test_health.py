"""
Tests for health check endpoints.
"""
import pytest
from fastapi.testclient import TestClient
from leadrelay.adapters.memory import InMemoryStore
from leadrelay.health import HealthChecker
from leadrelay.main import app
from leadrelay.services.dedup import DedupStore
from leadrelay.services.lead_store import InMemoryLeadStore

client = TestClient(app)


class UnreachableLeadStore(InMemoryLeadStore):
    async def health_check(self):
        return False


def test_health_liveness():
    """Test liveness health check."""
    r = client.get("/health")
    assert r.status_code == 200
    data = r.json()
    assert data["status"] == "ok"
    assert data["service"] == "leadrelay"
    assert data["version"] == "0.1.0"
    assert data["timestamp"].endswith("Z")


def test_health_readiness():
    """Test readiness health check."""
    r = client.get("/health/ready")
    # Should be 200 (ready) or 503 (not ready)
    assert r.status_code in [200, 503]
    data = r.json()
    assert data["service"] == "leadrelay"
    assert set(data["checks"]) == {"dedup_store", "lead_store", "disk_space", "memory"}
    assert data["status"] == ("ready" if r.status_code == 200 else "not_ready")


@pytest.mark.asyncio
async def test_readiness_with_healthy_backends():
    checker = HealthChecker(dedup=DedupStore(store=InMemoryStore()), leads=InMemoryLeadStore())

    result = await checker.readiness()

    assert result["checks"]["dedup_store"]["status"] == "ok"
    assert result["checks"]["lead_store"]["status"] == "ok"


@pytest.mark.asyncio
async def test_readiness_with_unreachable_lead_store():
    checker = HealthChecker(dedup=DedupStore(store=InMemoryStore()), leads=UnreachableLeadStore())

    result = await checker.readiness()

    assert result["status"] == "not_ready"
    assert result["checks"]["lead_store"] == {"status": "error", "error": "lead_store unreachable"}


def test_metrics_endpoint():
    """Test Prometheus metrics endpoint."""
    client.get("/health")
    r = client.get("/metrics")
    assert r.status_code == 200
    content = r.text
    assert "http_requests_total" in content
    assert "http_request_duration_seconds" in content
    assert "app_up" in content
    assert "leadrelay_events_forwarded_total" in content
