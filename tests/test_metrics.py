"""Tests for Prometheus metrics."""
from prometheus_client import CollectorRegistry
from leadrelay.metrics import Metrics


def sample(metrics, name, labels):
    return metrics.registry.get_sample_value(name, labels)


def test_forwarded_counter():
    metrics = Metrics(registry=CollectorRegistry())

    metrics.record_forwarded("meta", True)
    metrics.record_forwarded("meta", True)
    metrics.record_forwarded("ga4", False)

    assert sample(metrics, "leadrelay_events_forwarded_total", {"destination": "meta", "outcome": "success"}) == 2
    assert sample(metrics, "leadrelay_events_forwarded_total", {"destination": "ga4", "outcome": "error"}) == 1


def test_lead_scored_counter():
    metrics = Metrics(registry=CollectorRegistry())

    metrics.record_lead_scored(True)
    metrics.record_lead_scored(False)
    metrics.record_lead_scored(True)

    assert sample(metrics, "leadrelay_leads_scored_total", {"qualified": "true"}) == 2
    assert sample(metrics, "leadrelay_leads_scored_total", {"qualified": "false"}) == 1


def test_app_info_and_up():
    metrics = Metrics(service_name="leadrelay", version="9.9.9", registry=CollectorRegistry())

    assert sample(metrics, "app_up", {"service": "leadrelay", "version": "9.9.9"}) == 1
    assert sample(metrics, "app_info", {"service": "leadrelay", "version": "9.9.9"}) == 1
    assert sample(metrics, "http_requests_active", {"service": "leadrelay"}) == 0


def test_process_metrics():
    metrics = Metrics(registry=CollectorRegistry())

    metrics.update_system_metrics()

    assert sample(metrics, "process_resident_memory_bytes", {"service": "leadrelay"}) > 0
