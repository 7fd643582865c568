"""
Prometheus metrics for the LeadRelay service.
"""
from functools import lru_cache
from prometheus_client import Counter, Histogram, Gauge, Info, CollectorRegistry
import psutil
import os


class Metrics:
    """
    Centralized metrics for the LeadRelay service.
    """

    def __init__(self, service_name: str = "leadrelay", version: str = "0.1.0", registry=None):
        self.service_name = service_name
        self.version = version
        self.registry = registry or CollectorRegistry()

        # HTTP Metrics
        self.http_requests_total = Counter(
            "http_requests_total",
            "Total HTTP requests",
            ["service", "method", "path", "status"],
            registry=self.registry,
        )

        self.http_request_duration = Histogram(
            "http_request_duration_seconds",
            "HTTP request duration in seconds",
            ["service", "method", "path"],
            registry=self.registry,
        )

        self.http_requests_active = Gauge(
            "http_requests_active",
            "Number of active HTTP requests",
            ["service"],
            registry=self.registry,
        )
        self.http_requests_active.labels(service=service_name).set(0)

        # Application Info
        self.app_info = Info(
            "app",
            "Application information",
            registry=self.registry,
        )
        self.app_info.info({"service": service_name, "version": version})

        self.app_up = Gauge(
            "app_up",
            "Application up status (1=up, 0=down)",
            ["service", "version"],
            registry=self.registry,
        )
        self.app_up.labels(service=service_name, version=version).set(1)

        # Business Metrics - relay specific
        self.events_forwarded_total = Counter(
            "leadrelay_events_forwarded_total",
            "Events forwarded to third-party tracking endpoints",
            ["destination", "outcome"],
            registry=self.registry,
        )

        self.events_deduplicated_total = Counter(
            "leadrelay_events_deduplicated_total",
            "Events suppressed because they were already sent",
            ["namespace"],
            registry=self.registry,
        )

        self.webhook_attempts_total = Counter(
            "leadrelay_webhook_attempts_total",
            "CRM webhook delivery attempts",
            ["outcome"],
            registry=self.registry,
        )

        self.leads_scored_total = Counter(
            "leadrelay_leads_scored_total",
            "Leads scored at intake",
            ["qualified"],
            registry=self.registry,
        )

        # System Metrics
        self._setup_process_metrics()

    def _setup_process_metrics(self):
        """Set up process-level metrics using psutil."""
        self.process_memory_bytes = Gauge(
            "process_resident_memory_bytes",
            "Resident memory size in bytes",
            ["service"],
            registry=self.registry,
        )

        self.process_open_fds = Gauge(
            "process_open_fds",
            "Number of open file descriptors",
            ["service"],
            registry=self.registry,
        )

        self.update_system_metrics()

    def update_system_metrics(self):
        """Update system metrics from psutil."""
        process = psutil.Process(os.getpid())
        self.process_memory_bytes.labels(service=self.service_name).set(process.memory_info().rss)
        try:
            self.process_open_fds.labels(service=self.service_name).set(process.num_fds())
        except AttributeError:
            # num_fds() not available on all platforms
            pass

    def record_forwarded(self, destination: str, ok: bool):
        """Record one forward to Meta or GA4."""
        self.events_forwarded_total.labels(
            destination=destination, outcome="success" if ok else "error"
        ).inc()

    def record_lead_scored(self, qualified: bool):
        self.leads_scored_total.labels(qualified=str(qualified).lower()).inc()


@lru_cache(maxsize=1)
def get_metrics() -> Metrics:
    return Metrics(service_name="leadrelay", version="0.1.0")
