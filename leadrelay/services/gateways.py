"""Analytics gateways: one-time initialization, dedup, and server-side emission.

A gateway moves UNINITIALIZED -> INITIALIZING -> INITIALIZED exactly once per
process. Events tracked before it is initialized are dropped, not queued.
"""
import asyncio
import time
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any
import structlog
from .dedup import DEFAULT_IDENTIFIER, DedupStore, Namespace, dedup_store
from .ga4 import MeasurementProtocolClient, generate_client_id
from .hashing import prepare_user_data
from .meta import ConversionsApiClient, generate_event_id
from ..errors import UpstreamError
from ..metrics import get_metrics
from ..outcome import Outcome

log = structlog.get_logger()

SENT = "sent"
DUPLICATE = "duplicate"


class GatewayState(str, Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    INITIALIZED = "initialized"


class AnalyticsGateway(ABC):
    """Base gateway; subclasses provide the init step and the emitter."""

    name: str = "gateway"
    namespace: Namespace = Namespace.DEFAULT

    def __init__(self, dedup: DedupStore | None = None):
        self.state = GatewayState.UNINITIALIZED
        self._dedup = dedup or dedup_store
        self._lock = asyncio.Lock()

    @property
    def is_initialized(self) -> bool:
        return self.state is GatewayState.INITIALIZED

    async def initialize(self) -> bool:
        """
        Run the init step once; concurrent callers wait for the same result.

        Returns:
            True when the gateway is ready to emit
        """
        if self.is_initialized:
            return True

        async with self._lock:
            if self.is_initialized:
                return True

            self.state = GatewayState.INITIALIZING
            try:
                ready = await self._init()
            except Exception as e:
                log.error("gateway.init_failed", gateway=self.name, error=str(e))
                ready = False

            self.state = GatewayState.INITIALIZED if ready else GatewayState.UNINITIALIZED
            log.info("gateway.state", gateway=self.name, state=self.state.value)
            return ready

    @abstractmethod
    async def _init(self) -> bool:
        pass

    @abstractmethod
    async def _emit(self, event_name: str, params: dict[str, Any], user_data: dict[str, Any]) -> None:
        """Send one event; raise on failure."""
        pass

    async def track_event(
        self,
        event_name: str,
        params: dict[str, Any] | None = None,
        identifier: str = DEFAULT_IDENTIFIER,
        user_data: dict[str, Any] | None = None,
        dedupe: bool = True,
    ) -> Outcome[str]:
        """
        Emit an event unless it was already sent within its TTL.

        Never raises: the outcome is ``sent`` or ``duplicate`` on success,
        and failures (not initialized, upstream errors) are returned.
        """
        if not self.is_initialized:
            log.debug("gateway.dropped", gateway=self.name, event_name=event_name, state=self.state.value)
            return Outcome.failure("not_initialized")

        if dedupe and await self._dedup.is_already_sent(event_name, identifier, namespace=self.namespace):
            get_metrics().events_deduplicated_total.labels(namespace=self.namespace.value).inc()
            log.info("gateway.duplicate_skipped", gateway=self.name, event_name=event_name)
            return Outcome.success(DUPLICATE)

        try:
            await self._emit(event_name, dict(params or {}), dict(user_data or {}))
        except Exception as e:
            log.warning("gateway.emit_failed", gateway=self.name, event_name=event_name, error=str(e))
            return Outcome.failure(str(e))

        if dedupe:
            await self._dedup.mark_as_sent(event_name, identifier, namespace=self.namespace)
        return Outcome.success(SENT)


class MetaPixelGateway(AnalyticsGateway):
    """Mirrors pixel events through the Conversions API."""

    name = "meta"
    namespace = Namespace.META

    def __init__(self, client: ConversionsApiClient | None = None, dedup: DedupStore | None = None):
        super().__init__(dedup)
        self.client = client or ConversionsApiClient()

    async def _init(self) -> bool:
        if not self.client.configured:
            log.info("gateway.disabled", gateway=self.name, reason="pixel id or access token missing")
            return False
        return True

    async def _emit(self, event_name: str, params: dict[str, Any], user_data: dict[str, Any]) -> None:
        user_data.pop("client_id", None)
        event: dict[str, Any] = {
            "event_name": event_name,
            "event_time": int(time.time()),
            "event_id": params.pop("event_id", None) or generate_event_id(),
            "action_source": params.pop("action_source", "website"),
            "user_data": prepare_user_data(user_data),
        }
        source_url = params.pop("event_source_url", None)
        if source_url:
            event["event_source_url"] = source_url
        if params:
            event["custom_data"] = params

        response = await self.client.send(event)
        if not response.is_success:
            raise UpstreamError("Conversions API rejected the event", response.status_code, response.text)


class GA4Gateway(AnalyticsGateway):
    """Mirrors gtag events through the Measurement Protocol."""

    name = "ga4"
    namespace = Namespace.GA4

    def __init__(self, client: MeasurementProtocolClient | None = None, dedup: DedupStore | None = None):
        super().__init__(dedup)
        self.client = client or MeasurementProtocolClient()

    async def _init(self) -> bool:
        if not self.client.configured:
            log.info("gateway.disabled", gateway=self.name, reason="measurement id or api secret missing")
            return False
        return True

    async def _emit(self, event_name: str, params: dict[str, Any], user_data: dict[str, Any]) -> None:
        client_id = user_data.get("client_id") or generate_client_id()
        response = await self.client.send(
            client_id=client_id,
            events=[{"name": event_name, "params": {**params, "engagement_time_msec": 100}}],
            user_id=user_data.get("user_id"),
        )
        if not response.is_success:
            raise UpstreamError("GA4 rejected the event", response.status_code, response.text)


meta_gateway = MetaPixelGateway()
ga4_gateway = GA4Gateway()
