"""GA4 Measurement Protocol client."""
import random
import time
from typing import Any
import httpx
import structlog
from ..config import get_settings
from ..errors import ConfigurationError, DeliveryError
from ..metrics import get_metrics

log = structlog.get_logger()

MEASUREMENT_PROTOCOL_ENDPOINT = "https://www.google-analytics.com/mp/collect"
DEBUG_ENDPOINT = "https://www.google-analytics.com/debug/mp/collect"


def generate_client_id() -> str:
    """GA-style client id: GA1.1.<random>.<epoch seconds>."""
    return f"GA1.1.{random.randint(0, 2147483646)}.{int(time.time())}"


class MeasurementProtocolClient:
    """Sends server-side events to GA4."""

    def __init__(
        self,
        measurement_id: str | None = None,
        api_secret: str | None = None,
        debug: bool | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout_seconds: float = 10.0,
    ):
        settings = get_settings()
        self.measurement_id = measurement_id or settings.NEXT_PUBLIC_GA4_MEASUREMENT_ID
        self.api_secret = api_secret or settings.GA4_API_SECRET
        self.debug = settings.GA4_DEBUG if debug is None else debug
        self._transport = transport
        self._timeout = timeout_seconds

    @property
    def configured(self) -> bool:
        return bool(self.measurement_id and self.api_secret)

    @property
    def endpoint(self) -> str:
        return DEBUG_ENDPOINT if self.debug else MEASUREMENT_PROTOCOL_ENDPOINT

    def ensure_configured(self):
        if not self.configured:
            log.error(
                "ga4.not_configured",
                has_measurement_id=bool(self.measurement_id),
                has_api_secret=bool(self.api_secret),
            )
            raise ConfigurationError("GA4 is not configured on the server")

    async def send(
        self,
        client_id: str,
        events: list[dict[str, Any]],
        user_id: str | None = None,
        user_properties: dict[str, Any] | None = None,
        non_personalized_ads: bool | None = None,
        timestamp_micros: int | None = None,
    ) -> httpx.Response:
        """
        Post a Measurement Protocol payload.

        Args:
            client_id: GA client id
            events: List of {"name": ..., "params": {...}}
            user_id: Optional signed-in user id
            user_properties: Optional user properties
            non_personalized_ads: Optional ads personalization flag
            timestamp_micros: Optional event time override

        Returns:
            The raw upstream response; callers map non-2xx statuses

        Raises:
            ConfigurationError: If measurement id or api secret is missing
            DeliveryError: On network failure
        """
        self.ensure_configured()

        payload: dict[str, Any] = {"client_id": client_id, "events": events}
        if user_id:
            payload["user_id"] = user_id
        if user_properties:
            payload["user_properties"] = user_properties
        if non_personalized_ads is not None:
            payload["non_personalized_ads"] = non_personalized_ads
        if timestamp_micros:
            payload["timestamp_micros"] = timestamp_micros

        params = {"measurement_id": self.measurement_id, "api_secret": self.api_secret}
        event_names = [e.get("name") for e in events]
        metrics = get_metrics()

        try:
            async with httpx.AsyncClient(transport=self._transport, timeout=self._timeout) as client:
                response = await client.post(self.endpoint, params=params, json=payload)
        except httpx.HTTPError as e:
            metrics.record_forwarded("ga4", False)
            log.error("ga4.send_failed", error=str(e), events=event_names)
            raise DeliveryError(f"Error sending event to GA4: {e}")

        metrics.record_forwarded("ga4", response.is_success)
        if response.is_success:
            log.info(
                "ga4.sent",
                events=event_names,
                status=response.status_code,
                endpoint="debug" if self.debug else "prod",
            )
        else:
            log.error("ga4.upstream_error", events=event_names, status=response.status_code, body=response.text)
        return response


def get_ga4_client() -> MeasurementProtocolClient:
    return MeasurementProtocolClient()
