"""Meta Conversions API client."""
import time
import uuid
from typing import Any
import httpx
import structlog
from ..config import get_settings
from ..errors import ConfigurationError, DeliveryError
from ..logging import mask_value
from ..metrics import get_metrics

log = structlog.get_logger()

GRAPH_API_BASE = "https://graph.facebook.com"


def generate_event_id() -> str:
    """Event id shared by pixel and server events for Meta-side dedup."""
    return f"{int(time.time() * 1000)}-{uuid.uuid4().hex[:13]}"


class ConversionsApiClient:
    """Sends server-side events to the Meta Graph API."""

    def __init__(
        self,
        pixel_id: str | None = None,
        access_token: str | None = None,
        test_event_code: str | None = None,
        api_version: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout_seconds: float = 10.0,
    ):
        settings = get_settings()
        self.pixel_id = pixel_id or settings.FACEBOOK_PIXEL_ID
        self.access_token = access_token or settings.META_API_ACCESS_TOKEN
        self.test_event_code = test_event_code or settings.META_TEST_EVENT_CODE
        self.api_version = api_version or settings.META_API_VERSION
        self._transport = transport
        self._timeout = timeout_seconds

    @property
    def configured(self) -> bool:
        return bool(self.pixel_id and self.access_token)

    @property
    def events_url(self) -> str:
        return f"{GRAPH_API_BASE}/{self.api_version}/{self.pixel_id}/events"

    def ensure_configured(self):
        if not self.access_token:
            log.error("meta.not_configured", missing="META_API_ACCESS_TOKEN")
            raise ConfigurationError("Meta access token is not configured")
        if not self.pixel_id:
            log.error("meta.not_configured", missing="FACEBOOK_PIXEL_ID")
            raise ConfigurationError("Meta pixel id is not configured")

    async def send(self, event: dict[str, Any]) -> httpx.Response:
        """
        Post one server event.

        Args:
            event: Conversions API event (event_name, event_time, user_data, ...)

        Returns:
            The raw upstream response; callers map non-2xx statuses

        Raises:
            ConfigurationError: If token or pixel id is missing
            DeliveryError: On network failure
        """
        self.ensure_configured()

        payload: dict[str, Any] = {"data": [event], "access_token": self.access_token}
        if self.test_event_code:
            payload["test_event_code"] = self.test_event_code

        metrics = get_metrics()
        try:
            async with httpx.AsyncClient(transport=self._transport, timeout=self._timeout) as client:
                response = await client.post(self.events_url, json=payload)
        except httpx.HTTPError as e:
            metrics.record_forwarded("meta", False)
            log.error("meta.send_failed", error=str(e), event_name=event.get("event_name"))
            raise DeliveryError(f"Error sending event to the Conversions API: {e}")

        metrics.record_forwarded("meta", response.is_success)
        log_fields = dict(
            event_name=event.get("event_name"),
            event_id=event.get("event_id"),
            status=response.status_code,
            access_token=mask_value(self.access_token, keep=4),
        )
        if response.is_success:
            log.info("meta.sent", **log_fields)
        else:
            log.error("meta.upstream_error", body=response.text, **log_fields)
        return response


def get_meta_client() -> ConversionsApiClient:
    return ConversionsApiClient()
