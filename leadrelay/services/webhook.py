"""CRM webhook delivery with bounded retries and exponential backoff."""
import asyncio
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable
from urllib.parse import urlparse
import httpx
import orjson
import structlog
from pydantic import BaseModel
from ..config import get_settings
from ..metrics import get_metrics

log = structlog.get_logger()

USER_AGENT = "LeadRelay-Webhook/1.0"


class DeliveryResult(BaseModel):
    success: bool
    attempts: int = 0
    status_code: int | None = None
    error: str | None = None


def is_valid_webhook_url(url: Any) -> bool:
    """Only absolute https URLs are accepted."""
    if not url or not isinstance(url, str):
        return False
    try:
        parsed = urlparse(url)
    except ValueError:
        return False
    return parsed.scheme == "https" and bool(parsed.netloc)


def redact_url(url: str) -> str:
    return url[:30] + "..." if len(url) > 30 else url


class WebhookDispatcher:
    """
    Forwards JSON payloads to an external webhook.

    Each attempt races the POST against a timeout; failed attempts are
    retried after ``2 ** attempt`` seconds (1s, 2s, ...) with no jitter.
    Delivery is all-or-nothing per call.
    """

    def __init__(
        self,
        max_attempts: int | None = None,
        timeout_seconds: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        """
        Args:
            max_attempts: Attempts before giving up (defaults to settings)
            timeout_seconds: Per-attempt timeout (defaults to settings)
            transport: Optional httpx transport, used by tests
            sleep: Backoff sleep coroutine, injectable for tests
        """
        settings = get_settings()
        self.max_attempts = settings.WEBHOOK_MAX_ATTEMPTS if max_attempts is None else max_attempts
        self.timeout_seconds = settings.WEBHOOK_TIMEOUT_SECONDS if timeout_seconds is None else timeout_seconds
        self._transport = transport
        self._sleep = sleep

    async def dispatch(self, url: str, payload: dict[str, Any]) -> DeliveryResult:
        """
        Deliver a payload, retrying on non-2xx, network errors and timeouts.

        Args:
            url: https webhook URL
            payload: JSON object; ``created_at`` is injected

        Returns:
            DeliveryResult; an invalid URL fails without any network call
        """
        if not is_valid_webhook_url(url):
            log.warning("webhook.invalid_url", url=redact_url(str(url)) if url else None)
            return DeliveryResult(success=False, error="Invalid webhook URL")

        body = orjson.dumps({**payload, "created_at": datetime.now(timezone.utc).isoformat()})
        headers = {"Content-Type": "application/json", "User-Agent": USER_AGENT}
        metrics = get_metrics()
        last_error = "Max retries exceeded"

        async with httpx.AsyncClient(transport=self._transport, timeout=self.timeout_seconds) as client:
            for attempt in range(self.max_attempts):
                log.info(
                    "webhook.attempt",
                    attempt=attempt + 1,
                    max_attempts=self.max_attempts,
                    url=redact_url(url),
                )
                try:
                    response = await asyncio.wait_for(
                        client.post(url, content=body, headers=headers),
                        timeout=self.timeout_seconds,
                    )
                    if response.is_success:
                        metrics.webhook_attempts_total.labels(outcome="success").inc()
                        log.info(
                            "webhook.delivered",
                            attempt=attempt + 1,
                            status=response.status_code,
                        )
                        return DeliveryResult(
                            success=True,
                            attempts=attempt + 1,
                            status_code=response.status_code,
                        )
                    last_error = f"HTTP error! status: {response.status_code} body: {response.text}"
                except (asyncio.TimeoutError, httpx.TimeoutException):
                    last_error = "Request timeout"
                except httpx.HTTPError as e:
                    last_error = str(e) or e.__class__.__name__

                metrics.webhook_attempts_total.labels(outcome="error").inc()
                log.warning(
                    "webhook.attempt_failed",
                    attempt=attempt + 1,
                    error=last_error,
                    url=redact_url(url),
                )

                if attempt < self.max_attempts - 1:
                    await self._sleep(2 ** attempt)

        log.error("webhook.failed", attempts=self.max_attempts, error=last_error, url=redact_url(url))
        return DeliveryResult(
            success=False,
            attempts=self.max_attempts,
            error=f"Webhook failed after {self.max_attempts} attempts: {last_error}",
        )


def get_webhook_dispatcher() -> WebhookDispatcher:
    return WebhookDispatcher()
