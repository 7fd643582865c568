"""Sent-event deduplication backed by a pluggable key-value adapter.

Each namespace (GA4, META, DEFAULT) is persisted as one JSON list of
``StoredEvent`` records. A record suppresses re-sending its
(event_name, identifier) pair while ``now - timestamp < ttl``. Expired
records are pruned whenever a new one is stored.
"""
from enum import Enum
from typing import Callable
import orjson
import structlog
from ..adapters.base import KeyValueStore
from ..adapters.memory import InMemoryStore
from ..adapters.redis_store import RedisStore
from ..config import get_settings
from ..event_models import StoredEvent, now_ms
from ..outcome import Outcome

log = structlog.get_logger()
settings = get_settings()

MINUTE_MS = 60 * 1000
HOUR_MS = 60 * MINUTE_MS

EVENT_TTL_MS: dict[str, int] = {
    # Meta events
    "Lead": 24 * HOUR_MS,
    "Contact": 1 * HOUR_MS,
    "ViewContent": 30 * MINUTE_MS,
    "SubmitApplication": 24 * HOUR_MS,
    "Scroll": 15 * MINUTE_MS,
    "PageView": 5 * MINUTE_MS,
    "VideoPlay": 10 * MINUTE_MS,
    # GA4 events
    "Whatsapp": 1 * HOUR_MS,
    "VerApresentacao": 30 * HOUR_MS,
    "QualifiedLead": 24 * HOUR_MS,
    "scroll": 15 * MINUTE_MS,
    "page_view": 5 * MINUTE_MS,
    "video_progress": 10 * MINUTE_MS,
    "video_start": 10 * MINUTE_MS,
    "video_complete": 10 * MINUTE_MS,
}
DEFAULT_TTL_MS = 6 * HOUR_MS

DEFAULT_IDENTIFIER = "default"


class Namespace(str, Enum):
    META = "META"
    GA4 = "GA4"
    DEFAULT = "DEFAULT"


STORAGE_KEYS = {
    Namespace.META: "_meta_events_sent",
    Namespace.GA4: "_ga4_events_sent",
    Namespace.DEFAULT: "_analytics_events_sent",
}

GA4_EVENTS = frozenset({
    "page_view", "scroll", "VerApresentacao", "Lead", "QualifiedLead",
    "Whatsapp", "video_start", "video_progress", "video_complete",
})

META_EVENTS = frozenset({
    "PageView", "Scroll", "ViewContent", "Lead", "SubmitApplication",
    "Contact", "VideoPlay", "CompleteRegistration",
})


def ttl_for(event_name: str) -> int:
    """TTL in milliseconds for an event name."""
    return EVENT_TTL_MS.get(event_name, DEFAULT_TTL_MS)


def namespace_for(event_name: str) -> Namespace:
    """Derive the namespace from the event name; GA4 names win on overlap."""
    if event_name in GA4_EVENTS:
        return Namespace.GA4
    if event_name in META_EVENTS:
        return Namespace.META
    return Namespace.DEFAULT


class DedupStore:
    """
    Tracks which events were already sent.

    Reads fail open: any backend or decoding error counts as "not sent", so
    an event may be over-sent but is never silently lost.
    """

    def __init__(self, store: KeyValueStore | None = None, clock: Callable[[], int] = now_ms):
        """
        Initialize dedup store.

        Args:
            store: Key-value backend (defaults to the configured adapter)
            clock: Returns the current time in epoch milliseconds
        """
        if store is None:
            store = _create_default_store()
        self._store = store
        self._clock = clock

    def _is_active(self, event: StoredEvent, now: int) -> bool:
        return now - event.timestamp < ttl_for(event.event_name)

    async def _load(self, namespace: Namespace) -> list[StoredEvent]:
        raw = await self._store.get(STORAGE_KEYS[namespace])
        if not raw:
            return []
        return [StoredEvent(**item) for item in orjson.loads(raw)]

    async def _save(self, namespace: Namespace, events: list[StoredEvent]) -> None:
        key = STORAGE_KEYS[namespace]
        if not events:
            await self._store.delete(key)
            return
        now = self._clock()
        # Keep the key alive as long as its longest-lived record
        remaining_ms = max(ttl_for(e.event_name) - (now - e.timestamp) for e in events)
        await self._store.set(
            key,
            orjson.dumps([e.model_dump() for e in events]),
            ttl_seconds=max(remaining_ms, 1) / 1000,
        )

    async def is_already_sent(
        self,
        event_name: str,
        identifier: str = DEFAULT_IDENTIFIER,
        namespace: Namespace | None = None,
    ) -> bool:
        """
        Check whether a non-expired record exists for (event_name, identifier).

        Args:
            event_name: Event name, e.g. "Lead"
            identifier: Fingerprint chosen by the caller (form id, phone, ...)
            namespace: Force a namespace instead of deriving it

        Returns:
            True if the event must not be sent again
        """
        ns = namespace or namespace_for(event_name)
        try:
            events = await self._load(ns)
        except Exception as e:
            log.warning("dedup.read_failed", error=str(e), namespace=ns.value, event_name=event_name)
            return False

        now = self._clock()
        return any(
            e.event_name == event_name and e.identifier == identifier and self._is_active(e, now)
            for e in events
        )

    async def mark_as_sent(
        self,
        event_name: str,
        identifier: str = DEFAULT_IDENTIFIER,
        metadata: dict | None = None,
        namespace: Namespace | None = None,
    ) -> Outcome[StoredEvent]:
        """
        Record an event as sent and prune expired records of its namespace.

        Returns:
            Outcome holding the stored record; failures are logged, not raised
        """
        ns = namespace or namespace_for(event_name)
        event = StoredEvent(
            event_name=event_name,
            identifier=identifier,
            timestamp=self._clock(),
            metadata=metadata,
        )
        try:
            try:
                events = await self._load(ns)
            except ValueError as e:
                log.warning("dedup.corrupt_list_reset", error=str(e), namespace=ns.value)
                events = []
            events.append(event)
            now = self._clock()
            await self._save(ns, [e for e in events if self._is_active(e, now)])
        except Exception as e:
            log.error("dedup.write_failed", error=str(e), namespace=ns.value, event_name=event_name)
            return Outcome.failure(str(e), value=event)

        log.info("dedup.marked", event_name=event_name, identifier=identifier, namespace=ns.value)
        return Outcome.success(event)

    async def clear(
        self,
        event_name: str | None = None,
        identifier: str | None = None,
        namespace: Namespace | None = None,
    ) -> Outcome[int]:
        """
        Remove sent-event records.

        Without arguments every namespace is cleared; with only a namespace
        that whole namespace is cleared; otherwise records matching the given
        event name and/or identifier are removed.

        Returns:
            Outcome holding the number of removed records (-1 when a whole
            namespace key was dropped without being read)
        """
        try:
            if event_name is None and identifier is None:
                targets = [namespace] if namespace else list(Namespace)
                for ns in targets:
                    await self._store.delete(STORAGE_KEYS[ns])
                log.info("dedup.cleared", namespaces=[ns.value for ns in targets])
                return Outcome.success(-1)

            ns = namespace or (namespace_for(event_name) if event_name else Namespace.DEFAULT)
            events = await self._load(ns)
            kept = [
                e for e in events
                if (event_name is not None and e.event_name != event_name)
                or (identifier is not None and e.identifier != identifier)
            ]
            await self._save(ns, kept)
            removed = len(events) - len(kept)
            log.info(
                "dedup.cleared",
                namespace=ns.value,
                event_name=event_name,
                identifier=identifier,
                removed=removed,
            )
            return Outcome.success(removed)
        except Exception as e:
            log.error("dedup.clear_failed", error=str(e))
            return Outcome.failure(str(e), value=0)

    async def get_all(self, namespace: Namespace | None = None) -> dict[str, list[StoredEvent]]:
        """Non-expired records per namespace, for debugging."""
        targets = [namespace] if namespace else list(Namespace)
        now = self._clock()
        result: dict[str, list[StoredEvent]] = {}
        for ns in targets:
            try:
                events = await self._load(ns)
            except Exception as e:
                log.warning("dedup.read_failed", error=str(e), namespace=ns.value)
                events = []
            result[ns.value] = [e for e in events if self._is_active(e, now)]
        return result

    async def health_check(self) -> bool:
        """Check backend adapter health."""
        return await self._store.health_check()

    async def close(self) -> None:
        await self._store.close()


def _create_default_store() -> KeyValueStore:
    """
    Create the default backend based on configuration.

    Returns:
        KeyValueStore instance based on DEDUP_BACKEND setting
    """
    if settings.DEDUP_BACKEND == "redis":
        if not settings.REDIS_URL:
            log.warning(
                "dedup.backend_fallback",
                requested="redis",
                actual="memory",
                reason="REDIS_URL not configured",
            )
            return InMemoryStore()

        log.info("dedup.backend_selected", type="redis")
        return RedisStore()

    log.info("dedup.backend_selected", type="memory")
    return InMemoryStore()


# Global dedup store instance
dedup_store = DedupStore()


def get_dedup_store() -> DedupStore:
    return dedup_store
