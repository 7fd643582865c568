"""In-memory key-value adapter."""
import time
from typing import Callable
import structlog
from .base import KeyValueStore

log = structlog.get_logger()


class InMemoryStore(KeyValueStore):
    """Process-local store; expired keys are dropped on read."""

    def __init__(self, clock: Callable[[], float] = time.time):
        self._data: dict[str, tuple[bytes, float | None]] = {}
        self._clock = clock

    async def get(self, key: str) -> bytes | None:
        entry = self._data.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at is not None and self._clock() >= expires_at:
            del self._data[key]
            return None
        return value

    async def set(self, key: str, value: bytes, ttl_seconds: float | None = None) -> None:
        expires_at = self._clock() + ttl_seconds if ttl_seconds else None
        self._data[key] = (value, expires_at)
        log.debug("store.set", key=key, ttl_seconds=ttl_seconds, adapter="memory")

    async def delete(self, key: str) -> bool:
        return self._data.pop(key, None) is not None

    async def health_check(self) -> bool:
        """In-memory adapter is always healthy."""
        return True
