"""Redis key-value adapter."""
import structlog
from redis.asyncio import Redis
from redis.exceptions import RedisError
from .base import KeyValueStore
from ..config import get_settings

log = structlog.get_logger()
settings = get_settings()


class RedisStore(KeyValueStore):
    """Redis implementation of the dedup key-value backend.

    Keys are prefixed so several services can share one database. Expiry
    is delegated to Redis (``PX``).
    """

    def __init__(self, redis_url: str | None = None, prefix: str = "leadrelay:"):
        """
        Initialize Redis adapter.

        Args:
            redis_url: Redis connection URL (defaults to settings.REDIS_URL)
            prefix: Namespace prepended to every key
        """
        self.redis_url = redis_url or str(settings.REDIS_URL)
        self.prefix = prefix
        self._client: Redis | None = None

    def _get_client(self) -> Redis:
        """Get or create Redis client."""
        if self._client is None:
            self._client = Redis.from_url(
                self.redis_url,
                decode_responses=False,
                socket_connect_timeout=5,
                socket_timeout=5,
            )
        return self._client

    def _key(self, key: str) -> str:
        return f"{self.prefix}{key}"

    async def get(self, key: str) -> bytes | None:
        """
        Read a key.

        Raises:
            RedisError: If Redis is unreachable
        """
        try:
            return await self._get_client().get(self._key(key))
        except RedisError as e:
            log.error("redis.get_failed", error=str(e), key=key)
            raise

    async def set(self, key: str, value: bytes, ttl_seconds: float | None = None) -> None:
        """
        Write a key with optional expiry.

        Raises:
            RedisError: If Redis is unreachable
        """
        try:
            if ttl_seconds:
                await self._get_client().set(self._key(key), value, px=int(ttl_seconds * 1000))
            else:
                await self._get_client().set(self._key(key), value)
        except RedisError as e:
            log.error("redis.set_failed", error=str(e), key=key)
            raise

    async def delete(self, key: str) -> bool:
        try:
            return bool(await self._get_client().delete(self._key(key)))
        except RedisError as e:
            log.error("redis.delete_failed", error=str(e), key=key)
            raise

    async def health_check(self) -> bool:
        """
        Check Redis connection health.

        Returns:
            True if Redis is accessible, False otherwise
        """
        try:
            return bool(await self._get_client().ping())
        except Exception as e:
            log.warning("redis.health_check_failed", error=str(e))
            return False

    async def close(self):
        """Close Redis connection."""
        if self._client:
            await self._client.aclose()
            self._client = None
