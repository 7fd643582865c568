"""Tests for key-value adapters."""
import pytest
from unittest.mock import AsyncMock, patch
from redis.exceptions import ConnectionError as RedisConnectionError
from leadrelay.adapters.memory import InMemoryStore
from leadrelay.adapters.redis_store import RedisStore


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.mark.asyncio
async def test_memory_store_set_get_delete():
    """Test in-memory store round trip."""
    store = InMemoryStore()

    await store.set("key", b"value")
    assert await store.get("key") == b"value"

    assert await store.delete("key") is True
    assert await store.get("key") is None
    assert await store.delete("key") is False


@pytest.mark.asyncio
async def test_memory_store_expiry():
    """Test keys disappear once their TTL elapses."""
    clock = FakeClock()
    store = InMemoryStore(clock=clock)

    await store.set("key", b"value", ttl_seconds=10)
    clock.now += 9.9
    assert await store.get("key") == b"value"

    clock.now += 0.1
    assert await store.get("key") is None


@pytest.mark.asyncio
async def test_memory_store_health_check():
    assert await InMemoryStore().health_check() is True


@pytest.mark.asyncio
async def test_redis_store_set_with_expiry():
    """Test Redis store writes prefixed keys with PX expiry."""
    with patch("leadrelay.adapters.redis_store.Redis") as mock_redis_class:
        mock_redis = AsyncMock()
        mock_redis_class.from_url.return_value = mock_redis

        store = RedisStore(redis_url="redis://localhost:6379")
        await store.set("_meta_events_sent", b"[]", ttl_seconds=1.5)

        mock_redis_class.from_url.assert_called_once()
        mock_redis.set.assert_awaited_once_with("leadrelay:_meta_events_sent", b"[]", px=1500)


@pytest.mark.asyncio
async def test_redis_store_get_and_delete():
    with patch("leadrelay.adapters.redis_store.Redis") as mock_redis_class:
        mock_redis = AsyncMock()
        mock_redis_class.from_url.return_value = mock_redis
        mock_redis.get.return_value = b'[{"event_name": "Lead"}]'
        mock_redis.delete.return_value = 1

        store = RedisStore(redis_url="redis://localhost:6379", prefix="test:")

        assert await store.get("k") == b'[{"event_name": "Lead"}]'
        mock_redis.get.assert_awaited_once_with("test:k")
        assert await store.delete("k") is True
        mock_redis.delete.assert_awaited_once_with("test:k")


@pytest.mark.asyncio
async def test_redis_store_propagates_errors():
    """Test Redis errors are re-raised so callers can fail open."""
    with patch("leadrelay.adapters.redis_store.Redis") as mock_redis_class:
        mock_redis = AsyncMock()
        mock_redis_class.from_url.return_value = mock_redis
        mock_redis.get.side_effect = RedisConnectionError("down")

        store = RedisStore(redis_url="redis://localhost:6379")
        with pytest.raises(RedisConnectionError):
            await store.get("k")


@pytest.mark.asyncio
async def test_redis_store_health_check():
    with patch("leadrelay.adapters.redis_store.Redis") as mock_redis_class:
        mock_redis = AsyncMock()
        mock_redis_class.from_url.return_value = mock_redis
        mock_redis.ping.return_value = True

        store = RedisStore(redis_url="redis://localhost:6379")
        assert await store.health_check() is True

        mock_redis.ping.side_effect = RedisConnectionError("down")
        assert await store.health_check() is False


@pytest.mark.asyncio
async def test_redis_store_close():
    with patch("leadrelay.adapters.redis_store.Redis") as mock_redis_class:
        mock_redis = AsyncMock()
        mock_redis_class.from_url.return_value = mock_redis

        store = RedisStore(redis_url="redis://localhost:6379")
        store._get_client()
        await store.close()

        mock_redis.aclose.assert_awaited_once()
        assert store._client is None
