"""Base interface for dedup store backends."""
from abc import ABC, abstractmethod


class KeyValueStore(ABC):
    """Abstract key-value backend with per-key expiry."""

    @abstractmethod
    async def get(self, key: str) -> bytes | None:
        """
        Read a value.

        Args:
            key: Storage key

        Returns:
            The stored bytes, or None when missing or expired
        """
        pass

    @abstractmethod
    async def set(self, key: str, value: bytes, ttl_seconds: float | None = None) -> None:
        """
        Write a value, replacing any previous one.

        Args:
            key: Storage key
            value: Serialized value
            ttl_seconds: Optional expiry; None keeps the key until deleted
        """
        pass

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """
        Delete a key.

        Returns:
            True if the key existed
        """
        pass

    @abstractmethod
    async def health_check(self) -> bool:
        """
        Check if the backend is healthy and accessible.

        Returns:
            True if backend is healthy, False otherwise
        """
        pass

    async def close(self) -> None:
        """Release backend connections."""
        pass
