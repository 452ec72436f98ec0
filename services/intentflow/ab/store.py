"""
Small async key-value interface behind A/B persistence.

Two implementations:
  InMemoryKeyValueStore  — dict-backed; default when no Redis is configured
                           and the store used in tests.
  RedisKeyValueStore     — durable store on redis.asyncio (plain GET/SET/DEL,
                           no Lua, no transactions).

Values are JSON strings written by the caller. Every failure is surfaced as
StorageUnavailable so callers have exactly one exception to degrade on.
"""

from __future__ import annotations

import logging
from typing import Any, Protocol

from redis.exceptions import RedisError

logger = logging.getLogger(__name__)


class StorageUnavailable(Exception):
    """Raised when the backing store cannot be read or written."""


class KeyValueStore(Protocol):
    async def get(self, key: str) -> str | None:
        ...

    async def set(self, key: str, value: str) -> None:
        ...

    async def delete(self, key: str) -> None:
        ...


class InMemoryKeyValueStore:
    """
    Process-local store.

    ``available=False`` simulates a denied store (every call raises
    StorageUnavailable), which is how degradation is exercised in tests.
    """

    def __init__(self, available: bool = True) -> None:
        self._data: dict[str, str] = {}
        self.available = available

    def _check(self) -> None:
        if not self.available:
            raise StorageUnavailable("in-memory store marked unavailable")

    async def get(self, key: str) -> str | None:
        self._check()
        return self._data.get(key)

    async def set(self, key: str, value: str) -> None:
        self._check()
        self._data[key] = value

    async def delete(self, key: str) -> None:
        self._check()
        self._data.pop(key, None)


class RedisKeyValueStore:
    """
    Durable same-origin store on Redis.

    Usage:
        store = RedisKeyValueStore(app.state.redis)
    """

    def __init__(self, redis: Any) -> None:
        """
        Args:
            redis: An async Redis client (redis.asyncio compatible).
                   May be None — every call then raises StorageUnavailable.
        """
        self._redis = redis

    def _client(self) -> Any:
        if self._redis is None:
            raise StorageUnavailable("redis client not configured")
        return self._redis

    async def get(self, key: str) -> str | None:
        client = self._client()
        try:
            raw = await client.get(key)
        except (RedisError, OSError) as exc:
            raise StorageUnavailable(f"redis GET {key} failed: {exc}") from exc
        if raw is None:
            return None
        # Redis returns bytes or str depending on decode_responses setting
        return raw.decode() if isinstance(raw, bytes) else raw

    async def set(self, key: str, value: str) -> None:
        client = self._client()
        try:
            await client.set(key, value)
        except (RedisError, OSError) as exc:
            raise StorageUnavailable(f"redis SET {key} failed: {exc}") from exc

    async def delete(self, key: str) -> None:
        client = self._client()
        try:
            await client.delete(key)
        except (RedisError, OSError) as exc:
            raise StorageUnavailable(f"redis DEL {key} failed: {exc}") from exc
