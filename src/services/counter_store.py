"""
Shared counter and JSON cache storage.

Backs the rate-limit counter, the community search cache and the access
token cache. Single-instance deployments use the in-process store; setting
REDIS_URL switches to Redis so several instances share one counter.
"""
import json
import logging
import time
from abc import ABC, abstractmethod
from threading import Lock
from typing import Any, Dict, Optional, Tuple

import redis.asyncio as redis

logger = logging.getLogger(__name__)


class CounterStore(ABC):
    """
    Atomic get/increment/expire operations plus a small JSON cache.
    """

    @abstractmethod
    async def get(self, key: str) -> int:
        """Current counter value, 0 when absent or expired."""
        raise NotImplementedError

    @abstractmethod
    async def incr(self, key: str) -> int:
        """Increment the counter and return the new value."""
        raise NotImplementedError

    @abstractmethod
    async def expire(self, key: str, seconds: int) -> None:
        raise NotImplementedError

    @abstractmethod
    async def ttl(self, key: str) -> Optional[int]:
        """Seconds until expiry, None when the key has no expiry or is absent."""
        raise NotImplementedError

    @abstractmethod
    async def get_json(self, key: str) -> Optional[Any]:
        raise NotImplementedError

    @abstractmethod
    async def set_json(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> None:
        raise NotImplementedError

    async def close(self) -> None:
        return None


class InMemoryCounterStore(CounterStore):
    """Mutex-guarded map for single-process deployments and tests."""

    def __init__(self):
        self._lock = Lock()
        # key -> (value, expires_at or None)
        self._data: Dict[str, Tuple[Any, Optional[float]]] = {}

    def _live(self, key: str) -> Optional[Tuple[Any, Optional[float]]]:
        entry = self._data.get(key)
        if entry is None:
            return None
        _, expires_at = entry
        if expires_at is not None and expires_at <= time.monotonic():
            del self._data[key]
            return None
        return entry

    async def get(self, key: str) -> int:
        with self._lock:
            entry = self._live(key)
            return int(entry[0]) if entry else 0

    async def incr(self, key: str) -> int:
        with self._lock:
            entry = self._live(key)
            if entry is None:
                value, expires_at = 0, None
            else:
                value, expires_at = entry
            value = int(value) + 1
            self._data[key] = (value, expires_at)
            return value

    async def expire(self, key: str, seconds: int) -> None:
        with self._lock:
            entry = self._live(key)
            if entry is not None:
                self._data[key] = (entry[0], time.monotonic() + seconds)

    async def ttl(self, key: str) -> Optional[int]:
        with self._lock:
            entry = self._live(key)
            if entry is None or entry[1] is None:
                return None
            return max(0, int(entry[1] - time.monotonic()))

    async def get_json(self, key: str) -> Optional[Any]:
        with self._lock:
            entry = self._live(key)
            if entry is None:
                return None
            return json.loads(entry[0])

    async def set_json(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> None:
        expires_at = time.monotonic() + ttl_seconds if ttl_seconds else None
        with self._lock:
            self._data[key] = (json.dumps(value), expires_at)


class RedisCounterStore(CounterStore):
    """Networked store for multi-instance deployments."""

    def __init__(self, url: str, client: Optional[redis.Redis] = None):
        self.url = url
        self._client = client or redis.Redis.from_url(url, decode_responses=True)

    async def get(self, key: str) -> int:
        value = await self._client.get(key)
        return int(value) if value is not None else 0

    async def incr(self, key: str) -> int:
        return int(await self._client.incr(key))

    async def expire(self, key: str, seconds: int) -> None:
        await self._client.expire(key, seconds)

    async def ttl(self, key: str) -> Optional[int]:
        remaining = await self._client.ttl(key)
        # -1: no expiry, -2: missing
        return remaining if remaining >= 0 else None

    async def get_json(self, key: str) -> Optional[Any]:
        data = await self._client.get(key)
        return json.loads(data) if data else None

    async def set_json(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> None:
        if ttl_seconds:
            await self._client.setex(key, ttl_seconds, json.dumps(value))
        else:
            await self._client.set(key, json.dumps(value))

    async def close(self) -> None:
        await self._client.aclose()
        logger.info("Redis connection closed")


def create_counter_store(redis_url: Optional[str]) -> CounterStore:
    if redis_url:
        logger.info(f"Using Redis counter store at {redis_url}")
        return RedisCounterStore(redis_url)
    logger.info("Using in-process counter store")
    return InMemoryCounterStore()
