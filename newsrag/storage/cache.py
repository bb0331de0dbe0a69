"""
Key-Value Cache Backends

String key/value stores with per-key expiry. RedisCache is the production
backend; InMemoryCache serves single-process development and tests.
Both raise CacheUnavailable when the store cannot be reached.
"""

import logging
import threading
import time
from typing import Dict, Optional, Tuple

import redis

logger = logging.getLogger(__name__)


class CacheUnavailable(Exception):
    """Raised when the cache backend cannot be reached."""
    pass


class RedisCache:
    """
    Cache backed by Redis `GET` / `SETEX` / `DEL`.

    SETEX overwrites atomically, so concurrent writers to one key need no
    extra locking.
    """

    def __init__(self, client: Optional[redis.Redis] = None, url: str = "redis://localhost:6379"):
        self.client = client or redis.Redis.from_url(url, decode_responses=True)

    def get(self, key: str) -> Optional[str]:
        try:
            value = self.client.get(key)
        except redis.exceptions.RedisError as e:
            raise CacheUnavailable(f"Redis GET failed for {key}: {e}")
        if isinstance(value, bytes):
            value = value.decode('utf-8')
        return value

    def set_with_expiry(self, key: str, ttl_seconds: int, value: str) -> None:
        try:
            self.client.setex(key, ttl_seconds, value)
        except redis.exceptions.RedisError as e:
            raise CacheUnavailable(f"Redis SETEX failed for {key}: {e}")

    def delete(self, key: str) -> None:
        try:
            self.client.delete(key)
        except redis.exceptions.RedisError as e:
            raise CacheUnavailable(f"Redis DEL failed for {key}: {e}")

    def ping(self) -> bool:
        try:
            return bool(self.client.ping())
        except redis.exceptions.RedisError as e:
            raise CacheUnavailable(f"Redis is unreachable: {e}")


class InMemoryCache:
    """Process-local cache with lazy expiry."""

    def __init__(self, clock=time.monotonic):
        self._clock = clock
        self._entries: Dict[str, Tuple[str, float]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            value, expires_at = entry
            if self._clock() >= expires_at:
                del self._entries[key]
                return None
            return value

    def set_with_expiry(self, key: str, ttl_seconds: int, value: str) -> None:
        with self._lock:
            self._entries[key] = (value, self._clock() + ttl_seconds)

    def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def ping(self) -> bool:
        return True

    def __len__(self) -> int:
        now = self._clock()
        with self._lock:
            return sum(1 for _, expires_at in self._entries.values() if expires_at > now)
