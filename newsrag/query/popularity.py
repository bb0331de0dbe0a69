"""
Query Popularity Tracking

Frequency leaderboard of asked queries. Every `record()` increments the
query's score by one; `top_n()` returns the highest-scoring queries.
"""

import logging
import threading
from collections import Counter
from typing import List, Optional, Tuple

import redis

from ..storage.cache import CacheUnavailable

logger = logging.getLogger(__name__)

POPULAR_QUERIES_KEY = "popular_queries"


class InMemoryPopularityTracker:
    """Counter-based tracker. Ties keep first-recorded order."""

    def __init__(self):
        self._counts: Counter = Counter()
        self._lock = threading.Lock()

    def record(self, query: str) -> float:
        query = query.strip()
        with self._lock:
            self._counts[query] += 1
            return float(self._counts[query])

    def top_n(self, n: int) -> List[Tuple[str, float]]:
        if n <= 0:
            return []
        with self._lock:
            return [(query, float(count)) for query, count in self._counts.most_common(n)]

    def clear(self) -> None:
        with self._lock:
            self._counts.clear()


class RedisPopularityTracker:
    """
    Tracker backed by a Redis sorted set.

    ZINCRBY is atomic, so concurrent requests can record without locking.
    """

    def __init__(self, client: Optional[redis.Redis] = None, url: str = "redis://localhost:6379",
                 key: str = POPULAR_QUERIES_KEY):
        self.client = client or redis.Redis.from_url(url, decode_responses=True)
        self.key = key

    def record(self, query: str) -> float:
        try:
            return float(self.client.zincrby(self.key, 1, query.strip()))
        except redis.exceptions.RedisError as e:
            raise CacheUnavailable(f"Redis ZINCRBY failed: {e}")

    def top_n(self, n: int) -> List[Tuple[str, float]]:
        if n <= 0:
            return []
        try:
            rows = self.client.zrevrange(self.key, 0, n - 1, withscores=True)
        except redis.exceptions.RedisError as e:
            raise CacheUnavailable(f"Redis ZREVRANGE failed: {e}")

        results = []
        for member, score in rows:
            if isinstance(member, bytes):
                member = member.decode('utf-8')
            results.append((member, float(score)))
        return results

    def clear(self) -> None:
        try:
            self.client.delete(self.key)
        except redis.exceptions.RedisError as e:
            raise CacheUnavailable(f"Redis DEL failed: {e}")
