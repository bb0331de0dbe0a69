"""
Query Cache

Maps query text to a deterministic cache key and stores (passages, answer)
bundles under it with a fixed TTL. Backend outages degrade to cache misses.
"""

import hashlib
import json
import logging
from typing import Optional

from ..models import CacheBundle
from ..storage.cache import CacheUnavailable

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 3600
KEY_PREFIX = "query:"


def normalize_query(query: str) -> str:
    """Trim and case-fold a query for key derivation and deduplication."""
    return query.strip().lower()


class QueryCache:
    """
    Cache of answered queries.

    Two queries that are equal after trimming and lowercasing share a key,
    so "What is AI?" and "  what is ai?  " hit the same entry.
    """

    def __init__(self, backend, ttl_seconds: int = DEFAULT_TTL_SECONDS, prefix: str = KEY_PREFIX):
        """
        Args:
            backend: Cache backend with get / set_with_expiry / delete
            ttl_seconds: Default expiry for stored bundles
            prefix: Namespace prepended to every key
        """
        self.backend = backend
        self.ttl_seconds = ttl_seconds
        self.prefix = prefix

    def key_for(self, query: str) -> str:
        """Derive the cache key for `query`. Pure and stable across restarts."""
        digest = hashlib.sha256(normalize_query(query).encode('utf-8')).hexdigest()
        return f"{self.prefix}{digest}"

    def lookup(self, key: str) -> Optional[CacheBundle]:
        """
        Fetch a bundle.

        Returns:
            The stored bundle, or None on a miss, an unreachable backend or
            an unreadable entry
        """
        try:
            raw = self.backend.get(key)
        except CacheUnavailable as e:
            logger.warning(f"Cache unavailable on lookup, treating as miss: {e}")
            return None

        if raw is None:
            return None

        try:
            return CacheBundle.from_dict(json.loads(raw))
        except (ValueError, KeyError, TypeError) as e:
            logger.warning(f"Discarding unreadable cache entry {key}: {e}")
            return None

    def contains(self, key: str) -> bool:
        return self.lookup(key) is not None

    def store(self, key: str, bundle: CacheBundle, ttl_seconds: Optional[int] = None) -> bool:
        """
        Overwrite `key` with `bundle` and set its expiry.

        Returns:
            True if written, False if the backend was unavailable
        """
        ttl = ttl_seconds if ttl_seconds is not None else self.ttl_seconds
        try:
            self.backend.set_with_expiry(key, ttl, json.dumps(bundle.to_dict()))
        except CacheUnavailable as e:
            logger.warning(f"Cache unavailable on store, result not cached: {e}")
            return False
        return True

    def invalidate(self, key: str) -> bool:
        try:
            self.backend.delete(key)
        except CacheUnavailable as e:
            logger.warning(f"Cache unavailable on delete: {e}")
            return False
        return True
