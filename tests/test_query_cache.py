"""
Tests for QueryCache key derivation and bundle storage.
"""

import hashlib
from unittest.mock import Mock

import pytest

from newsrag.models import CacheBundle, Passage
from newsrag.query.query_cache import QueryCache, normalize_query
from newsrag.storage.cache import CacheUnavailable, InMemoryCache


def _bundle(answer="AI is artificial intelligence."):
    passage = Passage(id="p1", score=0.91, title="AI today", link="https://news.example/ai",
                      full_content="Artificial intelligence is...", pub_date="Mon, 01 Jan 2024")
    return CacheBundle(passages=[passage], answer=answer)


@pytest.fixture
def cache():
    return QueryCache(InMemoryCache(), ttl_seconds=3600)


class TestKeyDerivation:

    def test_key_is_prefixed_sha256_of_normalized_query(self, cache):
        expected = "query:" + hashlib.sha256(b"what is ai?").hexdigest()
        assert cache.key_for("What is AI?") == expected

    def test_equivalent_queries_share_a_key(self, cache):
        assert cache.key_for("What is AI?") == cache.key_for("  what is ai?\n")

    def test_different_queries_differ(self, cache):
        assert cache.key_for("What is AI?") != cache.key_for("What is ML?")

    def test_normalize_query(self):
        assert normalize_query("  Hello World ") == "hello world"


class TestStoreAndLookup:

    def test_lookup_miss(self, cache):
        assert cache.lookup(cache.key_for("unknown")) is None

    def test_store_then_lookup(self, cache):
        key = cache.key_for("What is AI?")

        assert cache.store(key, _bundle()) is True

        bundle = cache.lookup(key)
        assert bundle.answer == "AI is artificial intelligence."
        assert bundle.passages[0].title == "AI today"
        assert bundle.passages[0].score == pytest.approx(0.91)
        assert cache.contains(key)

    def test_store_overwrites(self, cache):
        key = cache.key_for("q")
        cache.store(key, _bundle("first"))
        cache.store(key, _bundle("second"))

        assert cache.lookup(key).answer == "second"

    def test_store_uses_default_ttl(self):
        backend = Mock()
        cache = QueryCache(backend, ttl_seconds=120)

        cache.store("query:abc", _bundle())

        key, ttl, _ = backend.set_with_expiry.call_args.args
        assert (key, ttl) == ("query:abc", 120)

    def test_store_ttl_override(self):
        backend = Mock()
        QueryCache(backend).store("query:abc", _bundle(), ttl_seconds=5)

        assert backend.set_with_expiry.call_args.args[1] == 5

    def test_invalidate(self, cache):
        key = cache.key_for("q")
        cache.store(key, _bundle())

        assert cache.invalidate(key) is True
        assert cache.lookup(key) is None


class TestDegradedBackend:

    def test_unavailable_backend_is_a_miss(self):
        backend = Mock()
        backend.get.side_effect = CacheUnavailable("down")

        assert QueryCache(backend).lookup("query:abc") is None

    def test_unavailable_backend_store_returns_false(self):
        backend = Mock()
        backend.set_with_expiry.side_effect = CacheUnavailable("down")

        assert QueryCache(backend).store("query:abc", _bundle()) is False

    def test_corrupt_entry_is_a_miss(self):
        backend = InMemoryCache()
        backend.set_with_expiry("query:abc", 60, "{not json")

        assert QueryCache(backend).lookup("query:abc") is None

    def test_entry_missing_answer_is_a_miss(self):
        backend = InMemoryCache()
        backend.set_with_expiry("query:abc", 60, '{"passages": []}')

        assert QueryCache(backend).lookup("query:abc") is None
