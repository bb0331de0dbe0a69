"""
Tests for QueryOrchestrator

Covers the cache-aside flow end to end with an in-memory cache:
- Miss then hit with zero extra retrieval or synthesis work
- No-result queries are not cached and not added to history
- Session history cap
- Input validation
"""

from unittest.mock import Mock

import pytest

from newsrag.models import Passage, SessionHistoryEntry
from newsrag.query.answer_service import FAILED_ANSWER
from newsrag.query.orchestrator import (
    MAX_HISTORY,
    NO_INFORMATION_ANSWER,
    NO_PASSAGES_MESSAGE,
    InvalidInput,
    QueryOrchestrator,
    append_history,
)
from newsrag.query.popularity import InMemoryPopularityTracker
from newsrag.query.query_cache import QueryCache
from newsrag.storage.cache import CacheUnavailable, InMemoryCache


def _passages():
    return [
        Passage(id="p1", score=0.92, title="AI explained", link="https://x/ai", full_content="AI is..."),
        Passage(id="p2", score=0.81, title="AI in health", link="https://x/health", full_content="Doctors..."),
    ]


@pytest.fixture
def retrieval():
    service = Mock()
    service.retrieve.return_value = _passages()
    return service


@pytest.fixture
def synthesis():
    service = Mock()
    service.synthesize.return_value = "AI is the simulation of human intelligence."
    return service


@pytest.fixture
def backend():
    return InMemoryCache()


@pytest.fixture
def tracker():
    return InMemoryPopularityTracker()


@pytest.fixture
def orchestrator(backend, retrieval, synthesis, tracker):
    return QueryOrchestrator(QueryCache(backend), retrieval, synthesis, tracker)


class TestCacheAside:

    def test_miss_then_hit(self, orchestrator, retrieval, synthesis):
        first = orchestrator.handle("What is AI?", k=2)

        assert first.served_from_cache is False
        assert first.answer == "AI is the simulation of human intelligence."
        assert [p.id for p in first.passages] == ["p1", "p2"]
        retrieval.retrieve.assert_called_once_with("What is AI?", 2)

        second = orchestrator.handle("  what is ai? ", k=2)

        assert second.served_from_cache is True
        assert second.answer == first.answer
        assert [p.id for p in second.passages] == ["p1", "p2"]
        assert retrieval.retrieve.call_count == 1
        assert synthesis.synthesize.call_count == 1

    def test_hit_ignores_k(self, orchestrator, retrieval):
        orchestrator.handle("What is AI?", k=2)

        result = orchestrator.handle("What is AI?", k=5)

        assert result.served_from_cache is True
        assert len(result.passages) == 2
        assert retrieval.retrieve.call_count == 1

    def test_failed_answer_is_cached(self, orchestrator, synthesis):
        synthesis.synthesize.return_value = FAILED_ANSWER
        orchestrator.handle("What is AI?")

        result = orchestrator.handle("What is AI?")

        assert result.served_from_cache is True
        assert result.answer == FAILED_ANSWER

    def test_to_dict_shape(self, orchestrator):
        payload = orchestrator.handle("What is AI?").to_dict()

        assert set(payload) == {'query', 'passages', 'answer', 'servedFromCache'}
        assert payload['passages'][0]['fullContent'] == "AI is..."

    def test_cache_outage_still_answers(self, retrieval, synthesis, tracker):
        backend = Mock()
        backend.get.side_effect = CacheUnavailable("down")
        backend.set_with_expiry.side_effect = CacheUnavailable("down")
        orchestrator = QueryOrchestrator(QueryCache(backend), retrieval, synthesis, tracker)

        result = orchestrator.handle("What is AI?")

        assert result.served_from_cache is False
        assert result.answer == "AI is the simulation of human intelligence."


class TestNoResults:

    def test_no_passages_returns_no_information(self, orchestrator, retrieval, synthesis, backend):
        retrieval.retrieve.return_value = []

        result = orchestrator.handle("zzzz")

        assert result.answer == NO_INFORMATION_ANSWER
        assert result.message == NO_PASSAGES_MESSAGE
        assert result.passages == []
        assert result.served_from_cache is False
        synthesis.synthesize.assert_not_called()
        assert len(backend) == 0

    def test_no_passages_not_added_to_history(self, orchestrator, retrieval):
        retrieval.retrieve.return_value = []
        history = []

        orchestrator.handle("zzzz", session_history=history)

        assert history == []

    def test_no_passages_still_counts_popularity(self, orchestrator, retrieval, tracker):
        retrieval.retrieve.return_value = []

        orchestrator.handle("zzzz")

        assert tracker.top_n(1) == [("zzzz", 1.0)]


class TestHistoryAndPopularity:

    def test_miss_and_hit_append_history(self, orchestrator):
        history = []

        orchestrator.handle("What is AI?", session_history=history)
        result = orchestrator.handle("What is AI?", session_history=history)

        assert [e.query for e in history] == ["What is AI?", "What is AI?"]
        assert result.history is history

    def test_history_is_capped(self, orchestrator):
        history = [SessionHistoryEntry(f"old {i}", [], "a") for i in range(MAX_HISTORY)]

        orchestrator.handle("What is AI?", session_history=history)

        assert len(history) == MAX_HISTORY
        assert history[0].query == "old 1"
        assert history[-1].query == "What is AI?"

    def test_append_history_custom_cap(self):
        history = []
        for i in range(5):
            append_history(history, SessionHistoryEntry(str(i), [], "a"), max_entries=3)

        assert [e.query for e in history] == ["2", "3", "4"]

    def test_popularity_recorded_on_miss_and_hit(self, orchestrator, tracker):
        orchestrator.handle("What is AI?")
        orchestrator.handle("What is AI?")

        assert tracker.top_n(1) == [("What is AI?", 2.0)]

    def test_popularity_recorded_when_retrieval_raises(self, orchestrator, retrieval, tracker, backend):
        retrieval.retrieve.side_effect = RuntimeError("ollama down")

        with pytest.raises(RuntimeError, match="ollama down"):
            orchestrator.handle("What is AI?")

        assert tracker.top_n(1) == [("What is AI?", 1.0)]
        assert backend.get(QueryCache(backend).key_for("What is AI?")) is None

    def test_popularity_recorded_when_synthesis_raises(self, orchestrator, synthesis, tracker):
        synthesis.synthesize.side_effect = RuntimeError("llm crashed")

        with pytest.raises(RuntimeError):
            orchestrator.handle("What is AI?")

        assert tracker.top_n(1) == [("What is AI?", 1.0)]

    def test_popularity_failure_does_not_fail_request(self, backend, retrieval, synthesis):
        tracker = Mock()
        tracker.record.side_effect = ConnectionError("redis down")
        orchestrator = QueryOrchestrator(QueryCache(backend), retrieval, synthesis, tracker)

        assert orchestrator.handle("What is AI?").answer


class TestValidation:

    @pytest.mark.parametrize("query", ["", "   ", None, 42])
    def test_invalid_query(self, orchestrator, retrieval, query):
        with pytest.raises(InvalidInput, match="Query text is required and must be a string"):
            orchestrator.handle(query)
        retrieval.retrieve.assert_not_called()

    @pytest.mark.parametrize("k", [0, -1, "5", True, 2.5])
    def test_invalid_k(self, orchestrator, k):
        with pytest.raises(InvalidInput):
            orchestrator.handle("What is AI?", k=k)

    def test_invalid_input_is_value_error(self):
        assert issubclass(InvalidInput, ValueError)
