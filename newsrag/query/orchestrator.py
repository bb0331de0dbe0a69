"""
Query Orchestrator

Request-facing entry point for question answering:
1. Cache lookup by normalized query
2. Retrieval and answer synthesis on a miss
3. Write-through to the cache
4. Session history and popularity bookkeeping
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..models import CacheBundle, Passage, SessionHistoryEntry

logger = logging.getLogger(__name__)

MAX_HISTORY = 50
NO_INFORMATION_ANSWER = "No relevant information available to answer the query."
NO_PASSAGES_MESSAGE = "No relevant passages found"
SUCCESS_MESSAGE = "Query processed successfully"


class InvalidInput(ValueError):
    """Raised when a request is malformed. Not retried."""
    pass


@dataclass
class QueryResult:
    """Answer plus the session history it was appended to."""
    query: str
    answer: str
    passages: List[Passage] = field(default_factory=list)
    served_from_cache: bool = False
    message: str = SUCCESS_MESSAGE
    history: List[SessionHistoryEntry] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'query': self.query,
            'passages': [p.to_dict() for p in self.passages],
            'answer': self.answer,
            'servedFromCache': self.served_from_cache,
        }


def append_history(
    history: List[SessionHistoryEntry],
    entry: SessionHistoryEntry,
    max_entries: int = MAX_HISTORY
) -> List[SessionHistoryEntry]:
    """Append `entry`, evicting from the front so at most `max_entries` remain."""
    while history and len(history) >= max_entries:
        history.pop(0)
    history.append(entry)
    return history


class QueryOrchestrator:
    """
    Serves queries from the cache when possible, otherwise computes and
    caches the answer.

    Concurrent misses on the same query may both compute and write; the last
    write wins. Negative results (no passages) are never cached.
    """

    def __init__(
        self,
        query_cache,
        retrieval_service,
        synthesis_service,
        popularity_tracker,
        max_history: int = MAX_HISTORY,
        ttl_seconds: Optional[int] = None
    ):
        """
        Args:
            query_cache: QueryCache
            retrieval_service: RetrievalService
            synthesis_service: AnswerSynthesisService
            popularity_tracker: Tracker exposing record(query)
            max_history: Session history cap
            ttl_seconds: Expiry for cached answers (default: the cache's TTL)
        """
        self.query_cache = query_cache
        self.retrieval_service = retrieval_service
        self.synthesis_service = synthesis_service
        self.popularity_tracker = popularity_tracker
        self.max_history = max_history
        self.ttl_seconds = ttl_seconds

    def _validate(self, query: Any, k: Any) -> None:
        if not isinstance(query, str) or not query.strip():
            raise InvalidInput('Query text is required and must be a string')
        if isinstance(k, bool) or not isinstance(k, int) or k < 1:
            raise InvalidInput('numberOfPassages must be a positive integer')

    def _record_popularity(self, query: str) -> None:
        try:
            self.popularity_tracker.record(query)
        except Exception as e:
            logger.warning(f"Failed to record query popularity: {e}")

    def handle(
        self,
        query: str,
        k: int = 5,
        session_history: Optional[List[SessionHistoryEntry]] = None
    ) -> QueryResult:
        """
        Answer a query.

        Args:
            query: User's question
            k: Number of passages to retrieve on a miss
            session_history: The session's history; appended to and returned

        Returns:
            QueryResult with passages, answer, cache flag and updated history

        Raises:
            InvalidInput: If the query is empty or k is not a positive integer
        """
        self._validate(query, k)
        history = session_history if session_history is not None else []

        try:
            key = self.query_cache.key_for(query)
            bundle = self.query_cache.lookup(key)

            if bundle is not None:
                logger.info(f"Cache hit for query: {query!r}")
                append_history(history, SessionHistoryEntry(query, bundle.passages, bundle.answer), self.max_history)
                return QueryResult(
                    query=query,
                    answer=bundle.answer,
                    passages=bundle.passages,
                    served_from_cache=True,
                    history=history
                )

            logger.info(f"Cache miss for query: {query!r}")
            passages = self.retrieval_service.retrieve(query, k)

            if not passages:
                return QueryResult(
                    query=query,
                    answer=NO_INFORMATION_ANSWER,
                    message=NO_PASSAGES_MESSAGE,
                    history=history
                )

            answer = self.synthesis_service.synthesize(query, passages)
            append_history(history, SessionHistoryEntry(query, passages, answer), self.max_history)
            self.query_cache.store(key, CacheBundle(passages=passages, answer=answer), self.ttl_seconds)

            return QueryResult(
                query=query,
                answer=answer,
                passages=passages,
                served_from_cache=False,
                history=history
            )
        finally:
            # Every validated request counts, including failed ones
            self._record_popularity(query)
