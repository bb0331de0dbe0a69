"""
Cache Warmer

Pre-computes answers for queries that are likely to be asked:
1. Popular queries from the popularity tracker
2. Trending-topic queries mined from recent titles
3. A fixed generic set when neither source yields anything

Candidates are warmed one at a time to bound load on the embedding, LLM and
vector backends.
"""

import logging
import time
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, asdict
from typing import Any, Dict, List, Optional

from ..models import CacheBundle, TrendingCandidate
from .query_cache import normalize_query

logger = logging.getLogger(__name__)

DEFAULT_CANDIDATE_LIMIT = 10
DEFAULT_TRENDING_SAMPLE_SIZE = 50
DEFAULT_PASSAGES = 5

FALLBACK_CANDIDATES = (
    TrendingCandidate("What are the top news stories today?", DEFAULT_PASSAGES),
    TrendingCandidate("What is happening in world news?", DEFAULT_PASSAGES),
    TrendingCandidate("What are the latest technology developments?", DEFAULT_PASSAGES),
)


@dataclass
class WarmReport:
    """Outcome of one warming pass."""
    candidates: int = 0
    warmed: int = 0
    skipped: int = 0
    failed: int = 0
    duration: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class CacheWarmer:
    """
    Populates the query cache ahead of demand.

    Already-cached candidates are skipped, so re-running warm() within the
    TTL does no retrieval or synthesis work.
    """

    def __init__(
        self,
        popularity_tracker,
        trending_miner,
        retrieval_service,
        synthesis_service,
        query_cache,
        candidate_limit: int = DEFAULT_CANDIDATE_LIMIT,
        trending_sample_size: int = DEFAULT_TRENDING_SAMPLE_SIZE,
        ttl_seconds: Optional[int] = None
    ):
        """
        Args:
            popularity_tracker: Tracker exposing top_n(n)
            trending_miner: TrendingTopicMiner
            retrieval_service: RetrievalService
            synthesis_service: AnswerSynthesisService
            query_cache: QueryCache to populate
            candidate_limit: Maximum candidates per pass
            trending_sample_size: Articles scanned for trending topics
            ttl_seconds: Expiry for warmed entries (default: the cache's TTL)
        """
        self.popularity_tracker = popularity_tracker
        self.trending_miner = trending_miner
        self.retrieval_service = retrieval_service
        self.synthesis_service = synthesis_service
        self.query_cache = query_cache
        self.candidate_limit = candidate_limit
        self.trending_sample_size = trending_sample_size
        self.ttl_seconds = ttl_seconds
        self._executor: Optional[ThreadPoolExecutor] = None

    def _popular_candidates(self) -> List[TrendingCandidate]:
        try:
            records = self.popularity_tracker.top_n(self.candidate_limit)
        except Exception as e:
            logger.error(f"Error reading popular queries: {e}")
            return []
        return [TrendingCandidate(query, DEFAULT_PASSAGES) for query, _ in records]

    def _trending_candidates(self) -> List[TrendingCandidate]:
        try:
            return list(self.trending_miner.mine(self.trending_sample_size))
        except Exception as e:
            logger.error(f"Error mining trending topics: {e}")
            return []

    def build_candidates(self) -> List[TrendingCandidate]:
        """
        Merge popular then trending candidates.

        Duplicates are detected on the lowercased, trimmed query text and the
        first occurrence wins. Falls back to FALLBACK_CANDIDATES when both
        sources come back empty.
        """
        merged = dedupe_candidates(
            self._popular_candidates() + self._trending_candidates(),
            self.candidate_limit
        )
        if not merged:
            logger.warning("No popular or trending candidates, warming fallback queries")
            return list(FALLBACK_CANDIDATES)
        return merged

    def warm_candidate(self, candidate: TrendingCandidate) -> bool:
        """
        Warm a single candidate.

        Returns:
            True if a new entry was written, False if it was already cached
            or retrieval found nothing
        """
        key = self.query_cache.key_for(candidate.query_text)
        if self.query_cache.lookup(key) is not None:
            logger.debug(f"Already cached: {candidate.query_text}")
            return False

        passages = self.retrieval_service.retrieve(candidate.query_text, candidate.number_of_passages)
        if not passages:
            logger.info(f"No passages for warm candidate: {candidate.query_text}")
            return False

        answer = self.synthesis_service.synthesize(candidate.query_text, passages)
        return self.query_cache.store(key, CacheBundle(passages=passages, answer=answer), self.ttl_seconds)

    def warm(self) -> WarmReport:
        """
        Run one warming pass over the candidate set.

        A failure on one candidate is logged and the pass continues.
        """
        start_time = time.time()
        candidates = self.build_candidates()
        report = WarmReport(candidates=len(candidates))

        logger.info(f"Warming cache with {len(candidates)} candidates")

        for candidate in candidates:
            try:
                if self.warm_candidate(candidate):
                    report.warmed += 1
                else:
                    report.skipped += 1
            except Exception as e:
                report.failed += 1
                logger.error(f"Error warming '{candidate.query_text}': {e}")

        report.duration = time.time() - start_time
        logger.info(
            f"Cache warming complete: {report.warmed} warmed, {report.skipped} skipped, "
            f"{report.failed} failed in {report.duration:.2f}s"
        )
        return report

    def start_background(self) -> Future:
        """
        Run warm() on a dedicated worker thread.

        Returns:
            Future resolving to the WarmReport once warming completes
        """
        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="cache-warmer")
        return self._executor.submit(self.warm)

    def shutdown(self, wait: bool = True) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=wait)
            self._executor = None


def dedupe_candidates(candidates: List[TrendingCandidate], limit: int) -> List[TrendingCandidate]:
    """Case-insensitive, first-seen-wins dedup capped at `limit`."""
    seen = set()
    result = []
    for candidate in candidates:
        key = normalize_query(candidate.query_text)
        if not key or key in seen:
            continue
        seen.add(key)
        result.append(candidate)
        if len(result) >= limit:
            break
    return result
