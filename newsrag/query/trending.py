"""
Trending Topic Mining

Derives warm-up queries from the most frequent significant words in recent
article titles.
"""

import logging
import re
from typing import Dict, FrozenSet, Iterable, List

from ..models import TrendingCandidate

logger = logging.getLogger(__name__)

STOP_WORDS = frozenset({"news", "latest", "update", "report"})
MIN_TOKEN_LENGTH = 4
MAX_TOPICS = 5
PASSAGES_PER_TOPIC = 5


def tokenize(title: str, stop_words: FrozenSet[str] = STOP_WORDS) -> List[str]:
    """Lowercase, split on non-word characters, drop short and stop-listed tokens."""
    if not title:
        return []
    return [
        token for token in re.split(r'\W+', title.lower())
        if len(token) >= MIN_TOKEN_LENGTH and token not in stop_words
    ]


class TrendingTopicMiner:
    """
    Scans the newest points in the vector index and turns the top title
    keywords into "What is <keyword>?" candidates.
    """

    def __init__(
        self,
        vector_index,
        collection_name: str = "news_articles",
        stop_words: Iterable[str] = STOP_WORDS,
        max_topics: int = MAX_TOPICS,
        passages_per_topic: int = PASSAGES_PER_TOPIC
    ):
        self.vector_index = vector_index
        self.collection_name = collection_name
        self.stop_words = frozenset(w.lower() for w in stop_words)
        self.max_topics = max_topics
        self.passages_per_topic = passages_per_topic

    def extract_keywords(self, titles: Iterable[str]) -> List[str]:
        """
        Top keywords by descending frequency.

        Ties keep the order in which keywords were first seen.
        """
        counts: Dict[str, int] = {}
        for title in titles:
            for token in tokenize(title, self.stop_words):
                counts[token] = counts.get(token, 0) + 1

        # sorted() is stable, and dicts keep insertion order
        ranked = sorted(counts, key=lambda token: counts[token], reverse=True)
        return ranked[:self.max_topics]

    def _scan_titles(self, sample_size: int) -> List[str]:
        points = self.vector_index.scroll(self.collection_name, limit=sample_size, with_payload=True)
        return [(point.payload or {}).get('title') or '' for point in points]

    def mine(self, sample_size: int = 50) -> List[TrendingCandidate]:
        """
        Build trending candidates from up to `sample_size` recent articles.

        Returns:
            At most `max_topics` candidates; empty if the scan fails
        """
        try:
            titles = self._scan_titles(sample_size)
        except Exception as e:
            logger.error(f"Error mining trending topics: {e}")
            return []

        keywords = self.extract_keywords(titles)
        logger.info(f"Trending keywords from {len(titles)} titles: {keywords}")
        return [
            TrendingCandidate(query_text=f"What is {keyword}?", number_of_passages=self.passages_per_topic)
            for keyword in keywords
        ]
