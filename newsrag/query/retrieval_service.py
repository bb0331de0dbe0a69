"""
Retrieval Service

Embeds a query and returns the nearest passages from the vector index,
ranked by descending similarity as the index reports them.
"""

import logging
from typing import List

from ..embeddings.ollama_service import EmbeddingError
from ..models import Passage
from ..storage.vector_store import VectorIndexError

logger = logging.getLogger(__name__)


class RetrievalService:
    """
    Query-to-passages retrieval.

    Embedding and index failures are logged and reported as "no results"
    so callers can fall back to the no-information answer.
    """

    def __init__(self, embedder, vector_index, collection_name: str = "news_articles"):
        """
        Args:
            embedder: Object with `embed(texts) -> List[vector]`
            vector_index: Object with `search(name, vector, limit, with_payload)`
            collection_name: Collection to search
        """
        self.embedder = embedder
        self.vector_index = vector_index
        self.collection_name = collection_name

    def _embed_query(self, query: str) -> List[float]:
        embeddings = self.embedder.embed([query])
        if not embeddings or not len(embeddings[0]):
            raise EmbeddingError('Failed to generate query embedding')
        return list(embeddings[0])

    def retrieve(self, query: str, k: int = 5) -> List[Passage]:
        """
        Retrieve the top-k passages for `query`.

        Args:
            query: Query text
            k: Number of passages (>= 1)

        Returns:
            Passages in index rank order, or an empty list on failure
        """
        if k < 1:
            raise ValueError(f"k must be at least 1, got {k}")

        try:
            vector = self._embed_query(query)
            hits = self.vector_index.search(
                self.collection_name,
                vector,
                limit=k,
                with_payload=True
            )
        except (EmbeddingError, VectorIndexError) as e:
            logger.error(f"Error retrieving passages: {e}")
            return []

        passages = [Passage.from_hit(hit.id, hit.score, hit.payload) for hit in hits]
        logger.debug(f"Retrieved {len(passages)} passages for query")
        return passages
