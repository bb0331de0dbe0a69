"""
Qdrant Vector Index

Same collection interface as VectorStore, backed by a Qdrant server.
"""

import logging
from typing import List, Sequence

from qdrant_client import QdrantClient
from qdrant_client.http.exceptions import ResponseHandlingException, UnexpectedResponse
from qdrant_client.http.models import Distance, PointStruct, VectorParams

from .vector_store import IndexPoint, SearchHit, VectorIndexError

logger = logging.getLogger(__name__)

_QDRANT_ERRORS = (UnexpectedResponse, ResponseHandlingException, OSError)

_DISTANCES = {
    'cosine': Distance.COSINE,
}


class QdrantVectorIndex:
    def __init__(self, url: str = "http://localhost:6333", client: QdrantClient = None, timeout: int = 30):
        self._client = client or QdrantClient(url=url, timeout=timeout)

    def ensure_collection(self, name: str, dimension: int = 768, metric: str = 'cosine') -> bool:
        distance = _DISTANCES.get(metric.lower())
        if distance is None:
            raise VectorIndexError(f"Unsupported metric '{metric}'")

        try:
            if self._client.collection_exists(name):
                logger.info(f"Collection {name} already exists.")
                return False
            self._client.create_collection(
                collection_name=name,
                vectors_config=VectorParams(size=dimension, distance=distance),
            )
        except _QDRANT_ERRORS as e:
            raise VectorIndexError(f"Error initializing collection {name}: {e}")

        logger.info(f"Collection {name} created.")
        return True

    def upsert(self, name: str, points: Sequence[IndexPoint]) -> int:
        if not points:
            return 0
        try:
            self._client.upsert(
                collection_name=name,
                points=[PointStruct(id=p.id, vector=list(p.vector), payload=p.payload) for p in points],
            )
        except _QDRANT_ERRORS as e:
            raise VectorIndexError(f"Error storing points in {name}: {e}")
        return len(points)

    def search(self, name: str, vector: Sequence[float], limit: int = 5, with_payload: bool = True) -> List[SearchHit]:
        try:
            response = self._client.query_points(
                collection_name=name,
                query=list(vector),
                limit=limit,
                with_payload=with_payload,
            )
        except _QDRANT_ERRORS as e:
            raise VectorIndexError(f"Error searching {name}: {e}")

        return [
            SearchHit(id=str(h.id), score=float(h.score), payload=(h.payload or {}) if with_payload else None)
            for h in response.points
        ]

    def scroll(self, name: str, limit: int = 10, with_payload: bool = True) -> List[IndexPoint]:
        try:
            points, _ = self._client.scroll(
                collection_name=name,
                limit=limit,
                with_payload=with_payload,
                with_vectors=False,
            )
        except _QDRANT_ERRORS as e:
            raise VectorIndexError(f"Error scrolling {name}: {e}")

        return [IndexPoint(id=str(p.id), vector=[], payload=p.payload or {}) for p in points]

    def count(self, name: str) -> int:
        try:
            return self._client.count(collection_name=name, exact=True).count
        except _QDRANT_ERRORS as e:
            raise VectorIndexError(f"Error counting {name}: {e}")

    def get_stats(self):
        return {'backend': 'qdrant'}
