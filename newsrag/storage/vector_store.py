"""
Vector Store with FAISS HNSW Indexing

Named collections of (id, vector, payload) points backed by FAISS HNSW
indexes. Vectors are L2-normalized and searched by inner product, so the
returned score is cosine similarity (higher = more similar).

Optimized for 768-dimensional embeddings.
"""

import logging
import os
import pickle
import threading
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

import faiss
import numpy as np

logger = logging.getLogger(__name__)

SUPPORTED_METRICS = ('cosine',)


class VectorIndexError(Exception):
    """Raised when a vector index operation fails."""
    pass


@dataclass
class IndexPoint:
    """A stored point: id, vector and payload."""
    id: str
    vector: List[float]
    payload: Dict[str, Any] = field(default_factory=dict)


@dataclass
class SearchHit:
    """A nearest-neighbor result."""
    id: str
    score: float
    payload: Optional[Dict[str, Any]] = None


class _Collection:
    """One HNSW index plus the records it was built from, kept in sync."""

    def __init__(self, dimension: int, M: int, ef_construction: int, ef_search: int):
        self.dimension = dimension
        self.M = M
        self.ef_construction = ef_construction
        self.ef_search = ef_search
        self.ids: List[str] = []
        self.payloads: List[Dict[str, Any]] = []
        self.vectors = np.zeros((0, dimension), dtype=np.float32)
        self.index = self._new_index()

    def _new_index(self):
        index = faiss.IndexHNSWFlat(self.dimension, self.M, faiss.METRIC_INNER_PRODUCT)
        index.hnsw.efConstruction = self.ef_construction
        index.hnsw.efSearch = self.ef_search
        return index

    def rebuild(self) -> None:
        self.index = self._new_index()
        if len(self.vectors):
            self.index.add(self.vectors)

    def count(self) -> int:
        return self.index.ntotal


class VectorStore:
    """
    In-process vector index using FAISS HNSW.

    Features:
    - Named collections with a fixed dimension and cosine metric
    - Upsert by point id (re-upserting an id replaces its vector and payload)
    - Nearest-neighbor search with payloads
    - Scroll over the most recently upserted points
    - Save/load of all collections to a directory
    """

    def __init__(
        self,
        index_dir: Optional[str] = None,
        M: int = 32,
        efConstruction: int = 200,
        efSearch: int = 128
    ):
        """
        Initialize the vector store.

        Args:
            index_dir: Directory used by save()/load(); loaded if it exists
            M: Number of connections per node in HNSW graph
            efConstruction: Search depth during index construction
            efSearch: Search depth during queries
        """
        self.index_dir = index_dir
        self.M = M
        self.efConstruction = efConstruction
        self.efSearch = efSearch
        self._collections: Dict[str, _Collection] = {}
        self._lock = threading.RLock()

        if self.index_dir and os.path.isdir(self.index_dir):
            self.load()

    def _get(self, name: str) -> _Collection:
        collection = self._collections.get(name)
        if collection is None:
            raise VectorIndexError(f"Collection '{name}' does not exist")
        return collection

    @staticmethod
    def _normalize(vectors: np.ndarray) -> np.ndarray:
        norms = np.linalg.norm(vectors, axis=1, keepdims=True)
        norms[norms == 0] = 1.0
        return (vectors / norms).astype(np.float32)

    def ensure_collection(self, name: str, dimension: int = 768, metric: str = 'cosine') -> bool:
        """
        Create the collection if it does not exist.

        Returns:
            True if the collection was created, False if it already existed

        Raises:
            VectorIndexError: On unsupported metric or a dimension conflict
        """
        if metric.lower() not in SUPPORTED_METRICS:
            raise VectorIndexError(f"Unsupported metric '{metric}'")

        with self._lock:
            existing = self._collections.get(name)
            if existing is not None:
                if existing.dimension != dimension:
                    raise VectorIndexError(
                        f"Collection '{name}' exists with dimension {existing.dimension}, "
                        f"requested {dimension}"
                    )
                logger.info(f"Collection {name} already exists.")
                return False

            self._collections[name] = _Collection(dimension, self.M, self.efConstruction, self.efSearch)
            logger.info(f"Collection {name} created.")
            return True

    def upsert(self, name: str, points: Sequence[IndexPoint]) -> int:
        """
        Insert or replace points.

        Returns:
            Number of distinct point ids written

        Raises:
            VectorIndexError: If the collection is missing or a vector has the wrong dimension
        """
        if not points:
            return 0

        with self._lock:
            collection = self._get(name)
            vectors = np.array([p.vector for p in points], dtype=np.float32)
            if vectors.ndim != 2 or vectors.shape[1] != collection.dimension:
                raise VectorIndexError(
                    f"Embedding dimension must match collection dimension ({collection.dimension})"
                )
            vectors = self._normalize(vectors)

            # Repeated ids within one batch collapse to the last copy
            latest: Dict[str, tuple] = {}
            for point, vector in zip(points, vectors):
                latest[str(point.id)] = (point, vector)

            position = {point_id: i for i, point_id in enumerate(collection.ids)}
            replaced = False
            new_rows = []
            for point_id, (point, vector) in latest.items():
                if point_id in position:
                    i = position[point_id]
                    collection.vectors[i] = vector
                    collection.payloads[i] = dict(point.payload)
                    replaced = True
                else:
                    position[point_id] = len(collection.ids)
                    collection.ids.append(point_id)
                    collection.payloads.append(dict(point.payload))
                    new_rows.append(vector)

            if new_rows:
                collection.vectors = np.vstack([collection.vectors, np.array(new_rows, dtype=np.float32)])

            # HNSW cannot delete, so replacing an id means rebuilding
            if replaced:
                collection.rebuild()
            elif new_rows:
                collection.index.add(np.array(new_rows, dtype=np.float32))

            assert collection.count() == len(collection.ids), \
                "CRITICAL: Metadata out of sync with index"

            return len(latest)

    def search(
        self,
        name: str,
        vector: Sequence[float],
        limit: int = 5,
        with_payload: bool = True
    ) -> List[SearchHit]:
        """
        Nearest-neighbor search ranked by descending cosine similarity.

        Raises:
            VectorIndexError: If the collection is missing or the query has the wrong dimension
        """
        if limit < 0:
            raise VectorIndexError(f"limit must be non-negative, got {limit}")

        with self._lock:
            collection = self._get(name)
            if limit == 0 or collection.count() == 0:
                return []

            query = np.array([vector], dtype=np.float32)
            if query.shape[1] != collection.dimension:
                raise VectorIndexError(
                    f"Query dimension ({query.shape[1]}) must match "
                    f"collection dimension ({collection.dimension})"
                )
            query = self._normalize(query)

            actual_k = min(limit, collection.count())
            scores, indices = collection.index.search(query, actual_k)

            hits = []
            for score, idx in zip(scores[0], indices[0]):
                if 0 <= idx < len(collection.ids):
                    hits.append(SearchHit(
                        id=collection.ids[idx],
                        score=float(score),
                        payload=dict(collection.payloads[idx]) if with_payload else None
                    ))
            return hits

    def scroll(self, name: str, limit: int = 10, with_payload: bool = True) -> List[IndexPoint]:
        """
        Return up to `limit` points, most recently upserted first.

        Raises:
            VectorIndexError: If the collection is missing
        """
        with self._lock:
            collection = self._get(name)
            start = max(0, len(collection.ids) - max(0, limit))
            points = []
            for i in range(len(collection.ids) - 1, start - 1, -1):
                points.append(IndexPoint(
                    id=collection.ids[i],
                    vector=collection.vectors[i].tolist(),
                    payload=dict(collection.payloads[i]) if with_payload else {}
                ))
            return points

    def count(self, name: str) -> int:
        with self._lock:
            return self._get(name).count()

    def save(self, index_dir: Optional[str] = None) -> None:
        """
        Save every collection to `index_dir` with atomic record writes.
        """
        save_dir = index_dir or self.index_dir
        if not save_dir:
            raise VectorIndexError("No index directory configured")
        os.makedirs(save_dir, exist_ok=True)

        with self._lock:
            for name, collection in self._collections.items():
                faiss.write_index(collection.index, os.path.join(save_dir, f"{name}.index"))

                records_path = os.path.join(save_dir, f"{name}.records")
                temp_path = records_path + '.tmp'
                records = {
                    'dimension': collection.dimension,
                    'ids': collection.ids,
                    'payloads': collection.payloads,
                    'vectors': collection.vectors,
                }
                try:
                    with open(temp_path, 'wb') as f:
                        pickle.dump(records, f, protocol=pickle.HIGHEST_PROTOCOL)
                    os.replace(temp_path, records_path)
                except Exception:
                    if os.path.exists(temp_path):
                        os.remove(temp_path)
                    raise

        logger.info(f"Saved {len(self._collections)} collection(s) to {save_dir}")

    def load(self, index_dir: Optional[str] = None) -> bool:
        """
        Load collections saved by save().

        Returns:
            True if at least one collection was loaded
        """
        load_dir = index_dir or self.index_dir
        if not load_dir or not os.path.isdir(load_dir):
            return False

        loaded = {}
        for filename in sorted(os.listdir(load_dir)):
            if not filename.endswith('.records'):
                continue
            name = filename[:-len('.records')]
            try:
                with open(os.path.join(load_dir, filename), 'rb') as f:
                    records = pickle.load(f)

                collection = _Collection(records['dimension'], self.M, self.efConstruction, self.efSearch)
                collection.ids = list(records['ids'])
                collection.payloads = list(records['payloads'])
                collection.vectors = np.asarray(records['vectors'], dtype=np.float32).reshape(-1, collection.dimension)

                index_path = os.path.join(load_dir, f"{name}.index")
                if os.path.exists(index_path):
                    collection.index = faiss.read_index(index_path)
                    collection.index.hnsw.efSearch = self.efSearch
                else:
                    collection.rebuild()

                if collection.count() != len(collection.ids):
                    raise ValueError(
                        f"Index has {collection.count()} vectors but "
                        f"records have {len(collection.ids)} entries"
                    )
                loaded[name] = collection
            except Exception as e:
                logger.error(f"Failed to load collection {name}: {e}")

        with self._lock:
            self._collections.update(loaded)

        if loaded:
            logger.info(f"Loaded {len(loaded)} collection(s) from {load_dir}")
        return bool(loaded)

    def get_stats(self) -> Dict[str, Any]:
        """
        Get statistics about every collection.
        """
        with self._lock:
            return {
                'backend': 'faiss',
                'index_type': 'IndexHNSWFlat',
                'M': self.M,
                'efSearch': self.efSearch,
                'collections': {
                    name: {'points': c.count(), 'dimension': c.dimension}
                    for name, c in self._collections.items()
                },
            }

    def __repr__(self) -> str:
        return (
            f"VectorStore(collections={len(self._collections)}, "
            f"M={self.M}, efSearch={self.efSearch})"
        )
