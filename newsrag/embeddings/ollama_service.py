"""
Ollama Embedding Service

Generates text embeddings through Ollama's `/api/embed` endpoint.
Provides:
- Connection and model verification
- Batch processing
- Bounded LRU in-memory caching keyed by text hash
- Translation of transport failures into EmbeddingError
"""

import hashlib
import logging
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass, asdict
from typing import Dict, List, Optional, Sequence

import requests

logger = logging.getLogger(__name__)


@dataclass
class CacheStats:
    """Statistics for cache performance tracking."""
    hits: int = 0
    misses: int = 0
    total_requests: int = 0
    cache_size: int = 0

    @property
    def hit_rate(self) -> float:
        """Calculate cache hit rate."""
        return self.hits / self.total_requests if self.total_requests > 0 else 0.0

    def to_dict(self) -> Dict:
        """Convert to dictionary."""
        return {
            **asdict(self),
            'hit_rate': self.hit_rate
        }


class EmbeddingError(Exception):
    """Raised when embeddings cannot be produced."""
    pass


class OllamaConnectionError(EmbeddingError):
    """Raised when unable to connect to Ollama service."""
    pass


class OllamaModelError(EmbeddingError):
    """Raised when specified model is not available."""
    pass


class EmbeddingDimensionError(EmbeddingError):
    """Raised when embedding dimensions don't match expected value."""
    pass


class OllamaEmbeddingService:
    """
    Embedder backed by a local or remote Ollama server.

    `embed()` takes a batch of texts and returns one vector per text, in
    order. Vectors already seen are served from memory.
    """

    def __init__(
        self,
        model: str = "nomic-embed-text",
        base_url: str = "http://localhost:11434",
        batch_size: int = 10,
        dimension: int = 768,
        verify_dimensions: bool = True,
        enable_cache: bool = True,
        timeout: int = 30,
        max_cache_size: int = 10000
    ):
        """
        Initialize the Ollama embedding service.

        Args:
            model: Ollama model name (default: nomic-embed-text)
            base_url: Ollama base URL
            batch_size: Number of texts sent per request
            dimension: Expected embedding dimension
            verify_dimensions: Verify embedding dimensions match expected value
            enable_cache: Keep embeddings in memory keyed by text hash
            timeout: Request timeout in seconds
            max_cache_size: Most embeddings kept in memory; least recently used go first
        """
        self.model = model
        self.base_url = base_url.rstrip('/')
        self.batch_size = batch_size
        self.dimension = dimension
        self.verify_dimensions = verify_dimensions
        self.enable_cache = enable_cache
        self.timeout = timeout
        self.max_cache_size = max_cache_size

        self._memory_cache: "OrderedDict[str, List[float]]" = OrderedDict()
        self._cache_stats = CacheStats()
        self._cache_lock = threading.Lock()

        logger.info(f"Initialized OllamaEmbeddingService with model: {self.model}")

    def _compute_hash(self, text: str) -> str:
        """SHA-256 of the text, used as the memory cache key."""
        return hashlib.sha256(text.encode('utf-8')).hexdigest()

    def _cache_put(self, text_hash: str, embedding: List[float]) -> None:
        with self._cache_lock:
            self._memory_cache[text_hash] = embedding
            self._memory_cache.move_to_end(text_hash)
            while len(self._memory_cache) > self.max_cache_size:
                self._memory_cache.popitem(last=False)
            self._cache_stats.cache_size = len(self._memory_cache)

    def verify_connection(self) -> bool:
        """
        Verify connection to Ollama service.

        Returns:
            True if connection successful

        Raises:
            OllamaConnectionError: If unable to connect
        """
        try:
            response = requests.get(
                f"{self.base_url}/api/tags",
                timeout=self.timeout
            )
            response.raise_for_status()
            logger.info("Successfully connected to Ollama service")
            return True

        except requests.exceptions.ConnectionError:
            raise OllamaConnectionError(
                f"Unable to connect to Ollama at {self.base_url}. "
                "Please ensure Ollama is running (try: ollama serve)"
            )
        except requests.exceptions.Timeout:
            raise OllamaConnectionError(
                f"Connection to Ollama timed out after {self.timeout}s"
            )
        except requests.exceptions.RequestException as e:
            raise OllamaConnectionError(f"Error connecting to Ollama: {str(e)}")

    def verify_model_available(self) -> bool:
        """
        Verify that the specified model is available.

        Raises:
            OllamaModelError: If model is not available
        """
        try:
            response = requests.get(
                f"{self.base_url}/api/tags",
                timeout=self.timeout
            )
            response.raise_for_status()
        except requests.exceptions.RequestException as e:
            raise OllamaConnectionError(f"Error checking model availability: {str(e)}")

        models = response.json().get('models', [])
        available_models = [m['name'] for m in models]

        # Check for exact match or match with :latest suffix
        if self.model not in available_models and f"{self.model}:latest" not in available_models:
            raise OllamaModelError(
                f"Model '{self.model}' not found. Available models: {available_models}. "
                f"Try: ollama pull {self.model}"
            )

        logger.info(f"Model '{self.model}' is available")
        return True

    def _verify_embedding_dimensions(self, embedding: List[float]) -> None:
        if not self.verify_dimensions:
            return

        if len(embedding) != self.dimension:
            raise EmbeddingDimensionError(
                f"Expected {self.dimension} dimensions, got {len(embedding)}. "
                f"This may indicate an issue with the model or API."
            )

    def _request_embeddings(self, texts: List[str]) -> List[List[float]]:
        """Call Ollama for one batch of texts."""
        try:
            response = requests.post(
                f"{self.base_url}/api/embed",
                json={
                    "model": self.model,
                    "input": texts
                },
                timeout=self.timeout
            )
            response.raise_for_status()
            embeddings = response.json()['embeddings']

        except requests.exceptions.ConnectionError:
            raise OllamaConnectionError(
                f"Unable to connect to Ollama at {self.base_url}. "
                "Please ensure Ollama is running."
            )
        except requests.exceptions.Timeout:
            raise OllamaConnectionError(
                f"Request timed out after {self.timeout}s"
            )
        except requests.exceptions.HTTPError as e:
            raise EmbeddingError(f"HTTP error from Ollama: {str(e)}")
        except requests.exceptions.RequestException as e:
            raise EmbeddingError(f"Error generating embeddings: {str(e)}")
        except (KeyError, ValueError) as e:
            raise EmbeddingError(f"Unexpected API response format: {e}")

        if len(embeddings) != len(texts):
            raise EmbeddingError(
                f"Ollama returned {len(embeddings)} embeddings for {len(texts)} texts"
            )

        for embedding in embeddings:
            self._verify_embedding_dimensions(embedding)

        return [[float(x) for x in embedding] for embedding in embeddings]

    def embed(self, texts: Sequence[str]) -> List[List[float]]:
        """
        Embed a batch of texts.

        Args:
            texts: Input texts

        Returns:
            One embedding per input text, in input order

        Raises:
            EmbeddingError: If Ollama is unreachable or returns bad data
        """
        texts = list(texts)
        if not texts:
            return []

        results: List[Optional[List[float]]] = [None] * len(texts)
        pending: List[int] = []

        with self._cache_lock:
            for i, text in enumerate(texts):
                self._cache_stats.total_requests += 1
                text_hash = self._compute_hash(text)
                cached = self._memory_cache.get(text_hash) if self.enable_cache else None
                if cached is not None:
                    self._memory_cache.move_to_end(text_hash)
                    self._cache_stats.hits += 1
                    results[i] = cached
                else:
                    self._cache_stats.misses += 1
                    pending.append(i)

        start_time = time.time()
        for offset in range(0, len(pending), self.batch_size):
            batch_indices = pending[offset:offset + self.batch_size]
            batch_embeddings = self._request_embeddings([texts[i] for i in batch_indices])

            for i, embedding in zip(batch_indices, batch_embeddings):
                results[i] = embedding
                if self.enable_cache:
                    self._cache_put(self._compute_hash(texts[i]), embedding)

        if pending:
            logger.debug(
                f"Embedded {len(pending)} texts in {time.time() - start_time:.2f}s "
                f"({len(texts) - len(pending)} from cache)"
            )

        return results

    def get_cache_stats(self) -> Dict:
        """
        Get cache performance statistics.

        Returns:
            Dictionary with cache statistics
        """
        with self._cache_lock:
            return self._cache_stats.to_dict()

    def clear_cache(self) -> None:
        """Clear the embedding cache."""
        with self._cache_lock:
            self._memory_cache.clear()
            self._cache_stats = CacheStats()
        logger.info("Cleared memory cache")
