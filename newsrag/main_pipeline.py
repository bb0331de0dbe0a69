"""
Main Pipeline System

Wires every component into one system for news ingestion, cached question
answering and cache warming.

This is the central integration point that coordinates:
- Vector collection setup
- Feed ingestion
- Query orchestration with session history
- Background cache warming
- Statistics
"""

import logging
from concurrent.futures import Future
from typing import Any, Dict, List, Optional

import redis

from .config import Config, get_config
from .embeddings.ollama_service import OllamaEmbeddingService
from .ingestion.feed_ingestor import NewsIngestor
from .query.answer_service import AnswerSynthesisService, OllamaAnswerer
from .query.cache_warmer import CacheWarmer, WarmReport
from .query.orchestrator import QueryOrchestrator, QueryResult
from .query.popularity import InMemoryPopularityTracker, RedisPopularityTracker
from .query.query_cache import QueryCache
from .query.retrieval_service import RetrievalService
from .query.session_store import SessionStore
from .query.trending import TrendingTopicMiner
from .storage.cache import InMemoryCache, RedisCache
from .storage.vector_store import VectorStore


class NewsQuerySystem:
    """
    Main system that integrates all components.

    Components can be injected for testing; anything not supplied is built
    from the configuration.
    """

    def __init__(
        self,
        config: Optional[Config] = None,
        embedder=None,
        vector_index=None,
        answerer=None,
        cache_backend=None,
        popularity_tracker=None,
        log_level: int = logging.INFO
    ):
        """
        Initialize the news query system.

        Args:
            config: Configuration (default: global config)
            embedder: Embedder (default: OllamaEmbeddingService)
            vector_index: Vector index (default: FAISS VectorStore or Qdrant)
            answerer: Answerer (default: OllamaAnswerer)
            cache_backend: Key-value cache (default: Redis or in-memory)
            popularity_tracker: Popularity tracker matching the cache backend
            log_level: Logging level
        """
        self._setup_logging(log_level)
        self.config = config or get_config()
        cfg = self.config

        self.embedder = embedder or OllamaEmbeddingService(
            model=cfg.ollama_model,
            base_url=cfg.ollama_base_url,
            batch_size=cfg.embedding_batch_size,
            dimension=cfg.embedding_dimension,
            timeout=cfg.ollama_timeout,
            max_cache_size=cfg.embedding_cache_size
        )
        self.vector_index = vector_index or self._build_vector_index()
        self.answerer = answerer or OllamaAnswerer(
            llm_model=cfg.llm_model,
            temperature=cfg.llm_temperature,
            max_tokens=cfg.llm_max_tokens,
            ollama_base_url=cfg.ollama_base_url
        )

        redis_client = None
        if cfg.cache_backend == 'redis' and (cache_backend is None or popularity_tracker is None):
            redis_client = redis.Redis.from_url(cfg.redis_url, decode_responses=True)

        if cache_backend is None:
            cache_backend = RedisCache(client=redis_client) if redis_client else InMemoryCache()
        if popularity_tracker is None:
            popularity_tracker = (
                RedisPopularityTracker(client=redis_client) if redis_client else InMemoryPopularityTracker()
            )
        self.cache_backend = cache_backend
        self.popularity_tracker = popularity_tracker

        self.query_cache = QueryCache(cache_backend, ttl_seconds=cfg.cache_ttl_seconds)
        self.session_store = SessionStore(cache_backend, ttl_seconds=cfg.session_ttl_seconds)
        self.retrieval_service = RetrievalService(self.embedder, self.vector_index, cfg.collection_name)
        self.synthesis_service = AnswerSynthesisService(self.answerer)
        self.trending_miner = TrendingTopicMiner(self.vector_index, cfg.collection_name)

        self.orchestrator = QueryOrchestrator(
            self.query_cache,
            self.retrieval_service,
            self.synthesis_service,
            self.popularity_tracker,
            max_history=cfg.max_session_history
        )
        self.cache_warmer = CacheWarmer(
            self.popularity_tracker,
            self.trending_miner,
            self.retrieval_service,
            self.synthesis_service,
            self.query_cache,
            candidate_limit=cfg.warm_candidate_limit,
            trending_sample_size=cfg.trending_sample_size
        )
        self.ingestor = NewsIngestor(
            self.embedder,
            self.vector_index,
            cfg.collection_name,
            feed_urls=cfg.get_feed_urls(),
            max_workers=cfg.max_workers,
            timeout=cfg.ollama_timeout
        )

        self.warm_future: Optional[Future] = None
        self.logger.info("NewsQuerySystem initialized successfully")

    def _setup_logging(self, log_level: int):
        """Configure logging for the system."""
        self.logger = logging.getLogger(__name__)
        self.logger.setLevel(log_level)

        if not self.logger.handlers:
            handler = logging.StreamHandler()
            formatter = logging.Formatter(
                '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
            )
            handler.setFormatter(formatter)
            self.logger.addHandler(handler)

    def _build_vector_index(self):
        if self.config.vector_backend == 'qdrant':
            from .storage.qdrant_index import QdrantVectorIndex
            return QdrantVectorIndex(url=self.config.qdrant_url, timeout=self.config.ollama_timeout)
        return VectorStore(index_dir=self.config.faiss_index_dir)

    def start(self, warm: Optional[bool] = None) -> Optional[Future]:
        """
        Prepare the system for serving.

        Ensures the collection exists, then starts cache warming in the
        background. Requests can be served immediately; they simply miss
        until warming has populated the cache.

        Returns:
            Future for the warming pass, or None if warming is disabled
        """
        self.vector_index.ensure_collection(
            self.config.collection_name,
            dimension=self.config.embedding_dimension,
            metric='cosine'
        )

        should_warm = self.config.warm_on_startup if warm is None else warm
        if should_warm:
            self.warm_future = self.cache_warmer.start_background()
            self.warm_future.add_done_callback(self._log_warm_outcome)
        return self.warm_future

    def _log_warm_outcome(self, future: Future) -> None:
        error = future.exception()
        if error is not None:
            self.logger.error(f"Background cache warming failed: {error}")

    def shutdown(self) -> None:
        self.cache_warmer.shutdown(wait=False)

    def ingest_news(self, show_progress: bool = False) -> List[Dict[str, Any]]:
        """
        Fetch, embed and index the configured feeds.

        Returns:
            Embedded articles as dictionaries
        """
        articles = self.ingestor.ingest(show_progress=show_progress)
        if isinstance(self.vector_index, VectorStore) and self.vector_index.index_dir:
            self.vector_index.save()
        return [article.to_dict() for article in articles]

    def ask(
        self,
        question: str,
        top_k: Optional[int] = None,
        session_id: Optional[str] = None
    ) -> QueryResult:
        """
        Answer a question, keeping the session's history when a session id is given.

        Raises:
            InvalidInput: If the question is empty or top_k is invalid
        """
        k = top_k if top_k is not None else self.config.top_k_default
        history = self.session_store.get_history(session_id) if session_id else []

        result = self.orchestrator.handle(question, k=k, session_history=history)

        if session_id and result.history:
            self.session_store.save_history(session_id, result.history)
        return result

    def warm_cache(self) -> WarmReport:
        """Run one warming pass in the calling thread."""
        return self.cache_warmer.warm()

    def get_stats(self) -> Dict[str, Any]:
        """
        Get system statistics.
        """
        try:
            total_points = self.vector_index.count(self.config.collection_name)
        except Exception as e:
            self.logger.warning(f"Failed to count indexed articles: {e}")
            total_points = 0

        try:
            popular = self.popularity_tracker.top_n(self.config.warm_candidate_limit)
        except Exception as e:
            self.logger.warning(f"Failed to read popular queries: {e}")
            popular = []

        embedder_stats = self.embedder.get_cache_stats() if hasattr(self.embedder, 'get_cache_stats') else {}

        return {
            'collection': self.config.collection_name,
            'total_articles': total_points,
            'vector_index_stats': self.vector_index.get_stats() if hasattr(self.vector_index, 'get_stats') else {},
            'embedding_cache_stats': embedder_stats,
            'popular_queries': [{'query': q, 'count': c} for q, c in popular],
            'cache_backend': self.config.cache_backend,
        }
