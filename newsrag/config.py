"""
Centralized Configuration Module

Provides a single source of truth for all system configuration parameters.
Loads settings from environment variables with sensible defaults and validation.
"""

import os
from dataclasses import dataclass, field, asdict
from typing import Dict, Any, List, Optional
from urllib.parse import urlparse
from dotenv import load_dotenv

# Load environment variables
load_dotenv()


DEFAULT_FEED_URLS = (
    'http://feeds.bbci.co.uk/news/rss.xml,'
    'http://feeds.bbci.co.uk/news/world/rss.xml,'
    'http://feeds.bbci.co.uk/news/technology/rss.xml'
)

VECTOR_BACKENDS = ('faiss', 'qdrant')
CACHE_BACKENDS = ('redis', 'memory')


class ConfigValidationError(Exception):
    """Raised when configuration validation fails."""
    pass


@dataclass
class Config:
    """
    Centralized configuration for the news query system.

    All configuration parameters are loaded from environment variables
    with sensible defaults. Validation is performed on initialization.
    """

    # Ollama Settings
    ollama_model: str = field(default="nomic-embed-text")
    ollama_base_url: str = field(default="http://localhost:11434")
    ollama_timeout: int = field(default=30)

    # Answer Generation
    llm_model: str = field(default="llama3.1:latest")
    llm_temperature: float = field(default=0.7)
    llm_max_tokens: int = field(default=1000)

    # Embedding Parameters
    embedding_dimension: int = field(default=768)
    embedding_batch_size: int = field(default=10)
    embedding_cache_size: int = field(default=10000)

    # Vector Index
    vector_backend: str = field(default="faiss")
    collection_name: str = field(default="news_articles")
    faiss_index_dir: str = field(default="data/index")
    qdrant_url: str = field(default="http://localhost:6333")

    # Cache Settings
    cache_backend: str = field(default="redis")
    redis_url: str = field(default="redis://localhost:6379")
    cache_ttl_seconds: int = field(default=3600)
    session_ttl_seconds: int = field(default=86400)
    max_session_history: int = field(default=50)

    # Query and Warming Settings
    top_k_default: int = field(default=5)
    warm_candidate_limit: int = field(default=10)
    trending_sample_size: int = field(default=50)
    warm_on_startup: bool = field(default=True)

    # Ingestion Settings
    max_workers: int = field(default=4)
    feed_urls: str = field(default=DEFAULT_FEED_URLS)

    # HTTP Settings
    session_secret: str = field(default="change-me")
    port: int = field(default=5000)

    def __post_init__(self):
        """Load configuration from environment and validate."""
        self._load_from_environment()
        self._validate()

    def _load_from_environment(self):
        """Load configuration from environment variables."""
        # Ollama Settings
        self.ollama_model = self._get_env_str('OLLAMA_MODEL', self.ollama_model)
        self.ollama_base_url = self._get_env_str('OLLAMA_BASE_URL', self.ollama_base_url)
        self.ollama_timeout = self._get_env_int('OLLAMA_TIMEOUT', self.ollama_timeout)

        # Answer Generation
        self.llm_model = self._get_env_str('LLM_MODEL', self.llm_model)
        self.llm_temperature = self._get_env_float('LLM_TEMPERATURE', self.llm_temperature)
        self.llm_max_tokens = self._get_env_int('LLM_MAX_TOKENS', self.llm_max_tokens)

        # Embedding Parameters
        self.embedding_dimension = self._get_env_int('EMBEDDING_DIMENSION', self.embedding_dimension)
        self.embedding_batch_size = self._get_env_int('EMBEDDING_BATCH_SIZE', self.embedding_batch_size)
        self.embedding_cache_size = self._get_env_int('EMBEDDING_CACHE_SIZE', self.embedding_cache_size)

        # Vector Index
        self.vector_backend = self._get_env_str('VECTOR_BACKEND', self.vector_backend).lower()
        self.collection_name = self._get_env_str('COLLECTION_NAME', self.collection_name)
        self.faiss_index_dir = self._get_env_path('FAISS_INDEX_DIR', self.faiss_index_dir)
        self.qdrant_url = self._get_env_str('QDRANT_URL', self.qdrant_url)

        # Cache Settings
        self.cache_backend = self._get_env_str('CACHE_BACKEND', self.cache_backend).lower()
        self.redis_url = self._get_env_str('REDIS_URL', self.redis_url)
        self.cache_ttl_seconds = self._get_env_int('CACHE_TTL_SECONDS', self.cache_ttl_seconds)
        self.session_ttl_seconds = self._get_env_int('SESSION_TTL_SECONDS', self.session_ttl_seconds)
        self.max_session_history = self._get_env_int('MAX_SESSION_HISTORY', self.max_session_history)

        # Query and Warming Settings
        self.top_k_default = self._get_env_int('TOP_K_DEFAULT', self.top_k_default)
        self.warm_candidate_limit = self._get_env_int('WARM_CANDIDATE_LIMIT', self.warm_candidate_limit)
        self.trending_sample_size = self._get_env_int('TRENDING_SAMPLE_SIZE', self.trending_sample_size)
        self.warm_on_startup = self._get_env_bool('WARM_ON_STARTUP', self.warm_on_startup)

        # Ingestion Settings
        self.max_workers = self._get_env_int('MAX_WORKERS', self.max_workers)
        self.feed_urls = self._get_env_str('FEED_URLS', self.feed_urls)

        # HTTP Settings
        self.session_secret = self._get_env_str('SESSION_SECRET', self.session_secret)
        self.port = self._get_env_int('PORT', self.port)

    def _get_env_str(self, key: str, default: str) -> str:
        """Get string value from environment."""
        value = os.getenv(key, default)
        if isinstance(value, str):
            value = value.strip()
        return value

    def _get_env_int(self, key: str, default: int) -> int:
        """Get integer value from environment."""
        value = os.getenv(key)
        if value is None:
            return default

        try:
            return int(value)
        except ValueError:
            raise ConfigValidationError(
                f"Invalid integer value for {key}: '{value}'"
            )

    def _get_env_float(self, key: str, default: float) -> float:
        """Get float value from environment."""
        value = os.getenv(key)
        if value is None:
            return default

        try:
            return float(value)
        except ValueError:
            raise ConfigValidationError(
                f"Invalid float value for {key}: '{value}'"
            )

    def _get_env_bool(self, key: str, default: bool) -> bool:
        """Get boolean value from environment."""
        value = os.getenv(key)
        if value is None:
            return default

        value = value.lower().strip()
        if value in ('true', '1', 'yes', 'on'):
            return True
        elif value in ('false', '0', 'no', 'off'):
            return False
        else:
            return default

    def _get_env_path(self, key: str, default: str) -> str:
        """Get path value from environment with expansion."""
        value = os.getenv(key, default)
        if isinstance(value, str):
            value = value.strip()
            # Expand ~ to home directory
            value = os.path.expanduser(value)
        return value

    def _validate(self):
        """Validate configuration parameters."""
        # Validate non-empty strings
        if not self.ollama_model:
            raise ConfigValidationError("ollama_model cannot be empty")
        if not self.llm_model:
            raise ConfigValidationError("llm_model cannot be empty")
        if not self.collection_name:
            raise ConfigValidationError("collection_name cannot be empty")

        # Validate positive integers
        positive_int_fields = [
            ('embedding_dimension', self.embedding_dimension),
            ('embedding_batch_size', self.embedding_batch_size),
            ('embedding_cache_size', self.embedding_cache_size),
            ('llm_max_tokens', self.llm_max_tokens),
            ('cache_ttl_seconds', self.cache_ttl_seconds),
            ('session_ttl_seconds', self.session_ttl_seconds),
            ('max_session_history', self.max_session_history),
            ('top_k_default', self.top_k_default),
            ('warm_candidate_limit', self.warm_candidate_limit),
            ('trending_sample_size', self.trending_sample_size),
            ('max_workers', self.max_workers),
            ('port', self.port),
        ]

        for field_name, value in positive_int_fields:
            if value <= 0:
                raise ConfigValidationError(
                    f"{field_name} must be positive, got {value}"
                )

        # Validate timeouts (at least 1 second)
        if self.ollama_timeout < 1:
            raise ConfigValidationError(
                f"ollama_timeout must be at least 1, got {self.ollama_timeout}"
            )

        if not 0.0 <= self.llm_temperature <= 1.0:
            raise ConfigValidationError(
                f"llm_temperature must be between 0.0 and 1.0, got {self.llm_temperature}"
            )

        # Validate backend choices
        if self.vector_backend not in VECTOR_BACKENDS:
            raise ConfigValidationError(
                f"vector_backend must be one of {VECTOR_BACKENDS}, got '{self.vector_backend}'"
            )
        if self.cache_backend not in CACHE_BACKENDS:
            raise ConfigValidationError(
                f"cache_backend must be one of {CACHE_BACKENDS}, got '{self.cache_backend}'"
            )

        # Validate URL format
        for field_name in ('ollama_base_url', 'qdrant_url', 'redis_url'):
            url = getattr(self, field_name)
            parsed = urlparse(url)
            if not all([parsed.scheme, parsed.netloc]):
                raise ConfigValidationError(
                    f"Invalid URL for {field_name}: {url}"
                )

    def get_feed_urls(self) -> List[str]:
        """Split the comma-separated feed list."""
        return [url.strip() for url in self.feed_urls.split(',') if url.strip()]

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary."""
        return asdict(self)

    def __repr__(self) -> str:
        """String representation of configuration."""
        items = []
        for key, value in self.to_dict().items():
            if key == 'session_secret':
                value = '***'
            items.append(f"{key}={value!r}")
        return f"Config({', '.join(items)})"

    def update(self, **kwargs):
        """
        Update configuration values with validation.

        Args:
            **kwargs: Configuration parameters to update

        Raises:
            ConfigValidationError: If validation fails
        """
        # Store original values for rollback
        original_values = {}

        try:
            for key, value in kwargs.items():
                if not hasattr(self, key):
                    raise ConfigValidationError(f"Unknown configuration parameter: {key}")
                original_values[key] = getattr(self, key)
                setattr(self, key, value)

            self._validate()

        except Exception:
            # Rollback on validation failure
            for key, value in original_values.items():
                setattr(self, key, value)
            raise

    def get_cache_config(self) -> Dict[str, Any]:
        """Get cache-related configuration."""
        return {
            'cache_backend': self.cache_backend,
            'redis_url': self.redis_url,
            'cache_ttl_seconds': self.cache_ttl_seconds,
            'session_ttl_seconds': self.session_ttl_seconds,
            'max_session_history': self.max_session_history,
        }

    def get_warming_config(self) -> Dict[str, Any]:
        """Get cache warming configuration."""
        return {
            'warm_candidate_limit': self.warm_candidate_limit,
            'trending_sample_size': self.trending_sample_size,
            'warm_on_startup': self.warm_on_startup,
        }


# Singleton instance
_config_instance: Optional[Config] = None


def get_config() -> Config:
    """
    Get the global configuration instance (singleton pattern).

    Returns:
        Config: Global configuration instance
    """
    global _config_instance
    if _config_instance is None:
        _config_instance = Config()
    return _config_instance


def reset_config():
    """Reset the global configuration instance."""
    global _config_instance
    _config_instance = None
