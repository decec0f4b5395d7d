"""Runtime settings for SiteGenie.

Settings are read once from the environment at process start and handed to
the service factory; nothing else reads environment variables.
"""

import os
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


class VectorStoreType(str, Enum):
    """Supported vector store backends."""
    MEMORY = "memory"
    PGVECTOR = "pgvector"


class EmbeddingProvider(str, Enum):
    """Supported embedding providers."""
    LOCAL = "local"
    OPENAI = "openai"


class PostgresConfig(BaseModel):
    """PostgreSQL connection configuration for the pgvector store."""
    host: str = "localhost"
    port: int = 5432
    database: str = "sitegenie"
    user: str = "sitegenie"
    password: str = ""
    min_connections: int = 2
    max_connections: int = 10
    command_timeout: int = 60


class Settings(BaseModel):
    """Application settings."""

    # Stores
    database_url: str = Field(default="sqlite:///sitegenie.db", description="SQLAlchemy URL of the metadata store")
    vector_store: VectorStoreType = Field(default=VectorStoreType.MEMORY, description="Vector store backend")
    postgres: PostgresConfig = Field(default_factory=PostgresConfig, description="pgvector connection")

    # Models
    embedding_provider: EmbeddingProvider = EmbeddingProvider.LOCAL
    embedding_model: str = "all-MiniLM-L6-v2"
    embedding_dimensions: int = 384
    openai_api_key: str = ""
    answer_model: str = "gpt-4o-mini"
    answer_temperature: float = 0.3

    # Crawling
    firecrawl_api_key: str = ""
    firecrawl_base_url: str = "https://api.firecrawl.dev"
    crawl_page_limit: int = Field(default=50, ge=1, description="Page ceiling for the crawl service")
    crawl_poll_interval: float = 2.0
    crawl_timeout: float = 300.0
    fallback_timeout: float = 15.0
    fallback_min_chars: int = 50

    # Ingestion
    chunk_size: int = Field(default=500, ge=1)
    chunk_overlap: int = Field(default=100, ge=0)
    chunk_concurrency: int = Field(default=5, ge=1, description="Chunk operations in flight per page")
    page_delay: float = Field(default=0.25, ge=0, description="Pause between pages in seconds")
    fail_on_empty_index: bool = True

    # Retrieval
    match_threshold: float = Field(default=0.4, ge=0.0, le=1.0)
    match_count: int = Field(default=10, ge=1)
    history_limit: int = Field(default=20, ge=0)

    # Logging
    log_level: str = "INFO"
    log_json: bool = False
    log_file: Optional[str] = None

    @classmethod
    def from_env(cls) -> 'Settings':
        """Create settings from environment variables."""
        postgres = PostgresConfig(
            host=os.getenv('POSTGRES_HOST', 'localhost'),
            port=int(os.getenv('POSTGRES_PORT', '5432')),
            database=os.getenv('POSTGRES_DB', 'sitegenie'),
            user=os.getenv('POSTGRES_USER', 'sitegenie'),
            password=os.getenv('POSTGRES_PASSWORD', ''),
            min_connections=int(os.getenv('POSTGRES_MIN_CONNECTIONS', '2')),
            max_connections=int(os.getenv('POSTGRES_MAX_CONNECTIONS', '10')),
            command_timeout=int(os.getenv('POSTGRES_COMMAND_TIMEOUT', '60')),
        )

        return cls(
            database_url=os.getenv('DATABASE_URL', 'sqlite:///sitegenie.db'),
            vector_store=VectorStoreType(os.getenv('VECTOR_STORE', 'memory').lower()),
            postgres=postgres,
            embedding_provider=EmbeddingProvider(os.getenv('EMBEDDING_PROVIDER', 'local').lower()),
            embedding_model=os.getenv('EMBEDDING_MODEL', 'all-MiniLM-L6-v2'),
            embedding_dimensions=int(os.getenv('EMBEDDING_DIMENSIONS', '384')),
            openai_api_key=os.getenv('OPENAI_API_KEY', ''),
            answer_model=os.getenv('ANSWER_MODEL', 'gpt-4o-mini'),
            answer_temperature=float(os.getenv('ANSWER_TEMPERATURE', '0.3')),
            firecrawl_api_key=os.getenv('FIRECRAWL_API_KEY', ''),
            firecrawl_base_url=os.getenv('FIRECRAWL_BASE_URL', 'https://api.firecrawl.dev'),
            crawl_page_limit=int(os.getenv('CRAWL_PAGE_LIMIT', '50')),
            crawl_poll_interval=float(os.getenv('CRAWL_POLL_INTERVAL', '2.0')),
            crawl_timeout=float(os.getenv('CRAWL_TIMEOUT', '300')),
            fallback_timeout=float(os.getenv('FALLBACK_TIMEOUT', '15')),
            fallback_min_chars=int(os.getenv('FALLBACK_MIN_CHARS', '50')),
            chunk_size=int(os.getenv('CHUNK_SIZE', '500')),
            chunk_overlap=int(os.getenv('CHUNK_OVERLAP', '100')),
            chunk_concurrency=int(os.getenv('CHUNK_CONCURRENCY', '5')),
            page_delay=float(os.getenv('PAGE_DELAY', '0.25')),
            fail_on_empty_index=_env_bool('FAIL_ON_EMPTY_INDEX', True),
            match_threshold=float(os.getenv('MATCH_THRESHOLD', '0.4')),
            match_count=int(os.getenv('MATCH_COUNT', '10')),
            history_limit=int(os.getenv('HISTORY_LIMIT', '20')),
            log_level=os.getenv('LOG_LEVEL', 'INFO'),
            log_json=_env_bool('LOG_JSON', False),
            log_file=os.getenv('LOG_FILE') or None,
        )
