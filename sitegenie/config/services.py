"""Service construction for SiteGenie.

Builds every store and client once from ``Settings`` and hands them out as a
single ``Services`` container; components receive their collaborators
explicitly instead of reaching for module-level clients.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from .settings import EmbeddingProvider, Settings, VectorStoreType
from ..indexer.embeddings import EmbeddingClient, OpenAIEmbeddingClient, SentenceTransformerEmbeddingClient
from ..indexer.vector_store import InMemoryVectorStore, VectorStore
from ..pipelines.crawler import FirecrawlClient, PageScraper, SiteCrawler
from ..pipelines.ingest import IngestionPipeline
from ..services.llm import AnswerClient, OpenAIAnswerClient
from ..services.metadata_store import MetadataStore
from ..services.retrieval import RetrievalEngine

logger = logging.getLogger(__name__)


@dataclass
class Services:
    """Everything the API needs, constructed once per process."""
    settings: Settings
    metadata_store: MetadataStore
    vector_store: VectorStore
    embedder: EmbeddingClient
    answer_client: AnswerClient
    crawler: SiteCrawler
    ingestion: IngestionPipeline
    retrieval: RetrievalEngine

    async def initialize(self):
        """Create tables and open connection pools."""
        await self.metadata_store.initialize()
        await self.vector_store.initialize()
        logger.info("Services initialized")

    async def close(self):
        """Close stores and model clients."""
        await self.vector_store.close()
        await self.metadata_store.close()
        for client in (self.embedder, self.answer_client):
            close = getattr(client, "close", None)
            if close is not None:
                await close()
        logger.info("Services closed")


class ServiceFactory:
    """Factory for creating SiteGenie services from settings."""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or Settings.from_env()

    def create_vector_store(self) -> VectorStore:
        if self.settings.vector_store == VectorStoreType.PGVECTOR:
            # asyncpg is only needed for this backend
            from ..indexer.postgres_adapter import PgVectorStore
            logger.info("Using PostgreSQL pgvector store")
            return PgVectorStore(self.settings.postgres, dimensions=self.settings.embedding_dimensions)
        logger.info("Using in-memory vector store")
        return InMemoryVectorStore()

    def create_embedder(self) -> EmbeddingClient:
        if self.settings.embedding_provider == EmbeddingProvider.OPENAI:
            return OpenAIEmbeddingClient(
                api_key=self.settings.openai_api_key,
                model_name=self.settings.embedding_model,
                dimensions=self.settings.embedding_dimensions,
            )
        return SentenceTransformerEmbeddingClient(self.settings.embedding_model)

    def create_answer_client(self) -> AnswerClient:
        return OpenAIAnswerClient(
            api_key=self.settings.openai_api_key or None,
            model=self.settings.answer_model,
            temperature=self.settings.answer_temperature,
        )

    def create_crawler(self) -> SiteCrawler:
        primary = None
        if self.settings.firecrawl_api_key:
            primary = FirecrawlClient(
                api_key=self.settings.firecrawl_api_key,
                base_url=self.settings.firecrawl_base_url,
                poll_interval=self.settings.crawl_poll_interval,
                timeout=self.settings.crawl_timeout,
            )
        else:
            logger.warning("FIRECRAWL_API_KEY not set; crawling falls back to single-page scraping")

        fallback = PageScraper(timeout=self.settings.fallback_timeout,
                               min_chars=self.settings.fallback_min_chars)
        return SiteCrawler(primary, fallback, page_limit=self.settings.crawl_page_limit)

    def create(self) -> Services:
        settings = self.settings
        metadata_store = MetadataStore(settings.database_url)
        vector_store = self.create_vector_store()
        embedder = self.create_embedder()
        answer_client = self.create_answer_client()
        crawler = self.create_crawler()

        ingestion = IngestionPipeline(
            metadata_store=metadata_store,
            vector_store=vector_store,
            crawler=crawler,
            embedder=embedder,
            chunk_size=settings.chunk_size,
            chunk_overlap=settings.chunk_overlap,
            concurrency=settings.chunk_concurrency,
            page_delay=settings.page_delay,
            fail_on_empty_index=settings.fail_on_empty_index,
        )
        retrieval = RetrievalEngine(
            metadata_store=metadata_store,
            vector_store=vector_store,
            embedder=embedder,
            answer_client=answer_client,
            match_threshold=settings.match_threshold,
            match_count=settings.match_count,
            history_limit=settings.history_limit,
        )

        return Services(
            settings=settings,
            metadata_store=metadata_store,
            vector_store=vector_store,
            embedder=embedder,
            answer_client=answer_client,
            crawler=crawler,
            ingestion=ingestion,
            retrieval=retrieval,
        )


def build_services(settings: Optional[Settings] = None) -> Services:
    """Build services from ``settings`` (or the environment)."""
    return ServiceFactory(settings).create()
