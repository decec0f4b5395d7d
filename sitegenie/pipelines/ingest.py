"""Website ingestion: crawl, chunk, embed and store, tracked by a chatbot record.

The metadata store and the vector store are not transactionally linked. A
record is created in ``processing`` before any crawling so its id can tag
every vector row; it is finalized as ``ready`` on success and ``error`` on
any failure that aborts the run.
"""

import asyncio
import gc
import logging
from dataclasses import dataclass
from typing import List, Optional

from .chunker import DEFAULT_CHUNK_OVERLAP, DEFAULT_CHUNK_SIZE, chunk_text
from .crawler import CrawlError, Page, SiteCrawler
from ..indexer.embeddings import EmbeddingClient
from ..indexer.vector_store import VectorRow, VectorStore
from ..observability.logging import get_structured_logger, log_duration
from ..observability.prometheus_metrics import chunks as chunk_metrics, ingestions
from ..services.metadata_store import MetadataStore
from ..services.models import ChatbotRecord, ChatbotStatus

logger = logging.getLogger(__name__)

DEFAULT_CONCURRENCY = 5
DEFAULT_PAGE_DELAY = 0.25


class IngestionError(Exception):
    """Ingestion failed for a reason other than crawling."""

    def __init__(self, message: str, chatbot_id: Optional[str] = None):
        super().__init__(message)
        self.chatbot_id = chatbot_id


@dataclass
class IngestionResult:
    chatbot_id: str
    record: ChatbotRecord
    pages_processed: int = 0
    chunks_stored: int = 0
    chunks_failed: int = 0


@dataclass
class _PageStats:
    stored: int = 0
    failed: int = 0


class IngestionPipeline:
    """Turns a URL into an indexed knowledge base."""

    def __init__(self,
                 metadata_store: MetadataStore,
                 vector_store: VectorStore,
                 crawler: SiteCrawler,
                 embedder: EmbeddingClient,
                 chunk_size: int = DEFAULT_CHUNK_SIZE,
                 chunk_overlap: int = DEFAULT_CHUNK_OVERLAP,
                 concurrency: int = DEFAULT_CONCURRENCY,
                 page_delay: float = DEFAULT_PAGE_DELAY,
                 fail_on_empty_index: bool = True):
        self.metadata_store = metadata_store
        self.vector_store = vector_store
        self.crawler = crawler
        self.embedder = embedder
        self.chunk_size = chunk_size
        self.chunk_overlap = chunk_overlap
        self.concurrency = max(1, concurrency)
        self.page_delay = page_delay
        self.fail_on_empty_index = fail_on_empty_index

    async def ingest(self, url: str, user_id: str, name: str) -> IngestionResult:
        """Index ``url`` for ``user_id`` and return the finalized record.

        Raises:
            CrawlError: Crawling produced no usable pages; the record is marked error
            IngestionError: Any other failure; the record is marked error if it exists
        """
        try:
            record = await self.metadata_store.create_chatbot(user_id=user_id, name=name, url=url)
        except Exception as e:
            ingestions.labels(status="error").inc()
            logger.error(f"Failed to create chatbot record for {url}: {e}")
            raise IngestionError(f"Failed to create chatbot record: {e}") from e

        chatbot_id = record.id
        log = get_structured_logger(__name__, chatbot_id=chatbot_id, url=url)
        log.info("Chatbot record created, starting crawl")

        try:
            with log_duration(log, "crawl", slow_after=120.0):
                pages = await self.crawler.crawl(url)
        except CrawlError as e:
            log.error(f"Crawl failed: {e}")
            await self._mark_error(chatbot_id, log)
            raise
        except Exception as e:
            log.exception(f"Crawl raised unexpectedly: {e!r}")
            await self._mark_error(chatbot_id, log)
            raise IngestionError(f"Crawl failed: {e!r}", chatbot_id=chatbot_id) from e

        try:
            result = await self._index_pages(pages, record, user_id, log)
        except Exception as e:
            log.exception(f"Ingestion failed: {e}")
            await self._mark_error(chatbot_id, log)
            if isinstance(e, IngestionError):
                raise
            raise IngestionError(f"Ingestion failed: {e}", chatbot_id=chatbot_id) from e

        ingestions.labels(status=ChatbotStatus.READY.value).inc()
        log.info("Knowledge base indexed",
                 pages=result.pages_processed,
                 chunks_stored=result.chunks_stored,
                 chunks_failed=result.chunks_failed)
        return result

    async def _index_pages(self, pages: List[Optional[Page]], record: ChatbotRecord,
                           user_id: str, log) -> IngestionResult:
        chatbot_id = record.id
        result = IngestionResult(chatbot_id=chatbot_id, record=record)
        total = len(pages)

        # pages are processed strictly one after another
        for index in range(total):
            page = pages[index]
            content, source_url, title = page.content or "", page.source_url, page.title
            page.content = None

            log.info(f"[{index + 1}/{total}] Processing: {title}", page_url=source_url)
            page_chunks = chunk_text(content, self.chunk_size, self.chunk_overlap)
            del content

            with log_duration(log.bind(page_url=source_url), "page indexing"):
                stats = await self._store_chunks(page_chunks, chatbot_id, source_url, user_id, log)
            result.chunks_stored += stats.stored
            result.chunks_failed += stats.failed
            result.pages_processed += 1

            del page_chunks, page
            pages[index] = None
            gc.collect()

            if index < total - 1 and self.page_delay > 0:
                await asyncio.sleep(self.page_delay)

        attempted = result.chunks_stored + result.chunks_failed
        if result.chunks_stored == 0 and (attempted or result.pages_processed):
            log.warning("No chunks were stored", pages=result.pages_processed, chunks_failed=result.chunks_failed)
            if self.fail_on_empty_index:
                raise IngestionError(
                    f"No chunks stored for chatbot {chatbot_id} "
                    f"({result.pages_processed} pages, {result.chunks_failed} failed chunks)",
                    chatbot_id=chatbot_id,
                )

        record = await self.metadata_store.update_chatbot_status(chatbot_id, ChatbotStatus.READY.value)
        if record is None:
            raise IngestionError(f"Chatbot record {chatbot_id} disappeared during ingestion",
                                 chatbot_id=chatbot_id)
        result.record = record
        return result

    async def _store_chunks(self, page_chunks: List[str], chatbot_id: str, source_url: str,
                            user_id: str, log) -> _PageStats:
        """Embed and store one page's chunks with at most ``concurrency`` in flight."""
        semaphore = asyncio.Semaphore(self.concurrency)
        stats = _PageStats()
        metadata = {"chatbot_id": chatbot_id, "url": source_url, "user_id": user_id}

        async def process_chunk(chunk: str):
            async with semaphore:
                embedding = None
                try:
                    embedding = await self.embedder.embed(chunk)
                    await self.vector_store.insert(VectorRow(content=chunk, embedding=embedding,
                                                             metadata=dict(metadata)))
                    stats.stored += 1
                    chunk_metrics.labels(status="stored").inc()
                except Exception as e:
                    stats.failed += 1
                    chunk_metrics.labels(status="failed").inc()
                    log.error(f"Error processing chunk from {source_url}: {e}")
                finally:
                    del embedding

        await asyncio.gather(*(process_chunk(chunk) for chunk in page_chunks))
        return stats

    async def _mark_error(self, chatbot_id: str, log) -> None:
        ingestions.labels(status=ChatbotStatus.ERROR.value).inc()
        try:
            record = await self.metadata_store.get_chatbot(chatbot_id)
            if record is not None:
                await self.metadata_store.update_chatbot_status(chatbot_id, ChatbotStatus.ERROR.value)
        except Exception as e:
            log.error(f"Error updating chatbot status after failure: {e}")
