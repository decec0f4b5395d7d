"""Crawling, chunking and ingestion pipelines."""

from .chunker import chunk_text
from .crawler import CrawlError, FirecrawlClient, FirecrawlError, Page, PageScraper, SiteCrawler
from .ingest import IngestionError, IngestionPipeline, IngestionResult
from .security import UnsafeURLError, check_url_safe

__all__ = [
    'chunk_text',
    'CrawlError',
    'FirecrawlClient',
    'FirecrawlError',
    'Page',
    'PageScraper',
    'SiteCrawler',
    'IngestionError',
    'IngestionPipeline',
    'IngestionResult',
    'UnsafeURLError',
    'check_url_safe',
]
