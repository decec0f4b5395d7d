"""Shared fixtures and test doubles for the SiteGenie test suite."""

import asyncio
import re
from typing import Dict, List, Optional

import pytest

from sitegenie.config.services import Services
from sitegenie.config.settings import Settings
from sitegenie.indexer.vector_store import InMemoryVectorStore
from sitegenie.pipelines.crawler import CrawlError, Page
from sitegenie.pipelines.ingest import IngestionPipeline
from sitegenie.services.metadata_store import MetadataStore
from sitegenie.services.models import Base
from sitegenie.services.retrieval import RetrievalEngine

VOCABULARY = ["python", "pricing", "support", "genie", "admissions", "library", "robots", "history"]


class KeywordEmbedder:
    """Deterministic embedder: one dimension per vocabulary word, valued by its count."""

    def __init__(self, fail_on: Optional[str] = None, fail_always: bool = False):
        self.fail_on = fail_on
        self.fail_always = fail_always
        self.calls: List[str] = []

    async def embed(self, text: str) -> List[float]:
        self.calls.append(text)
        await asyncio.sleep(0)
        if self.fail_always or (self.fail_on and self.fail_on in text):
            raise RuntimeError("embedding provider unavailable")
        words = re.findall(r"[a-z]+", text.lower())
        return [float(words.count(term)) for term in VOCABULARY]


class FakeAnswerClient:
    def __init__(self, reply: str = "Generated answer", error: Optional[Exception] = None):
        self.reply = reply
        self.error = error
        self.prompts: List[str] = []

    async def generate(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        return self.reply


class FakeCrawler:
    """Returns fresh pages on every call; ``last_pages`` is the list handed out."""

    def __init__(self, pages: Optional[List[Dict[str, str]]] = None, error: Optional[Exception] = None):
        self.pages = pages or []
        self.error = error
        self.calls: List[str] = []
        self.last_pages: List[Optional[Page]] = []

    async def crawl(self, url: str) -> List[Page]:
        self.calls.append(url)
        if self.error is not None:
            raise self.error
        if not self.pages:
            raise CrawlError(f"No content crawled from {url}")
        self.last_pages = [Page(source_url=p["url"], title=p.get("title", "No Title"), content=p["content"])
                           for p in self.pages]
        return self.last_pages


def words(*terms: str, repeat: int = 1) -> str:
    return " ".join(list(terms) * repeat)


@pytest.fixture
def metadata_store(tmp_path):
    store = MetadataStore(f"sqlite:///{tmp_path / 'metadata.db'}")
    Base.metadata.create_all(store.engine)
    yield store
    store.engine.dispose()


@pytest.fixture
def vector_store():
    return InMemoryVectorStore()


@pytest.fixture
def embedder():
    return KeywordEmbedder()


@pytest.fixture
def answer_client():
    return FakeAnswerClient()


@pytest.fixture
def crawler():
    return FakeCrawler(pages=[
        {"url": "https://example.com/", "title": "Home",
         "content": words("python", "support", "genie", repeat=30)},
        {"url": "https://example.com/pricing", "title": "Pricing",
         "content": words("pricing", "python", repeat=40)},
    ])


@pytest.fixture
def pipeline(metadata_store, vector_store, crawler, embedder):
    return IngestionPipeline(
        metadata_store=metadata_store,
        vector_store=vector_store,
        crawler=crawler,
        embedder=embedder,
        page_delay=0,
    )


@pytest.fixture
def engine(metadata_store, vector_store, embedder, answer_client):
    return RetrievalEngine(
        metadata_store=metadata_store,
        vector_store=vector_store,
        embedder=embedder,
        answer_client=answer_client,
    )


@pytest.fixture
def services(metadata_store, vector_store, embedder, answer_client, crawler, pipeline, engine):
    return Services(
        settings=Settings(),
        metadata_store=metadata_store,
        vector_store=vector_store,
        embedder=embedder,
        answer_client=answer_client,
        crawler=crawler,
        ingestion=pipeline,
        retrieval=engine,
    )
