# SiteGenie Embeddings Module
# Text -> vector clients used by ingestion and retrieval

import asyncio
import logging
from typing import List, Optional, Protocol

import numpy as np
from openai import AsyncOpenAI

logger = logging.getLogger(__name__)


class EmbeddingClient(Protocol):
    """Anything that turns text into a fixed-length vector."""

    async def embed(self, text: str) -> List[float]:
        ...


class SentenceTransformerEmbeddingClient:
    """Local sentence-transformers model; encoding runs in a worker thread."""

    def __init__(self, model_name: str = "all-MiniLM-L6-v2"):
        self.model_name = model_name
        self.model = None
        self._load_lock = asyncio.Lock()

    def _load_model(self):
        """Load the sentence transformer model"""
        from sentence_transformers import SentenceTransformer

        logger.info(f"Loading embedding model: {self.model_name}")
        model = SentenceTransformer(self.model_name)
        logger.info(f"Model loaded. Embedding dimension: {model.get_sentence_embedding_dimension()}")
        return model

    async def _get_model(self):
        async with self._load_lock:
            if self.model is None:
                self.model = await asyncio.to_thread(self._load_model)
        return self.model

    async def embed(self, text: str) -> List[float]:
        model = await self._get_model()
        text = text.strip()
        if not text:
            return [0.0] * model.get_sentence_embedding_dimension()

        embedding = await asyncio.to_thread(model.encode, text, convert_to_numpy=True)
        return np.asarray(embedding, dtype=np.float32).tolist()


class OpenAIEmbeddingClient:
    """Embeddings from the OpenAI API."""

    def __init__(self, api_key: str, model_name: str = "text-embedding-3-small",
                 dimensions: Optional[int] = None, client: Optional[AsyncOpenAI] = None):
        self.model_name = model_name
        self.dimensions = dimensions
        self.client = client or AsyncOpenAI(api_key=api_key)

    async def embed(self, text: str) -> List[float]:
        kwargs = {"model": self.model_name, "input": text}
        if self.dimensions:
            kwargs["dimensions"] = self.dimensions
        response = await self.client.embeddings.create(**kwargs)
        return list(response.data[0].embedding)

    async def close(self):
        await self.client.close()


def cosine_similarity(a: np.ndarray, b: np.ndarray) -> float:
    """Calculate cosine similarity between two vectors"""
    norm_a = np.linalg.norm(a)
    norm_b = np.linalg.norm(b)

    if norm_a == 0 or norm_b == 0:
        return 0.0

    return float(np.dot(a, b) / (norm_a * norm_b))
