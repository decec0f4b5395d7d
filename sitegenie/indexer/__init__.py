"""Embedding clients and vector stores."""

from .embeddings import EmbeddingClient, OpenAIEmbeddingClient, SentenceTransformerEmbeddingClient
from .vector_store import InMemoryVectorStore, VectorMatch, VectorRow, VectorStore

__all__ = [
    'EmbeddingClient',
    'OpenAIEmbeddingClient',
    'SentenceTransformerEmbeddingClient',
    'InMemoryVectorStore',
    'VectorMatch',
    'VectorRow',
    'VectorStore',
]
