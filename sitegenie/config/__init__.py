"""Configuration for SiteGenie."""

from .settings import EmbeddingProvider, PostgresConfig, Settings, VectorStoreType

__all__ = ['EmbeddingProvider', 'PostgresConfig', 'Settings', 'VectorStoreType']
