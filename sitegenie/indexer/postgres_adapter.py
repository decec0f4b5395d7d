"""PostgreSQL vector store for SiteGenie.

Chunks live in a ``documents`` table with a pgvector column and a JSONB
metadata column; similarity search goes exclusively through the
``match_documents`` SQL function.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import asyncpg

from .vector_store import VectorMatch, VectorRow, VectorStore
from ..config.settings import PostgresConfig

logger = logging.getLogger(__name__)

SCHEMA_PATH = Path(__file__).parent / "schema.sql"

INSERT_SQL = """
    INSERT INTO documents (content, embedding, metadata)
    VALUES ($1, $2::vector, $3::jsonb)
"""

MATCH_SQL = """
    SELECT content, metadata, similarity
    FROM match_documents($1::vector, $2, $3, $4::jsonb)
"""

DELETE_SQL = "DELETE FROM documents WHERE metadata->>$1 = $2"


def to_vector_literal(embedding: Sequence[float]) -> str:
    """Render an embedding in pgvector's text input format."""
    return "[" + ",".join(repr(float(x)) for x in embedding) + "]"


def _parse_count(status: str) -> int:
    # asyncpg returns the command tag, e.g. "DELETE 42"
    try:
        return int(status.split()[-1])
    except (ValueError, IndexError, AttributeError):
        return 0


def _to_match(record) -> VectorMatch:
    metadata = record["metadata"]
    if isinstance(metadata, str):
        metadata = json.loads(metadata)
    return VectorMatch(content=record["content"], metadata=metadata or {},
                       similarity=float(record["similarity"]))


class PgVectorStore(VectorStore):
    """Chunk embeddings in PostgreSQL with the pgvector extension."""

    supports_metadata_filter = True

    def __init__(self, config: PostgresConfig, dimensions: int = 384):
        self.config = config
        self.dimensions = dimensions
        self.pool: Optional[asyncpg.Pool] = None

    def schema_sql(self, schema_path: Path = SCHEMA_PATH) -> str:
        """The schema with the vector column sized for the embedding model."""
        return schema_path.read_text(encoding='utf-8').replace("__DIMENSIONS__", str(self.dimensions))

    async def initialize(self):
        cfg = self.config
        try:
            self.pool = await asyncpg.create_pool(
                host=cfg.host, port=cfg.port, database=cfg.database,
                user=cfg.user, password=cfg.password,
                min_size=cfg.min_connections, max_size=cfg.max_connections,
                command_timeout=cfg.command_timeout,
            )
            async with self.pool.acquire() as conn:
                await conn.execute(self.schema_sql())
        except Exception as e:
            logger.error(f"Could not prepare pgvector store at {cfg.host}:{cfg.port}/{cfg.database}: {e}")
            raise
        logger.info(f"pgvector store ready ({self.dimensions} dimensions)")

    async def close(self):
        if self.pool:
            await self.pool.close()
            self.pool = None
            logger.info("pgvector connection pool closed")

    async def insert(self, row: VectorRow) -> None:
        async with self.pool.acquire() as conn:
            await conn.execute(INSERT_SQL, row.content, to_vector_literal(row.embedding),
                               json.dumps(row.metadata))

    async def match(self, query_embedding: Sequence[float], match_threshold: float,
                    match_count: int, filter: Optional[Dict[str, Any]] = None) -> List[VectorMatch]:
        async with self.pool.acquire() as conn:
            records = await conn.fetch(MATCH_SQL, to_vector_literal(query_embedding),
                                       match_threshold, match_count, json.dumps(filter or {}))
        return [_to_match(record) for record in records]

    async def delete_by_metadata(self, key: str, value: str) -> int:
        async with self.pool.acquire() as conn:
            status = await conn.execute(DELETE_SQL, key, value)
        deleted = _parse_count(status)
        logger.info(f"Deleted {deleted} vector rows where {key}={value}")
        return deleted
