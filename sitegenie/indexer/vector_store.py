"""Vector store interface and the in-memory implementation.

Rows are immutable once written: the only operations are insert, similarity
match and bulk delete by a metadata predicate.
"""

import itertools
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

import numpy as np

from .embeddings import cosine_similarity

logger = logging.getLogger(__name__)


@dataclass
class VectorRow:
    """A chunk ready for storage: ``{content, embedding, metadata}``."""
    content: str
    embedding: Sequence[float]
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class VectorMatch:
    """A similarity search hit: ``{content, metadata, similarity}``."""
    content: str
    metadata: Dict[str, Any]
    similarity: float


class VectorStore:
    """Base class for vector stores.

    ``match`` follows the RPC contract ``(query_embedding, match_threshold,
    match_count, filter)``. Stores that cannot apply ``filter`` server-side
    leave ``supports_metadata_filter`` False and ignore it.
    """

    supports_metadata_filter = False

    async def initialize(self):
        pass

    async def close(self):
        pass

    async def insert(self, row: VectorRow) -> None:
        raise NotImplementedError

    async def match(self, query_embedding: Sequence[float], match_threshold: float,
                    match_count: int, filter: Optional[Dict[str, Any]] = None) -> List[VectorMatch]:
        raise NotImplementedError

    async def delete_by_metadata(self, key: str, value: str) -> int:
        """Delete every row whose ``metadata[key]`` equals ``value``; return the count."""
        raise NotImplementedError


class InMemoryVectorStore(VectorStore):
    """Process-local vector store using numpy cosine similarity."""

    supports_metadata_filter = True

    def __init__(self):
        self._rows: Dict[int, Dict[str, Any]] = {}
        self._ids = itertools.count(1)

    def __len__(self) -> int:
        return len(self._rows)

    def rows(self) -> List[Dict[str, Any]]:
        """Snapshot of stored rows (id, content, embedding, metadata)."""
        return [dict(row, id=row_id) for row_id, row in self._rows.items()]

    async def insert(self, row: VectorRow) -> None:
        row_id = next(self._ids)
        self._rows[row_id] = {
            "content": row.content,
            "embedding": np.asarray(row.embedding, dtype=np.float32),
            "metadata": dict(row.metadata),
        }

    async def match(self, query_embedding: Sequence[float], match_threshold: float,
                    match_count: int, filter: Optional[Dict[str, Any]] = None) -> List[VectorMatch]:
        query = np.asarray(query_embedding, dtype=np.float32)
        results = []

        for row in self._rows.values():
            if filter and any(row["metadata"].get(k) != v for k, v in filter.items()):
                continue
            if row["embedding"].shape != query.shape:
                continue
            similarity = cosine_similarity(query, row["embedding"])
            if similarity > match_threshold:
                results.append(VectorMatch(
                    content=row["content"],
                    metadata=dict(row["metadata"]),
                    similarity=similarity,
                ))

        results.sort(key=lambda m: m.similarity, reverse=True)
        return results[:match_count]

    async def delete_by_metadata(self, key: str, value: str) -> int:
        doomed = [row_id for row_id, row in self._rows.items() if row["metadata"].get(key) == value]
        for row_id in doomed:
            del self._rows[row_id]
        logger.debug(f"Deleted {len(doomed)} vector rows where {key}={value}")
        return len(doomed)
