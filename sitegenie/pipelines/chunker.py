"""Text chunking for the ingestion pipeline.

Splits page text into overlapping, bounded-size character windows that are
embedded one by one.
"""

import logging
from typing import List

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 500
DEFAULT_CHUNK_OVERLAP = 100
# Chunks whose trimmed text is this short or shorter are noise.
MIN_CHUNK_CHARS = 10


def chunk_text(text: str, chunk_size: int = DEFAULT_CHUNK_SIZE,
               overlap: int = DEFAULT_CHUNK_OVERLAP) -> List[str]:
    """Split ``text`` into overlapping chunks of at most ``chunk_size`` characters.

    Every window except the last is cut back to its last space when that
    space lies past ``overlap``, so words are not split while the walk still
    moves forward. The step is ``chunk_size - overlap`` (or the shortened cut
    minus ``overlap``) and never less than one character.

    Args:
        text: Source text, typically a page's markdown
        chunk_size: Maximum chunk length in characters
        overlap: Characters shared between consecutive chunks

    Returns:
        List of chunk strings; empty for empty or whitespace-only input
    """
    if not text or not text.strip():
        return []

    chunks: List[str] = []
    length = len(text)
    start = 0

    while start < length:
        end = start + chunk_size
        chunk = text[start:end]
        step = chunk_size - overlap

        if end < length:
            last_space = chunk.rfind(' ')
            if last_space > overlap:
                chunk = chunk[:last_space]
                step = last_space - overlap

        start += max(1, step)

        if len(chunk.strip()) > MIN_CHUNK_CHARS:
            # Slices are already copies in Python, so the caller may drop
            # ``text`` as soon as this returns.
            chunks.append(chunk)

    logger.debug(f"Chunked {length} chars into {len(chunks)} chunks (size={chunk_size}, overlap={overlap})")
    return chunks
