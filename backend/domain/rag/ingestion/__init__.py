"""
Document ingestion pipeline
"""

from domain.rag.ingestion.chunker import chunk_markdown, split_paragraphs, estimate_tokens
from domain.rag.ingestion.types import Chunk, ChunkingOptions

__all__ = [
    "chunk_markdown",
    "split_paragraphs",
    "estimate_tokens",
    "Chunk",
    "ChunkingOptions",
]
