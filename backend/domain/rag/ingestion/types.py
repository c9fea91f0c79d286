"""
Chunking data types
"""

from typing import Optional
from pydantic import BaseModel, ConfigDict, Field

from core.config import settings
from core.exceptions import ChunkingError


class ChunkingOptions(BaseModel):
    """Token budget for markdown chunking (1 token ~ 4 characters)"""
    max_tokens: int = Field(default_factory=lambda: settings.chunk_max_tokens)
    overlap_tokens: int = Field(default_factory=lambda: settings.chunk_overlap_tokens)
    min_chunk_chars: int = Field(default_factory=lambda: settings.chunk_min_chars)

    def validate_budget(self) -> None:
        if self.max_tokens <= 0:
            raise ChunkingError(f"max_tokens must be positive, got {self.max_tokens}")
        if self.overlap_tokens < 0 or self.overlap_tokens >= self.max_tokens:
            raise ChunkingError(
                f"overlap_tokens must be in [0, max_tokens), got {self.overlap_tokens} (max_tokens={self.max_tokens})"
            )
        if self.min_chunk_chars < 0:
            raise ChunkingError(f"min_chunk_chars must be >= 0, got {self.min_chunk_chars}")


class Chunk(BaseModel):
    """One passage produced by the chunker"""
    model_config = ConfigDict(frozen=True)

    index: int
    text: str
    token_estimate: int
    paragraph_count: int
    overlap_chars: int = 0  # leading characters repeated from the previous chunk
    heading: Optional[str] = None  # closest markdown heading at or before the first paragraph
