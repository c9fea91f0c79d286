"""
Markdown-aware chunking with a token budget and character overlap
"""

import logging
import math
import re
from typing import List, Optional

from domain.rag.ingestion.types import Chunk, ChunkingOptions

logger = logging.getLogger(__name__)

CHARS_PER_TOKEN = 4
PARAGRAPH_SEPARATOR = "\n\n"

_FENCE_RE = re.compile(r"^\s{0,3}(`{3,}|~{3,})")
_HEADING_RE = re.compile(r"^\s{0,3}#{1,6}\s+(.+?)\s*#*\s*$")


def estimate_tokens(text: str) -> int:
    """Approximate token count used everywhere in the pipeline"""
    return math.ceil(len(text) / CHARS_PER_TOKEN)


def split_paragraphs(document: str) -> List[str]:
    """
    Split markdown into paragraphs on blank lines.

    A fenced code block (``` or ~~~) is kept as one paragraph even when it
    contains blank lines. An unterminated fence runs to the end of the document.
    """
    lines = document.replace("\r\n", "\n").replace("\r", "\n").split("\n")

    paragraphs: List[str] = []
    current: List[str] = []
    fence: Optional[str] = None

    def flush():
        if current:
            text = "\n".join(current).strip("\n")
            if text.strip():
                paragraphs.append(text)
            current.clear()

    for line in lines:
        if fence is not None:
            current.append(line)
            stripped = line.strip()
            if stripped.startswith(fence) and stripped.strip(fence[0]) == "":
                fence = None
                flush()
            continue

        match = _FENCE_RE.match(line)
        if match:
            flush()
            fence = match.group(1)
            current.append(line)
            continue

        if not line.strip():
            flush()
            continue

        current.append(line)

    flush()
    return paragraphs


def _heading_of(paragraph: str) -> Optional[str]:
    match = _HEADING_RE.match(paragraph.split("\n", 1)[0])
    return match.group(1) if match else None


def _overlap_tail(text: str, max_chars: int) -> str:
    """Trailing slice of text, at most max_chars long, starting on a word boundary when possible."""
    if max_chars <= 0:
        return ""
    if len(text) <= max_chars:
        return text
    tail = text[-max_chars:]
    boundary = re.search(r"\s", tail)
    if boundary:
        trimmed = tail[boundary.end():].lstrip()
        if trimmed:
            return trimmed
    return tail


def chunk_markdown(document: str, options: Optional[ChunkingOptions] = None) -> List[Chunk]:
    """
    Split a markdown document into overlapping, token-budgeted chunks.

    Paragraphs are accumulated until adding the next one would exceed
    max_tokens; the buffer is then emitted and the next buffer is seeded with
    the trailing overlap_tokens*4 characters of the emitted chunk. A buffer
    shorter than min_chunk_chars is carried forward instead of emitted, except
    at the end of the document. A single paragraph larger than the budget
    becomes its own oversized chunk.

    Args:
        document: Markdown text
        options: Token budget; defaults come from settings

    Returns:
        Chunks numbered from 0

    Raises:
        ChunkingError: If the options are inconsistent
    """
    options = options or ChunkingOptions()
    options.validate_budget()

    paragraphs = split_paragraphs(document)
    if not paragraphs:
        return []

    overlap_chars = options.overlap_tokens * CHARS_PER_TOKEN

    chunks: List[Chunk] = []
    seed = ""
    buffer: List[str] = []
    current_heading: Optional[str] = None
    buffer_heading: Optional[str] = None

    def assemble(parts: List[str], seed_text: str) -> str:
        return PARAGRAPH_SEPARATOR.join(([seed_text] if seed_text else []) + parts)

    def emit(parts: List[str], seed_text: str, heading: Optional[str]) -> str:
        text = assemble(parts, seed_text)
        chunks.append(
            Chunk(
                index=len(chunks),
                text=text,
                token_estimate=estimate_tokens(text),
                paragraph_count=len(parts),
                overlap_chars=len(seed_text),
                heading=heading,
            )
        )
        return text

    for paragraph in paragraphs:
        if buffer and estimate_tokens(assemble(buffer + [paragraph], seed)) > options.max_tokens:
            pending = assemble(buffer, seed)
            if len(pending) >= options.min_chunk_chars:
                emitted = emit(buffer, seed, buffer_heading)
                seed = _overlap_tail(emitted, overlap_chars)
                buffer = []

        if not buffer:
            buffer_heading = current_heading
        heading = _heading_of(paragraph)
        if heading:
            current_heading = heading
            if not buffer:
                buffer_heading = heading
        buffer.append(paragraph)

    emit(buffer, seed, buffer_heading)

    logger.debug(f"Chunked document ({len(document)} chars) into {len(chunks)} chunks")
    return chunks


def core_text(chunk: Chunk) -> str:
    """Chunk text without the overlap repeated from the previous chunk"""
    if not chunk.overlap_chars:
        return chunk.text
    return chunk.text[chunk.overlap_chars + len(PARAGRAPH_SEPARATOR):]
