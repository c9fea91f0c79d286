"""
Tests for markdown chunking
"""

import pytest

from core.exceptions import ChunkingError
from domain.rag.ingestion.chunker import (
    PARAGRAPH_SEPARATOR,
    chunk_markdown,
    core_text,
    estimate_tokens,
    split_paragraphs,
)
from domain.rag.ingestion.types import ChunkingOptions


def _document(paragraphs: int = 12, words: int = 40) -> str:
    return "\n\n".join(
        " ".join(f"p{p}w{w}" for w in range(words)) for p in range(paragraphs)
    )


def test_estimate_tokens_rounds_up():
    assert estimate_tokens("") == 0
    assert estimate_tokens("abcd") == 1
    assert estimate_tokens("abcde") == 2


def test_split_paragraphs_keeps_fenced_code_together():
    document = "Intro text\n\n```python\ndef f():\n\n    return 1\n```\n\nOutro"
    paragraphs = split_paragraphs(document)
    assert paragraphs == ["Intro text", "```python\ndef f():\n\n    return 1\n```", "Outro"]


def test_split_paragraphs_tilde_fence_and_crlf():
    document = "a\r\n\r\n~~~\nx\n\ny\n~~~\r\n\r\nb"
    assert split_paragraphs(document) == ["a", "~~~\nx\n\ny\n~~~", "b"]


def test_empty_document_gives_no_chunks():
    assert chunk_markdown("") == []
    assert chunk_markdown("   \n\n  \n") == []


def test_chunks_are_numbered_and_within_budget():
    options = ChunkingOptions(max_tokens=200, overlap_tokens=20, min_chunk_chars=100)
    chunks = chunk_markdown(_document(), options)

    assert len(chunks) > 1
    assert [c.index for c in chunks] == list(range(len(chunks)))
    for chunk in chunks[:-1]:
        assert chunk.token_estimate <= options.max_tokens
        assert chunk.token_estimate == estimate_tokens(chunk.text)


def test_every_paragraph_is_covered():
    document = _document()
    chunks = chunk_markdown(document, ChunkingOptions(max_tokens=150, overlap_tokens=10, min_chunk_chars=50))
    joined = "\n\n".join(core_text(c) for c in chunks)
    for paragraph in split_paragraphs(document):
        assert paragraph in joined


def test_overlap_is_bounded_and_repeats_previous_tail():
    options = ChunkingOptions(max_tokens=150, overlap_tokens=15, min_chunk_chars=50)
    chunks = chunk_markdown(_document(), options)

    assert len(chunks) > 1
    for previous, chunk in zip(chunks, chunks[1:]):
        assert 0 < chunk.overlap_chars <= options.overlap_tokens * 4
        seed = chunk.text[:chunk.overlap_chars]
        assert previous.text.endswith(seed)
        assert chunk.text[chunk.overlap_chars:].startswith(PARAGRAPH_SEPARATOR)


def test_no_overlap_when_overlap_tokens_is_zero():
    chunks = chunk_markdown(_document(), ChunkingOptions(max_tokens=150, overlap_tokens=0, min_chunk_chars=50))
    assert len(chunks) > 1
    assert all(c.overlap_chars == 0 for c in chunks)


def test_short_buffer_is_merged_forward():
    document = "Tiny.\n\n" + "x" * 500
    chunks = chunk_markdown(document, ChunkingOptions(max_tokens=50, overlap_tokens=5, min_chunk_chars=200))
    assert len(chunks) == 1
    assert chunks[0].text.startswith("Tiny.")
    assert chunks[0].paragraph_count == 2


def test_final_short_chunk_is_always_flushed():
    document = "y" * 900 + "\n\n" + "tail"
    chunks = chunk_markdown(document, ChunkingOptions(max_tokens=225, overlap_tokens=0, min_chunk_chars=200))
    assert len(chunks) == 2
    assert chunks[-1].text == "tail"


def test_oversized_paragraph_becomes_its_own_chunk():
    document = "short intro paragraph " * 10 + "\n\n" + "z" * 4000 + "\n\nafter"
    chunks = chunk_markdown(document, ChunkingOptions(max_tokens=100, overlap_tokens=0, min_chunk_chars=10))
    assert any("z" * 4000 in c.text for c in chunks)


def test_heading_is_tracked():
    document = "# Billing\n\n" + "\n\n".join("refund details " * 20 for _ in range(4))
    chunks = chunk_markdown(document, ChunkingOptions(max_tokens=120, overlap_tokens=0, min_chunk_chars=10))
    assert all(c.heading == "Billing" for c in chunks)


def test_chunking_is_deterministic():
    document = _document()
    assert chunk_markdown(document) == chunk_markdown(document)


@pytest.mark.parametrize(
    "max_tokens, overlap_tokens, min_chunk_chars",
    [(0, 0, 0), (100, 100, 0), (100, -1, 0), (100, 10, -5)],
)
def test_invalid_options_raise(max_tokens, overlap_tokens, min_chunk_chars):
    options = ChunkingOptions(max_tokens=max_tokens, overlap_tokens=overlap_tokens, min_chunk_chars=min_chunk_chars)
    with pytest.raises(ChunkingError):
        chunk_markdown("some text", options)
