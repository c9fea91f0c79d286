"""
Prompt context block assembly
"""

from typing import List

from domain.rag.retrieval.types import RankedResult

CONTEXT_HEADER = "=== USER CONTEXT (relevant information found) ==="
CONTEXT_TERMINATOR = "\n=== END OF CONTEXT ==="
ELLIPSIS = "…"
MIN_TRUNCATED_CHARS = 80


def _result_block(result: RankedResult) -> str:
    header = f"Document (relevance: {result.score:.2f})"
    return "\n".join([header, result.content.strip(), "", "---", ""])


def build_context_block(results: List[RankedResult], max_chars: int = 6000) -> str:
    """
    Format ranked results for inclusion in a prompt.

    Result blocks are appended while the running text stays within max_chars.
    A block that does not fit is cut to the remaining room (ending in an
    ellipsis) if at least MIN_TRUNCATED_CHARS remain, and assembly stops
    there. The output never exceeds max_chars + len(CONTEXT_TERMINATOR).
    Empty results give an empty string.
    """
    if not results:
        return ""

    text = f"{CONTEXT_HEADER}\n"
    if len(text) > max_chars:
        return text[:max_chars] + CONTEXT_TERMINATOR

    for result in results:
        block = "\n" + _result_block(result)
        room = max_chars - len(text)
        if len(block) <= room:
            text += block
            continue
        if room >= MIN_TRUNCATED_CHARS:
            text += block[:room - len(ELLIPSIS)].rstrip() + ELLIPSIS
        break

    return text + CONTEXT_TERMINATOR
