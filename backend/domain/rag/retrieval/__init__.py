"""
Retrieval pipeline
"""

from domain.rag.retrieval.hybrid_retriever import HybridRetriever, merge_candidates, normalize_weights
from domain.rag.retrieval.reranker import EmbeddingReranker
from domain.rag.retrieval.similarity import cosine_similarity, cosine_similarities
from domain.rag.retrieval.context import build_context_block, CONTEXT_TERMINATOR
from domain.rag.retrieval.types import (
    ChunkMetadata,
    RetrievedCandidate,
    RankedResult,
    RetrievalRequest,
    RerankScore,
    RetrievalTrace,
)

__all__ = [
    "HybridRetriever",
    "merge_candidates",
    "normalize_weights",
    "EmbeddingReranker",
    "cosine_similarity",
    "cosine_similarities",
    "build_context_block",
    "CONTEXT_TERMINATOR",
    "ChunkMetadata",
    "RetrievedCandidate",
    "RankedResult",
    "RetrievalRequest",
    "RerankScore",
    "RetrievalTrace",
]
