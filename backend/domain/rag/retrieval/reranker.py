"""
Embedding-similarity reranking
"""

import asyncio
import logging
from typing import List, Optional, Tuple

from core.config import settings
from core.exceptions import EmbeddingBackendError
from domain.rag.deadline import Deadline
from domain.rag.embedding.batch_processor import BatchProcessor
from domain.rag.embedding.provider import EmbeddingProvider
from domain.rag.outcome import StageOutcome
from domain.rag.retrieval.similarity import cosine_similarities
from domain.rag.retrieval.types import RerankScore

logger = logging.getLogger(__name__)


def identity_order(documents: List[str], top_k: int) -> List[RerankScore]:
    """Keep the incoming order with decaying synthetic scores."""
    return [
        RerankScore(index=i, score=1.0 - 0.1 * i, text=text)
        for i, text in enumerate(documents[:top_k])
    ]


class EmbeddingReranker:
    """
    Re-scores candidates by cosine similarity between the query embedding and
    each candidate's embedding. When embeddings are unavailable, fail, or the
    budget is too small, the incoming order is kept (never raises).

    Candidates are embedded with passage_provider when one is given, so
    task-aware backends (Jina) see queries and passages the same way they
    did at ingestion time.
    """

    def __init__(
        self,
        embedding_provider: EmbeddingProvider,
        passage_provider: Optional[EmbeddingProvider] = None,
        min_budget_ms: Optional[int] = None,
        batch_size: Optional[int] = None,
        max_concurrent: Optional[int] = None,
    ):
        self.embedding_provider = embedding_provider
        self.passage_provider = passage_provider or embedding_provider
        self.min_budget_ms = min_budget_ms if min_budget_ms is not None else settings.rerank_min_budget_ms
        self.batch_size = batch_size or settings.rerank_batch_size
        self.max_concurrent = max_concurrent or settings.rerank_max_concurrent

    async def rerank(
        self,
        query: str,
        documents: List[str],
        top_k: int = 5,
        min_score: float = 0.0,
        deadline: Optional[Deadline] = None,
    ) -> List[RerankScore]:
        """
        Rerank documents against query.

        Returns:
            Scores ordered descending, filtered below min_score, at most top_k.
            index refers to the position in documents.
        """
        return (await self.rerank_outcome(query, documents, top_k, min_score, deadline)).value or []

    async def rerank_outcome(
        self,
        query: str,
        documents: List[str],
        top_k: int = 5,
        min_score: float = 0.0,
        deadline: Optional[Deadline] = None,
    ) -> StageOutcome[List[RerankScore]]:
        """Same as rerank, but tells the caller whether the ordering is real or synthetic."""
        if not query.strip() or not documents:
            return StageOutcome.ok([])

        if not (self.embedding_provider.available and self.passage_provider.available):
            logger.warning("[RERANK] embeddings unavailable, keeping incoming order")
            return StageOutcome.degraded(identity_order(documents, top_k), "embeddings unavailable")

        budget = deadline.remaining() if deadline is not None else None
        if budget is not None and budget * 1000.0 < self.min_budget_ms:
            logger.warning(f"[RERANK] only {budget * 1000:.0f}ms left, keeping incoming order")
            return StageOutcome.degraded(identity_order(documents, top_k), "insufficient budget")

        try:
            embed = self._embed(query, documents)
            query_vector, passage_vectors = await (
                asyncio.wait_for(embed, timeout=budget) if budget is not None else embed
            )
        except asyncio.TimeoutError:
            logger.warning("[RERANK] embedding timed out, keeping incoming order")
            return StageOutcome.degraded(identity_order(documents, top_k), "rerank embedding timed out")
        except EmbeddingBackendError as e:
            logger.error(f"[RERANK] Reranking failed, using incoming order: {e}")
            return StageOutcome.degraded(identity_order(documents, top_k), f"rerank embedding failed: {e}")

        similarities = cosine_similarities(query_vector, passage_vectors)
        scored = [
            RerankScore(index=i, score=score, text=documents[i])
            for i, score in enumerate(similarities)
            if score >= min_score
        ]
        scored.sort(key=lambda s: (-s.score, s.index))
        results = scored[:top_k]

        if results:
            logger.info(f"[RERANK] Reranked {len(documents)} -> {len(results)} (top score: {results[0].score:.3f})")
        return StageOutcome.ok(results)

    async def _embed(self, query: str, documents: List[str]) -> Tuple[List[float], List[List[float]]]:
        if self.passage_provider is self.embedding_provider:
            vectors = await self.embedding_provider.embed([query, *documents])
            return vectors[0], vectors[1:]
        query_vector, passage_vectors = await asyncio.gather(
            self.embedding_provider.embed_one(query),
            self.passage_provider.embed(documents),
        )
        return query_vector, passage_vectors

    async def rerank_batch(
        self,
        query: str,
        documents: List[str],
        batch_size: Optional[int] = None,
        top_k: int = 5,
        min_score: float = 0.0,
        deadline: Optional[Deadline] = None,
    ) -> List[RerankScore]:
        """
        Rerank a long candidate list in fixed-size batches, concurrently.

        Each batch is scored on its own; results are merged by score and
        truncated to top_k. Indices refer to the original documents list.
        """
        if not query.strip() or not documents:
            return []

        processor = BatchProcessor(batch_size=batch_size or self.batch_size, max_concurrent=self.max_concurrent)
        batches = []
        offset = 0
        for batch_documents in processor.split(documents):
            batches.append((offset, batch_documents))
            offset += len(batch_documents)

        async def score_batch(batch):
            offset, batch_documents = batch
            scores = await self.rerank(query, batch_documents, len(batch_documents), min_score, deadline)
            return [RerankScore(index=offset + s.index, score=s.score, text=s.text) for s in scores]

        per_batch = await processor.process_batch(batches, score_batch)
        merged = [score for batch_scores in per_batch for score in batch_scores]
        merged.sort(key=lambda s: (-s.score, s.index))
        return merged[:top_k]
