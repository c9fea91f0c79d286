"""
Hybrid (vector + full-text) retrieval with variant fan-out and vector-only fallback
"""

import asyncio
import logging
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Dict, Iterable, List, Optional, Tuple

from core.config import settings
from core.exceptions import DatastoreError, RAGException
from domain.rag.deadline import Deadline, run_within
from domain.rag.outcome import StageOutcome
from domain.rag.retrieval.types import RetrievalRequest, RetrievedCandidate

if TYPE_CHECKING:
    from storage.base import BaseDatastore

logger = logging.getLogger(__name__)


async def _datastore_call(
    method: Callable[..., Awaitable[List[RetrievedCandidate]]], name: str, **kwargs: Any
) -> List[RetrievedCandidate]:
    """Call a datastore search method; errors outside the RAGException hierarchy become DatastoreError."""
    try:
        return await method(**kwargs)
    except RAGException:
        raise
    except Exception as e:
        logger.error(f"[HYBRID] {name} raised {type(e).__name__}: {e}", exc_info=True)
        raise DatastoreError(f"{name} failed: {e}") from e


def normalize_weights(vector_weight: float, text_weight: float) -> Tuple[float, float]:
    """
    Clamp both weights to [0, 1] and rescale them to sum to 1.

    A zero sum falls back to the configured defaults.
    """
    vw = min(max(vector_weight, 0.0), 1.0)
    tw = min(max(text_weight, 0.0), 1.0)
    if (vw, tw) != (vector_weight, text_weight):
        logger.warning(f"[HYBRID] weights clamped to [0, 1]: ({vector_weight}, {text_weight}) -> ({vw}, {tw})")

    total = vw + tw
    if total <= 0:
        logger.warning("[HYBRID] both weights are zero, using configured defaults")
        return normalize_weights(settings.default_vector_weight, settings.default_text_weight)
    if abs(total - 1.0) > 1e-6:
        logger.warning(f"[HYBRID] weights ({vw}, {tw}) do not sum to 1, normalizing")
        vw, tw = vw / total, tw / total
    return vw, tw


def _rank_key(candidate: RetrievedCandidate):
    return (-candidate.hybrid_score, candidate.chunk_index, candidate.chunk_id)


def merge_candidates(
    result_sets: Iterable[List[RetrievedCandidate]],
    min_hybrid_score: float = 0.0,
) -> List[RetrievedCandidate]:
    """
    Union result sets, keeping the highest-scoring copy of each chunk_id.

    The result does not depend on the order of result_sets: ties on score are
    broken by lower chunk_index, then chunk_id.
    """
    best: Dict[str, RetrievedCandidate] = {}
    for results in result_sets:
        for candidate in results:
            current = best.get(candidate.chunk_id)
            if current is None or _rank_key(candidate) < _rank_key(current):
                best[candidate.chunk_id] = candidate

    merged = [c for c in best.values() if c.hybrid_score >= min_hybrid_score]
    merged.sort(key=_rank_key)
    return merged


class HybridRetriever:
    """Runs one hybrid search per query variant and merges the results"""

    def __init__(self, datastore: "BaseDatastore", call_timeout_ms: Optional[int] = None):
        self.datastore = datastore
        self.call_timeout_ms = call_timeout_ms if call_timeout_ms is not None else settings.search_call_timeout_ms

    def _call_budget(self, deadline: Deadline) -> float:
        return deadline.budget(cap_seconds=self.call_timeout_ms / 1000.0)

    async def search(
        self,
        variants: List[str],
        embeddings: List[List[float]],
        request: RetrievalRequest,
        match_count: int,
        deadline: Deadline,
    ) -> StageOutcome[List[RetrievedCandidate]]:
        """
        Search every (variant, embedding) pair concurrently and merge.

        Returns:
            OK with merged candidates; DEGRADED with vector-only results if
            hybrid search is off or every hybrid call failed; EMPTY if the
            vector fallback failed too.
        """
        if not variants or len(variants) != len(embeddings):
            return StageOutcome.empty("no query embeddings to search with")

        if not request.use_hybrid:
            return await self.vector_only(embeddings[0], request, match_count, deadline, degraded=False)

        vector_weight, text_weight = normalize_weights(request.vector_weight, request.text_weight)
        budget = self._call_budget(deadline)

        calls = [
            run_within(
                _datastore_call(
                    self.datastore.hybrid_search,
                    "hybrid_search",
                    user_id=request.user_id,
                    query_embedding=embedding,
                    query_text=variant,
                    match_count=match_count,
                    document_id=request.document_id,
                    project_id=request.project_id,
                    thread_id=request.thread_id,
                    min_similarity=request.min_similarity,
                    vector_weight=vector_weight,
                    text_weight=text_weight,
                ),
                budget,
                "hybrid_search",
            )
            for variant, embedding in zip(variants, embeddings)
        ]
        outcomes = await asyncio.gather(*calls)

        succeeded = [o.value for o in outcomes if o.is_ok]
        if not succeeded:
            logger.error(f"[HYBRID] all {len(variants)} hybrid calls failed, falling back to vector search")
            return await self.vector_only(embeddings[0], request, match_count, deadline)

        merged = merge_candidates(succeeded, request.min_similarity)
        if merged:
            logger.info(
                f"[HYBRID] Retrieved {len(merged)} chunks from {len(succeeded)}/{len(variants)} variants, "
                f"top score: {merged[0].hybrid_score:.3f}"
            )
        if len(succeeded) < len(variants):
            return StageOutcome.degraded(merged, f"{len(variants) - len(succeeded)} variant search(es) dropped")
        return StageOutcome.ok(merged)

    async def vector_only(
        self,
        embedding: List[float],
        request: RetrievalRequest,
        match_count: int,
        deadline: Deadline,
        degraded: bool = True,
    ) -> StageOutcome[List[RetrievedCandidate]]:
        """Vector-only search with the primary query embedding"""
        outcome = await run_within(
            _datastore_call(
                self.datastore.vector_search,
                "vector_search",
                user_id=request.user_id,
                query_embedding=embedding,
                match_count=match_count,
                document_id=request.document_id,
                project_id=request.project_id,
                thread_id=request.thread_id,
                min_similarity=request.min_similarity,
            ),
            self._call_budget(deadline),
            "vector_search",
        )
        if not outcome.is_ok:
            return StageOutcome.empty(outcome.reason or "vector search failed")

        results = merge_candidates([outcome.value], request.min_similarity)
        if degraded:
            return StageOutcome.degraded(results, "vector-only fallback")
        return StageOutcome.ok(results)
