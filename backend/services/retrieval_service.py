"""
Retrieval service - orchestrates retrieval: cache → expansion → embedding → hybrid search → reranking
"""

import logging
import math
import time
from typing import List, Optional, Tuple

from domain.rag.cache.result_cache import ResultCache, build_cache_key
from domain.rag.deadline import Deadline, run_within
from domain.rag.embedding.provider import EmbeddingProvider
from domain.rag.expansion.query_expander import QueryExpander
from domain.rag.outcome import StageStatus
from domain.rag.retrieval.hybrid_retriever import HybridRetriever
from domain.rag.retrieval.reranker import EmbeddingReranker
from domain.rag.retrieval.types import RankedResult, RetrievalRequest, RetrievalSizing, RetrievalTrace
from services.base import BaseService
from core.config import settings
from core.exceptions import InvalidInputError

logger = logging.getLogger(__name__)

SHORT_QUERY_TOKENS = 150
LONG_QUERY_TOKENS = 600


def plan_sizing(request: RetrievalRequest, avg_chunk_chars: Optional[int] = None) -> RetrievalSizing:
    """
    Adaptive top_k: short queries get more chunks, long queries fewer, and
    never more than the context budget can hold.
    """
    avg_chunk_chars = avg_chunk_chars or settings.avg_chunk_chars
    approx_query_tokens = math.ceil(len(request.query) / 4)
    allowed_by_budget = max(3, request.max_context_chars // avg_chunk_chars)

    if approx_query_tokens < SHORT_QUERY_TOKENS:
        base_top_k = 12
    elif approx_query_tokens < LONG_QUERY_TOKENS:
        base_top_k = 10
    else:
        base_top_k = 8

    top_k = min(request.top_k or base_top_k, allowed_by_budget)
    return RetrievalSizing(
        approx_query_tokens=approx_query_tokens,
        allowed_by_budget=allowed_by_budget,
        top_k=top_k,
        chunk_limit=min(allowed_by_budget, top_k),
        match_count=top_k * 2 if request.use_reranking else top_k,
    )


def validate_request(request: RetrievalRequest) -> None:
    if not request.query or not request.query.strip():
        raise InvalidInputError("query must not be empty")
    if not request.user_id or not request.user_id.strip():
        raise InvalidInputError("user_id is required")


class RetrievalService(BaseService):
    """
    Orchestrates the retrieval pipeline under a single per-request deadline.

    Every stage either completes or degrades; backend outages never reach the
    caller. Only results produced without degradation are cached.
    """

    def __init__(
        self,
        result_cache: ResultCache,
        query_expander: QueryExpander,
        embedding_provider: EmbeddingProvider,
        hybrid_retriever: HybridRetriever,
        reranker: EmbeddingReranker,
    ):
        self.result_cache = result_cache
        self.query_expander = query_expander
        self.embedding_provider = embedding_provider
        self.hybrid_retriever = hybrid_retriever
        self.reranker = reranker

    async def retrieve_relevant(self, request: RetrievalRequest) -> List[RankedResult]:
        """
        Retrieve ranked passages for a query.

        Args:
            request: Query, ownership filters, sizing and timeout.

        Returns:
            At most chunk_limit results, best first. Empty on invalid input,
            exhausted deadline or total backend failure.
        """
        results, _ = await self.retrieve_with_trace(request)
        return results

    async def retrieve_with_trace(self, request: RetrievalRequest) -> Tuple[List[RankedResult], RetrievalTrace]:
        """Same as retrieve_relevant, plus the per-stage diagnostics."""
        trace = RetrievalTrace()
        deadline = Deadline(request.timeout_ms)

        try:
            validate_request(request)
        except InvalidInputError as e:
            logger.warning(f"[RAG] rejecting request: {e}")
            trace.record("validate", StageStatus.EMPTY, deadline.elapsed_ms(), str(e))
            return [], trace

        # CACHE_CHECK
        cache_key = build_cache_key(request)
        started = time.monotonic()
        lookup = await run_within(self.result_cache.lookup(cache_key), deadline.remaining(), "cache_check")
        cached, tier = lookup.value if lookup.is_ok else (None, None)
        trace.record("cache_check", lookup.status, _since(started), lookup.reason)
        if cached is not None:
            trace.cache_tier = tier
            trace.result_count = len(cached)
            trace.total_ms = deadline.elapsed_ms()
            logger.info(f"[RAG] cache {tier} hit, {len(cached)} results in {trace.total_ms:.0f}ms")
            return cached, trace

        sizing = plan_sizing(request)
        trace.sizing = sizing
        logger.debug(
            f"[RAG] sizing: ~{sizing.approx_query_tokens} query tokens, top_k={sizing.top_k}, "
            f"chunk_limit={sizing.chunk_limit}, match_count={sizing.match_count}"
        )

        # EXPAND
        started = time.monotonic()
        expansion = await self.query_expander.expand_outcome(request.query, deadline.budget(fraction=0.5))
        variants = expansion.value or [request.query]
        trace.variants = list(variants)
        trace.record("expand", expansion.status, _since(started), expansion.reason)

        if deadline.expired:
            logger.warning(f"[RAG] deadline exhausted before embedding ({deadline.elapsed_ms():.0f}ms)")
            trace.record("embed", StageStatus.EMPTY, 0.0, "deadline exhausted")
            return self._finish([], trace, deadline)

        # EMBED
        started = time.monotonic()
        embedded = await run_within(self.embedding_provider.embed(variants), deadline.remaining(), "embed")
        trace.record("embed", embedded.status, _since(started), embedded.reason)
        if not embedded.is_ok or not embedded.value:
            logger.error(f"[RAG] query embedding unavailable, returning no context: {embedded.reason}")
            return self._finish([], trace, deadline)

        # SEARCH
        started = time.monotonic()
        searched = await self.hybrid_retriever.search(
            variants, embedded.value, request, sizing.match_count, deadline
        )
        trace.record("search", searched.status, _since(started), searched.reason)
        candidates = searched.value or []
        trace.candidate_count = len(candidates)
        if searched.is_empty:
            return self._finish([], trace, deadline)

        # RERANK?
        rerank_status = None
        if request.use_reranking and len(candidates) > 1:
            started = time.monotonic()
            reranked = await self.reranker.rerank_outcome(
                request.query,
                [c.content for c in candidates],
                top_k=sizing.top_k,
                min_score=settings.rerank_min_score,
                deadline=deadline,
            )
            rerank_status = reranked.status
            trace.record("rerank", reranked.status, _since(started), reranked.reason)
            results = [
                RankedResult.from_candidate(candidates[s.index], rerank_score=s.score)
                for s in reranked.value or []
            ]
        else:
            results = [RankedResult.from_candidate(c) for c in candidates]

        results = results[:sizing.chunk_limit]

        # CACHE_WRITE
        if expansion.is_ok and searched.is_ok and rerank_status in (None, StageStatus.OK):
            started = time.monotonic()
            self.result_cache.schedule_set(cache_key, results)
            trace.record("cache_write", StageStatus.OK, _since(started))
        else:
            logger.debug("[RAG] degraded result, not caching")

        return self._finish(results, trace, deadline)

    def _finish(
        self, results: List[RankedResult], trace: RetrievalTrace, deadline: Deadline
    ) -> Tuple[List[RankedResult], RetrievalTrace]:
        trace.result_count = len(results)
        trace.total_ms = round(deadline.elapsed_ms(), 2)
        logger.info(
            f"[RAG] {len(results)} results from {trace.candidate_count} candidates, "
            f"{len(trace.variants)} variant(s), {trace.total_ms:.0f}ms"
            + (" (degraded)" if trace.degraded else "")
        )
        logger.debug(f"[RAG] stages: {trace.summary()}")
        return results, trace


def _since(started: float) -> float:
    return (time.monotonic() - started) * 1000.0
