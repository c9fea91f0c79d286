"""
Retrieval endpoints - hybrid search and prompt context assembly
"""

import logging
from fastapi import APIRouter, Depends

from api.dependencies import get_retrieval_service
from api.schemas.retrieval import SearchRequest, SearchResponse, ContextRequest, ContextResponse
from domain.rag.retrieval.context import build_context_block
from services.retrieval_service import RetrievalService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/retrieval", tags=["retrieval"])


@router.post("/search", response_model=SearchResponse)
async def search(
    body: SearchRequest,
    retrieval_service: RetrievalService = Depends(get_retrieval_service)
):
    """
    Hybrid search over the user's chunks.

    Backend outages degrade the result instead of failing the request;
    set debug=true to see which stages degraded.
    """
    results, trace = await retrieval_service.retrieve_with_trace(body.to_retrieval_request())
    return SearchResponse(
        query=body.query,
        results=results,
        num_results=len(results),
        trace=trace if body.debug else None,
    )


@router.post("/context", response_model=ContextResponse)
async def context(
    body: ContextRequest,
    retrieval_service: RetrievalService = Depends(get_retrieval_service)
):
    """Retrieve and format results as a context block of at most max_chars (plus terminator)."""
    results, trace = await retrieval_service.retrieve_with_trace(body.to_retrieval_request())
    block = build_context_block(results, max_chars=body.max_chars)
    return ContextResponse(
        context=block,
        num_results=len(results),
        num_chars=len(block),
        trace=trace if body.debug else None,
    )
