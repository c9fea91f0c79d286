"""
Pydantic models for retrieval endpoints
"""

from pydantic import BaseModel, Field
from typing import List, Optional

from core.config import settings
from domain.rag.retrieval.types import RankedResult, RetrievalRequest, RetrievalTrace


class SearchRequest(RetrievalRequest):
    """Request for hybrid search"""
    debug: bool = False

    def to_retrieval_request(self) -> RetrievalRequest:
        return RetrievalRequest(**self.model_dump(exclude={"debug", "max_chars"}))


class SearchResponse(BaseModel):
    """Response from search"""
    query: str
    results: List[RankedResult]
    num_results: int
    trace: Optional[RetrievalTrace] = None


class ContextRequest(SearchRequest):
    """Request for a prompt-ready context block"""
    max_chars: int = Field(default_factory=lambda: settings.default_max_context_chars, ge=1)


class ContextResponse(BaseModel):
    """Context block plus the results it was built from"""
    context: str
    num_results: int
    num_chars: int
    trace: Optional[RetrievalTrace] = None
