"""
Retrieval data types
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator

from core.config import settings
from domain.rag.outcome import StageStatus


class ChunkMetadata(BaseModel):
    """
    Metadata stored alongside a chunk.

    The documented keys are optional; anything else the datastore returns is
    kept as an extra field and passed through untouched.
    """
    model_config = ConfigDict(extra="allow")

    title: Optional[str] = None
    filename: Optional[str] = None
    project_id: Optional[str] = None
    source: Optional[str] = None
    heading: Optional[str] = None


class RetrievedCandidate(BaseModel):
    """One row returned by a datastore search call"""
    document_id: str
    chunk_id: str
    content: str
    chunk_index: int = 0
    vector_similarity: float = 0.0
    text_rank: float = 0.0
    hybrid_score: float = 0.0
    metadata: ChunkMetadata = Field(default_factory=ChunkMetadata)

    @field_validator("metadata", mode="before")
    @classmethod
    def _empty_metadata(cls, value: Any) -> Any:
        return {} if value is None else value

    @field_validator("document_id", "chunk_id", mode="before")
    @classmethod
    def _stringify_ids(cls, value: Any) -> Any:
        # uuid columns come back as str from PostgREST but as UUID from some drivers
        return value if isinstance(value, str) else str(value)


class RankedResult(RetrievedCandidate):
    """
    A candidate after (optional) reranking. This is what callers receive.

    When rerank_score is set it supersedes hybrid_score for ordering.
    """
    rerank_score: Optional[float] = None

    @computed_field
    @property
    def score(self) -> float:
        return self.rerank_score if self.rerank_score is not None else self.hybrid_score

    @classmethod
    def from_candidate(
        cls, candidate: RetrievedCandidate, rerank_score: Optional[float] = None
    ) -> "RankedResult":
        data = candidate.model_dump(exclude={"rerank_score", "score"})
        return cls(**data, rerank_score=rerank_score)


class RetrievalRequest(BaseModel):
    """Everything that shapes one retrieval call. Two requests with identical fields share a cache entry."""
    user_id: str
    query: str
    document_id: Optional[str] = None
    project_id: Optional[str] = None
    thread_id: Optional[str] = None
    top_k: Optional[int] = Field(default=None, ge=1)
    min_similarity: float = 0.0
    use_hybrid: bool = True
    use_reranking: bool = True
    vector_weight: float = Field(default_factory=lambda: settings.default_vector_weight, ge=0.0, le=1.0)
    text_weight: float = Field(default_factory=lambda: settings.default_text_weight, ge=0.0, le=1.0)
    max_context_chars: int = Field(default_factory=lambda: settings.default_max_context_chars, ge=1)
    timeout_ms: int = Field(default_factory=lambda: settings.default_timeout_ms, ge=0)


class RetrievalSizing(BaseModel):
    """Adaptive sizing derived from the query length and context budget"""
    approx_query_tokens: int
    allowed_by_budget: int
    top_k: int
    chunk_limit: int
    match_count: int


class RerankScore(BaseModel):
    """Reranker output. index always points into the list that was passed in."""
    index: int
    score: float
    text: str


class StageRecord(BaseModel):
    stage: str
    status: StageStatus
    elapsed_ms: float
    reason: Optional[str] = None


class RetrievalTrace(BaseModel):
    """Per-request diagnostics: which stages ran, how long they took, and how they ended"""
    stages: List[StageRecord] = Field(default_factory=list)
    cache_tier: Optional[str] = None  # "l1", "l2" or None on a miss
    variants: List[str] = Field(default_factory=list)
    sizing: Optional[RetrievalSizing] = None
    candidate_count: int = 0
    result_count: int = 0
    total_ms: float = 0.0

    def record(self, stage: str, status: StageStatus, elapsed_ms: float, reason: Optional[str] = None) -> None:
        self.stages.append(
            StageRecord(stage=stage, status=status, elapsed_ms=round(elapsed_ms, 2), reason=reason)
        )

    @property
    def degraded(self) -> bool:
        return any(s.status != StageStatus.OK for s in self.stages)

    def summary(self) -> Dict[str, Any]:
        return {s.stage: s.status.value for s in self.stages}
