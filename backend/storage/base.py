"""
Abstract base classes for storage
"""

from abc import ABC, abstractmethod
from typing import List, Dict, Any, Optional

from domain.rag.ingestion.types import Chunk
from domain.rag.retrieval.types import RetrievedCandidate


class BaseDatastore(ABC):
    """Abstract base class for chunk datastores (vector + full-text search)"""

    backend = "unknown"

    @abstractmethod
    async def hybrid_search(
        self,
        user_id: str,
        query_embedding: List[float],
        query_text: str,
        match_count: int,
        document_id: Optional[str] = None,
        project_id: Optional[str] = None,
        thread_id: Optional[str] = None,
        min_similarity: float = 0.0,
        vector_weight: float = 0.7,
        text_weight: float = 0.3,
    ) -> List[RetrievedCandidate]:
        """
        Combined vector and full-text search.

        Returns:
            Candidates ordered by hybrid_score descending, at most match_count

        Raises:
            DatastoreError: If the search call fails
        """
        pass

    @abstractmethod
    async def vector_search(
        self,
        user_id: str,
        query_embedding: List[float],
        match_count: int,
        document_id: Optional[str] = None,
        project_id: Optional[str] = None,
        thread_id: Optional[str] = None,
        min_similarity: float = 0.0,
    ) -> List[RetrievedCandidate]:
        """
        Vector-only search. hybrid_score equals vector_similarity.

        Raises:
            DatastoreError: If the search call fails
        """
        pass

    @abstractmethod
    async def upsert_chunks(
        self,
        user_id: str,
        document_id: str,
        chunks: List[Chunk],
        embeddings: List[List[float]],
        metadata: Optional[Dict[str, Any]] = None,
        thread_id: Optional[str] = None,
    ) -> int:
        """Replace all chunks of a document. Returns the number of rows written."""
        pass

    async def close(self) -> None:
        pass


class BaseDistributedCache(ABC):
    """Abstract base class for the shared (L2) result cache store"""

    mode = "unknown"

    @property
    def enabled(self) -> bool:
        return True

    @abstractmethod
    async def get_json(self, key: str) -> Optional[Any]:
        """
        Raises:
            CacheUnavailableError: If the store cannot be reached
        """
        pass

    @abstractmethod
    async def set_json(self, key: str, value: Any, ttl_seconds: int) -> None:
        """
        Raises:
            CacheUnavailableError: If the store cannot be reached
        """
        pass

    async def close(self) -> None:
        pass


def build_chunk_metadata(chunk: Chunk, metadata: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Document-level metadata plus the chunk's own heading, unless the caller set one"""
    chunk_metadata = dict(metadata or {})
    if chunk.heading and "heading" not in chunk_metadata:
        chunk_metadata["heading"] = chunk.heading
    return chunk_metadata
