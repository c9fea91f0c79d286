"""
Supabase datastore: pgvector + full-text search through PostgREST RPC
"""

import logging
from typing import Any, Callable, Dict, List, Optional

import httpx
from pydantic import ValidationError

from core.config import settings
from core.exceptions import DatastoreError
from domain.rag.ingestion.types import Chunk
from domain.rag.retrieval.types import RetrievedCandidate
from storage.base import BaseDatastore, build_chunk_metadata

logger = logging.getLogger(__name__)

HYBRID_SEARCH_RPC = "hybrid_search_document_chunks"
VECTOR_SEARCH_RPC = "match_document_chunks"
CHUNKS_TABLE = "document_chunks"


def _hybrid_candidate(row: Dict[str, Any]) -> RetrievedCandidate:
    return RetrievedCandidate(
        document_id=row["document_id"],
        chunk_id=row["chunk_id"],
        content=row.get("content") or "",
        chunk_index=row.get("chunk_index") or 0,
        vector_similarity=row.get("vector_similarity") or 0.0,
        text_rank=row.get("text_rank") or 0.0,
        hybrid_score=row.get("hybrid_score") or 0.0,
        metadata=row.get("metadata"),
    )


def _vector_candidate(row: Dict[str, Any]) -> RetrievedCandidate:
    similarity = row.get("similarity") or 0.0
    return RetrievedCandidate(
        document_id=row["document_id"],
        chunk_id=row["chunk_id"],
        content=row.get("content") or "",
        chunk_index=row.get("chunk_index") or 0,
        vector_similarity=similarity,
        hybrid_score=similarity,
        metadata=row.get("metadata"),
    )


def _map_rows(
    function: str, rows: Any, to_candidate: Callable[[Dict[str, Any]], RetrievedCandidate]
) -> List[RetrievedCandidate]:
    """Rows the SQL function returned, as candidates; an unexpected row shape is a DatastoreError."""
    try:
        return [to_candidate(row) for row in rows]
    except (KeyError, TypeError, AttributeError, ValidationError) as e:
        logger.error(f"{function} returned an unexpected row: {e}", exc_info=True)
        raise DatastoreError(f"{function} returned malformed rows: {e}")


class SupabaseDatastore(BaseDatastore):
    """
    Calls the hybrid_search_document_chunks / match_document_chunks SQL
    functions and writes the document_chunks table over the PostgREST API.
    """

    backend = "supabase"

    def __init__(
        self,
        url: Optional[str] = None,
        service_key: Optional[str] = None,
        timeout: Optional[int] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.url = (url or settings.supabase_url or "").rstrip("/")
        self.service_key = service_key or settings.supabase_service_key
        if not self.url or not self.service_key:
            raise ValueError(
                "Supabase datastore requires SUPABASE_URL and SUPABASE_SERVICE_KEY."
            )
        self.timeout = timeout or settings.datastore_timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        logger.info(f"Initialized SupabaseDatastore at {self.url}")

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client"""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=f"{self.url}/rest/v1",
                timeout=self.timeout,
                transport=self._transport,
                headers={
                    "apikey": self.service_key,
                    "Authorization": f"Bearer {self.service_key}",
                    "Content-Type": "application/json",
                },
            )
        return self._client

    async def _rpc(self, function: str, params: Dict[str, Any]) -> List[Dict[str, Any]]:
        client = await self._get_client()
        try:
            response = await client.post(f"/rpc/{function}", json=params)
            response.raise_for_status()
            return response.json() or []
        except httpx.HTTPStatusError as e:
            body = e.response.text
            if "PGRST202" in body:
                logger.warning(f"[RAG] RPC {function} missing; apply the document_chunks migrations")
            logger.error(f"{function} error: {e.response.status_code} - {body}")
            raise DatastoreError(f"{function} failed: {e.response.status_code}")
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"{function} error: {e}")
            raise DatastoreError(f"{function} failed: {e}")

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
        rows = await self._rpc(HYBRID_SEARCH_RPC, {
            "p_user_id": user_id,
            "p_query_embedding": list(query_embedding),
            "p_query_text": query_text,
            "p_match_count": match_count,
            "p_document_id": document_id,
            "p_project_id": project_id,
            "p_thread_id": thread_id,
            "p_min_similarity": min_similarity,
            "p_vector_weight": vector_weight,
            "p_text_weight": text_weight,
        })
        return _map_rows(HYBRID_SEARCH_RPC, rows, _hybrid_candidate)

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
        rows = await self._rpc(VECTOR_SEARCH_RPC, {
            "p_user_id": user_id,
            "p_query_embedding": list(query_embedding),
            "p_match_count": match_count,
            "p_document_id": document_id,
            "p_project_id": project_id,
            "p_thread_id": thread_id,
            "p_min_similarity": min_similarity,
        })
        return _map_rows(VECTOR_SEARCH_RPC, rows, _vector_candidate)

    async def upsert_chunks(
        self,
        user_id: str,
        document_id: str,
        chunks: List[Chunk],
        embeddings: List[List[float]],
        metadata: Optional[Dict[str, Any]] = None,
        thread_id: Optional[str] = None,
    ) -> int:
        if len(chunks) != len(embeddings):
            raise DatastoreError(f"{len(chunks)} chunks but {len(embeddings)} embeddings")

        client = await self._get_client()
        rows = []
        for chunk, embedding in zip(chunks, embeddings):
            rows.append({
                "document_id": document_id,
                "user_id": user_id,
                "thread_id": thread_id,
                "chunk_index": chunk.index,
                "content": chunk.text,
                "content_tokens": chunk.token_estimate,
                "embedding": list(embedding),
                "metadata": build_chunk_metadata(chunk, metadata),
            })

        try:
            # Re-indexing replaces the document's previous chunks
            response = await client.delete(
                f"/{CHUNKS_TABLE}",
                params={"document_id": f"eq.{document_id}", "user_id": f"eq.{user_id}"},
            )
            response.raise_for_status()
            if rows:
                response = await client.post(
                    f"/{CHUNKS_TABLE}",
                    json=rows,
                    headers={"Prefer": "return=minimal"},
                )
                response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error(f"Error writing chunks for {document_id}: {e.response.status_code} - {e.response.text}")
            raise DatastoreError(f"Failed to write chunks: {e.response.status_code}")
        except httpx.HTTPError as e:
            logger.error(f"Error writing chunks for {document_id}: {e}")
            raise DatastoreError(f"Failed to write chunks: {e}")

        logger.info(f"Stored {len(rows)} chunks for document {document_id}")
        return len(rows)

    async def close(self) -> None:
        """Close HTTP client"""
        if self._client:
            await self._client.aclose()
            self._client = None
