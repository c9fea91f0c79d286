"""
Chunk datastore using embedded ChromaDB, for local development.
Mirrors the Supabase search functions closely enough to exercise the full pipeline.
"""

import asyncio
import json
import logging
import re
import uuid
from pathlib import Path
from typing import List, Dict, Any, Optional, Tuple

import chromadb
from chromadb.config import Settings as ChromaSettings

from core.config import settings
from core.exceptions import DatastoreError
from domain.rag.ingestion.types import Chunk
from domain.rag.retrieval.types import RetrievedCandidate
from storage.base import BaseDatastore, build_chunk_metadata

logger = logging.getLogger(__name__)

_TERM_RE = re.compile(r"\w+", re.UNICODE)
_MIN_TERM_LENGTH = 3


def _query_terms(query_text: str) -> List[str]:
    """Distinct lowercase words worth matching on"""
    seen = []
    for term in _TERM_RE.findall(query_text.lower()):
        if len(term) >= _MIN_TERM_LENGTH and term not in seen:
            seen.append(term)
    return seen


def _text_rank(content: str, terms: List[str]) -> float:
    """Fraction of query terms present in content (0..1)"""
    if not terms:
        return 0.0
    words = set(_TERM_RE.findall(content.lower()))
    return sum(1 for t in terms if t in words) / len(terms)


def _chunk_id(document_id: str, chunk_index: int) -> str:
    return str(uuid.uuid5(uuid.NAMESPACE_URL, f"{document_id}#{chunk_index}"))


class ChromaDatastore(BaseDatastore):
    """
    Vector search via the collection's cosine HNSW index; lexical matching via
    where_document $contains, ranked in Python. Scores combine the same way
    as hybrid_search_document_chunks: vector_weight*similarity + text_weight*rank.
    """

    backend = "chromadb_embedded"

    def __init__(
        self,
        client: Optional[Any] = None,
        collection_name: Optional[str] = None,
        store_path: Optional[Path] = None,
    ):
        self.client = client or self._init_embedded(store_path)
        collection_name = collection_name or settings.chroma_collection_name

        # Get or create collection
        self.collection = self.client.get_or_create_collection(
            name=collection_name,
            metadata={"hnsw:space": "cosine"}
        )
        logger.info(f"Initialized ChromaDatastore, collection: {collection_name}")

    def _init_embedded(self, store_path: Optional[Path] = None):
        """Initialize ChromaDB embedded mode (local persistent storage)"""
        store_path = Path(store_path or settings.chroma_store_path)

        # Resolve relative paths relative to backend directory
        if not store_path.is_absolute():
            backend_dir = Path(__file__).parent.parent
            store_path = (backend_dir / store_path).resolve()

        store_path.mkdir(parents=True, exist_ok=True)
        logger.info(f"ChromaDB embedded store at: {store_path}")
        return chromadb.PersistentClient(
            path=str(store_path),
            settings=ChromaSettings(anonymized_telemetry=False)
        )

    @staticmethod
    def _where(
        user_id: str,
        document_id: Optional[str],
        project_id: Optional[str],
        thread_id: Optional[str],
    ) -> Dict[str, Any]:
        clauses: List[Dict[str, Any]] = [{"user_id": user_id}]
        if document_id:
            clauses.append({"document_id": document_id})
        if project_id:
            clauses.append({"project_id": project_id})
        if thread_id:
            # thread-scoped chunks plus global ones (stored with an empty thread id)
            clauses.append({"$or": [{"thread_id": thread_id}, {"thread_id": ""}]})
        return clauses[0] if len(clauses) == 1 else {"$and": clauses}

    @staticmethod
    def _candidate(chunk_id: str, content: str, meta: Dict[str, Any], similarity: float, rank: float,
                   vector_weight: float, text_weight: float) -> RetrievedCandidate:
        return RetrievedCandidate(
            document_id=meta.get("document_id", ""),
            chunk_id=chunk_id,
            content=content or "",
            chunk_index=int(meta.get("chunk_index", 0)),
            vector_similarity=similarity,
            text_rank=rank,
            hybrid_score=vector_weight * similarity + text_weight * rank,
            metadata=json.loads(meta.get("metadata_json") or "{}"),
        )

    def _vector_hits(self, embedding: List[float], n: int, where: Dict[str, Any]) -> Dict[str, Tuple[str, Dict, float]]:
        results = self.collection.query(
            query_embeddings=[embedding],
            n_results=n,
            where=where,
            include=["documents", "metadatas", "distances"],
        )
        hits = {}
        if results["ids"] and results["ids"][0]:
            for i, chunk_id in enumerate(results["ids"][0]):
                similarity = 1.0 - results["distances"][0][i]  # Convert distance to similarity
                hits[chunk_id] = (results["documents"][0][i], results["metadatas"][0][i], similarity)
        return hits

    def _text_hits(self, terms: List[str], where: Dict[str, Any]) -> Dict[str, Tuple[str, Dict, float]]:
        if not terms:
            return {}
        # $contains is case-sensitive: match lowercase and capitalized forms
        contains = [{"$contains": form} for t in terms for form in {t, t.capitalize()}]
        where_document = contains[0] if len(contains) == 1 else {"$or": contains}
        results = self.collection.get(
            where=where,
            where_document=where_document,
            include=["documents", "metadatas"],
        )
        hits = {}
        for i, chunk_id in enumerate(results["ids"] or []):
            content = results["documents"][i]
            rank = _text_rank(content or "", terms)
            if rank > 0:
                hits[chunk_id] = (content, results["metadatas"][i], rank)
        return hits

    def _hybrid_search_sync(self, user_id, query_embedding, query_text, match_count, document_id,
                            project_id, thread_id, min_similarity, vector_weight, text_weight):
        where = self._where(user_id, document_id, project_id, thread_id)
        vector_hits = self._vector_hits(query_embedding, match_count * 2, where)
        text_hits = self._text_hits(_query_terms(query_text), where)
        # keep the best lexical matches, as the SQL function limits each side to match_count * 2
        text_hits = dict(sorted(text_hits.items(), key=lambda kv: kv[1][2], reverse=True)[:match_count * 2])

        candidates = []
        for chunk_id in set(vector_hits) | set(text_hits):
            content, meta, similarity = vector_hits.get(chunk_id, (None, None, 0.0))
            text_content, text_meta, rank = text_hits.get(chunk_id, (None, None, 0.0))
            candidate = self._candidate(
                chunk_id, content or text_content, meta or text_meta,
                similarity, rank, vector_weight, text_weight,
            )
            if candidate.hybrid_score >= min_similarity:
                candidates.append(candidate)

        candidates.sort(key=lambda c: c.hybrid_score, reverse=True)
        return candidates[:match_count]

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
        try:
            return await asyncio.to_thread(
                self._hybrid_search_sync, user_id, query_embedding, query_text, match_count,
                document_id, project_id, thread_id, min_similarity, vector_weight, text_weight,
            )
        except Exception as e:
            logger.error(f"Error in hybrid search: {e}")
            raise DatastoreError(f"Hybrid search failed: {e}")

    def _vector_search_sync(self, user_id, query_embedding, match_count, document_id,
                            project_id, thread_id, min_similarity):
        where = self._where(user_id, document_id, project_id, thread_id)
        hits = self._vector_hits(query_embedding, match_count, where)
        candidates = [
            self._candidate(chunk_id, content, meta, similarity, 0.0, 1.0, 0.0)
            for chunk_id, (content, meta, similarity) in hits.items()
            if similarity >= min_similarity
        ]
        candidates.sort(key=lambda c: c.hybrid_score, reverse=True)
        return candidates

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
        try:
            return await asyncio.to_thread(
                self._vector_search_sync, user_id, query_embedding, match_count,
                document_id, project_id, thread_id, min_similarity,
            )
        except Exception as e:
            logger.error(f"Error in vector search: {e}")
            raise DatastoreError(f"Vector search failed: {e}")

    def _upsert_sync(self, user_id, document_id, chunks, embeddings, metadata, thread_id) -> int:
        self.collection.delete(where={"$and": [{"document_id": document_id}, {"user_id": user_id}]})
        if not chunks:
            return 0
        metadatas = []
        for chunk in chunks:
            chunk_metadata = build_chunk_metadata(chunk, metadata)
            metadatas.append({
                "document_id": document_id,
                "user_id": user_id,
                "thread_id": thread_id or "",
                "project_id": str(chunk_metadata.get("project_id") or ""),
                "chunk_index": chunk.index,
                "content_tokens": chunk.token_estimate,
                "metadata_json": json.dumps(chunk_metadata),
            })
        self.collection.upsert(
            ids=[_chunk_id(document_id, chunk.index) for chunk in chunks],
            embeddings=[list(e) for e in embeddings],
            documents=[chunk.text for chunk in chunks],
            metadatas=metadatas,
        )
        return len(chunks)

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
        try:
            written = await asyncio.to_thread(
                self._upsert_sync, user_id, document_id, chunks, embeddings, metadata, thread_id
            )
        except Exception as e:
            logger.error(f"Error writing chunks for {document_id}: {e}")
            raise DatastoreError(f"Failed to write chunks: {e}")
        logger.info(f"Stored {written} chunks for document {document_id}")
        return written
