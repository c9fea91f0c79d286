"""
Shared fakes for the retrieval pipeline tests
"""

import asyncio
import hashlib
import re
import time
from typing import Any, Dict, List, Optional

import pytest

from core.exceptions import CacheUnavailableError, DatastoreError, EmbeddingBackendError, TranslationError
from domain.rag.cache.result_cache import ResultCache
from domain.rag.embedding.client import BaseEmbeddingClient
from domain.rag.embedding.provider import EmbeddingProvider
from domain.rag.expansion.query_expander import QueryExpander
from domain.rag.expansion.translator import BaseTranslator
from domain.rag.retrieval.hybrid_retriever import HybridRetriever
from domain.rag.retrieval.reranker import EmbeddingReranker
from domain.rag.retrieval.types import RetrievedCandidate
from services.retrieval_service import RetrievalService
from storage.base import BaseDatastore, BaseDistributedCache
from storage.redis_cache import DisabledDistributedCache

WORD_RE = re.compile(r"\w+")


def bag_of_words(text: str, dimensions: int = 4096) -> List[float]:
    """Deterministic hashed bag-of-words vector; texts sharing words point the same way."""
    vector = [0.0] * dimensions
    for word in WORD_RE.findall(text.lower()):
        bucket = int(hashlib.sha1(word.encode("utf-8")).hexdigest(), 16) % dimensions
        vector[bucket] += 1.0
    return vector


class FakeEmbeddingClient(BaseEmbeddingClient):
    def __init__(self, model: str = "fake-embed", fail: bool = False, configured: bool = True, delay: float = 0.0,
                 error: Optional[Exception] = None):
        self.model = model
        self.fail = fail
        self.error = error  # raised as-is, e.g. a transport error the client did not wrap
        self.configured = configured
        self.delay = delay
        self.calls: List[List[str]] = []

    @property
    def is_configured(self) -> bool:
        return self.configured

    async def embed(self, texts: List[str]) -> List[List[float]]:
        self.calls.append(list(texts))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        if self.fail:
            raise EmbeddingBackendError("fake backend down")
        return [bag_of_words(t) for t in texts]


class FakeDatastore(BaseDatastore):
    """
    Returns scripted candidates. hybrid_results maps query_text to a result
    list; anything not scripted gets default_results.
    """

    backend = "fake"

    def __init__(
        self,
        default_results: Optional[List[RetrievedCandidate]] = None,
        hybrid_results: Optional[Dict[str, List[RetrievedCandidate]]] = None,
        fail_hybrid: bool = False,
        fail_vector: bool = False,
        hybrid_delay: float = 0.0,
        error: Optional[Exception] = None,
    ):
        self.error = error
        self.default_results = default_results or []
        self.hybrid_results = hybrid_results or {}
        self.fail_hybrid = fail_hybrid
        self.fail_vector = fail_vector
        self.hybrid_delay = hybrid_delay
        self.hybrid_calls: List[Dict[str, Any]] = []
        self.vector_calls: List[Dict[str, Any]] = []
        self.upserts: List[Dict[str, Any]] = []

    @property
    def total_calls(self) -> int:
        return len(self.hybrid_calls) + len(self.vector_calls)

    async def hybrid_search(self, user_id, query_embedding, query_text, match_count, document_id=None,
                            project_id=None, thread_id=None, min_similarity=0.0, vector_weight=0.7,
                            text_weight=0.3):
        self.hybrid_calls.append({
            "user_id": user_id,
            "query_text": query_text,
            "match_count": match_count,
            "document_id": document_id,
            "vector_weight": vector_weight,
            "text_weight": text_weight,
        })
        if self.hybrid_delay:
            await asyncio.sleep(self.hybrid_delay)
        if self.error is not None:
            raise self.error
        if self.fail_hybrid:
            raise DatastoreError("hybrid_search_document_chunks failed: 500")
        results = self.hybrid_results.get(query_text, self.default_results)
        return list(results)[:match_count]

    async def vector_search(self, user_id, query_embedding, match_count, document_id=None,
                            project_id=None, thread_id=None, min_similarity=0.0):
        self.vector_calls.append({"user_id": user_id, "match_count": match_count})
        if self.error is not None:
            raise self.error
        if self.fail_vector:
            raise DatastoreError("match_document_chunks failed: 500")
        return list(self.default_results)[:match_count]

    async def upsert_chunks(self, user_id, document_id, chunks, embeddings, metadata=None, thread_id=None):
        self.upserts.append({
            "user_id": user_id,
            "document_id": document_id,
            "chunks": list(chunks),
            "embeddings": list(embeddings),
            "metadata": metadata,
            "thread_id": thread_id,
        })
        return len(chunks)


class FakeDistributedCache(BaseDistributedCache):
    mode = "fake"

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.store: Dict[str, Any] = {}
        self.ttls: Dict[str, int] = {}
        self.gets = 0
        self.sets = 0

    async def get_json(self, key: str) -> Optional[Any]:
        self.gets += 1
        if self.fail:
            raise CacheUnavailableError("fake redis down")
        return self.store.get(key)

    async def set_json(self, key: str, value: Any, ttl_seconds: int) -> None:
        self.sets += 1
        if self.fail:
            raise CacheUnavailableError("fake redis down")
        self.store[key] = value
        self.ttls[key] = ttl_seconds


class FakeTranslator(BaseTranslator):
    def __init__(self, translations: Optional[Dict[str, str]] = None, fail: bool = False, delay: float = 0.0,
                 error: Optional[Exception] = None):
        super().__init__(model="fake-translate", max_tokens=200)
        self.error = error
        self.translations = translations or {}
        self.fail = fail
        self.delay = delay
        self.calls: List[tuple] = []

    async def translate(self, text: str, target_language: str) -> str:
        self.calls.append((text, target_language))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        if self.fail:
            raise TranslationError("fake translator down")
        return self.translations.get(text, "")


def make_candidate(
    chunk_id: str,
    content: str,
    hybrid_score: float,
    chunk_index: int = 0,
    document_id: str = "doc-1",
    **metadata,
) -> RetrievedCandidate:
    return RetrievedCandidate(
        document_id=document_id,
        chunk_id=chunk_id,
        content=content,
        chunk_index=chunk_index,
        vector_similarity=hybrid_score,
        text_rank=hybrid_score / 2,
        hybrid_score=hybrid_score,
        metadata=metadata or None,
    )


def build_retrieval_service(
    datastore: BaseDatastore,
    embedding_client: Optional[FakeEmbeddingClient] = None,
    translator: Optional[BaseTranslator] = None,
    distributed: Optional[BaseDistributedCache] = None,
) -> RetrievalService:
    provider = EmbeddingProvider(embedding_client or FakeEmbeddingClient(), cache_size=100)
    return RetrievalService(
        result_cache=ResultCache(distributed or DisabledDistributedCache(), max_entries=50, ttl_seconds=300),
        query_expander=QueryExpander(translator, corpus_languages=["es", "en"], min_budget_ms=50, max_budget_ms=1000),
        embedding_provider=provider,
        hybrid_retriever=HybridRetriever(datastore, call_timeout_ms=1000),
        reranker=EmbeddingReranker(provider, min_budget_ms=10),
    )


class ManualClock:
    """Controllable stand-in for time.monotonic"""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def elapsed():
    """Measures wall time of a block: with elapsed() as t: ...; t.seconds"""

    class _Timer:
        def __enter__(self):
            self.started = time.monotonic()
            return self

        def __exit__(self, *exc):
            self.seconds = time.monotonic() - self.started
            return False

    return _Timer
