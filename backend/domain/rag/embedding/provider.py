"""
Embedding provider: cached, order-preserving front for an embedding client
"""

import hashlib
import logging
from typing import Any, Dict, List, Optional

from core.config import settings
from core.exceptions import EmbeddingBackendError
from utils.lru import LRUCache
from domain.rag.embedding.client import BaseEmbeddingClient

logger = logging.getLogger(__name__)


class EmbeddingProvider:
    """
    Turns texts into vectors, consulting a process-wide LRU cache first.

    Cache misses for one call are deduplicated and sent to the backend in a
    single batched request; results are written back and merged in input
    order. The cache is shared by every in-flight request.
    """

    def __init__(self, client: BaseEmbeddingClient, cache_size: Optional[int] = None):
        self.client = client
        self.cache: LRUCache[List[float]] = LRUCache(cache_size or settings.embedding_cache_size)

    @property
    def model(self) -> str:
        return self.client.model

    @property
    def available(self) -> bool:
        return self.client.is_configured

    def cache_key(self, text: str) -> str:
        return hashlib.sha256(f"{self.model}\x00{text}".encode("utf-8")).hexdigest()

    async def embed(self, texts: List[str]) -> List[List[float]]:
        """
        Embed texts, one vector per input, in input order.

        Raises:
            EmbeddingBackendError: If the backend call for the cache misses fails
        """
        if not texts:
            return []

        keys = [self.cache_key(t) for t in texts]
        vectors: Dict[str, List[float]] = {}
        missing: Dict[str, str] = {}  # key -> text, insertion ordered

        for key, text in zip(keys, texts):
            if key in vectors or key in missing:
                continue
            cached = self.cache.get(key)
            if cached is not None:
                vectors[key] = cached
            else:
                missing[key] = text

        if missing:
            miss_keys = list(missing)
            try:
                fetched = await self.client.embed([missing[k] for k in miss_keys])
            except EmbeddingBackendError:
                raise
            except Exception as e:
                logger.error(f"Embedding backend {self.model} failed: {e}", exc_info=True)
                raise EmbeddingBackendError(f"Embedding backend {self.model} failed: {e}") from e
            if len(fetched) != len(miss_keys):
                raise EmbeddingBackendError(
                    f"Embedding backend returned {len(fetched)} vectors for {len(miss_keys)} texts"
                )
            for key, vector in zip(miss_keys, fetched):
                self.cache.set(key, vector)
                vectors[key] = vector

        logger.debug(f"Embedded {len(texts)} texts ({len(missing)} fetched from {self.model})")
        return [vectors[k] for k in keys]

    async def embed_one(self, text: str) -> List[float]:
        return (await self.embed([text]))[0]

    def stats(self) -> Dict[str, Any]:
        return {"model": self.model, "available": self.available, **self.cache.stats()}

    async def close(self):
        await self.client.close()
