"""
Two-tier retrieval result cache: in-process L1, shared L2
"""

import asyncio
import hashlib
import json
import logging
import time
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Set, Tuple

from core.config import settings
from core.exceptions import CacheUnavailableError
from utils.lru import LRUCache
from domain.rag.retrieval.types import RankedResult, RetrievalRequest

if TYPE_CHECKING:
    from storage.base import BaseDistributedCache

logger = logging.getLogger(__name__)


def _normalize(value: Any) -> Any:
    if isinstance(value, float):
        return round(value, 6)
    if isinstance(value, str):
        return " ".join(value.split())
    return value


def build_cache_key(request: RetrievalRequest) -> str:
    """
    sha256 over every request field after normalization: whitespace collapsed
    in strings, floats rounded to 6 places, None kept distinct from "".
    """
    payload = {name: _normalize(value) for name, value in request.model_dump().items()}
    canonical = json.dumps(payload, sort_keys=True, ensure_ascii=False)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


class ResultCache:
    """
    L1 is checked first, then L2; an L2 hit is copied into L1 for whatever
    TTL the L2 entry has left, so no L1 entry outlives its L2 counterpart.
    L2 failures are logged and treated as misses or dropped writes.
    """

    def __init__(
        self,
        distributed: "BaseDistributedCache",
        max_entries: Optional[int] = None,
        ttl_seconds: Optional[int] = None,
        namespace: Optional[str] = None,
    ):
        self.distributed = distributed
        self.ttl_seconds = ttl_seconds or settings.result_cache_ttl_seconds
        self.namespace = namespace or settings.cache_namespace
        self.local: LRUCache[List[RankedResult]] = LRUCache(
            max_entries or settings.result_cache_size, default_ttl_seconds=self.ttl_seconds
        )
        self.l2_hits = 0
        self.l2_errors = 0
        self._pending: Set[asyncio.Task] = set()

    def _l2_key(self, key: str) -> str:
        return f"{self.namespace}:{key}"

    async def lookup(self, key: str) -> Tuple[Optional[List[RankedResult]], Optional[str]]:
        """Returns (results, tier) where tier is "l1", "l2" or None on a miss."""
        cached = self.local.get(key)
        if cached is not None:
            logger.debug(f"[CACHE] L1 hit {key[:12]}")
            return [r.model_copy(deep=True) for r in cached], "l1"

        if not self.distributed.enabled:
            return None, None

        try:
            payload = await self.distributed.get_json(self._l2_key(key))
        except CacheUnavailableError as e:
            self.l2_errors += 1
            logger.warning(f"[CACHE] L2 read failed, treating as miss: {e}")
            return None, None
        if not payload:
            return None, None

        try:
            results = [RankedResult.model_validate(item) for item in payload["results"]]
            remaining = float(payload["expires_at"]) - time.time()
        except (KeyError, TypeError, ValueError) as e:
            self.l2_errors += 1
            logger.warning(f"[CACHE] ignoring malformed L2 entry {key[:12]}: {e}")
            return None, None
        if remaining <= 0:
            return None, None

        self.local.set(key, results, ttl_seconds=min(remaining, self.ttl_seconds))
        self.l2_hits += 1
        logger.debug(f"[CACHE] L2 hit {key[:12]}, {remaining:.0f}s left")
        return [r.model_copy(deep=True) for r in results], "l2"

    async def get(self, key: str) -> Optional[List[RankedResult]]:
        results, _ = await self.lookup(key)
        return results

    def set_local(self, key: str, value: List[RankedResult], ttl_seconds: Optional[int] = None) -> None:
        self.local.set(key, [r.model_copy(deep=True) for r in value], ttl_seconds=ttl_seconds or self.ttl_seconds)

    async def set_distributed(self, key: str, value: List[RankedResult], ttl_seconds: Optional[int] = None) -> None:
        if not self.distributed.enabled:
            return
        ttl = ttl_seconds or self.ttl_seconds
        payload = {
            "expires_at": time.time() + ttl,
            "results": [r.model_dump(mode="json") for r in value],
        }
        try:
            await self.distributed.set_json(self._l2_key(key), payload, ttl)
        except CacheUnavailableError as e:
            self.l2_errors += 1
            logger.warning(f"[CACHE] L2 write failed, dropped: {e}")

    async def set(self, key: str, value: List[RankedResult], ttl_seconds: Optional[int] = None) -> None:
        """Write L1 then L2 with the same TTL"""
        self.set_local(key, value, ttl_seconds)
        await self.set_distributed(key, value, ttl_seconds)

    def schedule_set(self, key: str, value: List[RankedResult], ttl_seconds: Optional[int] = None) -> None:
        """Write L1 now and L2 in the background, so the caller is not held up by the shared store."""
        self.set_local(key, value, ttl_seconds)
        if not self.distributed.enabled:
            return
        task = asyncio.create_task(self.set_distributed(key, value, ttl_seconds))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def drain(self) -> None:
        """Wait for background L2 writes (used on shutdown and in tests)"""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    def invalidate(self, key: str) -> None:
        self.local.pop(key)

    def stats(self) -> Dict[str, Any]:
        return {
            "l1": self.local.stats(),
            "l2": {
                "mode": self.distributed.mode,
                "hits": self.l2_hits,
                "errors": self.l2_errors,
                "pending_writes": len(self._pending),
            },
            "ttl_seconds": self.ttl_seconds,
        }

    async def close(self) -> None:
        await self.drain()
        await self.distributed.close()
