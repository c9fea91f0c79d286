"""
Storage layer: chunk datastores and the distributed result cache
"""

import logging
from typing import Optional

from storage.base import BaseDatastore, BaseDistributedCache
from storage.redis_cache import RedisDistributedCache, DisabledDistributedCache, create_distributed_cache
from storage.supabase_datastore import SupabaseDatastore
from core.config import settings

logger = logging.getLogger(__name__)


def create_datastore(backend_type: Optional[str] = None) -> BaseDatastore:
    """
    Create the chunk datastore for the configured backend.

    - "supabase": PostgREST RPC against the document_chunks functions (production)
    - "chromadb_embedded": local persistent ChromaDB (development)
    """
    backend_type = backend_type or settings.datastore_backend

    if backend_type == "supabase":
        return SupabaseDatastore()
    if backend_type == "chromadb_embedded":
        # chromadb is heavy to import; only load it when selected
        from storage.chroma_datastore import ChromaDatastore
        return ChromaDatastore()
    raise ValueError(
        f"Unsupported datastore backend: {backend_type}. "
        f"Supported: supabase, chromadb_embedded"
    )


__all__ = [
    "BaseDatastore",
    "BaseDistributedCache",
    "SupabaseDatastore",
    "RedisDistributedCache",
    "DisabledDistributedCache",
    "create_datastore",
    "create_distributed_cache",
]
