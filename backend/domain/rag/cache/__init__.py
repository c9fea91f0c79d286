"""
Two-tier retrieval result cache
"""

from domain.rag.cache.result_cache import ResultCache, build_cache_key

__all__ = [
    "ResultCache",
    "build_cache_key",
]
