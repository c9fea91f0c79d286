"""
Root and health check endpoints
"""

from fastapi import APIRouter, Request

from core.config import settings

router = APIRouter(tags=["root"])


@router.get("/")
async def root():
    """API root endpoint - returns API information"""
    return {
        "name": "Hybrid Retrieval API",
        "version": "0.1.0",
        "docs": "/docs",
        "endpoints": {
            "retrieval": "/api/v1/retrieval",
            "ingestion": "/api/v1/ingestion",
            "health": "/health",
        }
    }


@router.get("/health")
async def health(request: Request):
    """Backend modes and cache statistics"""
    state = request.app.state
    embedding_provider = state.query_embedding_provider
    return {
        "status": "ok",
        "environment": settings.environment,
        "datastore": state.datastore.backend,
        "embeddings": {
            "provider": settings.embedding_provider,
            "model": embedding_provider.model,
            "available": embedding_provider.available,
            "cache": embedding_provider.stats(),
        },
        "query_expansion": state.query_expander.enabled,
        "result_cache": state.result_cache.stats(),
    }
