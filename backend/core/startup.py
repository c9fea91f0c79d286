"""
Application startup and initialization logic
"""

import logging
from fastapi import FastAPI, HTTPException

from core.config import settings
from core.exceptions import TranslationError

# RAG components
from storage import create_datastore, create_distributed_cache
from domain.rag.cache.result_cache import ResultCache
from domain.rag.embedding.client import create_embedding_client
from domain.rag.embedding.provider import EmbeddingProvider
from domain.rag.expansion.query_expander import QueryExpander
from domain.rag.expansion.translator import create_translator
from domain.rag.retrieval.hybrid_retriever import HybridRetriever
from domain.rag.retrieval.reranker import EmbeddingReranker
from services.ingestion_service import IngestionService
from services.retrieval_service import RetrievalService

logger = logging.getLogger(__name__)


def raise_startup_error(message: str, error: Exception = None) -> None:
    """Helper to raise HTTPException for startup errors."""
    detail = f"{message}: {error}" if error else message
    raise HTTPException(status_code=500, detail=detail)


async def initialize_rag_system(app: FastAPI):
    """
    Initialize RAG components (datastore, caches, providers, services).
    Everything is built once here and shared through app.state.
    """
    # Initialize stores
    try:
        datastore = create_datastore()
    except ValueError as e:
        raise_startup_error("Failed to initialize datastore", e)
    distributed_cache = create_distributed_cache()

    # Embeddings: queries and passages may use different task types (Jina)
    query_embedding_provider = EmbeddingProvider(create_embedding_client(task="retrieval.query"))
    passage_embedding_provider = EmbeddingProvider(create_embedding_client(task="retrieval.passage"))

    try:
        translator = create_translator()
    except TranslationError as e:
        raise_startup_error("Failed to initialize translator", e)

    # Initialize RAG components and services
    result_cache = ResultCache(distributed_cache)
    query_expander = QueryExpander(translator)
    retrieval_service = RetrievalService(
        result_cache=result_cache,
        query_expander=query_expander,
        embedding_provider=query_embedding_provider,
        hybrid_retriever=HybridRetriever(datastore),
        reranker=EmbeddingReranker(query_embedding_provider, passage_provider=passage_embedding_provider),
    )
    ingestion_service = IngestionService(
        datastore=datastore,
        embedding_provider=passage_embedding_provider,
    )

    logger.info(
        f"RAG system initialized: datastore={datastore.backend}, l2_cache={distributed_cache.mode}, "
        f"embeddings={settings.embedding_provider} ({query_embedding_provider.model}), "
        f"expansion={'on' if query_expander.enabled else 'off'}"
    )

    app.state.datastore = datastore
    app.state.result_cache = result_cache
    app.state.query_expander = query_expander
    app.state.query_embedding_provider = query_embedding_provider
    app.state.passage_embedding_provider = passage_embedding_provider

    app.state.retrieval_service = retrieval_service
    app.state.ingestion_service = ingestion_service


async def cleanup_rag_system(app: FastAPI):
    """Cleanup RAG system resources (pending cache writes, HTTP connections)."""
    for name in (
        "result_cache",
        "query_expander",
        "query_embedding_provider",
        "passage_embedding_provider",
        "datastore",
    ):
        component = getattr(app.state, name, None)
        if component is None:
            continue
        try:
            await component.close()
            logger.info(f"{name} cleaned up")
        except Exception as e:
            logger.error(f"Error during {name} cleanup: {e}", exc_info=True)
