"""
Embedding generation pipeline
"""

from domain.rag.embedding.client import (
    BaseEmbeddingClient,
    OpenAIEmbeddingClient,
    JinaEmbeddingClient,
    create_embedding_client,
)
from domain.rag.embedding.provider import EmbeddingProvider
from domain.rag.embedding.batch_processor import BatchProcessor

__all__ = [
    "BaseEmbeddingClient",
    "OpenAIEmbeddingClient",
    "JinaEmbeddingClient",
    "create_embedding_client",
    "EmbeddingProvider",
    "BatchProcessor",
]
