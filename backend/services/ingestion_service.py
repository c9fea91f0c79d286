"""
Ingestion service - orchestrates chunking + embedding + datastore upsert
INTERNAL SERVICE: Called by API endpoints
"""

import logging
from typing import Any, Dict, List, Optional

from domain.rag.embedding.batch_processor import BatchProcessor
from domain.rag.embedding.provider import EmbeddingProvider
from domain.rag.ingestion.chunker import chunk_markdown
from domain.rag.ingestion.types import Chunk, ChunkingOptions
from storage.base import BaseDatastore
from services.base import BaseService
from core.config import settings
from core.exceptions import ChunkingError, EmbeddingBackendError, IngestionError, StorageError

logger = logging.getLogger(__name__)


class IngestionService(BaseService):
    """Orchestrates document ingestion pipeline: chunk → embed → store."""

    def __init__(
        self,
        datastore: BaseDatastore,
        embedding_provider: EmbeddingProvider,
        chunking_options: Optional[ChunkingOptions] = None,
        batch_processor: Optional[BatchProcessor] = None,
    ):
        self.datastore = datastore
        self.embedding_provider = embedding_provider
        self.chunking_options = chunking_options or ChunkingOptions()
        self.batch_processor = batch_processor or BatchProcessor(batch_size=settings.embedding_batch_size)

    async def ingest_document(
        self,
        user_id: str,
        document_id: str,
        content: str,
        metadata: Optional[Dict[str, Any]] = None,
        thread_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Process a single markdown document: chunk → embed → replace stored chunks.

        Returns:
            Summary dict with document_id, num_chunks and num_stored

        Raises:
            IngestionError: If any step fails
        """
        if not user_id or not document_id:
            raise IngestionError("user_id and document_id are required")

        try:
            chunks = chunk_markdown(content, self.chunking_options)
        except ChunkingError as e:
            raise IngestionError(f"Chunking failed for document {document_id}: {e}")

        if not chunks:
            logger.info(f"Document {document_id} has no content, nothing to ingest")
            return {"document_id": document_id, "num_chunks": 0, "num_stored": 0}

        embeddings = await self._embed_chunks(document_id, chunks)

        try:
            num_stored = await self.datastore.upsert_chunks(
                user_id=user_id,
                document_id=document_id,
                chunks=chunks,
                embeddings=embeddings,
                metadata=metadata,
                thread_id=thread_id,
            )
        except StorageError as e:
            logger.error(f"Failed to store chunks for document {document_id}: {e}", exc_info=True)
            raise IngestionError(f"Storing chunks failed for document {document_id}: {e}")

        logger.info(f"Ingested document {document_id}: {len(chunks)} chunks, {num_stored} stored")
        return {"document_id": document_id, "num_chunks": len(chunks), "num_stored": num_stored}

    async def _embed_chunks(self, document_id: str, chunks: List[Chunk]) -> List[List[float]]:
        """Generate embeddings for the chunks, in batches."""
        try:
            embeddings = await self.batch_processor.process_in_batches(
                [chunk.text for chunk in chunks],
                self.embedding_provider.embed,
                show_progress=len(chunks) > self.batch_processor.batch_size,
            )
        except EmbeddingBackendError as e:
            logger.error(f"Failed to generate embeddings for document {document_id}: {e}", exc_info=True)
            raise IngestionError(f"Embedding generation failed for document {document_id}: {e}")

        if len(embeddings) != len(chunks):
            raise IngestionError(
                f"Embedding count mismatch for document {document_id}: {len(embeddings)} != {len(chunks)}"
            )
        logger.info(f"Generated embeddings for {len(chunks)} chunks of document {document_id}")
        return embeddings
