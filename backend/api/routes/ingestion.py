"""
Ingestion endpoints - handles document chunking and embedding
"""

import logging
from fastapi import APIRouter, HTTPException, Depends, status

from api.dependencies import get_ingestion_service
from api.schemas.ingestion import IngestDocumentRequest, IngestDocumentResponse
from services.ingestion_service import IngestionService
from core.exceptions import IngestionError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/ingestion", tags=["ingestion"])


@router.post("/documents", response_model=IngestDocumentResponse, status_code=status.HTTP_200_OK)
async def ingest_document(
    body: IngestDocumentRequest,
    ingestion_service: IngestionService = Depends(get_ingestion_service)
):
    """
    Ingest one markdown document.

    - Splits the document into overlapping chunks
    - Generates embeddings for every chunk
    - Replaces the document's chunks in the datastore
    """
    try:
        logger.info(f"Starting ingestion of document {body.document_id}")
        result = await ingestion_service.ingest_document(
            user_id=body.user_id,
            document_id=body.document_id,
            content=body.content,
            metadata=body.metadata,
            thread_id=body.thread_id,
        )
        return IngestDocumentResponse(status="processed", **result)
    except IngestionError as e:
        logger.error(f"Ingestion failed: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Ingestion failed: {str(e)}"
        )
    except Exception as e:
        logger.error(f"Unexpected error during ingestion: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to ingest document: {str(e)}"
        )
