"""
Request/Response schemas for ingestion
"""

from pydantic import BaseModel, Field
from typing import Optional, Dict, Any


class IngestDocumentRequest(BaseModel):
    """Request to ingest a markdown document"""
    user_id: str = Field(..., min_length=1)
    document_id: str = Field(..., min_length=1)
    content: str
    metadata: Optional[Dict[str, Any]] = None
    thread_id: Optional[str] = None


class IngestDocumentResponse(BaseModel):
    """Response after ingesting a document"""
    document_id: str
    status: str
    num_chunks: int
    num_stored: int
