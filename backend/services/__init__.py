"""
Service layer (business logic orchestration)
"""

from services.base import BaseService
from services.ingestion_service import IngestionService
from services.retrieval_service import RetrievalService, plan_sizing

__all__ = [
    "BaseService",
    "IngestionService",
    "RetrievalService",
    "plan_sizing",
]
