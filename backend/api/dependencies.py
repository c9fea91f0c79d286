"""
FastAPI dependencies
"""

from fastapi import Request
from services.ingestion_service import IngestionService
from services.retrieval_service import RetrievalService


def get_retrieval_service(request: Request) -> RetrievalService:
    return request.app.state.retrieval_service


def get_ingestion_service(request: Request) -> IngestionService:
    return request.app.state.ingestion_service
