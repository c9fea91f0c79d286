"""
Custom exception hierarchy for the application
"""


class RAGException(Exception):
    """Base exception for RAG-related errors"""
    pass


class InvalidInputError(RAGException):
    """Request is missing required fields or carries invalid values"""
    pass


class IngestionError(RAGException):
    """Error during document ingestion"""
    pass


class ChunkingError(IngestionError):
    """Invalid chunking options or unchunkable input"""
    pass


class EmbeddingBackendError(RAGException):
    """Error during embedding generation"""
    pass


class StorageError(RAGException):
    """Error during storage operations"""
    pass


class DatastoreError(StorageError):
    """Datastore RPC or query failed"""
    pass


class CacheUnavailableError(StorageError):
    """Distributed cache unreachable or returned garbage"""
    pass


class TranslationError(RAGException):
    """Error while translating a query variant"""
    pass
