"""
Unified configuration and settings
Retrieval core, collaborators and HTTP surface
"""

from pathlib import Path
from typing import List
from dotenv import load_dotenv
from pydantic_settings import BaseSettings

# Load environment variables
load_dotenv()


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Values can be set via:
    1. Environment variables (highest priority)
    2. .env file (loaded by load_dotenv())
    3. Default values below (lowest priority)
    """

    # API Configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    environment: str = "development"  # development, staging, production
    log_level: str = "INFO"

    # ------------------------
    # Embedding API
    # ------------------------

    embedding_provider: str = "openai"  # Options: "openai", "jina"
    embedding_dimensions: int = 1536
    embedding_timeout: int = 30
    embedding_max_retries: int = 3
    embedding_rate_limit: int = 10  # requests per second
    embedding_cache_size: int = 5000
    embedding_batch_size: int = 64  # chunks per call during ingestion

    # OpenAI
    openai_api_key: str = ""
    openai_api_url: str = "https://api.openai.com/v1/embeddings"
    openai_embedding_model: str = "text-embedding-3-small"

    # Jina
    jina_api_key: str = ""
    jina_api_url: str = "https://api.jina.ai/v1/embeddings"
    jina_model: str = "jina-embeddings-v3"

    # ------------------------
    # Datastore
    # ------------------------

    datastore_backend: str = "supabase"  # Options: "supabase", "chromadb_embedded"
    datastore_timeout: int = 10

    # Prod: Supabase (PostgREST RPC)
    supabase_url: str = ""
    supabase_service_key: str = ""

    # Dev: Embedded ChromaDB
    chroma_store_path: Path = Path("./data/chroma")
    chroma_collection_name: str = "document_chunks"

    # ------------------------
    # Result cache
    # ------------------------

    enable_redis_cache: bool = False
    redis_url: str = ""
    result_cache_size: int = 1000
    result_cache_ttl_seconds: int = 300
    cache_namespace: str = "rag:v1"

    # ------------------------
    # Query expansion
    # ------------------------

    query_expansion_enabled: bool = True
    translation_provider: str = "groq"
    groq_api_key: str = ""
    translation_model: str = "llama-3.1-8b-instant"
    translation_max_tokens: int = 200
    translation_timeout_ms: int = 1500
    translation_min_budget_ms: int = 300
    translation_cache_size: int = 512
    corpus_languages: List[str] = ["es", "en"]

    # ------------------------
    # Retrieval
    # ------------------------

    default_timeout_ms: int = 5000
    default_max_context_chars: int = 6000
    default_vector_weight: float = 0.7
    default_text_weight: float = 0.3
    avg_chunk_chars: int = 450
    rerank_min_score: float = 0.1
    rerank_batch_size: int = 20
    rerank_max_concurrent: int = 4
    rerank_min_budget_ms: int = 150
    search_call_timeout_ms: int = 3000

    # ------------------------
    # Chunking
    # ------------------------

    chunk_max_tokens: int = 600
    chunk_overlap_tokens: int = 60
    chunk_min_chars: int = 200

    class Config:
        """
        Pydantic configuration for settings loading.

        - env_file: Which .env file to read
        - env_file_encoding: File encoding
        - extra: What to do with extra fields in .env that aren't in this class
        """
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"  # Ignore extra .env vars (like API keys used by libraries)


# Singleton settings instance
settings = Settings()
