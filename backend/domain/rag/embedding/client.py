"""
Async embedding API clients with connection pooling, retry logic, and rate limiting
"""

import logging
import asyncio
from abc import ABC, abstractmethod
from typing import List, Dict, Any, Optional, Literal
import httpx
from core.config import settings
from core.exceptions import EmbeddingBackendError
from utils.retry import retry_with_backoff

logger = logging.getLogger(__name__)

# Allowed task types for Jina Embedding API
TaskType = Literal["retrieval.query", "retrieval.passage"]

RETRYABLE_STATUS_CODES = {408, 409, 429, 500, 502, 503, 504}


def _is_transient(error: BaseException) -> bool:
    """Network hiccups, throttling and 5xx are worth another attempt; 4xx are not."""
    if isinstance(error, httpx.HTTPStatusError):
        return error.response.status_code in RETRYABLE_STATUS_CODES
    return isinstance(error, httpx.TransportError)


class BaseEmbeddingClient(ABC):
    """Abstract base class for embedding backends"""

    model: str

    @property
    def is_configured(self) -> bool:
        """False when the backend has no credentials and every call would fail"""
        return True

    @abstractmethod
    async def embed(self, texts: List[str]) -> List[List[float]]:
        """
        Embed texts in one backend call.

        Returns:
            One vector per input text, in input order

        Raises:
            EmbeddingBackendError: If the call fails
        """
        pass

    async def close(self):
        """Release pooled connections"""
        pass


class HTTPEmbeddingClient(BaseEmbeddingClient):
    """Shared plumbing for JSON-over-HTTP embedding APIs"""

    provider = "http"

    def __init__(
        self,
        api_key: str,
        api_url: str,
        model: str,
        timeout: Optional[int] = None,
        rate_limit: Optional[int] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.api_url = api_url
        self.model = model
        self.timeout = timeout or settings.embedding_timeout
        self.rate_limit = rate_limit or settings.embedding_rate_limit
        self._transport = transport

        # Connection pool
        self._client: Optional[httpx.AsyncClient] = None
        self._rate_limiter = asyncio.Semaphore(self.rate_limit)
        self._last_request_time = 0.0
        self._min_request_interval = 1.0 / self.rate_limit

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client"""
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                transport=self._transport,
                headers={
                    "Authorization": f"Bearer {self.api_key}",
                    "Content-Type": "application/json",
                }
            )
        return self._client

    async def _rate_limit(self):
        """Rate limiting"""
        async with self._rate_limiter:
            loop = asyncio.get_running_loop()
            time_since_last = loop.time() - self._last_request_time
            if time_since_last < self._min_request_interval:
                await asyncio.sleep(self._min_request_interval - time_since_last)
            self._last_request_time = loop.time()

    @abstractmethod
    def _build_payload(self, texts: List[str]) -> Dict[str, Any]:
        pass

    def _parse_vectors(self, body: Dict[str, Any]) -> List[List[float]]:
        """OpenAI-style response: {"data": [{"index": i, "embedding": [...]}, ...]}"""
        data = body.get("data") or []
        ordered = sorted(data, key=lambda item: item.get("index", 0))
        return [item["embedding"] for item in ordered]

    @retry_with_backoff(
        max_retries=settings.embedding_max_retries,
        base_delay=0.5,
        retry_on=(httpx.HTTPError,),
        should_retry=_is_transient,
    )
    async def _make_api_call(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Make a single API call with rate limiting."""
        await self._rate_limit()  # Rate limit before each API call
        client = await self._get_client()
        response = await client.post(self.api_url, json=payload)
        response.raise_for_status()
        return response.json()

    async def embed(self, texts: List[str]) -> List[List[float]]:
        """Generate embeddings for a list of texts in one request."""

        if not self.api_key:
            raise EmbeddingBackendError(f"{self.provider} API key not configured")

        if not texts:
            return []

        try:
            body = await self._make_api_call(self._build_payload(texts))
            vectors = self._parse_vectors(body)
        except httpx.HTTPStatusError as e:
            logger.error(f"{self.provider} API error: {e.response.status_code} - {e.response.text}")
            raise EmbeddingBackendError(f"{self.provider} API error: {e.response.status_code}")
        except (httpx.HTTPError, ValueError, KeyError, TypeError) as e:
            logger.error(f"Error generating embeddings: {e}")
            raise EmbeddingBackendError(f"Failed to generate embeddings: {e}")

        if len(vectors) != len(texts):
            raise EmbeddingBackendError(
                f"{self.provider} returned {len(vectors)} embeddings for {len(texts)} inputs"
            )
        return vectors

    async def close(self):
        """Close HTTP client"""
        if self._client:
            await self._client.aclose()
            self._client = None


class OpenAIEmbeddingClient(HTTPEmbeddingClient):
    """Async client for the OpenAI embeddings endpoint"""

    provider = "openai"

    def __init__(
        self,
        api_key: str = None,
        api_url: str = None,
        model: str = None,
        dimensions: Optional[int] = None,
        timeout: int = None,
        rate_limit: int = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(
            api_key=api_key if api_key is not None else settings.openai_api_key,
            api_url=api_url or settings.openai_api_url,
            model=model or settings.openai_embedding_model,
            timeout=timeout,
            rate_limit=rate_limit,
            transport=transport,
        )
        self.dimensions = dimensions or settings.embedding_dimensions

    def _build_payload(self, texts: List[str]) -> Dict[str, Any]:
        payload = {"model": self.model, "input": texts}
        # Only the text-embedding-3 family accepts a dimensions override
        if self.model.startswith("text-embedding-3"):
            payload["dimensions"] = self.dimensions
        return payload


class JinaEmbeddingClient(HTTPEmbeddingClient):
    """Async client for Jina Embedding API"""

    provider = "jina"

    def __init__(
        self,
        task: TaskType = "retrieval.query",
        api_key: str = None,
        api_url: str = None,
        model: str = None,
        dimensions: Optional[int] = None,
        timeout: int = None,
        rate_limit: int = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        if task not in ("retrieval.query", "retrieval.passage"):
            raise ValueError(
                f"Invalid task: {task}. Must be one of: 'retrieval.query', 'retrieval.passage'"
            )
        super().__init__(
            api_key=api_key if api_key is not None else settings.jina_api_key,
            api_url=api_url or settings.jina_api_url,
            model=model or settings.jina_model,
            timeout=timeout,
            rate_limit=rate_limit,
            transport=transport,
        )
        self.task = task
        self.dimensions = dimensions or settings.embedding_dimensions

    def _build_payload(self, texts: List[str]) -> Dict[str, Any]:
        return {
            "model": self.model,
            "task": self.task,
            "dimensions": self.dimensions,
            "late_chunking": False,
            "truncate": True,
            "input": texts,
        }


def create_embedding_client(
    provider: Optional[str] = None,
    task: TaskType = "retrieval.query",
) -> BaseEmbeddingClient:
    """
    Create an embedding client based on configuration.

    Args:
        provider: "openai" or "jina" (overrides settings)
        task: Jina task type; queries and passages are embedded differently

    Raises:
        ValueError: If provider is not supported
    """
    provider = (provider or settings.embedding_provider).lower()

    if provider == "openai":
        client = OpenAIEmbeddingClient()
    elif provider == "jina":
        client = JinaEmbeddingClient(task=task)
    else:
        raise ValueError(f"Unknown embedding provider: {provider}. Supported: openai, jina")

    if not client.is_configured:
        logger.warning(f"No API key for embedding provider '{provider}'; embeddings are unavailable")
    return client
