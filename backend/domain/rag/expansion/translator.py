"""
LLM-backed query translation for cross-language expansion
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Optional

from groq import AsyncGroq

from core.config import settings
from core.exceptions import TranslationError
from domain.rag.expansion.language import LANGUAGE_NAMES

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You translate search queries. Translate the user's query into {language}. "
    "Keep names, product terms and numbers unchanged. "
    "Reply with the translated query only, without quotes or explanations."
)


class BaseTranslator(ABC):
    """Abstract base class for query translators"""

    def __init__(self, model: str, max_tokens: int):
        self.model = model
        self.max_tokens = max_tokens

    @abstractmethod
    async def translate(self, text: str, target_language: str) -> str:
        """
        Translate text into target_language ('es' or 'en').

        Raises:
            TranslationError: If the request fails
        """
        pass

    async def close(self):
        pass


class GroqTranslator(BaseTranslator):
    """Groq chat-completions translator"""

    def __init__(self, model: str, max_tokens: int, api_key: Optional[str] = None):
        super().__init__(model, max_tokens)
        try:
            self.client = AsyncGroq(api_key=api_key)
        except Exception as e:
            raise TranslationError(f"Failed to initialize Groq client: {e}")

    async def translate(self, text: str, target_language: str) -> str:
        """Ask the model for a translation of text"""
        language = LANGUAGE_NAMES.get(target_language, target_language)
        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                max_tokens=self.max_tokens,
                temperature=0,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT.format(language=language)},
                    {"role": "user", "content": text},
                ],
            )
        except Exception as e:
            logger.error(f"Error calling Groq API: {e}")
            raise TranslationError(f"Groq API call failed: {e}")
        return self.extract_text_content(response)

    def extract_text_content(self, response: Any) -> str:
        """Extract text content from Groq response"""
        if not response.choices:
            return ""
        message = response.choices[0].message
        return (message.content or "").strip().strip('"').strip()

    async def close(self):
        await self.client.close()


def create_translator(provider: Optional[str] = None, api_key: Optional[str] = None) -> Optional[BaseTranslator]:
    """
    Create a translator based on configuration.

    Returns None when expansion is disabled or no credentials are configured,
    in which case queries are searched in their original language only.

    Raises:
        TranslationError: If provider is not supported or client creation fails
    """
    if not settings.query_expansion_enabled:
        logger.info("Query expansion disabled by configuration")
        return None

    provider = (provider or settings.translation_provider).lower()

    if provider == "groq":
        api_key = api_key or settings.groq_api_key
        if not api_key:
            logger.warning("GROQ_API_KEY not set; query expansion disabled")
            return None
        return GroqTranslator(
            model=settings.translation_model,
            max_tokens=settings.translation_max_tokens,
            api_key=api_key,
        )
    raise TranslationError(f"Unknown translation provider: {provider}")
