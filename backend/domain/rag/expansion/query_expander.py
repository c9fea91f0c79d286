"""
Cross-language query expansion
"""

import asyncio
import logging
from typing import List, Optional, Sequence

from core.config import settings
from core.exceptions import TranslationError
from utils.lru import LRUCache
from domain.rag.expansion.language import detect_language, other_language
from domain.rag.expansion.translator import BaseTranslator
from domain.rag.outcome import StageOutcome

logger = logging.getLogger(__name__)


class QueryExpander:
    """
    Produces the query variants to search with: the original query and, when
    there is budget for it, its translation into the other corpus language.
    """

    def __init__(
        self,
        translator: Optional[BaseTranslator],
        corpus_languages: Optional[Sequence[str]] = None,
        min_budget_ms: Optional[int] = None,
        max_budget_ms: Optional[int] = None,
        cache_size: Optional[int] = None,
    ):
        self.translator = translator
        self.corpus_languages = set(corpus_languages or settings.corpus_languages)
        self.min_budget_ms = min_budget_ms if min_budget_ms is not None else settings.translation_min_budget_ms
        self.max_budget_ms = max_budget_ms if max_budget_ms is not None else settings.translation_timeout_ms
        self._translations: LRUCache[str] = LRUCache(cache_size or settings.translation_cache_size)

    @property
    def enabled(self) -> bool:
        return self.translator is not None

    async def expand(self, query: str, budget_seconds: float) -> List[str]:
        """Return [query] or [query, translation]. Never raises."""
        return (await self.expand_outcome(query, budget_seconds)).value

    async def expand_outcome(self, query: str, budget_seconds: float) -> StageOutcome[List[str]]:
        if not query.strip() or self.translator is None:
            return StageOutcome.ok([query])

        target = other_language(detect_language(query))
        if target not in self.corpus_languages:
            return StageOutcome.ok([query])

        cache_key = (target, " ".join(query.split()).lower())
        cached = self._translations.get(cache_key)
        if cached is not None:
            return StageOutcome.ok([query, cached])

        budget = min(budget_seconds, self.max_budget_ms / 1000.0)
        if budget * 1000.0 < self.min_budget_ms:
            logger.debug(f"[EXPAND] skipping translation, only {budget * 1000:.0f}ms left")
            return StageOutcome.degraded([query], "insufficient budget for translation")

        try:
            translated = await asyncio.wait_for(self.translator.translate(query, target), timeout=budget)
        except asyncio.TimeoutError:
            logger.warning(f"[EXPAND] translation to '{target}' timed out after {budget * 1000:.0f}ms")
            return StageOutcome.degraded([query], "translation timed out")
        except TranslationError as e:
            logger.warning(f"[EXPAND] translation to '{target}' failed: {e}")
            return StageOutcome.degraded([query], f"translation failed: {e}")
        except Exception as e:
            logger.error(f"[EXPAND] translator error for '{target}': {e}", exc_info=True)
            return StageOutcome.degraded([query], f"translation failed: {e}")

        translated = (translated or "").strip()
        if not translated:
            return StageOutcome.degraded([query], "empty translation")
        if translated.casefold() == query.strip().casefold():
            return StageOutcome.ok([query])

        self._translations.set(cache_key, translated)
        logger.info(f"[EXPAND] added '{target}' variant: {translated[:80]!r}")
        return StageOutcome.ok([query, translated])

    async def close(self):
        if self.translator is not None:
            await self.translator.close()
