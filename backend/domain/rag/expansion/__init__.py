"""
Query expansion (language detection and translation)
"""

from domain.rag.expansion.language import detect_language, other_language
from domain.rag.expansion.translator import BaseTranslator, GroqTranslator, create_translator
from domain.rag.expansion.query_expander import QueryExpander

__all__ = [
    "detect_language",
    "other_language",
    "BaseTranslator",
    "GroqTranslator",
    "create_translator",
    "QueryExpander",
]
