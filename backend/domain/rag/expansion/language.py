"""
Heuristic Spanish/English language detection
"""

import re
from typing import Literal

Language = Literal["es", "en"]
SUPPORTED_LANGUAGES = ("es", "en")
LANGUAGE_NAMES = {"es": "Spanish", "en": "English"}

SPANISH_INDICATORS = [
    # common words and phrases
    "gracias", "hola", "buenos días", "buenas tardes", "buenas noches",
    "por favor", "disculpa", "perdón", "cómo", "qué", "cuál", "cuándo",
    "dónde", "por qué", "porque", "sí", "también", "muy", "más",
    "menos", "bien", "mal", "bueno", "malo", "grande", "pequeño",
    "nuevo", "viejo", "joven", "mayor", "menor", "mejor", "peor",
    "primero", "último", "cada", "todo", "todos", "nada", "algo",
    "alguien", "nadie", "siempre", "nunca", "ahora", "después",
    "antes", "aquí", "allí", "arriba", "abajo", "dentro", "fuera",
    # actions
    "necesito", "quiero", "puedes", "ayuda", "ayudar", "hacer",
    "crear", "escribir", "buscar", "encontrar", "mostrar", "ver",
    "abrir", "cerrar", "guardar", "borrar", "cambiar", "editar",
    # documents
    "archivo", "documento", "carpeta", "ensayo", "artículo",
    "historia", "cuento", "reporte", "informe", "guía", "manual",
    # calendar
    "calendario", "evento", "reunión", "cita", "horario", "fecha",
    "hora", "día", "semana", "mes", "año", "hoy", "mañana", "ayer",
    # files
    "archivos", "documentos", "fotos", "imágenes", "videos",
    "música", "descargar", "compartir", "subir",
    # connectors
    "y", "o", "pero", "sin embargo", "aunque", "si", "entonces",
    "para", "por", "con", "sin", "de", "del", "en", "sobre",
    # tech
    "correo", "email", "internet", "página", "sitio", "web",
    "aplicación", "programa", "software", "datos", "información",
]

ENGLISH_INDICATORS = [
    "thanks", "thank you", "hello", "hi", "good morning", "good afternoon",
    "good evening", "please", "sorry", "excuse me", "how", "what",
    "which", "when", "where", "why", "because", "yes", "also", "very",
    "more", "less", "well", "good", "bad", "big", "small",
    "new", "old", "young", "older", "younger", "better", "worse",
    "first", "last", "each", "all", "nothing", "something",
    "someone", "nobody", "always", "never", "now", "after",
    "before", "here", "there", "above", "below", "inside", "outside",
    "i need", "i want", "can you", "help", "do", "make",
    "create", "write", "search", "find", "show", "see",
    "open", "close", "save", "delete", "change", "edit",
    "file", "document", "folder", "essay", "article",
    "story", "report", "guide", "manual",
    "calendar", "event", "meeting", "appointment", "schedule", "date",
    "time", "day", "week", "month", "year", "today", "tomorrow", "yesterday",
    "files", "documents", "photos", "images", "videos",
    "music", "download", "share", "upload",
    "and", "or", "but", "however", "although", "if", "then",
    "for", "with", "without", "of", "in", "on", "about",
    "email", "internet", "page", "site", "website",
    "application", "app", "program", "software", "data", "information",
]


def _word_pattern(phrase: str) -> "re.Pattern[str]":
    return re.compile(rf"(?<!\w){re.escape(phrase)}(?!\w)")


_SPANISH_PATTERNS = [(len(w), _word_pattern(w)) for w in SPANISH_INDICATORS]
_ENGLISH_PATTERNS = [(len(w), _word_pattern(w)) for w in ENGLISH_INDICATORS]

_SPANISH_CHARS = re.compile(r"[ñáéíóúü]")
_SPANISH_SUFFIXES = re.compile(r"\b\w*(?:ar|er|ir|ando|iendo|ción|sión|dad|mente)\b")
_ENGLISH_SUFFIXES = re.compile(r"\b\w*(?:ing|ed|tion|sion|ly|ness)\b")
_SPANISH_ARTICLES = re.compile(r"\b(?:el|la|los|las|un|una|unos|unas)\b")
_ENGLISH_ARTICLES = re.compile(r"\b(?:the|a|an)\b")

def language_scores(text: str) -> dict:
    """Raw Spanish/English scores; exposed for diagnostics and tests."""
    normalized = (text or "").lower().strip()
    es = sum(weight for weight, pattern in _SPANISH_PATTERNS if pattern.search(normalized))
    en = sum(weight for weight, pattern in _ENGLISH_PATTERNS if pattern.search(normalized))

    es += len(_SPANISH_CHARS.findall(normalized)) * 3
    es += len(_SPANISH_SUFFIXES.findall(normalized)) * 2
    en += len(_ENGLISH_SUFFIXES.findall(normalized)) * 2

    if _SPANISH_ARTICLES.search(normalized):
        es += 5
    if _ENGLISH_ARTICLES.search(normalized):
        en += 5

    return {"es": es, "en": en}


def detect_language(text: str) -> Language:
    """Return 'es' or 'en'. Empty text and ties default to English."""
    if not text or not text.strip():
        return "en"
    scores = language_scores(text)
    return "es" if scores["es"] > scores["en"] else "en"


def other_language(language: Language) -> Language:
    return "en" if language == "es" else "es"
