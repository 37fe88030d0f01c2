"""Utility helpers for lightweight text normalization and synonym handling."""

from .text import (
    default_synonyms,
    expand_synonyms,
    load_synonyms,
    normalize_learned_key,
    normalize_query,
    tokenize,
)

__all__ = [
    "default_synonyms",
    "expand_synonyms",
    "load_synonyms",
    "normalize_learned_key",
    "normalize_query",
    "tokenize",
]
