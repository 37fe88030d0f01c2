"""Normalization primitives shared by the order parser, matcher and learned-match store."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
import re
from typing import Dict, List, Optional

import yaml

_RE_WHITESPACE = re.compile(r"\s+")
_RE_DECIMAL_COMMA = re.compile(r"(?<=\d),(?=\d)")
_RE_NON_ALNUM = re.compile(r"[^a-z0-9./]+")
_ACCENTS = {
    "á": "a",
    "à": "a",
    "â": "a",
    "ã": "a",
    "ä": "a",
    "é": "e",
    "è": "e",
    "ê": "e",
    "í": "i",
    "ì": "i",
    "î": "i",
    "ó": "o",
    "ò": "o",
    "ô": "o",
    "õ": "o",
    "ö": "o",
    "ú": "u",
    "ù": "u",
    "û": "u",
    "ü": "u",
    "ç": "c",
    "ñ": "n",
}

DEFAULT_SYNONYMS_PATH = Path(__file__).with_name("synonyms.yaml")


def normalize_query(text: str) -> str:
    """Return a deterministic, ASCII-friendly representation of *text* for matching.

    The procedure lowercases, folds Portuguese accents (``ç`` -> ``c``,
    ``ã`` -> ``a`` ...), rewrites decimal commas between digits to dots so that
    ``2,5mm`` and ``2.5mm`` compare equal, replaces every other character that is
    not alpha-numeric, ``.`` or ``/`` with a space and collapses whitespace.
    Dots and slashes hanging at the edge of a token are dropped, bitolas like
    ``3/4`` and ``2.5`` survive. Empty or whitespace-only inputs yield ``""``.
    """

    if not text:
        return ""

    normalized = text.strip().lower()
    for char, repl in _ACCENTS.items():
        normalized = normalized.replace(char, repl)

    normalized = _RE_DECIMAL_COMMA.sub(".", normalized)
    normalized = _RE_NON_ALNUM.sub(" ", normalized)
    tokens = [tok.strip("./") for tok in _RE_WHITESPACE.split(normalized)]
    return " ".join(tok for tok in tokens if tok)


def tokenize(text: str) -> List[str]:
    """Split *text* into normalized whitespace tokens, keeping order and repeats."""

    normalized = normalize_query(text)
    if not normalized:
        return []
    return normalized.split(" ")


def normalize_learned_key(text: Optional[str]) -> str:
    """Key used for learned matches: whitespace collapsed, case folded, nothing else.

    Punctuation and accents are kept on purpose, the key must round-trip the
    request the user confirmed and must not merge distinct requests.
    """

    if not text:
        return ""
    return " ".join(text.split()).casefold()


def load_synonyms(path: str | Path) -> Dict[str, List[str]]:
    """Load and normalize a synonym mapping from *path*.

    The YAML schema is ``{canon: [syn1, syn2, ...]}``. All canonical keys and
    synonym entries are normalized via :func:`normalize_query`. Empty entries are
    ignored.
    """

    content = Path(path).read_text(encoding="utf-8")
    loaded = yaml.safe_load(content) or {}
    if not isinstance(loaded, dict):
        raise ValueError("synonyms YAML must define a mapping")

    normalized_map: Dict[str, List[str]] = {}
    for canon_raw, value in loaded.items():
        canon = normalize_query(str(canon_raw))
        if not canon:
            continue
        if value is None:
            variants: List[str] = []
        elif isinstance(value, list):
            variants = [str(item) for item in value]
        else:
            variants = [str(value)]
        collected: List[str] = []
        for variant in variants:
            normalized_variant = normalize_query(variant)
            if normalized_variant and normalized_variant != canon and normalized_variant not in collected:
                collected.append(normalized_variant)
        if collected:
            normalized_map[canon] = collected
    return normalized_map


@lru_cache(maxsize=1)
def default_synonyms() -> Dict[str, List[str]]:
    return load_synonyms(DEFAULT_SYNONYMS_PATH)


def expand_synonyms(text: str, synonyms: Dict[str, List[str]]) -> List[str]:
    """Return alternative phrasings of *text* obtained by swapping one synonym.

    A canonical term found in *text* is replaced by each of its variants, and a
    variant found in *text* is replaced by its canonical term. Replacements work
    on whole words of the normalized text. The original phrasing is not part of
    the result and duplicates are dropped while keeping first occurrence.
    """

    normalized = normalize_query(text)
    if not normalized or not synonyms:
        return []

    alternatives: List[str] = []
    for canon, variants in synonyms.items():
        if _contains_word(normalized, canon):
            for variant in variants:
                alternatives.append(_replace_word(normalized, canon, variant))
        for variant in variants:
            if _contains_word(normalized, variant):
                alternatives.append(_replace_word(normalized, variant, canon))

    ordered: List[str] = []
    for alternative in alternatives:
        if alternative != normalized and alternative not in ordered:
            ordered.append(alternative)
    return ordered


def _word_pattern(term: str) -> re.Pattern[str]:
    return re.compile(rf"(?<![a-z0-9./]){re.escape(term)}(?![a-z0-9./])")


def _contains_word(text: str, term: str) -> bool:
    return bool(_word_pattern(term).search(text))


def _replace_word(text: str, term: str, replacement: str) -> str:
    return _word_pattern(term).sub(replacement, text)
