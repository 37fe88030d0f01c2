# LOCAL KEYWORD MATCHING AGAINST THE PRODUCT CATALOG

from functools import lru_cache
from typing import Dict, List, Optional, Sequence, Tuple

from orcafacil.shared.models import CatalogItem
from orcafacil.shared.normalize import expand_synonyms, normalize_query, tokenize

SUBSTRING_SCORE = 100
TOKEN_SCORE = 10
# Strictly greater than: a lone shared token pair (20) is not a match.
MATCH_THRESHOLD = 20


@lru_cache(maxsize=8192)
def _normalized_entry(description: str) -> str:
    return normalize_query(description)


@lru_cache(maxsize=1024)
def _query_tokens(query: str) -> Tuple[str, ...]:
    return tuple(tokenize(query))


def score_entry(query: str, entry: str) -> int:
    """Score one catalog description against a request.

    Both sides are normalized first. The whole request contained in the
    description is worth 100 points, each request token contained in the
    description adds 10. Tokens are matched as substrings, not whole words.
    """
    tokens = _query_tokens(query)
    if not tokens:
        return 0
    normalized_entry = _normalized_entry(entry)
    score = 0
    if " ".join(tokens) in normalized_entry:
        score += SUBSTRING_SCORE
    for token in tokens:
        if token in normalized_entry:
            score += TOKEN_SCORE
    return score


def rank_catalog(
    query: str,
    catalog: Sequence[CatalogItem],
    top_k: int = 5,
    min_score: int = 1,
) -> List[Tuple[CatalogItem, int]]:
    """
    Rank catalog entries for a request

    Args:
        query: free-text product description from the order
        catalog: catalog entries in their stored order
        top_k: number of entries to return
        min_score: lowest score kept

    Returns:
        List of (catalog item, score) tuples sorted by score desc; ties keep catalog order
    """
    if not _query_tokens(query):
        return []

    matches = []
    for item in catalog:
        score = score_entry(query, item.description)
        if score >= min_score:
            matches.append((item, score))

    # list.sort is stable
    matches.sort(key=lambda pair: pair[1], reverse=True)
    return matches[:top_k]


def best_match(
    query: str,
    catalog: Sequence[CatalogItem],
    threshold: int = MATCH_THRESHOLD,
) -> Tuple[Optional[CatalogItem], int]:
    """Return the first highest-scoring entry and its score, or (None, 0)."""
    if not _query_tokens(query):
        return None, 0

    best: Optional[CatalogItem] = None
    best_score = 0
    for item in catalog:
        score = score_entry(query, item.description)
        if score > best_score:
            best = item
            best_score = score
    if best_score > threshold:
        return best, best_score
    return None, best_score


def match_catalog_item(
    description: str,
    catalog: Sequence[CatalogItem],
    threshold: int = MATCH_THRESHOLD,
    synonyms: Optional[Dict[str, List[str]]] = None,
) -> Optional[CatalogItem]:
    """Resolve a request description to a catalog item or None.

    With *synonyms*, alternative phrasings are tried in order only when the
    literal description does not clear the threshold.
    """
    item, _ = best_match(description, catalog, threshold)
    if item is not None or not synonyms:
        return item

    for alternative in expand_synonyms(description, synonyms):
        item, _ = best_match(alternative, catalog, threshold)
        if item is not None:
            return item
    return None
