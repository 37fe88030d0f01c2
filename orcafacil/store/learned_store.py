"""Learned-match stores: request text -> confirmed catalog product.

The quote service only talks to the :class:`LearnedMatchStore` protocol. Stores
keep product ids, never catalog entries; ids are resolved against the live
catalog on lookup so a price change shows up without re-learning, and a
product that left the catalog simply stops matching.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, Dict, List, Optional, Protocol

from orcafacil.shared.models import CatalogItem, LearnedMatch
from orcafacil.shared.normalize import normalize_learned_key
from orcafacil.store import catalog_store

logger = logging.getLogger("orcafacil.learned_store")

CatalogLookup = Callable[[str], Optional[CatalogItem]]


class LearnedMatchStore(Protocol):
    def lookup(self, text: str) -> Optional[CatalogItem]:
        ...

    def record(self, text: str, item: CatalogItem) -> None:
        ...


class InMemoryLearnedMatchStore:
    def __init__(self, catalog_lookup: CatalogLookup) -> None:
        self._catalog_lookup = catalog_lookup
        self._matches: Dict[str, LearnedMatch] = {}
        self._lock = threading.Lock()

    def lookup(self, text: str) -> Optional[CatalogItem]:
        key = normalize_learned_key(text)
        if not key:
            return None
        with self._lock:
            match = self._matches.get(key)
        if match is None:
            return None
        return self._catalog_lookup(match.product_id)

    def record(self, text: str, item: CatalogItem) -> None:
        key = normalize_learned_key(text)
        if not key:
            return
        with self._lock:
            existing = self._matches.get(key)
            if existing is not None and existing.product_id == item.id:
                return
            self._matches[key] = LearnedMatch(original_text=key, product_id=item.id)
        logger.info("Learned %r -> %s", key, item.id)

    def forget(self, text: str) -> bool:
        with self._lock:
            return self._matches.pop(normalize_learned_key(text), None) is not None

    def entries(self) -> List[LearnedMatch]:
        with self._lock:
            return sorted(self._matches.values(), key=lambda match: match.confirmed_at, reverse=True)


class SqlLearnedMatchStore:
    """Learned matches persisted in the ``learned_matches`` table."""

    def __init__(self, catalog_lookup: CatalogLookup) -> None:
        self._catalog_lookup = catalog_lookup

    def lookup(self, text: str) -> Optional[CatalogItem]:
        key = normalize_learned_key(text)
        if not key:
            return None
        match = catalog_store.get_learned_match(key)
        if match is None:
            return None
        return self._catalog_lookup(match.product_id)

    def record(self, text: str, item: CatalogItem) -> None:
        key = normalize_learned_key(text)
        if not key:
            return
        catalog_store.upsert_learned_match(key, item.id)
        logger.info("Learned %r -> %s", key, item.id)

    def forget(self, text: str) -> bool:
        return catalog_store.delete_learned_match(normalize_learned_key(text))

    def entries(self) -> List[LearnedMatch]:
        return catalog_store.list_learned_matches()
