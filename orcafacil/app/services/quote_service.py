"""Quote service layer: order text in, priced quote items out.

Backs the FastAPI handlers and the CLI. Two interchangeable strategies build
``QuoteItem`` lists from the same order text:

- ``local``: line rule table + colour splitter + keyword matcher, no network.
- ``ai``: the chat-model classifier in :mod:`orcafacil.app.services.ai_classifier`.

Both consult the learned-match store before trusting their own match, and
every user correction (confirm, reassign) is written back to that store.
"""

from __future__ import annotations

import math
import threading
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional, Protocol, Sequence, Tuple
from uuid import uuid4

from orcafacil.app.error_messages import (
    ai_disabled_message,
    ai_failure_message,
    classification_busy_message,
    empty_catalog_message,
    empty_input_message,
    pending_items_message,
    shortfall_warning,
)
from orcafacil.app.order_parser import extract, parse_order_text
from orcafacil.app.services.ai_classifier import (
    DEFAULT_CATALOG_MAX_CHARS,
    ClassificationFailure,
    classify_with_report,
)
from orcafacil.app.uom_convert import BAR_LENGTH_M, apply_bar_conversion
from orcafacil.shared.fuzzy_matcher import MATCH_THRESHOLD, match_catalog_item, rank_catalog
from orcafacil.shared.models import (
    CatalogEmptyError,
    CatalogItem,
    ParsedRequest,
    QuoteItem,
    QuoteSummary,
)
from orcafacil.store.learned_store import InMemoryLearnedMatchStore, LearnedMatchStore


class ServiceError(Exception):
    """Domain specific error that can be translated to HTTP responses."""

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


@dataclass
class QuoteServiceContext:
    catalog_items: List[CatalogItem]
    catalog_by_id: Dict[str, CatalogItem]
    learned_store: Any
    logger: Any
    llm: Any | None = None
    synonyms: Dict[str, List[str]] = field(default_factory=dict)
    match_threshold: int = MATCH_THRESHOLD
    bar_conversion: bool = True
    bar_length_m: float = BAR_LENGTH_M
    ai_catalog_max_chars: int = DEFAULT_CATALOG_MAX_CHARS
    suggestion_limit: int = 3
    classification_lock: threading.Lock = field(default_factory=threading.Lock)
    debug: bool = False

    def set_catalog(self, items: Iterable[CatalogItem]) -> None:
        # In place: stores hold a reference to lookup_item.
        self.catalog_items[:] = list(items)
        self.catalog_by_id.clear()
        self.catalog_by_id.update({item.id: item for item in self.catalog_items})

    def lookup_item(self, product_id: str) -> Optional[CatalogItem]:
        return self.catalog_by_id.get(product_id)


def build_context(
    catalog: Iterable[CatalogItem],
    *,
    logger: Any,
    learned_store_factory: Callable[[Callable[[str], Optional[CatalogItem]]], Any] = InMemoryLearnedMatchStore,
    **options: Any,
) -> QuoteServiceContext:
    ctx = QuoteServiceContext(catalog_items=[], catalog_by_id={}, learned_store=None, logger=logger, **options)
    ctx.set_catalog(catalog)
    ctx.learned_store = learned_store_factory(ctx.lookup_item)
    return ctx


def ensure_catalog(catalog: Optional[Sequence[CatalogItem]]) -> None:
    if not catalog:
        raise CatalogEmptyError("catalog is empty")


def _learning_keys(text: str) -> List[str]:
    """The request as shown plus its quantity-free description, so both paths share learned matches."""
    keys = [text]
    description = extract(text).description if text else ""
    if description and description != text:
        keys.append(description)
    return keys


def _lookup_learned(store: Optional[LearnedMatchStore], text: str) -> Optional[CatalogItem]:
    if store is None or not text:
        return None
    for key in _learning_keys(text):
        item = store.lookup(key)
        if item is not None:
            return item
    return None


def _record_learned(store: LearnedMatchStore, text: str, item: CatalogItem) -> None:
    for key in _learning_keys(text):
        store.record(key, item)


def assemble(
    parsed_requests: Sequence[ParsedRequest],
    resolve: Callable[[str], Optional[CatalogItem]],
    learned_store: Optional[LearnedMatchStore] = None,
) -> List[QuoteItem]:
    """Build quote items in input order: learned match first, then *resolve*.

    Each item gets a fresh id; everything else depends only on the inputs, the
    catalog behind *resolve* and the learned store.
    """
    items: List[QuoteItem] = []
    for request in parsed_requests:
        catalog_item = _lookup_learned(learned_store, request.description)
        is_learned = catalog_item is not None
        if catalog_item is None:
            catalog_item = resolve(request.description)
        items.append(
            QuoteItem(
                id=str(uuid4()),
                quantity=request.quantity,
                original_request=request.description,
                catalog_item=catalog_item,
                is_learned=is_learned,
                conversion_log=request.conversion_note,
                source_line=request.source_line,
            )
        )
    return items


def summarize(items: Sequence[QuoteItem]) -> QuoteSummary:
    found = sum(1 for item in items if not item.is_pending)
    total = sum(item.line_total for item in items)
    return QuoteSummary(
        total_value=round(total, 2),
        found=found,
        pending=len(items) - found,
        total_items=len(items),
    )


class MatchStrategy(Protocol):
    name: str

    def build_items(self, order_text: str, ctx: QuoteServiceContext) -> Tuple[List[QuoteItem], List[str]]:
        ...


class LocalMatchStrategy:
    name = "local"

    def build_items(self, order_text: str, ctx: QuoteServiceContext) -> Tuple[List[QuoteItem], List[str]]:
        requests = parse_order_text(order_text)

        def resolve(description: str) -> Optional[CatalogItem]:
            return match_catalog_item(description, ctx.catalog_items, ctx.match_threshold, ctx.synonyms)

        items = assemble(requests, resolve, ctx.learned_store)
        if ctx.bar_conversion:
            for item, request in zip(items, requests):
                apply_bar_conversion(item, request.unit, ctx.bar_length_m)
        return items, []


class AIMatchStrategy:
    name = "ai"

    def build_items(self, order_text: str, ctx: QuoteServiceContext) -> Tuple[List[QuoteItem], List[str]]:
        if ctx.llm is None:
            raise ServiceError(ai_disabled_message(), status_code=503)
        if not ctx.classification_lock.acquire(blocking=False):
            raise ServiceError(classification_busy_message(), status_code=409)
        try:
            result = classify_with_report(
                ctx.catalog_items,
                order_text,
                ctx.llm,
                max_catalog_chars=ctx.ai_catalog_max_chars,
                bar_length=ctx.bar_length_m,
            )
        except ClassificationFailure as exc:
            ctx.logger.warning("AI classification failed: %s", exc)
            raise ServiceError(ai_failure_message(), status_code=502) from exc
        finally:
            ctx.classification_lock.release()

        # Colour items echoing a whole line share one request text.
        shared = Counter(classified.original_request for classified in result.items)
        items: List[QuoteItem] = []
        for classified in result.items:
            learned = None
            if shared[classified.original_request] == 1:
                learned = _lookup_learned(ctx.learned_store, classified.original_request)
            else:
                ctx.logger.debug("Skipping learned lookup for shared request %r", classified.original_request)
            item = QuoteItem(
                id=str(uuid4()),
                quantity=classified.quantity,
                original_request=classified.original_request,
                catalog_item=learned or classified.catalog_item,
                is_learned=learned is not None,
                conversion_log=classified.conversion_log,
                source_line=classified.original_request,
            )
            # The model is told to convert metres to bars; only fill in when it did not.
            if ctx.bar_conversion and not classified.conversion_log:
                parsed = extract(classified.original_request)
                if parsed.unit == "m" and math.isclose(parsed.quantity, classified.quantity):
                    if apply_bar_conversion(item, parsed.unit, ctx.bar_length_m):
                        ctx.logger.info("Bar conversion applied to classifier item %r", item.original_request)
            items.append(item)

        warnings: List[str] = []
        if result.shortfall:
            warnings.append(shortfall_warning(len(items), result.expected_lines))
        if result.truncated_catalog:
            warnings.append("Catálogo grande demais para a IA: apenas parte dele foi enviada.")
        return items, warnings


STRATEGIES: Dict[str, MatchStrategy] = {
    LocalMatchStrategy.name: LocalMatchStrategy(),
    AIMatchStrategy.name: AIMatchStrategy(),
}


def build_quote(order_text: str, *, ctx: QuoteServiceContext, mode: str = "local") -> Tuple[List[QuoteItem], List[str]]:
    if not order_text or not order_text.strip():
        raise ServiceError(empty_input_message(), status_code=400)
    strategy = STRATEGIES.get((mode or "local").lower())
    if strategy is None:
        raise ServiceError(f"Modo desconhecido: {mode!r}. Use 'local' ou 'ai'.", status_code=400)
    try:
        ensure_catalog(ctx.catalog_items)
    except CatalogEmptyError as exc:
        raise ServiceError(empty_catalog_message(), status_code=422) from exc

    items, warnings = strategy.build_items(order_text, ctx)
    if ctx.debug:
        ctx.logger.info("[%s] %d item(s), %d pending", strategy.name, len(items), summarize(items).pending)
    return items, warnings


def suggest_products(description: str, *, ctx: QuoteServiceContext, limit: Optional[int] = None) -> List[Dict[str, Any]]:
    ranked = rank_catalog(description, ctx.catalog_items, top_k=limit or ctx.suggestion_limit)
    return [{**item.to_dict(), "score": score} for item, score in ranked]


def process_order(*, payload: Dict[str, Any], ctx: QuoteServiceContext) -> Dict[str, Any]:
    order_text = payload.get("text") or ""
    mode = payload.get("mode") or "local"
    items, warnings = build_quote(order_text, ctx=ctx, mode=mode)

    pending = [item.original_request for item in items if item.is_pending]
    suggestions = {
        request: [entry["description"] for entry in suggest_products(request, ctx=ctx)]
        for request in pending
    }
    return {
        "mode": mode,
        "items": [item.to_dict() for item in items],
        "summary": summarize(items).to_dict(),
        "warnings": warnings,
        "pending_message": pending_items_message(pending, suggestions),
        "suggestions": suggestions,
    }


def confirm_match(item: QuoteItem, *, ctx: QuoteServiceContext) -> QuoteItem:
    """Accept the item's current match and remember it for this request text."""
    if item.catalog_item is None:
        raise ServiceError("Item sem produto associado; escolha um produto antes de confirmar.", status_code=400)
    _record_learned(ctx.learned_store, item.original_request, item.catalog_item)
    item.is_learned = True
    return item


def reassign_match(item: QuoteItem, product_id: str, *, ctx: QuoteServiceContext) -> QuoteItem:
    """Point the item at another catalog product and remember the choice."""
    product = ctx.lookup_item(product_id)
    if product is None:
        raise ServiceError(f"Produto {product_id!r} não encontrado no catálogo.", status_code=404)
    item.catalog_item = product
    item.unit_price_override = None
    _record_learned(ctx.learned_store, item.original_request, product)
    item.is_learned = True
    return item


def learn_match(original_request: str, product_id: str, *, ctx: QuoteServiceContext) -> Dict[str, Any]:
    if not original_request or not original_request.strip():
        raise ServiceError("Texto do pedido obrigatório.", status_code=400)
    product = ctx.lookup_item(product_id)
    if product is None:
        raise ServiceError(f"Produto {product_id!r} não encontrado no catálogo.", status_code=404)
    _record_learned(ctx.learned_store, original_request, product)
    return {"original_request": original_request, "product": product.to_dict()}


def update_quantity(item: QuoteItem, quantity: float) -> QuoteItem:
    try:
        value = float(quantity)
    except (TypeError, ValueError) as exc:
        raise ServiceError("Quantidade inválida.", status_code=400) from exc
    if math.isnan(value) or math.isinf(value) or value <= 0:
        raise ServiceError("Quantidade deve ser maior que zero.", status_code=400)
    item.quantity = value
    return item


def override_price(item: QuoteItem, price: Optional[float]) -> QuoteItem:
    if price is None:
        item.unit_price_override = None
        return item
    try:
        value = float(price)
    except (TypeError, ValueError) as exc:
        raise ServiceError("Preço inválido.", status_code=400) from exc
    if math.isnan(value) or value < 0:
        raise ServiceError("Preço não pode ser negativo.", status_code=400)
    item.unit_price_override = value
    return item


def items_from_payload(entries: Sequence[Dict[str, Any]], *, ctx: QuoteServiceContext) -> List[QuoteItem]:
    """Rebuild quote items sent back by a client (after edits) against the live catalog."""
    items: List[QuoteItem] = []
    for entry in entries:
        product_id = entry.get("catalog_item_id")
        catalog_item = ctx.lookup_item(product_id) if product_id else None
        if product_id and catalog_item is None:
            raise ServiceError(f"Produto {product_id!r} não encontrado no catálogo.", status_code=404)
        item = QuoteItem(
            id=entry.get("id") or str(uuid4()),
            quantity=1.0,
            original_request=entry.get("original_request") or "",
            catalog_item=catalog_item,
            is_learned=bool(entry.get("is_learned")),
            conversion_log=entry.get("conversion_log"),
        )
        update_quantity(item, entry.get("quantity", 1))
        override_price(item, entry.get("unit_price_override"))
        items.append(item)
    return items
