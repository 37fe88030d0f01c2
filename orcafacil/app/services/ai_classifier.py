"""Remote classification of order text against the catalog.

The chat model gets the catalog as ``index | description | price`` lines and
the raw order text, and answers with ``{"mappedItems": [...]}``. Any transport
error, timeout or unusable reply becomes :class:`ClassificationFailure`; the
caller never sees a silently empty result.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, List, Optional, Sequence

from orcafacil.app.llm import build_classification_prompt
from orcafacil.app.order_parser import split_order_lines
from orcafacil.app.uom_convert import BAR_LENGTH_M, conversion_rules_text
from orcafacil.app.utils import coerce_index, coerce_quantity, optional_text, parse_mapped_items
from orcafacil.shared.models import CatalogEmptyError, CatalogItem, ClassifiedItem

logger = logging.getLogger("orcafacil.ai_classifier")

DEFAULT_CATALOG_MAX_CHARS = 120_000


class ClassificationFailure(Exception):
    """The remote classifier could not produce a usable answer."""


@dataclass
class ClassificationResult:
    items: List[ClassifiedItem]
    expected_lines: int
    truncated_catalog: bool = False

    @property
    def shortfall(self) -> bool:
        return len(self.items) < self.expected_lines


def serialize_catalog(catalog: Sequence[CatalogItem], max_chars: int = DEFAULT_CATALOG_MAX_CHARS) -> tuple[str, bool]:
    """Indexed, line-delimited catalog; stops before *max_chars*. Returns (text, truncated)."""
    lines: List[str] = []
    used = 0
    for index, item in enumerate(catalog):
        line = f"{index} | {item.description} | {item.price:.2f}"
        if used + len(line) + 1 > max_chars:
            logger.warning(
                "Catalog truncated for classifier prompt at %d of %d entries (max_chars=%d)",
                index,
                len(catalog),
                max_chars,
            )
            return "\n".join(lines), True
        lines.append(line)
        used += len(line) + 1
    return "\n".join(lines), False


def _response_text(response: Any) -> str:
    content = getattr(response, "content", response)
    if isinstance(content, list):
        parts = []
        for part in content:
            if isinstance(part, dict):
                parts.append(str(part.get("text", "")))
            else:
                parts.append(str(part))
        content = "".join(parts)
    return content if isinstance(content, str) else str(content)


def _map_item(entry: Any, catalog: Sequence[CatalogItem]) -> Optional[ClassifiedItem]:
    if not isinstance(entry, dict):
        return None
    index = coerce_index(entry.get("catalogIndex", entry.get("catalog_index")))
    catalog_item = catalog[index] if 0 <= index < len(catalog) else None
    if catalog_item is None:
        index = -1
    original = optional_text(entry.get("originalRequest", entry.get("original_request"))) or ""
    return ClassifiedItem(
        original_request=original,
        quantity=coerce_quantity(entry.get("quantity")),
        catalog_index=index,
        conversion_log=optional_text(entry.get("conversionLog", entry.get("conversion_log"))),
        catalog_item=catalog_item,
    )


def classify_with_report(
    catalog: Sequence[CatalogItem],
    order_text: str,
    llm: Any,
    *,
    max_catalog_chars: int = DEFAULT_CATALOG_MAX_CHARS,
    bar_length: float = BAR_LENGTH_M,
) -> ClassificationResult:
    if not catalog:
        raise CatalogEmptyError("catalog is empty")
    if llm is None:
        raise ClassificationFailure("no classifier model configured")

    catalog_text, truncated = serialize_catalog(catalog, max_catalog_chars)
    messages = build_classification_prompt().format_messages(
        catalog=catalog_text,
        order_text=order_text,
        conversion_rules=conversion_rules_text(bar_length),
    )

    try:
        response = llm.invoke(messages)
    except Exception as exc:
        logger.warning("Classifier call failed: %s", exc)
        raise ClassificationFailure(f"classifier call failed: {exc}") from exc

    raw = _response_text(response)
    try:
        entries = parse_mapped_items(raw)
    except (ValueError, json.JSONDecodeError) as exc:
        logger.warning("Classifier reply unusable: %s | raw=%r", exc, raw[:500])
        raise ClassificationFailure(f"classifier reply unusable: {exc}") from exc

    items: List[ClassifiedItem] = []
    for entry in entries:
        mapped = _map_item(entry, catalog)
        if mapped is None:
            logger.warning("Skipping non-object classifier entry: %r", entry)
            continue
        items.append(mapped)

    expected = len(split_order_lines(order_text))
    if not items and expected:
        raise ClassificationFailure("classifier returned no items")

    result = ClassificationResult(items=items, expected_lines=expected, truncated_catalog=truncated)
    if result.shortfall:
        logger.warning("Classifier returned %d item(s) for %d input line(s)", len(items), expected)
    return result


def classify(
    catalog: Sequence[CatalogItem],
    order_text: str,
    llm: Any,
    **kwargs: Any,
) -> List[ClassifiedItem]:
    return classify_with_report(catalog, order_text, llm, **kwargs).items
