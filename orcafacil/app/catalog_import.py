from __future__ import annotations

import csv
import io
import json
import logging
import math
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from orcafacil.shared.models import CatalogItem
from orcafacil.shared.normalize import normalize_query

logger = logging.getLogger("orcafacil.catalog_import")

_HEADER_WORDS = {"id", "cod", "codigo", "sku", "descricao", "description", "preco", "price", "valor", "unidade", "unit"}
_RE_CURRENCY = re.compile(r"r\$|\s", re.IGNORECASE)
_RE_PLAIN_DECIMAL = re.compile(r"^\d+\.\d{1,2}$")


@dataclass
class CatalogParseResult:
    items: List[CatalogItem] = field(default_factory=list)
    skipped: List[Tuple[int, str]] = field(default_factory=list)


def parse_brl_price(raw: Any) -> Optional[float]:
    """Parse "R$ 1.234,56", "1234,56", "12.50" or a number into a float; None when invalid."""
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, (int, float)):
        value = float(raw)
    else:
        text = _RE_CURRENCY.sub("", str(raw))
        if not text:
            return None
        if "," in text:
            text = text.replace(".", "").replace(",", ".")
        elif not _RE_PLAIN_DECIMAL.match(text):
            text = text.replace(".", "")
        try:
            value = float(text)
        except ValueError:
            return None
    if math.isnan(value) or math.isinf(value) or value < 0:
        return None
    return value


def _is_header(cells: List[str]) -> bool:
    # A priced row is data, whatever its unit column says.
    if len(cells) > 2 and parse_brl_price(cells[2]) is not None:
        return False
    return any(normalize_query(cell) in _HEADER_WORDS for cell in cells[:2])


def _sniff_delimiter(first_line: str) -> str:
    if ";" in first_line:
        return ";"
    if "\t" in first_line:
        return "\t"
    return ","


def parse_catalog_text(text: str) -> CatalogParseResult:
    """Parse a delimited ``ID;Description;Price[;Unit]`` catalog file.

    A header row is recognised by its column names and skipped. Rows missing an
    id, a description or a valid price are skipped and reported in
    ``result.skipped`` as ``(line number, reason)``; they never abort the import.
    Later rows win when an id repeats.
    """
    result = CatalogParseResult()
    if not text or not text.strip():
        return result

    lines = text.lstrip("\ufeff").splitlines()
    delimiter = _sniff_delimiter(next(line for line in lines if line.strip()))
    reader = csv.reader(io.StringIO("\n".join(lines)), delimiter=delimiter)
    by_id: Dict[str, CatalogItem] = {}
    first_row = True
    for line_no, row in enumerate(reader, start=1):
        cells = [cell.strip() for cell in row]
        if not any(cells):
            continue
        if first_row:
            first_row = False
            if _is_header(cells):
                continue
        if len(cells) < 3:
            result.skipped.append((line_no, "expected at least 3 columns"))
            continue
        item_id, description, raw_price = cells[0], cells[1], cells[2]
        unit = cells[3] if len(cells) > 3 and cells[3] else None
        if not item_id or not description:
            result.skipped.append((line_no, "missing id or description"))
            continue
        price = parse_brl_price(raw_price)
        if price is None:
            result.skipped.append((line_no, f"invalid price {raw_price!r}"))
            continue
        by_id[item_id] = CatalogItem(id=item_id, description=description, price=price, unit=unit)

    result.items = list(by_id.values())
    if result.skipped:
        logger.warning("Catalog import skipped %d row(s): %s", len(result.skipped), result.skipped[:5])
    return result


def parse_catalog_json(text: str) -> CatalogParseResult:
    """Parse a JSON list of ``{"id", "description", "price", "unit"?}`` objects."""
    result = CatalogParseResult()
    data = json.loads(text or "[]")
    if not isinstance(data, list):
        raise ValueError("JSON payload must be a list of catalog objects.")
    by_id: Dict[str, CatalogItem] = {}
    for idx, entry in enumerate(data, start=1):
        if not isinstance(entry, dict):
            result.skipped.append((idx, "entry is not an object"))
            continue
        item_id = str(entry.get("id") or "").strip()
        description = str(entry.get("description") or "").strip()
        price = parse_brl_price(entry.get("price"))
        if not item_id or not description:
            result.skipped.append((idx, "missing id or description"))
            continue
        if price is None:
            result.skipped.append((idx, f"invalid price {entry.get('price')!r}"))
            continue
        unit = entry.get("unit") or None
        by_id[item_id] = CatalogItem(id=item_id, description=description, price=price, unit=unit)
    result.items = list(by_id.values())
    return result


def catalog_to_csv(items: List[CatalogItem]) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, delimiter=";", lineterminator="\n")
    writer.writerow(["ID", "Descricao", "Preco", "Unidade"])
    for item in items:
        writer.writerow([item.id, item.description, f"{item.price:.2f}".replace(".", ","), item.unit or ""])
    return buffer.getvalue()
