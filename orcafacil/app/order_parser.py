"""Order-line interpretation: quantity extraction and colour/variant splitting.

A line first has its roll keyword ("rolo", "bobina") rewritten into the unit it
stands for, then runs through ``QUANTITY_RULES`` top-down; the first rule whose
pattern matches and whose extractor accepts the match decides the quantity.
Lines that bundle several colours of one product ("(vermelho/azul/preto)",
"azul/preto", "sendo 2 pretos e 1 azul") are expanded by :func:`split_line`
into one request per colour.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Callable, List, Optional, Tuple

from orcafacil.app.uom_convert import (
    BOX_UNITS,
    TIE_PACK_THRESHOLD,
    format_quantity,
    is_cable_tie,
    is_fastener_box,
    normalize_uom,
    roll_multiplier,
    roll_note,
    tie_pack_note,
)
from orcafacil.shared.models import ParsedRequest

logger = logging.getLogger("orcafacil.order_parser")

_NUMBER = r"\d+(?:[.,]\d+)?"
_UNITS = (
    r"(?:metros?|mts?|m|unidades?|unid|und|un|p[çc]s|p[çc]|pe[çc]as?|barras?(?=\s+de\b))"
)
_SEPARATORS = r"(?:\s|[:\-–—]|\.(?!\d))"
_TRAILING_UNITS = r"(?:metros?|mts|unidades?|unid|und|un|p[çc]s|pe[çc]as?)"

_RE_ROLL = re.compile(r"\b(?:rolos?|bobinas?)\b", re.IGNORECASE)
_RE_ROLL_PLACEHOLDER = re.compile(r"^(?:metros|unidades)\b\s*(?:de\s+)?", re.IGNORECASE)
_RE_BULLET = re.compile(r"^[\-•*·]+\s+")
_RE_WHITESPACE = re.compile(r"\s+")
_RE_LEADING_DE = re.compile(r"^(?:de|do|da)\s+", re.IGNORECASE)
_RE_EDGE_PUNCT = re.compile(r"^[\s\-–—:;,.]+|[\s\-–—:;,]+$")
_RE_PER_TAG = re.compile(r"\s*\(?\b(?:de\s+)?cada\b\)?", re.IGNORECASE)
_RE_TAG_SEPARATORS = re.compile(r"\s*(?:/|,|;|\s+e\s+)\s*", re.IGNORECASE)
_RE_TAG_SPEC = re.compile(
    rf"^(?:(?P<num>{_NUMBER})\s*(?:x|(?:rolos?|bobinas?|{_UNITS})\.?)?\s+(?:de\s+)?)?(?P<tag>.+)$",
    re.IGNORECASE,
)
_RE_TAIL_COUNT = re.compile(rf"^(?P<num>{_NUMBER})\s*(?:{_TRAILING_UNITS})?\.?$", re.IGNORECASE)
_RE_NUMERIC_TAG = re.compile(r"^[\d.,/\"'x]+(?:mm|a|v|w)?$", re.IGNORECASE)
_RE_PAREN_GROUP = re.compile(
    r"^(?P<head>[^()]*?)\s*\((?P<tags>[^()]+)\)\s*(?P<tail>[^()]*)$"
)
_RE_SLASH_TAIL = re.compile(
    r"^(?P<head>.+?)\s+(?P<tags>[^\s/,]+(?:\s*[/,]\s*[^\s/,]+)+)\s*$"
)
_RE_SENDO = re.compile(r"^(?P<head>.+?)\s*,?\s+sendo\s*:?\s+(?P<tags>.+)$", re.IGNORECASE)

COLOR_WORDS = {
    "preto",
    "branco",
    "vermelho",
    "azul",
    "verde",
    "amarelo",
    "cinza",
    "marrom",
    "laranja",
    "violeta",
    "roxo",
    "rosa",
    "bege",
    "marfim",
    "prata",
    "dourado",
    "transparente",
    "incolor",
}
COLOR_ABBREVIATIONS = {
    "pt": "preto",
    "pr": "preto",
    "br": "branco",
    "bco": "branco",
    "vm": "vermelho",
    "vml": "vermelho",
    "az": "azul",
    "vd": "verde",
    "am": "amarelo",
    "amr": "amarelo",
    "cz": "cinza",
    "mr": "marrom",
}
# Feminine agreement ("tomada branca") maps to the catalog's masculine form.
COLOR_FEMININE = {
    "preta": "preto",
    "branca": "branco",
    "vermelha": "vermelho",
    "amarela": "amarelo",
    "roxa": "roxo",
    "dourada": "dourado",
}
# Earth wire is sold as a single bicolour product.
_BICOLOR_PRODUCTS = ({"verde", "amarelo"},)


@dataclass(frozen=True)
class QuantityRule:
    name: str
    pattern: re.Pattern
    extract: Callable[[re.Match], Optional[Tuple[str, str, Optional[str]]]]


def _take_groups(match: re.Match) -> Optional[Tuple[str, str, Optional[str]]]:
    groups = match.groupdict()
    return groups["num"], groups.get("rest") or "", groups.get("unit")


def _take_fastener_box(match: re.Match) -> Optional[Tuple[str, str, Optional[str]]]:
    rest = match.group("rest")
    if not is_fastener_box(rest):
        return None
    return match.group("num"), rest, "cx"


QUANTITY_RULES: Tuple[QuantityRule, ...] = (
    QuantityRule(
        "fastener_box",
        re.compile(
            r"^(?P<num>\d+)\s*(?:cx|caixas?)\.?\s+(?:de\s+|c/\s*)?(?P<rest>.+)$",
            re.IGNORECASE,
        ),
        _take_fastener_box,
    ),
    QuantityRule(
        "times_prefix",
        re.compile(rf"^(?P<num>{_NUMBER})\s*x\s+(?P<rest>.+)$", re.IGNORECASE),
        _take_groups,
    ),
    QuantityRule(
        "leading",
        re.compile(
            rf"^(?P<num>{_NUMBER})\s*(?P<unit>{_UNITS})?(?={_SEPARATORS}|$){_SEPARATORS}*(?P<rest>.*)$",
            re.IGNORECASE,
        ),
        _take_groups,
    ),
    QuantityRule(
        "trailing_dash",
        re.compile(
            rf"^(?P<rest>.+?)\s+[-–—]\s*(?P<num>{_NUMBER})\s*(?P<unit>{_UNITS})?\.?\s*$",
            re.IGNORECASE,
        ),
        _take_groups,
    ),
    QuantityRule(
        "trailing_parenthesis",
        re.compile(
            rf"^(?P<rest>.+?)\s*\(\s*(?P<num>{_NUMBER})\s*(?P<unit>{_UNITS})?\.?\s*\)\s*$",
            re.IGNORECASE,
        ),
        _take_groups,
    ),
    QuantityRule(
        "trailing_unit",
        re.compile(
            rf"^(?P<rest>.+?)\s+(?P<num>{_NUMBER})\s*(?P<unit>{_TRAILING_UNITS})\.?\s*$",
            re.IGNORECASE,
        ),
        _take_groups,
    ),
)


@dataclass
class _Extraction:
    count: Optional[float]
    multiplier: float
    kind: Optional[str]  # "roll" | "box" | None
    unit: Optional[str]
    description: str
    rule: Optional[str] = None


def split_order_lines(text: str) -> List[str]:
    """Split raw order text into candidate lines: one per newline or ``;``-separated chunk."""
    if not text:
        return []
    lines: List[str] = []
    for raw in text.splitlines():
        for chunk in raw.split(";"):
            cleaned = _clean_line(chunk)
            if cleaned:
                lines.append(cleaned)
    return lines


def extract(line: str) -> ParsedRequest:
    """Split one order line into quantity and cleaned product description.

    Never raises: an unparseable quantity defaults to 1 and an empty
    description falls back to the trimmed line.
    """
    extraction = _extract_parts(line)
    return _build_request(extraction, extraction.count, extraction.description, _clean_line(line))


def split_line(line: str) -> List[ParsedRequest]:
    """Expand a multi-colour line into one request per colour; other lines give one request.

    Quantities follow, in order: explicit per-colour counts; "N de cada";
    an even split when the stated count divides by the number of colours;
    otherwise one of each, with a note. The number of requests always equals
    the number of colours found.
    """
    cleaned = _clean_line(line)
    if not cleaned:
        return []

    variants = _find_variants(cleaned)
    if variants is None:
        return [extract(cleaned)]

    head, tail, specs = variants
    per_tag = bool(_RE_PER_TAG.search(head) or _RE_PER_TAG.search(tail))
    head = _RE_PER_TAG.sub("", head)
    tail = _RE_PER_TAG.sub("", tail)

    base = _extract_parts(head)
    tail_count = _RE_TAIL_COUNT.match(tail.strip())
    if base.count is None and tail_count:
        base.count = _to_count(tail_count.group("num"))
        tail = ""
    base_description = clean_description(f"{base.description} {tail}")
    explicit = any(count is not None for count, _ in specs)
    k = len(specs)
    stated = base.count if base.count is not None else 1.0

    fallback_note: Optional[str] = None
    if explicit:
        counts = [count if count is not None else 1.0 for count, _ in specs]
        if base.count is not None and sum(counts) != base.count:
            logger.debug(
                "Colour counts %s do not add up to stated %s in %r", counts, base.count, cleaned
            )
    elif per_tag:
        counts = [stated] * k
    elif base.count is None:
        counts = [1.0] * k
    elif float(stated).is_integer() and int(stated) % k == 0:
        counts = [float(int(stated) // k)] * k
    else:
        counts = [1.0] * k
        fallback_note = (
            f"quantidade {format_quantity(stated)} não divide igualmente entre "
            f"{k} variações: 1 de cada"
        )
        logger.info("Uneven colour split for %r, using one of each", cleaned)

    return [
        _build_request(base, count, clean_description(f"{base_description} {tag}"), cleaned, fallback_note)
        for count, (_, tag) in zip(counts, specs)
    ]


def parse_order_text(text: str) -> List[ParsedRequest]:
    """Run extraction and splitting over every line of *text*, keeping input order."""
    requests: List[ParsedRequest] = []
    for line in split_order_lines(text):
        requests.extend(split_line(line))
    return requests


def clean_description(text: str) -> str:
    cleaned = _RE_WHITESPACE.sub(" ", text or "").strip()
    cleaned = _RE_EDGE_PUNCT.sub("", cleaned)
    cleaned = _RE_LEADING_DE.sub("", cleaned)
    return _RE_WHITESPACE.sub(" ", cleaned).strip()


def _clean_line(line: str) -> str:
    cleaned = _RE_WHITESPACE.sub(" ", line or "").strip()
    return _RE_BULLET.sub("", cleaned).strip()


def _to_count(raw: Optional[str]) -> Optional[float]:
    if raw is None:
        return None
    try:
        value = float(raw.replace(",", "."))
    except ValueError:
        logger.debug("Could not parse quantity %r", raw)
        return None
    if value <= 0:
        logger.debug("Ignoring non-positive quantity %r", raw)
        return None
    return value


def _extract_parts(line: str) -> _Extraction:
    text = _clean_line(line)
    multiplier = 1.0
    kind: Optional[str] = None
    unit: Optional[str] = None

    if _RE_ROLL.search(text):
        multiplier, unit = roll_multiplier(text)
        kind = "roll"
        text = _RE_ROLL.sub("unidades" if unit == "un" else "metros", text)

    count: Optional[float] = None
    description = text
    rule_name: Optional[str] = None
    for rule in QUANTITY_RULES:
        match = rule.pattern.search(text)
        if not match:
            continue
        taken = rule.extract(match)
        if taken is None:
            continue
        raw_number, description, stated_unit = taken
        count = _to_count(raw_number)
        rule_name = rule.name
        if rule.name == "fastener_box":
            multiplier = float(BOX_UNITS)
            kind = "box"
            unit = "un"
        elif kind is None and stated_unit:
            unit = normalize_uom(stated_unit)
        break

    description = clean_description(description)
    if kind == "roll":
        description = clean_description(_RE_ROLL_PLACEHOLDER.sub("", description))
    if not description:
        description = _clean_line(line)

    return _Extraction(
        count=count,
        multiplier=multiplier,
        kind=kind,
        unit=unit,
        description=description,
        rule=rule_name,
    )


def _build_request(
    base: _Extraction,
    count: Optional[float],
    description: str,
    source_line: str,
    extra_note: Optional[str] = None,
) -> ParsedRequest:
    quantity = (count if count is not None else 1.0) * base.multiplier
    unit = base.unit
    note = _conversion_note(base, count)
    # More than ten cable ties are sold as one pack.
    if base.kind is None and count is not None and count > TIE_PACK_THRESHOLD and is_cable_tie(description):
        quantity, unit, note = 1.0, "pct", tie_pack_note(count)
    notes = [text for text in (note, extra_note) if text]
    return ParsedRequest(
        quantity=quantity,
        description=description,
        conversion_note="; ".join(notes) if notes else None,
        unit=unit,
        source_line=source_line,
    )


def _conversion_note(extraction: _Extraction, count: Optional[float]) -> Optional[str]:
    rolls = count if count is not None else 1.0
    if extraction.kind == "roll":
        return roll_note(rolls, extraction.multiplier, extraction.unit or "m")
    if extraction.kind == "box":
        noun = "caixa" if rolls == 1 else "caixas"
        return f"{format_quantity(rolls)} {noun} -> {format_quantity(rolls * extraction.multiplier)} unidades"
    return None


def _find_variants(line: str) -> Optional[Tuple[str, str, List[Tuple[Optional[float], str]]]]:
    match = _RE_SENDO.match(line)
    if match:
        specs = _parse_tag_specs(match.group("tags"), require_colors=False)
        if specs:
            return match.group("head"), "", specs

    match = _RE_PAREN_GROUP.match(line)
    if match:
        specs = _parse_tag_specs(match.group("tags"), require_colors=False)
        if specs and len(specs) >= 2:
            return match.group("head"), match.group("tail"), specs

    match = _RE_SLASH_TAIL.match(line)
    if match:
        specs = _parse_tag_specs(match.group("tags"), require_colors=True)
        if specs and len(specs) >= 2 and not _is_bicolor_product(specs):
            return match.group("head"), "", specs
    return None


def _parse_tag_specs(raw: str, require_colors: bool) -> Optional[List[Tuple[Optional[float], str]]]:
    specs: List[Tuple[Optional[float], str]] = []
    for part in _RE_TAG_SEPARATORS.split(raw.strip()):
        part = part.strip()
        if not part:
            continue
        match = _RE_TAG_SPEC.match(part)
        if not match:
            return None
        tag = clean_description(match.group("tag"))
        if not tag or _RE_NUMERIC_TAG.match(tag):
            return None
        tag = _canonical_tag(tag)
        if require_colors and tag not in COLOR_WORDS:
            return None
        specs.append((_to_count(match.group("num")), tag))
    return specs or None


def _canonical_tag(tag: str) -> str:
    """Singularize and expand colour tags; other tags pass through lowercased."""
    lowered = tag.lower()
    if lowered in COLOR_WORDS:
        return lowered
    if lowered in COLOR_ABBREVIATIONS:
        return COLOR_ABBREVIATIONS[lowered]
    if lowered in COLOR_FEMININE:
        return COLOR_FEMININE[lowered]
    candidates = []
    if lowered.endswith("is"):
        candidates.append(lowered[:-2] + "l")  # azuis -> azul
    if lowered.endswith("ns"):
        candidates.append(lowered[:-2] + "m")  # marrons -> marrom
    if lowered.endswith("es"):
        candidates.append(lowered[:-2])
    if lowered.endswith("s"):
        candidates.append(lowered[:-1])
    for candidate in candidates:
        if candidate in COLOR_WORDS:
            return candidate
        if candidate in COLOR_FEMININE:
            return COLOR_FEMININE[candidate]
    return lowered


def _is_bicolor_product(specs: List[Tuple[Optional[float], str]]) -> bool:
    tags = {tag for _, tag in specs}
    return any(tags == pair for pair in _BICOLOR_PRODUCTS) and all(count is None for count, _ in specs)
