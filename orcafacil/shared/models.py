"""Domain types shared by the order parser, matcher, stores and quote service."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional


class CatalogEmptyError(Exception):
    """Raised when matching is attempted against an empty or missing catalog."""


@dataclass
class CatalogItem:
    id: str
    description: str
    price: float
    unit: Optional[str] = None
    created_at: datetime = field(default_factory=datetime.utcnow)
    updated_at: datetime = field(default_factory=datetime.utcnow)

    def __post_init__(self) -> None:
        if not str(self.id).strip():
            raise ValueError("Catalog item 'id' must be non-empty.")
        if not str(self.description).strip():
            raise ValueError("Catalog item 'description' must be non-empty.")
        price = float(self.price)
        if math.isnan(price) or price < 0:
            raise ValueError(f"Catalog item {self.id!r} has an invalid price: {self.price!r}")
        self.price = price

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "description": self.description,
            "price": self.price,
            "unit": self.unit,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


@dataclass
class ParsedRequest:
    """One requested product after quantity extraction (and optional colour split)."""

    quantity: float
    description: str
    conversion_note: Optional[str] = None
    unit: Optional[str] = None  # "m", "un", ... as stated in the order line
    source_line: Optional[str] = None


@dataclass
class QuoteItem:
    id: str
    quantity: float
    original_request: str
    catalog_item: Optional[CatalogItem] = None
    is_learned: bool = False
    conversion_log: Optional[str] = None
    unit_price_override: Optional[float] = None
    source_line: Optional[str] = None

    @property
    def is_pending(self) -> bool:
        return self.catalog_item is None

    @property
    def unit_price(self) -> float:
        if self.unit_price_override is not None:
            return self.unit_price_override
        if self.catalog_item is None:
            return 0.0
        return self.catalog_item.price

    @property
    def line_total(self) -> float:
        return self.quantity * self.unit_price

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "quantity": self.quantity,
            "original_request": self.original_request,
            "catalog_item": self.catalog_item.to_dict() if self.catalog_item else None,
            "is_learned": self.is_learned,
            "conversion_log": self.conversion_log,
            "unit_price": round(self.unit_price, 2),
            "unit_price_override": self.unit_price_override,
            "line_total": round(self.line_total, 2),
            "pending": self.is_pending,
            "source_line": self.source_line,
        }


@dataclass
class LearnedMatch:
    original_text: str
    product_id: str
    confirmed_at: datetime = field(default_factory=datetime.utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "original_text": self.original_text,
            "product_id": self.product_id,
            "confirmed_at": self.confirmed_at.isoformat(),
        }


@dataclass
class ClassifiedItem:
    """Item as returned by the remote classifier, mapped back onto the catalog."""

    original_request: str
    quantity: float
    catalog_index: int = -1
    conversion_log: Optional[str] = None
    catalog_item: Optional[CatalogItem] = None


@dataclass(frozen=True)
class QuoteSummary:
    total_value: float
    found: int
    pending: int
    total_items: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_value": round(self.total_value, 2),
            "found": self.found,
            "pending": self.pending,
            "total_items": self.total_items,
        }
