"""Quote history: finished quotes kept newest-first, capped at ``HISTORY_LIMIT``."""

from __future__ import annotations

import json
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlmodel import Field, SQLModel, select

from orcafacil.shared.models import QuoteItem
from orcafacil.store import catalog_store

HISTORY_LIMIT = 30


class SavedQuoteRow(SQLModel, table=True):
    __tablename__ = "quotes"

    id: str = Field(primary_key=True)
    customer_name: str = Field(default="")
    items_json: str = Field(default="[]")
    total_value: float = Field(default=0.0)
    original_input_text: str = Field(default="")
    created_at: datetime = Field(default_factory=datetime.utcnow, index=True)


def init_db() -> None:
    catalog_store.init_db()


def _quote_to_dict(row: SavedQuoteRow) -> Dict[str, Any]:
    return {
        "id": row.id,
        "customer_name": row.customer_name,
        "items": json.loads(row.items_json) if row.items_json else [],
        "total_value": round(row.total_value, 2),
        "original_input_text": row.original_input_text,
        "created_at": row.created_at.isoformat(),
    }


def save_quote(customer_name: str, items: List[QuoteItem], original_input_text: str = "") -> Dict[str, Any]:
    """Persist a finished quote and drop the oldest entries beyond ``HISTORY_LIMIT``."""
    total = sum(item.line_total for item in items)
    row = SavedQuoteRow(
        id=str(uuid.uuid4()),
        customer_name=(customer_name or "").strip(),
        items_json=json.dumps([item.to_dict() for item in items], ensure_ascii=False),
        total_value=round(total, 2),
        original_input_text=original_input_text or "",
    )
    with catalog_store._session() as session:
        session.add(row)
        session.commit()
        session.refresh(row)
        saved = _quote_to_dict(row)

        stale = session.exec(
            select(SavedQuoteRow).order_by(SavedQuoteRow.created_at.desc()).offset(HISTORY_LIMIT)
        ).all()
        for old in stale:
            session.delete(old)
        if stale:
            session.commit()
    return saved


def list_quotes(limit: int = HISTORY_LIMIT) -> List[Dict[str, Any]]:
    with catalog_store._session() as session:
        rows = session.exec(
            select(SavedQuoteRow).order_by(SavedQuoteRow.created_at.desc()).limit(limit)
        ).all()
        return [_quote_to_dict(row) for row in rows]


def get_quote(quote_id: str) -> Optional[Dict[str, Any]]:
    with catalog_store._session() as session:
        row = session.get(SavedQuoteRow, quote_id)
        return _quote_to_dict(row) if row else None


def delete_quote(quote_id: str) -> bool:
    with catalog_store._session() as session:
        row = session.get(SavedQuoteRow, quote_id)
        if row is None:
            return False
        session.delete(row)
        session.commit()
        return True
