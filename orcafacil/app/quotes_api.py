"""
Quotes API - save and browse finished quotes (history keeps the newest 30)
"""
from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from orcafacil.app.services.quote_service import ServiceError, items_from_payload, summarize
from orcafacil.store import quote_store

router = APIRouter(prefix="/api/quotes", tags=["quotes"])


# --- Models ---

class QuoteItemIn(BaseModel):
    id: Optional[str] = None
    quantity: float = Field(..., gt=0)
    original_request: str = ""
    catalog_item_id: Optional[str] = None
    unit_price_override: Optional[float] = Field(None, ge=0)
    conversion_log: Optional[str] = None
    is_learned: bool = False


class CreateQuoteRequest(BaseModel):
    customer_name: str = ""
    original_input_text: str = ""
    items: List[QuoteItemIn]


class SummaryRequest(BaseModel):
    items: List[QuoteItemIn]


def _service_context():
    from orcafacil.main import get_service_context

    return get_service_context()


# --- API Endpoints ---

@router.get("")
def list_quotes(limit: int = quote_store.HISTORY_LIMIT) -> List[Dict[str, Any]]:
    """Saved quotes, newest first."""
    return quote_store.list_quotes(limit=max(1, min(limit, quote_store.HISTORY_LIMIT)))


@router.get("/{quote_id}")
def get_quote(quote_id: str) -> Dict[str, Any]:
    quote = quote_store.get_quote(quote_id)
    if quote is None:
        raise HTTPException(status_code=404, detail="Orçamento não encontrado")
    return quote


@router.post("")
def create_quote(request: CreateQuoteRequest) -> Dict[str, Any]:
    if not request.items:
        raise HTTPException(status_code=400, detail="O orçamento precisa de pelo menos um item.")
    try:
        items = items_from_payload([item.model_dump() for item in request.items], ctx=_service_context())
    except ServiceError as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.message) from exc
    return quote_store.save_quote(request.customer_name, items, request.original_input_text)


@router.post("/summary")
def quote_summary(request: SummaryRequest) -> Dict[str, Any]:
    """Totals for a client-edited item list, priced against the live catalog."""
    try:
        items = items_from_payload([item.model_dump() for item in request.items], ctx=_service_context())
    except ServiceError as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.message) from exc
    return {"items": [item.to_dict() for item in items], "summary": summarize(items).to_dict()}


@router.delete("/{quote_id}")
def delete_quote(quote_id: str) -> Dict[str, bool]:
    deleted = quote_store.delete_quote(quote_id)
    if not deleted:
        raise HTTPException(status_code=404, detail="Orçamento não encontrado")
    return {"deleted": True}
