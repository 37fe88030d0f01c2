from __future__ import annotations

import os
from typing import Dict, List, Optional

from fastapi import APIRouter, Body, Depends, Header, HTTPException, Query, status
from pydantic import BaseModel, Field

from orcafacil.app.catalog_import import parse_catalog_json, parse_catalog_text
from orcafacil.shared.models import CatalogItem
from orcafacil.store import catalog_store

ADMIN_API_KEY = os.getenv("ADMIN_API_KEY")


class CatalogItemIn(BaseModel):
    id: str = Field(..., min_length=1)
    description: str = Field(..., min_length=1)
    price: float = Field(0.0, ge=0)
    unit: Optional[str] = None


class CatalogItemUpdate(BaseModel):
    description: Optional[str] = None
    price: Optional[float] = Field(None, ge=0)
    unit: Optional[str] = None


class CatalogItemOut(BaseModel):
    id: str
    description: str
    price: float
    unit: Optional[str]
    updated_at: Optional[str]


class CatalogUploadIn(BaseModel):
    content: str
    format: str = Field("csv", pattern="^(csv|json)$")
    replace: bool = True


class CatalogUploadOut(BaseModel):
    imported: int
    skipped: List[Dict[str, object]]
    total_active: int


router = APIRouter(prefix="/api/catalog", tags=["catalog"])


def require_admin(x_admin_key: Optional[str] = Header(None, alias="X-Admin-Key")):
    if ADMIN_API_KEY and x_admin_key != ADMIN_API_KEY:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")


def _item_to_out(item: CatalogItem) -> CatalogItemOut:
    return CatalogItemOut(
        id=item.id,
        description=item.description,
        price=item.price,
        unit=item.unit,
        updated_at=item.updated_at.isoformat() if item.updated_at else None,
    )


def _refresh() -> None:
    from orcafacil.main import refresh_catalog_cache

    refresh_catalog_cache()


@router.get("/items", response_model=List[CatalogItemOut])
def list_catalog_items(
    limit: int = Query(500, ge=1, le=5000),
    offset: int = Query(0, ge=0),
    include_deleted: bool = Query(False),
):
    items = catalog_store.list_items(include_deleted=include_deleted)
    return [_item_to_out(item) for item in items[offset : offset + limit]]


@router.post("/items", response_model=CatalogItemOut)
def create_or_update_item(item: CatalogItemIn, _: None = Depends(require_admin)):
    try:
        data = catalog_store.upsert_item(item.model_dump())
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    _refresh()
    return _item_to_out(data)


@router.put("/items/{item_id}", response_model=CatalogItemOut)
def update_item(item_id: str, update: CatalogItemUpdate, _: None = Depends(require_admin)):
    current = catalog_store.get_item(item_id)
    if current is None:
        raise HTTPException(status_code=404, detail="Item not found")
    payload = {
        "id": item_id,
        "description": update.description or current.description,
        "price": update.price if update.price is not None else current.price,
        "unit": update.unit if update.unit is not None else current.unit,
    }
    data = catalog_store.upsert_item(payload)
    _refresh()
    return _item_to_out(data)


@router.delete("/items/{item_id}", response_model=Dict[str, bool])
def delete_item_route(item_id: str, _: None = Depends(require_admin)):
    deleted = catalog_store.delete_item(item_id)
    if deleted:
        _refresh()
    return {"deleted": deleted}


@router.post("/upload", response_model=CatalogUploadOut)
def upload_catalog(payload: CatalogUploadIn = Body(...), _: None = Depends(require_admin)):
    """Import a ``ID;Descrição;Preço`` file (or a JSON list); bad rows are reported, not fatal."""
    try:
        if payload.format == "json":
            result = parse_catalog_json(payload.content)
        else:
            result = parse_catalog_text(payload.content)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    if not result.items:
        raise HTTPException(status_code=422, detail="Nenhum produto válido encontrado no arquivo.")

    if payload.replace:
        imported = catalog_store.replace_catalog(result.items)
    else:
        imported = 0
        for item in result.items:
            catalog_store.upsert_item(
                {"id": item.id, "description": item.description, "price": item.price, "unit": item.unit}
            )
            imported += 1
    _refresh()
    return CatalogUploadOut(
        imported=imported,
        skipped=[{"line": line, "reason": reason} for line, reason in result.skipped],
        total_active=catalog_store.count_items()["active"],
    )
