from __future__ import annotations

from datetime import datetime
import os
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from sqlalchemy.pool import StaticPool
from sqlmodel import Field, Session, SQLModel, create_engine, select

from orcafacil.shared.models import CatalogItem, LearnedMatch

DEFAULT_DB_URL = "sqlite:///var/orcafacil.db"
_engine = None
_engine_url = None


def current_db_url() -> str:
    return os.getenv("DB_URL") or os.getenv("ORCAFACIL_DB_URL") or DEFAULT_DB_URL


class Product(SQLModel, table=True):
    __tablename__ = "products"

    id: Optional[int] = Field(default=None, primary_key=True)
    sku: str = Field(index=True, unique=True)
    description: str
    price: float = Field(default=0.0)
    unit: Optional[str] = Field(default=None)  # m, un, barra, rolo, cx
    is_active: bool = Field(default=True, index=True)
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow, index=True)


class LearnedMatchRow(SQLModel, table=True):
    __tablename__ = "learned_matches"

    id: Optional[int] = Field(default=None, primary_key=True)
    original_text: str = Field(index=True, unique=True)
    product_sku: str = Field(index=True)
    confirmed_at: datetime = Field(default_factory=datetime.utcnow, index=True)


def _ensure_sqlite_dir(url: str) -> str:
    if not url.startswith("sqlite:///"):
        return url
    filename = url.replace("sqlite:///", "", 1)
    if filename == ":memory:":
        return ":memory:"
    Path(filename).parent.mkdir(parents=True, exist_ok=True)
    return filename


def _get_engine():
    global _engine, _engine_url
    url = current_db_url()
    if _engine is None or _engine_url != url:
        kwargs = {}
        if url.startswith("sqlite"):
            kwargs["connect_args"] = {"check_same_thread": False}
            if _ensure_sqlite_dir(url) == ":memory:":
                kwargs["poolclass"] = StaticPool
        _engine = create_engine(url, echo=False, **kwargs)
        _engine_url = url
    return _engine


def _session() -> Session:
    return Session(_get_engine())


def init_db() -> None:
    SQLModel.metadata.create_all(_get_engine())


def _to_catalog_item(product: Product) -> CatalogItem:
    return CatalogItem(
        id=product.sku,
        description=product.description,
        price=product.price,
        unit=product.unit,
        created_at=product.created_at,
        updated_at=product.updated_at,
    )


def upsert_item(item_dict: Dict[str, object]) -> CatalogItem:
    if "id" not in item_dict or "description" not in item_dict:
        raise ValueError("Catalog item must contain 'id' and 'description'.")
    sku = str(item_dict["id"]).strip()
    description = str(item_dict["description"]).strip()
    if not sku or not description:
        raise ValueError("Catalog item 'id' and 'description' must be non-empty.")

    price_raw = item_dict.get("price")
    price_val = float(price_raw) if price_raw is not None else 0.0
    if price_val < 0:
        raise ValueError(f"Catalog item {sku!r} has a negative price.")
    unit = item_dict.get("unit")
    unit_val = str(unit).strip() if unit else None

    with _session() as session:
        product = session.exec(select(Product).where(Product.sku == sku)).one_or_none()
        if product is None:
            product = Product(sku=sku, description=description)
            session.add(product)
        product.description = description
        product.price = price_val
        product.unit = unit_val
        product.is_active = True
        product.updated_at = datetime.utcnow()
        session.commit()
        session.refresh(product)
        return _to_catalog_item(product)


def replace_catalog(items: Iterable[CatalogItem]) -> int:
    """Deactivate every stored product, then upsert *items* in order. Returns the count written."""
    with _session() as session:
        for product in session.exec(select(Product).where(Product.is_active == True)).all():  # noqa: E712
            product.is_active = False
            product.updated_at = datetime.utcnow()
            session.add(product)
        session.commit()
    written = 0
    for item in items:
        upsert_item({"id": item.id, "description": item.description, "price": item.price, "unit": item.unit})
        written += 1
    return written


def list_items(include_deleted: bool = False) -> List[CatalogItem]:
    """Catalog entries in insertion order; the matcher breaks ties by this order."""
    with _session() as session:
        stmt = select(Product)
        if not include_deleted:
            stmt = stmt.where(Product.is_active == True)  # noqa: E712
        stmt = stmt.order_by(Product.id)
        return [_to_catalog_item(row) for row in session.exec(stmt).all()]


def get_item(sku: str) -> Optional[CatalogItem]:
    with _session() as session:
        product = session.exec(
            select(Product).where(Product.sku == sku, Product.is_active == True)  # noqa: E712
        ).one_or_none()
        return _to_catalog_item(product) if product else None


def delete_item(sku: str) -> bool:
    with _session() as session:
        product = session.exec(select(Product).where(Product.sku == sku)).one_or_none()
        if product is None or not product.is_active:
            return False
        product.is_active = False
        product.updated_at = datetime.utcnow()
        session.add(product)
        session.commit()
        return True


def count_items() -> Dict[str, int]:
    with _session() as session:
        rows = session.exec(select(Product)).all()
    active = sum(1 for row in rows if row.is_active)
    return {"active": active, "total": len(rows)}


def get_learned_match(original_text: str) -> Optional[LearnedMatch]:
    with _session() as session:
        row = session.exec(
            select(LearnedMatchRow).where(LearnedMatchRow.original_text == original_text)
        ).one_or_none()
        if row is None:
            return None
        return LearnedMatch(original_text=row.original_text, product_id=row.product_sku, confirmed_at=row.confirmed_at)


def upsert_learned_match(original_text: str, product_sku: str) -> LearnedMatch:
    """Insert or overwrite the association for *original_text*; last write wins."""
    if not original_text or not product_sku:
        raise ValueError("Learned match needs 'original_text' and 'product_sku'.")
    with _session() as session:
        row = session.exec(
            select(LearnedMatchRow).where(LearnedMatchRow.original_text == original_text)
        ).one_or_none()
        if row is None:
            row = LearnedMatchRow(original_text=original_text, product_sku=product_sku)
            session.add(row)
            session.commit()
            session.refresh(row)
        elif row.product_sku != product_sku:
            row.product_sku = product_sku
            row.confirmed_at = datetime.utcnow()
            session.add(row)
            session.commit()
            session.refresh(row)
        return LearnedMatch(original_text=row.original_text, product_id=row.product_sku, confirmed_at=row.confirmed_at)


def list_learned_matches() -> List[LearnedMatch]:
    with _session() as session:
        rows = session.exec(select(LearnedMatchRow).order_by(LearnedMatchRow.confirmed_at.desc())).all()
        return [
            LearnedMatch(original_text=row.original_text, product_id=row.product_sku, confirmed_at=row.confirmed_at)
            for row in rows
        ]


def delete_learned_match(original_text: str) -> bool:
    with _session() as session:
        row = session.exec(
            select(LearnedMatchRow).where(LearnedMatchRow.original_text == original_text)
        ).one_or_none()
        if row is None:
            return False
        session.delete(row)
        session.commit()
        return True


def clear_learned_matches() -> int:
    with _session() as session:
        rows = session.exec(select(LearnedMatchRow)).all()
        for row in rows:
            session.delete(row)
        session.commit()
        return len(rows)
