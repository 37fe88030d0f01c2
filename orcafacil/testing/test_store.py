import pytest

from orcafacil.shared.models import CatalogItem, QuoteItem
from orcafacil.store import catalog_store, quote_store


def test_current_db_url_reads_environment(monkeypatch):
    monkeypatch.delenv("DB_URL", raising=False)
    monkeypatch.setenv("ORCAFACIL_DB_URL", "sqlite:///:memory:")
    assert catalog_store.current_db_url() == "sqlite:///:memory:"
    monkeypatch.setenv("DB_URL", "sqlite:///other.db")
    assert catalog_store.current_db_url() == "sqlite:///other.db"


def test_catalog_crud(store_db):
    item = catalog_store.upsert_item({"id": "1", "description": "CABO 2,5MM", "price": 2.5, "unit": "m"})
    assert item.id == "1"
    assert item.unit == "m"

    catalog_store.upsert_item({"id": "1", "description": "CABO 2,5MM PRETO", "price": 2.7})
    stored = catalog_store.get_item("1")
    assert stored.description == "CABO 2,5MM PRETO"
    assert stored.price == 2.7

    assert catalog_store.delete_item("1") is True
    assert catalog_store.delete_item("1") is False
    assert catalog_store.get_item("1") is None
    assert catalog_store.list_items() == []
    assert len(catalog_store.list_items(include_deleted=True)) == 1


def test_upsert_item_validation(store_db):
    with pytest.raises(ValueError):
        catalog_store.upsert_item({"id": "", "description": "CABO"})
    with pytest.raises(ValueError):
        catalog_store.upsert_item({"id": "1", "description": "CABO", "price": -1})


def test_replace_catalog_deactivates_missing_items(store_db):
    catalog_store.upsert_item({"id": "old", "description": "LAMPADA", "price": 9.0})
    catalog_store.upsert_item({"id": "1", "description": "CABO", "price": 2.0})
    written = catalog_store.replace_catalog(
        [
            CatalogItem(id="1", description="CABO", price=2.5),
            CatalogItem(id="2", description="DISJUNTOR", price=18.0),
        ]
    )
    assert written == 2
    assert [item.id for item in catalog_store.list_items()] == ["1", "2"]
    assert catalog_store.count_items() == {"active": 2, "total": 3}


def test_learned_match_last_write_wins(store_db):
    catalog_store.upsert_learned_match("cabo azul", "1")
    catalog_store.upsert_learned_match("cabo azul", "2")
    match = catalog_store.get_learned_match("cabo azul")
    assert match.product_id == "2"
    assert len(catalog_store.list_learned_matches()) == 1

    assert catalog_store.delete_learned_match("cabo azul") is True
    assert catalog_store.get_learned_match("cabo azul") is None

    catalog_store.upsert_learned_match("a", "1")
    catalog_store.upsert_learned_match("b", "1")
    assert catalog_store.clear_learned_matches() == 2


def test_quote_history(store_db):
    product = CatalogItem(id="1", description="CABO", price=2.5)
    items = [
        QuoteItem(id="a", quantity=10, original_request="cabo", catalog_item=product),
        QuoteItem(id="b", quantity=3, original_request="parafuso"),
    ]
    saved = quote_store.save_quote(" Obra Centro ", items, "10 cabo\n3 parafuso")
    assert saved["customer_name"] == "Obra Centro"
    assert saved["total_value"] == 25.0
    assert saved["items"][1]["pending"] is True

    fetched = quote_store.get_quote(saved["id"])
    assert fetched["original_input_text"] == "10 cabo\n3 parafuso"
    assert quote_store.delete_quote(saved["id"]) is True
    assert quote_store.get_quote(saved["id"]) is None
    assert quote_store.delete_quote(saved["id"]) is False


def test_quote_history_is_capped(store_db):
    item = QuoteItem(id="a", quantity=1, original_request="cabo")
    for number in range(quote_store.HISTORY_LIMIT + 2):
        quote_store.save_quote(f"cliente {number}", [item])
    assert len(quote_store.list_quotes(limit=100)) == quote_store.HISTORY_LIMIT
