import importlib
import os

os.environ.setdefault("SKIP_LLM_SETUP", "1")

import pytest
from fastapi.testclient import TestClient

from orcafacil.app import catalog_api

CATALOG_CSV = (
    "ID;Descrição;Preço;Unidade\n"
    "1;CABO FLEXIVEL 2,5MM PRETO;2,50;m\n"
    "2;DISJUNTOR DIN 20A;18,90;un\n"
    "3;ELETRODUTO 3/4 PVC BARRA 3M;12,00;barra\n"
)


@pytest.fixture
def client(tmp_path, monkeypatch):
    monkeypatch.setenv("SKIP_LLM_SETUP", "1")
    monkeypatch.setenv("DB_URL", f"sqlite:///{tmp_path / 'api.db'}")
    monkeypatch.setattr(catalog_api, "ADMIN_API_KEY", None)
    import orcafacil.main as main

    main = importlib.reload(main)
    with TestClient(main.app) as test_client:
        yield test_client


def _load_catalog(client):
    response = client.post("/api/catalog/upload", json={"content": CATALOG_CSV})
    assert response.status_code == 200
    return response.json()


def test_health(client):
    response = client.get("/api/health")
    assert response.status_code == 200
    body = response.json()
    assert body["ok"] is True
    assert body["ai_enabled"] is False


def test_upload_and_list_catalog(client):
    body = _load_catalog(client)
    assert body["imported"] == 3
    assert body["total_active"] == 3

    items = client.get("/api/catalog/items").json()
    assert [item["id"] for item in items] == ["1", "2", "3"]

    bad = client.post("/api/catalog/upload", json={"content": "a;b;c\n"})
    assert bad.status_code == 422


def test_catalog_item_crud_refreshes_matching(client):
    _load_catalog(client)
    response = client.post("/api/catalog/items", json={"id": "9", "description": "LUVA PVC 3/4", "price": 1.5})
    assert response.status_code == 200

    parsed = client.post("/api/quote/parse", json={"text": "4 luva pvc 3/4"}).json()
    assert parsed["items"][0]["catalog_item"]["id"] == "9"

    updated = client.put("/api/catalog/items/9", json={"price": 2.0})
    assert updated.json()["price"] == 2.0
    assert client.put("/api/catalog/items/404", json={"price": 2.0}).status_code == 404

    assert client.delete("/api/catalog/items/9").json() == {"deleted": True}
    parsed = client.post("/api/quote/parse", json={"text": "4 luva pvc 3/4"}).json()
    assert parsed["items"][0]["pending"] is True


def test_admin_key_required_when_configured(client, monkeypatch):
    monkeypatch.setattr(catalog_api, "ADMIN_API_KEY", "segredo")
    payload = {"id": "9", "description": "LUVA", "price": 1.5}
    assert client.post("/api/catalog/items", json=payload).status_code == 401
    response = client.post("/api/catalog/items", json=payload, headers={"X-Admin-Key": "segredo"})
    assert response.status_code == 200


def test_quote_parse_flow(client):
    _load_catalog(client)
    response = client.post(
        "/api/quote/parse",
        json={"text": "10m cabo flexivel 2,5mm preto\neletroduto 3/4 - 21m\nparafuso sextavado"},
    )
    assert response.status_code == 200
    body = response.json()
    assert body["summary"] == {"total_value": 109.0, "found": 2, "pending": 1, "total_items": 3}
    assert body["items"][1]["conversion_log"] == "21m ÷ 3m = 7 barras"
    assert "parafuso sextavado" in body["pending_message"]


def test_quote_parse_errors(client):
    assert client.post("/api/quote/parse", json={"text": "cabo"}).status_code == 422
    _load_catalog(client)
    assert client.post("/api/quote/parse", json={"text": "  "}).status_code == 400
    assert client.post("/api/quote/parse", json={"text": "cabo", "mode": "ai"}).status_code == 503


def test_confirm_and_learned_endpoints(client):
    _load_catalog(client)
    response = client.post("/api/quote/confirm", json={"original_request": "parafuso sextavado", "product_id": "2"})
    assert response.status_code == 200
    assert client.post("/api/quote/confirm", json={"original_request": "x", "product_id": "nope"}).status_code == 404

    body = client.post("/api/quote/parse", json={"text": "parafuso sextavado"}).json()
    assert body["items"][0]["catalog_item"]["id"] == "2"
    assert body["items"][0]["is_learned"] is True

    learned = client.get("/api/learned").json()
    assert [entry["original_text"] for entry in learned] == ["parafuso sextavado"]
    assert client.delete("/api/learned", params={"text": "parafuso sextavado"}).json() == {"deleted": 1}
    assert client.delete("/api/learned", params={"text": "parafuso sextavado"}).status_code == 404


def test_suggest_endpoint(client):
    _load_catalog(client)
    body = client.get("/api/quote/suggest", params={"q": "cabo preto"}).json()
    assert body["results"][0]["id"] == "1"


def test_quotes_history(client):
    _load_catalog(client)
    payload = {
        "customer_name": "Obra Centro",
        "original_input_text": "10m cabo",
        "items": [
            {"quantity": 10, "original_request": "cabo", "catalog_item_id": "1"},
            {"quantity": 1, "original_request": "luva"},
        ],
    }
    saved = client.post("/api/quotes", json=payload)
    assert saved.status_code == 200
    quote = saved.json()
    assert quote["total_value"] == 25.0

    assert [entry["id"] for entry in client.get("/api/quotes").json()] == [quote["id"]]
    assert client.get(f"/api/quotes/{quote['id']}").json()["customer_name"] == "Obra Centro"
    assert client.delete(f"/api/quotes/{quote['id']}").json() == {"deleted": True}
    assert client.get(f"/api/quotes/{quote['id']}").status_code == 404

    assert client.post("/api/quotes", json={"items": []}).status_code == 400
    missing = {"items": [{"quantity": 1, "catalog_item_id": "zzz"}]}
    assert client.post("/api/quotes", json=missing).status_code == 404


def test_quote_summary_endpoint(client):
    _load_catalog(client)
    body = client.post(
        "/api/quotes/summary",
        json={"items": [{"quantity": 2, "catalog_item_id": "2", "unit_price_override": 10.0}]},
    ).json()
    assert body["summary"]["total_value"] == 20.0
