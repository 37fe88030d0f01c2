import os
from pathlib import Path
from typing import List

os.environ.setdefault("SKIP_LLM_SETUP", "1")

import pytest

from orcafacil.shared.models import CatalogItem
from orcafacil.store import quote_store


def sample_catalog() -> List[CatalogItem]:
    return [
        CatalogItem(id="1", description="CABO FLEXIVEL 2,5MM PRETO", price=2.5, unit="m"),
        CatalogItem(id="2", description="CABO FLEXIVEL 2,5MM AZUL", price=2.5, unit="m"),
        CatalogItem(id="3", description="DISJUNTOR DIN 20A", price=18.9, unit="un"),
        CatalogItem(id="4", description="ELETRODUTO 3/4 PVC BARRA 3M", price=12.0, unit="barra"),
        CatalogItem(id="5", description="FITA ISOLANTE 20M", price=7.5, unit="un"),
    ]


@pytest.fixture
def catalog() -> List[CatalogItem]:
    return sample_catalog()


@pytest.fixture
def store_db(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    db_path = tmp_path / "test.db"
    monkeypatch.setenv("DB_URL", f"sqlite:///{db_path}")
    quote_store.init_db()
    return db_path
