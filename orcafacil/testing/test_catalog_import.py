import json

import pytest

from orcafacil.app.catalog_import import (
    catalog_to_csv,
    parse_brl_price,
    parse_catalog_json,
    parse_catalog_text,
)
from orcafacil.shared.models import CatalogItem


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("R$ 1.234,56", 1234.56),
        ("2,50", 2.5),
        ("12.50", 12.5),
        ("1.234", 1234.0),
        (7, 7.0),
        ("abc", None),
        ("-1", None),
        ("", None),
        (None, None),
    ],
)
def test_parse_brl_price(raw, expected):
    assert parse_brl_price(raw) == expected


def test_parse_catalog_text_skips_header_and_bad_rows():
    text = (
        "ID;Descrição;Preço\n"
        "1;CABO FLEXIVEL 2,5MM PRETO;R$ 2,50\n"
        "2;;3,00\n"
        "3;DISJUNTOR 20A;abc\n"
        "4;FITA ISOLANTE;12.50;un\n"
        "\n"
        "1;CABO FLEXIVEL 2,5MM PRETO;2,70\n"
    )
    result = parse_catalog_text(text)
    assert [item.id for item in result.items] == ["1", "4"]
    assert result.items[0].price == 2.7
    assert result.items[1].unit == "un"
    assert [line for line, _ in result.skipped] == [3, 4]


def test_parse_catalog_text_without_header_and_with_bom():
    result = parse_catalog_text("\ufeff10;TOMADA 10A;9,90\n11;TOMADA 20A;10,90\n")
    assert [item.description for item in result.items] == ["TOMADA 10A", "TOMADA 20A"]
    assert result.skipped == []


def test_parse_catalog_text_other_delimiters():
    result = parse_catalog_text("id\tdescricao\tpreco\n1\tCABO\t2.50\n")
    assert result.items[0].price == 2.5
    assert parse_catalog_text("").items == []


def test_parse_catalog_text_short_rows_are_skipped():
    result = parse_catalog_text("1;CABO\n2;DISJUNTOR;10,00\n")
    assert [item.id for item in result.items] == ["2"]
    assert result.skipped[0][0] == 1


def test_parse_catalog_json():
    text = json.dumps(
        [
            {"id": "1", "description": "CABO", "price": "2,50", "unit": "m"},
            {"id": "2", "description": "", "price": 1},
            "oops",
        ]
    )
    result = parse_catalog_json(text)
    assert [item.id for item in result.items] == ["1"]
    assert len(result.skipped) == 2
    with pytest.raises(ValueError):
        parse_catalog_json('{"id": "1"}')


def test_catalog_to_csv_round_trips_through_parser():
    items = [CatalogItem(id="1", description="CABO 2,5MM", price=1234.5, unit="m")]
    text = catalog_to_csv(items)
    assert text.splitlines()[1] == "1;CABO 2,5MM;1234,50;m"
    assert parse_catalog_text(text).items[0].price == 1234.5


def test_parse_catalog_text_keeps_first_row_with_unit_word():
    result = parse_catalog_text("1;CABO FLEX 2,5MM;1,50;unidade\n2;FIO 4MM;2,00;m")
    assert [item.id for item in result.items] == ["1", "2"]
    assert result.items[0].unit == "unidade"
    assert result.skipped == []
