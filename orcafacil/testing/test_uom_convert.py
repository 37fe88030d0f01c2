import pytest

from orcafacil.app.uom_convert import (
    apply_bar_conversion,
    conversion_rules_text,
    format_quantity,
    is_cable_tie,
    is_fastener_box,
    meters_to_bars,
    normalize_uom,
    roll_multiplier,
    roll_note,
    tie_pack_note,
)
from orcafacil.shared.models import CatalogItem, QuoteItem


def test_normalize_uom_aliases():
    assert normalize_uom("Metros") == "m"
    assert normalize_uom("pç") == "un"
    assert normalize_uom("Barras") == "barra"
    assert normalize_uom("cx.") == "cx"
    assert normalize_uom(None) == ""
    assert normalize_uom("galao") == "galao"


def test_format_quantity():
    assert format_quantity(200.0) == "200"
    assert format_quantity(2.5) == "2.5"
    assert format_quantity(0.125) == "0.125"


@pytest.mark.parametrize(
    "description, expected",
    [
        ("rolo fita isolante", (1.0, "un")),
        ("rolo conduite corrugado 3/4", (50.0, "m")),
        ("rolo eletroduto corrugado", (100.0, "m")),
        ("rolo cabo 2.5mm", (100.0, "m")),
    ],
)
def test_roll_multiplier(description, expected):
    assert roll_multiplier(description) == expected


def test_roll_note():
    assert roll_note(2, 100, "m") == "2 rolos -> 200 metros"
    assert roll_note(1, 50, "m") == "1 rolo -> 50 metros"
    assert roll_note(2, 1, "un") == "2 rolos = 2 unidades"


def test_is_fastener_box():
    assert is_fastener_box("parafuso 6mm")
    assert is_fastener_box("bucha 8")
    assert not is_fastener_box("caixa 4x2 parafuso")
    assert not is_fastener_box("tomada 10a")


def test_meters_to_bars_rounds_up():
    assert meters_to_bars(21) == 7
    assert meters_to_bars(22) == 8
    assert meters_to_bars(0) == 0
    with pytest.raises(ValueError):
        meters_to_bars(10, bar_length=0)


def test_apply_bar_conversion_only_for_bar_products():
    bar = CatalogItem(id="4", description="ELETRODUTO 3/4 PVC BARRA 3M", price=12.0, unit="barra")
    item = QuoteItem(id="x", quantity=21, original_request="eletroduto 3/4", catalog_item=bar)
    assert apply_bar_conversion(item, "m") is True
    assert item.quantity == 7
    assert item.conversion_log == "21m ÷ 3m = 7 barras"

    untouched = QuoteItem(id="y", quantity=21, original_request="eletroduto 3/4", catalog_item=bar)
    assert apply_bar_conversion(untouched, None) is False
    assert untouched.quantity == 21

    cable = CatalogItem(id="1", description="CABO", price=2.5, unit="m")
    metres = QuoteItem(id="z", quantity=21, original_request="cabo", catalog_item=cable)
    assert apply_bar_conversion(metres, "m") is False


def test_apply_bar_conversion_appends_to_existing_log():
    bar = CatalogItem(id="4", description="ELETRODUTO", price=12.0, unit="barra")
    item = QuoteItem(id="x", quantity=6, original_request="eletroduto", catalog_item=bar, conversion_log="nota")
    apply_bar_conversion(item, "m")
    assert item.conversion_log == "nota; 6m ÷ 3m = 2 barras"


def test_conversion_rules_text_mentions_bar_length():
    assert "metros ÷ 6" in conversion_rules_text(6.0)


def test_cable_tie_pack_rule():
    assert is_cable_tie("Abraçadeiras nylon 20cm")
    assert is_cable_tie("enforca gato preto")
    assert not is_cable_tie("fita isolante")
    assert tie_pack_note(50) == "50 unidades = 1 pacote de 50un"
    assert "1 pacote" in conversion_rules_text()
