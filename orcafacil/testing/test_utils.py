import math

import pytest

from orcafacil.app.utils import (
    clean_json_string,
    coerce_index,
    coerce_quantity,
    extract_json_payload,
    optional_text,
    parse_mapped_items,
)


def test_clean_json_string_strips_fences():
    assert clean_json_string('```json\n{"a": 1}\n```') == '{"a": 1}'


def test_extract_json_payload_ignores_chatter():
    raw = 'Claro! Aqui está:\n{"mappedItems": []}\nQualquer dúvida...'
    assert extract_json_payload(raw) == '{"mappedItems": []}'
    with pytest.raises(ValueError):
        extract_json_payload("sem json")


def test_parse_mapped_items_accepts_known_shapes():
    assert parse_mapped_items('```json\n{"mappedItems": [{"quantity": 1}]}\n```') == [{"quantity": 1}]
    assert parse_mapped_items('{"items": []}') == []
    assert parse_mapped_items('[{"a": 1}]') == [{"a": 1}]
    with pytest.raises(ValueError):
        parse_mapped_items('{"foo": 1}')


def test_coerce_quantity():
    assert coerce_quantity("2,5") == 2.5
    assert coerce_quantity(3) == 3.0
    assert coerce_quantity(True) == 1.0
    assert coerce_quantity(-3) == 1.0
    assert coerce_quantity("abc") == 1.0
    assert coerce_quantity(math.nan) == 1.0
    assert coerce_quantity(None) == 1.0


def test_coerce_index():
    assert coerce_index(2.0) == 2
    assert coerce_index("3") == 3
    assert coerce_index(2.5) == -1
    assert coerce_index(None) == -1
    assert coerce_index(True) == -1
    assert coerce_index("x") == -1


def test_optional_text():
    assert optional_text(None) is None
    assert optional_text("  ") is None
    assert optional_text("null") is None
    assert optional_text(" 2 rolos -> 200 metros ") == "2 rolos -> 200 metros"
