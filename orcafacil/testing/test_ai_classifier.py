import json
from types import SimpleNamespace

import pytest

from orcafacil.app.llm import build_classification_prompt, create_chat_llm
from orcafacil.app.services.ai_classifier import (
    ClassificationFailure,
    classify,
    classify_with_report,
    serialize_catalog,
)
from orcafacil.shared.models import CatalogEmptyError


class FakeLLM:
    def __init__(self, response):
        self.response = response
        self.invocations = []

    def invoke(self, messages):
        self.invocations.append(messages)
        return SimpleNamespace(content=self.response)


class FailingLLM:
    def invoke(self, messages):
        raise TimeoutError("timed out")


def _reply(*items):
    return json.dumps({"mappedItems": list(items)})


def test_serialize_catalog(catalog):
    text, truncated = serialize_catalog(catalog)
    assert truncated is False
    assert text.splitlines()[0] == "0 | CABO FLEXIVEL 2,5MM PRETO | 2.50"
    assert len(text.splitlines()) == len(catalog)


def test_serialize_catalog_truncates(catalog):
    text, truncated = serialize_catalog(catalog, max_chars=80)
    assert truncated is True
    assert len(text.splitlines()) == 2


def test_prompt_carries_catalog_and_order():
    messages = build_classification_prompt().format_messages(
        catalog="0 | CABO | 2.50", order_text="10m cabo", conversion_rules="- regra"
    )
    assert len(messages) == 2
    assert "- regra" in messages[0].content
    assert '"mappedItems"' in messages[0].content
    assert "0 | CABO | 2.50" in messages[1].content
    assert "10m cabo" in messages[1].content


def test_classify_maps_indices_to_catalog(catalog):
    llm = FakeLLM(
        _reply(
            {"originalRequest": "10m cabo flexivel 2,5mm preto", "quantity": 10, "catalogIndex": 0, "conversionLog": None},
            {"originalRequest": "parafuso", "quantity": "2", "catalogIndex": -1},
            {"originalRequest": "luva", "quantity": 0, "catalogIndex": 99},
        )
    )
    items = classify(catalog, "10m cabo flexivel 2,5mm preto\nparafuso\nluva", llm)
    assert [item.catalog_item.id if item.catalog_item else None for item in items] == ["1", None, None]
    assert [item.quantity for item in items] == [10, 2, 1]
    assert items[2].catalog_index == -1
    assert len(llm.invocations) == 1


def test_classify_accepts_fenced_reply(catalog):
    raw = "```json\n" + _reply({"originalRequest": "fita", "quantity": 2, "catalogIndex": 4, "conversionLog": "2 rolos = 2 unidades"}) + "\n```"
    items = classify(catalog, "2 rolos fita", FakeLLM(raw))
    assert items[0].catalog_item.id == "5"
    assert items[0].conversion_log == "2 rolos = 2 unidades"


def test_shortfall_is_reported(catalog):
    llm = FakeLLM(_reply({"originalRequest": "cabo", "quantity": 1, "catalogIndex": 0}))
    result = classify_with_report(catalog, "cabo\ndisjuntor", llm)
    assert result.shortfall is True
    assert result.expected_lines == 2


def test_failures_raise_classification_failure(catalog):
    with pytest.raises(ClassificationFailure):
        classify(catalog, "cabo", FailingLLM())
    with pytest.raises(ClassificationFailure):
        classify(catalog, "cabo", FakeLLM("desculpe, não entendi"))
    with pytest.raises(ClassificationFailure):
        classify(catalog, "cabo", FakeLLM(_reply()))
    with pytest.raises(ClassificationFailure):
        classify(catalog, "cabo", None)


def test_empty_catalog_is_rejected_before_calling_the_model():
    llm = FakeLLM(_reply())
    with pytest.raises(CatalogEmptyError):
        classify([], "cabo", llm)
    assert llm.invocations == []


def test_create_chat_llm_validates_provider():
    with pytest.raises(ValueError):
        create_chat_llm("openai", "gpt-4o-mini", 0.0, 0.8, api_key=None)
    with pytest.raises(ValueError):
        create_chat_llm("unknown", "x", 0.0, 0.8)


def test_prompt_requires_every_line_and_per_colour_requests():
    system = build_classification_prompt().format_messages(
        catalog="0 | CABO | 2.50", order_text="10m cabo", conversion_rules="- regra"
    )[0].content
    assert "Toda linha do PEDIDO gera pelo menos um item" in system
    assert '"originalRequest" é o produto seguido da cor' in system
