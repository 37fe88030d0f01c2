from orcafacil.app.error_messages import (
    ai_failure_message,
    empty_catalog_message,
    empty_input_message,
    pending_items_message,
    shortfall_warning,
)


def test_static_messages_are_portuguese():
    assert "pedido" in empty_input_message()
    assert "Catálogo vazio" in empty_catalog_message()
    assert "modo local" in ai_failure_message()


def test_shortfall_warning_counts():
    message = shortfall_warning(2, 3)
    assert "2 item(ns)" in message
    assert "3 linha(s)" in message


def test_pending_items_message_lists_requests_and_suggestions():
    message = pending_items_message(
        ["parafuso sextavado", "  ", "luva 3/4"],
        {"luva 3/4": ["LUVA PVC 3/4", "LUVA PVC 1/2"]},
    )
    assert message.startswith("Itens sem correspondência no catálogo")
    assert "- parafuso sextavado\n" in message
    assert "- luva 3/4 (sugestões: LUVA PVC 3/4, LUVA PVC 1/2)" in message


def test_pending_items_message_empty():
    assert pending_items_message([]) == ""
    assert pending_items_message(["", " "]) == ""
