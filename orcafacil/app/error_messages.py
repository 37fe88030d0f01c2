"""User-facing messages for the quote flow.

Plain-text Portuguese, same friendly tone everywhere, so the API, the CLI and
the web client show identical wording.
"""

from __future__ import annotations

from typing import Dict, Iterable, List


def _bullet_list(items: Iterable[str]) -> str:
    return "\n".join(f"- {item}" for item in items)


def empty_input_message() -> str:
    return "Cole ou digite o pedido antes de processar. Nenhuma linha foi encontrada no texto enviado."


def empty_catalog_message() -> str:
    return (
        "Catálogo vazio\n\n"
        "Importe a lista de produtos (ID;Descrição;Preço) antes de montar o orçamento."
    )


def ai_failure_message() -> str:
    return (
        "Não foi possível interpretar o pedido com a IA agora.\n\n"
        "- Tente novamente em instantes\n"
        "- ou use o modo local, que funciona sem conexão."
    )


def ai_disabled_message() -> str:
    return "O modo IA não está configurado neste servidor. Use o modo local."


def classification_busy_message() -> str:
    return "Já existe uma interpretação por IA em andamento. Aguarde o resultado antes de enviar outra."


def shortfall_warning(produced: int, expected: int) -> str:
    return (
        f"A IA devolveu {produced} item(ns) para {expected} linha(s) do pedido. "
        "Confira se alguma linha ficou de fora."
    )


def pending_items_message(pending: List[str], suggestions: Dict[str, List[str]] | None = None) -> str:
    """Summary for lines that still need a product picked by hand."""
    cleaned = [p.strip() for p in pending if p and p.strip()]
    if not cleaned:
        return ""
    lines: List[str] = []
    for request in cleaned:
        options = (suggestions or {}).get(request) or []
        if options:
            lines.append(f"{request} (sugestões: {', '.join(options)})")
        else:
            lines.append(request)
    return (
        "Itens sem correspondência no catálogo\n\n"
        f"{_bullet_list(lines)}\n\n"
        "Escolha o produto manualmente; a escolha fica salva para os próximos pedidos."
    )
