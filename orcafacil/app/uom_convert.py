from __future__ import annotations

import math
from typing import Optional, Tuple

from orcafacil.shared.models import QuoteItem
from orcafacil.shared.normalize import normalize_query

_UOM_ALIASES = {
    "m": "m",
    "mt": "m",
    "mts": "m",
    "metro": "m",
    "metros": "m",
    "un": "un",
    "und": "un",
    "unid": "un",
    "unidade": "un",
    "unidades": "un",
    "pc": "un",
    "pcs": "un",
    "pç": "un",
    "pçs": "un",
    "peca": "un",
    "pecas": "un",
    "peça": "un",
    "peças": "un",
    "barra": "barra",
    "barras": "barra",
    "rolo": "rolo",
    "rolos": "rolo",
    "bobina": "rolo",
    "cx": "cx",
    "caixa": "cx",
    "caixas": "cx",
    "pct": "pct",
    "pacote": "pct",
    "pacotes": "pct",
}

ROLL_LENGTH_M = 100
CONDUIT_ROLL_LENGTH_M = 50
TAPE_ROLL_UNITS = 1
BAR_LENGTH_M = 3.0
BOX_UNITS = 100
TIE_PACK_THRESHOLD = 10

_TAPE_WORDS = ("fita",)
_CONDUIT_WORDS = ("conduite", "kanaflex", "corrugado", "mangueira")
_RIGID_WORDS = ("condulete", "eletroduto", "barra")
FASTENER_WORDS = ("parafuso", "bucha", "prego", "arruela", "porca", "rebite")
TIE_WORDS = ("abracadeira", "enforca gato", "enforcagato", "zip tie")
# Electrical boxes are sold per unit; "caixa 4x2" is a product, not a pack.
ELECTRICAL_BOX_MARKERS = (
    "cm1",
    "cm2",
    "cm3",
    "cm4",
    "cm14",
    "4x2",
    "4x4",
    "3x3",
    "2x4",
    "eletrica",
    "passagem",
    "embutir",
    "sobrepor",
    "luz",
    "octogonal",
)


def normalize_uom(u: Optional[str]) -> str:
    if not u:
        return ""
    value = u.strip()
    if not value:
        return ""
    key = value.lower().rstrip(".")
    return _UOM_ALIASES.get(key, value.lower())


def format_quantity(value: float) -> str:
    """Render quantities the way sellers write them: ``200`` not ``200.0``, ``2,5`` stays ``2.5``."""
    if value is None:
        return ""
    text = f"{float(value):.3f}".rstrip("0")
    return text.rstrip(".")


def roll_multiplier(description: str) -> Tuple[float, str]:
    """Return (quantity per roll, unit) for a roll of the product in *description*.

    Tapes count one unit per roll, flexible conduit comes in 50 m rolls and
    cables/wires (the default) in 100 m rolls.
    """
    normalized = normalize_query(description)
    words = normalized.split(" ")
    if any(word.startswith(tape) for tape in _TAPE_WORDS for word in words):
        return float(TAPE_ROLL_UNITS), "un"
    is_conduit = any(word in normalized for word in _CONDUIT_WORDS)
    is_rigid = any(word in normalized for word in _RIGID_WORDS)
    if is_conduit and not is_rigid:
        return float(CONDUIT_ROLL_LENGTH_M), "m"
    return float(ROLL_LENGTH_M), "m"


def roll_note(rolls: float, multiplier: float, unit: str) -> str:
    noun = "rolo" if rolls == 1 else "rolos"
    if unit == "un":
        units = "unidade" if rolls * multiplier == 1 else "unidades"
        return f"{format_quantity(rolls)} {noun} = {format_quantity(rolls * multiplier)} {units}"
    return f"{format_quantity(rolls)} {noun} -> {format_quantity(rolls * multiplier)} metros"


def is_fastener_box(description: str) -> bool:
    normalized = normalize_query(description)
    if not any(word in normalized for word in FASTENER_WORDS):
        return False
    return not any(marker in normalized for marker in ELECTRICAL_BOX_MARKERS)


def is_cable_tie(description: str) -> bool:
    normalized = normalize_query(description)
    return any(word in normalized for word in TIE_WORDS)


def tie_pack_note(units: float) -> str:
    return f"{format_quantity(units)} unidades = 1 pacote de {format_quantity(units)}un"


def meters_to_bars(meters: float, bar_length: float = BAR_LENGTH_M) -> int:
    if bar_length <= 0:
        raise ValueError("bar_length must be positive")
    if meters <= 0:
        return 0
    return max(1, math.ceil(round(meters / bar_length, 6)))


def bar_note(meters: float, bars: int, bar_length: float = BAR_LENGTH_M) -> str:
    noun = "barra" if bars == 1 else "barras"
    return f"{format_quantity(meters)}m ÷ {format_quantity(bar_length)}m = {bars} {noun}"


def apply_bar_conversion(
    item: QuoteItem,
    request_unit: Optional[str],
    bar_length: float = BAR_LENGTH_M,
) -> bool:
    """Convert a metre quantity to whole bars when the matched product is sold per bar.

    Applies only when the order stated metres and the catalog entry's unit is
    ``barra``. The quantity is rounded up and the conversion appended to the
    item's log. Returns True when the item was changed.
    """
    if item.catalog_item is None:
        return False
    if normalize_uom(item.catalog_item.unit) != "barra":
        return False
    if normalize_uom(request_unit) != "m":
        return False

    meters = item.quantity
    bars = meters_to_bars(meters, bar_length)
    if bars <= 0:
        return False
    note = bar_note(meters, bars, bar_length)
    item.quantity = float(bars)
    item.conversion_log = f"{item.conversion_log}; {note}" if item.conversion_log else note
    return True


def conversion_rules_text(bar_length: float = BAR_LENGTH_M) -> str:
    """Conversion rules in prose, shared with the remote classifier prompt."""
    return "\n".join(
        [
            f"- Cabo/fio em rolo: 1 rolo = {ROLL_LENGTH_M} metros.",
            f"- Conduíte/corrugado/kanaflex em rolo: 1 rolo = {CONDUIT_ROLL_LENGTH_M} metros.",
            "- Fita isolante em rolo: 1 rolo = 1 unidade.",
            f"- Caixa de parafuso/bucha/prego/arruela/porca: 1 caixa = {BOX_UNITS} unidades "
            "(não vale para caixas elétricas como 4x2, 4x4, cm1, passagem, embutir, sobrepor).",
            f"- Abraçadeira/enforca gato acima de {TIE_PACK_THRESHOLD} unidades: 1 pacote "
            "(ex.: 50 abraçadeiras -> 1 pacote de 50un).",
            f"- Eletroduto pedido em metros e vendido em barra: barras = arredondar para cima "
            f"(metros ÷ {format_quantity(bar_length)}).",
        ]
    )
