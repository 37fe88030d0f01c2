import json, math, re
from typing import Any, List, Optional


def clean_json_string(s: str) -> str:
    s = s.strip()
    if s.startswith("```json"):
        s = s[7:]
    elif s.startswith("```"):
        s = s[3:]
    if s.endswith("```"):
        s = s[:-3]
    return s.strip()


def extract_json_payload(s: str) -> str:
    """Cut the outermost JSON object or array out of a model reply (fences and chatter dropped)."""
    if not s:
        raise ValueError("Resposta do modelo vazia")

    fence_match = re.search(r"```(?:json)?\s*([\s\S]+?)```", s, re.IGNORECASE)
    if fence_match:
        s = fence_match.group(1)
    else:
        s = clean_json_string(s)

    candidates = []
    for opener, closer in (("{", "}"), ("[", "]")):
        start = s.find(opener)
        end = s.rfind(closer)
        if start != -1 and end > start:
            candidates.append((start, s[start:end + 1]))
    if not candidates:
        raise ValueError("Resposta do modelo sem JSON")
    candidates.sort(key=lambda pair: pair[0])
    return candidates[0][1]


def parse_mapped_items(raw: str) -> List[Any]:
    """Return the item list of a classifier reply: ``{"mappedItems": [...]}``, ``{"items": [...]}`` or a bare list."""
    payload = json.loads(extract_json_payload(raw))
    if isinstance(payload, dict):
        for key in ("mappedItems", "mapped_items", "items"):
            if key in payload:
                payload = payload[key]
                break
        else:
            raise ValueError("Objeto JSON sem 'mappedItems'")
    if not isinstance(payload, list):
        raise ValueError("Esperado um array JSON de itens")
    return payload


def coerce_quantity(value: Any, default: float = 1.0) -> float:
    if isinstance(value, bool):
        return default
    try:
        qty = float(str(value).replace(",", ".")) if isinstance(value, str) else float(value)
    except (TypeError, ValueError):
        return default
    if math.isnan(qty) or math.isinf(qty) or qty <= 0:
        return default
    return qty


def coerce_index(value: Any) -> int:
    if isinstance(value, bool) or value is None:
        return -1
    try:
        number = float(value)
    except (TypeError, ValueError):
        return -1
    if math.isnan(number) or not number.is_integer():
        return -1
    return int(number)


def optional_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    if not text or text.lower() in ("null", "none"):
        return None
    return text
