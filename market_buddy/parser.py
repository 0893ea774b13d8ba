from __future__ import annotations

import logging
from typing import Any

from .errors import OracleError, OracleResponseMalformed
from .models import DEFAULT_UNIT, ParsedLineItem
from .normalize import parse_list, parse_quantity_token
from .oracle import decode_json_object
from .specs import canonical_unit

logger = logging.getLogger(__name__)

PARSE_INSTRUCTIONS = """You are a grocery shopping assistant that helps parse grocery lists in Hebrew.
For each item, extract the following:
- Quantity (default is 1 if not specified)
- Unit (e.g., גרם, ק"ג, יחידה, מ"ל, ליטר)
- Product name and details, keeping brand, fat percentage and package size in the text
- Size (if specified separately from quantity)

Return only JSON, with the following structure:
{
  "items": [
    {
      "quantity": number,
      "unit": string,
      "product": string,
      "size": number (optional),
      "confidence": number
    }
  ]
}"""


def _as_float(val: Any) -> float | None:
    if isinstance(val, bool):
        return None
    if isinstance(val, (int, float)):
        return float(val)
    if isinstance(val, str):
        return parse_quantity_token(val)
    return None


def items_from_payload(data: dict[str, Any]) -> list[ParsedLineItem]:
    rows = data.get("items")
    if not isinstance(rows, list):
        raise OracleResponseMalformed("parser response has no 'items' list")

    out: list[ParsedLineItem] = []
    for row in rows:
        if not isinstance(row, dict):
            raise OracleResponseMalformed(f"parser item is not an object: {row!r}")
        desc = row.get("product") or row.get("description") or row.get("name")
        if not isinstance(desc, str) or not desc.strip():
            continue

        qty = _as_float(row.get("quantity"))
        unit_raw = row.get("unit")
        unit_raw = unit_raw.strip() if isinstance(unit_raw, str) else ""
        unit = canonical_unit(unit_raw) or unit_raw or DEFAULT_UNIT
        conf = _as_float(row.get("confidence"))

        out.append(
            ParsedLineItem(
                description=desc.strip(),
                quantity=qty if qty is not None and qty > 0 else 1.0,
                unit=unit,
                confidence=max(0.0, min(conf, 1.0)) if conf is not None else 0.9,
                size=_as_float(row.get("size")),
            )
        )
    return out


class ListParser:
    """Free text -> ordered line items, via the parsing oracle when there is one."""

    def __init__(self, oracle=None, *, fallback_confidence: float = 0.85):
        self.oracle = oracle
        self.fallback_confidence = fallback_confidence

    def parse(self, message: str) -> list[ParsedLineItem]:
        if not message or not message.strip():
            return []

        if self.oracle is not None:
            try:
                raw = self.oracle.parse_free_text(message, PARSE_INSTRUCTIONS)
                items = items_from_payload(decode_json_object(raw))
            except OracleError as exc:
                logger.warning("parsing oracle failed, using local parser: %s", exc)
            except Exception:
                logger.exception("parsing oracle raised unexpectedly, using local parser")
            else:
                if items:
                    return items
                logger.warning("parsing oracle returned no items, using local parser")

        return parse_list(message, confidence=self.fallback_confidence)
