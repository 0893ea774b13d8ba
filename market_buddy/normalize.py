from __future__ import annotations

import math
import re

from .models import DEFAULT_UNIT, ParsedLineItem
from .specs import canonical_unit, extract_size, normalize_marks


_FRACTION_RE = re.compile(r"^(?:(\d+)\s+)?(\d+)\/(\d+)$")
_LINE_SPLIT_RE = re.compile(r"[,\n]+")

_UNICODE_FRACTIONS = {
    "½": 0.5,
    "¼": 0.25,
    "¾": 0.75,
    "⅓": 1 / 3,
    "⅔": 2 / 3,
}


def parse_quantity_token(tok: str) -> float | None:
    """Parse tokens like '2', '1.5', '1/2' (the mixed form handled by caller)."""
    tok = tok.strip()
    if not tok:
        return None

    try:
        val = float(tok)
    except ValueError:
        pass
    else:
        # float() also accepts 'nan' and 'inf'
        return val if math.isfinite(val) else None

    m = _FRACTION_RE.match(tok)
    if m:
        whole, num, den = m.groups()
        if int(den) == 0:
            return None
        val = int(num) / int(den)
        if whole:
            val += int(whole)
        return float(val)

    return _UNICODE_FRACTIONS.get(tok)


def _leading_quantity(tokens: list[str]) -> tuple[float | None, int]:
    """Quantity at the head of the line and how many tokens it used."""
    if not tokens:
        return None, 0

    # mixed number: "1 1/2"
    if len(tokens) >= 2 and "/" in tokens[1]:
        q1 = parse_quantity_token(tokens[0])
        q2 = parse_quantity_token(tokens[1])
        if q1 is not None and q2 is not None and "/" not in tokens[0]:
            return q1 + q2, 2

    q = parse_quantity_token(tokens[0])
    if q is not None and q > 0:
        return q, 1
    return None, 0


def _clean_description(text: str) -> str:
    text = text.strip(" \t:,;.-•*")
    return re.sub(r"\s{2,}", " ", text).strip()


def parse_line(raw: str, *, confidence: float = 0.85) -> ParsedLineItem | None:
    """Parse one grocery line without any external help.

    Returns None when nothing that looks like a product is left.
    """
    text = _clean_description(normalize_marks(raw))
    if not text:
        return None

    tokens = text.split()
    quantity, used = _leading_quantity(tokens)
    rest = tokens[used:]
    unit = DEFAULT_UNIT

    if quantity is not None and rest and canonical_unit(rest[0]):
        unit = canonical_unit(rest[0])
        rest = rest[1:]

    description = " ".join(rest)
    size_tok = extract_size(description)
    size = size_tok[0] if size_tok else None

    # "עגבניות קילו": a unit word with no number of its own.
    if size is None and unit == DEFAULT_UNIT:
        for i, tok in enumerate(rest):
            found = canonical_unit(tok)
            if found:
                unit = found
                rest = rest[:i] + rest[i + 1:]
                break
        description = " ".join(rest)

    description = _clean_description(description)
    if not description:
        return None

    return ParsedLineItem(
        description=description,
        quantity=quantity if quantity is not None else 1.0,
        unit=unit,
        confidence=confidence,
        size=size,
    )


def parse_list(message: str, *, confidence: float = 0.85) -> list[ParsedLineItem]:
    """Split on commas/newlines and parse each line; unparseable lines are dropped."""
    items: list[ParsedLineItem] = []
    for line in _LINE_SPLIT_RE.split(message or ""):
        item = parse_line(line, confidence=confidence)
        if item is not None:
            items.append(item)
    return items
