from __future__ import annotations

import re

from .models import DEFAULT_UNIT, Specs

GRAM = "גרם"
KILOGRAM = 'ק"ג'
MILLILITER = 'מ"ל'
LITER = "ליטר"

MEASURE_UNITS: tuple[str, ...] = (GRAM, KILOGRAM, MILLILITER, LITER)

_UNIT_ALIASES: dict[str, str] = {
    "גרם": GRAM,
    "גר": GRAM,
    "גר'": GRAM,
    "ג'": GRAM,
    "gram": GRAM,
    "grams": GRAM,
    "gr": GRAM,
    "g": GRAM,
    'ק"ג': KILOGRAM,
    "קג": KILOGRAM,
    "קילו": KILOGRAM,
    "קילוגרם": KILOGRAM,
    "kg": KILOGRAM,
    "kilo": KILOGRAM,
    'מ"ל': MILLILITER,
    "מל": MILLILITER,
    "מיליליטר": MILLILITER,
    "ml": MILLILITER,
    "ליטר": LITER,
    "ליטרים": LITER,
    "ל'": LITER,
    "liter": LITER,
    "l": LITER,
    "יחידה": DEFAULT_UNIT,
    "יחידות": DEFAULT_UNIT,
    "יח'": DEFAULT_UNIT,
    "יח": DEFAULT_UNIT,
    "unit": DEFAULT_UNIT,
    "units": DEFAULT_UNIT,
    "piece": DEFAULT_UNIT,
    "pieces": DEFAULT_UNIT,
}

KNOWN_BRANDS: tuple[str, ...] = (
    "תנובה",
    "טרה",
    "שטראוס",
    "יטבתה",
    "אסם",
    "עלית",
    "תלמה",
    "זוגלובק",
    "עוף טוב",
    "מאמא עוף",
    "יד מרדכי",
    "סוגת",
    "ויסוצקי",
    "נסטלה",
    "פרי הגליל",
    "השחר העולה",
    "קוקה קולה",
)

_PERCENT_RE = re.compile(r"(\d+(?:\.\d+)?)\s*%")

# Longest aliases first so 'ק"ג' wins over a bare 'ק'.
_MEASURE_ALIASES = sorted(
    (alias for alias, unit in _UNIT_ALIASES.items() if unit in MEASURE_UNITS),
    key=len,
    reverse=True,
)
SIZE_RE = re.compile(
    r"(\d+(?:\.\d+)?)\s*(" + "|".join(re.escape(a) for a in _MEASURE_ALIASES) + r")(?![\w\"'])",
    re.IGNORECASE,
)


def normalize_marks(text: str) -> str:
    """Fold Hebrew geresh/gershayim and typographic quotes into ASCII quotes."""
    return (
        text.replace("״", '"')
        .replace("“", '"')
        .replace("”", '"')
        .replace("׳", "'")
        .replace("’", "'")
    )


def canonical_unit(token: str | None) -> str | None:
    if not token:
        return None
    return _UNIT_ALIASES.get(normalize_marks(token).strip().lower())


def is_measure_unit(unit: str | None) -> bool:
    return canonical_unit(unit) in MEASURE_UNITS


_BASE_UNITS: dict[str, tuple[str, float]] = {
    GRAM: (GRAM, 1.0),
    KILOGRAM: (GRAM, 1000.0),
    MILLILITER: (MILLILITER, 1.0),
    LITER: (MILLILITER, 1000.0),
}


def to_base_amount(value: float, unit: str | None) -> tuple[float, str] | None:
    """Express a measured amount in grams or millilitres; None for count units."""
    base = _BASE_UNITS.get(canonical_unit(unit))
    if base is None:
        return None
    return value * base[1], base[0]


def extract_percentage(text: str) -> float | None:
    m = _PERCENT_RE.search(text)
    return float(m.group(1)) if m else None


def extract_size(text: str) -> tuple[float, str] | None:
    m = SIZE_RE.search(text)
    if not m:
        return None
    unit = canonical_unit(m.group(2))
    if unit is None:
        return None
    return float(m.group(1)), unit


def extract_brand(text: str) -> str | None:
    for brand in KNOWN_BRANDS:
        if brand in text:
            return brand
    return None


def extract_specs(description: str | None) -> Specs:
    if not description:
        return Specs()
    text = normalize_marks(description)
    size = extract_size(text)
    return Specs(
        percentage=extract_percentage(text),
        size=size[0] if size else None,
        size_unit=size[1] if size else None,
        brand=extract_brand(text),
    )
