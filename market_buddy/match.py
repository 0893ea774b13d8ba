from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Callable

from .config import MatchingConfig
from .models import Candidate, CatalogProduct, MatchDetails, ParsedLineItem, Specs
from .similarity import similarity
from .specs import canonical_unit, extract_percentage, extract_specs, is_measure_unit, normalize_marks

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SizeRequest:
    size: float | None
    unit: str | None


# (marker, size request, catalog) -> override candidates, or None to fall through
OverrideStrategy = Callable[[str, SizeRequest, list[CatalogProduct]], list[Candidate] | None]


def _same_size(product: CatalogProduct, req: SizeRequest) -> bool:
    if req.size is None or product.size_value is None:
        return False
    if abs(product.size_value - req.size) > 1e-9:
        return False
    if req.unit is None:
        return True
    return canonical_unit(product.effective_size_unit) == req.unit


def same_size_variants(
    marker: str,
    req: SizeRequest,
    catalog: list[CatalogProduct],
) -> list[Candidate] | None:
    """Every product carrying *marker* at exactly the requested size, flat score 1.0.

    Categories like cheese have many co-existing SKUs at one size; all of them
    go to the user instead of silently picking one.
    """
    if req.size is None:
        return None
    out = [
        Candidate(
            product=p,
            score=1.0,
            details=MatchDetails(name_score=1.0, size_match=True),
        )
        for p in catalog
        if marker in normalize_marks(p.name) and _same_size(p, req)
    ]
    return out or None


@dataclass(frozen=True)
class CategoryRule:
    markers: tuple[str, ...]
    strategy: OverrideStrategy

    def marker_in(self, text: str) -> str | None:
        # Most specific (longest) marker wins.
        for m in sorted(self.markers, key=len, reverse=True):
            if m in text:
                return m
        return None


CATEGORY_RULES: dict[str, CategoryRule] = {
    "cheese": CategoryRule(
        markers=("גבינה צהובה", "גבינה לבנה", "גבינה בולגרית", "גבינת שמנת", "גבינה", "גבינת"),
        strategy=same_size_variants,
    ),
}


def requested_size(item: ParsedLineItem, specs: Specs) -> SizeRequest:
    if specs.size is not None:
        return SizeRequest(specs.size, specs.size_unit)
    if item.size is not None:
        unit = canonical_unit(item.unit) if is_measure_unit(item.unit) else None
        return SizeRequest(item.size, unit)
    # "200 גרם גבינה": the measured quantity is the package size asked for.
    if is_measure_unit(item.unit):
        return SizeRequest(item.quantity, canonical_unit(item.unit))
    return SizeRequest(None, None)


def score_product(
    item: ParsedLineItem,
    specs: Specs,
    req: SizeRequest,
    product: CatalogProduct,
    config: MatchingConfig,
) -> Candidate:
    name_score = similarity(product.name, item.description)

    item_unit = canonical_unit(item.unit) or item.unit
    product_unit = canonical_unit(product.unit_measure) or product.unit_measure
    unit_match = bool(item_unit and product_unit and item_unit == product_unit)

    percentage_match = (
        specs.percentage is not None
        and extract_percentage(normalize_marks(product.name)) == specs.percentage
    )
    brand_match = specs.brand is not None and (
        product.brand == specs.brand or specs.brand in product.name
    )
    size_match = _same_size(product, req)

    score = name_score
    if unit_match:
        score += config.unit_bonus
    if percentage_match:
        score += config.percentage_bonus
    if brand_match:
        score += config.brand_bonus
    if size_match:
        score += config.size_bonus

    return Candidate(
        product=product,
        score=min(score, 1.0),
        details=MatchDetails(
            name_score=name_score,
            unit_match=unit_match,
            percentage_match=percentage_match,
            brand_match=brand_match,
            size_match=size_match,
        ),
    )


def _apply_category_rules(
    item: ParsedLineItem,
    req: SizeRequest,
    catalog: list[CatalogProduct],
    rules: dict[str, CategoryRule],
) -> list[Candidate] | None:
    text = normalize_marks(item.description)
    for name, rule in rules.items():
        marker = rule.marker_in(text)
        if marker is None:
            continue
        found = rule.strategy(marker, req, catalog)
        if found:
            logger.debug("category rule %s matched %d products for %r", name, len(found), item.description)
            return [replace(c, details=replace(c.details, category=name)) for c in found]
    return None


def generate_candidates(
    item: ParsedLineItem,
    catalog: list[CatalogProduct],
    config: MatchingConfig | None = None,
    *,
    rules: dict[str, CategoryRule] | None = None,
) -> list[Candidate]:
    """Rank catalog products for one parsed line, best first, at most max_candidates."""
    config = config or MatchingConfig()
    rules = CATEGORY_RULES if rules is None else rules
    if not catalog:
        return []

    specs = extract_specs(item.description)
    req = requested_size(item, specs)

    override = _apply_category_rules(item, req, catalog, rules)
    if override is not None:
        return override[: config.max_candidates]

    scored = [score_product(item, specs, req, p, config) for p in catalog]
    admitted = [c for c in scored if c.score >= config.admission_threshold]
    # Stable sort: catalog order breaks ties.
    admitted.sort(key=lambda c: -c.score)

    logger.debug(
        "%d of %d products above %.2f for %r",
        len(admitted), len(catalog), config.admission_threshold, item.description,
    )
    return admitted[: config.max_candidates]
