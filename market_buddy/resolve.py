from __future__ import annotations

import logging
from typing import Callable

from .config import MatchingConfig
from .errors import OracleResponseMalformed
from .match import generate_candidates
from .models import (
    Candidate,
    CatalogProduct,
    OracleVerdict,
    ParsedLineItem,
    ResolutionResult,
    ResolutionStatus,
)

logger = logging.getLogger(__name__)

Selector = Callable[[str], OracleVerdict]


def _fmt_num(val: float | None) -> str:
    if val is None:
        return "?"
    return str(int(val)) if float(val).is_integer() else str(val)


def format_candidate(index: int, c: Candidate) -> str:
    p = c.product
    size = ""
    if p.size_value is not None:
        size = f"{_fmt_num(p.size_value)} {p.effective_size_unit or ''}".strip()
    return f"{index}. {p.name} ({p.brand or 'No brand'}, {size or 'no size'}, {p.price:.2f} ₪)"


def build_selection_prompt(item: ParsedLineItem, candidates: list[Candidate]) -> str:
    original = f"{_fmt_num(item.quantity)} {item.unit} {item.description}"
    if item.size is not None:
        original += f", {_fmt_num(item.size)}"
    listing = "\n".join(format_candidate(i, c) for i, c in enumerate(candidates, 1))
    return (
        "I need to match a grocery item to the best product in a database.\n\n"
        f"Original item: {original}\n\n"
        f"Candidate products:\n{listing}\n\n"
        "Please analyze these candidates and select the best match for the original item. "
        "Return your response as a JSON object with the following structure:\n"
        "{\n"
        '  "selectedIndices": number[], // 1-based indices of the matching products, best first ([] if none match)\n'
        '  "confidence": number, // your confidence in this selection from 0 to 1\n'
        '  "reasoning": string // brief explanation\n'
        "}"
    )


def _certain(item: ParsedLineItem, c: Candidate, confidence: float, reasoning: str) -> ResolutionResult:
    return ResolutionResult(
        item=item,
        status=ResolutionStatus.CERTAIN,
        chosen_product=c.product,
        reasoning=reasoning,
        confidence=confidence,
    )


def _needs_selection(
    item: ParsedLineItem,
    options: list[Candidate],
    confidence: float,
    reasoning: str,
) -> ResolutionResult:
    return ResolutionResult(
        item=item,
        status=ResolutionStatus.NEEDS_SELECTION,
        options=tuple(options),
        reasoning=reasoning,
        confidence=confidence,
    )


def _fallback(item: ParsedLineItem, candidates: list[Candidate]) -> ResolutionResult:
    best = max(candidates, key=lambda c: c.score)
    return _certain(item, best, best.score, "Fallback to highest fuzzy match score")


def resolve(
    item: ParsedLineItem,
    candidates: list[Candidate],
    select: Selector | None = None,
    config: MatchingConfig | None = None,
) -> ResolutionResult:
    """Decide between certain / needs-selection / not-found for one item.

    Never raises: any selector failure degrades to the best fuzzy candidate.
    """
    config = config or MatchingConfig()

    if not candidates:
        return ResolutionResult(
            item=item,
            status=ResolutionStatus.NOT_FOUND,
            reasoning="No product matches found",
        )

    if any(c.details.category for c in candidates):
        return _needs_selection(
            item, candidates, 1.0,
            f"Several {candidates[0].details.category} products share this size; please confirm",
        )

    if len(candidates) == 1 and candidates[0].score > config.pre_oracle_threshold:
        return _certain(item, candidates[0], candidates[0].score, "Single high-confidence match found")

    if select is None:
        return _fallback(item, candidates)

    try:
        verdict = select(build_selection_prompt(item, candidates))
        if not isinstance(verdict, OracleVerdict):
            raise OracleResponseMalformed(f"selector returned {type(verdict).__name__}, not a verdict")
        return _apply_verdict(item, candidates, verdict, config)
    except Exception as exc:
        logger.warning("selection oracle failed for %r, using fuzzy fallback: %s", item.description, exc)
        return _fallback(item, candidates)


def _apply_verdict(
    item: ParsedLineItem,
    candidates: list[Candidate],
    verdict: OracleVerdict,
    config: MatchingConfig,
) -> ResolutionResult:
    valid: list[int] = []
    for idx in verdict.selected_indices:
        if 1 <= idx <= len(candidates) and idx not in valid:
            valid.append(idx)
    reasoning = verdict.reasoning or "Selection oracle verdict"

    if not valid:
        if verdict.confidence > 0:
            return _needs_selection(item, candidates, verdict.confidence, reasoning)
        return ResolutionResult(
            item=item,
            status=ResolutionStatus.NOT_FOUND,
            reasoning=reasoning,
            confidence=verdict.confidence,
        )

    if len(valid) == 1:
        picked = candidates[valid[0] - 1]
        if verdict.confidence > config.post_oracle_threshold and len(candidates) == 1:
            return _certain(item, picked, verdict.confidence, reasoning)
        rest = [c for i, c in enumerate(candidates, 1) if i != valid[0]]
        return _needs_selection(item, [picked, *rest], verdict.confidence, reasoning)

    return _needs_selection(item, [candidates[i - 1] for i in valid], verdict.confidence, reasoning)


def resolve_items(
    items: list[ParsedLineItem],
    catalog: list[CatalogProduct],
    select: Selector | None = None,
    config: MatchingConfig | None = None,
) -> list[ResolutionResult]:
    """Resolve items one at a time, in order; oracle calls are never concurrent."""
    results: list[ResolutionResult] = []
    for item in items:
        candidates = generate_candidates(item, catalog, config)
        result = resolve(item, candidates, select, config)
        logger.info("resolved %r -> %s", item.description, result.status.value)
        results.append(result)
    return results
