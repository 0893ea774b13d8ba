from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

DEFAULT_UNIT = "יחידה"


@dataclass(frozen=True)
class ParsedLineItem:
    # Full free-text product description, may embed brand/percentage/size.
    description: str

    quantity: float = 1.0
    unit: str = DEFAULT_UNIT

    # Parser's own confidence, independent of catalog matching.
    confidence: float = 1.0

    # Package size when the parser reported it apart from the description.
    size: float | None = None


@dataclass(frozen=True)
class CatalogProduct:
    """A single sellable SKU from the catalog store."""

    id: str
    name: str
    price: float
    brand: str | None = None
    size_value: float | None = None
    size_unit: str | None = None     # e.g. "גרם"
    unit_measure: str | None = None  # e.g. "יחידה", "ק\"ג"
    category: str | None = None

    @property
    def effective_size_unit(self) -> str | None:
        return self.size_unit or self.unit_measure


@dataclass(frozen=True)
class Specs:
    percentage: float | None = None
    size: float | None = None
    size_unit: str | None = None
    brand: str | None = None


@dataclass(frozen=True)
class MatchDetails:
    name_score: float
    unit_match: bool = False
    percentage_match: bool = False
    brand_match: bool = False
    size_match: bool = False

    # Name of the category rule that produced the candidate, if any.
    category: str | None = None


@dataclass(frozen=True)
class Candidate:
    product: CatalogProduct
    score: float
    details: MatchDetails


class ResolutionStatus(str, Enum):
    CERTAIN = "certain"
    NEEDS_SELECTION = "needs_selection"
    NOT_FOUND = "not_found"


@dataclass(frozen=True)
class ResolutionResult:
    item: ParsedLineItem
    status: ResolutionStatus
    chosen_product: CatalogProduct | None = None
    options: tuple[Candidate, ...] = ()
    reasoning: str | None = None
    confidence: float = 0.0


@dataclass(frozen=True)
class OracleVerdict:
    """Validated answer of the selection oracle (1-based indices)."""

    selected_indices: tuple[int, ...]
    confidence: float
    reasoning: str = ""
