from __future__ import annotations

import itertools
import logging
import math
from dataclasses import dataclass
from enum import Enum

from .config import MatchingConfig
from .errors import InvalidSelection, PendingSelectionsRemain, SessionClosed, SessionError
from .models import DEFAULT_UNIT, Candidate, CatalogProduct, ParsedLineItem, ResolutionResult, ResolutionStatus
from .parser import ListParser
from .resolve import Selector, resolve_items
from .specs import is_measure_unit, to_base_amount

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    COLLECTING = "collecting"
    AWAITING_SELECTION = "awaiting_selection"
    FINALIZING = "finalizing"
    CLOSED = "closed"


@dataclass(frozen=True)
class OrderLineItem:
    item_id: str
    product_id: str
    name: str
    quantity: float
    unit: str
    unit_price: float
    reasoning: str | None = None

    @property
    def line_total(self) -> float:
        return round(self.quantity * self.unit_price, 2)


@dataclass(frozen=True)
class PendingChoice:
    pending_id: str
    item: ParsedLineItem
    options: tuple[Candidate, ...]
    reasoning: str | None = None


@dataclass(frozen=True)
class UnresolvedItem:
    item_id: str
    item: ParsedLineItem
    reasoning: str | None = None


@dataclass(frozen=True)
class OrderCart:
    """Snapshot handed to order persistence once the session is finalized."""

    resolved_items: tuple[OrderLineItem, ...]
    pending_selections: tuple[PendingChoice, ...]
    unresolved_items: tuple[UnresolvedItem, ...]
    delivery_fee: float = 0.0

    @property
    def subtotal(self) -> float:
        return round(sum(i.line_total for i in self.resolved_items), 2)

    @property
    def total(self) -> float:
        return round(self.subtotal + self.delivery_fee, 2)


def _package_count(item: ParsedLineItem, product: CatalogProduct) -> float | None:
    """Packages to order when a weight or volume was asked of a packaged product.

    None when the line is priced per asked unit (count items, goods sold by weight).
    """
    if product.size_value is None or is_measure_unit(product.unit_measure):
        return None
    wanted = to_base_amount(item.quantity, item.unit)
    if wanted is None:
        return None
    pack = to_base_amount(product.size_value, product.effective_size_unit)
    if pack is None or pack[1] != wanted[1] or pack[0] <= 0:
        return 1.0
    return float(max(1, math.ceil(wanted[0] / pack[0] - 1e-9)))


def _line_item(item_id: str, item: ParsedLineItem, product: CatalogProduct, reasoning: str | None) -> OrderLineItem:
    packages = _package_count(item, product)
    if packages is not None:
        quantity, unit = packages, DEFAULT_UNIT
    else:
        quantity, unit = item.quantity, product.unit_measure or item.unit
    return OrderLineItem(
        item_id=item_id,
        product_id=product.id,
        name=product.name,
        quantity=quantity,
        unit=unit,
        unit_price=product.price,
        reasoning=reasoning,
    )


class OrderSession:
    """Running cart of one list-building conversation.

    Owned by a single session; callers serialize mutations per session id.
    """

    def __init__(
        self,
        *,
        catalog,
        parser: ListParser | None = None,
        select: Selector | None = None,
        config: MatchingConfig | None = None,
        delivery_fee: float = 10.0,
    ):
        self.catalog = catalog
        self.parser = parser or ListParser()
        self.select = select
        self.config = config or MatchingConfig()
        self.delivery_fee = delivery_fee

        self.state = SessionState.COLLECTING
        self.resolved_items: list[OrderLineItem] = []
        self.pending_selections: list[PendingChoice] = []
        self.unresolved_items: list[UnresolvedItem] = []
        self._ids = itertools.count(1)

    def _require_open(self) -> None:
        if self.state in (SessionState.FINALIZING, SessionState.CLOSED):
            raise SessionClosed(f"session is {self.state.value}")

    def _sync_state(self) -> None:
        self.state = SessionState.AWAITING_SELECTION if self.pending_selections else SessionState.COLLECTING

    def _load_catalog(self) -> list[CatalogProduct]:
        try:
            return self.catalog.list_products()
        except Exception as exc:
            logger.error("catalog read failed, matching against an empty catalog: %s", exc)
            return []

    def add_message(self, text: str) -> list[ResolutionResult]:
        self._require_open()
        items = self.parser.parse(text)
        if not items:
            return []

        products = self._load_catalog()
        results = resolve_items(items, products, self.select, self.config)

        for result in results:
            item_id = str(next(self._ids))
            if result.status is ResolutionStatus.CERTAIN:
                self.resolved_items.append(
                    _line_item(item_id, result.item, result.chosen_product, result.reasoning)
                )
            elif result.status is ResolutionStatus.NEEDS_SELECTION:
                self.pending_selections.append(
                    PendingChoice(item_id, result.item, result.options, result.reasoning)
                )
            else:
                self.unresolved_items.append(UnresolvedItem(item_id, result.item, result.reasoning))

        self._sync_state()
        logger.info(
            "message added: %d resolved, %d pending, %d unresolved in session",
            len(self.resolved_items), len(self.pending_selections), len(self.unresolved_items),
        )
        return results

    def select_option(self, pending_id: str, option_index: int) -> OrderLineItem:
        """Confirm option *option_index* (0-based) of a pending choice."""
        self._require_open()
        pending = next((p for p in self.pending_selections if p.pending_id == pending_id), None)
        if pending is None:
            raise InvalidSelection(f"unknown pending selection: {pending_id}")
        if not 0 <= option_index < len(pending.options):
            raise InvalidSelection(
                f"option {option_index} out of range for {pending_id} ({len(pending.options)} options)"
            )

        chosen = pending.options[option_index]
        line = _line_item(pending.pending_id, pending.item, chosen.product, "Selected by user")
        self.pending_selections.remove(pending)
        self.resolved_items.append(line)
        self._sync_state()
        return line

    def remove_resolved_item(self, item_id: str) -> bool:
        before = len(self.resolved_items)
        self.resolved_items = [i for i in self.resolved_items if i.item_id != item_id]
        return len(self.resolved_items) != before

    def snapshot(self) -> OrderCart:
        return OrderCart(
            resolved_items=tuple(self.resolved_items),
            pending_selections=tuple(self.pending_selections),
            unresolved_items=tuple(self.unresolved_items),
            delivery_fee=self.delivery_fee,
        )

    def finalize(self) -> OrderCart:
        self._require_open()
        if self.pending_selections:
            raise PendingSelectionsRemain(
                f"{len(self.pending_selections)} item(s) still need a choice"
            )
        self.state = SessionState.FINALIZING
        return self.snapshot()

    def close(self) -> None:
        """Mark the hand-off to order persistence as confirmed."""
        if self.state is not SessionState.FINALIZING:
            raise SessionError(f"cannot close a session that is {self.state.value}")
        self.state = SessionState.CLOSED
