from __future__ import annotations

import json
from dataclasses import dataclass, asdict
from datetime import datetime, timezone
from pathlib import Path

from .models import ResolutionResult, ResolutionStatus
from .session import OrderCart

FINISH_WORD = "סיים"


def fmt_qty(val: float) -> str:
    return str(int(val)) if float(val).is_integer() else f"{val:g}"


def fmt_price(val: float) -> str:
    return f"{val:.2f}₪"


def render_result(result: ResolutionResult, *, max_options: int = 3) -> str:
    item = result.item
    if result.status is ResolutionStatus.CERTAIN:
        p = result.chosen_product
        return f"✓ {fmt_qty(item.quantity)} {p.unit_measure or item.unit} {p.name} - {fmt_price(p.price)}"

    if result.status is ResolutionStatus.NEEDS_SELECTION:
        lines = [f"אנא בחר את האפשרות המתאימה עבור: {item.description} ({fmt_qty(item.quantity)} {item.unit})"]
        for i, c in enumerate(result.options[:max_options], 1):
            p = c.product
            lines.append(f"  {i}. {p.name} ({p.brand or 'ללא מותג'}) - {fmt_price(p.price)}")
        return "\n".join(lines)

    return f"✗ לא מצאתי את \"{item.description}\" בקטלוג. אנא נסח מחדש או הוסף פרטים."


def render_results(results: list[ResolutionResult], *, max_options: int = 3) -> str:
    return "\n".join(render_result(r, max_options=max_options) for r in results)


def summarize(results: list[ResolutionResult]) -> dict[str, int]:
    return {
        "total": len(results),
        "certain": sum(1 for r in results if r.status is ResolutionStatus.CERTAIN),
        "needs_selection": sum(1 for r in results if r.status is ResolutionStatus.NEEDS_SELECTION),
        "not_found": sum(1 for r in results if r.status is ResolutionStatus.NOT_FOUND),
    }


def render_cart(cart: OrderCart) -> str:
    lines = ["סיכום הזמנה:"]
    for i, it in enumerate(cart.resolved_items, 1):
        lines.append(f"{i}. {fmt_qty(it.quantity)} {it.unit} {it.name} - {fmt_price(it.line_total)}")
    lines.append(f"- משלוח - {fmt_price(cart.delivery_fee)}")
    lines.append("")
    lines.append(f'סה"כ {fmt_price(cart.total)}')
    lines.append("")
    lines.append(f'לסיום ההזמנה הקלד "{FINISH_WORD}"')
    lines.append("להוספת פריטים נוספים, הקלד אותם כעת")
    return "\n".join(lines)


@dataclass
class CartLineReport:
    item_id: str
    product_id: str
    name: str
    quantity: float
    unit: str
    unit_price: float
    line_total: float


@dataclass
class CartReport:
    timestamp: str
    items: list[CartLineReport]
    unresolved: list[str]
    subtotal: float
    delivery_fee: float
    total: float

    def write_json(self, path: str = "artifacts/cart.json") -> str:
        out = Path(path)
        out.parent.mkdir(parents=True, exist_ok=True)
        out.write_text(json.dumps(asdict(self), indent=2, ensure_ascii=False), encoding="utf-8")
        return str(out)


def build_report(cart: OrderCart) -> CartReport:
    return CartReport(
        timestamp=datetime.now(timezone.utc).isoformat(),
        items=[
            CartLineReport(
                item_id=i.item_id,
                product_id=i.product_id,
                name=i.name,
                quantity=i.quantity,
                unit=i.unit,
                unit_price=i.unit_price,
                line_total=i.line_total,
            )
            for i in cart.resolved_items
        ],
        unresolved=[u.item.description for u in cart.unresolved_items],
        subtotal=cart.subtotal,
        delivery_fee=cart.delivery_fee,
        total=cart.total,
    )
