import pytest

from market_buddy.catalog import StaticCatalog
from market_buddy.errors import InvalidSelection, PendingSelectionsRemain, SessionClosed, SessionError
from market_buddy.models import CatalogProduct, ResolutionStatus
from market_buddy.session import OrderSession, SessionState


CATALOG = [
    CatalogProduct(id="milk", name="חלב תנובה 3%", price=6.9, brand="תנובה", unit_measure="יחידה"),
    CatalogProduct(id="bread", name="לחם אחיד", price=7.5, unit_measure="יחידה"),
    CatalogProduct(id="emek", name="גבינה צהובה עמק", price=24.9, size_value=200, size_unit="גרם"),
    CatalogProduct(id="gouda", name="גבינה צהובה גאודה", price=27.0, size_value=200, size_unit="גרם"),
]

MESSAGE = "2 חלב תנובה 3%, גבינה צהובה 200 גרם, מוצר שלא קיים בכלל"


class BrokenCatalog:
    def list_products(self):
        raise RuntimeError("Supabase API error 503")


def _session(catalog=None):
    return OrderSession(catalog=catalog or StaticCatalog(CATALOG), delivery_fee=10.0)


def _all_ids(s):
    return (
        [i.item_id for i in s.resolved_items]
        + [p.pending_id for p in s.pending_selections]
        + [u.item_id for u in s.unresolved_items]
    )


def test_message_is_split_into_the_three_lists():
    s = _session()
    results = s.add_message(MESSAGE)

    assert [r.status for r in results] == [
        ResolutionStatus.CERTAIN,
        ResolutionStatus.NEEDS_SELECTION,
        ResolutionStatus.NOT_FOUND,
    ]
    assert [i.product_id for i in s.resolved_items] == ["milk"]
    assert s.resolved_items[0].quantity == 2.0
    assert [p.item.description for p in s.pending_selections] == ["גבינה צהובה 200 גרם"]
    assert [u.item.description for u in s.unresolved_items] == ["מוצר שלא קיים בכלל"]
    assert s.state is SessionState.AWAITING_SELECTION


def test_item_ids_are_unique_across_messages():
    s = _session()
    s.add_message(MESSAGE)
    s.add_message("לחם אחיד")
    ids = _all_ids(s)
    assert len(ids) == 4
    assert len(set(ids)) == 4


def test_empty_message_changes_nothing():
    s = _session()
    assert s.add_message("   ") == []
    assert s.state is SessionState.COLLECTING
    assert _all_ids(s) == []


def test_select_option_moves_pending_to_resolved():
    s = _session()
    s.add_message(MESSAGE)
    pending = s.pending_selections[0]

    line = s.select_option(pending.pending_id, 1)

    assert line.product_id == "gouda"
    assert line.item_id == pending.pending_id
    assert s.pending_selections == []
    assert [i.product_id for i in s.resolved_items] == ["milk", "gouda"]
    assert s.state is SessionState.COLLECTING
    assert len(set(_all_ids(s))) == len(_all_ids(s))


def test_invalid_selection_leaves_session_unchanged():
    s = _session()
    s.add_message(MESSAGE)
    pending_id = s.pending_selections[0].pending_id

    with pytest.raises(InvalidSelection):
        s.select_option(pending_id, 5)
    with pytest.raises(InvalidSelection):
        s.select_option(pending_id, -1)
    with pytest.raises(InvalidSelection):
        s.select_option("no-such-id", 0)

    assert len(s.pending_selections) == 1
    assert s.state is SessionState.AWAITING_SELECTION


def test_finalize_requires_no_pending_choices():
    s = _session()
    s.add_message(MESSAGE)
    with pytest.raises(PendingSelectionsRemain):
        s.finalize()
    assert s.state is SessionState.AWAITING_SELECTION


def test_finalize_and_close():
    s = _session()
    s.add_message(MESSAGE)
    s.select_option(s.pending_selections[0].pending_id, 0)

    cart = s.finalize()

    assert s.state is SessionState.FINALIZING
    assert cart.subtotal == pytest.approx(2 * 6.9 + 24.9)
    assert cart.total == pytest.approx(2 * 6.9 + 24.9 + 10.0)
    assert [u.item.description for u in cart.unresolved_items] == ["מוצר שלא קיים בכלל"]

    with pytest.raises(SessionClosed):
        s.add_message("לחם אחיד")
    with pytest.raises(SessionClosed):
        s.finalize()

    s.close()
    assert s.state is SessionState.CLOSED


def test_close_before_finalize_is_rejected():
    s = _session()
    with pytest.raises(SessionError):
        s.close()
    assert s.state is SessionState.COLLECTING


def test_remove_resolved_item():
    s = _session()
    s.add_message("לחם אחיד\nחלב תנובה 3%")
    first = s.resolved_items[0].item_id

    assert s.remove_resolved_item(first) is True
    assert s.remove_resolved_item(first) is False
    assert [i.product_id for i in s.resolved_items] == ["milk"]


def test_catalog_failure_marks_items_not_found():
    s = _session(BrokenCatalog())
    results = s.add_message("חלב, לחם")
    assert [r.status for r in results] == [ResolutionStatus.NOT_FOUND, ResolutionStatus.NOT_FOUND]
    assert len(s.unresolved_items) == 2
    assert s.state is SessionState.COLLECTING


CHEESES = [
    CatalogProduct(id=f"c{i}", name=name, price=20.0, size_value=200, size_unit="גרם")
    for i, name in enumerate(["גבינה צהובה עמק", "גבינה צהובה גאודה", "גבינה צהובה טל העמק"])
]


def test_leading_weight_goes_through_the_cheese_rule():
    s = _session(StaticCatalog(CHEESES))
    results = s.add_message("200 גרם גבינה צהובה")

    assert results[0].status is ResolutionStatus.NEEDS_SELECTION
    assert {c.product.id for c in results[0].options} == {"c0", "c1", "c2"}
    assert s.state is SessionState.AWAITING_SELECTION


def test_leading_weight_orders_whole_packages():
    s = _session(StaticCatalog(CHEESES))
    s.add_message("200 גרם גבינה צהובה")
    line = s.select_option(s.pending_selections[0].pending_id, 0)

    assert line.quantity == 1.0
    assert line.unit == "יחידה"
    assert line.line_total == 20.0

    s.add_message('0.4 ק"ג גבינה צהובה עמק')
    assert s.pending_selections == []
    # 400 grams of a 200 gram package
    assert s.resolved_items[-1].quantity == 2.0


def test_goods_sold_by_weight_keep_the_asked_amount():
    catalog = [CatalogProduct(id="tomato", name="עגבניות", price=8.0, unit_measure='ק"ג')]
    s = _session(StaticCatalog(catalog))
    s.add_message('2 ק"ג עגבניות')
    line = s.resolved_items[0]
    assert (line.quantity, line.unit, line.line_total) == (2.0, 'ק"ג', 16.0)
