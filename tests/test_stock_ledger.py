from __future__ import annotations

import sqlite3

import pytest

from shopdesk.database.repositories.stock_history_repo import StockHistoryEntry, StockHistoryRepo
from shopdesk.errors import (
    InsufficientStock,
    NegativeStock,
    ProductNotFound,
    ValidationError,
)
from shopdesk.modules.inventory.ledger import (
    Movement,
    StockLedger,
    StockMovementKind,
    StockRequest,
    classify,
)


def _sales(conn, product_id):
    return [e for e in StockHistoryRepo(conn).list_for_product(product_id) if e.kind == "Sale"]


# --------------------------- order placement ---------------------------

def test_place_order_decrements_and_writes_one_entry(controller, make_customer, make_product, conn, qty):
    pid = make_product("Lamp", quantity=5)
    cid = make_customer("Bela")

    res = controller.place_order(cid, [{"product_id": pid, "quantity": 3, "discount": 0}])

    assert res.success, res.message
    assert qty(pid) == 2
    (entry,) = _sales(conn, pid)
    assert entry.change == -3
    assert entry.new_quantity == 2
    assert res.order["invoice_number"] in entry.reason


def test_insufficient_stock_touches_nothing(controller, make_customer, make_product, conn, qty):
    a = make_product("A", quantity=10)
    b = make_product("B", quantity=1)
    cid = make_customer()
    before_orders = conn.execute("SELECT COUNT(*) FROM orders").fetchone()[0]

    res = controller.place_order(cid, [{"product_id": a, "quantity": 4}, {"product_id": b, "quantity": 2}])

    assert not res.success
    assert isinstance(res.error, InsufficientStock)
    assert (res.error.product_id, res.error.requested, res.error.available) == (b, 2, 1)
    assert qty(a) == 10 and qty(b) == 1
    assert _sales(conn, a) == [] and _sales(conn, b) == []
    assert conn.execute("SELECT COUNT(*) FROM orders").fetchone()[0] == before_orders


def test_duplicate_lines_are_checked_together(controller, make_customer, make_product, qty):
    pid = make_product(quantity=5)
    cid = make_customer()
    res = controller.place_order(cid, [{"product_id": pid, "quantity": 3}, {"product_id": pid, "quantity": 3}])
    assert not res.success and isinstance(res.error, InsufficientStock)
    assert res.error.requested == 6
    assert qty(pid) == 5


def test_unknown_product_is_rejected(controller, make_customer):
    res = controller.place_order(make_customer(), [{"product_id": 404, "quantity": 1}])
    assert not res.success
    assert isinstance(res.error, ProductNotFound)


@pytest.mark.parametrize("quantity", [0, -1, 1.5, "2", None, True])
def test_bad_quantity_is_a_validation_error(quantity):
    with pytest.raises(ValidationError):
        StockRequest.coerce({"product_id": 1, "quantity": quantity})


def test_request_accepts_camel_case_and_defaults_discount():
    r = StockRequest.coerce({"productId": "3", "quantity": 2.0})
    assert r == StockRequest(product_id=3, quantity=2, discount=0.0)


# --------------------------- manual adjustments ---------------------------

def test_manual_adjust_records_kind_and_reason(conn, make_product, qty):
    pid = make_product(quantity=4)
    ledger = StockLedger(conn)

    entry = ledger.manual_adjust(pid, 6, "received", "PO 17 from dealer")
    assert isinstance(entry, StockHistoryEntry)
    assert entry.reason == "Received: PO 17 from dealer"
    assert entry.kind == StockMovementKind.RECEIVED.value
    assert entry.new_quantity == 10
    assert qty(pid) == 10

    entry = ledger.manual_adjust(pid, -2, StockMovementKind.RETURN)
    assert entry.reason == "Return"
    assert qty(pid) == 8


def test_manual_adjust_cannot_go_negative(conn, make_product, qty):
    pid = make_product(quantity=2)
    with pytest.raises(NegativeStock) as exc:
        StockLedger(conn).manual_adjust(pid, -3, "Adjustment", "count correction")
    assert exc.value.current == 2 and exc.value.delta == -3
    assert qty(pid) == 2


@pytest.mark.parametrize("kind", [None, "", "   ", "Theft"])
def test_manual_adjust_requires_known_category(conn, make_product, kind):
    pid = make_product()
    with pytest.raises(ValidationError):
        StockLedger(conn).manual_adjust(pid, 1, kind)


def test_manual_adjust_rejects_zero_and_fractional(conn, make_product):
    pid = make_product()
    ledger = StockLedger(conn)
    with pytest.raises(ValidationError):
        ledger.manual_adjust(pid, 0, "Adjustment")
    with pytest.raises(ValidationError):
        ledger.manual_adjust(pid, 1.5, "Adjustment")


def test_manual_adjust_unknown_product(conn):
    with pytest.raises(ProductNotFound):
        StockLedger(conn).manual_adjust(999, 1, "Received")


# --------------------------- replay & ordering ---------------------------

def test_ledger_replays_to_quantity(controller, conn, make_customer, make_product, qty):
    p1 = make_product("P1", quantity=20)
    p2 = make_product("P2", quantity=0)
    cid = make_customer()
    ledger = StockLedger(conn)

    ledger.manual_adjust(p2, 7, "Received")
    assert controller.place_order(cid, [{"product_id": p1, "quantity": 5}, {"product_id": p2, "quantity": 2}]).success
    ledger.manual_adjust(p1, 1, "Return", "customer brought one back")
    assert not controller.place_order(cid, [{"product_id": p2, "quantity": 50}]).success
    ledger.manual_adjust(p1, -3, "Adjustment", "damaged")

    for pid in (p1, p2):
        assert ledger.replay_discrepancy(pid) == 0
        total = sum(e.change for e in StockHistoryRepo(conn).list_for_product(pid))
        assert total == qty(pid)

    # entries come back in insertion order by seq
    ids = [e.entry_id for e in StockHistoryRepo(conn).list_for_product(p1, oldest_first=True)]
    assert ids == sorted(ids)


def test_ledger_rows_are_append_only(conn, make_product):
    pid = make_product(quantity=3)
    (entry,) = StockHistoryRepo(conn).list_for_product(pid)
    with pytest.raises(sqlite3.IntegrityError):
        conn.execute("UPDATE stock_history SET change=99 WHERE seq=?", (entry.entry_id,))
    with pytest.raises(sqlite3.IntegrityError):
        conn.execute("DELETE FROM stock_history WHERE seq=?", (entry.entry_id,))


def test_schema_refuses_negative_quantity(conn, make_product):
    pid = make_product(quantity=1)
    with pytest.raises(sqlite3.IntegrityError):
        conn.execute("UPDATE products SET quantity=-1 WHERE product_id=?", (pid,))


# --------------------------- reporting ---------------------------

def _entry(change, reason, kind=None):
    return StockHistoryEntry(entry_id=1, product_id=1, change=change, reason=reason, kind=kind,
                             date="2024-01-01", new_quantity=0)


def test_classify_prefers_stored_kind_then_reason_text():
    assert classify(_entry(5, "anything")) is Movement.STOCK_IN
    assert classify(_entry(-1, "Adjustment: recount", "Adjustment")) is Movement.RETURN
    assert classify(_entry(-1, "Sale (Invoice INV-1)", "Sale")) is Movement.SALE
    # rows written before kind was stored
    assert classify(_entry(-1, "Purchase by walk-in")) is Movement.SALE
    assert classify(_entry(-1, "Invoice INV-20230101-01")) is Movement.SALE
    assert classify(_entry(-1, "Damaged in transit")) is Movement.RETURN


def test_history_filters_and_summary(controller, conn, make_customer, make_product):
    pid = make_product("Kettle", quantity=10, sku="KT-1", dealer="Acme")
    cid = make_customer()
    assert controller.place_order(cid, [{"product_id": pid, "quantity": 4}]).success
    controller.adjust_stock(pid, -1, "Return", "returned to dealer")

    sales = controller.stock_history(product_id=pid, movement="Sale")
    assert [e.change for e in sales] == [-4]
    stock_in = controller.stock_history(product_id=pid, movement=Movement.STOCK_IN)
    assert [e.change for e in stock_in] == [10]

    month = sales[0].date[:7]
    assert len(controller.stock_history(month=month)) == 3
    assert controller.stock_history(month="1999-01") == []

    (row,) = controller.stock_summary()
    assert row == {
        "product_id": pid, "name": "Kettle", "sku": "KT-1", "dealer": "Acme",
        "stock_in": 10, "sales_out": 4, "returns_out": 1, "net_change": 5,
    }


def test_unknown_movement_filter_is_a_validation_error(conn, controller, make_product):
    pid = make_product(quantity=3)
    with pytest.raises(ValidationError):
        StockLedger(conn).history(movement="bogus")
    with pytest.raises(ValidationError):
        controller.stock_history(product_id=pid, movement="Restock")
    assert [e.change for e in controller.stock_history(product_id=pid, movement="stock_in")] == [3]


def test_low_stock(controller, make_product):
    low = make_product("Low", quantity=2, low_stock_threshold=5)
    make_product("Plenty", quantity=50, low_stock_threshold=5)
    assert [p.product_id for p in controller.low_stock()] == [low]
