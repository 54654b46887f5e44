from __future__ import annotations

import pytest

from shopdesk.errors import CustomerNotFound, NegativeStock, ValidationError
from shopdesk.modules.fulfillment.controller import OrderResult


def _recorder(notifier):
    seen: list[tuple[str, list]] = []
    notifier.changed.connect(lambda collection, ids: seen.append((collection, list(ids))))
    return seen


def test_place_order_result_shape(controller, make_customer, make_product):
    p = make_product("Mug", quantity=5, selling_price=250)
    cid = make_customer("Chen")

    res = controller.place_order(cid, [{"product_id": p, "quantity": 2, "discount": 10}], service_fee=40)

    assert isinstance(res, OrderResult) and res.success and res.error is None
    order = res.order
    assert order["customer_id"] == cid
    assert order["payment_status"] == "Unpaid"
    assert order["service_fee"] == 40.0
    assert order["share_token"]
    assert order["items"] == [
        {"product_id": p, "product_name": "Mug", "quantity": 2, "unit_price": 250, "discount": 10}
    ]
    assert order["invoice_number"] in res.message


@pytest.mark.parametrize(
    "items, fee",
    [
        ([], None),
        (None, None),
        ([{"product_id": 1, "quantity": 0}], None),
        ([{"quantity": 1}], None),
        ([{"product_id": 1, "quantity": 1, "discount": -5}], None),
        ([{"product_id": 1, "quantity": 1}], -1),
        (["not a line"], None),
    ],
)
def test_invalid_requests_fail_before_writing(conn, controller, make_customer, make_product, items, fee):
    make_product(quantity=5)
    cid = make_customer()
    res = controller.place_order(cid, items, service_fee=fee)
    assert not res.success
    assert isinstance(res.error, ValidationError)
    assert res.message
    assert conn.execute("SELECT COUNT(*) FROM orders").fetchone()[0] == 0


def test_unknown_customer_fails(controller, make_product, qty):
    p = make_product(quantity=5)
    res = controller.place_order(4242, [{"product_id": p, "quantity": 1}])
    assert not res.success and isinstance(res.error, CustomerNotFound)
    assert qty(p) == 5


def test_committed_changes_are_announced(qtbot, controller, notifier, make_customer, make_product):
    p = make_product(quantity=5)
    cid = make_customer()
    seen = _recorder(notifier)

    with qtbot.waitSignal(notifier.changed, timeout=1000):
        res = controller.place_order(cid, [{"product_id": p, "quantity": 1}])

    collections = [c for c, _ in seen]
    assert ("orders", [res.order["id"]]) in seen
    assert ("products", [p]) in seen
    assert "stock_history" in collections
    assert ("customers", [cid]) in seen          # code minted on the first order

    seen.clear()
    controller.place_order(cid, [{"product_id": p, "quantity": 1}])
    assert "customers" not in [c for c, _ in seen]


def test_failed_operations_are_silent(controller, notifier, make_customer, make_product):
    p = make_product(quantity=1)
    cid = make_customer()
    seen = _recorder(notifier)

    assert not controller.place_order(cid, [{"product_id": p, "quantity": 3}]).success
    with pytest.raises(NegativeStock):
        controller.adjust_stock(p, -2, "Adjustment")
    assert seen == []


def test_payment_and_payout_notifications(controller, notifier, make_customer, make_product):
    p = make_product(quantity=5, selling_price=20_000)
    a = make_customer("A")
    code = controller.place_order(a, [{"product_id": p, "quantity": 1}]).new_referral_code
    b = controller.add_customer("B", referrer_code=code, phone="555-0101")
    inv = controller.place_order(b, [{"product_id": p, "quantity": 1}]).order["invoice_number"]
    seen = _recorder(notifier)

    outcome = controller.set_payment_status(inv, "Paid", "Credit Card")
    assert ("referrals", [outcome.referral.referral_id]) in seen
    assert "orders" in [c for c, _ in seen]

    seen.clear()
    controller.set_payment_status(inv, "Paid", "Credit Card")
    assert seen == []

    controller.mark_reward_as_paid(outcome.referral.referral_id)
    assert seen == [("referrals", [outcome.referral.referral_id])]
    seen.clear()
    controller.mark_reward_as_paid(outcome.referral.referral_id)
    assert seen == []


def test_adjust_stock_through_the_facade(controller, make_product, qty):
    p = make_product(quantity=3)
    entry = controller.adjust_stock(p, 4, "Received", "restock")
    assert entry.to_record() == {
        "id": entry.entry_id,
        "productId": p,
        "change": 4,
        "reason": "Received: restock",
        "date": entry.date,
        "newQuantity": 7,
        "kind": "Received",
    }
    assert qty(p) == 7


def test_history_views_require_known_customer(controller):
    with pytest.raises(CustomerNotFound):
        controller.customer_invoices(999)
    with pytest.raises(CustomerNotFound):
        controller.payment_history(999)
