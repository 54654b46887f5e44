from __future__ import annotations

import logging
import re

import pytest

from shopdesk.database.repositories.customers_repo import CustomersRepo
from shopdesk.database.repositories.referrals_repo import ReferralsRepo
from shopdesk.errors import ReferralNotFound
from shopdesk.modules.referrals.rewards import ReferralEngine, generate_referral_code, referral_stats

CODE_RX = re.compile(r"NH-\d{4}-[A-Z0-9]{4}")


@pytest.fixture()
def referrer(controller, make_customer, make_product):
    """Customer A with a minted code (minted by their first order)."""
    a = make_customer("Anika")
    p = make_product("Sample", quantity=100, selling_price=10)
    res = controller.place_order(a, [{"product_id": p, "quantity": 1}])
    return a, res.new_referral_code


@pytest.fixture()
def sofa(make_product):
    return make_product("Sofa", quantity=20, selling_price=12_000)


def test_code_format():
    assert CODE_RX.fullmatch(generate_referral_code(42))
    assert generate_referral_code(42).startswith("NH-0042-")
    assert generate_referral_code(123456).startswith("NH-3456-")


def test_first_order_mints_code_once(conn, controller, make_customer, make_product):
    b = make_customer("Bilal")
    p = make_product(quantity=10)

    first = controller.place_order(b, [{"product_id": p, "quantity": 1}])
    second = controller.place_order(b, [{"product_id": p, "quantity": 1}])

    assert first.success and CODE_RX.fullmatch(first.new_referral_code)
    assert second.success and second.new_referral_code is None
    assert CustomersRepo(conn).get(b).referral_code == first.new_referral_code


def test_failed_order_does_not_mint(conn, controller, make_customer, make_product):
    b = make_customer()
    p = make_product(quantity=1)
    res = controller.place_order(b, [{"product_id": p, "quantity": 2}])
    assert not res.success and res.new_referral_code is None
    assert CustomersRepo(conn).get(b).referral_code is None


def test_code_collision_draws_again(conn, make_customer):
    a = make_customer("A")
    b = make_customer("B")
    codes = iter(["NH-0001-AAAA", "NH-0001-AAAA", "NH-0002-BBBB"])
    engine = ReferralEngine(conn, code_factory=lambda _cid: next(codes))

    assert engine.ensure_referral_code(a) == "NH-0001-AAAA"
    assert engine.ensure_referral_code(b) == "NH-0002-BBBB"
    assert engine.ensure_referral_code(b) is None


def test_customer_created_with_code_is_linked(conn, make_customer, referrer):
    a, code = referrer
    b = make_customer("Bilal", referrer_code=code)
    cust = CustomersRepo(conn).get(b)
    assert cust.referred_by_id == a
    assert cust.referrer_code == code
    assert cust.source == "Referral by Anika"


def test_unknown_code_is_logged_and_ignored(conn, make_customer, caplog):
    with caplog.at_level(logging.WARNING):
        b = make_customer("Bilal", referrer_code="NH-9999-ZZZZ")
    cust = CustomersRepo(conn).get(b)
    assert cust.referred_by_id is None
    assert "invalid referral code" in caplog.text


def test_qualifying_payment_creates_one_referral(conn, controller, make_customer, referrer, sofa):
    a, code = referrer
    b = make_customer("Bilal", referrer_code=code)

    res = controller.place_order(b, [{"product_id": sofa, "quantity": 1}])
    outcome = controller.set_payment_status(res.order["invoice_number"], "Paid", "Cash")

    ref = outcome.referral
    assert ref is not None
    assert (ref.referrer_id, ref.referee_id, ref.reward_amount, ref.status) == (a, b, 500.0, "Completed")
    assert ref.order_id == res.order["id"]
    assert ref.to_record()["refereeId"] == b

    # a second qualifying order from the same referee adds nothing
    res2 = controller.place_order(b, [{"product_id": sofa, "quantity": 2}])
    again = controller.set_payment_status(res2.order["invoice_number"], "Paid", "UPI")
    assert again.transitioned and again.referral is None
    assert len(ReferralsRepo(conn).list_referrals(referrer_id=a)) == 1

    # paying the first invoice again is a no-op as well
    assert controller.set_payment_status(res.order["invoice_number"], "Paid", "Cash").referral is None

    before = controller.referral_stats()
    assert controller.mark_reward_as_paid(ref.referral_id) is True
    after = controller.referral_stats()
    row = next(r for r in after["by_referrer"] if r["referrer_id"] == a)
    assert row["earnings"] - next(r for r in before["by_referrer"] if r["referrer_id"] == a)["earnings"] == 500.0
    assert row["name"] == "Anika" and row["count"] == 1
    assert ReferralsRepo(conn).get(ref.referral_id).status == "RewardPaid"


def test_threshold_is_pre_tax_subtotal(controller, make_customer, make_product, referrer):
    _, code = referrer
    b = make_customer("Bilal", referrer_code=code)
    # 9 × 1,100 = 9,900 pre-tax (11,682 with tax): below the threshold
    p = make_product("Cheaper", quantity=20, selling_price=1_100)
    res = controller.place_order(b, [{"product_id": p, "quantity": 9}])
    outcome = controller.set_payment_status(res.order["invoice_number"], "Paid", "Cash")
    assert outcome.transitioned and outcome.referral is None

    # exactly 10,000 qualifies
    q = make_product("Exact", quantity=1, selling_price=10_500)
    res = controller.place_order(b, [{"product_id": q, "quantity": 1, "discount": 500}])
    assert controller.set_payment_status(res.order["invoice_number"], "Paid", "Cash").referral is not None


def test_unreferred_customer_earns_nothing(controller, make_customer, sofa):
    c = make_customer("Solo")
    res = controller.place_order(c, [{"product_id": sofa, "quantity": 1}])
    outcome = controller.set_payment_status(res.order["invoice_number"], "Paid", "Cash")
    assert outcome.referral is None
    assert controller.referral_stats()["total_referrals"] == 0


def test_reward_is_paid_at_most_once(conn, controller, make_customer, referrer, sofa):
    a, code = referrer
    b = make_customer("Bilal", referrer_code=code)
    res = controller.place_order(b, [{"product_id": sofa, "quantity": 1}])
    ref = controller.set_payment_status(res.order["invoice_number"], "Paid", "Cash").referral

    assert controller.mark_reward_as_paid(ref.referral_id) is True
    assert controller.mark_reward_as_paid(ref.referral_id) is False

    stats = controller.referral_stats()
    assert stats["total_referrals"] == 1
    assert stats["total_rewards_paid"] == 500.0
    assert ReferralEngine(conn).earnings(a) == 500.0

    with pytest.raises(ReferralNotFound):
        controller.mark_reward_as_paid(9999)


def test_stats_aggregate_per_referrer(conn, controller, make_customer, make_product, sofa):
    p = make_product(quantity=10, selling_price=1)
    a = make_customer("A")
    z = make_customer("Z")
    code_a = controller.place_order(a, [{"product_id": p, "quantity": 1}]).new_referral_code
    code_z = controller.place_order(z, [{"product_id": p, "quantity": 1}]).new_referral_code

    paid = []
    for name, code in (("B1", code_a), ("B2", code_a), ("B3", code_z)):
        cid = make_customer(name, referrer_code=code)
        inv = controller.place_order(cid, [{"product_id": sofa, "quantity": 1}]).order["invoice_number"]
        paid.append(controller.set_payment_status(inv, "Paid", "Cash").referral)

    controller.mark_reward_as_paid(paid[2].referral_id)

    stats = referral_stats(ReferralsRepo(conn).list_referrals())
    assert stats["total_referrals"] == 3
    assert stats["total_rewards_paid"] == 500.0
    by_id = {r["referrer_id"]: r for r in stats["by_referrer"]}
    assert (by_id[a]["count"], by_id[a]["earnings"]) == (2, 0.0)
    assert (by_id[z]["count"], by_id[z]["earnings"]) == (1, 500.0)
    # highest earner first
    assert stats["by_referrer"][0]["referrer_id"] == z
