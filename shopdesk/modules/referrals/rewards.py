"""
Referral reward program.

- Every customer gets one shareable referral code, minted the first time an
  order is placed for them (never re-minted).
- A referred customer's first qualifying paid invoice (pre-tax subtotal at or
  above the threshold) creates one Referral for the (referrer, referee) pair.
- An admin marks the reward as paid once; repeating the action changes nothing.

Issuance and payout are idempotent through the database itself: a UNIQUE
(referrer_id, referee_id) constraint and conditional status/code updates.
"""

from __future__ import annotations

import logging
import secrets
import sqlite3
import string
from typing import Callable, Iterable, Mapping, Optional

from ...constants import (
    REFERRAL_CODE_PREFIX,
    REFERRAL_REWARD_AMOUNT,
    REFERRAL_REWARD_PAID,
    REFERRAL_REWARD_THRESHOLD,
)
from ...database.repositories.customers_repo import Customer, CustomersRepo
from ...database.repositories.referrals_repo import Referral, ReferralsRepo
from ...database.transactions import run_in_write_tx
from ...errors import DomainError, ReferralNotFound
from ...utils.helpers import now_iso

_log = logging.getLogger(__name__)

_CODE_ALPHABET = string.ascii_uppercase + string.digits
_MAX_CODE_ATTEMPTS = 8


def generate_referral_code(customer_id: int) -> str:
    """NH-0042-X7QK style: prefix, last four digits of the id, four random characters."""
    stem = str(customer_id).zfill(4)[-4:]
    token = "".join(secrets.choice(_CODE_ALPHABET) for _ in range(4))
    return f"{REFERRAL_CODE_PREFIX}-{stem}-{token}"


def referral_stats(
    referrals: Iterable[Referral],
    customers: Optional[Mapping[int, Customer]] = None,
) -> dict:
    """
    Aggregates for the referrals dashboard:
      {total_referrals, total_rewards_paid,
       by_referrer: [{referrer_id, name, count, earnings}, ...]}   (earnings desc)
    count is every referral of a referrer; earnings only counts RewardPaid ones.
    """
    customers = customers or {}
    by_referrer: dict[int, dict] = {}
    total = 0
    paid_total = 0.0
    for r in referrals:
        total += 1
        row = by_referrer.get(r.referrer_id)
        if row is None:
            c = customers.get(r.referrer_id)
            row = by_referrer[r.referrer_id] = {
                "referrer_id": r.referrer_id,
                "name": c.name if c else None,
                "count": 0,
                "earnings": 0.0,
            }
        row["count"] += 1
        if r.status == REFERRAL_REWARD_PAID:
            row["earnings"] += r.reward_amount
            paid_total += r.reward_amount
    ranked = sorted(by_referrer.values(), key=lambda x: (-x["earnings"], -x["count"], x["referrer_id"]))
    return {
        "total_referrals": total,
        "total_rewards_paid": paid_total,
        "by_referrer": ranked,
    }


class ReferralEngine:
    def __init__(
        self,
        conn: sqlite3.Connection,
        *,
        reward_amount: float = REFERRAL_REWARD_AMOUNT,
        threshold: float = REFERRAL_REWARD_THRESHOLD,
        code_factory: Callable[[int], str] = generate_referral_code,
    ):
        self.conn = conn
        self.customers = CustomersRepo(conn)
        self.referrals = ReferralsRepo(conn)
        self.reward_amount = float(reward_amount)
        self.threshold = float(threshold)
        self._code_factory = code_factory

    # ------------------------------------------------------------------
    # Code issuance
    # ------------------------------------------------------------------
    def ensure_referral_code(self, customer_id: int) -> str | None:
        """
        Mint the customer's own code if they have none. Returns the code when
        this call minted it, None when a code already existed.
        Joins the caller's transaction (order placement) when one is open.
        """

        def _apply() -> str | None:
            customer = self.customers.require(customer_id)
            if customer.referral_code:
                return None
            for _ in range(_MAX_CODE_ATTEMPTS):
                code = self._code_factory(customer.customer_id)
                try:
                    assigned = self.customers.set_referral_code_if_absent(customer.customer_id, code)
                except sqlite3.IntegrityError:
                    # code already taken by someone else; draw again
                    continue
                return code if assigned else None
            raise DomainError("Could not allocate a unique referral code; please retry.")

        code = run_in_write_tx(self.conn, _apply, label="ensure_referral_code")
        if code:
            _log.info("referral code %s issued to customer %s", code, customer_id)
        return code

    # ------------------------------------------------------------------
    # Qualification (called by the payment state machine)
    # ------------------------------------------------------------------
    def on_invoice_paid(
        self,
        *,
        customer_id: int,
        order_id: int,
        subtotal: float,
        when: Optional[str] = None,
    ) -> Referral | None:
        """
        Record the referral reward for a referred customer's qualifying paid
        invoice. Returns the new Referral, or None when nothing qualifies or the
        pair was already rewarded. Runs inside the payment transaction.
        """
        customer = self.customers.get(customer_id)
        if customer is None or customer.referred_by_id is None:
            return None
        if customer.referred_by_id == customer.customer_id:
            _log.warning("customer %s is recorded as their own referrer; no reward", customer_id)
            return None
        if subtotal < self.threshold:
            _log.info(
                "invoice subtotal %.2f below referral threshold %.2f for customer %s",
                subtotal, self.threshold, customer_id,
            )
            return None

        referral = self.referrals.insert_if_absent(
            referrer_id=customer.referred_by_id,
            referee_id=customer.customer_id,
            order_id=order_id,
            reward_amount=self.reward_amount,
            date=when or now_iso(),
        )
        if referral is None:
            _log.info("referral for pair (%s, %s) already recorded", customer.referred_by_id, customer_id)
        else:
            _log.info(
                "referral %s recorded: referrer=%s referee=%s reward=%.2f",
                referral.referral_id, referral.referrer_id, referral.referee_id, referral.reward_amount,
            )
        return referral

    # ------------------------------------------------------------------
    # Payout
    # ------------------------------------------------------------------
    def mark_reward_as_paid(self, referral_id: int) -> bool:
        """
        Completed -> RewardPaid. True when this call paid the reward; False when
        it had already been paid. Unknown ids raise ReferralNotFound.
        """

        def _apply() -> bool:
            referral = self.referrals.get(referral_id)
            if referral is None:
                raise ReferralNotFound(referral_id)
            if referral.is_paid:
                return False
            return self.referrals.mark_reward_paid(referral_id, paid_at=now_iso())

        changed = run_in_write_tx(self.conn, _apply, label="mark_reward_as_paid")
        if changed:
            _log.info("referral %s reward marked as paid", referral_id)
        else:
            _log.info("referral %s reward was already paid; nothing to do", referral_id)
        return changed

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------
    def stats(self) -> dict:
        customers = {c.customer_id: c for c in self.customers.list_customers()}
        return referral_stats(self.referrals.list_referrals(), customers)

    def earnings(self, referrer_id: int) -> float:
        return sum(r.reward_amount for r in self.referrals.list_referrals(referrer_id=referrer_id) if r.is_paid)
