from __future__ import annotations
from dataclasses import dataclass
import sqlite3
from typing import Optional

from ...constants import REFERRAL_COMPLETED, REFERRAL_REWARD_PAID


@dataclass
class Referral:
    referral_id: int
    referrer_id: int
    referee_id: int
    order_id: int
    date: str
    reward_amount: float
    status: str
    reward_paid_at: str | None = None

    @property
    def is_paid(self) -> bool:
        return self.status == REFERRAL_REWARD_PAID

    def to_record(self) -> dict:
        """Persisted/export shape: {id, referrerId, refereeId, orderId, date, rewardAmount, status}."""
        return {
            "id": self.referral_id,
            "referrerId": self.referrer_id,
            "refereeId": self.referee_id,
            "orderId": self.order_id,
            "date": self.date,
            "rewardAmount": self.reward_amount,
            "status": self.status,
        }


_SELECT = (
    "SELECT referral_id, referrer_id, referee_id, order_id, date, "
    "CAST(reward_amount AS REAL) AS reward_amount, status, reward_paid_at "
    "FROM referrals"
)


class ReferralsRepo:
    """
    Referral rewards. One row per (referrer, referee) pair, enforced by a
    UNIQUE constraint; status moves Completed -> RewardPaid once.

    Write methods run inside the caller's transaction.
    """

    def __init__(self, conn: sqlite3.Connection):
        conn.row_factory = sqlite3.Row
        self.conn = conn

    # ---- reads ----
    def get(self, referral_id: int) -> Referral | None:
        r = self.conn.execute(_SELECT + " WHERE referral_id=?", (referral_id,)).fetchone()
        return Referral(**r) if r else None

    def list_referrals(self, *, referrer_id: Optional[int] = None) -> list[Referral]:
        if referrer_id is None:
            rows = self.conn.execute(_SELECT + " ORDER BY date DESC, referral_id DESC").fetchall()
        else:
            rows = self.conn.execute(
                _SELECT + " WHERE referrer_id=? ORDER BY date DESC, referral_id DESC",
                (referrer_id,),
            ).fetchall()
        return [Referral(**r) for r in rows]

    # ---- writes ----
    def insert_if_absent(
        self,
        *,
        referrer_id: int,
        referee_id: int,
        order_id: int,
        reward_amount: float,
        date: str,
    ) -> Referral | None:
        """
        Create the pair's referral unless one exists. Returns the new row,
        or None when the pair already had a referral.
        """
        cur = self.conn.execute(
            """
            INSERT OR IGNORE INTO referrals (referrer_id, referee_id, order_id, date, reward_amount, status)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (referrer_id, referee_id, order_id, date, float(reward_amount), REFERRAL_COMPLETED),
        )
        if cur.rowcount != 1:
            return None
        return Referral(
            referral_id=int(cur.lastrowid),
            referrer_id=int(referrer_id),
            referee_id=int(referee_id),
            order_id=int(order_id),
            date=date,
            reward_amount=float(reward_amount),
            status=REFERRAL_COMPLETED,
        )

    def mark_reward_paid(self, referral_id: int, *, paid_at: str) -> bool:
        """True when this call moved the referral to RewardPaid."""
        cur = self.conn.execute(
            "UPDATE referrals SET status=?, reward_paid_at=? WHERE referral_id=? AND status=?",
            (REFERRAL_REWARD_PAID, paid_at, referral_id, REFERRAL_COMPLETED),
        )
        return cur.rowcount == 1
