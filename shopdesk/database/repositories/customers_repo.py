from __future__ import annotations
from dataclasses import dataclass
import logging
import sqlite3

from ...errors import CustomerNotFound, ValidationError
from ...utils.helpers import now_iso
from ..transactions import immediate_tx

_log = logging.getLogger(__name__)


@dataclass
class Customer:
    customer_id: int | None
    name: str
    email: str | None
    phone: str | None
    address: str | None
    source: str | None
    created_at: str | None
    referral_code: str | None
    referrer_code: str | None
    referred_by_id: int | None


_SELECT = (
    "SELECT customer_id, name, email, phone, address, source, created_at, "
    "referral_code, referrer_code, referred_by_id FROM customers"
)


class CustomersRepo:
    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn
        self.conn.row_factory = sqlite3.Row

    # ---- Internal helpers -------------------------------------------------

    @staticmethod
    def _normalize_text(s: str | None) -> str | None:
        if s is None:
            return None
        # Gentle normalization: trim surrounding whitespace (no extra assumptions)
        return s.strip()

    @staticmethod
    def _ensure_non_empty(value: str | None, field_label: str) -> None:
        if value is None or value.strip() == "":
            raise ValidationError(f"{field_label} cannot be empty.")

    # ---- Queries ----------------------------------------------------------

    def list_customers(self) -> list[Customer]:
        rows = self.conn.execute(_SELECT + " ORDER BY customer_id DESC").fetchall()
        return [Customer(**r) for r in rows]

    def get(self, customer_id: int) -> Customer | None:
        r = self.conn.execute(_SELECT + " WHERE customer_id=?", (customer_id,)).fetchone()
        return Customer(**r) if r else None

    def require(self, customer_id: int) -> Customer:
        c = self.get(customer_id)
        if c is None:
            raise CustomerNotFound(customer_id)
        return c

    def find_by_referral_code(self, code: str | None) -> Customer | None:
        code_n = self._normalize_text(code)
        if not code_n:
            return None
        r = self.conn.execute(_SELECT + " WHERE referral_code=?", (code_n,)).fetchone()
        return Customer(**r) if r else None

    # ---- Mutations --------------------------------------------------------

    def create(
        self,
        name: str,
        *,
        email: str | None = None,
        phone: str | None = None,
        address: str | None = None,
        source: str | None = None,
        referrer_code: str | None = None,
    ) -> int:
        """
        Insert a new customer.

        `referrer_code` is the code the customer arrived with. When it matches
        an existing customer's referral_code, that customer becomes the referrer
        (referred_by_id) and the source reads "Referral by <name>". An unknown
        code is kept on the row for reference but links to nobody.
        """
        self._ensure_non_empty(name, "Name")

        name_n = self._normalize_text(name)
        code_n = self._normalize_text(referrer_code) or None
        source_n = self._normalize_text(source) or ""

        with immediate_tx(self.conn):
            referred_by_id = None
            if code_n:
                referrer = self.find_by_referral_code(code_n)
                if referrer is not None:
                    referred_by_id = referrer.customer_id
                    source_n = f"Referral by {referrer.name}"
                    _log.info("customer %r referred by %s", name_n, referrer.customer_id)
                else:
                    _log.warning("invalid referral code %r supplied for customer %r", code_n, name_n)

            cur = self.conn.execute(
                "INSERT INTO customers(name, email, phone, address, source, created_at, "
                "referrer_code, referred_by_id) VALUES (?,?,?,?,?,?,?,?)",
                (
                    name_n,
                    self._normalize_text(email),
                    self._normalize_text(phone),
                    self._normalize_text(address),
                    source_n,
                    now_iso(),
                    code_n,
                    referred_by_id,
                ),
            )
            return int(cur.lastrowid)

    def update(
        self,
        customer_id: int,
        *,
        name: str,
        email: str | None,
        phone: str | None,
        address: str | None,
    ) -> None:
        """
        Update contact fields. Referral linkage and codes are engine-owned and
        not editable here.
        """
        self._ensure_non_empty(name, "Name")
        with immediate_tx(self.conn):
            cur = self.conn.execute(
                "UPDATE customers SET name=?, email=?, phone=?, address=? WHERE customer_id=?",
                (
                    self._normalize_text(name),
                    self._normalize_text(email),
                    self._normalize_text(phone),
                    self._normalize_text(address),
                    customer_id,
                ),
            )
            if cur.rowcount == 0:
                raise CustomerNotFound(customer_id)

    def set_referral_code_if_absent(self, customer_id: int, code: str) -> bool:
        """
        Assign the customer's own referral code only if none is set yet.
        True when this call assigned it. Runs inside the caller's transaction;
        a code collision surfaces as sqlite3.IntegrityError.
        """
        cur = self.conn.execute(
            "UPDATE customers SET referral_code=? WHERE customer_id=? AND referral_code IS NULL",
            (code, customer_id),
        )
        return cur.rowcount == 1
