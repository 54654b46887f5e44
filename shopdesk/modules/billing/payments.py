"""
Payment state machine for invoices.

    Unpaid --(set Paid)--> Paid        (terminal)

All records sharing an invoice number move together inside one IMMEDIATE
transaction. The first genuine Unpaid -> Paid transition hands the invoice to
the referral engine in that same transaction, so a reward is never recorded
for a payment that rolled back.
"""

from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass
from typing import Optional

from ...constants import PAYMENT_METHODS, PAYMENT_PAID, PAYMENT_STATUSES, PAYMENT_UNPAID
from ...database.repositories.orders_repo import OrdersRepo
from ...database.repositories.products_repo import ProductsRepo
from ...database.repositories.referrals_repo import Referral
from ...database.transactions import run_in_write_tx
from ...errors import InvalidTransition, InvoiceNotFound, ValidationError
from ...utils.helpers import now_iso
from ..referrals.rewards import ReferralEngine
from .invoice import group_by_invoice

_log = logging.getLogger(__name__)


@dataclass
class PaymentOutcome:
    invoice_number: str
    status: str
    transitioned: bool              # False for idempotent no-ops
    method: Optional[str] = None
    paid_at: Optional[str] = None
    referral: Optional[Referral] = None


def _normalize_status(status) -> str:
    text = str(status or "").strip()
    for s in PAYMENT_STATUSES:
        if s.lower() == text.lower():
            return s
    raise ValidationError(f"Unknown payment status '{text}'. Allowed: {', '.join(PAYMENT_STATUSES)}")


def _normalize_method(method) -> str:
    text = str(method or "").strip()
    if not text:
        raise ValidationError("Payment method is required.")
    for m in PAYMENT_METHODS:
        if m.lower() == text.lower():
            return m
    raise ValidationError(f"Unsupported payment method '{text}'. Allowed: {', '.join(PAYMENT_METHODS)}")


class PaymentStateMachine:
    def __init__(self, conn: sqlite3.Connection, referrals: Optional[ReferralEngine] = None):
        self.conn = conn
        self.orders = OrdersRepo(conn)
        self.products = ProductsRepo(conn)
        self.referrals = referrals or ReferralEngine(conn)

    def set_payment_status(self, invoice_number: str, status, method=None) -> PaymentOutcome:
        """
        Move every record of `invoice_number` to `status`.

        - Paid on an Unpaid invoice: all records updated together, referral
          evaluated, `transitioned=True`.
        - Paid on a Paid invoice, Unpaid on an Unpaid invoice: no-op.
        - Unpaid on a Paid invoice: InvalidTransition.
        """
        target = _normalize_status(status)
        pay_method = _normalize_method(method) if target == PAYMENT_PAID else None

        def _apply() -> PaymentOutcome:
            records = self.orders.records_for_invoice(invoice_number)
            if not records:
                raise InvoiceNotFound(invoice_number)
            statuses = {r.get("payment_status") or PAYMENT_UNPAID for r in records}
            fully_paid = statuses == {PAYMENT_PAID}

            if target == PAYMENT_UNPAID:
                if PAYMENT_PAID in statuses:
                    raise InvalidTransition(PAYMENT_PAID, PAYMENT_UNPAID)
                return PaymentOutcome(invoice_number, PAYMENT_UNPAID, transitioned=False)

            if fully_paid:
                rep = records[-1]
                return PaymentOutcome(
                    invoice_number,
                    PAYMENT_PAID,
                    transitioned=False,
                    method=rep.get("payment_method"),
                    paid_at=rep.get("payment_date"),
                )

            paid_at = now_iso()
            changed = self.orders.mark_invoice_paid(invoice_number, method=pay_method, paid_at=paid_at)
            if changed == 0:
                # another writer paid it between our read and update
                return PaymentOutcome(invoice_number, PAYMENT_PAID, transitioned=False)

            summary = group_by_invoice(records, self.products.catalog())[0]
            referral = None
            if summary.customer_id is not None:
                order_id = summary.order_ids[0] if summary.order_ids else None
                referral = self.referrals.on_invoice_paid(
                    customer_id=int(summary.customer_id),
                    order_id=order_id,
                    subtotal=summary.total,
                    when=paid_at,
                )
            return PaymentOutcome(
                invoice_number,
                PAYMENT_PAID,
                transitioned=True,
                method=pay_method,
                paid_at=paid_at,
                referral=referral,
            )

        outcome = run_in_write_tx(self.conn, _apply, label="set_payment_status")
        if outcome.transitioned:
            _log.info("invoice %s paid via %s", invoice_number, outcome.method)
        else:
            _log.info("invoice %s already %s; nothing to do", invoice_number, outcome.status)
        return outcome
