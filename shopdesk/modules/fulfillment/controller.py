from __future__ import annotations

import logging
import secrets
import sqlite3
from dataclasses import dataclass
from typing import Any, Iterable, Optional

from PySide6.QtCore import QObject

from ..base_module import (
    BaseModule,
    ChangeNotifier,
    CUSTOMERS,
    ORDERS,
    PRODUCTS,
    REFERRALS,
    STOCK_HISTORY,
)
from ..billing.invoice import InvoiceAssembler, InvoiceSummary
from ..billing.payments import PaymentOutcome, PaymentStateMachine
from ..inventory.ledger import Movement, StockLedger, StockRequest
from ..orders.normalizer import CanonicalLine
from ..referrals.rewards import ReferralEngine

from ...database.repositories.customers_repo import CustomersRepo
from ...database.repositories.orders_repo import OrderLine, OrdersRepo
from ...database.repositories.products_repo import Product, ProductsRepo
from ...database.repositories.stock_history_repo import StockHistoryEntry
from ...database.transactions import run_in_write_tx
from ...errors import DomainError, ValidationError
from ...utils.helpers import invoice_date_prefix, now_iso
from ...utils.validators import is_non_negative_number

_log = logging.getLogger(__name__)


@dataclass
class OrderResult:
    success: bool
    order: Optional[dict] = None
    message: Optional[str] = None
    new_referral_code: Optional[str] = None
    error: Optional[DomainError] = None


class FulfillmentController(BaseModule):
    """
    Entry point for request handlers and views.

    Operations:
      place_order          check + decrement stock, write the itemized order, mint referral code
      adjust_stock         manual stock movement with a ledger entry
      set_payment_status   invoice payment transition (+ referral evaluation)
      mark_reward_as_paid  referral payout
      canonical_lines      normalized lines of an invoice

    Every committed mutation is announced on `notifier.changed(collection, ids)`.
    """

    def __init__(
        self,
        conn: sqlite3.Connection,
        notifier: Optional[ChangeNotifier] = None,
        parent: Optional[QObject] = None,
    ):
        super().__init__(conn, notifier, parent)

        # Repos
        self.products = ProductsRepo(conn)
        self.customers = CustomersRepo(conn)
        self.orders = OrdersRepo(conn)

        # Engine services
        self.ledger = StockLedger(conn)
        self.referrals = ReferralEngine(conn)
        self.invoices = InvoiceAssembler(conn)
        self.payments = PaymentStateMachine(conn, self.referrals)

    # ------------------------------------------------------------------
    # Orders
    # ------------------------------------------------------------------
    def place_order(self, customer_id: int, items: Iterable[Any], service_fee=None) -> OrderResult:
        """
        All-or-nothing placement. Domain failures (validation, unknown customer
        or product, insufficient stock, exhausted retries) come back as a failed
        OrderResult; nothing is written in that case.
        """
        try:
            requests = [StockRequest.coerce(it) for it in (items or [])]
            if not requests:
                raise ValidationError("No items in order.")
            fee = 0.0 if service_fee is None else service_fee
            if not is_non_negative_number(fee):
                raise ValidationError("Service fee must be a non-negative number.")
            fee = float(fee)
        except DomainError as e:
            return self._failed(customer_id, e)

        def _apply():
            customer = self.customers.require(customer_id)
            order_date = now_iso()
            invoice_number = self.orders.next_invoice_number(invoice_date_prefix())
            entries = self.ledger.reserve_and_decrement(
                requests, invoice_number=invoice_number, date=order_date
            )
            catalog = self.products.get_many(r.product_id for r in requests)
            lines = [
                OrderLine(
                    product_id=r.product_id,
                    product_name=catalog[r.product_id].name,
                    quantity=r.quantity,
                    unit_price=catalog[r.product_id].selling_price,
                    discount=r.discount,
                )
                for r in requests
            ]
            order_id = self.orders.insert_itemized(
                customer_id=customer.customer_id,
                invoice_number=invoice_number,
                order_date=order_date,
                lines=lines,
                service_fee=fee,
                share_token=secrets.token_urlsafe(16),
            )
            new_code = self.referrals.ensure_referral_code(customer.customer_id)
            return order_id, invoice_number, entries, new_code

        try:
            order_id, invoice_number, entries, new_code = run_in_write_tx(
                self.conn, _apply, label="place_order"
            )
        except DomainError as e:
            return self._failed(customer_id, e)
        except sqlite3.Error:
            _log.exception("place_order: storage error for customer %s", customer_id)
            raise

        _log.info(
            "order %s placed: invoice=%s customer=%s lines=%d",
            order_id, invoice_number, customer_id, len(requests),
        )
        self.notifier.notify(ORDERS, [order_id])
        self.notifier.notify(PRODUCTS, [e.product_id for e in entries])
        self.notifier.notify(STOCK_HISTORY, [e.entry_id for e in entries])
        if new_code:
            self.notifier.notify(CUSTOMERS, [customer_id])

        return OrderResult(
            success=True,
            order=self.orders.get_record(order_id),
            message=f"Order placed. Invoice {invoice_number}.",
            new_referral_code=new_code,
        )

    def _failed(self, customer_id, error: DomainError) -> OrderResult:
        _log.warning("place_order rejected for customer %s: %s", customer_id, error)
        return OrderResult(success=False, message=str(error), error=error)

    def canonical_lines(self, invoice_number: str) -> list[CanonicalLine]:
        return self.invoices.canonical_lines(invoice_number)

    def invoice_summary(self, invoice_number: str) -> InvoiceSummary:
        return self.invoices.invoice(invoice_number)

    def customer_invoices(self, customer_id: int) -> list[InvoiceSummary]:
        self.customers.require(customer_id)
        return self.invoices.customer_invoices(customer_id)

    def payment_history(self, customer_id: int) -> list[InvoiceSummary]:
        self.customers.require(customer_id)
        return self.invoices.payment_history(customer_id)

    # ------------------------------------------------------------------
    # Customers
    # ------------------------------------------------------------------
    def add_customer(self, name: str, *, referrer_code: Optional[str] = None, **contact) -> int:
        customer_id = self.customers.create(name, referrer_code=referrer_code, **contact)
        self.notifier.notify(CUSTOMERS, [customer_id])
        return customer_id

    # ------------------------------------------------------------------
    # Payments
    # ------------------------------------------------------------------
    def set_payment_status(self, invoice_number: str, status, method=None) -> PaymentOutcome:
        outcome = self.payments.set_payment_status(invoice_number, status, method)
        if outcome.transitioned:
            records = self.orders.records_for_invoice(invoice_number)
            self.notifier.notify(ORDERS, [r["id"] for r in records])
            if outcome.referral is not None:
                self.notifier.notify(REFERRALS, [outcome.referral.referral_id])
        return outcome

    # ------------------------------------------------------------------
    # Referrals
    # ------------------------------------------------------------------
    def mark_reward_as_paid(self, referral_id: int) -> bool:
        changed = self.referrals.mark_reward_as_paid(referral_id)
        if changed:
            self.notifier.notify(REFERRALS, [referral_id])
        return changed

    def referral_stats(self) -> dict:
        return self.referrals.stats()

    # ------------------------------------------------------------------
    # Inventory
    # ------------------------------------------------------------------
    def adjust_stock(self, product_id: int, delta: int, kind, note: Optional[str] = None) -> StockHistoryEntry:
        entry = self.ledger.manual_adjust(product_id, delta, kind, note)
        self.notifier.notify(PRODUCTS, [entry.product_id])
        self.notifier.notify(STOCK_HISTORY, [entry.entry_id])
        return entry

    def stock_history(
        self,
        *,
        product_id: Optional[int] = None,
        month: Optional[str] = None,
        movement: Optional[Movement | str] = None,
    ) -> list[StockHistoryEntry]:
        return self.ledger.history(product_id=product_id, month=month, movement=movement)

    def stock_summary(self, *, month: Optional[str] = None) -> list[dict]:
        entries = self.ledger.history(month=month)
        return StockLedger.movement_summary(entries, self.products.catalog())

    def low_stock(self) -> list[Product]:
        return self.ledger.low_stock()
