"""
Invoice assembly: line amounts, totals, and grouping of order records that
share an invoice number.

Totals are always derived from canonical lines (see modules.orders.normalizer),
so an itemized record and the equivalent set of legacy one-line records give
the same numbers.
"""

from __future__ import annotations

import sqlite3
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Iterable, Mapping, Optional

from ...config import default_tax_rate
from ...constants import PAYMENT_PAID
from ...database.repositories.orders_repo import OrdersRepo
from ...database.repositories.products_repo import ProductsRepo
from ...database.repositories.settings_repo import SettingsRepo
from ...errors import InvoiceNotFound
from ...utils.validators import safe_number
from ..orders.normalizer import CanonicalLine, canonical_lines_from_records, lines_for_record


@dataclass(frozen=True)
class Totals:
    subtotal: float
    tax: float
    service_fee: float
    total: float
    tax_rate: float


@dataclass
class InvoiceSummary:
    invoice_number: str
    customer_id: Any
    date: Optional[str]
    payment_status: Optional[str]
    payment_method: Optional[str]
    payment_date: Optional[str]
    total: float                      # pre-tax: Σ line amounts
    service_fee: float = 0.0
    order_ids: list = field(default_factory=list)
    lines: list[CanonicalLine] = field(default_factory=list)

    @property
    def is_paid(self) -> bool:
        return self.payment_status == PAYMENT_PAID

    def totals(self, tax_rate: Optional[float] = None) -> Totals:
        return order_totals(self.lines, tax_rate=tax_rate, service_fee=self.service_fee)


def line_amount(unit_price, discount, quantity) -> float:
    """(unit_price − discount) × quantity; unreadable inputs count as 0."""
    return (safe_number(unit_price) - safe_number(discount)) * safe_number(quantity)


def order_totals(
    lines: Iterable[CanonicalLine],
    tax_rate: Optional[float] = None,
    service_fee: float = 0.0,
) -> Totals:
    """
    subtotal = Σ line amounts; tax = subtotal × tax_rate;
    total = subtotal + tax + service_fee. The fee is not taxed.
    """
    rate = default_tax_rate() if tax_rate is None else float(tax_rate)
    subtotal = sum(line_amount(ln.unit_price, ln.discount, ln.quantity) for ln in lines)
    tax = subtotal * rate
    fee = safe_number(service_fee)
    return Totals(
        subtotal=round(subtotal, 2),
        tax=round(tax, 2),
        service_fee=round(fee, 2),
        total=round(subtotal + tax + fee, 2),
        tax_rate=rate,
    )


def _date_key(value: Any) -> datetime:
    if not value:
        return datetime.min.replace(tzinfo=timezone.utc)
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        dt = datetime.fromisoformat(text)
    except ValueError:
        return datetime.min.replace(tzinfo=timezone.utc)
    return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)


def _field(record: Mapping[str, Any], snake: str, camel: str) -> Any:
    v = record.get(snake)
    return record.get(camel) if v is None else v


def group_by_invoice(
    records: Iterable[Mapping[str, Any]],
    catalog: Optional[Mapping[Any, Any]] = None,
) -> list[InvoiceSummary]:
    """
    One InvoiceSummary per invoice number, newest first. Metadata comes from
    the most recently dated record of each invoice; `total` sums the
    canonical lines of every record regardless of stored shape.
    """
    grouped: dict[str, list[Mapping[str, Any]]] = {}
    for rec in records:
        inv = _field(rec, "invoice_number", "invoiceNumber")
        grouped.setdefault(str(inv) if inv is not None else "", []).append(rec)

    summaries: list[InvoiceSummary] = []
    for inv, recs in grouped.items():
        rep = max(recs, key=lambda r: _date_key(_field(r, "order_date", "orderDate")))
        lines: list[CanonicalLine] = []
        order_ids: list = []
        fee = 0.0
        for r in recs:
            lines.extend(lines_for_record(r, catalog))
            order_ids.append(r.get("id"))
            fee += safe_number(_field(r, "service_fee", "serviceFee"))
        summaries.append(
            InvoiceSummary(
                invoice_number=inv,
                customer_id=_field(rep, "customer_id", "customerId"),
                date=_field(rep, "order_date", "orderDate"),
                payment_status=_field(rep, "payment_status", "paymentStatus"),
                payment_method=_field(rep, "payment_method", "paymentMethod"),
                payment_date=_field(rep, "payment_date", "paymentDate"),
                total=round(sum(line_amount(l.unit_price, l.discount, l.quantity) for l in lines), 2),
                service_fee=round(fee, 2),
                order_ids=order_ids,
                lines=lines,
            )
        )
    summaries.sort(key=lambda s: _date_key(s.date), reverse=True)
    return summaries


def paid_invoices(summaries: Iterable[InvoiceSummary]) -> list[InvoiceSummary]:
    """Paid invoices that carry a payment date, most recent payment first."""
    paid = [s for s in summaries if s.is_paid and s.payment_date]
    paid.sort(key=lambda s: _date_key(s.payment_date), reverse=True)
    return paid


class InvoiceAssembler:
    """Reads point-in-time snapshots from the repositories and assembles invoices."""

    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn
        self.orders = OrdersRepo(conn)
        self.products = ProductsRepo(conn)
        self.settings = SettingsRepo(conn)

    def tax_rate(self) -> float:
        return self.settings.tax_rate()

    def canonical_lines(self, invoice_number: str) -> list[CanonicalLine]:
        records = self.orders.records_for_invoice(invoice_number)
        return canonical_lines_from_records(records, self.products.catalog())

    def invoice(self, invoice_number: str) -> InvoiceSummary:
        records = self.orders.records_for_invoice(invoice_number)
        if not records:
            raise InvoiceNotFound(invoice_number)
        return group_by_invoice(records, self.products.catalog())[0]

    def totals(self, invoice_number: str) -> Totals:
        return self.invoice(invoice_number).totals(self.tax_rate())

    def customer_invoices(self, customer_id: int) -> list[InvoiceSummary]:
        return group_by_invoice(self.orders.records_for_customer(customer_id), self.products.catalog())

    def payment_history(self, customer_id: int) -> list[InvoiceSummary]:
        return paid_invoices(self.customer_invoices(customer_id))
