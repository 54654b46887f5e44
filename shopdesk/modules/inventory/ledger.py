"""
Stock ledger & availability checks.

Every change to a product's on-hand quantity goes through StockLedger and
leaves exactly one append-only stock_history entry. Decrements are
compare-and-set updates inside an IMMEDIATE transaction, so two placements
racing for the same units cannot both succeed.
"""

from __future__ import annotations

import logging
import sqlite3
from collections import OrderedDict
from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable, Mapping, Optional

from ...database.repositories.products_repo import Product, ProductsRepo
from ...database.repositories.stock_history_repo import StockHistoryEntry, StockHistoryRepo
from ...database.transactions import run_in_write_tx
from ...errors import InsufficientStock, NegativeStock, ProductNotFound, ValidationError
from ...utils.helpers import month_of, now_iso
from ...utils.validators import is_non_negative_number, is_non_zero_int, is_positive_int

_log = logging.getLogger(__name__)


class StockMovementKind(str, Enum):
    """Why stock moved; stored on each ledger entry when it is written."""
    SALE = "Sale"
    RETURN = "Return"
    ADJUSTMENT = "Adjustment"
    RECEIVED = "Received"

    @classmethod
    def parse(cls, value) -> "StockMovementKind":
        if isinstance(value, cls):
            return value
        text = str(value or "").strip()
        if not text:
            raise ValidationError("Adjustment category is required.")
        for member in cls:
            if member.value.lower() == text.lower() or member.name.lower() == text.lower():
                return member
        allowed = ", ".join(m.value for m in cls)
        raise ValidationError(f"Unknown adjustment category '{text}'. Allowed: {allowed}")


class Movement(str, Enum):
    """Reporting buckets for the stock registry."""
    STOCK_IN = "StockIn"
    SALE = "Sale"
    RETURN = "Return"

    @classmethod
    def parse(cls, value) -> "Movement":
        if isinstance(value, cls):
            return value
        text = str(value).strip().lower()
        for member in cls:
            if member.value.lower() == text or member.name.lower() == text:
                return member
        allowed = ", ".join(m.value for m in cls)
        raise ValidationError(f"Unknown movement '{value}'. Allowed: {allowed}")


# entries written before `kind` was stored are classified from their reason text
_LEGACY_SALE_HINTS = ("sale", "invoice", "purchase", "receipt")


def classify(entry: StockHistoryEntry) -> Movement:
    if entry.change > 0:
        return Movement.STOCK_IN
    if entry.kind:
        return Movement.SALE if entry.kind == StockMovementKind.SALE.value else Movement.RETURN
    reason = (entry.reason or "").lower()
    if any(h in reason for h in _LEGACY_SALE_HINTS):
        return Movement.SALE
    return Movement.RETURN


@dataclass(frozen=True)
class StockRequest:
    product_id: int
    quantity: int
    discount: float = 0.0

    @classmethod
    def coerce(cls, item: Any) -> "StockRequest":
        """
        Accepts a StockRequest or a mapping with product_id/productId,
        quantity and optional discount. Raises ValidationError on bad input.
        """
        if isinstance(item, cls):
            req = item
        elif isinstance(item, Mapping):
            pid = item.get("product_id", item.get("productId"))
            if pid is None or isinstance(pid, bool):
                raise ValidationError("Each line needs a product.")
            try:
                pid = int(pid)
            except (TypeError, ValueError):
                raise ValidationError(f"Invalid product id: {pid!r}") from None
            discount = item.get("discount")
            req = cls(product_id=pid, quantity=item.get("quantity"), discount=0.0 if discount is None else discount)
        else:
            raise ValidationError(f"Unsupported order line: {item!r}")

        if not is_positive_int(req.quantity):
            raise ValidationError(
                f"Quantity for product {req.product_id} must be a positive whole number (got {req.quantity!r})."
            )
        if not is_non_negative_number(req.discount):
            raise ValidationError(f"Discount for product {req.product_id} must be a non-negative number.")
        return cls(product_id=req.product_id, quantity=int(req.quantity), discount=float(req.discount))


def merge_requests(requests: Iterable[StockRequest]) -> "OrderedDict[int, int]":
    """Total requested quantity per product, first-seen order."""
    merged: "OrderedDict[int, int]" = OrderedDict()
    for r in requests:
        merged[r.product_id] = merged.get(r.product_id, 0) + r.quantity
    return merged


class StockLedger:
    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn
        self.products = ProductsRepo(conn)
        self.history_repo = StockHistoryRepo(conn)

    # ------------------------------------------------------------------
    # Availability
    # ------------------------------------------------------------------
    def check_availability(self, requests: Iterable[StockRequest]) -> dict[int, Product]:
        """
        Validate every merged line against current stock before anything is
        written. Returns the products read, keyed by id.
        """
        merged = merge_requests(requests)
        products = self.products.get_many(merged.keys())
        for pid in merged:
            if pid not in products:
                raise ProductNotFound(pid)
        for pid, qty in merged.items():
            p = products[pid]
            if qty > p.quantity:
                raise InsufficientStock(pid, qty, p.quantity, p.name)
        return products

    # ------------------------------------------------------------------
    # Decrement (order placement)
    # ------------------------------------------------------------------
    def reserve_and_decrement(
        self,
        items: Iterable[Any],
        *,
        invoice_number: str,
        date: Optional[str] = None,
    ) -> list[StockHistoryEntry]:
        """
        All-or-nothing: validates all lines, then decrements each product once
        and appends one Sale entry per product. Joins the caller's transaction
        when one is open (order placement), otherwise runs its own with retry.
        """
        requests = [StockRequest.coerce(it) for it in items]
        if not requests:
            raise ValidationError("No items in order.")
        reason = f"Sale (Invoice {invoice_number})"

        def _apply() -> list[StockHistoryEntry]:
            when = date or now_iso()
            products = self.check_availability(requests)
            entries: list[StockHistoryEntry] = []
            for pid, qty in merge_requests(requests).items():
                p = products[pid]
                new_qty = p.quantity - qty
                self.products.compare_and_set_quantity(pid, p.quantity, new_qty)
                entries.append(
                    self.history_repo.append(
                        product_id=pid,
                        change=-qty,
                        reason=reason,
                        kind=StockMovementKind.SALE.value,
                        new_quantity=new_qty,
                        date=when,
                    )
                )
            return entries

        return run_in_write_tx(self.conn, _apply, label="reserve_and_decrement")

    # ------------------------------------------------------------------
    # Manual adjustments
    # ------------------------------------------------------------------
    def manual_adjust(
        self,
        product_id: int,
        delta: int,
        kind,
        note: Optional[str] = None,
    ) -> StockHistoryEntry:
        """
        Add or remove stock by hand (goods received, customer return, damage,
        count correction). Reason is "<kind>: <note>", or "<kind>" alone.
        """
        movement = StockMovementKind.parse(kind)
        if not is_non_zero_int(delta):
            raise ValidationError(f"Adjustment must be a non-zero whole number (got {delta!r}).")
        delta = int(delta)
        note_n = (note or "").strip()
        reason = f"{movement.value}: {note_n}" if note_n else movement.value

        def _apply() -> StockHistoryEntry:
            p = self.products.require(product_id)
            new_qty = p.quantity + delta
            if new_qty < 0:
                raise NegativeStock(p.product_id, p.quantity, delta)
            self.products.compare_and_set_quantity(p.product_id, p.quantity, new_qty)
            return self.history_repo.append(
                product_id=p.product_id,
                change=delta,
                reason=reason,
                kind=movement.value,
                new_quantity=new_qty,
            )

        entry = run_in_write_tx(self.conn, _apply, label="manual_adjust")
        _log.info("stock adjusted: product=%s change=%+d now=%d (%s)",
                  entry.product_id, entry.change, entry.new_quantity, reason)
        return entry

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------
    def history(
        self,
        *,
        product_id: Optional[int] = None,
        month: Optional[str] = None,     # 'YYYY-MM'
        movement: Optional[Movement | str] = None,
    ) -> list[StockHistoryEntry]:
        """Ledger entries, newest first, optionally narrowed by product, month and movement."""
        entries = self.history_repo.find(product_id=product_id)
        if month:
            entries = [e for e in entries if month_of(e.date) == month]
        if movement:
            wanted = Movement.parse(movement)
            entries = [e for e in entries if classify(e) == wanted]
        return entries

    @staticmethod
    def movement_summary(
        entries: Iterable[StockHistoryEntry],
        catalog: Optional[Mapping[int, Product]] = None,
    ) -> list[dict]:
        """
        Per-product totals over `entries`:
          {product_id, name, sku, dealer, stock_in, sales_out, returns_out, net_change}
        """
        catalog = catalog or {}
        summary: dict[int, dict] = {}
        for e in entries:
            row = summary.get(e.product_id)
            if row is None:
                p = catalog.get(e.product_id)
                row = summary[e.product_id] = {
                    "product_id": e.product_id,
                    "name": p.name if p else "Unknown",
                    "sku": (p.sku or "") if p else "",
                    "dealer": (p.dealer or "") if p else "",
                    "stock_in": 0,
                    "sales_out": 0,
                    "returns_out": 0,
                    "net_change": 0,
                }
            bucket = classify(e)
            if bucket is Movement.STOCK_IN:
                row["stock_in"] += e.change
            elif bucket is Movement.SALE:
                row["sales_out"] += abs(e.change)
            else:
                row["returns_out"] += abs(e.change)
            row["net_change"] += e.change
        return sorted(summary.values(), key=lambda r: r["name"])

    def replay_discrepancy(self, product_id: int, baseline: int = 0) -> int:
        """
        Σ ledger changes − (quantity − baseline). Zero when the ledger replays
        to the stored quantity.
        """
        totals = self.history_repo.ledger_totals(product_id)
        if totals is None:
            raise ProductNotFound(product_id)
        return int(totals["ledger_sum"]) - (int(totals["quantity"]) - int(baseline))

    def low_stock(self) -> list[Product]:
        return self.products.list_low_stock()
