from __future__ import annotations
from dataclasses import dataclass
import sqlite3
from typing import Iterable, Optional

from ...constants import INVOICE_PREFIX, PAYMENT_PAID, PAYMENT_UNPAID


@dataclass
class OrderLine:
    product_id: int
    product_name: str | None
    quantity: int
    unit_price: float
    discount: float


_HEADER_COLUMNS = """
    o.order_id, o.customer_id, o.invoice_number, o.order_date,
    o.payment_status, o.payment_method, o.payment_date,
    CAST(o.service_fee AS REAL) AS service_fee, o.share_token, o.shape,
    o.product_id, o.product_name, o.quantity, o.unit_price, o.discount
"""

_LEGACY_FIELDS = ("product_id", "product_name", "quantity", "unit_price", "discount")


class OrdersRepo:
    """
    Orders repository.

    Two stored shapes live side by side in `orders`:
      - itemized: shape='itemized', lines in `order_items` (what the engine writes)
      - legacy:   shape='legacy', one line on the order row itself; several rows
                  may share an invoice_number (imported from the previous store)

    Read methods return plain dict records so the normalizer can consume them
    without knowing about SQLite. Itemized records carry an `items` list; legacy
    records carry the line fields at the top level and no `items` key.

    Write primitives do not open transactions; callers wrap them in
    database.transactions.immediate_tx so an order commits with its stock moves.
    """

    def __init__(self, conn: sqlite3.Connection):
        # ensure rows behave like dicts/tuples
        conn.row_factory = sqlite3.Row
        self.conn = conn

    # ---------------------------------------------------------------------
    # READ
    # ---------------------------------------------------------------------
    def _records(self, where: str = "", params: tuple = ()) -> list[dict]:
        sql = f"SELECT {_HEADER_COLUMNS} FROM orders o"
        if where:
            sql += " WHERE " + where
        sql += " ORDER BY o.order_date, o.order_id"
        headers = self.conn.execute(sql, params).fetchall()
        if not headers:
            return []

        itemized_ids = [int(h["order_id"]) for h in headers if h["shape"] == "itemized"]
        items_by_order: dict[int, list[dict]] = {oid: [] for oid in itemized_ids}
        if itemized_ids:
            placeholders = ",".join("?" * len(itemized_ids))
            rows = self.conn.execute(
                f"""
                SELECT order_id, line_no, product_id, product_name, quantity, unit_price, discount
                FROM order_items
                WHERE order_id IN ({placeholders})
                ORDER BY order_id, line_no
                """,
                tuple(itemized_ids),
            ).fetchall()
            for r in rows:
                items_by_order[int(r["order_id"])].append(
                    {k: r[k] for k in ("product_id", "product_name", "quantity", "unit_price", "discount")}
                )

        records: list[dict] = []
        for h in headers:
            rec = {
                "id": int(h["order_id"]),
                "customer_id": h["customer_id"],
                "invoice_number": h["invoice_number"],
                "order_date": h["order_date"],
                "payment_status": h["payment_status"],
                "payment_method": h["payment_method"],
                "payment_date": h["payment_date"],
                "service_fee": h["service_fee"],
                "share_token": h["share_token"],
            }
            if h["shape"] == "itemized":
                rec["items"] = items_by_order.get(int(h["order_id"]), [])
            else:
                for k in _LEGACY_FIELDS:
                    rec[k] = h[k]
            records.append(rec)
        return records

    def records_for_invoice(self, invoice_number: str) -> list[dict]:
        return self._records("o.invoice_number = ?", (invoice_number,))

    def records_for_customer(self, customer_id: int) -> list[dict]:
        return self._records("o.customer_id = ?", (customer_id,))

    def get_record(self, order_id: int) -> dict | None:
        recs = self._records("o.order_id = ?", (order_id,))
        return recs[0] if recs else None

    def next_invoice_number(self, date_prefix: str) -> str:
        """
        INV-YYYYMMDD-NN, one past the highest sequence used that day.
        Call inside the write transaction that inserts the order.
        """
        stem = f"{INVOICE_PREFIX}-{date_prefix}-"
        rows = self.conn.execute(
            "SELECT DISTINCT invoice_number FROM orders WHERE invoice_number LIKE ?",
            (stem + "%",),
        ).fetchall()
        highest = 0
        for r in rows:
            suffix = str(r["invoice_number"])[len(stem):]
            if suffix.isdigit():
                highest = max(highest, int(suffix))
        return f"{stem}{highest + 1:02d}"

    # ---------------------------------------------------------------------
    # WRITE (caller-owned transaction)
    # ---------------------------------------------------------------------
    def insert_itemized(
        self,
        *,
        customer_id: int,
        invoice_number: str,
        order_date: str,
        lines: Iterable[OrderLine],
        service_fee: float = 0.0,
        share_token: Optional[str] = None,
    ) -> int:
        cur = self.conn.execute(
            """
            INSERT INTO orders (
                customer_id, invoice_number, order_date, payment_status,
                service_fee, share_token, shape, created_at
            )
            VALUES (?, ?, ?, ?, ?, ?, 'itemized', ?)
            """,
            (customer_id, invoice_number, order_date, PAYMENT_UNPAID, float(service_fee), share_token, order_date),
        )
        order_id = int(cur.lastrowid)
        for line_no, ln in enumerate(lines):
            self.conn.execute(
                """
                INSERT INTO order_items (
                    order_id, line_no, product_id, product_name, quantity, unit_price, discount
                ) VALUES (?,?,?,?,?,?,?)
                """,
                (order_id, line_no, ln.product_id, ln.product_name, ln.quantity, ln.unit_price, ln.discount),
            )
        return order_id

    def insert_legacy_line(
        self,
        *,
        customer_id: int,
        invoice_number: str,
        order_date: str,
        product_id=None,
        product_name=None,
        quantity=None,
        unit_price=None,
        discount=None,
        payment_status: str = PAYMENT_UNPAID,
        payment_method: Optional[str] = None,
        payment_date: Optional[str] = None,
    ) -> int:
        """
        Store a one-record-per-line order exactly as found in the previous store.
        Line values are not coerced here; the normalizer does that on read.
        """
        cur = self.conn.execute(
            """
            INSERT INTO orders (
                customer_id, invoice_number, order_date, payment_status,
                payment_method, payment_date, shape,
                product_id, product_name, quantity, unit_price, discount, created_at
            )
            VALUES (?, ?, ?, ?, ?, ?, 'legacy', ?, ?, ?, ?, ?, ?)
            """,
            (
                customer_id,
                invoice_number,
                order_date,
                payment_status,
                payment_method,
                payment_date,
                product_id,
                product_name,
                quantity,
                unit_price,
                discount,
                order_date,
            ),
        )
        return int(cur.lastrowid)

    def mark_invoice_paid(self, invoice_number: str, *, method: str, paid_at: str) -> int:
        """
        Flip every still-unpaid record of the invoice to Paid. Returns the number
        of records that changed (0 means the invoice was already fully paid).
        """
        cur = self.conn.execute(
            """
            UPDATE orders
               SET payment_status=?, payment_method=?, payment_date=?
             WHERE invoice_number=? AND payment_status=?
            """,
            (PAYMENT_PAID, method, paid_at, invoice_number, PAYMENT_UNPAID),
        )
        return int(cur.rowcount)
