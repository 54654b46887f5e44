"""
Repository for the stock ledger (stock_history).

The table is append-only: the schema rejects UPDATE/DELETE, and this module
only issues INSERT/SELECT. `seq` is assigned by SQLite (AUTOINCREMENT) and gives
every product's entries a total order, so replaying `change` in `seq` order
reproduces the on-hand quantity.

Conventions:
- List-returning methods yield `list[StockHistoryEntry]`, newest first unless
  stated otherwise.
- Dates are ISO timestamps (UTC).
"""

from __future__ import annotations

from dataclasses import dataclass
import sqlite3
from typing import List, Optional

from ...utils.helpers import now_iso

_COLUMNS = "seq AS entry_id, product_id, change, reason, kind, date, new_quantity"


@dataclass
class StockHistoryEntry:
    entry_id: int
    product_id: int
    change: int
    reason: str
    kind: str | None
    date: str
    new_quantity: int

    def to_record(self) -> dict:
        """Persisted/export shape: {id, productId, change, reason, date, newQuantity, kind}."""
        return {
            "id": self.entry_id,
            "productId": self.product_id,
            "change": self.change,
            "reason": self.reason,
            "date": self.date,
            "newQuantity": self.new_quantity,
            "kind": self.kind,
        }


class StockHistoryRepo:
    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn
        self.conn.row_factory = sqlite3.Row

    # ------------------------------------------------------------------
    # Writes (run inside the caller's transaction)
    # ------------------------------------------------------------------
    def append(
        self,
        *,
        product_id: int,
        change: int,
        reason: str,
        kind: str | None,
        new_quantity: int,
        date: str | None = None,
    ) -> StockHistoryEntry:
        when = date or now_iso()
        cur = self.conn.execute(
            """
            INSERT INTO stock_history (product_id, change, reason, kind, date, new_quantity)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (int(product_id), int(change), reason, kind, when, int(new_quantity)),
        )
        return StockHistoryEntry(
            entry_id=int(cur.lastrowid),
            product_id=int(product_id),
            change=int(change),
            reason=reason,
            kind=kind,
            date=when,
            new_quantity=int(new_quantity),
        )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    def list_for_product(self, product_id: int, *, oldest_first: bool = False) -> List[StockHistoryEntry]:
        order = "ASC" if oldest_first else "DESC"
        rows = self.conn.execute(
            f"SELECT {_COLUMNS} FROM stock_history WHERE product_id=? ORDER BY seq {order}",
            (int(product_id),),
        ).fetchall()
        return [StockHistoryEntry(**r) for r in rows]

    def find(
        self,
        *,
        product_id: Optional[int] = None,
        date_from: Optional[str] = None,   # inclusive ISO date/datetime
        date_to: Optional[str] = None,     # exclusive ISO date/datetime
        limit: Optional[int] = None,
    ) -> List[StockHistoryEntry]:
        """
        Filtered ledger read. Only applies WHERE fragments for provided filters.
        Ordering: date DESC, seq DESC (newest first).
        """
        where: List[str] = []
        params: List = []

        if product_id is not None:
            where.append("product_id = ?")
            params.append(int(product_id))
        if date_from:
            where.append("date >= ?")
            params.append(date_from)
        if date_to:
            where.append("date < ?")
            params.append(date_to)

        sql = f"SELECT {_COLUMNS} FROM stock_history"
        if where:
            sql += " WHERE " + " AND ".join(where)
        sql += " ORDER BY date DESC, seq DESC"
        if limit is not None:
            sql += " LIMIT ?"
            params.append(int(limit))

        rows = self.conn.execute(sql, tuple(params)).fetchall()
        return [StockHistoryEntry(**r) for r in rows]

    def ledger_totals(self, product_id: int) -> dict | None:
        """
        {product_id, quantity, ledger_sum, entries} from v_stock_ledger_totals,
        or None when the product doesn't exist.
        """
        row = self.conn.execute(
            "SELECT product_id, quantity, ledger_sum, entries FROM v_stock_ledger_totals WHERE product_id=?",
            (int(product_id),),
        ).fetchone()
        return dict(row) if row else None
