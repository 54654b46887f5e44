# shopdesk/database/repositories/products_repo.py
from dataclasses import dataclass
from typing import Dict, Iterable, List
import sqlite3

from ...errors import ProductNotFound, ValidationError
from ..transactions import StaleWrite, immediate_tx
from .stock_history_repo import StockHistoryRepo


@dataclass
class Product:
    product_id: int | None
    name: str
    sku: str | None
    cost_price: float
    selling_price: float
    quantity: int
    low_stock_threshold: int
    dealer: str | None
    category: str | None


_SELECT = (
    "SELECT product_id, name, sku, "
    "CAST(cost_price AS REAL) AS cost_price, "
    "CAST(selling_price AS REAL) AS selling_price, "
    "quantity, low_stock_threshold, dealer, category "
    "FROM products"
)


class ProductsRepo:
    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn
        # Use Row for named access; we normalize to dataclasses on the way out.
        self.conn.row_factory = sqlite3.Row

    # ---------------------------- Queries ----------------------------

    def list_products(self) -> list[Product]:
        rows = self.conn.execute(_SELECT + " ORDER BY product_id DESC").fetchall()
        return [Product(**r) for r in rows]

    def get(self, product_id: int) -> Product | None:
        r = self.conn.execute(_SELECT + " WHERE product_id=?", (product_id,)).fetchone()
        return Product(**r) if r else None

    def require(self, product_id: int) -> Product:
        p = self.get(product_id)
        if p is None:
            raise ProductNotFound(product_id)
        return p

    def get_many(self, product_ids: Iterable[int]) -> Dict[int, Product]:
        ids = sorted({int(pid) for pid in product_ids})
        if not ids:
            return {}
        placeholders = ",".join("?" * len(ids))
        rows = self.conn.execute(
            _SELECT + f" WHERE product_id IN ({placeholders})", tuple(ids)
        ).fetchall()
        return {int(r["product_id"]): Product(**r) for r in rows}

    def catalog(self) -> Dict[int, Product]:
        """Point-in-time snapshot of the whole catalog keyed by product_id."""
        return {p.product_id: p for p in self.list_products()}

    def list_low_stock(self) -> List[Product]:
        rows = self.conn.execute(
            _SELECT + " WHERE quantity <= low_stock_threshold ORDER BY quantity ASC, name"
        ).fetchall()
        return [Product(**r) for r in rows]

    # ---------------------------- Mutations ----------------------------

    def create(
        self,
        name: str,
        *,
        sku: str | None = None,
        cost_price: float = 0.0,
        selling_price: float = 0.0,
        quantity: int = 0,
        low_stock_threshold: int = 0,
        dealer: str | None = None,
        category: str | None = None,
    ) -> int:
        """
        Insert a product. Opening stock is recorded as a 'Received' ledger entry
        ("Initial Stock") so the ledger replays to the on-hand quantity from zero.
        """
        if not name or not name.strip():
            raise ValidationError("Name cannot be empty.")
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 0:
            raise ValidationError("Opening quantity must be a non-negative whole number.")

        with immediate_tx(self.conn):
            cur = self.conn.execute(
                "INSERT INTO products(name, sku, cost_price, selling_price, quantity, "
                "low_stock_threshold, dealer, category) VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    name.strip(),
                    sku,
                    float(cost_price),
                    float(selling_price),
                    int(quantity),
                    int(low_stock_threshold),
                    dealer,
                    category,
                ),
            )
            product_id = int(cur.lastrowid)
            if quantity:
                StockHistoryRepo(self.conn).append(
                    product_id=product_id,
                    change=int(quantity),
                    reason="Initial Stock",
                    kind="Received",
                    new_quantity=int(quantity),
                )
            return product_id

    def update(
        self,
        product_id: int,
        *,
        name: str,
        sku: str | None,
        cost_price: float,
        selling_price: float,
        low_stock_threshold: int,
        dealer: str | None,
        category: str | None,
    ) -> None:
        """
        Edit catalog fields. Quantity is deliberately not editable here; stock
        moves only through the ledger (StockLedger.manual_adjust / orders).
        """
        if not name or not name.strip():
            raise ValidationError("Name cannot be empty.")
        with immediate_tx(self.conn):
            cur = self.conn.execute(
                "UPDATE products "
                "SET name=?, sku=?, cost_price=?, selling_price=?, low_stock_threshold=?, "
                "dealer=?, category=? "
                "WHERE product_id=?",
                (
                    name.strip(),
                    sku,
                    float(cost_price),
                    float(selling_price),
                    int(low_stock_threshold),
                    dealer,
                    category,
                    product_id,
                ),
            )
            if cur.rowcount == 0:
                raise ProductNotFound(product_id)

    def compare_and_set_quantity(self, product_id: int, expected: int, new: int) -> None:
        """
        Atomic conditional update: only writes when the stored quantity still
        equals `expected`. Raises StaleWrite otherwise. Runs inside the
        caller's transaction.
        """
        cur = self.conn.execute(
            "UPDATE products SET quantity=? WHERE product_id=? AND quantity=?",
            (int(new), int(product_id), int(expected)),
        )
        if cur.rowcount != 1:
            raise StaleWrite(f"product {product_id}: quantity changed from {expected}")
