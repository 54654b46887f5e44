# shopdesk/tests/conftest.py
# ---------------------------------------------------------------------
# Ground rules:
# - pytest-qt owns the Qt application; signals only, so a QCoreApplication
# - Every test gets its own database file under tmp_path (schema applied fresh)
# - conn.row_factory = sqlite3.Row, PRAGMA foreign_keys=ON (via get_connection)
# - Factory fixtures for products/customers and legacy order rows
# ---------------------------------------------------------------------

from __future__ import annotations

import sqlite3
from pathlib import Path
from typing import Optional

import pytest
from PySide6 import QtCore

from shopdesk.database import get_connection
from shopdesk.database.repositories.customers_repo import CustomersRepo
from shopdesk.database.repositories.orders_repo import OrdersRepo
from shopdesk.database.repositories.products_repo import ProductsRepo
from shopdesk.modules.base_module import ChangeNotifier
from shopdesk.modules.fulfillment.controller import FulfillmentController


# ---------- Qt: no widgets, so no GUI application ----------
@pytest.fixture(scope="session")
def qapp_cls():
    return QtCore.QCoreApplication


# ---------- Per-test database ----------
@pytest.fixture()
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "shopdesk-test.db"


@pytest.fixture()
def conn(db_path: Path):
    con = get_connection(db_path)
    try:
        yield con
    finally:
        con.close()


# ---------- Engine ----------
@pytest.fixture()
def notifier() -> ChangeNotifier:
    return ChangeNotifier()


@pytest.fixture()
def controller(conn, notifier) -> FulfillmentController:
    return FulfillmentController(conn, notifier)


# ---------- Factories ----------
@pytest.fixture()
def make_product(conn):
    repo = ProductsRepo(conn)

    def _make(
        name: str = "Widget",
        *,
        quantity: int = 10,
        selling_price: float = 100.0,
        cost_price: float = 60.0,
        low_stock_threshold: int = 0,
        sku: Optional[str] = None,
        dealer: Optional[str] = None,
    ) -> int:
        return repo.create(
            name,
            sku=sku,
            cost_price=cost_price,
            selling_price=selling_price,
            quantity=quantity,
            low_stock_threshold=low_stock_threshold,
            dealer=dealer,
        )

    return _make


@pytest.fixture()
def make_customer(conn):
    repo = CustomersRepo(conn)

    def _make(name: str = "Asha", *, referrer_code: Optional[str] = None, **contact) -> int:
        return repo.create(name, referrer_code=referrer_code, **contact)

    return _make


@pytest.fixture()
def add_legacy_line(conn):
    """Inserts one legacy one-record-per-line order row, committed."""
    repo = OrdersRepo(conn)

    def _add(customer_id: int, invoice_number: str, **fields) -> int:
        fields.setdefault("order_date", "2024-03-01T10:00:00+00:00")
        conn.execute("BEGIN IMMEDIATE")
        try:
            oid = repo.insert_legacy_line(
                customer_id=customer_id, invoice_number=invoice_number, **fields
            )
            conn.commit()
        except BaseException:
            conn.rollback()
            raise
        return oid

    return _add


# ---------- Handy lookups ----------
def quantity_of(conn: sqlite3.Connection, product_id: int) -> int:
    return int(conn.execute("SELECT quantity FROM products WHERE product_id=?", (product_id,)).fetchone()[0])


@pytest.fixture()
def qty(conn):
    return lambda product_id: quantity_of(conn, product_id)
