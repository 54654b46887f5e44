from __future__ import annotations

import sqlite3
from typing import Iterable, Optional

from PySide6.QtCore import QObject, Signal

# collection names carried by ChangeNotifier.changed
PRODUCTS = "products"
STOCK_HISTORY = "stock_history"
ORDERS = "orders"
CUSTOMERS = "customers"
REFERRALS = "referrals"


class ChangeNotifier(QObject):
    """
    Change subscription for views and export collaborators.
    `changed(collection, ids)` is emitted after a mutation has committed.
    """

    changed = Signal(str, object)

    def notify(self, collection: str, ids: Iterable) -> None:
        ids = list(ids)
        if ids:
            self.changed.emit(collection, ids)


class BaseModule(QObject):
    def __init__(
        self,
        conn: sqlite3.Connection,
        notifier: Optional[ChangeNotifier] = None,
        parent: Optional[QObject] = None,
    ):
        super().__init__(parent)
        self.conn = conn
        self.notifier = notifier or ChangeNotifier()
