"""
Repository layer public API.

Usage:
    from shopdesk.database.repositories import (
        # Customers
        CustomersRepo, Customer,
        # Orders
        OrdersRepo, OrderLine,
        # Products
        ProductsRepo, Product,
        # Referrals
        ReferralsRepo, Referral,
        # Settings
        SettingsRepo,
        # Stock ledger
        StockHistoryRepo, StockHistoryEntry,
    )
"""

# ---------------- Customers ----------------
from .customers_repo import CustomersRepo, Customer

# ------------------ Orders -----------------
from .orders_repo import OrdersRepo, OrderLine

# ---------------- Products -----------------
from .products_repo import ProductsRepo, Product

# ---------------- Referrals ----------------
from .referrals_repo import ReferralsRepo, Referral

# ---------------- Settings -----------------
from .settings_repo import SettingsRepo

# -------------- Stock ledger ---------------
from .stock_history_repo import StockHistoryRepo, StockHistoryEntry

__all__ = [
    # customers_repo
    "CustomersRepo",
    "Customer",
    # orders_repo
    "OrdersRepo",
    "OrderLine",
    # products_repo
    "ProductsRepo",
    "Product",
    # referrals_repo
    "ReferralsRepo",
    "Referral",
    # settings_repo
    "SettingsRepo",
    # stock_history_repo
    "StockHistoryRepo",
    "StockHistoryEntry",
]
