# shopdesk/modules/inventory/__init__.py

from .ledger import Movement, StockLedger, StockMovementKind, StockRequest, classify

__all__ = [
    "Movement",
    "StockLedger",
    "StockMovementKind",
    "StockRequest",
    "classify",
]
