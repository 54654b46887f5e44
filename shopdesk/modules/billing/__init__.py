# shopdesk/modules/billing/__init__.py

from .invoice import (
    InvoiceAssembler,
    InvoiceSummary,
    Totals,
    group_by_invoice,
    line_amount,
    order_totals,
    paid_invoices,
)
from .payments import PaymentOutcome, PaymentStateMachine

__all__ = [
    # invoice
    "InvoiceAssembler",
    "InvoiceSummary",
    "Totals",
    "group_by_invoice",
    "line_amount",
    "order_totals",
    "paid_invoices",
    # payments
    "PaymentOutcome",
    "PaymentStateMachine",
]
