"""
Domain errors raised by the engine and surfaced to callers (UI/admin tooling).

Every failure the engine reports on purpose is a DomainError subclass, so
callers can catch the base class for a toast/snackbar and the specific class
when they need the details (e.g. InsufficientStock.available).
"""

from __future__ import annotations


class DomainError(Exception):
    """Domain-level error suitable for surfacing to the UI."""
    pass


class ValidationError(DomainError):
    """Input rejected before any mutation took place."""
    pass


class NotFound(DomainError):
    pass


class ProductNotFound(NotFound):
    def __init__(self, product_id):
        super().__init__(f"Product not found: {product_id}")
        self.product_id = product_id


class CustomerNotFound(NotFound):
    def __init__(self, customer_id):
        super().__init__(f"Customer not found: {customer_id}")
        self.customer_id = customer_id


class InvoiceNotFound(NotFound):
    def __init__(self, invoice_number):
        super().__init__(f"Invoice not found: {invoice_number}")
        self.invoice_number = invoice_number


class ReferralNotFound(NotFound):
    def __init__(self, referral_id):
        super().__init__(f"Referral not found: {referral_id}")
        self.referral_id = referral_id


class InsufficientStock(DomainError):
    def __init__(self, product_id: int, requested: int, available: int, product_name: str | None = None):
        label = product_name or f"product {product_id}"
        super().__init__(
            f"Insufficient stock for {label}. Available: {available}, Required: {requested}"
        )
        self.product_id = product_id
        self.requested = requested
        self.available = available


class NegativeStock(DomainError):
    def __init__(self, product_id: int, current: int, delta: int):
        super().__init__(
            f"Adjustment of {delta:+d} would take product {product_id} below zero (on hand: {current})."
        )
        self.product_id = product_id
        self.current = current
        self.delta = delta


class ConcurrentStockConflict(DomainError):
    def __init__(self, attempts: int):
        super().__init__(
            f"Stock changed concurrently; gave up after {attempts} attempts. Please retry."
        )
        self.attempts = attempts


class InvalidTransition(DomainError):
    def __init__(self, current: str, requested: str):
        super().__init__(f"Cannot change payment status from {current} to {requested}.")
        self.current = current
        self.requested = requested
