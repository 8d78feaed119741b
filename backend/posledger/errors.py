"""
Settlement error taxonomy.

Every error raised across the checkout, inventory, accounting and billing
services derives from SettlementError so callers (HTTP layer, CLI, jobs) can
map them to responses without knowing which service raised them:

- ValidationError      -> 400 (malformed cart, short payment, unbalanced journal)
- NotFoundError        -> 404 (unknown product, variant, outlet, transaction, bill)
- BillingBlockedError  -> 402/403 (tenant past due or suspended)
- ConflictError        -> 409 (double refund, double bill payment)
- PersistenceError     -> 500 (store failure; session already rolled back)
"""

from __future__ import annotations


class SettlementError(Exception):
    """Base class for settlement errors."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ValidationError(SettlementError):
    """400-level input problem."""


class UnbalancedJournalError(ValidationError):
    """Journal lines do not satisfy sum(debit) == sum(credit)."""


class NotFoundError(SettlementError):
    """Referenced entity does not exist for this tenant."""


class BillingBlockedError(SettlementError):
    """Checkout refused because of an overdue or suspended MDR invoice."""
    def __init__(self, message: str, *, reason: str, billing_id: int | None = None):
        super().__init__(message, details={"reason": reason, "billing_id": billing_id})
        self.reason = reason
        self.billing_id = billing_id


class ConflictError(SettlementError):
    """409-level business rule conflict (e.g., refunding a refunded sale)."""


class PersistenceError(SettlementError):
    """Underlying store failure."""
