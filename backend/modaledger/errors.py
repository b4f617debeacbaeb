# Overview: Error taxonomy shared by services and routes.

from __future__ import annotations


class LedgerError(Exception):
    """Base class for ledger errors; routes map subclasses to HTTP statuses."""
    status_code = 500

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class ValidationError(LedgerError, ValueError):
    """400-level input problem (missing customer, empty cart, bad row...)."""
    status_code = 400


class NotFoundError(LedgerError, LookupError):
    """Referenced sale/installment/product/customer does not exist."""
    status_code = 404


class ConflictError(LedgerError, ValueError):
    """409-level business rule conflict (duplicate SKU, stale version...)."""
    status_code = 409


class InsufficientStockError(ConflictError):
    """Sale rejected because a product does not have enough stock."""


class ConfirmationRequiredError(ConflictError):
    """Destructive action attempted without explicit confirmation."""


class TransientStorageError(LedgerError):
    """Storage timed out or stayed locked after retries."""
    status_code = 503


class IntegrityError(LedgerError):
    """
    Stored data disagrees with a derived value (paid flag vs amount paid,
    installment sum vs sale total). Logged and auto-corrected, never fatal.
    """
