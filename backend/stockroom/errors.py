# Overview: Ledger error taxonomy; every error maps to one HTTP status.

"""
Error taxonomy for the stock ledger.

Services raise these; the handler registered in create_app() renders them
as {"error": message, "details": {...}} with the mapped status code.

- Validation and authorization errors are raised before any mutation.
- Mutation errors abort the enclosing transaction (see concurrency.run_in_transaction).
"""

from __future__ import annotations


class StockroomError(Exception):
    """Base class for all domain errors."""
    status_code = 500

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        body = {"error": self.message}
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(StockroomError, ValueError):
    """400-level input problem."""
    status_code = 400


class AuthError(StockroomError):
    """Missing or invalid credential."""
    status_code = 401


class AccessDeniedError(AuthError):
    """Role insufficient or location not accessible."""
    status_code = 403


class NotFoundError(StockroomError):
    status_code = 404


class ConflictError(StockroomError, ValueError):
    """409-level unique-key violation (SKU, barcode, supplier code, ...)."""
    status_code = 409


class NegativeStockError(StockroomError):
    """Mutation would leave an inventory quantity below zero."""
    status_code = 400


class InsufficientStockError(NegativeStockError):
    """Source location cannot cover a requested quantity."""


class IllegalTransitionError(StockroomError):
    """State machine rejected the requested transition."""
    status_code = 400


class InventoryMissingError(StockroomError):
    """Adjustment targets a (product, location) with no inventory record."""
    status_code = 404


class IntegrityError(StockroomError):
    """Transaction aborted after the retry budget was exhausted."""
    status_code = 409
