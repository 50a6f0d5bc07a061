from __future__ import annotations

from decimal import Decimal


class AppError(Exception):
    """Base app error."""


class ValidationError(AppError):
    pass


class NotFoundError(AppError):
    pass


class InsufficientStockError(AppError):
    def __init__(self, message: str, available: Decimal, requested: Decimal):
        super().__init__(message)
        self.available = available
        self.requested = requested
        self.shortfall = requested - available


class IrreversibleMovementError(AppError):
    pass


class PersistenceError(AppError):
    """Underlying store failure. Never retried by the core."""
