from .models import (
    Batch,
    Category,
    MovementResult,
    MovementType,
    Notification,
    NotificationPayload,
    NotificationType,
    Priority,
    Product,
    ProductFilter,
    StockMovement,
)
from .errors import (
    AppError,
    ValidationError,
    NotFoundError,
    InsufficientStockError,
    IrreversibleMovementError,
    PersistenceError,
)

__all__ = [
    "Batch",
    "Category",
    "MovementResult",
    "MovementType",
    "Notification",
    "NotificationPayload",
    "NotificationType",
    "Priority",
    "Product",
    "ProductFilter",
    "StockMovement",
    "AppError",
    "ValidationError",
    "NotFoundError",
    "InsufficientStockError",
    "IrreversibleMovementError",
    "PersistenceError",
]
