from .ledger_service import LedgerService
from .product_service import ProductService
from .batch_service import BatchService
from .notification_service import NotificationService
from .stock_service import StockService
from .reporting_service import ReportingService
from .operations_service import OperationsService

__all__ = [
    "LedgerService",
    "ProductService",
    "BatchService",
    "NotificationService",
    "StockService",
    "ReportingService",
    "OperationsService",
]
