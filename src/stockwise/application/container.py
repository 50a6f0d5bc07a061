from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from stockwise.config import AlertSettings, db_timeout_seconds, get_app_paths, load_alert_settings
from stockwise.logging_config import setup_logging
from stockwise.repositories.sqlite_repo import SqliteRepository
from stockwise.services.batch_service import BatchService
from stockwise.services.ledger_service import LedgerService
from stockwise.services.notification_service import NotificationService
from stockwise.services.operations_service import OperationsService
from stockwise.services.product_service import ProductService
from stockwise.services.reporting_service import ReportingService
from stockwise.services.stock_service import StockService


@dataclass(frozen=True)
class AppContainer:
    repo: SqliteRepository
    settings: AlertSettings
    ledger: LedgerService
    products: ProductService
    batches: BatchService
    notifications: NotificationService
    stock: StockService
    reporting: ReportingService
    operations: OperationsService


def build_container(db_path: Path | str | None = None, settings: AlertSettings | None = None) -> AppContainer:
    """Wire every service around one store. Without db_path, use the per-user app dir and file logging."""
    if db_path is None:
        paths = get_app_paths()
        setup_logging(paths.logs_dir, level=logging.INFO)
        db_path = paths.db_path

    settings = settings or load_alert_settings()

    repo = SqliteRepository(db_path, timeout=db_timeout_seconds())
    repo.init_db()

    ledger = LedgerService(repo)
    products = ProductService(repo, ledger)
    batches = BatchService(repo)
    notifications = NotificationService(repo, settings)
    stock = StockService(products, ledger, notifications)
    reporting = ReportingService(repo, batches, expiring_window_days=settings.expiring_window_days)
    operations = OperationsService(repo, ledger, db_path=db_path)

    return AppContainer(
        repo=repo,
        settings=settings,
        ledger=ledger,
        products=products,
        batches=batches,
        notifications=notifications,
        stock=stock,
        reporting=reporting,
        operations=operations,
    )
