import sys
from datetime import datetime, timedelta
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))


class FrozenClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


def make_services(tmp_path: Path, now: datetime | None = None):
    """Fresh store plus services sharing one frozen clock."""
    from stockwise.repositories.sqlite_repo import SqliteRepository
    from stockwise.services.batch_service import BatchService
    from stockwise.services.ledger_service import LedgerService
    from stockwise.services.notification_service import NotificationService
    from stockwise.services.product_service import ProductService
    from stockwise.services.stock_service import StockService

    clock = FrozenClock(now or datetime(2025, 3, 10, 9, 0, 0))
    repo = SqliteRepository(tmp_path / "t.db")
    repo.init_db()

    ledger = LedgerService(repo, clock=clock)
    products = ProductService(repo, ledger, clock=clock)
    batches = BatchService(repo, clock=clock)
    notifications = NotificationService(repo, clock=clock)
    stock = StockService(products, ledger, notifications)
    return {
        "clock": clock,
        "repo": repo,
        "ledger": ledger,
        "products": products,
        "batches": batches,
        "notifications": notifications,
        "stock": stock,
    }
