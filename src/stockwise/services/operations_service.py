from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

from stockwise.domain.models import ProductFilter

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class HealthReport:
    sqlite_integrity: str
    db_size_bytes: int
    products_checked: int
    drifted_products: list[int] = field(default_factory=list)
    generated_at: str = ""

    @property
    def ok(self) -> bool:
        return self.sqlite_integrity == "ok" and not self.drifted_products


class OperationsService:
    def __init__(self, repo, ledger, db_path: Path | str):
        self.repo = repo
        self.ledger = ledger
        self.db_path = Path(db_path)

    def run_health_check(self) -> HealthReport:
        integrity = self.repo.integrity_check()
        size = self.db_path.stat().st_size if self.db_path.exists() else 0
        checked = len(self.repo.list_products(ProductFilter(include_inactive=True)))
        drifted = [pid for pid, _cached, _ledger in self.ledger.reconcile()]
        report = HealthReport(
            sqlite_integrity=integrity,
            db_size_bytes=size,
            products_checked=checked,
            drifted_products=drifted,
            generated_at=datetime.now().isoformat(timespec="seconds"),
        )
        if report.ok:
            log.info("health_check ok products=%s", checked)
        else:
            log.error("health_check failed integrity=%s drifted=%s", integrity, drifted)
        return report
