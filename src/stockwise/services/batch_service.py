from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Callable, Optional

from stockwise.domain.errors import ValidationError
from stockwise.domain.models import Batch
from stockwise.domain.values import from_db_decimal, parse_date
from stockwise.repositories.sqlite_repo import SqliteRepository


class BatchService:
    """Read-only batch view derived from batch-tagged ledger entries.

    A batch is keyed by (product, batch_number, batch_expiry_date) and
    holds sum(IN) - sum(OUT) of the movements sharing that key. Untagged
    movements never count towards any batch.
    """

    def __init__(self, repo: SqliteRepository, clock: Callable[[], datetime] = datetime.now):
        self.repo = repo
        self.clock = clock

    def _today(self) -> date:
        return self.clock().date()

    def _aggregate(self, product_id: Optional[int] = None, active_products_only: bool = False) -> list[Batch]:
        groups: dict[tuple, dict] = {}
        for r in self.repo.batch_rows(product_id=product_id, active_products_only=active_products_only):
            key = (int(r["product_id"]), str(r["batch_number"]), r["batch_expiry_date"])
            g = groups.setdefault(
                key,
                {
                    "product_name": r["product_name"] or "",
                    "unit": r["unit"] or "pcs",
                    "total_in": Decimal("0"),
                    "total_out": Decimal("0"),
                },
            )
            qty = from_db_decimal(r["quantity"])
            if r["type"] == "IN":
                g["total_in"] += qty
            elif r["type"] == "OUT":
                g["total_out"] += qty

        today = self._today()
        batches = []
        for (pid, number, expiry_raw), g in groups.items():
            expiry = parse_date(expiry_raw)
            batches.append(
                Batch(
                    product_id=pid,
                    product_name=g["product_name"],
                    unit=g["unit"],
                    batch_number=number,
                    batch_expiry_date=expiry,
                    total_in=g["total_in"],
                    total_out=g["total_out"],
                    current_quantity=g["total_in"] - g["total_out"],
                    days_until_expiry=((expiry - today).days if expiry else None),
                )
            )
        return batches

    @staticmethod
    def _expiry_order(b: Batch) -> tuple:
        # batches without an expiry date sort last
        return (b.batch_expiry_date is None, b.batch_expiry_date or date.max, b.product_id, b.batch_number)

    def active_batches_for_product(self, product_id: int) -> list[Batch]:
        batches = [b for b in self._aggregate(product_id=int(product_id)) if b.current_quantity > 0]
        return sorted(batches, key=self._expiry_order)

    def expiring_batches(self, days_threshold: int = 30) -> list[Batch]:
        if int(days_threshold) < 0:
            raise ValidationError("Days threshold must be >= 0.")
        batches = [
            b
            for b in self._aggregate(active_products_only=True)
            if b.current_quantity > 0
            and b.days_until_expiry is not None
            and 0 <= b.days_until_expiry <= int(days_threshold)
        ]
        return sorted(batches, key=self._expiry_order)

    def oldest_batch(self, product_id: int) -> Optional[Batch]:
        """Earliest-expiring active batch; a FIFO hint for stock-out, never applied automatically."""
        batches = self.active_batches_for_product(product_id)
        return batches[0] if batches else None

    def count_expiring_products(self, days_threshold: int = 30) -> int:
        return len({b.product_id for b in self.expiring_batches(days_threshold)})

    def total_batch_quantity(self, product_id: int) -> Decimal:
        return sum((b.current_quantity for b in self.active_batches_for_product(product_id)), Decimal("0"))
