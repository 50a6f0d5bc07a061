from __future__ import annotations

import logging
import threading
from collections import defaultdict
from datetime import datetime
from decimal import Decimal
from typing import Callable, Iterable, Optional

from stockwise.domain.errors import (
    InsufficientStockError,
    IrreversibleMovementError,
    NotFoundError,
    ValidationError,
)
from stockwise.domain.models import MovementResult, MovementType, Product, ProductFilter, StockMovement
from stockwise.domain.values import parse_date, to_decimal, to_iso_timestamp
from stockwise.repositories.sqlite_repo import SqliteRepository
from stockwise.repositories.unit_of_work import SqliteUnitOfWork, UnitOfWork

log = logging.getLogger("stockwise.ledger")


def fold_balance(entries: Iterable[tuple[str, Decimal]]) -> Decimal:
    """Replay (type, quantity) ledger entries into a stock balance."""
    balance = Decimal("0")
    for movement_type, qty in entries:
        if movement_type == MovementType.IN.value:
            balance += qty
        elif movement_type == MovementType.OUT.value:
            balance -= qty
        elif movement_type == MovementType.ADJUST.value:
            balance = qty
    return balance


class _ProductLocks:
    def __init__(self):
        self._guard = threading.Lock()
        self._locks: dict[int, threading.Lock] = {}

    def for_product(self, product_id: int) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(product_id)
            if lock is None:
                lock = self._locks[product_id] = threading.Lock()
            return lock


class LedgerService:
    """Sole writer of stock quantities.

    Every movement is one ledger row plus the matching update of the
    product's cached current_stock, both inside a single unit of work.
    Movements on the same product are serialised by a per-product lock.
    """

    def __init__(
        self,
        repo: SqliteRepository,
        uow_factory: Callable[[], UnitOfWork] | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.repo = repo
        self.uow_factory = uow_factory or (lambda: SqliteUnitOfWork(repo))
        self.clock = clock
        self._locks = _ProductLocks()

    def record_movement(
        self,
        product_id: int,
        movement_type: MovementType | str,
        quantity: object,
        notes: Optional[str] = None,
        reference_no: Optional[str] = None,
        batch_number: Optional[str] = None,
        batch_expiry_date: object = None,
    ) -> MovementResult:
        mtype = self._parse_type(movement_type)
        qty = self._validate_quantity(mtype, quantity)

        batch_number = (batch_number or "").strip() or None
        expiry = parse_date(batch_expiry_date, "Batch expiry date")
        if expiry is not None and batch_number is None:
            raise ValidationError("Batch expiry date requires a batch number.")
        if batch_number is not None and mtype is MovementType.ADJUST:
            raise ValidationError("Adjustments cannot be tagged with a batch.")

        with self._locks.for_product(int(product_id)):
            with self.uow_factory() as uow:
                product = uow.get_product(int(product_id))
                if not product:
                    raise NotFoundError("Product not found.")
                movement = self.apply(uow, product, mtype, qty, notes, reference_no, batch_number, expiry)

        log.info(
            "movement_recorded id=%s product_id=%s type=%s qty=%s before=%s after=%s batch=%s",
            movement.id, product.id, mtype.value, qty, product.current_stock, movement.balance_after, batch_number,
        )
        return MovementResult(
            movement=movement,
            balance_before=product.current_stock,
            balance_after=movement.balance_after,
        )

    def apply(
        self,
        uow: UnitOfWork,
        product: Product,
        mtype: MovementType,
        qty: Decimal,
        notes: Optional[str] = None,
        reference_no: Optional[str] = None,
        batch_number: Optional[str] = None,
        batch_expiry_date=None,
    ) -> StockMovement:
        """Write one movement and the new cached balance inside the caller's unit of work."""
        current = product.current_stock
        expiry_iso = batch_expiry_date.isoformat() if batch_expiry_date else None

        if mtype is MovementType.IN:
            new_balance = current + qty
        elif mtype is MovementType.OUT:
            new_balance = current - qty
            if new_balance < 0:
                log.warning(
                    "movement_rejected product_id=%s type=OUT qty=%s available=%s",
                    product.id, qty, current,
                )
                raise InsufficientStockError(
                    f"Not enough stock for {product.name}. Available: {current} {product.unit}, requested: {qty}",
                    available=current,
                    requested=qty,
                )
            if batch_number is not None:
                in_batch = uow.batch_quantity(product.id, batch_number, expiry_iso)
                if qty > in_batch:
                    log.warning(
                        "movement_rejected product_id=%s type=OUT qty=%s batch=%s batch_available=%s",
                        product.id, qty, batch_number, in_batch,
                    )
                    raise InsufficientStockError(
                        f"Not enough stock in batch {batch_number}. Available: {in_batch} {product.unit}",
                        available=in_batch,
                        requested=qty,
                    )
        else:
            new_balance = qty

        now_iso = to_iso_timestamp(self.clock())
        movement_id = uow.insert_movement(
            product_id=product.id,
            movement_type=mtype.value,
            quantity=qty,
            unit=product.unit,
            reference_no=reference_no,
            notes=notes,
            batch_number=batch_number,
            batch_expiry_date=expiry_iso,
            balance_after=new_balance,
            transaction_date=now_iso,
        )
        uow.set_product_stock(product.id, new_balance, now_iso)

        return StockMovement(
            id=movement_id,
            product_id=product.id,
            type=mtype,
            quantity=qty,
            unit=product.unit,
            reference_no=reference_no,
            notes=notes,
            batch_number=batch_number,
            batch_expiry_date=batch_expiry_date,
            balance_after=new_balance,
            transaction_date=now_iso,
            product_name=product.name,
        )

    def reverse_movement(self, movement_id: int) -> Product:
        target = self.repo.get_movement(int(movement_id))
        if not target:
            raise NotFoundError("Movement not found.")

        with self._locks.for_product(target.product_id):
            with self.uow_factory() as uow:
                movement = uow.get_movement(int(movement_id))
                if not movement:
                    raise NotFoundError("Movement not found.")
                product = uow.get_product(movement.product_id, active_only=False)
                if not product:
                    raise NotFoundError("Product not found.")

                reverted = fold_balance(uow.movement_ledger(product.id, exclude_id=movement.id))
                if reverted < 0:
                    log.warning(
                        "reversal_rejected movement_id=%s product_id=%s reverted=%s",
                        movement.id, product.id, reverted,
                    )
                    raise IrreversibleMovementError(
                        f"Cannot delete this movement: stock of {product.name} would become negative ({reverted})."
                    )

                if movement.type is MovementType.IN and movement.batch_number is not None:
                    expiry_iso = movement.batch_expiry_date.isoformat() if movement.batch_expiry_date else None
                    left = uow.batch_quantity(product.id, movement.batch_number, expiry_iso) - movement.quantity
                    if left < 0:
                        log.warning(
                            "reversal_rejected movement_id=%s product_id=%s batch=%s batch_left=%s",
                            movement.id, product.id, movement.batch_number, left,
                        )
                        raise IrreversibleMovementError(
                            f"Cannot delete this movement: batch {movement.batch_number} would become negative ({left})."
                        )

                uow.delete_movement(movement.id)
                uow.set_product_stock(product.id, reverted, to_iso_timestamp(self.clock()))

        log.info(
            "movement_reversed id=%s product_id=%s type=%s qty=%s before=%s after=%s",
            movement.id, product.id, movement.type.value, movement.quantity, product.current_stock, reverted,
        )
        return self.repo.get_product(product.id)

    def get_movement(self, movement_id: int) -> StockMovement:
        m = self.repo.get_movement(int(movement_id))
        if not m:
            raise NotFoundError("Movement not found.")
        return m

    def product_movements(self, product_id: int, limit: int = 50) -> list[StockMovement]:
        return self.repo.product_movements(int(product_id), limit)

    def list_movements(
        self,
        date_from: object = None,
        date_to: object = None,
        movement_type: MovementType | str | None = None,
        limit: int = 100,
    ) -> list[StockMovement]:
        start = parse_date(date_from, "Date from")
        end = parse_date(date_to, "Date to")
        mtype = self._parse_type(movement_type) if movement_type else None
        return self.repo.list_movements(
            start.isoformat() if start else None,
            end.isoformat() if end else None,
            mtype.value if mtype else None,
            limit,
        )

    def recent_movements(self, limit: int = 10) -> list[StockMovement]:
        return self.repo.list_movements(limit=limit)

    def ledger_balance(self, product_id: int) -> Decimal:
        return fold_balance((m, q) for pid, m, q in self._ledger() if pid == int(product_id))

    def reconcile(self) -> list[tuple[int, Decimal, Decimal]]:
        """(product_id, cached, ledger) for every product whose cache drifted."""
        entries: dict[int, list[tuple[str, Decimal]]] = defaultdict(list)
        for pid, mtype, qty in self._ledger():
            entries[pid].append((mtype, qty))

        drifted = []
        for product in self.repo.list_products(ProductFilter(include_inactive=True)):
            ledger = fold_balance(entries.get(product.id, []))
            if ledger != product.current_stock:
                drifted.append((product.id, product.current_stock, ledger))
        if drifted:
            log.error("ledger_drift products=%s", [d[0] for d in drifted])
        return drifted

    def _ledger(self) -> list[tuple[int, str, Decimal]]:
        return [(pid, mtype, to_decimal(qty)) for pid, mtype, qty in self.repo.ledger_rows()]

    @staticmethod
    def _parse_type(value: MovementType | str) -> MovementType:
        try:
            return MovementType(str(getattr(value, "value", value)).strip().upper())
        except ValueError as e:
            raise ValidationError(f"Unknown movement type: {value!r}") from e

    @staticmethod
    def _validate_quantity(mtype: MovementType, quantity: object) -> Decimal:
        qty = to_decimal(quantity, "Quantity")
        if mtype is MovementType.ADJUST:
            if qty < 0:
                raise ValidationError("Adjusted stock must be >= 0.")
        elif qty <= 0:
            raise ValidationError("Quantity must be > 0.")
        return qty
