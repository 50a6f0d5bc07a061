from __future__ import annotations

import sqlite3
from decimal import Decimal
from typing import Optional, Protocol

from stockwise.domain.errors import PersistenceError
from stockwise.domain.models import Product, StockMovement
from stockwise.domain.values import from_db_decimal
from stockwise.repositories.sqlite_repo import (
    MOVEMENT_COLUMNS,
    PRODUCT_COLUMNS,
    SqliteRepository,
    row_to_movement,
    row_to_product,
)


class UnitOfWork(Protocol):
    def __enter__(self) -> "UnitOfWork": ...
    def __exit__(self, exc_type, exc, tb) -> None: ...
    def get_product(self, product_id: int, active_only: bool = True) -> Optional[Product]: ...
    def set_product_stock(self, product_id: int, new_stock: Decimal, updated_at: str) -> None: ...
    def insert_movement(
        self,
        product_id: int,
        movement_type: str,
        quantity: Decimal,
        unit: str,
        reference_no: Optional[str],
        notes: Optional[str],
        batch_number: Optional[str],
        batch_expiry_date: Optional[str],
        balance_after: Decimal,
        transaction_date: str,
    ) -> int: ...
    def get_movement(self, movement_id: int) -> Optional[StockMovement]: ...
    def delete_movement(self, movement_id: int) -> None: ...
    def movement_ledger(self, product_id: int, exclude_id: Optional[int] = None) -> list[tuple[str, Decimal]]: ...
    def batch_quantity(self, product_id: int, batch_number: str, batch_expiry_date: Optional[str]) -> Decimal: ...


class SqliteUnitOfWork:
    """Scoped write transaction over a single connection.

    BEGIN IMMEDIATE on enter, COMMIT on clean exit, ROLLBACK on any
    exception. sqlite3 errors leave as PersistenceError.
    """

    def __init__(self, repo: SqliteRepository):
        self.repo = repo
        self.conn: sqlite3.Connection | None = None
        self.cur: sqlite3.Cursor | None = None

    def __enter__(self) -> "SqliteUnitOfWork":
        self.conn = self.repo._conn()
        self.conn.isolation_level = None
        try:
            self.conn.execute("BEGIN IMMEDIATE")
        except sqlite3.Error as e:
            self.conn.close()
            raise PersistenceError(f"Could not start transaction: {e}") from e
        self.cur = self.conn.cursor()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        assert self.conn is not None
        try:
            if exc_type is None:
                try:
                    self.conn.execute("COMMIT")
                except sqlite3.Error as e:
                    self._rollback()
                    raise PersistenceError(f"Commit failed: {e}") from e
            else:
                self._rollback()
                if isinstance(exc, sqlite3.Error):
                    raise PersistenceError(f"Database error: {exc}") from exc
        finally:
            self.conn.close()
            self.conn = None
            self.cur = None

    def _rollback(self) -> None:
        if self.conn is not None and self.conn.in_transaction:
            self.conn.execute("ROLLBACK")

    # ---------- Products ----------
    def get_product(self, product_id: int, active_only: bool = True) -> Optional[Product]:
        query = f"SELECT {PRODUCT_COLUMNS} FROM products p WHERE p.id=?"
        if active_only:
            query += " AND p.is_active=1"
        self.cur.execute(query, (int(product_id),))
        r = self.cur.fetchone()
        return row_to_product(r) if r else None

    def sku_taken(self, sku: str, exclude_id: Optional[int] = None) -> bool:
        self.cur.execute(
            "SELECT id FROM products WHERE sku=? AND id != ?",
            (sku, int(exclude_id) if exclude_id is not None else -1),
        )
        return self.cur.fetchone() is not None

    def category_exists(self, category_id: int) -> bool:
        self.cur.execute("SELECT 1 FROM categories WHERE id=?", (int(category_id),))
        return self.cur.fetchone() is not None

    def insert_product(
        self,
        name: str,
        sku: Optional[str],
        barcode: Optional[str],
        category_id: Optional[int],
        description: Optional[str],
        purchase_price: Decimal,
        selling_price: Decimal,
        unit: str,
        min_stock_threshold: Decimal,
        expiry_date: Optional[str],
        created_at: str,
    ) -> int:
        self.cur.execute(
            """
            INSERT INTO products (
                name, sku, barcode, category_id, description,
                purchase_price, selling_price, current_stock, unit,
                min_stock_threshold, expiry_date, created_at, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, '0', ?, ?, ?, ?, ?)
            """,
            (
                name,
                sku,
                barcode,
                category_id,
                description,
                str(purchase_price),
                str(selling_price),
                unit,
                str(min_stock_threshold),
                expiry_date,
                created_at,
                created_at,
            ),
        )
        return int(self.cur.lastrowid)

    def update_product(
        self,
        product_id: int,
        name: str,
        sku: Optional[str],
        barcode: Optional[str],
        category_id: Optional[int],
        description: Optional[str],
        purchase_price: Decimal,
        selling_price: Decimal,
        unit: str,
        min_stock_threshold: Decimal,
        expiry_date: Optional[str],
        updated_at: str,
    ) -> None:
        self.cur.execute(
            """
            UPDATE products SET
                name = ?, sku = ?, barcode = ?, category_id = ?, description = ?,
                purchase_price = ?, selling_price = ?, unit = ?,
                min_stock_threshold = ?, expiry_date = ?, updated_at = ?
            WHERE id = ?
            """,
            (
                name,
                sku,
                barcode,
                category_id,
                description,
                str(purchase_price),
                str(selling_price),
                unit,
                str(min_stock_threshold),
                expiry_date,
                updated_at,
                int(product_id),
            ),
        )

    def set_product_stock(self, product_id: int, new_stock: Decimal, updated_at: str) -> None:
        self.cur.execute(
            "UPDATE products SET current_stock = ?, updated_at = ? WHERE id = ?",
            (str(new_stock), updated_at, int(product_id)),
        )

    def low_stock_products(self) -> list[Product]:
        self.cur.execute(f"SELECT {PRODUCT_COLUMNS} FROM products p WHERE p.is_active = 1 ORDER BY p.id")
        products = [row_to_product(r) for r in self.cur.fetchall()]
        return [p for p in products if p.is_low_stock]

    def products_with_expiry(self) -> list[Product]:
        self.cur.execute(
            f"SELECT {PRODUCT_COLUMNS} FROM products p WHERE p.is_active = 1 AND p.expiry_date IS NOT NULL ORDER BY p.expiry_date, p.id"
        )
        return [row_to_product(r) for r in self.cur.fetchall()]

    # ---------- Movements ----------
    def insert_movement(
        self,
        product_id: int,
        movement_type: str,
        quantity: Decimal,
        unit: str,
        reference_no: Optional[str],
        notes: Optional[str],
        batch_number: Optional[str],
        batch_expiry_date: Optional[str],
        balance_after: Decimal,
        transaction_date: str,
    ) -> int:
        self.cur.execute(
            """
            INSERT INTO stock_movements (
                product_id, type, quantity, unit, reference_no, notes,
                batch_number, batch_expiry_date, balance_after, transaction_date
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                int(product_id),
                movement_type,
                str(quantity),
                unit,
                reference_no,
                notes,
                batch_number,
                batch_expiry_date,
                str(balance_after),
                transaction_date,
            ),
        )
        return int(self.cur.lastrowid)

    def get_movement(self, movement_id: int) -> Optional[StockMovement]:
        self.cur.execute(
            f"SELECT {MOVEMENT_COLUMNS} FROM stock_movements m LEFT JOIN products p ON p.id = m.product_id WHERE m.id=?",
            (int(movement_id),),
        )
        r = self.cur.fetchone()
        return row_to_movement(r) if r else None

    def delete_movement(self, movement_id: int) -> None:
        self.cur.execute("DELETE FROM stock_movements WHERE id = ?", (int(movement_id),))

    def movement_ledger(self, product_id: int, exclude_id: Optional[int] = None) -> list[tuple[str, Decimal]]:
        self.cur.execute(
            "SELECT type, quantity FROM stock_movements WHERE product_id = ? AND id != ? ORDER BY id",
            (int(product_id), int(exclude_id) if exclude_id is not None else -1),
        )
        return [(str(r[0]), from_db_decimal(r[1])) for r in self.cur.fetchall()]

    def batch_quantity(self, product_id: int, batch_number: str, batch_expiry_date: Optional[str]) -> Decimal:
        self.cur.execute(
            """
            SELECT type, quantity FROM stock_movements
            WHERE product_id = ? AND batch_number = ? AND batch_expiry_date IS ?
            """,
            (int(product_id), batch_number, batch_expiry_date),
        )
        total = Decimal("0")
        for r in self.cur.fetchall():
            if r[0] == "IN":
                total += from_db_decimal(r[1])
            elif r[0] == "OUT":
                total -= from_db_decimal(r[1])
        return total

    # ---------- Notifications ----------
    def recent_notification_exists(self, notification_type: str, product_id: Optional[int], since: str) -> bool:
        self.cur.execute(
            """
            SELECT id FROM notifications
            WHERE type = ? AND product_id IS ? AND created_at >= ?
            LIMIT 1
            """,
            (notification_type, product_id, since),
        )
        return self.cur.fetchone() is not None

    def insert_notification(
        self,
        notification_type: str,
        priority: str,
        title: str,
        message: str,
        icon: str,
        product_id: Optional[int],
        product_name: Optional[str],
        quantity: Optional[Decimal],
        unit: Optional[str],
        created_at: str,
    ) -> int:
        self.cur.execute(
            """
            INSERT INTO notifications (
                type, priority, title, message, icon, product_id, product_name,
                quantity, unit, is_read, created_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, 0, ?)
            """,
            (
                notification_type,
                priority,
                title,
                message,
                icon,
                product_id,
                product_name,
                (str(quantity) if quantity is not None else None),
                unit,
                created_at,
            ),
        )
        return int(self.cur.lastrowid)
