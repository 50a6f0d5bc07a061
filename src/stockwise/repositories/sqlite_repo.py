from __future__ import annotations

import shutil
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Iterator, Optional

from stockwise.domain.errors import PersistenceError
from stockwise.domain.models import (
    Category,
    MovementType,
    Notification,
    NotificationType,
    Priority,
    Product,
    ProductFilter,
    StockMovement,
)
from stockwise.domain.values import from_db_decimal, parse_date

DEFAULT_CATEGORIES = [
    ("Food & Beverages", "food"),
    ("Spices & Seasonings", "spice"),
    ("Household Supplies", "home"),
    ("Soap & Detergent", "soap"),
    ("Tobacco", "tobacco"),
    ("Stationery", "pencil"),
    ("Health", "pill"),
    ("Other", "box"),
]

PRODUCT_COLUMNS = """
    p.id, p.name, p.sku, p.barcode, p.category_id, p.description,
    p.purchase_price, p.selling_price, p.current_stock, p.unit,
    p.min_stock_threshold, p.expiry_date, p.is_active, p.created_at, p.updated_at
"""

MOVEMENT_COLUMNS = """
    m.id, m.product_id, m.type, m.quantity, m.unit, m.reference_no, m.notes,
    m.batch_number, m.batch_expiry_date, m.balance_after, m.transaction_date,
    p.name AS product_name
"""

NOTIFICATION_COLUMNS = """
    id, type, priority, title, message, icon, product_id, product_name,
    quantity, unit, is_read, created_at
"""


def row_to_product(r: sqlite3.Row) -> Product:
    return Product(
        id=int(r["id"]),
        name=str(r["name"]),
        sku=r["sku"],
        barcode=r["barcode"],
        category_id=(int(r["category_id"]) if r["category_id"] is not None else None),
        description=r["description"],
        purchase_price=from_db_decimal(r["purchase_price"]),
        selling_price=from_db_decimal(r["selling_price"]),
        current_stock=from_db_decimal(r["current_stock"]),
        unit=str(r["unit"]),
        min_stock_threshold=from_db_decimal(r["min_stock_threshold"]),
        expiry_date=parse_date(r["expiry_date"]),
        is_active=bool(r["is_active"]),
        created_at=str(r["created_at"]),
        updated_at=str(r["updated_at"]),
    )


def row_to_movement(r: sqlite3.Row) -> StockMovement:
    return StockMovement(
        id=int(r["id"]),
        product_id=int(r["product_id"]),
        type=MovementType(r["type"]),
        quantity=from_db_decimal(r["quantity"]),
        unit=str(r["unit"]),
        reference_no=r["reference_no"],
        notes=r["notes"],
        batch_number=r["batch_number"],
        batch_expiry_date=parse_date(r["batch_expiry_date"]),
        balance_after=from_db_decimal(r["balance_after"]),
        transaction_date=str(r["transaction_date"]),
        product_name=r["product_name"],
    )


def row_to_notification(r: sqlite3.Row) -> Notification:
    return Notification(
        id=int(r["id"]),
        type=NotificationType(r["type"]),
        priority=Priority(r["priority"]),
        title=str(r["title"]),
        message=str(r["message"]),
        icon=str(r["icon"]),
        product_id=(int(r["product_id"]) if r["product_id"] is not None else None),
        product_name=r["product_name"],
        quantity=(from_db_decimal(r["quantity"]) if r["quantity"] is not None else None),
        unit=r["unit"],
        is_read=bool(r["is_read"]),
        created_at=str(r["created_at"]),
    )


def row_to_category(r: sqlite3.Row) -> Category:
    return Category(
        id=int(r["id"]),
        name=str(r["name"]),
        description=r["description"],
        icon=r["icon"],
        created_at=str(r["created_at"]),
    )


class SqliteRepository:
    def __init__(self, db_path: Path | str, timeout: float = 5.0):
        self.db_path = str(db_path)
        self.timeout = float(timeout)

    def _conn(self) -> sqlite3.Connection:
        try:
            conn = sqlite3.connect(self.db_path, timeout=self.timeout)
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA foreign_keys = ON;")
        except sqlite3.Error as e:
            raise PersistenceError(f"Could not open database: {e}") from e
        return conn

    @contextmanager
    def _cursor(self) -> Iterator[sqlite3.Cursor]:
        conn = self._conn()
        try:
            cur = conn.cursor()
            yield cur
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            raise PersistenceError(f"Database error: {e}") from e
        finally:
            conn.close()

    def init_db(self) -> None:
        self.run_migrations()

    def run_migrations(self) -> None:
        conn = self._conn()
        backup_path = self._create_pre_migration_backup()
        try:
            cur = conn.cursor()
            cur.execute("BEGIN")
            cur.execute("CREATE TABLE IF NOT EXISTS schema_migrations (version INTEGER PRIMARY KEY, applied_at TEXT NOT NULL)")
            cur.execute("SELECT COALESCE(MAX(version), 0) FROM schema_migrations")
            current_version = int(cur.fetchone()[0])

            migrations = [
                (1, self._migration_v1_base),
                (2, self._migration_v2_batch_tracking),
                (3, self._migration_v3_notifications),
            ]

            for version, migration in migrations:
                if version <= current_version:
                    continue
                migration(cur)
                cur.execute(
                    "INSERT INTO schema_migrations (version, applied_at) VALUES (?, datetime('now'))",
                    (version,),
                )
            conn.commit()
        except Exception as exc:
            conn.rollback()
            self._restore_pre_migration_backup(backup_path)
            raise PersistenceError(
                "Database migration failed. Original database restored from automatic backup."
            ) from exc
        finally:
            conn.close()

    def _create_pre_migration_backup(self) -> Path | None:
        db_file = Path(self.db_path)
        if not db_file.exists() or db_file.stat().st_size == 0:
            return None
        backup_file = db_file.with_name(f"{db_file.stem}.pre_migration_{datetime.now().strftime('%Y%m%d%H%M%S')}.bak")
        shutil.copy2(db_file, backup_file)
        return backup_file

    def _restore_pre_migration_backup(self, backup_path: Path | None) -> None:
        if backup_path is None or not backup_path.exists():
            return
        shutil.copy2(backup_path, self.db_path)

    def _migration_v1_base(self, cur: sqlite3.Cursor) -> None:
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS categories (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL UNIQUE,
                description TEXT,
                icon TEXT,
                created_at TEXT NOT NULL DEFAULT (datetime('now', 'localtime'))
            )
            """
        )

        # quantities and prices are TEXT so Decimal values round-trip exactly
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS products (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL,
                sku TEXT UNIQUE,
                barcode TEXT,
                category_id INTEGER,
                description TEXT,
                purchase_price TEXT NOT NULL DEFAULT '0' CHECK(CAST(purchase_price AS REAL) >= 0),
                selling_price TEXT NOT NULL DEFAULT '0' CHECK(CAST(selling_price AS REAL) >= 0),
                current_stock TEXT NOT NULL DEFAULT '0' CHECK(CAST(current_stock AS REAL) >= 0),
                unit TEXT NOT NULL DEFAULT 'pcs',
                min_stock_threshold TEXT NOT NULL DEFAULT '0' CHECK(CAST(min_stock_threshold AS REAL) >= 0),
                expiry_date TEXT,
                created_at TEXT NOT NULL DEFAULT (datetime('now', 'localtime')),
                updated_at TEXT NOT NULL DEFAULT (datetime('now', 'localtime')),
                is_active INTEGER NOT NULL DEFAULT 1 CHECK(is_active IN (0,1)),
                FOREIGN KEY(category_id) REFERENCES categories(id)
            )
            """
        )

        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS stock_movements (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                product_id INTEGER NOT NULL,
                type TEXT NOT NULL CHECK(type IN ('IN','OUT','ADJUST')),
                quantity TEXT NOT NULL CHECK(CAST(quantity AS REAL) >= 0),
                unit TEXT NOT NULL,
                reference_no TEXT,
                notes TEXT,
                transaction_date TEXT NOT NULL DEFAULT (datetime('now', 'localtime')),
                balance_after TEXT NOT NULL CHECK(CAST(balance_after AS REAL) >= 0),
                FOREIGN KEY(product_id) REFERENCES products(id)
            )
            """
        )

        cur.execute("CREATE INDEX IF NOT EXISTS idx_products_sku ON products(sku)")
        cur.execute("CREATE INDEX IF NOT EXISTS idx_products_barcode ON products(barcode)")
        cur.execute("CREATE INDEX IF NOT EXISTS idx_products_category ON products(category_id)")
        cur.execute("CREATE INDEX IF NOT EXISTS idx_products_expiry ON products(expiry_date)")
        cur.execute("CREATE INDEX IF NOT EXISTS idx_movements_product ON stock_movements(product_id)")
        cur.execute("CREATE INDEX IF NOT EXISTS idx_movements_date ON stock_movements(transaction_date)")

        cur.execute("SELECT COUNT(*) FROM categories")
        if int(cur.fetchone()[0]) == 0:
            cur.executemany("INSERT INTO categories (name, icon) VALUES (?, ?)", DEFAULT_CATEGORIES)

    def _migration_v2_batch_tracking(self, cur: sqlite3.Cursor) -> None:
        self._add_column_if_missing(cur, "stock_movements", "batch_number", "TEXT")
        self._add_column_if_missing(cur, "stock_movements", "batch_expiry_date", "TEXT")
        cur.execute(
            "CREATE INDEX IF NOT EXISTS idx_movements_batch ON stock_movements(product_id, batch_number, batch_expiry_date)"
        )

    def _migration_v3_notifications(self, cur: sqlite3.Cursor) -> None:
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS notifications (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                type TEXT NOT NULL,
                priority TEXT NOT NULL CHECK(priority IN ('HIGH','MEDIUM','LOW')),
                title TEXT NOT NULL,
                message TEXT NOT NULL,
                icon TEXT NOT NULL,
                product_id INTEGER,
                product_name TEXT,
                quantity TEXT,
                unit TEXT,
                is_read INTEGER NOT NULL DEFAULT 0 CHECK(is_read IN (0,1)),
                created_at TEXT NOT NULL DEFAULT (datetime('now', 'localtime'))
            )
            """
        )
        cur.execute("CREATE INDEX IF NOT EXISTS idx_notifications_dedup ON notifications(type, product_id, created_at)")

    def _add_column_if_missing(self, cur: sqlite3.Cursor, table: str, column: str, definition: str) -> None:
        cur.execute(f"PRAGMA table_info({table})")
        cols = {str(r[1]) for r in cur.fetchall()}
        if column in cols:
            return
        cur.execute(f"ALTER TABLE {table} ADD COLUMN {column} {definition}")

    def integrity_check(self) -> str:
        with self._cursor() as cur:
            cur.execute("PRAGMA integrity_check")
            row = cur.fetchone()
        return str(row[0]) if row else "unknown"

    # ---------- Categories ----------
    def list_categories(self) -> list[Category]:
        with self._cursor() as cur:
            cur.execute("SELECT id, name, description, icon, created_at FROM categories ORDER BY name ASC")
            rows = cur.fetchall()
        return [row_to_category(r) for r in rows]

    def get_category(self, category_id: int) -> Optional[Category]:
        with self._cursor() as cur:
            cur.execute("SELECT id, name, description, icon, created_at FROM categories WHERE id=?", (int(category_id),))
            r = cur.fetchone()
        return row_to_category(r) if r else None

    def get_category_by_name(self, name: str) -> Optional[Category]:
        with self._cursor() as cur:
            cur.execute("SELECT id, name, description, icon, created_at FROM categories WHERE name=?", (name,))
            r = cur.fetchone()
        return row_to_category(r) if r else None

    def add_category(self, name: str, description: Optional[str], icon: Optional[str], created_at: str) -> int:
        with self._cursor() as cur:
            cur.execute(
                "INSERT INTO categories (name, description, icon, created_at) VALUES (?, ?, ?, ?)",
                (name, description, icon, created_at),
            )
            return int(cur.lastrowid)

    # ---------- Products ----------
    def get_product(self, product_id: int) -> Optional[Product]:
        with self._cursor() as cur:
            cur.execute(f"SELECT {PRODUCT_COLUMNS} FROM products p WHERE p.id=?", (int(product_id),))
            r = cur.fetchone()
        return row_to_product(r) if r else None

    def get_product_by_sku(self, sku: str) -> Optional[Product]:
        with self._cursor() as cur:
            cur.execute(f"SELECT {PRODUCT_COLUMNS} FROM products p WHERE p.is_active=1 AND p.sku=?", (sku,))
            r = cur.fetchone()
        return row_to_product(r) if r else None

    def get_product_by_barcode(self, barcode: str) -> Optional[Product]:
        with self._cursor() as cur:
            cur.execute(f"SELECT {PRODUCT_COLUMNS} FROM products p WHERE p.is_active=1 AND p.barcode=?", (barcode,))
            r = cur.fetchone()
        return row_to_product(r) if r else None

    def list_products(self, flt: ProductFilter | None = None) -> list[Product]:
        flt = flt or ProductFilter()
        query = f"SELECT {PRODUCT_COLUMNS} FROM products p WHERE 1=1"
        params: list = []
        if not flt.include_inactive:
            query += " AND p.is_active = 1"
        if flt.search:
            like = f"%{flt.search.strip()}%"
            query += " AND (p.name LIKE ? OR p.sku LIKE ? OR p.barcode LIKE ?)"
            params.extend([like, like, like])
        if flt.category_id is not None:
            query += " AND p.category_id = ?"
            params.append(int(flt.category_id))
        query += " ORDER BY p.name ASC, p.id ASC"

        with self._cursor() as cur:
            cur.execute(query, params)
            rows = cur.fetchall()
        products = [row_to_product(r) for r in rows]
        if flt.low_stock_only:
            products = [p for p in products if p.is_low_stock]
        return products

    def deactivate_product(self, product_id: int, updated_at: str) -> bool:
        with self._cursor() as cur:
            cur.execute(
                "UPDATE products SET is_active=0, updated_at=? WHERE id=? AND is_active=1",
                (updated_at, int(product_id)),
            )
            return cur.rowcount > 0

    # ---------- Movements ----------
    def get_movement(self, movement_id: int) -> Optional[StockMovement]:
        with self._cursor() as cur:
            cur.execute(
                f"SELECT {MOVEMENT_COLUMNS} FROM stock_movements m LEFT JOIN products p ON p.id = m.product_id WHERE m.id=?",
                (int(movement_id),),
            )
            r = cur.fetchone()
        return row_to_movement(r) if r else None

    def product_movements(self, product_id: int, limit: int = 50) -> list[StockMovement]:
        with self._cursor() as cur:
            cur.execute(
                f"""
                SELECT {MOVEMENT_COLUMNS}
                FROM stock_movements m
                LEFT JOIN products p ON p.id = m.product_id
                WHERE m.product_id = ?
                ORDER BY m.transaction_date DESC, m.id DESC
                LIMIT ?
                """,
                (int(product_id), int(limit)),
            )
            rows = cur.fetchall()
        return [row_to_movement(r) for r in rows]

    def list_movements(
        self,
        date_from: Optional[str] = None,
        date_to: Optional[str] = None,
        movement_type: Optional[str] = None,
        limit: int = 100,
    ) -> list[StockMovement]:
        query = f"""
            SELECT {MOVEMENT_COLUMNS}
            FROM stock_movements m
            LEFT JOIN products p ON p.id = m.product_id
            WHERE 1=1
        """
        params: list = []
        if date_from:
            query += " AND substr(m.transaction_date, 1, 10) >= ?"
            params.append(date_from)
        if date_to:
            query += " AND substr(m.transaction_date, 1, 10) <= ?"
            params.append(date_to)
        if movement_type:
            query += " AND m.type = ?"
            params.append(movement_type)
        query += " ORDER BY m.transaction_date DESC, m.id DESC LIMIT ?"
        params.append(int(limit))

        with self._cursor() as cur:
            cur.execute(query, params)
            rows = cur.fetchall()
        return [row_to_movement(r) for r in rows]

    def ledger_rows(self) -> list[tuple[int, str, str]]:
        """(product_id, type, quantity) for every movement, in write order."""
        with self._cursor() as cur:
            cur.execute("SELECT product_id, type, quantity FROM stock_movements ORDER BY product_id, id")
            rows = cur.fetchall()
        return [(int(r[0]), str(r[1]), str(r[2])) for r in rows]

    def count_movements(self, movement_type: Optional[str] = None, since_date: Optional[str] = None) -> int:
        query = "SELECT COUNT(*) FROM stock_movements WHERE 1=1"
        params: list = []
        if movement_type:
            query += " AND type = ?"
            params.append(movement_type)
        if since_date:
            query += " AND substr(transaction_date, 1, 10) >= ?"
            params.append(since_date)
        with self._cursor() as cur:
            cur.execute(query, params)
            return int(cur.fetchone()[0])

    def batch_rows(self, product_id: Optional[int] = None, active_products_only: bool = False) -> list[sqlite3.Row]:
        query = """
            SELECT m.product_id, m.type, m.quantity, m.batch_number, m.batch_expiry_date,
                   p.name AS product_name, p.unit AS unit
            FROM stock_movements m
            LEFT JOIN products p ON p.id = m.product_id
            WHERE m.batch_number IS NOT NULL
        """
        params: list = []
        if product_id is not None:
            query += " AND m.product_id = ?"
            params.append(int(product_id))
        if active_products_only:
            query += " AND p.is_active = 1"
        query += " ORDER BY m.id"
        with self._cursor() as cur:
            cur.execute(query, params)
            return cur.fetchall()

    # ---------- Notifications ----------
    def get_notification(self, notification_id: int) -> Optional[Notification]:
        with self._cursor() as cur:
            cur.execute(f"SELECT {NOTIFICATION_COLUMNS} FROM notifications WHERE id=?", (int(notification_id),))
            r = cur.fetchone()
        return row_to_notification(r) if r else None

    def list_notifications(self, limit: int = 50, priority: Optional[str] = None, unread_only: bool = False) -> list[Notification]:
        query = f"SELECT {NOTIFICATION_COLUMNS} FROM notifications WHERE 1=1"
        params: list = []
        if priority:
            query += " AND priority = ?"
            params.append(priority)
        if unread_only:
            query += " AND is_read = 0"
            query += """
                ORDER BY CASE priority WHEN 'HIGH' THEN 1 WHEN 'MEDIUM' THEN 2 WHEN 'LOW' THEN 3 END,
                         created_at DESC, id DESC
            """
        else:
            query += " ORDER BY created_at DESC, id DESC"
        query += " LIMIT ?"
        params.append(int(limit))
        with self._cursor() as cur:
            cur.execute(query, params)
            rows = cur.fetchall()
        return [row_to_notification(r) for r in rows]

    def unread_count(self) -> int:
        with self._cursor() as cur:
            cur.execute("SELECT COUNT(*) FROM notifications WHERE is_read = 0")
            return int(cur.fetchone()[0])

    def mark_notification_read(self, notification_id: int) -> bool:
        with self._cursor() as cur:
            cur.execute("UPDATE notifications SET is_read = 1 WHERE id = ?", (int(notification_id),))
            return cur.rowcount > 0

    def mark_all_notifications_read(self) -> int:
        with self._cursor() as cur:
            cur.execute("UPDATE notifications SET is_read = 1 WHERE is_read = 0")
            return int(cur.rowcount)

    def delete_notification(self, notification_id: int) -> bool:
        with self._cursor() as cur:
            cur.execute("DELETE FROM notifications WHERE id = ?", (int(notification_id),))
            return cur.rowcount > 0

    def clear_read_notifications(self) -> int:
        with self._cursor() as cur:
            cur.execute("DELETE FROM notifications WHERE is_read = 1")
            return int(cur.rowcount)

    def clear_all_notifications(self) -> int:
        with self._cursor() as cur:
            cur.execute("DELETE FROM notifications")
            return int(cur.rowcount)
