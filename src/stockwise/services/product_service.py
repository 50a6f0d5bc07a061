from __future__ import annotations

import logging
from datetime import date, datetime
from decimal import Decimal
from typing import Callable, Optional

from stockwise.domain.errors import NotFoundError, ValidationError
from stockwise.domain.models import Category, MovementType, Product, ProductFilter
from stockwise.domain.values import parse_date, to_decimal, to_iso_timestamp
from stockwise.repositories.sqlite_repo import SqliteRepository
from stockwise.repositories.unit_of_work import SqliteUnitOfWork
from stockwise.services.ledger_service import LedgerService

log = logging.getLogger(__name__)


class ProductService:
    def __init__(
        self,
        repo: SqliteRepository,
        ledger: LedgerService,
        uow_factory: Callable[[], SqliteUnitOfWork] | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.repo = repo
        self.ledger = ledger
        self.uow_factory = uow_factory or (lambda: SqliteUnitOfWork(repo))
        self.clock = clock

    def _clean(
        self,
        name: str,
        sku: Optional[str],
        barcode: Optional[str],
        purchase_price: object,
        selling_price: object,
        unit: Optional[str],
        min_stock_threshold: object,
        expiry_date: object,
    ) -> dict:
        name = (name or "").strip()
        if not name:
            raise ValidationError("Name is required.")
        purchase = to_decimal(purchase_price, "Purchase price")
        selling = to_decimal(selling_price, "Selling price")
        threshold = to_decimal(min_stock_threshold, "Minimum stock")
        if purchase < 0 or selling < 0:
            raise ValidationError("Prices must be >= 0.")
        if threshold < 0:
            raise ValidationError("Minimum stock must be >= 0.")
        expiry = parse_date(expiry_date, "Expiry date")
        return {
            "name": name,
            "sku": (sku or "").strip() or None,
            "barcode": (barcode or "").strip() or None,
            "purchase_price": purchase,
            "selling_price": selling,
            "unit": (unit or "").strip() or "pcs",
            "min_stock_threshold": threshold,
            "expiry_date": expiry.isoformat() if expiry else None,
        }

    def create_product(
        self,
        name: str,
        sku: Optional[str] = None,
        barcode: Optional[str] = None,
        category_id: Optional[int] = None,
        description: Optional[str] = None,
        purchase_price: object = 0,
        selling_price: object = 0,
        initial_stock: object = 0,
        unit: Optional[str] = "pcs",
        min_stock_threshold: object = 0,
        expiry_date: object = None,
    ) -> Product:
        fields = self._clean(name, sku, barcode, purchase_price, selling_price, unit, min_stock_threshold, expiry_date)
        stock = to_decimal(initial_stock, "Initial stock")
        if stock < 0:
            raise ValidationError("Initial stock must be >= 0.")

        with self.uow_factory() as uow:
            if fields["sku"] and uow.sku_taken(fields["sku"]):
                raise ValidationError(f"SKU already exists: {fields['sku']}")
            if category_id is not None and not uow.category_exists(category_id):
                raise NotFoundError("Category not found.")
            pid = uow.insert_product(
                category_id=category_id,
                description=description,
                created_at=to_iso_timestamp(self.clock()),
                **fields,
            )
            if stock > 0:
                product = uow.get_product(pid)
                self.ledger.apply(uow, product, MovementType.IN, stock, notes="Initial stock")

        log.info("product_created id=%s sku=%s initial_stock=%s", pid, fields["sku"], stock)
        return self.repo.get_product(pid)

    def update_product(
        self,
        product_id: int,
        name: str,
        sku: Optional[str] = None,
        barcode: Optional[str] = None,
        category_id: Optional[int] = None,
        description: Optional[str] = None,
        purchase_price: object = 0,
        selling_price: object = 0,
        unit: Optional[str] = "pcs",
        min_stock_threshold: object = 0,
        expiry_date: object = None,
    ) -> Product:
        """Edit descriptive fields. current_stock only moves through the ledger."""
        fields = self._clean(name, sku, barcode, purchase_price, selling_price, unit, min_stock_threshold, expiry_date)

        with self.uow_factory() as uow:
            if not uow.get_product(int(product_id)):
                raise NotFoundError("Product not found.")
            if fields["sku"] and uow.sku_taken(fields["sku"], exclude_id=int(product_id)):
                raise ValidationError(f"SKU already exists: {fields['sku']}")
            if category_id is not None and not uow.category_exists(category_id):
                raise NotFoundError("Category not found.")
            uow.update_product(
                product_id=int(product_id),
                category_id=category_id,
                description=description,
                updated_at=to_iso_timestamp(self.clock()),
                **fields,
            )

        log.info("product_updated id=%s", product_id)
        return self.repo.get_product(int(product_id))

    def deactivate_product(self, product_id: int) -> None:
        if not self.repo.deactivate_product(int(product_id), to_iso_timestamp(self.clock())):
            raise NotFoundError("Product not found.")
        log.info("product_deactivated id=%s", product_id)

    def get_product(self, product_id: int) -> Optional[Product]:
        return self.repo.get_product(int(product_id))

    def require_product(self, product_id: int) -> Product:
        p = self.repo.get_product(int(product_id))
        if not p:
            raise NotFoundError("Product not found.")
        return p

    def get_product_by_sku(self, sku: str) -> Optional[Product]:
        return self.repo.get_product_by_sku((sku or "").strip())

    def get_product_by_barcode(self, barcode: str) -> Optional[Product]:
        return self.repo.get_product_by_barcode((barcode or "").strip())

    def list_products(self, flt: ProductFilter | None = None) -> list[Product]:
        return self.repo.list_products(flt)

    def low_stock_products(self) -> list[Product]:
        products = self.repo.list_products(ProductFilter(low_stock_only=True))
        return sorted(products, key=lambda p: (p.current_stock, p.name))

    def near_expiry_products(self, days: int = 30) -> list[Product]:
        today: date = self.clock().date()
        out = [
            p
            for p in self.repo.list_products()
            if p.expiry_date is not None and 0 <= (p.expiry_date - today).days <= int(days)
        ]
        return sorted(out, key=lambda p: p.expiry_date)

    def list_categories(self) -> list[Category]:
        return self.repo.list_categories()

    def create_category(self, name: str, description: Optional[str] = None, icon: Optional[str] = None) -> Category:
        name = (name or "").strip()
        if not name:
            raise ValidationError("Category name is required.")
        if self.repo.get_category_by_name(name):
            raise ValidationError(f"Category already exists: {name}")
        cid = self.repo.add_category(name, description, icon, to_iso_timestamp(self.clock()))
        return self.repo.get_category(cid)

    def total_stock_value(self) -> Decimal:
        return sum((p.current_stock * p.purchase_price for p in self.repo.list_products()), Decimal("0"))
