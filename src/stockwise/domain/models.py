from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Optional


class MovementType(str, Enum):
    IN = "IN"
    OUT = "OUT"
    ADJUST = "ADJUST"


class NotificationType(str, Enum):
    LOW_STOCK = "LOW_STOCK"
    EXPIRING_SOON = "EXPIRING_SOON"
    STOCK_IN = "STOCK_IN"
    STOCK_OUT = "STOCK_OUT"
    PRODUCT_ADDED = "PRODUCT_ADDED"
    PRODUCT_EDITED = "PRODUCT_EDITED"


class Priority(str, Enum):
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


@dataclass(frozen=True)
class Category:
    id: int
    name: str
    description: Optional[str]
    icon: Optional[str]
    created_at: str


@dataclass(frozen=True)
class Product:
    id: int
    name: str
    sku: Optional[str]
    barcode: Optional[str]
    category_id: Optional[int]
    description: Optional[str]
    purchase_price: Decimal
    selling_price: Decimal
    current_stock: Decimal
    unit: str
    min_stock_threshold: Decimal
    expiry_date: Optional[date]
    is_active: bool
    created_at: str
    updated_at: str

    @property
    def is_low_stock(self) -> bool:
        return self.min_stock_threshold > 0 and self.current_stock <= self.min_stock_threshold


@dataclass(frozen=True)
class StockMovement:
    id: int
    product_id: int
    type: MovementType
    quantity: Decimal
    unit: str
    reference_no: Optional[str]
    notes: Optional[str]
    batch_number: Optional[str]
    batch_expiry_date: Optional[date]
    balance_after: Decimal
    transaction_date: str
    product_name: Optional[str] = None


@dataclass(frozen=True)
class MovementResult:
    movement: StockMovement
    balance_before: Decimal
    balance_after: Decimal


@dataclass(frozen=True)
class Batch:
    product_id: int
    product_name: str
    unit: str
    batch_number: str
    batch_expiry_date: Optional[date]
    total_in: Decimal
    total_out: Decimal
    current_quantity: Decimal
    days_until_expiry: Optional[int]


@dataclass(frozen=True)
class NotificationPayload:
    product_id: Optional[int] = None
    product_name: Optional[str] = None
    quantity: Optional[Decimal] = None
    unit: Optional[str] = None
    days_left: Optional[int] = None


@dataclass(frozen=True)
class Notification:
    id: int
    type: NotificationType
    priority: Priority
    title: str
    message: str
    icon: str
    product_id: Optional[int]
    product_name: Optional[str]
    quantity: Optional[Decimal]
    unit: Optional[str]
    is_read: bool
    created_at: str


@dataclass(frozen=True)
class ProductFilter:
    search: Optional[str] = None
    category_id: Optional[int] = None
    low_stock_only: bool = False
    include_inactive: bool = False
