from __future__ import annotations

import logging
from typing import Optional

from stockwise.domain.models import (
    MovementResult,
    MovementType,
    NotificationPayload,
    NotificationType,
    Product,
)
from stockwise.services.ledger_service import LedgerService
from stockwise.services.notification_service import NotificationService
from stockwise.services.product_service import ProductService

log = logging.getLogger(__name__)


class StockService:
    """What the screens call: a ledger or registry write, then the matching alerts."""

    def __init__(self, products: ProductService, ledger: LedgerService, notifications: NotificationService):
        self.products = products
        self.ledger = ledger
        self.notifications = notifications

    def _movement_payload(self, result: MovementResult) -> NotificationPayload:
        m = result.movement
        return NotificationPayload(
            product_id=m.product_id,
            product_name=m.product_name,
            quantity=m.quantity,
            unit=m.unit,
        )

    def stock_in(
        self,
        product_id: int,
        quantity: object,
        notes: Optional[str] = None,
        reference_no: Optional[str] = None,
        batch_number: Optional[str] = None,
        batch_expiry_date: object = None,
    ) -> MovementResult:
        result = self.ledger.record_movement(
            product_id, MovementType.IN, quantity, notes, reference_no, batch_number, batch_expiry_date
        )
        self.notifications.emit(NotificationType.STOCK_IN, self._movement_payload(result))
        return result

    def stock_out(
        self,
        product_id: int,
        quantity: object,
        notes: Optional[str] = None,
        reference_no: Optional[str] = None,
        batch_number: Optional[str] = None,
        batch_expiry_date: object = None,
    ) -> MovementResult:
        result = self.ledger.record_movement(
            product_id, MovementType.OUT, quantity, notes, reference_no, batch_number, batch_expiry_date
        )
        self.notifications.emit(NotificationType.STOCK_OUT, self._movement_payload(result))
        self.notifications.check_low_stock_alerts()
        return result

    def adjust(self, product_id: int, counted: object, notes: Optional[str] = None) -> MovementResult:
        result = self.ledger.record_movement(product_id, MovementType.ADJUST, counted, notes)
        self.notifications.check_low_stock_alerts()
        return result

    def delete_movement(self, movement_id: int) -> Product:
        return self.ledger.reverse_movement(movement_id)

    def add_product(self, name: str, **fields) -> Product:
        product = self.products.create_product(name, **fields)
        self.notifications.emit(
            NotificationType.PRODUCT_ADDED,
            NotificationPayload(product_id=product.id, product_name=product.name, unit=product.unit),
        )
        return product

    def edit_product(self, product_id: int, name: str, **fields) -> Product:
        product = self.products.update_product(product_id, name, **fields)
        self.notifications.emit(
            NotificationType.PRODUCT_EDITED,
            NotificationPayload(product_id=product.id, product_name=product.name, unit=product.unit),
        )
        return product

    def refresh_alerts(self) -> tuple[int, int]:
        low = self.notifications.check_low_stock_alerts()
        expiring = self.notifications.check_expiring_alerts()
        log.info("alerts_refreshed low_stock=%s expiring=%s", low, expiring)
        return low, expiring
