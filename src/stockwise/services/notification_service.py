from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Callable, Optional

from stockwise.config import AlertSettings
from stockwise.domain.errors import NotFoundError, ValidationError
from stockwise.domain.models import Notification, NotificationPayload, NotificationType, Priority
from stockwise.domain.values import to_decimal, to_iso_timestamp
from stockwise.repositories.sqlite_repo import SqliteRepository
from stockwise.repositories.unit_of_work import SqliteUnitOfWork

log = logging.getLogger("stockwise.alerts")

PRIORITIES = {
    NotificationType.LOW_STOCK: Priority.HIGH,
    NotificationType.EXPIRING_SOON: Priority.HIGH,
    NotificationType.STOCK_IN: Priority.MEDIUM,
    NotificationType.STOCK_OUT: Priority.MEDIUM,
    NotificationType.PRODUCT_ADDED: Priority.LOW,
    NotificationType.PRODUCT_EDITED: Priority.LOW,
}

ICONS = {
    NotificationType.LOW_STOCK: "warning",
    NotificationType.EXPIRING_SOON: "clock",
    NotificationType.STOCK_IN: "inbox",
    NotificationType.STOCK_OUT: "outbox",
    NotificationType.PRODUCT_ADDED: "sparkles",
    NotificationType.PRODUCT_EDITED: "pencil",
}


def _fmt_qty(value: Optional[Decimal]) -> str:
    if value is None:
        return "0"
    # 5.000 -> 5, 2.50 -> 2.5
    return format(value.normalize(), "f")


def render(ntype: NotificationType, payload: NotificationPayload) -> tuple[str, str]:
    name = payload.product_name or "Product"
    unit = payload.unit or "pcs"
    qty = _fmt_qty(payload.quantity)
    if ntype is NotificationType.LOW_STOCK:
        return "Low stock!", f"{name} has only {qty} {unit} left. Restock soon!"
    if ntype is NotificationType.EXPIRING_SOON:
        return "Product expiring soon", f"{name} expires in {payload.days_left or 0} days"
    if ntype is NotificationType.STOCK_IN:
        return "Stock in", f"{name} +{qty} {unit}"
    if ntype is NotificationType.STOCK_OUT:
        return "Stock out", f"{name} -{qty} {unit}"
    if ntype is NotificationType.PRODUCT_ADDED:
        return "New product added", f"{name} was added to the inventory"
    return "Product updated", f"{name} was updated"


class NotificationService:
    def __init__(
        self,
        repo: SqliteRepository,
        settings: AlertSettings | None = None,
        uow_factory: Callable[[], SqliteUnitOfWork] | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.repo = repo
        self.settings = settings or AlertSettings()
        self.uow_factory = uow_factory or (lambda: SqliteUnitOfWork(repo))
        self.clock = clock

    @staticmethod
    def _parse_type(value: NotificationType | str) -> NotificationType:
        try:
            return NotificationType(str(getattr(value, "value", value)).strip().upper())
        except ValueError as e:
            raise ValidationError(f"Invalid notification type: {value!r}") from e

    def _insert(self, uow, ntype: NotificationType, payload: NotificationPayload) -> int:
        title, message = render(ntype, payload)
        nid = uow.insert_notification(
            notification_type=ntype.value,
            priority=PRIORITIES[ntype].value,
            title=title,
            message=message,
            icon=ICONS[ntype],
            product_id=payload.product_id,
            product_name=payload.product_name,
            quantity=payload.quantity,
            unit=payload.unit,
            created_at=to_iso_timestamp(self.clock()),
        )
        log.info("notification_created id=%s type=%s product_id=%s", nid, ntype.value, payload.product_id)
        return nid

    def emit(self, notification_type: NotificationType | str, payload: NotificationPayload) -> Notification:
        ntype = self._parse_type(notification_type)
        if payload.quantity is not None:
            payload = replace(payload, quantity=to_decimal(payload.quantity, "Quantity"))
        with self.uow_factory() as uow:
            nid = self._insert(uow, ntype, payload)
        return self.repo.get_notification(nid)

    def _dedup_since(self) -> str:
        return to_iso_timestamp(self.clock() - timedelta(hours=self.settings.dedup_hours))

    def check_low_stock_alerts(self) -> int:
        """Emit LOW_STOCK for products at or under threshold. Returns how many were low."""
        since = self._dedup_since()
        created = 0
        with self.uow_factory() as uow:
            low = uow.low_stock_products()
            for p in low:
                if uow.recent_notification_exists(NotificationType.LOW_STOCK.value, p.id, since):
                    continue
                self._insert(
                    uow,
                    NotificationType.LOW_STOCK,
                    NotificationPayload(product_id=p.id, product_name=p.name, quantity=p.current_stock, unit=p.unit),
                )
                created += 1
        log.info("low_stock_sweep found=%s created=%s", len(low), created)
        return len(low)

    def check_expiring_alerts(self) -> int:
        today = self.clock().date()
        since = self._dedup_since()
        window = self.settings.expiry_alert_days
        found = 0
        created = 0
        with self.uow_factory() as uow:
            for p in uow.products_with_expiry():
                days_left = (p.expiry_date - today).days
                if not 0 < days_left <= window:
                    continue
                found += 1
                if uow.recent_notification_exists(NotificationType.EXPIRING_SOON.value, p.id, since):
                    continue
                self._insert(
                    uow,
                    NotificationType.EXPIRING_SOON,
                    NotificationPayload(product_id=p.id, product_name=p.name, unit=p.unit, days_left=days_left),
                )
                created += 1
        log.info("expiry_sweep found=%s created=%s", found, created)
        return found

    def get_notification(self, notification_id: int) -> Notification:
        n = self.repo.get_notification(int(notification_id))
        if not n:
            raise NotFoundError("Notification not found.")
        return n

    def list_notifications(
        self,
        limit: int = 50,
        priority: Priority | str | None = None,
        unread_only: bool = False,
    ) -> list[Notification]:
        prio = None
        if priority is not None:
            try:
                prio = Priority(str(getattr(priority, "value", priority)).strip().upper()).value
            except ValueError as e:
                raise ValidationError(f"Invalid priority: {priority!r}") from e
        return self.repo.list_notifications(limit=limit, priority=prio, unread_only=unread_only)

    def unread_count(self) -> int:
        return self.repo.unread_count()

    def mark_as_read(self, notification_id: int) -> None:
        if not self.repo.mark_notification_read(int(notification_id)):
            raise NotFoundError("Notification not found.")

    def mark_all_as_read(self) -> int:
        return self.repo.mark_all_notifications_read()

    def delete(self, notification_id: int) -> None:
        if not self.repo.delete_notification(int(notification_id)):
            raise NotFoundError("Notification not found.")

    def clear_read(self) -> int:
        removed = self.repo.clear_read_notifications()
        log.info("notifications_cleared scope=read removed=%s", removed)
        return removed

    def clear_all(self) -> int:
        removed = self.repo.clear_all_notifications()
        log.info("notifications_cleared scope=all removed=%s", removed)
        return removed
