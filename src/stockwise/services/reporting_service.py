from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable

from openpyxl import Workbook
from openpyxl.styles import Font
from openpyxl.utils import get_column_letter
from openpyxl.worksheet.table import Table, TableStyleInfo

from stockwise.domain.models import MovementType
from stockwise.domain.values import parse_date


@dataclass(frozen=True)
class DashboardSummary:
    total_products: int
    low_stock_count: int
    expiring_products: int
    unread_notifications: int
    today_in: int
    today_out: int


@dataclass(frozen=True)
class TransactionStats:
    total_in: int
    total_out: int
    total_adjust: int
    today_in: int
    today_out: int
    last_7_days: int


def _money(cell):
    cell.number_format = "#,##0.00"


def _qty(cell):
    cell.number_format = "#,##0.###"


def _bold_row(ws, r):
    for c in ws[r]:
        c.font = Font(bold=True)


def _set_widths(ws, widths: dict[str, int]):
    for col, w in widths.items():
        ws.column_dimensions[col].width = w


def _add_table(ws, name: str, start_row: int, start_col: int, end_row: int, end_col: int):
    ref = f"{get_column_letter(start_col)}{start_row}:{get_column_letter(end_col)}{end_row}"
    tab = Table(displayName=name, ref=ref)
    tab.tableStyleInfo = TableStyleInfo(
        name="TableStyleMedium9",
        showRowStripes=True,
        showColumnStripes=False,
    )
    ws.add_table(tab)


class ReportingService:
    def __init__(self, repo, batches, expiring_window_days: int = 30, clock: Callable[[], datetime] = datetime.now):
        self.repo = repo
        self.batches = batches
        self.expiring_window_days = expiring_window_days
        self.clock = clock

    def transaction_stats(self) -> TransactionStats:
        today = self.clock().date()
        week_ago = (today - timedelta(days=7)).isoformat()
        return TransactionStats(
            total_in=self.repo.count_movements(MovementType.IN.value),
            total_out=self.repo.count_movements(MovementType.OUT.value),
            total_adjust=self.repo.count_movements(MovementType.ADJUST.value),
            today_in=self.repo.count_movements(MovementType.IN.value, since_date=today.isoformat()),
            today_out=self.repo.count_movements(MovementType.OUT.value, since_date=today.isoformat()),
            last_7_days=self.repo.count_movements(since_date=week_ago),
        )

    def dashboard_summary(self) -> DashboardSummary:
        products = self.repo.list_products()
        stats = self.transaction_stats()
        return DashboardSummary(
            total_products=len(products),
            low_stock_count=sum(1 for p in products if p.is_low_stock),
            expiring_products=self.batches.count_expiring_products(self.expiring_window_days),
            unread_notifications=self.repo.unread_count(),
            today_in=stats.today_in,
            today_out=stats.today_out,
        )

    def export_movements_excel(self, path: str, date_from: object = None, date_to: object = None, limit: int = 10_000) -> int:
        start = parse_date(date_from, "Date from")
        end = parse_date(date_to, "Date to")
        movements = self.repo.list_movements(
            start.isoformat() if start else None,
            end.isoformat() if end else None,
            None,
            limit,
        )

        wb = Workbook()
        ws = wb.active
        ws.title = "Movements"
        ws.append([
            "ID", "Date", "Product", "Type", "Quantity", "Unit",
            "Balance After", "Reference", "Batch", "Batch Expiry", "Notes",
        ])
        _bold_row(ws, 1)

        for i, m in enumerate(reversed(movements), start=2):
            ws.append([
                m.id, m.transaction_date, m.product_name or "", m.type.value,
                float(m.quantity), m.unit, float(m.balance_after),
                m.reference_no or "", m.batch_number or "",
                m.batch_expiry_date.isoformat() if m.batch_expiry_date else "",
                m.notes or "",
            ])
            _qty(ws[f"E{i}"])
            _qty(ws[f"G{i}"])

        ws.freeze_panes = "A2"
        _set_widths(ws, {
            "A": 8, "B": 20, "C": 30, "D": 9, "E": 12, "F": 8,
            "G": 14, "H": 16, "I": 14, "J": 14, "K": 30,
        })
        if ws.max_row >= 2:
            _add_table(ws, "MovementsTable", 1, 1, ws.max_row, 11)

        wb.save(path)
        return len(movements)

    def export_inventory_excel(self, path: str) -> int:
        products = self.repo.list_products()

        wb = Workbook()
        ws = wb.active
        ws.title = "Inventory"
        ws["A1"] = "Inventory"
        ws["A1"].font = Font(bold=True, size=14)
        ws["A2"] = f"Generated {self.clock().replace(microsecond=0).isoformat(sep=' ')}"

        ws.append([])
        ws.append([
            "SKU", "Barcode", "Name", "Stock", "Unit", "Min Stock",
            "Purchase Price", "Selling Price", "Stock Value", "Expiry", "Low Stock",
        ])
        _bold_row(ws, 4)

        for i, p in enumerate(products, start=5):
            ws.append([
                p.sku or "", p.barcode or "", p.name,
                float(p.current_stock), p.unit, float(p.min_stock_threshold),
                float(p.purchase_price), float(p.selling_price),
                float(p.current_stock * p.purchase_price),
                p.expiry_date.isoformat() if p.expiry_date else "",
                "YES" if p.is_low_stock else "",
            ])
            _qty(ws[f"D{i}"])
            _qty(ws[f"F{i}"])
            _money(ws[f"G{i}"])
            _money(ws[f"H{i}"])
            _money(ws[f"I{i}"])

        ws.freeze_panes = "A5"
        _set_widths(ws, {
            "A": 14, "B": 16, "C": 34, "D": 10, "E": 8, "F": 10,
            "G": 14, "H": 14, "I": 14, "J": 12, "K": 10,
        })
        if ws.max_row >= 5:
            _add_table(ws, "InventoryTable", 4, 1, ws.max_row, 11)

        wb.save(path)
        return len(products)
