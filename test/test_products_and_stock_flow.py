from datetime import timedelta
from decimal import Decimal
from pathlib import Path

import pytest

from conftest import make_services
from stockwise.domain.errors import InsufficientStockError, NotFoundError, ValidationError
from stockwise.domain.models import MovementType, NotificationType, ProductFilter


def test_initial_stock_is_recorded_as_ledger_entry(tmp_path: Path):
    s = make_services(tmp_path)

    p = s["products"].create_product("Pasta", sku="PST-1", initial_stock=12, purchase_price="1.20")

    assert p.current_stock == Decimal("12")
    movements = s["ledger"].product_movements(p.id)
    assert len(movements) == 1
    assert movements[0].type is MovementType.IN
    assert movements[0].notes == "Initial stock"
    assert movements[0].balance_after == Decimal("12")


def test_product_without_initial_stock_has_no_movements(tmp_path: Path):
    s = make_services(tmp_path)
    p = s["products"].create_product("Empty")
    assert p.current_stock == Decimal("0")
    assert s["ledger"].product_movements(p.id) == []


def test_duplicate_sku_is_rejected(tmp_path: Path):
    s = make_services(tmp_path)
    s["products"].create_product("A", sku="SKU-1")

    with pytest.raises(ValidationError):
        s["products"].create_product("B", sku="SKU-1")

    other = s["products"].create_product("C", sku="SKU-2")
    with pytest.raises(ValidationError):
        s["products"].update_product(other.id, "C", sku="SKU-1")


@pytest.mark.parametrize(
    "kwargs",
    [
        {"name": "  "},
        {"name": "X", "purchase_price": -1},
        {"name": "X", "selling_price": "abc"},
        {"name": "X", "min_stock_threshold": -2},
        {"name": "X", "initial_stock": -1},
        {"name": "X", "expiry_date": "31/12/2025"},
    ],
)
def test_create_product_validation(tmp_path: Path, kwargs):
    s = make_services(tmp_path)
    with pytest.raises(ValidationError):
        s["products"].create_product(**kwargs)


def test_unknown_category_is_not_found(tmp_path: Path):
    s = make_services(tmp_path)
    with pytest.raises(NotFoundError):
        s["products"].create_product("X", category_id=999)


def test_update_never_touches_stock(tmp_path: Path):
    s = make_services(tmp_path)
    p = s["products"].create_product("Juice", sku="J1", initial_stock=8, selling_price=2)

    updated = s["products"].update_product(p.id, "Orange Juice", sku="J1", selling_price="2.50", unit="l")

    assert updated.name == "Orange Juice"
    assert updated.selling_price == Decimal("2.50")
    assert updated.unit == "l"
    assert updated.current_stock == Decimal("8")
    assert len(s["ledger"].product_movements(p.id)) == 1


def test_deactivate_hides_product_but_keeps_history(tmp_path: Path):
    s = make_services(tmp_path)
    p = s["products"].create_product("Retired", sku="R1", barcode="123", initial_stock=4)

    s["products"].deactivate_product(p.id)

    assert s["products"].get_product_by_sku("R1") is None
    assert s["products"].get_product_by_barcode("123") is None
    assert s["products"].list_products() == []
    assert len(s["products"].list_products(ProductFilter(include_inactive=True))) == 1
    assert len(s["ledger"].product_movements(p.id)) == 1
    with pytest.raises(NotFoundError):
        s["products"].deactivate_product(12345)


def test_list_filters_and_low_stock(tmp_path: Path):
    s = make_services(tmp_path)
    food = s["products"].list_categories()[0]
    s["products"].create_product("Apple", sku="F-APL", category_id=food.id, initial_stock=2, min_stock_threshold=5)
    s["products"].create_product("Banana", sku="F-BAN", category_id=food.id, initial_stock=1, min_stock_threshold=5)
    s["products"].create_product("Broom", sku="H-BRM", initial_stock=9, min_stock_threshold=5)

    assert [p.name for p in s["products"].list_products(ProductFilter(search="F-"))] == ["Apple", "Banana"]
    assert [p.name for p in s["products"].list_products(ProductFilter(category_id=food.id))] == ["Apple", "Banana"]
    assert [p.name for p in s["products"].low_stock_products()] == ["Banana", "Apple"]


def test_near_expiry_products(tmp_path: Path):
    s = make_services(tmp_path)
    today = s["clock"]().date()
    s["products"].create_product("Late", expiry_date=today + timedelta(days=20))
    s["products"].create_product("Early", expiry_date=today + timedelta(days=2))
    s["products"].create_product("Far", expiry_date=today + timedelta(days=90))

    assert [p.name for p in s["products"].near_expiry_products(30)] == ["Early", "Late"]


def test_categories_seeded_and_created(tmp_path: Path):
    s = make_services(tmp_path)
    names = [c.name for c in s["products"].list_categories()]
    assert "Other" in names and len(names) == 8

    c = s["products"].create_category("Frozen", icon="snow")
    assert c.name == "Frozen"
    with pytest.raises(ValidationError):
        s["products"].create_category("Frozen")


def test_total_stock_value(tmp_path: Path):
    s = make_services(tmp_path)
    s["products"].create_product("A", initial_stock=3, purchase_price="1.50")
    s["products"].create_product("B", initial_stock="0.5", purchase_price=4)
    assert s["products"].total_stock_value() == Decimal("6.5")


def test_stock_flow_emits_event_notifications(tmp_path: Path):
    s = make_services(tmp_path)
    stock = s["stock"]

    p = stock.add_product("Candles", initial_stock=10, min_stock_threshold=3)
    s["clock"].advance(minutes=1)
    stock.stock_in(p.id, 5, reference_no="PO-7")
    s["clock"].advance(minutes=1)
    stock.stock_out(p.id, 13)

    types = [n.type for n in s["notifications"].list_notifications()]
    assert types[0] is NotificationType.LOW_STOCK
    assert set(types) == {
        NotificationType.PRODUCT_ADDED,
        NotificationType.STOCK_IN,
        NotificationType.STOCK_OUT,
        NotificationType.LOW_STOCK,
    }
    assert s["repo"].get_product(p.id).current_stock == Decimal("2")


def test_adjust_triggers_low_stock_check(tmp_path: Path):
    s = make_services(tmp_path)
    p = s["products"].create_product("Matches", initial_stock=40, min_stock_threshold=10)

    s["stock"].adjust(p.id, 4, notes="Counted")

    low = s["notifications"].list_notifications(priority="HIGH")
    assert [n.product_id for n in low] == [p.id]


def test_rejected_out_emits_nothing(tmp_path: Path):
    s = make_services(tmp_path)
    p = s["products"].create_product("Gum", initial_stock=1)

    with pytest.raises(InsufficientStockError):
        s["stock"].stock_out(p.id, 2)

    assert s["notifications"].list_notifications() == []


def test_edit_product_emits_edited(tmp_path: Path):
    s = make_services(tmp_path)
    p = s["products"].create_product("Pen")

    s["stock"].edit_product(p.id, "Blue Pen")

    (n,) = s["notifications"].list_notifications()
    assert n.type is NotificationType.PRODUCT_EDITED
    assert n.message == "Blue Pen was updated"


def test_refresh_alerts_runs_both_sweeps(tmp_path: Path):
    s = make_services(tmp_path)
    today = s["clock"]().date()
    s["products"].create_product("Low", initial_stock=1, min_stock_threshold=2)
    s["products"].create_product("Expiring", initial_stock=5, expiry_date=today + timedelta(days=3))

    assert s["stock"].refresh_alerts() == (1, 1)
    assert s["notifications"].unread_count() == 2
