import threading
from decimal import Decimal
from pathlib import Path

import pytest

from conftest import make_services
from stockwise.domain.errors import InsufficientStockError, NotFoundError, ValidationError
from stockwise.domain.models import MovementType, NotificationType, Priority
from stockwise.services.ledger_service import fold_balance


def test_out_down_to_threshold_then_low_stock_alert(tmp_path: Path):
    s = make_services(tmp_path)
    p = s["products"].create_product("Milk", sku="MLK", initial_stock=50, min_stock_threshold=10)

    result = s["ledger"].record_movement(p.id, "OUT", 45)

    assert result.balance_before == Decimal("50")
    assert result.balance_after == Decimal("5")
    assert result.movement.balance_after == Decimal("5")
    assert s["repo"].get_product(p.id).current_stock == Decimal("5")

    assert s["notifications"].check_low_stock_alerts() == 1
    alerts = s["notifications"].list_notifications()
    assert len(alerts) == 1
    assert alerts[0].type is NotificationType.LOW_STOCK
    assert alerts[0].priority is Priority.HIGH


def test_out_over_available_is_rejected_and_state_unchanged(tmp_path: Path):
    s = make_services(tmp_path)
    p = s["products"].create_product("Milk", initial_stock=50)
    before = s["ledger"].product_movements(p.id)

    with pytest.raises(InsufficientStockError) as exc:
        s["ledger"].record_movement(p.id, MovementType.OUT, 60)

    assert exc.value.available == Decimal("50")
    assert exc.value.requested == Decimal("60")
    assert exc.value.shortfall == Decimal("10")
    assert s["repo"].get_product(p.id).current_stock == Decimal("50")
    assert len(s["ledger"].product_movements(p.id)) == len(before)


def test_out_to_exactly_zero_is_allowed(tmp_path: Path):
    s = make_services(tmp_path)
    p = s["products"].create_product("Eggs", initial_stock=12)

    s["ledger"].record_movement(p.id, "OUT", 12)

    assert s["repo"].get_product(p.id).current_stock == Decimal("0")


def test_cache_matches_ledger_after_mixed_sequence(tmp_path: Path):
    s = make_services(tmp_path)
    p = s["products"].create_product("Flour", unit="kg")
    ledger = s["ledger"]

    ledger.record_movement(p.id, "IN", "10.5")
    ledger.record_movement(p.id, "OUT", "0.25")
    ledger.record_movement(p.id, "ADJUST", "8")
    ledger.record_movement(p.id, "IN", "0.1")
    ledger.record_movement(p.id, "IN", "0.2")

    cached = s["repo"].get_product(p.id).current_stock
    assert cached == Decimal("8.3")
    assert ledger.ledger_balance(p.id) == cached
    assert ledger.reconcile() == []


def test_adjust_sets_absolute_value_and_can_reach_zero(tmp_path: Path):
    s = make_services(tmp_path)
    p = s["products"].create_product("Rice", initial_stock=20)

    r = s["ledger"].record_movement(p.id, "adjust", 0)

    assert r.balance_before == Decimal("20")
    assert r.balance_after == Decimal("0")
    assert r.movement.type is MovementType.ADJUST


@pytest.mark.parametrize(
    "mtype, qty",
    [
        ("IN", 0),
        ("IN", -1),
        ("OUT", 0),
        ("ADJUST", -5),
        ("IN", "abc"),
        ("IN", float("nan")),
        ("IN", None),
        ("IN", True),
    ],
)
def test_invalid_quantities_are_rejected(tmp_path: Path, mtype, qty):
    s = make_services(tmp_path)
    p = s["products"].create_product("Salt", initial_stock=5)

    with pytest.raises(ValidationError):
        s["ledger"].record_movement(p.id, mtype, qty)

    assert s["repo"].get_product(p.id).current_stock == Decimal("5")


def test_unknown_movement_type_is_rejected(tmp_path: Path):
    s = make_services(tmp_path)
    p = s["products"].create_product("Salt")

    with pytest.raises(ValidationError):
        s["ledger"].record_movement(p.id, "TRANSFER", 1)


def test_missing_or_inactive_product_is_not_found(tmp_path: Path):
    s = make_services(tmp_path)
    p = s["products"].create_product("Old", initial_stock=3)
    s["products"].deactivate_product(p.id)

    with pytest.raises(NotFoundError):
        s["ledger"].record_movement(9999, "IN", 1)
    with pytest.raises(NotFoundError):
        s["ledger"].record_movement(p.id, "IN", 1)


def test_batch_expiry_requires_batch_number(tmp_path: Path):
    s = make_services(tmp_path)
    p = s["products"].create_product("Yogurt")

    with pytest.raises(ValidationError):
        s["ledger"].record_movement(p.id, "IN", 5, batch_expiry_date="2025-04-01")


def test_adjust_cannot_carry_batch(tmp_path: Path):
    s = make_services(tmp_path)
    p = s["products"].create_product("Yogurt", initial_stock=5)

    with pytest.raises(ValidationError):
        s["ledger"].record_movement(p.id, "ADJUST", 3, batch_number="B1")


def test_list_movements_filters_by_type(tmp_path: Path):
    s = make_services(tmp_path)
    p = s["products"].create_product("Tea", initial_stock=10)
    s["ledger"].record_movement(p.id, "OUT", 2, reference_no="INV-1")

    outs = s["ledger"].list_movements(movement_type="OUT")
    ins = s["ledger"].list_movements(movement_type=MovementType.IN, date_from="2025-03-10", date_to="2025-03-10")

    assert [m.reference_no for m in outs] == ["INV-1"]
    assert len(ins) == 1 and ins[0].notes == "Initial stock"
    assert outs[0].product_name == "Tea"


def test_get_movement_unknown_id(tmp_path: Path):
    s = make_services(tmp_path)
    with pytest.raises(NotFoundError):
        s["ledger"].get_movement(42)


def test_concurrent_outs_never_oversell(tmp_path: Path):
    s = make_services(tmp_path)
    p = s["products"].create_product("Bread", initial_stock=10)
    ledger = s["ledger"]

    ok: list[int] = []
    rejected: list[int] = []

    def sell(i: int):
        try:
            ledger.record_movement(p.id, "OUT", 1)
            ok.append(i)
        except InsufficientStockError:
            rejected.append(i)

    threads = [threading.Thread(target=sell, args=(i,)) for i in range(20)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(ok) == 10
    assert len(rejected) == 10
    assert s["repo"].get_product(p.id).current_stock == Decimal("0")
    assert ledger.ledger_balance(p.id) == Decimal("0")


def test_fold_balance_replays_adjust_as_absolute():
    entries = [("IN", Decimal("5")), ("ADJUST", Decimal("2")), ("OUT", Decimal("1")), ("IN", Decimal("4"))]
    assert fold_balance(entries) == Decimal("5")
