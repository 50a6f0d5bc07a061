from datetime import timedelta
from decimal import Decimal
from pathlib import Path

import pytest

from conftest import make_services
from stockwise.domain.errors import IrreversibleMovementError, NotFoundError


def test_record_then_reverse_restores_balance(tmp_path: Path):
    s = make_services(tmp_path)
    p = s["products"].create_product("Sugar", initial_stock=20)
    ledger = s["ledger"]

    for mtype, qty in [("IN", 5), ("OUT", 7), ("ADJUST", 11)]:
        before = s["repo"].get_product(p.id).current_stock
        m = ledger.record_movement(p.id, mtype, qty).movement
        after_reverse = ledger.reverse_movement(m.id)
        assert after_reverse.current_stock == before
        assert ledger.reconcile() == []


def test_reversing_out_puts_stock_back(tmp_path: Path):
    s = make_services(tmp_path)
    p = s["products"].create_product("Sugar", initial_stock=20)
    out = s["ledger"].record_movement(p.id, "OUT", 8).movement

    product = s["stock"].delete_movement(out.id)

    assert product.current_stock == Decimal("20")
    with pytest.raises(NotFoundError):
        s["ledger"].get_movement(out.id)


def test_reversal_that_would_go_negative_is_rejected(tmp_path: Path):
    s = make_services(tmp_path)
    p = s["products"].create_product("Oil")
    ledger = s["ledger"]
    first_in = ledger.record_movement(p.id, "IN", 10).movement
    ledger.record_movement(p.id, "OUT", 8)

    with pytest.raises(IrreversibleMovementError):
        ledger.reverse_movement(first_in.id)

    assert s["repo"].get_product(p.id).current_stock == Decimal("2")
    assert ledger.get_movement(first_in.id).id == first_in.id


def test_reversing_earlier_adjust_replays_later_movements(tmp_path: Path):
    s = make_services(tmp_path)
    p = s["products"].create_product("Beans", initial_stock=10)
    ledger = s["ledger"]
    adj = ledger.record_movement(p.id, "ADJUST", 4).movement
    ledger.record_movement(p.id, "IN", 3)

    product = ledger.reverse_movement(adj.id)

    assert product.current_stock == Decimal("13")
    assert ledger.ledger_balance(p.id) == Decimal("13")


def test_reverse_unknown_movement(tmp_path: Path):
    s = make_services(tmp_path)
    with pytest.raises(NotFoundError):
        s["ledger"].reverse_movement(404)


def test_reversing_drawn_batch_in_is_rejected(tmp_path: Path):
    s = make_services(tmp_path)
    today = s["clock"]().date()
    p = s["products"].create_product("Cheese")
    ledger = s["ledger"]
    a_in = ledger.record_movement(p.id, "IN", 10, batch_number="A", batch_expiry_date=today + timedelta(days=5)).movement
    ledger.record_movement(p.id, "IN", 10, batch_number="B", batch_expiry_date=today + timedelta(days=40))
    ledger.record_movement(p.id, "OUT", 5, batch_number="A", batch_expiry_date=today + timedelta(days=5))

    with pytest.raises(IrreversibleMovementError):
        ledger.reverse_movement(a_in.id)

    assert s["repo"].get_product(p.id).current_stock == Decimal("15")
    assert s["batches"].total_batch_quantity(p.id) == Decimal("15")
    assert ledger.get_movement(a_in.id).id == a_in.id


def test_reversing_untouched_batch_in_keeps_partition(tmp_path: Path):
    s = make_services(tmp_path)
    today = s["clock"]().date()
    p = s["products"].create_product("Cheese")
    ledger = s["ledger"]
    ledger.record_movement(p.id, "IN", 10, batch_number="A", batch_expiry_date=today + timedelta(days=5))
    b_in = ledger.record_movement(p.id, "IN", 4, batch_number="B").movement

    product = ledger.reverse_movement(b_in.id)

    assert product.current_stock == Decimal("10")
    assert s["batches"].total_batch_quantity(p.id) == product.current_stock
