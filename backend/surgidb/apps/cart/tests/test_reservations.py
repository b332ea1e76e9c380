from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor
from decimal import Decimal

import pytest

from surgidb.apps.cart import services as cart_services
from surgidb.apps.equipment import models as equipment_models
from surgidb.apps.equipment import schemas as equipment_schemas
from surgidb.apps.equipment import services as equipment_services
from surgidb.errors import BucketUnderflow, EquipmentNotFound


def _create_equipment(db, *, quantity: int) -> equipment_models.Equipment:
    equipment = equipment_services.create_equipment(
        db,
        payload=equipment_schemas.EquipmentCreate(
            name="Kelly Forceps",
            category="Instruments",
            quantity=quantity,
            cost_per_unit=Decimal("12.50"),
        ),
    )
    db.commit()
    return equipment


def test_reserve_then_release_restores_record(db_session):
    equipment = _create_equipment(db_session, quantity=3)

    reserved = cart_services.reserve(db_session, equipment_id=equipment.id)
    db_session.commit()
    assert reserved.available == 2
    assert reserved.quantity == 3
    assert reserved.reserved == 1

    released = cart_services.release(db_session, equipment_id=equipment.id)
    db_session.commit()
    assert released.available == 3
    assert released.reserved == 0


def test_reserve_on_exhausted_record_is_rejected(db_session):
    equipment = _create_equipment(db_session, quantity=1)
    cart_services.reserve(db_session, equipment_id=equipment.id)
    db_session.commit()

    with pytest.raises(BucketUnderflow):
        cart_services.reserve(db_session, equipment_id=equipment.id)


def test_reserve_unknown_equipment(db_session):
    with pytest.raises(EquipmentNotFound):
        cart_services.reserve(db_session, equipment_id="does-not-exist")


def test_concurrent_reservations_never_oversell(file_session_factory):
    stock = 5
    setup = file_session_factory()
    equipment_id = _create_equipment(setup, quantity=stock).id
    setup.close()

    workers = stock + 3
    barrier = threading.Barrier(workers)

    def _reserve_one() -> bool:
        db = file_session_factory()
        try:
            barrier.wait()
            cart_services.reserve(db, equipment_id=equipment_id)
            db.commit()
            return True
        except BucketUnderflow:
            db.rollback()
            return False
        finally:
            db.close()

    with ThreadPoolExecutor(max_workers=workers) as pool:
        results = list(pool.map(lambda _: _reserve_one(), range(workers)))

    assert results.count(True) == stock
    assert results.count(False) == workers - stock

    check = file_session_factory()
    try:
        equipment = equipment_services.get_equipment(check, equipment_id)
        assert equipment.available == 0
        assert equipment.quantity == stock
        assert equipment.reserved == stock
    finally:
        check.close()


def test_release_without_reservation_overshoots_quantity(db_session):
    equipment = _create_equipment(db_session, quantity=3)

    released = cart_services.release(db_session, equipment_id=equipment.id)
    db_session.commit()

    assert released.available == 4
    assert released.quantity == 3
    assert released.reserved == -1
