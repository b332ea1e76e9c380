from __future__ import annotations

from decimal import Decimal

import pytest
from sqlalchemy.orm.exc import StaleDataError

from surgidb.apps.audit import models as audit_models
from surgidb.apps.equipment import models, schemas, services
from surgidb.errors import BucketUnderflow, EquipmentNotFound, StockConflict, ValidationFailed


def _create(db, **overrides) -> models.Equipment:
    data = {
        "name": "Scalpel Handle #3",
        "category": "Instruments",
        "quantity": 10,
        "cost_per_unit": Decimal("50.00"),
    }
    data.update(overrides)
    equipment = services.create_equipment(db, payload=schemas.EquipmentCreate(**data))
    db.commit()
    return equipment


def test_create_defaults_all_units_to_available(db_session):
    equipment = _create(db_session)

    assert equipment.id
    assert equipment.status_counts == {"available": 10, "in_use": 0, "maintenance": 0}
    assert equipment.total_cost == Decimal("500.00")
    assert equipment.reserved == 0
    assert equipment.version == 1


def test_create_rejects_counts_that_do_not_sum_to_quantity(db_session):
    payload = schemas.EquipmentCreate(
        name="Suction Unit",
        category="Electronics",
        quantity=5,
        cost_per_unit=Decimal("10"),
        status_counts=schemas.StatusCounts(available=2, in_use=1, maintenance=1),
    )

    with pytest.raises(ValidationFailed) as excinfo:
        services.create_equipment(db_session, payload=payload)

    assert excinfo.value.code == "status_counts_mismatch"
    assert excinfo.value.detail["suggestedAvailable"] == 3
    assert db_session.query(models.Equipment).count() == 0


@pytest.mark.parametrize(
    "overrides, code",
    [
        ({"quantity": -1}, "negative_quantity"),
        ({"cost_per_unit": Decimal("-0.01")}, "negative_cost"),
        ({"category": "Linens"}, "invalid_category"),
        (
            {"quantity": 2, "status_counts": schemas.StatusCounts(available=3, in_use=-1)},
            "negative_status_count",
        ),
    ],
)
def test_create_rejects_invalid_records(db_session, overrides, code):
    with pytest.raises(ValidationFailed) as excinfo:
        _create(db_session, **overrides)
    assert excinfo.value.code == code


def test_create_writes_audit_event(db_session):
    equipment = _create(db_session)

    events = db_session.query(audit_models.AuditEvent).filter_by(entity_id=equipment.id).all()
    assert [e.action for e in events] == ["create"]
    assert events[0].after["quantity"] == 10


def test_update_merges_partial_status_counts(db_session):
    equipment = _create(db_session, status_counts=schemas.StatusCounts(available=8, in_use=2))

    updated = services.update_equipment(
        db_session,
        equipment_id=equipment.id,
        payload=schemas.EquipmentUpdate(status_counts=schemas.StatusCountsPatch(available=6, maintenance=2)),
    )
    db_session.commit()

    assert updated.status_counts == {"available": 6, "in_use": 2, "maintenance": 2}
    assert updated.version == 2


def test_update_quantity_without_counts_is_rejected(db_session):
    equipment = _create(db_session)

    with pytest.raises(ValidationFailed) as excinfo:
        services.update_equipment(
            db_session,
            equipment_id=equipment.id,
            payload=schemas.EquipmentUpdate(quantity=12),
        )
    assert excinfo.value.code == "status_counts_mismatch"


def test_update_with_sync_available_rebalances(db_session):
    equipment = _create(db_session, status_counts=schemas.StatusCounts(available=7, in_use=2, maintenance=1))

    updated = services.update_equipment(
        db_session,
        equipment_id=equipment.id,
        payload=schemas.EquipmentUpdate(quantity=15),
        sync_available=True,
    )

    assert updated.quantity == 15
    assert updated.status_counts == {"available": 12, "in_use": 2, "maintenance": 1}


def test_update_name_only_leaves_reserved_gap_alone(db_session):
    equipment = _create(db_session, quantity=5)
    services.adjust_status(
        db_session,
        equipment_id=equipment.id,
        status=models.StatusBucketEnum.AVAILABLE,
        delta=-2,
    )
    db_session.commit()

    updated = services.update_equipment(
        db_session,
        equipment_id=equipment.id,
        payload=schemas.EquipmentUpdate(name="Scalpel Handle #4"),
    )

    assert updated.name == "Scalpel Handle #4"
    assert updated.reserved == 2


def test_update_unknown_id_raises_not_found(db_session):
    with pytest.raises(EquipmentNotFound):
        services.update_equipment(
            db_session,
            equipment_id="missing",
            payload=schemas.EquipmentUpdate(name="x"),
        )


def test_update_gives_up_after_repeated_version_conflicts(db_session, monkeypatch):
    equipment = _create(db_session)
    calls = []

    def _stale_flush(*args, **kwargs):
        calls.append(1)
        raise StaleDataError("version mismatch")

    monkeypatch.setattr(db_session, "flush", _stale_flush)

    with pytest.raises(StockConflict) as excinfo:
        services.update_equipment(
            db_session,
            equipment_id=equipment.id,
            payload=schemas.EquipmentUpdate(name="Renamed"),
            max_retries=3,
        )

    assert len(calls) == 3
    assert excinfo.value.retryable is True
    assert excinfo.value.status_code == 409


def test_update_retries_after_concurrent_writer(file_session_factory):
    writer_a = file_session_factory()
    writer_b = file_session_factory()
    try:
        equipment = _create(writer_a, quantity=4)
        # Load into A's identity map at version 1.
        services.get_equipment(writer_a, equipment.id)

        services.update_equipment(
            writer_b,
            equipment_id=equipment.id,
            payload=schemas.EquipmentUpdate(notes="moved to theatre 2"),
        )
        writer_b.commit()

        updated = services.update_equipment(
            writer_a,
            equipment_id=equipment.id,
            payload=schemas.EquipmentUpdate(cost_per_unit=Decimal("55")),
        )
        writer_a.commit()

        assert updated.version == 3
        assert updated.notes == "moved to theatre 2"
        assert updated.cost_per_unit == Decimal("55.00")
    finally:
        writer_a.close()
        writer_b.close()


def test_delete_removes_record_and_audits(db_session):
    equipment = _create(db_session)
    equipment_id = equipment.id

    services.delete_equipment(db_session, equipment_id=equipment_id)
    db_session.commit()

    assert db_session.get(models.Equipment, equipment_id) is None
    actions = [
        e.action
        for e in db_session.query(audit_models.AuditEvent).filter_by(entity_id=equipment_id)
    ]
    assert sorted(actions) == ["create", "delete"]

    with pytest.raises(EquipmentNotFound):
        services.delete_equipment(db_session, equipment_id=equipment_id)


def test_adjust_status_changes_one_bucket_only(db_session):
    equipment = _create(db_session, quantity=5)

    updated = services.adjust_status(
        db_session,
        equipment_id=equipment.id,
        status=models.StatusBucketEnum.MAINTENANCE,
        delta=2,
    )
    db_session.commit()

    assert updated.quantity == 5
    assert updated.status_counts == {"available": 5, "in_use": 0, "maintenance": 2}
    assert updated.version == 2


def test_adjust_status_rejects_underflow_without_clamping(db_session):
    equipment = _create(db_session, quantity=1)

    with pytest.raises(BucketUnderflow) as excinfo:
        services.adjust_status(
            db_session,
            equipment_id=equipment.id,
            status=models.StatusBucketEnum.AVAILABLE,
            delta=-2,
        )

    assert excinfo.value.code == "insufficient_stock"
    db_session.rollback()
    assert services.get_equipment(db_session, equipment.id).available == 1


def test_adjust_status_move_between_buckets_keeps_total(db_session):
    equipment = _create(db_session, quantity=6)

    updated = services.adjust_status(
        db_session,
        equipment_id=equipment.id,
        status=models.StatusBucketEnum.IN_USE,
        delta=4,
        from_status=models.StatusBucketEnum.AVAILABLE,
    )

    assert updated.status_counts == {"available": 2, "in_use": 4, "maintenance": 0}
    assert updated.status_total == updated.quantity

    with pytest.raises(BucketUnderflow):
        services.adjust_status(
            db_session,
            equipment_id=equipment.id,
            status=models.StatusBucketEnum.MAINTENANCE,
            delta=3,
            from_status=models.StatusBucketEnum.AVAILABLE,
        )


def test_adjust_status_validation(db_session):
    equipment = _create(db_session)

    with pytest.raises(ValidationFailed) as zero:
        services.adjust_status(
            db_session,
            equipment_id=equipment.id,
            status=models.StatusBucketEnum.AVAILABLE,
            delta=0,
        )
    assert zero.value.code == "zero_change"

    with pytest.raises(ValidationFailed) as same:
        services.adjust_status(
            db_session,
            equipment_id=equipment.id,
            status=models.StatusBucketEnum.AVAILABLE,
            delta=1,
            from_status=models.StatusBucketEnum.AVAILABLE,
        )
    assert same.value.code == "same_bucket"

    with pytest.raises(EquipmentNotFound):
        services.adjust_status(
            db_session,
            equipment_id="missing",
            status=models.StatusBucketEnum.AVAILABLE,
            delta=1,
        )


def test_deduct_sold_stock_moves_quantity_and_available_together(db_session):
    equipment = _create(db_session, quantity=5)

    updated = services.deduct_sold_stock(db_session, equipment_id=equipment.id, qty=2)

    assert updated.quantity == 3
    assert updated.available == 3
    assert updated.status_total == updated.quantity


def test_deduct_sold_stock_honours_reserved_units(db_session):
    equipment = _create(db_session, quantity=5)
    for _ in range(2):
        services.adjust_status(
            db_session,
            equipment_id=equipment.id,
            status=models.StatusBucketEnum.AVAILABLE,
            delta=-1,
        )

    updated = services.deduct_sold_stock(db_session, equipment_id=equipment.id, qty=2, reserved=2)

    assert updated.quantity == 3
    assert updated.available == 3
    assert updated.reserved == 0


@pytest.mark.parametrize(
    "qty, reserved, code",
    [
        (6, 0, "insufficient_quantity"),
        (2, 1, "reservation_mismatch"),
    ],
)
def test_deduct_sold_stock_failures(db_session, qty, reserved, code):
    equipment = _create(db_session, quantity=5)

    with pytest.raises(BucketUnderflow) as excinfo:
        services.deduct_sold_stock(db_session, equipment_id=equipment.id, qty=qty, reserved=reserved)
    assert excinfo.value.code == code


def test_deduct_sold_stock_insufficient_available(db_session):
    equipment = _create(db_session, quantity=5, status_counts=schemas.StatusCounts(available=1, in_use=4))

    with pytest.raises(BucketUnderflow) as excinfo:
        services.deduct_sold_stock(db_session, equipment_id=equipment.id, qty=2)
    assert excinfo.value.code == "insufficient_available"


def test_list_filters_and_orders_newest_first(db_session):
    first = _create(db_session, name="Retractor")
    second = _create(db_session, name="Gauze 10x10", category="Consumables", quantity=10)
    third = _create(db_session, name="Ret_50% Clamp", quantity=10)
    services.adjust_status(
        db_session,
        equipment_id=second.id,
        status=models.StatusBucketEnum.AVAILABLE,
        delta=-8,
    )
    services.adjust_status(
        db_session,
        equipment_id=third.id,
        status=models.StatusBucketEnum.AVAILABLE,
        delta=-10,
    )
    db_session.commit()

    all_ids = [e.id for e in services.list_equipment(db_session, category="all")]
    assert all_ids == [third.id, second.id, first.id]

    instruments = services.list_equipment(db_session, category="Instruments")
    assert {e.id for e in instruments} == {first.id, third.id}

    assert [e.id for e in services.list_equipment(db_session, search="RET")] == [third.id, first.id]
    assert [e.id for e in services.list_equipment(db_session, search="50%")] == [third.id]

    assert [e.id for e in services.list_equipment(db_session, status="critical")] == [second.id]
    assert [e.id for e in services.list_equipment(db_session, status="exhausted")] == [third.id]
    assert [e.id for e in services.list_equipment(db_session, status="excellent")] == [first.id]

    with pytest.raises(ValidationFailed):
        services.list_equipment(db_session, status="plenty")


@pytest.mark.parametrize(
    "available, quantity, level",
    [
        (10, 10, models.StockLevelEnum.EXCELLENT),
        (8, 10, models.StockLevelEnum.EXCELLENT),
        (7, 10, models.StockLevelEnum.GOOD),
        (3, 10, models.StockLevelEnum.LOW),
        (2, 10, models.StockLevelEnum.CRITICAL),
        (0, 10, models.StockLevelEnum.EXHAUSTED),
        (0, 0, models.StockLevelEnum.EXHAUSTED),
    ],
)
def test_classify_stock_level(available, quantity, level):
    assert models.classify_stock_level(available, quantity) is level


@pytest.mark.parametrize(
    "available, quantity, status_total, level",
    [
        (1, 0, 1, models.StockLevelEnum.EXCELLENT),
        (2, 10, 2, models.StockLevelEnum.CRITICAL),
        (6, 5, 6, models.StockLevelEnum.EXCELLENT),
        (2, 0, 4, models.StockLevelEnum.LOW),
    ],
)
def test_classify_stock_level_uses_larger_of_quantity_and_counts(available, quantity, status_total, level):
    assert models.classify_stock_level(available, quantity, status_total) is level


def test_stock_level_property_agrees_with_list_filter_for_zero_quantity(db_session):
    equipment = _create(db_session, quantity=0)
    services.adjust_status(
        db_session,
        equipment_id=equipment.id,
        status=models.StatusBucketEnum.AVAILABLE,
        delta=1,
    )
    db_session.commit()

    refreshed = services.get_equipment(db_session, equipment.id)
    assert refreshed.stock_level is models.StockLevelEnum.EXCELLENT
    assert [e.id for e in services.list_equipment(db_session, status="excellent")] == [equipment.id]
    assert services.list_equipment(db_session, status="critical") == []
