from __future__ import annotations

import logging
import os
from decimal import ROUND_HALF_UP, Decimal
from typing import List, Optional

from sqlalchemy import and_, func, update
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from surgidb.apps.audit import services as audit_services
from surgidb.errors import BucketUnderflow, EquipmentNotFound, StockConflict, ValidationFailed

from . import models, schemas

logger = logging.getLogger(__name__)

MAX_CONFLICT_RETRIES = int(os.getenv("STOCK_CONFLICT_RETRIES", "3"))

CENT = Decimal("0.01")

_BUCKET_COLUMNS = {
    models.StatusBucketEnum.AVAILABLE: models.Equipment.available,
    models.StatusBucketEnum.IN_USE: models.Equipment.in_use,
    models.StatusBucketEnum.MAINTENANCE: models.Equipment.maintenance,
}


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------


def _money(value: Decimal) -> Decimal:
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def _parse_category(value: str) -> models.EquipmentCategoryEnum:
    try:
        return models.EquipmentCategoryEnum(value)
    except ValueError:
        allowed = [c.value for c in models.EquipmentCategoryEnum]
        raise ValidationFailed(
            "invalid_category",
            f"Unknown category {value!r}.",
            detail={"allowed": allowed},
        )


def _check_record(
    *,
    quantity: int,
    cost_per_unit: Decimal,
    available: int,
    in_use: int,
    maintenance: int,
) -> None:
    if quantity < 0:
        raise ValidationFailed("negative_quantity", "Quantity cannot be negative.", detail={"quantity": quantity})
    if cost_per_unit < 0:
        raise ValidationFailed(
            "negative_cost",
            "Cost per unit cannot be negative.",
            detail={"costPerUnit": str(cost_per_unit)},
        )
    counts = {"available": available, "in_use": in_use, "maintenance": maintenance}
    negative = [name for name, value in counts.items() if value < 0]
    if negative:
        raise ValidationFailed(
            "negative_status_count",
            f"Status counts cannot be negative: {', '.join(negative)}.",
            detail={"statusCounts": counts},
        )
    total = available + in_use + maintenance
    if total != quantity:
        raise ValidationFailed(
            "status_counts_mismatch",
            f"Status counts ({total}) must equal total quantity ({quantity}).",
            detail={
                "quantity": quantity,
                "statusTotal": total,
                "statusCounts": counts,
                "suggestedAvailable": quantity - in_use - maintenance,
            },
        )


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------


def get_equipment(db: Session, equipment_id: str) -> models.Equipment:
    equipment = db.get(models.Equipment, equipment_id)
    if not equipment:
        raise EquipmentNotFound(equipment_id)
    return equipment


def _stock_level_clause(level: str):
    available = models.Equipment.available
    quantity = models.Equipment.quantity
    status_total = available + models.Equipment.in_use + models.Equipment.maintenance
    pct = available * 100

    def at_least(threshold: int):
        return and_(pct >= quantity * threshold, pct >= status_total * threshold)

    excellent = at_least(models.EXCELLENT_THRESHOLD_PCT)
    good = at_least(models.GOOD_THRESHOLD_PCT)
    low = at_least(models.LOW_THRESHOLD_PCT)

    if level == models.StockLevelEnum.EXHAUSTED.value:
        return available <= 0
    if level == models.StockLevelEnum.EXCELLENT.value:
        return and_(available > 0, excellent)
    if level == models.StockLevelEnum.GOOD.value:
        return and_(available > 0, good, ~excellent)
    if level == models.StockLevelEnum.LOW.value:
        return and_(available > 0, low, ~good)
    if level == models.StockLevelEnum.CRITICAL.value:
        return and_(available > 0, ~low)
    allowed = ["all"] + [lvl.value for lvl in models.StockLevelEnum]
    raise ValidationFailed("invalid_status_filter", f"Unknown status filter {level!r}.", detail={"allowed": allowed})


def list_equipment(
    db: Session,
    *,
    category: Optional[str] = None,
    search: Optional[str] = None,
    status: Optional[str] = None,
) -> List[models.Equipment]:
    query = db.query(models.Equipment)
    if category and category != "all":
        query = query.filter(models.Equipment.category == _parse_category(category))
    if search and search.strip():
        term = search.strip().lower()
        query = query.filter(func.lower(models.Equipment.name).contains(term, autoescape=True))
    if status and status != "all":
        query = query.filter(_stock_level_clause(status))
    return query.order_by(models.Equipment.created_at.desc(), models.Equipment.id.desc()).all()


# ---------------------------------------------------------------------------
# Whole-record writes
# ---------------------------------------------------------------------------


def create_equipment(db: Session, *, payload: schemas.EquipmentCreate) -> models.Equipment:
    category = _parse_category(payload.category)
    cost = _money(payload.cost_per_unit)
    if payload.status_counts is None:
        counts = schemas.StatusCounts(available=payload.quantity)
    else:
        counts = payload.status_counts

    _check_record(
        quantity=payload.quantity,
        cost_per_unit=cost,
        available=counts.available,
        in_use=counts.in_use,
        maintenance=counts.maintenance,
    )

    equipment = models.Equipment(
        name=payload.name.strip(),
        category=category,
        unit=payload.unit.strip() or "UNT",
        hsn_code=payload.hsn_code.strip(),
        notes=payload.notes.strip(),
        quantity=payload.quantity,
        cost_per_unit=cost,
        available=counts.available,
        in_use=counts.in_use,
        maintenance=counts.maintenance,
    )
    db.add(equipment)
    db.flush()
    audit_services.create_audit_event(
        db,
        entity_type="Equipment",
        entity_id=equipment.id,
        action="create",
        after=equipment.snapshot(),
    )
    return equipment


def _apply_patch(
    equipment: models.Equipment,
    payload: schemas.EquipmentUpdate,
    *,
    sync_available: bool,
) -> None:
    quantity = payload.quantity if payload.quantity is not None else equipment.quantity
    cost = _money(payload.cost_per_unit) if payload.cost_per_unit is not None else Decimal(equipment.cost_per_unit)
    category = _parse_category(payload.category) if payload.category is not None else equipment.category

    patch = payload.status_counts
    available = patch.available if patch and patch.available is not None else equipment.available
    in_use = patch.in_use if patch and patch.in_use is not None else equipment.in_use
    maintenance = patch.maintenance if patch and patch.maintenance is not None else equipment.maintenance
    if sync_available:
        available = quantity - in_use - maintenance

    counts_touched = payload.quantity is not None or patch is not None or sync_available
    if counts_touched:
        _check_record(
            quantity=quantity,
            cost_per_unit=cost,
            available=available,
            in_use=in_use,
            maintenance=maintenance,
        )
    elif cost < 0:
        raise ValidationFailed("negative_cost", "Cost per unit cannot be negative.", detail={"costPerUnit": str(cost)})

    if payload.name is not None:
        equipment.name = payload.name.strip()
    if payload.unit is not None:
        equipment.unit = payload.unit.strip() or "UNT"
    if payload.hsn_code is not None:
        equipment.hsn_code = payload.hsn_code.strip()
    if payload.notes is not None:
        equipment.notes = payload.notes.strip()
    equipment.category = category
    equipment.cost_per_unit = cost
    equipment.quantity = quantity
    equipment.available = available
    equipment.in_use = in_use
    equipment.maintenance = maintenance


def update_equipment(
    db: Session,
    *,
    equipment_id: str,
    payload: schemas.EquipmentUpdate,
    sync_available: bool = False,
    max_retries: Optional[int] = None,
) -> models.Equipment:
    """
    Merge `payload` into the record and write it with an optimistic version check.

    The mapper's `version_id_col` turns the flush into
    `UPDATE ... WHERE id = :id AND version = :seen`; a concurrent writer makes
    that match zero rows, in which case the transaction is rolled back and the
    merge is recomputed from fresh state. After `max_retries` attempts the
    caller gets `StockConflict`.
    """
    attempts = max_retries if max_retries is not None else MAX_CONFLICT_RETRIES
    for attempt in range(1, attempts + 1):
        equipment = get_equipment(db, equipment_id)
        before = equipment.snapshot()
        _apply_patch(equipment, payload, sync_available=sync_available)
        try:
            db.flush()
        except StaleDataError:
            db.rollback()
            logger.info(
                "Equipment update lost a version race; retrying",
                extra={"equipment_id": equipment_id, "attempt": attempt},
            )
            continue

        audit_services.create_audit_event(
            db,
            entity_type="Equipment",
            entity_id=equipment.id,
            action="update",
            before=before,
            after=equipment.snapshot(),
        )
        return equipment

    logger.warning(
        "Equipment update conflict budget exhausted",
        extra={"equipment_id": equipment_id, "attempts": attempts},
    )
    raise StockConflict(
        "conflict",
        f"Equipment {equipment_id} is being modified concurrently; retry the update.",
        detail={"id": equipment_id, "attempts": attempts},
    )


def delete_equipment(db: Session, *, equipment_id: str) -> None:
    # Outstanding cart reservations are not checked; carts are client-held.
    equipment = get_equipment(db, equipment_id)
    before = equipment.snapshot()
    db.delete(equipment)
    try:
        db.flush()
    except StaleDataError:
        db.rollback()
        raise StockConflict(
            "conflict",
            f"Equipment {equipment_id} changed while being deleted; retry the delete.",
            detail={"id": equipment_id},
        )
    audit_services.create_audit_event(
        db,
        entity_type="Equipment",
        entity_id=equipment_id,
        action="delete",
        before=before,
    )


# ---------------------------------------------------------------------------
# Atomic single-statement adjustments
# ---------------------------------------------------------------------------


def _reload(db: Session, equipment_id: str) -> Optional[models.Equipment]:
    return db.get(models.Equipment, equipment_id, populate_existing=True)


def adjust_status(
    db: Session,
    *,
    equipment_id: str,
    status: models.StatusBucketEnum,
    delta: int,
    from_status: Optional[models.StatusBucketEnum] = None,
) -> models.Equipment:
    """
    Add `delta` to one status bucket in a single conditional UPDATE.

    `quantity` is never touched. Without `from_status` only the named bucket
    changes, so the other buckets are not re-summed against quantity. With
    `from_status` the same amount is moved out of that bucket in the same
    statement, which keeps the status total unchanged.

    A change that would leave any touched bucket below zero is rejected with
    `BucketUnderflow`; nothing is clamped.
    """
    status = models.StatusBucketEnum(status)
    if delta == 0:
        raise ValidationFailed("zero_change", "Status change must be non-zero.")

    target = _BUCKET_COLUMNS[status]
    conditions = [models.Equipment.id == equipment_id, target + delta >= 0]
    values = {
        target: target + delta,
        models.Equipment.version: models.Equipment.version + 1,
    }
    if from_status is not None:
        from_status = models.StatusBucketEnum(from_status)
        if from_status == status:
            raise ValidationFailed("same_bucket", "fromStatus must differ from status.")
        source = _BUCKET_COLUMNS[from_status]
        conditions.append(source - delta >= 0)
        values[source] = source - delta

    result = db.execute(
        update(models.Equipment)
        .where(*conditions)
        .values(values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        equipment = _reload(db, equipment_id)
        if equipment is None:
            raise EquipmentNotFound(equipment_id)
        logger.info(
            "Rejected status adjustment below zero",
            extra={"equipment_id": equipment_id, "status": status.value, "delta": delta},
        )
        raise BucketUnderflow(
            "insufficient_stock",
            f"Adjusting {status.value} by {delta} would take a status count below zero.",
            detail={"id": equipment_id, "status": status.value, "change": delta, "statusCounts": equipment.status_counts},
        )

    equipment = _reload(db, equipment_id)
    audit_services.create_audit_event(
        db,
        entity_type="Equipment",
        entity_id=equipment_id,
        action="adjust_status",
        after={
            "status": status.value,
            "from_status": from_status.value if from_status else None,
            "change": delta,
            **equipment.snapshot(),
        },
    )
    return equipment


def deduct_sold_stock(
    db: Session,
    *,
    equipment_id: str,
    qty: int,
    reserved: int = 0,
    correlation_id: Optional[str] = None,
) -> models.Equipment:
    """
    Remove `qty` sold units from the record in one conditional UPDATE.

    `quantity` drops by `qty` and `available` by `qty - reserved`: units the
    caller already took out of `available` through a reservation are not
    taken twice. Both columns move together, so readers never see one
    without the other.
    """
    if qty <= 0 or reserved < 0 or reserved > qty:
        raise ValidationFailed(
            "invalid_deduction",
            "Deduction needs qty > 0 and 0 <= reserved <= qty.",
            detail={"id": equipment_id, "qty": qty, "reserved": reserved},
        )

    eq = models.Equipment
    from_available = qty - reserved
    conditions = [
        eq.id == equipment_id,
        eq.quantity - qty >= 0,
        eq.available - from_available >= 0,
    ]
    if reserved:
        conditions.append(eq.quantity - eq.available - eq.in_use - eq.maintenance >= reserved)

    result = db.execute(
        update(eq)
        .where(*conditions)
        .values(
            {
                eq.quantity: eq.quantity - qty,
                eq.available: eq.available - from_available,
                eq.version: eq.version + 1,
            }
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        equipment = _reload(db, equipment_id)
        if equipment is None:
            raise EquipmentNotFound(equipment_id)
        if equipment.quantity < qty:
            code, message = "insufficient_quantity", f"Only {equipment.quantity} units on record."
        elif equipment.available < from_available:
            code, message = "insufficient_available", f"Only {equipment.available} units available."
        else:
            code, message = "reservation_mismatch", f"Only {equipment.reserved} units are reserved."
        raise BucketUnderflow(
            code,
            message,
            detail={"id": equipment_id, "qty": qty, "reserved": reserved, "quantity": equipment.quantity},
        )

    equipment = _reload(db, equipment_id)
    audit_services.create_audit_event(
        db,
        entity_type="Equipment",
        entity_id=equipment_id,
        action="sale_deduction",
        after={"qty": qty, "reserved": reserved, **equipment.snapshot()},
        correlation_id=correlation_id,
    )
    return equipment
