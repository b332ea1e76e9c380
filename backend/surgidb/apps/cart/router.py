from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from surgidb.apps.equipment import schemas as equipment_schemas
from surgidb.database import get_db
from surgidb.errors import StockError, to_http_exception

from . import services

router = APIRouter(prefix="/equipment", tags=["reservations"])


@router.post("/{equipment_id}/reserve", response_model=equipment_schemas.EquipmentRead)
def reserve(
    equipment_id: str,
    db: Session = Depends(get_db),
):
    try:
        equipment = services.reserve(db, equipment_id=equipment_id)
    except StockError as exc:
        raise to_http_exception(exc)
    db.commit()
    db.refresh(equipment)
    return equipment


@router.post("/{equipment_id}/release", response_model=equipment_schemas.EquipmentRead)
def release(
    equipment_id: str,
    db: Session = Depends(get_db),
):
    try:
        equipment = services.release(db, equipment_id=equipment_id)
    except StockError as exc:
        raise to_http_exception(exc)
    db.commit()
    db.refresh(equipment)
    return equipment
