from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.orm import Session

from surgidb.database import get_db, get_read_db
from surgidb.errors import StockError, to_http_exception

from . import schemas, services

router = APIRouter(prefix="/equipment", tags=["equipment"])


@router.get("", response_model=List[schemas.EquipmentRead])
def list_equipment(
    category: Optional[str] = None,
    search: Optional[str] = None,
    status_filter: Optional[str] = Query(None, alias="status"),
    db: Session = Depends(get_read_db),
):
    try:
        return services.list_equipment(db, category=category, search=search, status=status_filter)
    except StockError as exc:
        raise to_http_exception(exc)


@router.post("", response_model=schemas.EquipmentRead, status_code=status.HTTP_201_CREATED)
def create_equipment(
    payload: schemas.EquipmentCreate,
    db: Session = Depends(get_db),
):
    try:
        equipment = services.create_equipment(db, payload=payload)
    except StockError as exc:
        raise to_http_exception(exc)
    db.commit()
    db.refresh(equipment)
    return equipment


@router.get("/{equipment_id}", response_model=schemas.EquipmentRead)
def get_equipment(
    equipment_id: str,
    db: Session = Depends(get_read_db),
):
    try:
        return services.get_equipment(db, equipment_id)
    except StockError as exc:
        raise to_http_exception(exc)


@router.put("/{equipment_id}", response_model=schemas.EquipmentRead)
def update_equipment(
    equipment_id: str,
    payload: schemas.EquipmentUpdate,
    sync_available: bool = Query(False, alias="syncAvailable"),
    db: Session = Depends(get_db),
):
    try:
        equipment = services.update_equipment(
            db,
            equipment_id=equipment_id,
            payload=payload,
            sync_available=sync_available,
        )
    except StockError as exc:
        raise to_http_exception(exc)
    db.commit()
    db.refresh(equipment)
    return equipment


@router.delete("/{equipment_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_equipment(
    equipment_id: str,
    db: Session = Depends(get_db),
):
    try:
        services.delete_equipment(db, equipment_id=equipment_id)
    except StockError as exc:
        raise to_http_exception(exc)
    db.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.patch("/{equipment_id}/status", response_model=schemas.EquipmentRead)
def adjust_status(
    equipment_id: str,
    payload: schemas.StatusAdjustRequest,
    db: Session = Depends(get_db),
):
    try:
        equipment = services.adjust_status(
            db,
            equipment_id=equipment_id,
            status=payload.status,
            delta=payload.change,
            from_status=payload.from_status,
        )
    except StockError as exc:
        raise to_http_exception(exc)
    db.commit()
    db.refresh(equipment)
    return equipment
