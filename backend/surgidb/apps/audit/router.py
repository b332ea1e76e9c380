from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from surgidb.database import get_read_db

from . import schemas, services

router = APIRouter(prefix="/audit", tags=["audit"])


@router.get("", response_model=List[schemas.AuditEventRead])
def list_audit_events(
    entity_type: Optional[str] = Query(None, alias="entityType"),
    entity_id: Optional[str] = Query(None, alias="entityId"),
    limit: int = Query(100, ge=1, le=500),
    db: Session = Depends(get_read_db),
):
    return services.list_audit_events(db, entity_type=entity_type, entity_id=entity_id, limit=limit)
