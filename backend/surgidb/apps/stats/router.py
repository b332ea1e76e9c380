from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from surgidb.database import get_read_db

from . import schemas, services

router = APIRouter(prefix="/stats", tags=["stats"])


@router.get("/summary", response_model=schemas.StatsSummary)
def stats_summary(db: Session = Depends(get_read_db)):
    return services.summarize(db)
