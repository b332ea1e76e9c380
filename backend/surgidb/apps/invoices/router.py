from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, Header, Query, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from surgidb.database import get_db, get_read_db
from surgidb.errors import PartialDeduction, StockError, to_http_exception

from . import schemas, services

router = APIRouter(prefix="/invoice", tags=["invoices"])


def _partial_response(exc: PartialDeduction) -> JSONResponse:
    body = schemas.FinalizeResponse(
        success=False,
        invoice=schemas.InvoiceRead.model_validate(exc.invoice),
        applied=exc.applied,
        failed=exc.failed,
        reason=exc.code,
        message=exc.message,
    )
    return JSONResponse(
        status_code=exc.status_code,
        content=body.model_dump(mode="json", by_alias=True),
    )


@router.post(
    "",
    response_model=schemas.FinalizeResponse,
    response_model_exclude_none=True,
    status_code=status.HTTP_201_CREATED,
    responses={status.HTTP_207_MULTI_STATUS: {"model": schemas.FinalizeResponse}},
)
def finalize_invoice(
    payload: schemas.InvoiceCreate,
    idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key", max_length=128),
    db: Session = Depends(get_db),
):
    if not payload.idempotency_key and idempotency_key:
        payload.idempotency_key = idempotency_key
    try:
        outcome = services.finalize_invoice(db, payload=payload)
    except PartialDeduction as exc:
        return _partial_response(exc)
    except StockError as exc:
        raise to_http_exception(exc)

    body = schemas.FinalizeResponse(
        success=True,
        replayed=outcome.replayed,
        invoice=schemas.InvoiceRead.model_validate(outcome.invoice),
        applied=outcome.applied,
    )
    if outcome.replayed:
        return JSONResponse(
            status_code=status.HTTP_200_OK,
            content=body.model_dump(mode="json", by_alias=True, exclude_none=True),
        )
    return body


@router.get("", response_model=List[schemas.InvoiceRead])
def list_invoices(
    limit: Optional[int] = Query(None, ge=1),
    db: Session = Depends(get_read_db),
):
    return services.list_invoices(db, limit=limit)


@router.get("/{invoice_id}", response_model=schemas.InvoiceRead)
def get_invoice(
    invoice_id: str,
    db: Session = Depends(get_read_db),
):
    try:
        return services.get_invoice(db, invoice_id)
    except StockError as exc:
        raise to_http_exception(exc)
