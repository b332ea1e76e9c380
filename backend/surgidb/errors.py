"""
Domain errors raised by the stock ledger services.

Services raise these; routers translate them into HTTP responses with a
machine-readable `reason` (see `to_http_exception`).
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import HTTPException, status


class StockError(Exception):
    """Base class for every error the stock ledger surfaces to callers."""

    status_code = status.HTTP_400_BAD_REQUEST
    retryable = False

    def __init__(self, code: str, message: str, *, detail: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.detail = detail or {}

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"reason": self.code, "message": self.message}
        if self.retryable:
            body["retryable"] = True
        body.update(self.detail)
        return body


class ValidationFailed(StockError):
    """Malformed or out-of-range input, rejected before any mutation."""

    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY


class EquipmentNotFound(StockError):
    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, equipment_id: str) -> None:
        super().__init__(
            "not_found",
            f"Equipment {equipment_id} not found.",
            detail={"id": equipment_id},
        )
        self.equipment_id = equipment_id


class InvoiceNotFound(StockError):
    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, invoice_id: str) -> None:
        super().__init__("not_found", f"Invoice {invoice_id} not found.", detail={"id": invoice_id})


class BucketUnderflow(StockError):
    """A status adjustment would take a bucket below zero."""

    status_code = status.HTTP_409_CONFLICT


class StockConflict(StockError):
    """Optimistic-concurrency retry budget exhausted on a hot record."""

    status_code = status.HTTP_409_CONFLICT
    retryable = True


class PartialDeduction(StockError):
    """
    The invoice was committed but one or more stock deductions failed.

    Carries the committed invoice plus the per-item outcome so the caller
    can reconcile the failed items by hand.
    """

    status_code = status.HTTP_207_MULTI_STATUS

    def __init__(self, invoice: Any, applied: List[Dict[str, Any]], failed: List[Dict[str, Any]]) -> None:
        failed_ids = ", ".join(str(item["id"]) for item in failed)
        super().__init__(
            "partial_stock_deduction",
            f"Invoice saved but stock deduction failed for: {failed_ids}",
        )
        self.invoice = invoice
        self.applied = applied
        self.failed = failed


def to_http_exception(exc: StockError) -> HTTPException:
    return HTTPException(status_code=exc.status_code, detail=exc.to_dict())
