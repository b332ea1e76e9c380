from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, List, Optional

from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session

from surgidb.apps.audit import services as audit_services
from surgidb.apps.equipment import services as equipment_services
from surgidb.errors import InvoiceNotFound, PartialDeduction, StockError, ValidationFailed

from . import models, schemas

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")

_GST_PERCENT_RAW = os.getenv("INVOICE_GST_PERCENT")
GST_PERCENT: Optional[Decimal] = Decimal(_GST_PERCENT_RAW) if _GST_PERCENT_RAW else None

LIST_DEFAULT_LIMIT = int(os.getenv("INVOICE_LIST_DEFAULT_LIMIT", "10"))
LIST_MAX_LIMIT = int(os.getenv("INVOICE_LIST_MAX_LIMIT", "100"))


@dataclass
class FinalizeOutcome:
    invoice: models.Invoice
    applied: List[Dict[str, object]] = field(default_factory=list)
    failed: List[Dict[str, object]] = field(default_factory=list)
    replayed: bool = False


def _money(value: Decimal) -> Decimal:
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def validate_invoice(payload: schemas.InvoiceCreate, *, gst_percent: Optional[Decimal] = None) -> List[Decimal]:
    """
    Check the invoice before anything is written.

    Returns the per-line amounts. All arithmetic is Decimal at two places
    and totals must match exactly.
    """
    if not payload.items:
        raise ValidationFailed("empty_invoice", "An invoice needs at least one item.")

    amounts: List[Decimal] = []
    for index, item in enumerate(payload.items):
        if item.qty <= 0:
            raise ValidationFailed(
                "invalid_qty",
                f"Item {item.id} must have qty > 0.",
                detail={"index": index, "id": item.id, "qty": item.qty},
            )
        if item.reserved < 0 or item.reserved > item.qty:
            raise ValidationFailed(
                "invalid_reserved",
                f"Item {item.id} reserved count must be between 0 and qty.",
                detail={"index": index, "id": item.id, "reserved": item.reserved},
            )
        if item.unit_price < 0:
            raise ValidationFailed(
                "negative_price",
                f"Item {item.id} has a negative unit price.",
                detail={"index": index, "id": item.id},
            )
        if item.unit_price != _money(item.unit_price):
            raise ValidationFailed(
                "invalid_price",
                f"Item {item.id} unit price {item.unit_price} has more than two decimal places.",
                detail={"index": index, "id": item.id, "unitPrice": str(item.unit_price)},
            )
        amount = _money(Decimal(item.qty) * item.unit_price)
        if item.amount is not None and _money(item.amount) != amount:
            raise ValidationFailed(
                "amount_mismatch",
                f"Item {item.id} amount {item.amount} != qty * unitPrice ({amount}).",
                detail={"index": index, "id": item.id, "expected": str(amount)},
            )
        amounts.append(amount)

    subtotal = sum(amounts, Decimal("0.00"))
    if _money(payload.subtotal) != subtotal:
        raise ValidationFailed(
            "subtotal_mismatch",
            f"Subtotal {payload.subtotal} != sum of items ({subtotal}).",
            detail={"expected": str(subtotal)},
        )
    gst = _money(payload.gst)
    if gst < 0:
        raise ValidationFailed("negative_gst", "GST cannot be negative.")
    if gst_percent is not None:
        expected_gst = _money(subtotal * gst_percent / Decimal(100))
        if gst != expected_gst:
            raise ValidationFailed(
                "gst_mismatch",
                f"GST {gst} != {gst_percent}% of subtotal ({expected_gst}).",
                detail={"expected": str(expected_gst)},
            )
    if _money(payload.total) != subtotal + gst:
        raise ValidationFailed(
            "total_mismatch",
            f"Total {payload.total} != subtotal + gst ({subtotal + gst}).",
            detail={"expected": str(subtotal + gst)},
        )
    return amounts


def _find_by_idempotency_key(db: Session, key: str) -> Optional[models.Invoice]:
    return db.query(models.Invoice).filter(models.Invoice.idempotency_key == key).first()


def _build_invoice(payload: schemas.InvoiceCreate, amounts: List[Decimal]) -> models.Invoice:
    subtotal = sum(amounts, Decimal("0.00"))
    gst = _money(payload.gst)
    invoice = models.Invoice(
        invoice_no=payload.invoice_no.strip(),
        invoice_date=payload.date,
        due_date=payload.due_date,
        bill_to=payload.bill_to,
        bill_address=payload.bill_address,
        ship_to=payload.ship_to,
        ship_address=payload.ship_address,
        subtotal=subtotal,
        gst=gst,
        total=subtotal + gst,
        idempotency_key=payload.idempotency_key,
    )
    for position, (item, amount) in enumerate(zip(payload.items, amounts)):
        invoice.items.append(
            models.InvoiceLine(
                position=position,
                equipment_id=item.id,
                name=item.name,
                qty=item.qty,
                unit_price=_money(item.unit_price),
                amount=amount,
                hsn_code=item.hsn_code,
                unit=item.unit,
                reserved=item.reserved,
            )
        )
    return invoice


def _deduct_item(db: Session, *, invoice: models.Invoice, item: schemas.InvoiceItemCreate) -> Optional[Dict[str, object]]:
    """Apply one item's deduction in its own transaction; return the failure, if any."""
    try:
        equipment_services.deduct_sold_stock(
            db,
            equipment_id=item.id,
            qty=item.qty,
            reserved=item.reserved,
            correlation_id=invoice.id,
        )
        db.commit()
        return None
    except StockError as exc:
        db.rollback()
        failure = {"id": item.id, "qty": item.qty, "reason": exc.code, "message": exc.message}
    except OperationalError as exc:
        db.rollback()
        failure = {"id": item.id, "qty": item.qty, "reason": "store_unavailable", "message": str(exc.orig)}
    logger.warning(
        "Stock deduction failed for invoice item",
        extra={"invoice_id": invoice.id, "equipment_id": item.id, "qty": item.qty, "reason": failure["reason"]},
    )
    return failure


def finalize_invoice(
    db: Session,
    *,
    payload: schemas.InvoiceCreate,
    gst_percent: Optional[Decimal] = GST_PERCENT,
) -> FinalizeOutcome:
    """
    Persist an invoice, then deduct the sold stock item by item.

    This function owns its transaction boundaries:

    1. validate (nothing written on failure);
    2. commit the invoice: from here on the sale has happened;
    3. commit each item's deduction on its own. A failed item is rolled back
       alone and reported; the invoice and the other items stay committed.

    Any failed item turns the outcome into `PartialDeduction`. Resubmitting
    without an idempotency key creates a second invoice and deducts again.
    """
    amounts = validate_invoice(payload, gst_percent=gst_percent)

    if payload.idempotency_key:
        existing = _find_by_idempotency_key(db, payload.idempotency_key)
        if existing:
            logger.info(
                "Replaying finalized invoice for idempotency key",
                extra={"invoice_id": existing.id, "idempotency_key": payload.idempotency_key},
            )
            return FinalizeOutcome(invoice=existing, replayed=True)

    invoice = _build_invoice(payload, amounts)
    db.add(invoice)
    try:
        db.flush()
    except IntegrityError:
        db.rollback()
        existing = _find_by_idempotency_key(db, payload.idempotency_key) if payload.idempotency_key else None
        if existing is None:
            raise
        return FinalizeOutcome(invoice=existing, replayed=True)
    audit_services.create_audit_event(
        db,
        entity_type="Invoice",
        entity_id=invoice.id,
        action="finalize",
        after={"invoice_no": invoice.invoice_no, "total": str(invoice.total), "items": len(payload.items)},
    )
    db.commit()

    outcome = FinalizeOutcome(invoice=invoice)
    for item in payload.items:
        failure = _deduct_item(db, invoice=invoice, item=item)
        if failure is None:
            outcome.applied.append({"id": item.id, "qty": item.qty})
        else:
            outcome.failed.append(failure)

    if outcome.failed:
        logger.warning(
            "Invoice finalized with partial stock deduction",
            extra={
                "invoice_id": invoice.id,
                "invoice_no": invoice.invoice_no,
                "failed_ids": [f["id"] for f in outcome.failed],
            },
        )
        raise PartialDeduction(invoice, outcome.applied, outcome.failed)
    return outcome


def get_invoice(db: Session, invoice_id: str) -> models.Invoice:
    invoice = db.get(models.Invoice, invoice_id)
    if not invoice:
        raise InvoiceNotFound(invoice_id)
    return invoice


def list_invoices(db: Session, *, limit: Optional[int] = None) -> List[models.Invoice]:
    if not limit or limit <= 0:
        limit = LIST_DEFAULT_LIMIT
    limit = min(limit, LIST_MAX_LIMIT)
    return (
        db.query(models.Invoice)
        .order_by(models.Invoice.created_at.desc(), models.Invoice.id.desc())
        .limit(limit)
        .all()
    )
