from __future__ import annotations

import datetime as dt
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel


class InvoiceItemCreate(BaseModel):
    # Lengths mirror the invoice_lines columns.
    id: str = Field(..., min_length=1, max_length=36)
    name: str = Field("", max_length=255)
    qty: int
    unit_price: Decimal
    amount: Optional[Decimal] = None
    hsn_code: str = Field("", max_length=32)
    unit: str = Field("UNT", max_length=16)
    reserved: int = 0

    class Config:
        alias_generator = to_camel
        populate_by_name = True


class InvoiceCreate(BaseModel):
    invoice_no: str = Field(..., min_length=1, max_length=64)
    date: dt.date
    due_date: dt.date
    bill_to: str = Field("", max_length=255)
    bill_address: str = ""
    ship_to: str = Field("", max_length=255)
    ship_address: str = ""
    items: List[InvoiceItemCreate] = Field(default_factory=list)
    subtotal: Decimal
    gst: Decimal
    total: Decimal
    idempotency_key: Optional[str] = Field(None, max_length=128)

    class Config:
        alias_generator = to_camel
        populate_by_name = True


class InvoiceItemRead(BaseModel):
    id: str = Field(..., validation_alias="equipment_id")
    name: str
    qty: int
    unit_price: Decimal
    amount: Decimal
    hsn_code: str
    unit: str

    class Config:
        from_attributes = True
        alias_generator = to_camel
        populate_by_name = True


class InvoiceRead(BaseModel):
    id: str
    invoice_no: str
    date: dt.date = Field(..., validation_alias="invoice_date")
    due_date: dt.date
    bill_to: str
    bill_address: str
    ship_to: str
    ship_address: str
    items: List[InvoiceItemRead]
    subtotal: Decimal
    gst: Decimal
    total: Decimal
    created_at: dt.datetime
    updated_at: dt.datetime

    class Config:
        from_attributes = True
        alias_generator = to_camel
        populate_by_name = True


class DeductionResult(BaseModel):
    id: str
    qty: int
    reason: Optional[str] = None
    message: Optional[str] = None


class FinalizeResponse(BaseModel):
    success: bool
    replayed: bool = False
    invoice: InvoiceRead
    applied: List[DeductionResult] = Field(default_factory=list)
    failed: List[DeductionResult] = Field(default_factory=list)
    reason: Optional[str] = None
    message: Optional[str] = None
