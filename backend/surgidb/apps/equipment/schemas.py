from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel

from . import models


class StatusCounts(BaseModel):
    # Keys stay snake_case on the wire: {available, in_use, maintenance}.
    available: int = 0
    in_use: int = 0
    maintenance: int = 0


class StatusCountsPatch(BaseModel):
    available: Optional[int] = None
    in_use: Optional[int] = None
    maintenance: Optional[int] = None


class EquipmentCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    category: str
    unit: str = Field("UNT", max_length=16)
    hsn_code: str = Field("", max_length=32)
    notes: str = ""
    quantity: int = 0
    cost_per_unit: Decimal = Decimal("0")
    status_counts: Optional[StatusCounts] = None

    class Config:
        alias_generator = to_camel
        populate_by_name = True


class EquipmentUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    category: Optional[str] = None
    unit: Optional[str] = Field(None, max_length=16)
    hsn_code: Optional[str] = Field(None, max_length=32)
    notes: Optional[str] = None
    quantity: Optional[int] = None
    cost_per_unit: Optional[Decimal] = None
    status_counts: Optional[StatusCountsPatch] = None

    class Config:
        alias_generator = to_camel
        populate_by_name = True


class EquipmentRead(BaseModel):
    id: str
    name: str
    category: models.EquipmentCategoryEnum
    unit: str
    hsn_code: str
    notes: str
    quantity: int
    cost_per_unit: Decimal
    status_counts: StatusCounts
    total_cost: Decimal
    reserved: int
    stock_level: models.StockLevelEnum
    version: int
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True
        alias_generator = to_camel
        populate_by_name = True


class StatusAdjustRequest(BaseModel):
    status: models.StatusBucketEnum
    change: int
    from_status: Optional[models.StatusBucketEnum] = None

    class Config:
        alias_generator = to_camel
        populate_by_name = True
