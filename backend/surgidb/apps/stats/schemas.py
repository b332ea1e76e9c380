from __future__ import annotations

from decimal import Decimal
from typing import Dict

from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel


class CategoryTotals(BaseModel):
    count: int = 0
    units: int = 0
    cost: Decimal = Decimal("0.00")


class StatusTotals(BaseModel):
    available: int = 0
    in_use: int = 0
    maintenance: int = 0
    reserved: int = 0


class StatsSummary(BaseModel):
    category_totals: Dict[str, CategoryTotals] = Field(default_factory=dict)
    totals: CategoryTotals = Field(default_factory=CategoryTotals)
    status_totals: StatusTotals = Field(default_factory=StatusTotals)
    exhausted_count: int = 0

    class Config:
        alias_generator = to_camel
        populate_by_name = True
