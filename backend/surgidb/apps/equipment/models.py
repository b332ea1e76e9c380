from __future__ import annotations

import enum
import os
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    Enum as SAEnum,
    Index,
    Integer,
    Numeric,
    String,
    Text,
)

from surgidb.database import Base
from surgidb.identifiers import generate_uuid7


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class EquipmentCategoryEnum(str, enum.Enum):
    INSTRUMENTS = "Instruments"
    CONSUMABLES = "Consumables"
    DIAGNOSTIC = "Diagnostic"
    FURNITURE = "Furniture"
    ELECTRONICS = "Electronics"


class StatusBucketEnum(str, enum.Enum):
    AVAILABLE = "available"
    IN_USE = "in_use"
    MAINTENANCE = "maintenance"


class StockLevelEnum(str, enum.Enum):
    EXCELLENT = "excellent"
    GOOD = "good"
    LOW = "low"
    CRITICAL = "critical"
    EXHAUSTED = "exhausted"


# Availability classes, as a percentage of max(quantity, status total) still
# available. The SQL filter in services._stock_level_clause uses the same base.
EXCELLENT_THRESHOLD_PCT = int(os.getenv("STOCK_EXCELLENT_THRESHOLD_PCT", "80"))
GOOD_THRESHOLD_PCT = int(os.getenv("STOCK_GOOD_THRESHOLD_PCT", "60"))
LOW_THRESHOLD_PCT = int(os.getenv("STOCK_LOW_THRESHOLD_PCT", "30"))


def classify_stock_level(available: int, quantity: int, status_total: int = 0) -> StockLevelEnum:
    if available <= 0:
        return StockLevelEnum.EXHAUSTED
    pct = (available * 100) / max(quantity, status_total, available)
    if pct >= EXCELLENT_THRESHOLD_PCT:
        return StockLevelEnum.EXCELLENT
    if pct >= GOOD_THRESHOLD_PCT:
        return StockLevelEnum.GOOD
    if pct >= LOW_THRESHOLD_PCT:
        return StockLevelEnum.LOW
    return StockLevelEnum.CRITICAL


class Equipment(Base):
    """
    One inventory line item and its stock counts.

    `available + in_use + maintenance == quantity` is checked by the services
    on every whole-record write. Single-bucket adjustments (cart
    reservations) may leave the sum below `quantity`; the gap is reported as
    `reserved`.
    """

    __tablename__ = "equipment"
    __table_args__ = (
        CheckConstraint("quantity >= 0", name="ck_equipment_quantity_nonneg"),
        CheckConstraint("cost_per_unit >= 0", name="ck_equipment_cost_nonneg"),
        CheckConstraint("available >= 0", name="ck_equipment_available_nonneg"),
        CheckConstraint("in_use >= 0", name="ck_equipment_in_use_nonneg"),
        CheckConstraint("maintenance >= 0", name="ck_equipment_maintenance_nonneg"),
        Index("ix_equipment_category_name", "category", "name"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid7, index=True)
    name = Column(String(255), nullable=False, index=True)
    category = Column(
        SAEnum(
            EquipmentCategoryEnum,
            name="equipment_category_enum",
            native_enum=False,
            values_callable=lambda enum_cls: [member.value for member in enum_cls],
        ),
        nullable=False,
        index=True,
    )
    unit = Column(String(16), nullable=False, default="UNT")
    hsn_code = Column(String(32), nullable=False, default="")
    notes = Column(Text, nullable=False, default="")

    quantity = Column(Integer, nullable=False, default=0)
    cost_per_unit = Column(Numeric(12, 2), nullable=False, default=Decimal("0"))

    available = Column(Integer, nullable=False, default=0)
    in_use = Column(Integer, nullable=False, default=0)
    maintenance = Column(Integer, nullable=False, default=0)

    version = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    __mapper_args__ = {"version_id_col": version}

    @property
    def status_counts(self) -> dict:
        return {
            "available": self.available,
            "in_use": self.in_use,
            "maintenance": self.maintenance,
        }

    @property
    def status_total(self) -> int:
        return (self.available or 0) + (self.in_use or 0) + (self.maintenance or 0)

    @property
    def reserved(self) -> int:
        return (self.quantity or 0) - self.status_total

    @property
    def total_cost(self) -> Decimal:
        return Decimal(self.quantity or 0) * Decimal(self.cost_per_unit or 0)

    @property
    def stock_level(self) -> StockLevelEnum:
        return classify_stock_level(self.available or 0, self.quantity or 0, self.status_total)

    def snapshot(self) -> dict:
        """JSON-safe view used for audit before/after payloads."""
        return {
            "name": self.name,
            "category": self.category.value if self.category else None,
            "quantity": self.quantity,
            "cost_per_unit": str(self.cost_per_unit),
            "status_counts": self.status_counts,
            "version": self.version,
        }

    def __repr__(self) -> str:
        return f"<Equipment id={self.id} name={self.name!r} qty={self.quantity}>"
