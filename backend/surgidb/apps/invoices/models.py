from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import (
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import relationship

from surgidb.database import Base
from surgidb.identifiers import generate_uuid7


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Invoice(Base):
    """
    Immutable sales record.

    `invoice_no` is caller-supplied and deliberately not unique; retries are
    deduplicated through `idempotency_key` instead. Lines snapshot the
    equipment they sold and carry no foreign key to it, so deleting
    equipment never touches invoice history.
    """

    __tablename__ = "invoices"
    __table_args__ = (
        Index("ix_invoices_created_desc", "created_at"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid7, index=True)
    invoice_no = Column(String(64), nullable=False, index=True)
    invoice_date = Column(Date, nullable=False)
    due_date = Column(Date, nullable=False)

    bill_to = Column(String(255), nullable=False, default="")
    bill_address = Column(Text, nullable=False, default="")
    ship_to = Column(String(255), nullable=False, default="")
    ship_address = Column(Text, nullable=False, default="")

    subtotal = Column(Numeric(12, 2), nullable=False)
    gst = Column(Numeric(12, 2), nullable=False)
    total = Column(Numeric(12, 2), nullable=False)

    idempotency_key = Column(String(128), nullable=True, unique=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    items = relationship(
        "InvoiceLine",
        back_populates="invoice",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="InvoiceLine.position",
    )

    def __repr__(self) -> str:
        return f"<Invoice id={self.id} no={self.invoice_no} total={self.total}>"


class InvoiceLine(Base):
    __tablename__ = "invoice_lines"

    line_id = Column("id", Integer, primary_key=True, autoincrement=True)
    invoice_id = Column(String(36), ForeignKey("invoices.id", ondelete="CASCADE"), nullable=False, index=True)
    position = Column(Integer, nullable=False, default=0)

    equipment_id = Column(String(36), nullable=False, index=True)
    name = Column(String(255), nullable=False, default="")
    qty = Column(Integer, nullable=False)
    unit_price = Column(Numeric(12, 2), nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    hsn_code = Column(String(32), nullable=False, default="")
    unit = Column(String(16), nullable=False, default="UNT")
    reserved = Column(Integer, nullable=False, default=0)

    invoice = relationship("Invoice", back_populates="items")
