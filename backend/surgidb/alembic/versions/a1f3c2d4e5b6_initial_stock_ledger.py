"""Initial stock ledger tables: equipment, invoices, invoice lines, audit events.

Revision ID: a1f3c2d4e5b6
Revises:
Create Date: 2026-10-18 09:00:00.000000
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect


# revision identifiers, used by Alembic.
revision = "a1f3c2d4e5b6"
down_revision = None
branch_labels = None
depends_on = None


CATEGORY_VALUES = ("Instruments", "Consumables", "Diagnostic", "Furniture", "Electronics")


def _table_exists(table_name: str) -> bool:
    bind = op.get_bind()
    return bool(inspect(bind).has_table(table_name))


def upgrade() -> None:
    if not _table_exists("equipment"):
        op.create_table(
            "equipment",
            sa.Column("id", sa.String(length=36), primary_key=True),
            sa.Column("name", sa.String(length=255), nullable=False),
            sa.Column(
                "category",
                sa.Enum(*CATEGORY_VALUES, name="equipment_category_enum", native_enum=False),
                nullable=False,
            ),
            sa.Column("unit", sa.String(length=16), nullable=False, server_default="UNT"),
            sa.Column("hsn_code", sa.String(length=32), nullable=False, server_default=""),
            sa.Column("notes", sa.Text(), nullable=False, server_default=""),
            sa.Column("quantity", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("cost_per_unit", sa.Numeric(12, 2), nullable=False, server_default="0"),
            sa.Column("available", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("in_use", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("maintenance", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
            sa.CheckConstraint("quantity >= 0", name="ck_equipment_quantity_nonneg"),
            sa.CheckConstraint("cost_per_unit >= 0", name="ck_equipment_cost_nonneg"),
            sa.CheckConstraint("available >= 0", name="ck_equipment_available_nonneg"),
            sa.CheckConstraint("in_use >= 0", name="ck_equipment_in_use_nonneg"),
            sa.CheckConstraint("maintenance >= 0", name="ck_equipment_maintenance_nonneg"),
        )
        op.create_index("ix_equipment_id", "equipment", ["id"])
        op.create_index("ix_equipment_name", "equipment", ["name"])
        op.create_index("ix_equipment_category", "equipment", ["category"])
        op.create_index("ix_equipment_category_name", "equipment", ["category", "name"])

    if not _table_exists("invoices"):
        op.create_table(
            "invoices",
            sa.Column("id", sa.String(length=36), primary_key=True),
            sa.Column("invoice_no", sa.String(length=64), nullable=False),
            sa.Column("invoice_date", sa.Date(), nullable=False),
            sa.Column("due_date", sa.Date(), nullable=False),
            sa.Column("bill_to", sa.String(length=255), nullable=False, server_default=""),
            sa.Column("bill_address", sa.Text(), nullable=False, server_default=""),
            sa.Column("ship_to", sa.String(length=255), nullable=False, server_default=""),
            sa.Column("ship_address", sa.Text(), nullable=False, server_default=""),
            sa.Column("subtotal", sa.Numeric(12, 2), nullable=False),
            sa.Column("gst", sa.Numeric(12, 2), nullable=False),
            sa.Column("total", sa.Numeric(12, 2), nullable=False),
            sa.Column("idempotency_key", sa.String(length=128), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
            sa.UniqueConstraint("idempotency_key", name="uq_invoices_idempotency_key"),
        )
        op.create_index("ix_invoices_id", "invoices", ["id"])
        op.create_index("ix_invoices_invoice_no", "invoices", ["invoice_no"])
        op.create_index("ix_invoices_created_desc", "invoices", ["created_at"])

    if not _table_exists("invoice_lines"):
        op.create_table(
            "invoice_lines",
            sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
            sa.Column(
                "invoice_id",
                sa.String(length=36),
                sa.ForeignKey("invoices.id", ondelete="CASCADE"),
                nullable=False,
            ),
            sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("equipment_id", sa.String(length=36), nullable=False),
            sa.Column("name", sa.String(length=255), nullable=False, server_default=""),
            sa.Column("qty", sa.Integer(), nullable=False),
            sa.Column("unit_price", sa.Numeric(12, 2), nullable=False),
            sa.Column("amount", sa.Numeric(12, 2), nullable=False),
            sa.Column("hsn_code", sa.String(length=32), nullable=False, server_default=""),
            sa.Column("unit", sa.String(length=16), nullable=False, server_default="UNT"),
            sa.Column("reserved", sa.Integer(), nullable=False, server_default="0"),
        )
        op.create_index("ix_invoice_lines_invoice_id", "invoice_lines", ["invoice_id"])
        op.create_index("ix_invoice_lines_equipment_id", "invoice_lines", ["equipment_id"])

    if not _table_exists("audit_events"):
        op.create_table(
            "audit_events",
            sa.Column("id", sa.String(length=36), primary_key=True),
            sa.Column("entity_type", sa.String(length=64), nullable=False),
            sa.Column("entity_id", sa.String(length=64), nullable=False),
            sa.Column("action", sa.String(length=64), nullable=False),
            sa.Column("occurred_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("before", sa.JSON(), nullable=True),
            sa.Column("after", sa.JSON(), nullable=True),
            sa.Column("correlation_id", sa.String(length=64), nullable=True),
        )
        op.create_index("ix_audit_events_id", "audit_events", ["id"])
        op.create_index("ix_audit_events_entity_type", "audit_events", ["entity_type"])
        op.create_index("ix_audit_events_entity_id", "audit_events", ["entity_id"])
        op.create_index("ix_audit_events_action", "audit_events", ["action"])
        op.create_index("ix_audit_events_occurred_at", "audit_events", ["occurred_at"])
        op.create_index("ix_audit_events_correlation_id", "audit_events", ["correlation_id"])
        op.create_index("ix_audit_events_entity", "audit_events", ["entity_type", "entity_id"])
        op.create_index(
            "ix_audit_events_time_desc",
            "audit_events",
            [sa.text("occurred_at DESC")],
        )


def downgrade() -> None:
    for table_name in ("audit_events", "invoice_lines", "invoices", "equipment"):
        if _table_exists(table_name):
            op.drop_table(table_name)
