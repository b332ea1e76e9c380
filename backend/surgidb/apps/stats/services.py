"""
Category and value rollups derived from the equipment table.

Recomputed on every call; nothing here is cached or written.
"""

from __future__ import annotations

from decimal import Decimal

from sqlalchemy.orm import Session

from surgidb.apps.equipment import models as equipment_models

from . import schemas


def summarize(db: Session) -> schemas.StatsSummary:
    eq = equipment_models.Equipment
    summary = schemas.StatsSummary(
        category_totals={c.value: schemas.CategoryTotals() for c in equipment_models.EquipmentCategoryEnum},
    )
    rows = db.query(
        eq.category,
        eq.quantity,
        eq.cost_per_unit,
        eq.available,
        eq.in_use,
        eq.maintenance,
    ).all()
    for category, quantity, cost_per_unit, available, in_use, maintenance in rows:
        line_cost = Decimal(quantity) * Decimal(cost_per_unit)
        bucket = summary.category_totals.setdefault(category.value, schemas.CategoryTotals())
        for totals in (bucket, summary.totals):
            totals.count += 1
            totals.units += quantity
            totals.cost += line_cost

        summary.status_totals.available += available
        summary.status_totals.in_use += in_use
        summary.status_totals.maintenance += maintenance
        summary.status_totals.reserved += quantity - (available + in_use + maintenance)
        if available <= 0:
            summary.exhausted_count += 1
    return summary
