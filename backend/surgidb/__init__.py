# backend/surgidb/__init__.py
"""
Surgical equipment stock ledger.

Apps live in surgidb/apps/*:

- equipment: stock records and their status counts
- cart:      reservation protocol (the cart itself is surgidb.cart)
- invoices:  invoice finalization and stock deduction
- stats:     category / value rollups
- audit:     append-only trail of stock changes

Models are imported by the apps themselves; Alembic's env.py imports each
models module so Base.metadata sees every table.
"""
