"""
Invoices module.

Turns a cart into an immutable invoice and deducts the sold stock.
"""

from .router import router  # noqa: F401
from . import models  # noqa: F401
