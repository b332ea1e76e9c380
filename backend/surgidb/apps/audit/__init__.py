"""
Audit module.

Append-only trail of stock-affecting actions (equipment edits, status
adjustments, sale deductions, invoice finalization).
"""

from .router import router  # noqa: F401
from . import models  # noqa: F401
