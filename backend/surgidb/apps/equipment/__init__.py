"""
Equipment module.

Stock records for surgical equipment and consumables: per-item quantity and
the available / in-use / maintenance status counts.
"""

from .router import router  # noqa: F401
from . import models  # noqa: F401
