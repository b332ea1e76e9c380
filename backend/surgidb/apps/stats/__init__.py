"""
Stats module.

Read-only category, value and status rollups over current equipment state.
"""

from .router import router  # noqa: F401
