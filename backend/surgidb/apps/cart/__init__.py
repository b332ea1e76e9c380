"""
Cart module.

Server side of the reservation protocol. The cart itself is held by the
client (see surgidb.cart).
"""

from .router import router  # noqa: F401
