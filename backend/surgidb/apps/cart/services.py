"""
Reservation protocol.

A reservation takes one unit out of `available` on the server; the cart that
remembers it lives with the client. Each call commits on its own, so a cart
and the store can drift apart if a call fails half-way: callers reload the
equipment list to resynchronise (see `surgidb.client.InventoryClient.reload`).

Repeating `reserve` reserves another unit. Callers track how many they hold
(the cart `qty`) to avoid double-reserving.

`release` is not checked against an outstanding reservation. Releasing a
unit nobody reserved lifts `available` above `quantity`, and the record then
reports a negative `reserved` until an edit with `syncAvailable` or a
matching reserve brings it back.
"""

from __future__ import annotations

from sqlalchemy.orm import Session

from surgidb.apps.equipment import models as equipment_models
from surgidb.apps.equipment import services as equipment_services


def reserve(db: Session, *, equipment_id: str) -> equipment_models.Equipment:
    return equipment_services.adjust_status(
        db,
        equipment_id=equipment_id,
        status=equipment_models.StatusBucketEnum.AVAILABLE,
        delta=-1,
    )


def release(db: Session, *, equipment_id: str) -> equipment_models.Equipment:
    return equipment_services.adjust_status(
        db,
        equipment_id=equipment_id,
        status=equipment_models.StatusBucketEnum.AVAILABLE,
        delta=1,
    )
