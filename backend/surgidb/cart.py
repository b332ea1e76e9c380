from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, Iterator, List, Mapping, Optional

CENT = Decimal("0.01")


@dataclass
class CartEntry:
    name: str
    qty: int
    unit_price: Decimal
    hsn_code: str = ""
    unit: str = "UNT"

    @property
    def amount(self) -> Decimal:
        return (self.unit_price * self.qty).quantize(CENT, rounding=ROUND_HALF_UP)


class Cart:
    """
    Client-held reservation ledger keyed by equipment id.

    The cart is not authoritative: it mirrors how many units this client
    believes it has reserved. Entries always have `qty >= 1`; setting a zero
    or negative quantity removes the entry. The unit price is the snapshot
    taken at first reservation and is never re-checked against the server.
    """

    def __init__(self) -> None:
        self._entries: Dict[str, CartEntry] = {}

    def __contains__(self, equipment_id: str) -> bool:
        return equipment_id in self._entries

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, equipment_id: str) -> Optional[CartEntry]:
        return self._entries.get(equipment_id)

    def items(self) -> List[tuple]:
        return list(self._entries.items())

    def add_one(
        self,
        equipment_id: str,
        *,
        name: str,
        unit_price: Decimal,
        hsn_code: str = "",
        unit: str = "UNT",
    ) -> CartEntry:
        entry = self._entries.get(equipment_id)
        if entry is None:
            entry = CartEntry(
                name=name,
                qty=0,
                unit_price=Decimal(unit_price),
                hsn_code=hsn_code or "",
                unit=unit or "UNT",
            )
            self._entries[equipment_id] = entry
        entry.qty += 1
        return entry

    def remove_one(self, equipment_id: str) -> Optional[CartEntry]:
        entry = self._entries.get(equipment_id)
        if entry is None:
            return None
        return self.set_qty(equipment_id, entry.qty - 1)

    def set_qty(self, equipment_id: str, qty: int) -> Optional[CartEntry]:
        if qty <= 0:
            self._entries.pop(equipment_id, None)
            return None
        entry = self._entries.get(equipment_id)
        if entry is None:
            entry = CartEntry(name="Item", qty=qty, unit_price=Decimal("0"))
            self._entries[equipment_id] = entry
        entry.qty = qty
        return entry

    def clear(self) -> None:
        self._entries.clear()

    @property
    def subtotal(self) -> Decimal:
        return sum((entry.amount for entry in self._entries.values()), Decimal("0.00"))

    def invoice_items(self, *, reserved: bool = True) -> List[Dict[str, Any]]:
        """
        Invoice line payloads for `POST /invoice`.

        With `reserved=True` each line declares its whole quantity as already
        reserved, so finalizing does not take those units out of `available`
        a second time.
        """
        lines = []
        for equipment_id, entry in self._entries.items():
            lines.append(
                {
                    "id": equipment_id,
                    "name": entry.name,
                    "qty": entry.qty,
                    "unitPrice": str(entry.unit_price),
                    "amount": str(entry.amount),
                    "hsnCode": entry.hsn_code,
                    "unit": entry.unit,
                    "reserved": entry.qty if reserved else 0,
                }
            )
        return lines

    def to_dict(self) -> Dict[str, Dict[str, Any]]:
        """Persistable form, keyed by equipment id, with the API's camelCase field names."""
        return {
            equipment_id: {
                "name": entry.name,
                "qty": entry.qty,
                "unitPrice": str(entry.unit_price),
                "hsnCode": entry.hsn_code,
                "unit": entry.unit,
            }
            for equipment_id, entry in self._entries.items()
        }

    @classmethod
    def from_dict(cls, raw: Mapping[str, Mapping[str, Any]]) -> "Cart":
        cart = cls()
        for equipment_id, data in raw.items():
            qty = int(data.get("qty", 0))
            if qty <= 0:
                continue
            cart._entries[equipment_id] = CartEntry(
                name=data.get("name") or "Item",
                qty=qty,
                # Carts saved with snake_case keys still load.
                unit_price=Decimal(str(data.get("unitPrice", data.get("unit_price", "0")))),
                hsn_code=data.get("hsnCode", data.get("hsn_code")) or "",
                unit=data.get("unit") or "UNT",
            )
        return cart
