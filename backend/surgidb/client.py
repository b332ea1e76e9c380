"""
Python client for the stock ledger HTTP API.

Connection settings (base URL, bearer token, timeout) are passed in when the
client is built; nothing is read from module-level state. An existing
`httpx.Client` (for example FastAPI's `TestClient`) can be injected instead.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, List, Optional

import httpx

from surgidb.cart import Cart
from surgidb.identifiers import generate_invoice_number

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")


class ApiError(Exception):
    def __init__(self, status_code: int, detail: Any) -> None:
        self.status_code = status_code
        self.detail = detail
        self.reason = detail.get("reason") if isinstance(detail, dict) else None
        self.retryable = bool(detail.get("retryable")) if isinstance(detail, dict) else False
        super().__init__(f"{status_code} {self.reason or detail}")


@dataclass
class FinalizeResult:
    success: bool
    invoice: Dict[str, Any]
    replayed: bool = False
    applied: List[Dict[str, Any]] = field(default_factory=list)
    failed: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def failed_ids(self) -> List[str]:
        return [item["id"] for item in self.failed]


@dataclass
class ReloadReport:
    equipment: List[Dict[str, Any]]
    missing_ids: List[str]


class InventoryClient:
    def __init__(
        self,
        base_url: str = "",
        *,
        token: Optional[str] = None,
        timeout: float = 10.0,
        http: Optional[httpx.Client] = None,
    ) -> None:
        headers = {"Content-Type": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        if http is None:
            http = httpx.Client(base_url=base_url, headers=headers, timeout=timeout)
        else:
            http.headers.update(headers)
        self.http = http

    def __enter__(self) -> "InventoryClient":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def close(self) -> None:
        self.http.close()

    def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        response = self.http.request(method, path, **kwargs)
        if response.status_code >= 400:
            try:
                body = response.json()
            except ValueError:
                body = response.text
            detail = body.get("detail", body) if isinstance(body, dict) else body
            raise ApiError(response.status_code, detail)
        return response

    # ------------------------------------------------------------------
    # Equipment
    # ------------------------------------------------------------------

    def list_equipment(
        self,
        *,
        category: Optional[str] = None,
        search: Optional[str] = None,
        status: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        params = {k: v for k, v in {"category": category, "search": search, "status": status}.items() if v}
        return self._request("GET", "/equipment", params=params).json()

    def get_equipment(self, equipment_id: str) -> Dict[str, Any]:
        return self._request("GET", f"/equipment/{equipment_id}").json()

    def create_equipment(self, data: Dict[str, Any]) -> Dict[str, Any]:
        return self._request("POST", "/equipment", json=data).json()

    def update_equipment(self, equipment_id: str, data: Dict[str, Any], *, sync_available: bool = False) -> Dict[str, Any]:
        params = {"syncAvailable": "true"} if sync_available else None
        return self._request("PUT", f"/equipment/{equipment_id}", json=data, params=params).json()

    def delete_equipment(self, equipment_id: str) -> None:
        self._request("DELETE", f"/equipment/{equipment_id}")

    def adjust_status(
        self,
        equipment_id: str,
        status: str,
        change: int,
        *,
        from_status: Optional[str] = None,
    ) -> Dict[str, Any]:
        body: Dict[str, Any] = {"status": status, "change": change}
        if from_status:
            body["fromStatus"] = from_status
        return self._request("PATCH", f"/equipment/{equipment_id}/status", json=body).json()

    def stats(self) -> Dict[str, Any]:
        return self._request("GET", "/stats/summary").json()

    # ------------------------------------------------------------------
    # Reservation protocol
    # ------------------------------------------------------------------

    def add_to_cart(self, cart: Cart, record: Dict[str, Any]) -> Dict[str, Any]:
        """
        Reserve one unit of `record` and count it in `cart`.

        The cart only changes once the server accepted the reservation. If the
        response is lost after the server applied it, the two drift; `reload`
        is the way back.
        """
        updated = self._request("POST", f"/equipment/{record['id']}/reserve").json()
        cart.add_one(
            record["id"],
            name=record.get("name", ""),
            unit_price=Decimal(str(record.get("costPerUnit", "0"))),
            hsn_code=record.get("hsnCode", ""),
            unit=record.get("unit", "UNT"),
        )
        return updated

    def remove_from_cart(self, cart: Cart, equipment_id: str) -> Optional[Dict[str, Any]]:
        if equipment_id not in cart:
            return None
        updated = self._request("POST", f"/equipment/{equipment_id}/release").json()
        cart.remove_one(equipment_id)
        return updated

    def reload(self, cart: Optional[Cart] = None) -> ReloadReport:
        """
        Re-read equipment from the server.

        Cart entries whose equipment no longer exists are dropped from the
        cart and reported; there is nothing left to release for them.
        """
        equipment = self.list_equipment()
        missing: List[str] = []
        if cart is not None:
            known = {item["id"] for item in equipment}
            missing = [equipment_id for equipment_id in cart if equipment_id not in known]
            for equipment_id in missing:
                cart.set_qty(equipment_id, 0)
            if missing:
                logger.info("Dropped cart entries for deleted equipment", extra={"missing_ids": missing})
        return ReloadReport(equipment=equipment, missing_ids=missing)

    # ------------------------------------------------------------------
    # Invoices
    # ------------------------------------------------------------------

    def finalize(self, invoice: Dict[str, Any], *, idempotency_key: Optional[str] = None) -> FinalizeResult:
        headers = {"Idempotency-Key": idempotency_key} if idempotency_key else None
        # A 207 partial deduction is a body, not an error.
        body = self._request("POST", "/invoice", json=invoice, headers=headers).json()
        return FinalizeResult(
            success=body["success"],
            invoice=body["invoice"],
            replayed=body.get("replayed", False),
            applied=body.get("applied", []),
            failed=body.get("failed", []),
        )

    def checkout(
        self,
        cart: Cart,
        *,
        bill_to: str = "",
        bill_address: str = "",
        ship_to: Optional[str] = None,
        ship_address: Optional[str] = None,
        gst_percent: Decimal = Decimal("5"),
        invoice_no: Optional[str] = None,
        invoice_date: Optional[date] = None,
        due_in_days: int = 30,
        idempotency_key: Optional[str] = None,
    ) -> FinalizeResult:
        """
        Finalize `cart` as an invoice.

        Every cart line is declared as already reserved. The cart is cleared
        once the invoice exists, including on a partial deduction: the sale
        is recorded and the failed items are reconciled on the server side.
        """
        subtotal = cart.subtotal
        gst = (subtotal * gst_percent / Decimal(100)).quantize(CENT, rounding=ROUND_HALF_UP)
        issued = invoice_date or date.today()
        payload = {
            "invoiceNo": invoice_no or generate_invoice_number(),
            "date": issued.isoformat(),
            "dueDate": (issued + timedelta(days=due_in_days)).isoformat(),
            "billTo": bill_to,
            "billAddress": bill_address,
            "shipTo": bill_to if ship_to is None else ship_to,
            "shipAddress": bill_address if ship_address is None else ship_address,
            "items": cart.invoice_items(reserved=True),
            "subtotal": str(subtotal),
            "gst": str(gst),
            "total": str(subtotal + gst),
        }
        result = self.finalize(payload, idempotency_key=idempotency_key)
        cart.clear()
        return result

    def list_invoices(self, limit: int = 10) -> List[Dict[str, Any]]:
        return self._request("GET", "/invoice", params={"limit": limit}).json()
