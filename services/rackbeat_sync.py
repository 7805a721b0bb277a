from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from auth.vendor_auth import bearer_auth_header, json_headers
from config import RackbeatConfig
from services import order_store
from services.db import record_sync_summary
from services.errors import VendorApiError
from services.http_client import get_json, normalize_base_url
from services.models import PurchaseOrder, PurchaseOrderLine

LOGGER = logging.getLogger(__name__)
VENDOR = "Rackbeat"
PER_PAGE = 20
MAX_PAGES = 200
HIGH_PRIORITY_VALUE = 50000
MEDIUM_PRIORITY_VALUE = 20000
DEFAULT_CURRENCY = "NOK"

FetchFunc = Callable[..., List[Dict[str, Any]]]
LinesFunc = Callable[[Any], List[Dict[str, Any]]]


class RackbeatClient:
    def __init__(self, config: RackbeatConfig):
        self.base_url = normalize_base_url(config.base_url)
        self.headers = json_headers(bearer_auth_header(config.api_key))

    def _page(self, page: int) -> dict:
        payload = get_json(
            f"{self.base_url}/purchase-orders",
            vendor=VENDOR,
            headers=self.headers,
            params={"page": page, "per_page": PER_PAGE},
        )
        return payload if isinstance(payload, dict) else {}

    def fetch_open_purchase_orders(self, limit: int = 0) -> list[dict]:
        """
        Page through purchase orders, skipping received ones. limit=0 means no limit.
        """
        orders: list[dict] = []
        page = 1
        while page <= MAX_PAGES:
            if limit and len(orders) >= limit:
                break
            payload = self._page(page)
            if isinstance(payload.get("data"), list):
                batch = payload["data"]
                orders.extend(po for po in batch if not po.get("is_received"))
                pagination = (payload.get("meta") or {}).get("pagination")
                if pagination:
                    if (pagination.get("current_page") or 0) >= (pagination.get("last_page") or 0):
                        break
                elif not batch:
                    break
            elif isinstance(payload.get("purchase_orders"), list):
                batch = payload["purchase_orders"]
                orders.extend(po for po in batch if not po.get("is_received"))
                if not batch:
                    break
            else:
                LOGGER.warning("[Rackbeat] Unrecognised payload on page %s: keys=%s", page, sorted(payload))
                break
            LOGGER.info("[Rackbeat] Page %s -> %s open purchase orders so far", page, len(orders))
            page += 1
        if limit:
            orders = orders[:limit]
        return orders

    def fetch_lines(self, po_number: Any) -> list[dict]:
        """Lines of one purchase order; an API failure yields no lines."""
        try:
            payload = get_json(
                f"{self.base_url}/purchase-orders/{po_number}/lines",
                vendor=VENDOR,
                headers=self.headers,
            )
        except VendorApiError as exc:
            LOGGER.warning("[Rackbeat] Lines for PO %s unavailable: %s", po_number, exc)
            return []
        if isinstance(payload, dict):
            for key in ("purchase_order_lines", "lines", "data"):
                if isinstance(payload.get(key), list):
                    return payload[key]
            return []
        return payload if isinstance(payload, list) else []

    def test_connection(self) -> dict[str, Any]:
        payload = self._page(1)
        batch = payload.get("data") or payload.get("purchase_orders") or []
        return {"ok": True, "sample_count": len(batch)}


# ----------------------------
# Field rules
# ----------------------------
def status_for(po: dict) -> str:
    if po.get("is_received"):
        return "delivered"
    status = str(po.get("status") or "").lower()
    if any(word in status for word in ("transit", "shipped", "sent")):
        return "in-transit"
    if any(word in status for word in ("delayed", "overdue")):
        return "delayed"
    return "pending"


def _number(value: Any) -> float:
    try:
        return float(value or 0)
    except (TypeError, ValueError):
        return 0.0


def value_for(po: dict) -> float:
    for key in ("total_subtotal", "total_amount", "total_price_excl_vat"):
        value = _number(po.get(key))
        if value:
            return value
    return 0.0


def priority_for(value: float) -> str:
    if value > HIGH_PRIORITY_VALUE:
        return "high"
    if value > MEDIUM_PRIORITY_VALUE:
        return "medium"
    return "low"


def supplier_name_for(po: dict) -> str:
    supplier = po.get("supplier") if isinstance(po.get("supplier"), dict) else {}
    return supplier.get("name") or po.get("supplier_name") or "Unknown Supplier"


def supplier_number_for(po: dict) -> str:
    return str(po.get("supplier_number") or f"S-{po.get('supplier_id')}")


def _date_part(value: Any) -> Optional[str]:
    if not value:
        return None
    return str(value)[:10]


def normalize_line(po_id: str, line: dict, index: int) -> PurchaseOrderLine:
    return PurchaseOrderLine(
        id=f"{po_id}-{line.get('id', index)}",
        product_number=line.get("supplier_product_number") or line.get("product_number"),
        name=line.get("name") or "",
        quantity=_number(line.get("quantity")),
        line_price=_number(line.get("line_price")),
        line_total=_number(line.get("line_total")),
    )


def normalize_purchase_order(po: dict, lines: Optional[list[dict]] = None) -> PurchaseOrder:
    po_number = str(po["number"]) if po.get("number") else f"PO-{po['id']}"
    po_id = f"rb-{po_number}"
    po_lines = [normalize_line(po_id, line, i) for i, line in enumerate(lines or [])]
    value = value_for(po)
    return PurchaseOrder(
        id=po_id,
        po_number=po_number,
        supplier=supplier_name_for(po),
        supplier_number=supplier_number_for(po),
        status=status_for(po),
        value=value,
        currency=po.get("currency") or DEFAULT_CURRENCY,
        priority=priority_for(value),
        order_date=_date_part(po.get("created_at") or po.get("order_date")),
        expected_delivery=_date_part(po.get("preferred_delivery_date") or po.get("expected_delivery_date")),
        actual_delivery=_date_part(po.get("actual_delivery_date")),
        items=sum(line.quantity for line in po_lines),
        lines=po_lines,
    )


def sync_purchase_orders(
    config: Optional[RackbeatConfig] = None,
    *,
    limit: int = 0,
    fetcher: Optional[FetchFunc] = None,
    lines_fetcher: Optional[LinesFunc] = None,
) -> dict[str, Any]:
    if fetcher is None or lines_fetcher is None:
        client = RackbeatClient(config or RackbeatConfig.from_env())
        fetcher = fetcher or client.fetch_open_purchase_orders
        lines_fetcher = lines_fetcher or client.fetch_lines

    order_store.ensure_order_store_schema()
    raw_orders = fetcher(limit=limit)

    synced = 0
    errors: list[dict[str, Any]] = []
    for raw in raw_orders:
        try:
            number = raw.get("number") or raw.get("id")
            po = normalize_purchase_order(raw, lines_fetcher(number))
        except (KeyError, TypeError, ValueError, AttributeError) as exc:
            raw_id = raw.get("id") if isinstance(raw, dict) else None
            LOGGER.warning("[Rackbeat] Skipping malformed purchase order %s: %s", raw_id, exc)
            errors.append({"id": raw_id, "error": str(exc)})
            continue
        order_store.upsert_purchase_order(po)
        synced += 1

    summary = {
        "fetched": len(raw_orders),
        "synced": synced,
        "errors": errors,
        "finished_at": datetime.now(timezone.utc).replace(microsecond=0).isoformat(),
    }
    record_sync_summary("rackbeat_purchase_orders", summary)
    LOGGER.info("[Rackbeat] Purchase orders synced=%s fetched=%s errors=%s", synced, len(raw_orders), len(errors))
    return summary
