from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from auth.vendor_auth import basic_auth_header, json_headers
from config import OngoingWmsConfig
from services import order_store
from services.db import record_sync_summary
from services.errors import VendorApiError, VendorNotFoundError
from services.http_client import get_json, normalize_base_url
from services.models import WarehouseOrder

LOGGER = logging.getLogger(__name__)
VENDOR = "Ongoing WMS"
DEFAULT_START_ORDER_ID = 214000
DEFAULT_END_ORDER_ID = 217000
DEFAULT_LIMIT = 100
BATCH_SIZE = 10

OrderFetcher = Callable[[int], Optional[dict]]


class OngoingWmsClient:
    def __init__(self, config: OngoingWmsConfig):
        self.base_url = normalize_base_url(config.base_url)
        self.goods_owner_id = config.goods_owner_id
        self.headers = json_headers(basic_auth_header(config.username, config.password))

    def _get(self, path: str, params: Optional[dict] = None) -> Any:
        return get_json(f"{self.base_url}{path}", vendor=VENDOR, headers=self.headers, params=params)

    def get_order(self, order_id: int) -> Optional[dict]:
        """One order by id, None when Ongoing answers 404."""
        try:
            return self._get(f"/orders/{order_id}")
        except VendorNotFoundError:
            return None

    def get_order_statuses(self) -> list[dict]:
        payload = self._get("/orders/statuses") or {}
        return payload.get("orderStatuses") or []

    def get_purchase_order_statuses(self) -> list[dict]:
        payload = self._get("/purchaseOrders/statuses") or {}
        return payload.get("purchaseOrderStatuses") or payload.get("orderStatuses") or []


def warehouse_order_id(ongoing_order_id: Any) -> str:
    return f"ow-{ongoing_order_id}"


def _address(consignee: dict) -> Optional[str]:
    address = consignee.get("address1") or ""
    postcode = consignee.get("postCode") or ""
    city = consignee.get("city") or ""
    if not (address or postcode or city):
        return None
    return f"{address}, {postcode} {city}".strip()


def _as_number(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def normalize_order_line(line: dict) -> dict[str, Any]:
    article = line.get("article") or {}
    prices = line.get("prices") or {}
    return {
        "id": line.get("id"),
        "row_number": line.get("rowNumber"),
        "article_number": article.get("articleNumber"),
        "article_name": article.get("articleName"),
        "product_code": article.get("productCode"),
        "ordered_quantity": line.get("orderedNumberOfItems") or 0,
        "allocated_quantity": line.get("allocatedNumberOfItems") or 0,
        "picked_quantity": line.get("pickedNumberOfItems") or 0,
        "packed_quantity": line.get("packedNumberOfItems") or 0,
        "line_price": prices.get("linePrice"),
        "customer_line_price": prices.get("customerLinePrice"),
        "currency_code": prices.get("currencyCode"),
        "delivery_date": line.get("deliveryDate"),
        "comment": line.get("comment"),
    }


def normalize_order(order: dict) -> WarehouseOrder:
    """Raw Ongoing order -> WarehouseOrder. Raises KeyError when orderInfo/orderId is missing."""
    info = order["orderInfo"]
    ongoing_id = info["orderId"]
    consignee = order.get("consignee") or {}
    status = info.get("orderStatus") or {}
    return WarehouseOrder(
        id=warehouse_order_id(ongoing_id),
        order_number=str(info.get("orderNumber") or ""),
        customer_name=(consignee.get("name") or "").strip(),
        total_value=_as_number(info.get("customerPrice")),
        status=status.get("text"),
        ongoing_order_id=ongoing_id,
        goods_owner_order_id=info.get("goodsOwnerOrderId"),
        status_number=status.get("number"),
        customer_number=consignee.get("customerNumber"),
        delivery_address=_address(consignee),
        delivery_date=info.get("deliveryDate"),
        created_date=info.get("createdDate"),
        shipped_time=info.get("shippedTime"),
        ordered_items=info.get("orderedNumberOfItems") or 0,
        allocated_items=info.get("allocatedNumberOfItems") or 0,
        picked_items=info.get("pickedNumberOfItems") or 0,
        way_of_delivery=info.get("wayOfDelivery"),
        order_remark=info.get("orderRemark"),
        lines=[normalize_order_line(line) for line in order.get("orderLines") or []],
    )


def _status_number(raw: dict) -> Any:
    info = raw.get("orderInfo") or {}
    return (info.get("orderStatus") or {}).get("number")


def sync_orders_by_status(
    status_number: int,
    config: Optional[OngoingWmsConfig] = None,
    *,
    start_id: int = DEFAULT_START_ORDER_ID,
    end_id: int = DEFAULT_END_ORDER_ID,
    limit: int = DEFAULT_LIMIT,
    fetcher: Optional[OrderFetcher] = None,
) -> dict[str, Any]:
    """
    Probe order ids start_id..end_id in batches and store orders whose status number
    matches, stopping once `limit` orders were stored. Missing ids are skipped; failing
    ids are logged and reported.
    """
    if start_id > end_id:
        raise ValueError("start_id must not be greater than end_id")
    if limit < 1:
        raise ValueError("limit must be at least 1")
    if fetcher is None:
        fetcher = OngoingWmsClient(config or OngoingWmsConfig.from_env()).get_order

    order_store.ensure_order_store_schema()
    synced: list[dict[str, Any]] = []
    errors: list[dict[str, Any]] = []
    probed = 0

    for batch_start in range(start_id, end_id + 1, BATCH_SIZE):
        if len(synced) >= limit:
            break
        batch_end = min(batch_start + BATCH_SIZE - 1, end_id)
        for ongoing_id in range(batch_start, batch_end + 1):
            if len(synced) >= limit:
                break
            probed += 1
            try:
                raw = fetcher(ongoing_id)
            except VendorApiError as exc:
                LOGGER.warning("[Ongoing] Order %s fetch failed: %s", ongoing_id, exc)
                errors.append({"id": ongoing_id, "error": str(exc)})
                continue
            if not isinstance(raw, dict):
                continue
            if _status_number(raw) != status_number:
                continue
            try:
                order = normalize_order(raw)
            except (KeyError, TypeError, ValueError, AttributeError) as exc:
                LOGGER.warning("[Ongoing] Skipping malformed order %s: %s", ongoing_id, exc)
                errors.append({"id": ongoing_id, "error": str(exc)})
                continue
            order_store.upsert_warehouse_order(order)
            synced.append({"id": order.id, "order_number": order.order_number, "status": order.status})
        LOGGER.debug("[Ongoing] Probed ids %s-%s, synced so far=%s", batch_start, batch_end, len(synced))

    summary = {
        "status": status_number,
        "probed": probed,
        "synced": len(synced),
        "orders": synced,
        "errors": errors,
        "finished_at": datetime.now(timezone.utc).replace(microsecond=0).isoformat(),
    }
    record_sync_summary("ongoing_orders", summary)
    LOGGER.info("[Ongoing] Status %s: synced=%s probed=%s errors=%s", status_number, len(synced), probed, len(errors))
    return summary
