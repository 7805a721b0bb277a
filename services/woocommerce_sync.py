from __future__ import annotations

import logging
from datetime import date, datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional

from auth.vendor_auth import basic_auth_header, json_headers
from config import WOOCOMMERCE_SYNC_STATUSES, WooCommerceConfig
from services import order_store
from services.db import record_sync_summary
from services.delivery_status import meta_value, parse_delivery_details, parse_dotted_date
from services.http_client import get_json, normalize_base_url
from services.models import CommerceOrder, OrderLine, Product

LOGGER = logging.getLogger(__name__)
VENDOR = "WooCommerce"
ORDERS_PATH = "/wp-json/wc/v3/orders"
PRODUCTS_PATH = "/wp-json/wc/v3/products"
PER_PAGE = 100
MAX_PAGES = 100
HIGH_PRIORITY_VALUE = 1000
MEDIUM_PRIORITY_VALUE = 500

FetchFunc = Callable[..., List[Dict[str, Any]]]


class WooCommerceClient:
    """Read-only client for the WooCommerce REST API (v3)."""

    def __init__(self, config: WooCommerceConfig):
        self.store_url = normalize_base_url(config.store_url)
        self.headers = json_headers(basic_auth_header(config.consumer_key, config.consumer_secret))

    def _fetch_paged(self, path: str, params: dict) -> list[dict]:
        items: list[dict] = []
        for page in range(1, MAX_PAGES + 1):
            batch = get_json(
                f"{self.store_url}{path}",
                vendor=VENDOR,
                headers=self.headers,
                params={**params, "per_page": PER_PAGE, "page": page},
            )
            if not isinstance(batch, list):
                LOGGER.warning("[WooSync] Unexpected payload on %s page %s: %s", path, page, type(batch).__name__)
                break
            items.extend(batch)
            LOGGER.info("[WooSync] %s page %s -> %s records", path, page, len(batch))
            if len(batch) < PER_PAGE:
                break
        else:
            LOGGER.warning("[WooSync] Stopped %s after %s pages", path, MAX_PAGES)
        return items

    def fetch_orders(
        self,
        statuses: Optional[Iterable[str]] = None,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
    ) -> list[dict]:
        params: dict[str, Any] = {
            "status": ",".join(statuses or WOOCOMMERCE_SYNC_STATUSES),
            "orderby": "date",
            "order": "desc",
        }
        params.update(date_range_params(start_date, end_date))
        return self._fetch_paged(ORDERS_PATH, params)

    def fetch_products(self) -> list[dict]:
        return self._fetch_paged(PRODUCTS_PATH, {"orderby": "id", "order": "asc"})


def date_range_params(start_date: Optional[str], end_date: Optional[str]) -> dict[str, str]:
    """Inclusive YYYY-MM-DD range -> WooCommerce after/before filters."""
    params: dict[str, str] = {}
    start = date.fromisoformat(start_date) if start_date else None
    end = date.fromisoformat(end_date) if end_date else None
    if start and end and start > end:
        raise ValueError("start_date must not be after end_date")
    if start:
        params["after"] = f"{start.isoformat()}T00:00:00"
    if end:
        params["before"] = f"{end.isoformat()}T23:59:59"
    return params


# ----------------------------
# Field rules
# ----------------------------
def commerce_order_id(woocommerce_order_id: Any) -> str:
    return f"wc-{woocommerce_order_id}"


def customer_name_for(order: dict) -> str:
    """Billing company, else "first last", else "Customer #<customer_id>"."""
    billing = order.get("billing") or {}
    company = (billing.get("company") or "").strip()
    if company:
        return company
    full = f"{billing.get('first_name') or ''} {billing.get('last_name') or ''}".strip()
    if full:
        return full
    return f"Customer #{order.get('customer_id', 0)}"


def billing_address_for(order: dict) -> Optional[str]:
    billing = order.get("billing") or {}
    address = (billing.get("address_1") or "").strip()
    postcode = (billing.get("postcode") or "").strip()
    city = (billing.get("city") or "").strip()
    if address and postcode and city:
        return f"{address}\n{postcode} {city}"
    return None


def shipping_method_title_for(order: dict) -> Optional[str]:
    lines = order.get("shipping_lines") or []
    if lines and isinstance(lines[0], dict):
        return lines[0].get("method_title") or None
    return None


def order_total(order: dict) -> Optional[float]:
    try:
        return float(order.get("total"))
    except (TypeError, ValueError):
        return None


def priority_for(total_value: Optional[float]) -> str:
    value = total_value or 0
    if value > HIGH_PRIORITY_VALUE:
        return "high"
    if value > MEDIUM_PRIORITY_VALUE:
        return "medium"
    return "low"


def permalink_for(store_url: Optional[str], woocommerce_order_id: Any) -> Optional[str]:
    if not store_url:
        return None
    return f"{store_url.rstrip('/')}/wp-admin/post.php?post={woocommerce_order_id}&action=edit"


def produkttype_for(product: dict) -> Optional[str]:
    """Taxonomy list first, then the produkttype / _produkttype meta entry."""
    taxonomy = product.get("produkttype")
    if isinstance(taxonomy, list) and taxonomy:
        first = taxonomy[0]
        if isinstance(first, dict) and first.get("name"):
            return first["name"]
    for entry in product.get("meta_data") or []:
        if not isinstance(entry, dict) or entry.get("key") not in ("produkttype", "_produkttype"):
            continue
        value = entry.get("value")
        if isinstance(value, list) and value:
            first = value[0]
            return first.get("name") if isinstance(first, dict) else None
        if isinstance(value, str) and value:
            return value
        return None
    return None


def _as_float(value: Any, default: Optional[float] = None) -> Optional[float]:
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def normalize_line_item(order_id: str, item: dict) -> OrderLine:
    quantity = _as_float(item.get("quantity"), 0.0)
    delivery = parse_delivery_details(item.get("meta_data"), quantity)
    return OrderLine(
        id=f"{order_id}-{item['id']}",
        order_id=order_id,
        product_id=item.get("product_id") or None,
        name=item.get("name") or "",
        sku=item.get("sku") or None,
        quantity=quantity,
        total=_as_float(item.get("total")),
        delivered_quantity=delivery.delivered_quantity,
        delivery_date=delivery.delivery_date,
        delivery_status=delivery.status,
    )


def normalize_order(order: dict, store_url: Optional[str] = None) -> tuple[CommerceOrder, list[OrderLine]]:
    """Raw WooCommerce order -> (CommerceOrder, lines). Raises KeyError when the id is missing."""
    woo_id = order["id"]
    order_id = commerce_order_id(woo_id)
    lines = [normalize_line_item(order_id, item) for item in order.get("line_items") or []]
    total_value = order_total(order)
    meta = order.get("meta_data")
    delivery_type = meta_value(meta, "_delivery_type")
    commerce = CommerceOrder(
        id=order_id,
        order_number=str(order.get("number") or woo_id),
        customer_name=customer_name_for(order),
        total_value=total_value,
        status=order.get("status"),
        woocommerce_order_id=woo_id,
        currency=order.get("currency") or "NOK",
        date_created=order.get("date_created"),
        delivery_date=parse_dotted_date(meta_value(meta, "_delivery_date")),
        delivery_type=delivery_type if isinstance(delivery_type, str) and delivery_type else None,
        shipping_method_title=shipping_method_title_for(order),
        billing_address=billing_address_for(order),
        customer_note=order.get("customer_note") or None,
        total_items=int(sum(line.quantity for line in lines)),
        priority=priority_for(total_value),
        permalink=permalink_for(store_url, woo_id),
    )
    return commerce, lines


def normalize_product(product: dict) -> Product:
    return Product(
        id=int(product["id"]),
        name=product.get("name") or "",
        sku=product.get("sku") or None,
        stock_quantity=int(product.get("stock_quantity") or 0),
        stock_status=product.get("stock_status") or "instock",
        manage_stock=bool(product.get("manage_stock") or False),
        price=str(product.get("price") or "0"),
        type=product.get("type") or "simple",
        status=product.get("status") or "publish",
        produkttype=produkttype_for(product),
    )


# ----------------------------
# Sync jobs
# ----------------------------
def _now_iso() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat()


def sync_orders(
    config: Optional[WooCommerceConfig] = None,
    *,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    statuses: Optional[Iterable[str]] = None,
    fetcher: Optional[FetchFunc] = None,
) -> dict[str, Any]:
    """
    Fetch orders from WooCommerce and upsert them with their lines.
    Malformed orders are logged and skipped; the summary lists them under errors.
    """
    store_url: Optional[str] = None
    if fetcher is None:
        client = WooCommerceClient(config or WooCommerceConfig.from_env())
        store_url = client.store_url
        fetcher = client.fetch_orders
    elif config is not None:
        store_url = normalize_base_url(config.store_url)

    order_store.ensure_order_store_schema()
    raw_orders = fetcher(statuses=statuses, start_date=start_date, end_date=end_date)

    synced = 0
    errors: list[dict[str, Any]] = []
    for raw in raw_orders:
        try:
            order, lines = normalize_order(raw, store_url)
        except (KeyError, TypeError, ValueError, AttributeError) as exc:
            LOGGER.warning("[WooSync] Skipping malformed order %s: %s", _raw_id(raw), exc)
            errors.append({"id": _raw_id(raw), "error": str(exc)})
            continue
        order_store.upsert_commerce_order(order, lines, raw)
        synced += 1

    summary = {
        "fetched": len(raw_orders),
        "synced": synced,
        "errors": errors,
        "start_date": start_date,
        "end_date": end_date,
        "finished_at": _now_iso(),
    }
    record_sync_summary("woocommerce_orders", summary)
    LOGGER.info("[WooSync] Orders synced=%s fetched=%s errors=%s", synced, len(raw_orders), len(errors))
    return summary


def sync_products(
    config: Optional[WooCommerceConfig] = None,
    *,
    fetcher: Optional[FetchFunc] = None,
) -> dict[str, Any]:
    if fetcher is None:
        fetcher = WooCommerceClient(config or WooCommerceConfig.from_env()).fetch_products

    order_store.ensure_order_store_schema()
    raw_products = fetcher()

    products: list[Product] = []
    errors: list[dict[str, Any]] = []
    for raw in raw_products:
        try:
            products.append(normalize_product(raw))
        except (KeyError, TypeError, ValueError, AttributeError) as exc:
            LOGGER.warning("[WooSync] Skipping malformed product %s: %s", _raw_id(raw), exc)
            errors.append({"id": _raw_id(raw), "error": str(exc)})
    synced = order_store.upsert_products(products)

    summary = {"fetched": len(raw_products), "synced": synced, "errors": errors, "finished_at": _now_iso()}
    record_sync_summary("woocommerce_products", summary)
    LOGGER.info("[WooSync] Products synced=%s fetched=%s errors=%s", synced, len(raw_products), len(errors))
    return summary


def _raw_id(raw: Any) -> Any:
    return raw.get("id") if isinstance(raw, dict) else None


# ----------------------------
# Webhook payloads
# ----------------------------
def apply_order_webhook(payload: dict, store_url: Optional[str] = None) -> str:
    """Upsert a single order pushed by a WooCommerce webhook; returns the stored id."""
    if not isinstance(payload, dict) or "id" not in payload:
        raise ValueError("Webhook payload is not an order")
    base_url = normalize_base_url(store_url) if store_url else None
    order_store.ensure_order_store_schema()
    try:
        order, lines = normalize_order(payload, base_url)
    except (KeyError, TypeError, ValueError, AttributeError) as exc:
        raise ValueError(f"Malformed order payload {_raw_id(payload)}: {exc!r}") from exc
    order_store.upsert_commerce_order(order, lines, payload)
    LOGGER.info("[WooSync] Webhook upserted order %s (status=%s)", order.id, order.status)
    return order.id


def apply_product_webhook(payload: dict) -> int:
    if not isinstance(payload, dict) or "id" not in payload:
        raise ValueError("Webhook payload is not a product")
    order_store.ensure_order_store_schema()
    try:
        product = normalize_product(payload)
    except (KeyError, TypeError, ValueError, AttributeError) as exc:
        raise ValueError(f"Malformed product payload {_raw_id(payload)}: {exc!r}") from exc
    order_store.upsert_products([product])
    LOGGER.info("[WooSync] Webhook upserted product %s (stock=%s)", product.id, product.stock_quantity)
    return product.id
