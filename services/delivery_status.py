from __future__ import annotations

import logging
import re
from datetime import datetime
from typing import Any, Optional

from services.models import (
    DELIVERY_DELIVERED,
    DELIVERY_PARTIAL,
    DELIVERY_PENDING,
    DeliveryDetails,
)

logger = logging.getLogger(__name__)

DELIVERY_META_KEY = "partial_delivery_item_details"
_PREFIX_RE = re.compile(r"^_,\s*")
_DATE_RE = re.compile(r"^\d{2}\.\d{2}\.\d{4}$")


def meta_value(meta: Any, key: str) -> Any:
    """Read a key from a meta dict or a WooCommerce [{"key": ..., "value": ...}] list."""
    if isinstance(meta, dict):
        return meta.get(key)
    if isinstance(meta, list):
        for entry in meta:
            if isinstance(entry, dict) and entry.get("key") == key:
                return entry.get("value")
    return None


def parse_dotted_date(value: Any) -> Optional[str]:
    """DD.MM.YYYY -> YYYY-MM-DD, None when the text is not a valid date."""
    if not isinstance(value, str):
        return None
    text = value.strip()
    if not _DATE_RE.match(text):
        return None
    try:
        return datetime.strptime(text, "%d.%m.%Y").date().isoformat()
    except ValueError:
        return None


def parse_delivered_quantity(text: str) -> float:
    # comma is the decimal separator: "1,000" is one unit
    try:
        return float(text.strip().replace(",", "."))
    except ValueError:
        return 0.0


def parse_delivery_entry(entry: str) -> tuple[float, Optional[str]]:
    """
    Parse one detail string such as "_, 1,000, 16.06.2025" into (quantity, ISO date).
    Unparsable parts come back as 0 / None.
    """
    text = _PREFIX_RE.sub("", entry.strip())
    if "," not in text:
        return 0.0, None
    quantity_part, _, date_part = text.rpartition(",")
    return parse_delivered_quantity(quantity_part), parse_dotted_date(date_part)


def delivery_status_for(delivered_quantity: float, ordered_quantity: Any) -> str:
    if not delivered_quantity:
        return DELIVERY_PENDING
    try:
        ordered = float(ordered_quantity or 0)
    except (TypeError, ValueError):
        ordered = 0.0
    if delivered_quantity >= ordered:
        return DELIVERY_DELIVERED
    return DELIVERY_PARTIAL


def parse_delivery_details(meta: Any, ordered_quantity: Any) -> DeliveryDetails:
    """
    Delivery progress of one order line from its metadata. Only the first detail
    entry is used; lines without details are pending.
    """
    details = meta_value(meta, DELIVERY_META_KEY)
    if isinstance(details, str):
        details = [details]
    if not isinstance(details, list) or not details:
        return DeliveryDetails()
    first = details[0]
    if not isinstance(first, str) or not first.strip():
        return DeliveryDetails()
    quantity, delivery_date = parse_delivery_entry(first)
    return DeliveryDetails(
        delivered_quantity=quantity,
        delivery_date=delivery_date,
        status=delivery_status_for(quantity, ordered_quantity),
    )
