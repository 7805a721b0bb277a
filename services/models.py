"""
Shared record types for the logistics backend.

Orders from the commerce store (WooCommerce) and the warehouse store (Ongoing WMS)
both reduce to a SourceOrder for reconciliation; the remaining fields are kept for
the dashboard views and the mapping snapshots.
"""
from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Optional

MAPPING_TYPES = ("exact", "manual", "suggested")

DELIVERY_PENDING = "pending"
DELIVERY_PARTIAL = "partial"
DELIVERY_DELIVERED = "delivered"


@dataclass(frozen=True)
class SourceOrder:
    id: str
    order_number: str = ""
    customer_name: str = ""
    total_value: Optional[float] = None
    status: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class CommerceOrder(SourceOrder):
    woocommerce_order_id: Optional[int] = None
    currency: str = "NOK"
    date_created: Optional[str] = None
    delivery_date: Optional[str] = None
    delivery_type: Optional[str] = None
    shipping_method_title: Optional[str] = None
    billing_address: Optional[str] = None
    customer_note: Optional[str] = None
    total_items: int = 0
    priority: str = "low"
    permalink: Optional[str] = None


@dataclass(frozen=True)
class WarehouseOrder(SourceOrder):
    ongoing_order_id: Optional[int] = None
    goods_owner_order_id: Optional[str] = None
    status_number: Optional[int] = None
    customer_number: Optional[str] = None
    delivery_address: Optional[str] = None
    delivery_date: Optional[str] = None
    created_date: Optional[str] = None
    shipped_time: Optional[str] = None
    ordered_items: int = 0
    allocated_items: int = 0
    picked_items: int = 0
    way_of_delivery: Optional[str] = None
    order_remark: Optional[str] = None
    lines: list = field(default_factory=list, compare=False)


@dataclass(frozen=True)
class DeliveryDetails:
    delivered_quantity: float = 0.0
    delivery_date: Optional[str] = None
    status: str = DELIVERY_PENDING


@dataclass(frozen=True)
class OrderLine:
    id: str
    order_id: str
    product_id: Optional[int]
    name: str
    sku: Optional[str] = None
    quantity: float = 0
    total: Optional[float] = None
    delivered_quantity: float = 0.0
    delivery_date: Optional[str] = None
    delivery_status: str = DELIVERY_PENDING


@dataclass(frozen=True)
class Product:
    id: int
    name: str
    sku: Optional[str] = None
    stock_quantity: int = 0
    stock_status: str = "instock"
    manage_stock: bool = False
    price: str = "0"
    type: str = "simple"
    status: str = "publish"
    produkttype: Optional[str] = None


@dataclass(frozen=True)
class PurchaseOrderLine:
    id: str
    product_number: Optional[str]
    name: str
    quantity: float = 0
    line_price: float = 0.0
    line_total: float = 0.0


@dataclass(frozen=True)
class PurchaseOrder:
    id: str
    po_number: str
    supplier: str
    supplier_number: str
    status: str
    value: float
    currency: str = "NOK"
    priority: str = "low"
    order_date: Optional[str] = None
    expected_delivery: Optional[str] = None
    actual_delivery: Optional[str] = None
    items: float = 0
    lines: list = field(default_factory=list, compare=False)


def _order_dict(order: Any) -> dict[str, Any]:
    if isinstance(order, SourceOrder):
        return order.to_dict()
    return dict(order)


@dataclass(frozen=True)
class MappingCandidate:
    source_order_a: SourceOrder
    source_order_b: SourceOrder
    confidence: int
    match_reason: str

    def as_dict(self) -> dict[str, Any]:
        return {
            "commerce_order": _order_dict(self.source_order_a),
            "warehouse_order": _order_dict(self.source_order_b),
            "confidence": self.confidence,
            "match_reason": self.match_reason,
        }


@dataclass
class OrderMapping:
    id: str
    commerce_order_id: str
    warehouse_order_id: str
    mapping_type: str
    confidence: int
    is_active: bool = True
    notes: Optional[str] = None
    mapped_by: Optional[str] = None
    mapped_at: Optional[str] = None
    updated_at: Optional[str] = None
    customer_name: str = ""
    order_number: str = ""
    # snapshots taken when the mapping was created
    commerce_order: dict = field(default_factory=dict)
    warehouse_order: dict = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class RiskAssessment:
    order_id: str
    order_number: str
    customer_name: str
    status: Optional[str]
    delivery_date: str
    days_overdue: int
    risk_level: str
    backordered_products: list = field(default_factory=list)
    reason: str = ""
