from __future__ import annotations

import logging
from dataclasses import asdict
from datetime import date, datetime, timezone
from typing import Any, Iterable, Optional

import config
from services import order_store
from services.models import CommerceOrder, RiskAssessment

logger = logging.getLogger(__name__)

HIGH_RISK_DAYS = 30
MEDIUM_RISK_DAYS = 14
DEFAULT_LIMIT = 1000


def _parse_date(value: Any) -> Optional[date]:
    if not value:
        return None
    text = str(value).strip()
    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        return None


def risk_level_for(days_overdue: int) -> str:
    if days_overdue > HIGH_RISK_DAYS:
        return "high"
    if days_overdue > MEDIUM_RISK_DAYS:
        return "medium"
    return "low"


def _is_backordered(line: dict) -> bool:
    stock = line.get("stock_quantity")
    return stock is not None and stock < 0


def assess_order(order: CommerceOrder, lines: Iterable[dict], today: date) -> Optional[RiskAssessment]:
    """
    An order is at risk when its delivery date has passed AND at least one of its
    lines points at a product with negative stock.
    """
    delivery = _parse_date(order.delivery_date)
    if delivery is None or delivery >= today:
        return None
    backordered = [line for line in lines if _is_backordered(line)]
    if not backordered:
        return None
    days_overdue = (today - delivery).days
    return RiskAssessment(
        order_id=order.id,
        order_number=order.order_number,
        customer_name=order.customer_name,
        status=order.status,
        delivery_date=delivery.isoformat(),
        days_overdue=days_overdue,
        risk_level=risk_level_for(days_overdue),
        backordered_products=[
            {
                "product_id": line.get("product_id"),
                "name": line.get("name"),
                "sku": line.get("sku"),
                "stock_quantity": line.get("stock_quantity"),
                "quantity": line.get("quantity"),
            }
            for line in backordered
        ],
        reason=(
            f"Order is {days_overdue} days past delivery date and contains "
            f"{len(backordered)} backordered product(s)"
        ),
    )


def get_at_risk_orders(
    statuses: Optional[Iterable[str]] = None,
    *,
    today: Optional[date] = None,
    limit: int = DEFAULT_LIMIT,
) -> dict[str, Any]:
    status_list = list(statuses) if statuses else list(config.AT_RISK_STATUSES)
    today = today or datetime.now(timezone.utc).date()
    orders = order_store.list_commerce_orders(status_list)[:limit]

    assessments: list[RiskAssessment] = []
    for order in orders:
        assessment = assess_order(order, order_store.get_order_lines(order.id), today)
        if assessment is not None:
            assessments.append(assessment)
    assessments.sort(key=lambda a: a.days_overdue, reverse=True)

    by_level = {"high": 0, "medium": 0, "low": 0}
    for a in assessments:
        by_level[a.risk_level] += 1

    logger.info(
        "[AtRisk] %s of %s orders at risk (statuses=%s)", len(assessments), len(orders), status_list
    )
    return {
        "orders": [o.to_dict() for o in orders],
        "at_risk_orders": [asdict(a) for a in assessments],
        "total_orders": len(orders),
        "total_at_risk_orders": len(assessments),
        "by_risk_level": by_level,
        "timestamp": datetime.now(timezone.utc).replace(microsecond=0).isoformat(),
    }


def backorder_severity(stock_quantity: int, has_overdue_orders: bool) -> str:
    if not has_overdue_orders:
        return "Planned Backorder"
    if stock_quantity <= -50:
        return "Critical"
    if stock_quantity <= -20:
        return "High"
    if stock_quantity <= -10:
        return "Medium"
    return "Low"


def get_backordered_products(*, today: Optional[date] = None) -> list[dict[str, Any]]:
    """Products with negative stock, the stored orders that contain them and a severity label."""
    today = today or datetime.now(timezone.utc).date()
    out = []
    for product in order_store.list_products(stock_filter="backordered"):
        affected = []
        for order in order_store.list_orders_with_product(product.id):
            delivery = _parse_date(order.delivery_date)
            affected.append(
                {
                    "id": order.id,
                    "order_number": order.order_number,
                    "customer_name": order.customer_name,
                    "order_value": order.total_value,
                    "delivery_date": order.delivery_date,
                    "permalink": order.permalink,
                    "is_overdue": delivery is not None and delivery < today,
                }
            )
        has_overdue = any(o["is_overdue"] for o in affected)
        out.append(
            {
                **asdict(product),
                "affected_orders": affected,
                "total_order_value": sum(o["order_value"] or 0 for o in affected),
                "severity": backorder_severity(product.stock_quantity, has_overdue),
            }
        )
    return out
