from __future__ import annotations

from datetime import date

import pytest

from services import order_store
from services.at_risk import (
    assess_order,
    backorder_severity,
    get_at_risk_orders,
    get_backordered_products,
    risk_level_for,
)
from services.models import CommerceOrder, OrderLine, Product

TODAY = date(2025, 7, 20)


def _order(woo_id, delivery_date, status="processing", total=1000.0):
    return CommerceOrder(
        id=f"wc-{woo_id}",
        order_number=str(woo_id),
        customer_name=f"Customer {woo_id}",
        total_value=total,
        status=status,
        woocommerce_order_id=woo_id,
        delivery_date=delivery_date,
    )


def _line(order_id, product_id, quantity=1):
    return OrderLine(id=f"{order_id}-{product_id}", order_id=order_id, product_id=product_id, name=f"P{product_id}", quantity=quantity)


def _seed():
    order_store.upsert_products(
        [
            Product(id=1, name="Backordered chair", stock_quantity=-5),
            Product(id=2, name="Table", stock_quantity=3),
            Product(id=3, name="Deep backorder", stock_quantity=-60),
        ]
    )
    rows = [
        (_order(100, "2025-06-10"), [1, 2]),  # 40 days late, backordered
        (_order(101, "2025-07-01"), [1]),  # 19 days late, backordered
        (_order(102, "2025-06-01"), [2]),  # late but in stock
        (_order(103, "2025-08-01"), [1]),  # not due yet
        (_order(104, "2025-06-01", status="completed"), [1]),  # status excluded
        (_order(105, None), [1]),  # no delivery date
        (_order(106, "2025-09-01"), [3]),  # deep backorder, future delivery
    ]
    for order, products in rows:
        order_store.upsert_commerce_order(order, [_line(order.id, pid) for pid in products])


@pytest.mark.parametrize("days, level", [(1, "low"), (14, "low"), (15, "medium"), (30, "medium"), (31, "high")])
def test_risk_levels(days, level):
    assert risk_level_for(days) == level


def test_assess_order_requires_overdue_and_backordered_line():
    order = _order(1, "2025-07-10")
    backordered = [{"product_id": 1, "stock_quantity": -2, "name": "X"}]
    in_stock = [{"product_id": 2, "stock_quantity": 0, "name": "Y"}]
    unknown = [{"product_id": 3, "stock_quantity": None, "name": "Z"}]

    assessment = assess_order(order, backordered, TODAY)
    assert assessment.days_overdue == 10
    assert assessment.risk_level == "low"
    assert assessment.reason == "Order is 10 days past delivery date and contains 1 backordered product(s)"

    assert assess_order(order, in_stock, TODAY) is None
    assert assess_order(order, unknown, TODAY) is None
    assert assess_order(_order(2, "2025-07-20"), backordered, TODAY) is None


def test_get_at_risk_orders_from_store(logistics_db):
    _seed()

    result = get_at_risk_orders(today=TODAY)

    assert result["total_orders"] == 6
    assert result["total_at_risk_orders"] == 2
    at_risk = result["at_risk_orders"]
    assert [a["order_id"] for a in at_risk] == ["wc-100", "wc-101"]
    assert at_risk[0]["risk_level"] == "high"
    assert at_risk[0]["days_overdue"] == 40
    assert at_risk[0]["reason"] == "Order is 40 days past delivery date and contains 1 backordered product(s)"
    assert at_risk[0]["backordered_products"][0]["product_id"] == 1
    assert at_risk[1]["risk_level"] == "medium"
    assert result["by_risk_level"] == {"high": 1, "medium": 1, "low": 0}


def test_get_at_risk_orders_status_filter(logistics_db):
    _seed()
    result = get_at_risk_orders(["completed"], today=TODAY)
    assert result["total_orders"] == 1
    assert [a["order_id"] for a in result["at_risk_orders"]] == ["wc-104"]


def test_backorder_severity_labels():
    assert backorder_severity(-100, False) == "Planned Backorder"
    assert backorder_severity(-50, True) == "Critical"
    assert backorder_severity(-20, True) == "High"
    assert backorder_severity(-10, True) == "Medium"
    assert backorder_severity(-1, True) == "Low"


def test_backordered_products_with_affected_orders(logistics_db):
    _seed()

    products = {p["id"]: p for p in get_backordered_products(today=TODAY)}

    assert set(products) == {1, 3}
    chair = products[1]
    assert {o["id"] for o in chair["affected_orders"]} == {"wc-100", "wc-101", "wc-103", "wc-104", "wc-105"}
    assert chair["severity"] == "Low"
    assert chair["total_order_value"] == 5000.0
    assert products[3]["severity"] == "Planned Backorder"
