from __future__ import annotations

import logging
from dataclasses import asdict
from typing import List, Optional

from fastapi import APIRouter, Body, FastAPI, HTTPException, Query
from pydantic import BaseModel, Field

from config import ORDER_STATUSES_TO_KEEP
from routes.http_errors import to_http_exception
from services import order_store
from services.at_risk import get_at_risk_orders, get_backordered_products

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")
TAG = "Orders"


class CleanupRequest(BaseModel):
    statuses_to_keep: List[str] = Field(default_factory=lambda: list(ORDER_STATUSES_TO_KEEP))


def _split(value: Optional[str]) -> Optional[list[str]]:
    if not value:
        return None
    return [part.strip() for part in value.split(",") if part.strip()]


@router.get("/commerce-orders")
def list_commerce_orders(status: Optional[str] = Query(None, description="Comma-separated statuses")) -> dict:
    try:
        orders = order_store.list_commerce_orders(_split(status))
        return {"ok": True, "count": len(orders), "orders": [o.to_dict() for o in orders]}
    except Exception as exc:
        raise to_http_exception(exc, TAG)


@router.get("/commerce-orders/{order_id}/lines")
def list_order_lines(order_id: str) -> dict:
    try:
        if order_store.get_commerce_order(order_id) is None:
            raise HTTPException(status_code=404, detail=f"Order not found: {order_id}")
        return {"ok": True, "order_id": order_id, "lines": order_store.get_order_lines(order_id)}
    except Exception as exc:
        raise to_http_exception(exc, TAG)


@router.post("/commerce-orders/cleanup")
def cleanup_commerce_orders(payload: CleanupRequest = Body(default_factory=CleanupRequest)) -> dict:
    """Delete stored commerce orders whose status is not in statuses_to_keep."""
    try:
        return {"ok": True, **order_store.prune_commerce_orders(payload.statuses_to_keep)}
    except Exception as exc:
        raise to_http_exception(exc, TAG)


@router.get("/warehouse-orders")
def list_warehouse_orders(status_number: Optional[int] = Query(None)) -> dict:
    try:
        orders = order_store.list_warehouse_orders(status_number)
        return {"ok": True, "count": len(orders), "orders": [o.to_dict() for o in orders]}
    except Exception as exc:
        raise to_http_exception(exc, TAG)


@router.get("/orders/at-risk")
def at_risk_orders(
    status: Optional[str] = Query(None, description="Comma-separated statuses"),
    limit: int = Query(1000, ge=1, le=10000),
) -> dict:
    try:
        return {"ok": True, **get_at_risk_orders(_split(status), limit=limit)}
    except Exception as exc:
        raise to_http_exception(exc, TAG)


@router.get("/products")
def list_products(
    stock: Optional[str] = Query(None, description="in-stock | low-stock | out-of-stock | backordered"),
    produkttype: Optional[str] = Query(None),
) -> dict:
    try:
        products = order_store.list_products(stock_filter=stock, produkttype=produkttype)
        return {"ok": True, "count": len(products), "products": [asdict(p) for p in products]}
    except Exception as exc:
        raise to_http_exception(exc, TAG)


@router.get("/products/backordered")
def backordered_products() -> dict:
    try:
        products = get_backordered_products()
        return {"ok": True, "count": len(products), "products": products}
    except Exception as exc:
        raise to_http_exception(exc, TAG)


@router.get("/purchase-orders")
def list_purchase_orders(status: Optional[str] = Query(None)) -> dict:
    try:
        orders = order_store.list_purchase_orders(status)
        return {"ok": True, "count": len(orders), "purchase_orders": orders}
    except Exception as exc:
        raise to_http_exception(exc, TAG)


def register_orders_routes(app: FastAPI) -> None:
    try:
        order_store.ensure_order_store_schema()
    except Exception as exc:
        logger.warning("[Orders] Failed to ensure tables on startup: %s", exc)
    app.include_router(router)
