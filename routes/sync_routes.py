from __future__ import annotations

import logging
from typing import List, Optional

from fastapi import APIRouter, Body, FastAPI
from pydantic import BaseModel, ConfigDict, Field

from config import OngoingWmsConfig, RackbeatConfig, WooCommerceConfig
from routes.http_errors import to_http_exception
from services import ongoing_wms_sync, rackbeat_sync, woocommerce_sync
from services.db import get_sync_summaries

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/sync")
TAG = "Sync"


class WooOrdersSyncRequest(BaseModel):
    start_date: Optional[str] = Field(None, alias="startDate", description="YYYY-MM-DD")
    end_date: Optional[str] = Field(None, alias="endDate", description="YYYY-MM-DD")
    statuses: Optional[List[str]] = None

    model_config = ConfigDict(populate_by_name=True)


class OngoingSyncRequest(BaseModel):
    status: int = Field(..., description="Ongoing order status number")
    start_id: int = Field(ongoing_wms_sync.DEFAULT_START_ORDER_ID, alias="startId", ge=1)
    end_id: int = Field(ongoing_wms_sync.DEFAULT_END_ORDER_ID, alias="endId", ge=1)
    limit: int = Field(ongoing_wms_sync.DEFAULT_LIMIT, ge=1, le=1000)

    model_config = ConfigDict(populate_by_name=True)


class RackbeatSyncRequest(BaseModel):
    limit: int = Field(0, ge=0, description="0 means no limit")


@router.get("/status")
def sync_status() -> dict:
    try:
        return {"ok": True, "jobs": get_sync_summaries()}
    except Exception as exc:
        raise to_http_exception(exc, TAG)


@router.post("/woocommerce/orders")
def sync_woocommerce_orders(payload: WooOrdersSyncRequest = Body(default_factory=WooOrdersSyncRequest)) -> dict:
    try:
        result = woocommerce_sync.sync_orders(
            WooCommerceConfig.from_env(),
            start_date=payload.start_date,
            end_date=payload.end_date,
            statuses=payload.statuses,
        )
        return {"ok": True, **result}
    except Exception as exc:
        raise to_http_exception(exc, TAG)


@router.post("/woocommerce/products")
def sync_woocommerce_products() -> dict:
    try:
        return {"ok": True, **woocommerce_sync.sync_products(WooCommerceConfig.from_env())}
    except Exception as exc:
        raise to_http_exception(exc, TAG)


@router.post("/ongoing/orders")
def sync_ongoing_orders(payload: OngoingSyncRequest = Body(...)) -> dict:
    try:
        result = ongoing_wms_sync.sync_orders_by_status(
            payload.status,
            OngoingWmsConfig.from_env(),
            start_id=payload.start_id,
            end_id=payload.end_id,
            limit=payload.limit,
        )
        return {"ok": True, **result}
    except Exception as exc:
        raise to_http_exception(exc, TAG)


@router.get("/ongoing/statuses")
def ongoing_statuses() -> dict:
    try:
        client = ongoing_wms_sync.OngoingWmsClient(OngoingWmsConfig.from_env())
        return {
            "ok": True,
            "order_statuses": client.get_order_statuses(),
            "purchase_order_statuses": client.get_purchase_order_statuses(),
        }
    except Exception as exc:
        raise to_http_exception(exc, TAG)


@router.post("/rackbeat/purchase-orders")
def sync_rackbeat_purchase_orders(payload: RackbeatSyncRequest = Body(default_factory=RackbeatSyncRequest)) -> dict:
    try:
        return {"ok": True, **rackbeat_sync.sync_purchase_orders(RackbeatConfig.from_env(), limit=payload.limit)}
    except Exception as exc:
        raise to_http_exception(exc, TAG)


@router.post("/rackbeat/test-connection")
def rackbeat_test_connection() -> dict:
    try:
        return rackbeat_sync.RackbeatClient(RackbeatConfig.from_env()).test_connection()
    except Exception as exc:
        raise to_http_exception(exc, TAG)


def register_sync_routes(app: FastAPI) -> None:
    app.include_router(router)
