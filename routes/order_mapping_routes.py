from __future__ import annotations

import logging
from typing import Literal, Optional

from fastapi import APIRouter, Body, FastAPI, HTTPException, Query
from pydantic import BaseModel, ConfigDict, Field

from routes.http_errors import to_http_exception
from services import order_mapping_store, order_store
from services.order_matching import MATCH_THRESHOLD, find_mapping_candidates

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/order-mappings")
TAG = "OrderMapping"

MappingType = Literal["exact", "manual", "suggested"]


class CreateMappingRequest(BaseModel):
    commerce_order_id: str = Field(..., alias="commerceOrderId", min_length=1)
    warehouse_order_id: str = Field(..., alias="warehouseOrderId", min_length=1)
    mapping_type: MappingType = Field("manual", alias="mappingType")
    confidence: int = Field(100, ge=0, le=100)
    notes: Optional[str] = None
    mapped_by: Optional[str] = Field(None, alias="mappedBy")

    model_config = ConfigDict(populate_by_name=True)


class UpdateMappingRequest(BaseModel):
    mapping_type: Optional[MappingType] = Field(None, alias="mappingType")
    confidence: Optional[int] = Field(None, ge=0, le=100)
    notes: Optional[str] = None
    mapped_by: Optional[str] = Field(None, alias="mappedBy")

    model_config = ConfigDict(populate_by_name=True)


@router.get("/candidates")
def list_candidates(
    threshold: int = Query(MATCH_THRESHOLD, ge=0, le=100),
    commerce_status: Optional[str] = Query(None, description="Comma-separated commerce statuses"),
    include_mapped: bool = Query(False),
) -> dict:
    """Score stored commerce orders against stored warehouse orders."""
    try:
        statuses = [s.strip() for s in commerce_status.split(",")] if commerce_status else None
        commerce_orders = order_store.list_commerce_orders(statuses)
        warehouse_orders = order_store.list_warehouse_orders()
        if not include_mapped:
            mapped = order_mapping_store.get_order_mappings()
            mapped_a = {m.commerce_order_id for m in mapped}
            mapped_b = {m.warehouse_order_id for m in mapped}
            commerce_orders = [o for o in commerce_orders if o.id not in mapped_a]
            warehouse_orders = [o for o in warehouse_orders if o.id not in mapped_b]
        candidates = find_mapping_candidates(commerce_orders, warehouse_orders, threshold=threshold)
        return {
            "ok": True,
            "threshold": threshold,
            "commerce_orders": len(commerce_orders),
            "warehouse_orders": len(warehouse_orders),
            "candidates": [c.as_dict() for c in candidates],
        }
    except HTTPException:
        raise
    except Exception as exc:
        raise to_http_exception(exc, TAG)


@router.get("")
def list_mappings() -> dict:
    try:
        mappings = order_mapping_store.get_order_mappings()
        return {"ok": True, "mappings": [m.to_dict() for m in mappings]}
    except Exception as exc:
        raise to_http_exception(exc, TAG)


@router.get("/lookup")
def lookup_mapping(
    commerce_order_id: Optional[str] = Query(None, alias="commerceOrderId"),
    warehouse_order_id: Optional[str] = Query(None, alias="warehouseOrderId"),
) -> dict:
    try:
        mapping = order_mapping_store.get_order_mapping(commerce_order_id, warehouse_order_id)
        return {"ok": True, "mapping": mapping.to_dict() if mapping else None}
    except Exception as exc:
        raise to_http_exception(exc, TAG)


@router.post("", status_code=201)
def create_mapping(payload: CreateMappingRequest = Body(...)) -> dict:
    try:
        mapping_id = order_mapping_store.create_order_mapping(
            payload.commerce_order_id,
            payload.warehouse_order_id,
            payload.mapping_type,
            payload.confidence,
            notes=payload.notes,
            mapped_by=payload.mapped_by,
        )
        return {"ok": True, "id": mapping_id}
    except Exception as exc:
        raise to_http_exception(exc, TAG)


@router.patch("/{mapping_id}")
def update_mapping(mapping_id: str, payload: UpdateMappingRequest = Body(...)) -> dict:
    updates = payload.model_dump(exclude_unset=True, by_alias=False)
    if not updates:
        raise HTTPException(status_code=400, detail="No fields to update")
    try:
        mapping = order_mapping_store.update_order_mapping(mapping_id, updates)
        return {"ok": True, "mapping": mapping.to_dict()}
    except Exception as exc:
        raise to_http_exception(exc, TAG)


@router.post("/{mapping_id}/deactivate")
def deactivate_mapping(mapping_id: str) -> dict:
    try:
        order_mapping_store.deactivate_order_mapping(mapping_id)
        return {"ok": True, "id": mapping_id}
    except Exception as exc:
        raise to_http_exception(exc, TAG)


def register_order_mapping_routes(app: FastAPI) -> None:
    try:
        order_store.ensure_order_store_schema()
        order_mapping_store.ensure_order_mappings_table()
    except Exception as exc:
        logger.warning("[OrderMapping] Failed to ensure tables on startup: %s", exc)
    app.include_router(router)
