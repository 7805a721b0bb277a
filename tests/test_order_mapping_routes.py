from __future__ import annotations

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from routes import order_mapping_routes, orders_routes
from services import order_store
from services.models import CommerceOrder, WarehouseOrder


def _build_app() -> FastAPI:
    app = FastAPI()
    app.include_router(order_mapping_routes.router)
    app.include_router(orders_routes.router)
    return app


@pytest.fixture
def client(logistics_db):
    order_store.upsert_commerce_order(
        CommerceOrder(id="wc-1001", order_number="1001", customer_name="Acme AS", total_value=1000.0, status="processing"),
        [],
    )
    order_store.upsert_commerce_order(
        CommerceOrder(id="wc-1002", order_number="1002", customer_name="Bob", total_value=10.0, status="completed"),
        [],
    )
    order_store.upsert_warehouse_order(
        WarehouseOrder(id="ow-1", order_number="1001", customer_name="Acme Corporation", total_value=950.0, ongoing_order_id=1)
    )
    order_store.upsert_warehouse_order(
        WarehouseOrder(id="ow-2", order_number="X9", customer_name="Alice", total_value=10000.0, ongoing_order_id=2)
    )
    return TestClient(_build_app())


def test_candidates_endpoint_scores_stored_orders(client):
    resp = client.get("/api/order-mappings/candidates")

    assert resp.status_code == 200
    body = resp.json()
    assert body["commerce_orders"] == 2
    assert body["warehouse_orders"] == 2
    assert len(body["candidates"]) == 1
    cand = body["candidates"][0]
    assert cand["confidence"] == 90
    assert cand["commerce_order"]["id"] == "wc-1001"
    assert cand["warehouse_order"]["id"] == "ow-1"
    assert cand["match_reason"] == "Order number match; Customer name partial match; Total value similar; "


def test_create_list_lookup_update_deactivate(client):
    created = client.post(
        "/api/order-mappings",
        json={"commerceOrderId": "wc-1001", "warehouseOrderId": "ow-1", "mappingType": "suggested", "confidence": 90},
    )
    assert created.status_code == 201
    mapping_id = created.json()["id"]

    listed = client.get("/api/order-mappings").json()["mappings"]
    assert [m["id"] for m in listed] == [mapping_id]
    assert listed[0]["commerce_order"]["customer_name"] == "Acme AS"

    found = client.get("/api/order-mappings/lookup", params={"warehouseOrderId": "ow-1"}).json()
    assert found["mapping"]["id"] == mapping_id

    patched = client.patch(f"/api/order-mappings/{mapping_id}", json={"notes": "verified", "mappingType": "exact"})
    assert patched.status_code == 200
    assert patched.json()["mapping"]["mapping_type"] == "exact"
    assert patched.json()["mapping"]["notes"] == "verified"

    # mapped orders drop out of the candidate list unless asked for
    assert client.get("/api/order-mappings/candidates").json()["candidates"] == []
    assert len(client.get("/api/order-mappings/candidates", params={"include_mapped": True}).json()["candidates"]) == 1

    assert client.post(f"/api/order-mappings/{mapping_id}/deactivate").status_code == 200
    assert client.get("/api/order-mappings").json()["mappings"] == []
    assert client.get("/api/order-mappings/lookup", params={"commerceOrderId": "wc-1001"}).json()["mapping"] is None


def test_duplicate_mapping_conflicts(client):
    payload = {"commerceOrderId": "wc-1001", "warehouseOrderId": "ow-1"}
    assert client.post("/api/order-mappings", json=payload).status_code == 201
    assert client.post("/api/order-mappings", json=payload).status_code == 409


def test_error_statuses(client):
    missing = client.post("/api/order-mappings", json={"commerceOrderId": "wc-404", "warehouseOrderId": "ow-1"})
    assert missing.status_code == 404

    bad_type = client.post(
        "/api/order-mappings", json={"commerceOrderId": "wc-1001", "warehouseOrderId": "ow-1", "mappingType": "auto"}
    )
    assert bad_type.status_code == 422

    assert client.get("/api/order-mappings/lookup").status_code == 400
    assert client.patch("/api/order-mappings/nope", json={}).status_code == 400
    assert client.patch("/api/order-mappings/nope", json={"notes": "x"}).status_code == 404
    assert client.post("/api/order-mappings/nope/deactivate").status_code == 404


def test_orders_listing_and_cleanup(client):
    orders = client.get("/api/commerce-orders").json()
    assert orders["count"] == 2
    assert client.get("/api/commerce-orders", params={"status": "completed"}).json()["count"] == 1
    assert client.get("/api/warehouse-orders").json()["count"] == 2
    assert client.get("/api/commerce-orders/wc-404/lines").status_code == 404

    cleanup = client.post("/api/commerce-orders/cleanup", json={})
    assert cleanup.status_code == 200
    assert cleanup.json()["deleted_count"] == 1
    assert cleanup.json()["remaining_count"] == 1
    assert [o["id"] for o in client.get("/api/commerce-orders").json()["orders"]] == ["wc-1001"]


def test_products_rejects_unknown_stock_filter(client):
    assert client.get("/api/products", params={"stock": "weird"}).status_code == 400
    assert client.get("/api/products", params={"stock": "backordered"}).json()["count"] == 0


def test_candidate_threshold_is_capped_at_one_hundred(client):
    assert client.get("/api/order-mappings/candidates", params={"threshold": 100}).json()["candidates"] == []
    assert client.get("/api/order-mappings/candidates", params={"threshold": 101}).status_code == 422
