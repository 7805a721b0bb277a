from __future__ import annotations

import asyncio
import json

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from auth.vendor_auth import compute_webhook_signature, verify_webhook_signature
from config import WooCommerceConfig
from routes import webhook_routes
from services import order_store, woocommerce_sync
from services.errors import ConfigError

SECRET = "whsec-test"


def _build_app() -> FastAPI:
    app = FastAPI()
    app.include_router(webhook_routes.router)
    return app


@pytest.fixture
def client(logistics_db, monkeypatch):
    monkeypatch.setenv("WOOCOMMERCE_WEBHOOK_SECRET", SECRET)
    monkeypatch.setenv("WOOCOMMERCE_STORE_URL", "https://shop.example.com")
    return TestClient(_build_app())


def _order_body(woo_id=55):
    return json.dumps(
        {
            "id": woo_id,
            "number": str(woo_id),
            "status": "processing",
            "total": "320.00",
            "billing": {"first_name": "Ola", "last_name": "Hansen"},
            "line_items": [{"id": 1, "product_id": 9, "name": "Lamp", "quantity": 1, "total": "320.00"}],
        }
    ).encode("utf-8")


def test_signature_roundtrip_and_mismatch():
    body = b'{"id": 1}'
    signature = compute_webhook_signature(body, SECRET)
    assert verify_webhook_signature(body, signature, SECRET)
    assert not verify_webhook_signature(body + b" ", signature, SECRET)
    assert not verify_webhook_signature(body, None, SECRET)
    assert not verify_webhook_signature(body, signature, "")


def test_signed_order_webhook_is_stored(client):
    body = _order_body()
    resp = client.post(
        "/api/webhooks/woocommerce/order",
        content=body,
        headers={"X-WC-Webhook-Signature": compute_webhook_signature(body, SECRET), "X-WC-Webhook-Topic": "order.updated"},
    )

    assert resp.status_code == 200
    assert resp.json()["order_id"] == "wc-55"
    stored = order_store.get_commerce_order("wc-55")
    assert stored.customer_name == "Ola Hansen"
    assert stored.permalink == "https://shop.example.com/wp-admin/post.php?post=55&action=edit"


def test_bad_or_missing_signature_is_rejected(client):
    body = _order_body()
    bad = client.post("/api/webhooks/woocommerce/order", content=body, headers={"X-WC-Webhook-Signature": "nope"})
    missing = client.post("/api/webhooks/woocommerce/order", content=body)

    assert bad.status_code == 401
    assert missing.status_code == 401
    assert order_store.get_commerce_order("wc-55") is None


def test_ping_and_non_order_payloads(client):
    ping = b"webhook_id=12"
    resp = client.post(
        "/api/webhooks/woocommerce/order",
        content=ping,
        headers={"X-WC-Webhook-Signature": compute_webhook_signature(ping, SECRET)},
    )
    assert resp.json() == {"ok": True, "ping": True}

    junk = b'{"hello": "world"}'
    resp = client.post(
        "/api/webhooks/woocommerce/order",
        content=junk,
        headers={"X-WC-Webhook-Signature": compute_webhook_signature(junk, SECRET)},
    )
    assert resp.status_code == 400


def test_product_webhook_without_secret(logistics_db, monkeypatch):
    monkeypatch.delenv("WOOCOMMERCE_WEBHOOK_SECRET", raising=False)
    client = TestClient(_build_app())

    resp = client.post("/api/webhooks/woocommerce/product", json={"id": 9, "name": "Lamp", "stock_quantity": -1})

    assert resp.status_code == 200
    assert order_store.get_product(9).stock_quantity == -1


def test_malformed_order_and_product_records_are_bad_requests(logistics_db, monkeypatch):
    monkeypatch.delenv("WOOCOMMERCE_WEBHOOK_SECRET", raising=False)
    client = TestClient(_build_app())

    order = client.post("/api/webhooks/woocommerce/order", json={"id": 5, "line_items": [{"name": "x"}]})
    product = client.post("/api/webhooks/woocommerce/product", json={"id": 9, "stock_quantity": "lots"})

    assert order.status_code == 400
    assert "Malformed order payload" in order.json()["detail"]
    assert product.status_code == 400
    assert "Malformed product payload" in product.json()["detail"]
    assert order_store.get_commerce_order("wc-5") is None
    assert order_store.get_product(9) is None


def test_store_writes_run_off_the_event_loop(logistics_db, monkeypatch):
    monkeypatch.delenv("WOOCOMMERCE_WEBHOOK_SECRET", raising=False)
    seen = {}

    def fake_apply(payload, store_url=None):
        try:
            asyncio.get_running_loop()
            seen["on_loop"] = True
        except RuntimeError:
            seen["on_loop"] = False
        return "wc-1"

    monkeypatch.setattr(woocommerce_sync, "apply_order_webhook", fake_apply)
    resp = TestClient(_build_app()).post("/api/webhooks/woocommerce/order", json={"id": 1})

    assert resp.json() == {"ok": True, "order_id": "wc-1"}
    assert seen == {"on_loop": False}


def test_webhook_config_does_not_need_rest_credentials(monkeypatch):
    for name in ("WOOCOMMERCE_STORE_URL", "WOOCOMMERCE_CONSUMER_KEY", "WOOCOMMERCE_CONSUMER_SECRET"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("WOOCOMMERCE_WEBHOOK_SECRET", " whsec ")

    cfg = webhook_routes.get_webhook_config()

    assert cfg == WooCommerceConfig(store_url="", consumer_key="", consumer_secret="", webhook_secret="whsec")
    with pytest.raises(ConfigError):
        WooCommerceConfig.from_env()
