from __future__ import annotations

import asyncio
import json
import logging
from typing import Optional

from fastapi import APIRouter, Depends, FastAPI, Header, HTTPException, Request

from auth.vendor_auth import verify_webhook_signature
from config import WooCommerceConfig
from routes.http_errors import to_http_exception
from services import woocommerce_sync

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/webhooks")
TAG = "Webhook"


def get_webhook_config() -> WooCommerceConfig:
    return WooCommerceConfig.from_env(require_credentials=False)


async def _verified_payload(request: Request, signature: Optional[str], secret: str) -> Optional[dict]:
    """
    Read the raw body and check the WooCommerce signature when a secret is configured.
    Returns None for WooCommerce's "webhook_id=N" ping bodies.
    """
    body = await request.body()
    if secret:
        if not signature:
            raise HTTPException(status_code=401, detail="Missing X-WC-Webhook-Signature header")
        if not verify_webhook_signature(body, signature, secret):
            raise HTTPException(status_code=401, detail="Invalid webhook signature")
    if body.startswith(b"webhook_id="):
        logger.info("[Webhook] Ping received: %s", body[:50])
        return None
    try:
        payload = json.loads(body or b"{}")
    except ValueError:
        raise HTTPException(status_code=400, detail="Body is not valid JSON")
    if not isinstance(payload, dict):
        raise HTTPException(status_code=400, detail="Body must be a JSON object")
    return payload


@router.post("/woocommerce/order")
async def woocommerce_order_webhook(
    request: Request,
    x_wc_webhook_signature: Optional[str] = Header(None),
    x_wc_webhook_topic: Optional[str] = Header(None),
    woo_config: WooCommerceConfig = Depends(get_webhook_config),
) -> dict:
    payload = await _verified_payload(request, x_wc_webhook_signature, woo_config.webhook_secret)
    if payload is None:
        return {"ok": True, "ping": True}
    try:
        # SQLite writes block; keep them off the event loop
        order_id = await asyncio.to_thread(
            woocommerce_sync.apply_order_webhook, payload, woo_config.store_url or None
        )
        logger.info("[Webhook] %s -> %s", x_wc_webhook_topic or "order", order_id)
        return {"ok": True, "order_id": order_id}
    except Exception as exc:
        raise to_http_exception(exc, TAG)


@router.post("/woocommerce/product")
async def woocommerce_product_webhook(
    request: Request,
    x_wc_webhook_signature: Optional[str] = Header(None),
    x_wc_webhook_topic: Optional[str] = Header(None),
    woo_config: WooCommerceConfig = Depends(get_webhook_config),
) -> dict:
    payload = await _verified_payload(request, x_wc_webhook_signature, woo_config.webhook_secret)
    if payload is None:
        return {"ok": True, "ping": True}
    try:
        product_id = await asyncio.to_thread(woocommerce_sync.apply_product_webhook, payload)
        logger.info("[Webhook] %s -> product %s", x_wc_webhook_topic or "product", product_id)
        return {"ok": True, "product_id": product_id}
    except Exception as exc:
        raise to_http_exception(exc, TAG)


def register_webhook_routes(app: FastAPI) -> None:
    app.include_router(router)
