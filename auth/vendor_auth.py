# ================================================================
#  VENDOR AUTH HELPERS
#  ---------------------------------------------------------------
#  - HTTP Basic headers (WooCommerce REST, Ongoing WMS)
#  - Bearer headers (Rackbeat)
#  - WooCommerce webhook signature check
# ================================================================

import base64
import hashlib
import hmac
import logging
from typing import Optional, Union

from config import USER_AGENT

logger = logging.getLogger(__name__)


def basic_auth_header(username: str, password: str) -> dict:
    token = base64.b64encode(f"{username}:{password}".encode("utf-8")).decode("ascii")
    return {"Authorization": f"Basic {token}"}


def bearer_auth_header(api_key: str) -> dict:
    return {"Authorization": f"Bearer {api_key}"}


def json_headers(auth: dict) -> dict:
    """Standard JSON request headers merged with an auth header."""
    return {
        **auth,
        "Content-Type": "application/json",
        "Accept": "application/json",
        "User-Agent": USER_AGENT,
    }


def compute_webhook_signature(payload: Union[bytes, str], secret: str) -> str:
    """base64(HMAC-SHA256(secret, raw body)), as WooCommerce sends in X-WC-Webhook-Signature."""
    if isinstance(payload, str):
        payload = payload.encode("utf-8")
    digest = hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).digest()
    return base64.b64encode(digest).decode("ascii")


def verify_webhook_signature(payload: Union[bytes, str], signature: Optional[str], secret: str) -> bool:
    if not signature or not secret:
        return False
    expected = compute_webhook_signature(payload, secret)
    ok = hmac.compare_digest(expected, signature.strip())
    if not ok:
        logger.warning("[Webhook] Signature mismatch")
    return ok
