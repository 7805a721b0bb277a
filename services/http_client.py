from __future__ import annotations

import logging
import time
from typing import Any, Optional
from urllib.parse import urlparse

import requests

from services.errors import (
    VendorApiError,
    VendorAuthError,
    VendorNotFoundError,
    VendorUnavailableError,
)

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30
DEFAULT_MAX_ATTEMPTS = 3
_LOCAL_HOSTS = {"localhost", "127.0.0.1", "::1"}


def normalize_base_url(url: str) -> str:
    """
    Normalise a vendor base URL:
    - trims whitespace and trailing slashes
    - adds https:// when no scheme is given
    - upgrades http:// to https:// except for local hosts
    """
    raw = (url or "").strip()
    if not raw:
        raise ValueError("Base URL is empty")
    if "://" not in raw:
        raw = f"https://{raw}"
    parsed = urlparse(raw)
    host = parsed.hostname or ""
    if parsed.scheme not in ("http", "https") or len(host) < 3:
        raise ValueError(f"Invalid base URL: {url!r}")
    if parsed.scheme == "http" and host not in _LOCAL_HOSTS:
        raw = "https://" + raw[len("http://"):]
    return raw.rstrip("/")


def _error_for_status(vendor: str, resp) -> VendorApiError:
    status = resp.status_code
    body = (getattr(resp, "text", "") or "")[:300]
    if status == 401:
        return VendorAuthError(vendor, "Invalid API credentials", status)
    if status == 403:
        return VendorAuthError(vendor, "Access forbidden; check API permissions", status)
    if status == 404:
        return VendorNotFoundError(vendor, "Endpoint or resource not found", status)
    if status == 429 or status >= 500:
        return VendorUnavailableError(vendor, f"Server error {status}: {body}", status)
    return VendorApiError(vendor, f"HTTP {status}: {body}", status)


def get_json(
    url: str,
    *,
    vendor: str,
    headers: Optional[dict] = None,
    params: Optional[dict] = None,
    timeout: int = DEFAULT_TIMEOUT,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
) -> Any:
    """
    GET a vendor endpoint and return the decoded JSON body.

    Retries with exponential backoff (1s, 2s, 4s) on 429, 5xx, timeouts and
    connection errors. Other non-2xx responses raise immediately.
    """
    last_exc: Optional[Exception] = None
    for attempt in range(1, max_attempts + 1):
        wait_time = 2 ** (attempt - 1)
        try:
            resp = requests.get(url, headers=headers, params=params, timeout=timeout)
        except requests.exceptions.Timeout as exc:
            last_exc = exc
            logger.warning(f"[HTTP] {vendor} timeout ({timeout}s), attempt {attempt}/{max_attempts}: {url}")
            if attempt < max_attempts:
                time.sleep(wait_time)
                continue
            raise VendorUnavailableError(vendor, f"Request timed out after {max_attempts} attempts") from exc
        except requests.exceptions.ConnectionError as exc:
            last_exc = exc
            logger.warning(f"[HTTP] {vendor} connection error, attempt {attempt}/{max_attempts}: {exc}")
            if attempt < max_attempts:
                time.sleep(wait_time)
                continue
            raise VendorUnavailableError(vendor, f"Connection failed after {max_attempts} attempts") from exc

        if resp.status_code == 429 or resp.status_code >= 500:
            logger.warning(
                f"[HTTP] {vendor} returned {resp.status_code}, waiting {wait_time}s before retry {attempt}/{max_attempts}"
            )
            if attempt < max_attempts:
                time.sleep(wait_time)
                continue
            raise _error_for_status(vendor, resp)

        if resp.status_code >= 300:
            logger.error(f"[HTTP] {vendor} request failed {resp.status_code}: {url}")
            raise _error_for_status(vendor, resp)

        try:
            return resp.json()
        except ValueError as exc:
            raise VendorApiError(vendor, "Response is not valid JSON", resp.status_code) from exc

    raise VendorUnavailableError(vendor, f"Request failed after {max_attempts} attempts: {last_exc}")
