from __future__ import annotations

import logging

from fastapi import HTTPException

from services.errors import (
    ConfigError,
    ConflictError,
    NotFoundError,
    UnavailableError,
    VendorApiError,
)

logger = logging.getLogger(__name__)


def to_http_exception(exc: Exception, tag: str) -> HTTPException:
    """Map a service exception onto the HTTP status the dashboard expects."""
    if isinstance(exc, HTTPException):
        return exc
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, ConflictError):
        return HTTPException(status_code=409, detail=str(exc))
    if isinstance(exc, UnavailableError):
        logger.warning("[%s] Unavailable: %s", tag, exc)
        return HTTPException(status_code=503, detail=str(exc))
    if isinstance(exc, (ConfigError, ValueError)):
        return HTTPException(status_code=400, detail=str(exc))
    if isinstance(exc, VendorApiError):
        logger.warning("[%s] Vendor error: %s", tag, exc)
        return HTTPException(status_code=400 if exc.status_code in (401, 403) else 502, detail=str(exc))
    logger.error("[%s] Request failed: %s", tag, exc, exc_info=exc)
    return HTTPException(status_code=500, detail=str(exc))
