from __future__ import annotations

from typing import Optional


class LogisticsError(RuntimeError):
    """Base class for errors raised by the logistics backend."""
    pass


class NotFoundError(LogisticsError):
    """A referenced order, mapping or record does not exist."""
    pass


class UnavailableError(LogisticsError):
    """The store or a vendor API is temporarily unreachable."""
    pass


class ConflictError(LogisticsError):
    """An active mapping already exists for the same order pair."""
    pass


class ConfigError(LogisticsError):
    """Required configuration is missing or malformed."""
    pass


class VendorApiError(LogisticsError):
    """Non-success response (or unreadable body) from a vendor API."""

    def __init__(self, vendor: str, message: str, status_code: Optional[int] = None):
        super().__init__(f"{vendor}: {message}")
        self.vendor = vendor
        self.message = message
        self.status_code = status_code


class VendorAuthError(VendorApiError):
    """Credentials rejected (401) or permissions missing (403)."""
    pass


class VendorNotFoundError(VendorApiError):
    pass


class VendorUnavailableError(VendorApiError, UnavailableError):
    """5xx, rate limiting or network failure after retries were exhausted."""
    pass
