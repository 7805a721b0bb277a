"""Routes package initializer."""

from .order_mapping_routes import register_order_mapping_routes
from .orders_routes import register_orders_routes
from .sync_routes import register_sync_routes
from .webhook_routes import register_webhook_routes

__all__ = [
    "register_order_mapping_routes",
    "register_orders_routes",
    "register_sync_routes",
    "register_webhook_routes",
]
