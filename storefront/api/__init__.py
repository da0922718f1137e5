"""HTTP API layer for the storefront."""

from storefront.api.admin import router as admin_router
from storefront.api.carts import router as carts_router
from storefront.api.health import router as health_router
from storefront.api.orders import router as orders_router
from storefront.api.webhooks import router as webhooks_router

__all__ = [
    "admin_router",
    "carts_router",
    "health_router",
    "orders_router",
    "webhooks_router",
]
