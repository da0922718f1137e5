"""Application layer module.

Contains application services (use cases) that orchestrate
domain logic and infrastructure.
"""

from storefront.application.cart_service import CartService, CartSummary
from storefront.application.order_service import CustomerInfo, OrderService, PlacedOrder
from storefront.application.payment_service import (
    PaymentNotification,
    PaymentService,
    WebhookOutcome,
    WebhookResult,
)

__all__ = [
    "CartService",
    "CartSummary",
    "CustomerInfo",
    "OrderService",
    "PlacedOrder",
    "PaymentNotification",
    "PaymentService",
    "WebhookOutcome",
    "WebhookResult",
]
