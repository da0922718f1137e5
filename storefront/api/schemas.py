"""API schemas for the storefront API.

Pydantic models for request/response validation and serialization.
Monetary fields are ``Decimal`` and serialize as strings.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from storefront.domain.state_machines import OrderStatus, PaymentMethod, PaymentStatus


# ============================================================================
# Common Schemas
# ============================================================================


class ErrorResponse(BaseModel):
    """Standard error response.

    All API errors follow this format for consistency.
    """

    error_code: str = Field(..., description="Machine-readable error code")
    message: str = Field(..., description="Human-readable error message")
    details: dict[str, Any] | list[Any] = Field(
        default_factory=dict, description="Additional error details"
    )
    request_id: str | None = Field(
        default=None, description="Request ID for correlation"
    )


class TotalsSchema(BaseModel):
    """Cart or order totals."""

    subtotal: Decimal = Field(..., description="Sum of applied prices times quantities")
    discount: Decimal = Field(..., description="Savings from promotions and discounts")
    promocode_discount: Decimal = Field(..., description="Savings from the promocode")
    total: Decimal = Field(..., description="Amount to pay")
    items_count: int = Field(..., description="Total number of units")


# ============================================================================
# Cart Schemas
# ============================================================================


class CartItemAddRequest(BaseModel):
    """Request to add a product to the cart."""

    product_id: str = Field(..., min_length=1, description="Product identifier")
    quantity: int = Field(default=1, description="Units to add")


class CartItemUpdateRequest(BaseModel):
    """Request to change a cart line quantity."""

    quantity: int = Field(..., description="New quantity")


class CartMergeRequest(BaseModel):
    """Request to merge an anonymous cart into the user's cart."""

    session_token: str | None = Field(
        default=None, description="Session token; defaults to the X-Session-Token header"
    )


class CartItemSchema(BaseModel):
    """Cart line."""

    id: str
    product_id: str
    product_name: str
    product_image: str | None = None
    quantity: int
    price: Decimal = Field(..., description="Base unit price when added")
    applied_price: Decimal = Field(..., description="Unit price charged")
    discount_percent: int | None = None
    line_total: Decimal
    has_promotion: bool
    allow_promocode: bool


class CartResponse(BaseModel):
    """Cart with lines and totals."""

    id: str
    user_id: str | None = None
    session_token: str | None = Field(
        default=None, description="Token anonymous clients send as X-Session-Token"
    )
    expires_at: datetime | None = None
    items: list[CartItemSchema]
    totals: TotalsSchema
    promocode: str | None = None


# ============================================================================
# Order Schemas
# ============================================================================


class CheckoutRequest(BaseModel):
    """Request to place an order from the current cart."""

    customer_name: str = Field(..., min_length=1, max_length=255)
    customer_phone: str = Field(..., min_length=5, max_length=50)
    customer_email: str | None = Field(default=None, max_length=255)
    customer_address: str | None = Field(default=None, max_length=2000)
    comment: str | None = Field(default=None, max_length=2000)
    payment_method: PaymentMethod = Field(default=PaymentMethod.ONLINE)
    promocode: str | None = Field(default=None, max_length=50)


class OrderItemSchema(BaseModel):
    """Order line snapshot."""

    model_config = ConfigDict(from_attributes=True)

    product_id: str | None = None
    product_name: str
    product_article: str | None = None
    product_image: str | None = None
    price: Decimal
    applied_price: Decimal
    had_promotion: bool
    quantity: int


class OrderResponse(BaseModel):
    """Order details."""

    model_config = ConfigDict(from_attributes=True)

    order_number: str
    status: OrderStatus
    payment_status: PaymentStatus
    payment_method: PaymentMethod
    customer_name: str
    customer_phone: str
    customer_email: str | None = None
    customer_address: str | None = None
    comment: str | None = None
    subtotal: Decimal
    discount: Decimal
    promocode_discount: Decimal
    total: Decimal
    tracking_number: str | None = None
    items: list[OrderItemSchema]
    created_at: datetime
    paid_at: datetime | None = None
    shipped_at: datetime | None = None


class CheckoutResponse(BaseModel):
    """Result of a checkout."""

    order: OrderResponse
    payment_url: str | None = Field(
        default=None, description="Gateway link for online payment"
    )


class OrdersListResponse(BaseModel):
    """A user's orders, newest first."""

    items: list[OrderResponse]


class OrderStatusUpdateRequest(BaseModel):
    """Fulfillment status change."""

    status: OrderStatus
    tracking_number: str | None = Field(default=None, max_length=100)


class PaymentEventSchema(BaseModel):
    """Recorded payment notification."""

    model_config = ConfigDict(from_attributes=True)

    order_number: str
    payment_status: str | None = None
    outcome: str
    payload_hash: str
    correlation_id: str | None = None
    received_at: datetime
