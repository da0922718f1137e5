"""Admin API endpoints for order fulfillment.

Provides:
- PATCH /admin/orders/{order_number}/status - move an order through fulfillment
- GET /admin/orders/{order_number}/payment-events - payment notification audit log

All routes require the admin API key (see AdminApiKeyMiddleware).
"""

from typing import Annotated

from fastapi import APIRouter, Depends

from storefront.api.dependencies import get_order_service, get_payment_service
from storefront.api.orders import order_to_response
from storefront.api.schemas import (
    ErrorResponse,
    OrderResponse,
    OrderStatusUpdateRequest,
    PaymentEventSchema,
)
from storefront.application.order_service import OrderService
from storefront.application.payment_service import PaymentService

router = APIRouter(prefix="/admin/orders", tags=["Admin"])


@router.patch(
    "/{order_number}/status",
    response_model=OrderResponse,
    responses={
        400: {"model": ErrorResponse},
        401: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
    },
    summary="Update fulfillment status",
    description="Shipping requires a tracking number.",
)
async def update_order_status(
    order_number: str,
    request: OrderStatusUpdateRequest,
    service: Annotated[OrderService, Depends(get_order_service)],
) -> OrderResponse:
    """Change an order's fulfillment status."""
    order = await service.update_status(
        order_number,
        request.status,
        tracking_number=request.tracking_number,
    )
    return order_to_response(order)


@router.get(
    "/{order_number}/payment-events",
    response_model=list[PaymentEventSchema],
    responses={401: {"model": ErrorResponse}},
    summary="List payment notifications",
)
async def list_payment_events(
    order_number: str,
    service: Annotated[PaymentService, Depends(get_payment_service)],
) -> list[PaymentEventSchema]:
    """List verified payment notifications received for an order."""
    events = await service.list_events(order_number)
    return [PaymentEventSchema.model_validate(event) for event in events]
