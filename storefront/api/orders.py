"""Order API endpoints.

Provides:
- POST /orders - place an order from the current cart
- GET /orders - the authenticated user's orders
- GET /orders/{order_number} - order details and status
- POST /orders/{order_number}/cancel - cancel an order not yet in fulfillment
"""

from typing import Annotated

from fastapi import APIRouter, Depends, status

from storefront.api.dependencies import (
    Identity,
    get_current_cart,
    get_identity,
    get_order_service,
    require_user,
)
from storefront.api.schemas import (
    CheckoutRequest,
    CheckoutResponse,
    ErrorResponse,
    OrderResponse,
    OrdersListResponse,
)
from storefront.application.order_service import CustomerInfo, OrderService
from storefront.domain.exceptions import NotFoundError
from storefront.infrastructure.models import Cart, Order

router = APIRouter(prefix="/orders", tags=["Orders"])

ServiceDep = Annotated[OrderService, Depends(get_order_service)]


def order_to_response(order: Order) -> OrderResponse:
    """Convert an Order to OrderResponse."""
    return OrderResponse.model_validate(order)


@router.post(
    "",
    response_model=CheckoutResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        400: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
    },
    summary="Place order",
    description="Check out the caller's cart. Totals are computed server-side.",
)
async def place_order(
    request: CheckoutRequest,
    cart: Annotated[Cart, Depends(get_current_cart)],
    identity: Annotated[Identity, Depends(get_identity)],
    service: ServiceDep,
) -> CheckoutResponse:
    """Place an order from the current cart.

    Args:
        request: Customer details, payment method and promocode.
        cart: Caller's cart.
        identity: Caller identity.
        service: Order service.

    Returns:
        Created order and, for online payment, the payment link.
    """
    customer = CustomerInfo(
        name=request.customer_name,
        phone=request.customer_phone,
        email=request.customer_email,
        address=request.customer_address,
        comment=request.comment,
        payment_method=request.payment_method,
    )
    placed = await service.place_order(
        cart,
        customer,
        promocode_code=request.promocode,
        user_id=identity.user_id,
    )
    return CheckoutResponse(
        order=order_to_response(placed.order),
        payment_url=placed.payment_url,
    )


@router.get(
    "",
    response_model=OrdersListResponse,
    responses={401: {"model": ErrorResponse}},
    summary="List my orders",
)
async def list_orders(
    user_id: Annotated[str, Depends(require_user)],
    service: ServiceDep,
) -> OrdersListResponse:
    """List the authenticated user's orders, newest first."""
    orders = await service.list_user_orders(user_id)
    return OrdersListResponse(items=[order_to_response(order) for order in orders])


@router.get(
    "/{order_number}",
    response_model=OrderResponse,
    responses={404: {"model": ErrorResponse}},
    summary="Get order",
)
async def get_order(
    order_number: str,
    identity: Annotated[Identity, Depends(get_identity)],
    service: ServiceDep,
) -> OrderResponse:
    """Get an order by its number.

    Callers only see their own orders; anonymous callers see none.
    """
    if not identity.user_id:
        raise NotFoundError("Order", order_number)
    order = await service.get_order(order_number, user_id=identity.user_id)
    return order_to_response(order)


@router.post(
    "/{order_number}/cancel",
    response_model=OrderResponse,
    responses={
        401: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
    },
    summary="Cancel order",
    description="Cancel one of the caller's orders before fulfillment starts.",
)
async def cancel_order(
    order_number: str,
    user_id: Annotated[str, Depends(require_user)],
    service: ServiceDep,
) -> OrderResponse:
    """Cancel an order owned by the authenticated user."""
    order = await service.cancel_order(order_number, user_id)
    return order_to_response(order)
