"""Cart API endpoints.

Provides:
- GET /cart - current cart with totals (optional promocode preview)
- POST /cart/items - add a product
- PATCH /cart/items/{item_id} - change quantity
- DELETE /cart/items/{item_id} - remove a line
- DELETE /cart - remove every line
- POST /cart/merge - merge the anonymous cart into the user's cart

The caller's cart is resolved from the X-User-Id and X-Session-Token
headers; anonymous clients keep the ``session_token`` from the response.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Query, status

from storefront.api.dependencies import (
    Identity,
    get_cart_service,
    get_current_cart,
    get_identity,
    require_user,
)
from storefront.api.schemas import (
    CartItemAddRequest,
    CartItemSchema,
    CartItemUpdateRequest,
    CartMergeRequest,
    CartResponse,
    ErrorResponse,
    TotalsSchema,
)
from storefront.application.cart_service import CartService, CartSummary
from storefront.domain.exceptions import BadRequestError
from storefront.infrastructure.models import Cart

router = APIRouter(prefix="/cart", tags=["Cart"])

CartDep = Annotated[Cart, Depends(get_current_cart)]
ServiceDep = Annotated[CartService, Depends(get_cart_service)]


# ============================================================================
# Converters
# ============================================================================


def summary_to_response(summary: CartSummary) -> CartResponse:
    """Convert CartSummary to CartResponse."""
    return CartResponse(
        id=summary.cart_id,
        user_id=summary.user_id,
        session_token=summary.session_token,
        expires_at=summary.expires_at,
        items=[
            CartItemSchema(
                id=line.item_id,
                product_id=line.product_id,
                product_name=line.product_name,
                product_image=line.product_image,
                quantity=line.quantity,
                price=line.price,
                applied_price=line.applied_price,
                discount_percent=line.discount_percent,
                line_total=line.line_total,
                has_promotion=line.has_promotion,
                allow_promocode=line.allow_promocode,
            )
            for line in summary.items
        ],
        totals=TotalsSchema(
            subtotal=summary.totals.subtotal,
            discount=summary.totals.discount,
            promocode_discount=summary.totals.promocode_discount,
            total=summary.totals.total,
            items_count=summary.totals.items_count,
        ),
        promocode=summary.promocode,
    )


async def _respond(service: CartService, cart: Cart) -> CartResponse:
    return summary_to_response(await service.get_summary(cart))


# ============================================================================
# Endpoints
# ============================================================================


@router.get(
    "",
    response_model=CartResponse,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
    summary="Get cart",
    description="Get the caller's cart, creating it on first access.",
)
async def get_cart(
    cart: CartDep,
    service: ServiceDep,
    promocode: str | None = Query(default=None, description="Promocode to preview"),
) -> CartResponse:
    """Get the current cart, optionally priced with a promocode."""
    return summary_to_response(await service.get_summary(cart, promocode))


@router.post(
    "/items",
    response_model=CartResponse,
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
    summary="Add item",
)
async def add_item(
    request: CartItemAddRequest,
    cart: CartDep,
    service: ServiceDep,
) -> CartResponse:
    """Add a product to the cart.

    Args:
        request: Product and quantity.
        cart: Caller's cart.
        service: Cart service.

    Returns:
        Updated cart.
    """
    cart = await service.add_item(cart, request.product_id, request.quantity)
    return await _respond(service, cart)


@router.patch(
    "/items/{item_id}",
    response_model=CartResponse,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
    summary="Update item quantity",
)
async def update_item(
    item_id: str,
    request: CartItemUpdateRequest,
    cart: CartDep,
    service: ServiceDep,
) -> CartResponse:
    """Change the quantity of a cart line."""
    cart = await service.update_item(cart, item_id, request.quantity)
    return await _respond(service, cart)


@router.delete(
    "/items/{item_id}",
    response_model=CartResponse,
    responses={404: {"model": ErrorResponse}},
    summary="Remove item",
)
async def remove_item(item_id: str, cart: CartDep, service: ServiceDep) -> CartResponse:
    """Remove a line from the cart."""
    cart = await service.remove_item(cart, item_id)
    return await _respond(service, cart)


@router.delete(
    "",
    response_model=CartResponse,
    summary="Clear cart",
)
async def clear_cart(cart: CartDep, service: ServiceDep) -> CartResponse:
    """Remove every line from the cart."""
    cart = await service.clear(cart)
    return await _respond(service, cart)


@router.post(
    "/merge",
    response_model=CartResponse,
    responses={
        400: {"model": ErrorResponse},
        401: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
    },
    summary="Merge anonymous cart",
    description="Move the anonymous session cart into the authenticated user's cart.",
)
async def merge_cart(
    request: CartMergeRequest,
    user_id: Annotated[str, Depends(require_user)],
    identity: Annotated[Identity, Depends(get_identity)],
    service: ServiceDep,
) -> CartResponse:
    """Merge the session cart into the user's cart after login."""
    session_token = request.session_token or identity.session_token
    if not session_token:
        raise BadRequestError(
            "A session token is required to merge carts",
            error_code="SESSION_TOKEN_REQUIRED",
        )
    cart = await service.merge_session_cart(user_id, session_token)
    return await _respond(service, cart)
