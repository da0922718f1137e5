"""Shared FastAPI dependencies.

Services are built per request around the request's database session.
Long-lived collaborators (notifier, payment gateway) are created once in
the application lifespan and read from ``app.state``.
"""

from dataclasses import dataclass
from typing import Annotated

from fastapi import Depends, Header, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.application.cart_service import CartService
from storefront.application.order_service import OrderService
from storefront.application.payment_service import PaymentService
from storefront.infrastructure.config import settings
from storefront.infrastructure.database import get_session
from storefront.infrastructure.models import Cart
from storefront.infrastructure.notifier import Notifier
from storefront.infrastructure.prodamus import ProdamusGateway

SessionDep = Annotated[AsyncSession, Depends(get_session)]


# ============================================================================
# Collaborators
# ============================================================================


def get_notifier(request: Request) -> Notifier:
    """Get the notifier created at startup."""
    return request.app.state.notifier


def get_payment_gateway(request: Request) -> ProdamusGateway:
    """Get the payment gateway codec created at startup."""
    return request.app.state.payment_gateway


# ============================================================================
# Services
# ============================================================================


def get_cart_service(session: SessionDep) -> CartService:
    """Get cart service for the request."""
    return CartService(session, cart_expires_days=settings.cart_expires_days)


def get_order_service(
    session: SessionDep,
    notifier: Annotated[Notifier, Depends(get_notifier)],
    gateway: Annotated[ProdamusGateway, Depends(get_payment_gateway)],
) -> OrderService:
    """Get order service for the request."""
    return OrderService(
        session,
        notifier=notifier,
        gateway=gateway,
        frontend_url=settings.frontend_url,
        api_url=settings.api_url,
    )


def get_payment_service(
    session: SessionDep,
    notifier: Annotated[Notifier, Depends(get_notifier)],
    gateway: Annotated[ProdamusGateway, Depends(get_payment_gateway)],
) -> PaymentService:
    """Get payment service for the request."""
    return PaymentService(session, notifier=notifier, gateway=gateway)


# ============================================================================
# Identity
# ============================================================================


@dataclass
class Identity:
    """Caller identity as forwarded by the authentication gateway."""

    user_id: str | None = None
    session_token: str | None = None


def get_identity(
    x_user_id: Annotated[str | None, Header()] = None,
    x_session_token: Annotated[str | None, Header()] = None,
) -> Identity:
    """Read the caller identity from request headers."""
    return Identity(user_id=x_user_id or None, session_token=x_session_token or None)


def require_user(identity: Annotated[Identity, Depends(get_identity)]) -> str:
    """Require an authenticated user.

    Raises:
        HTTPException: 401 if no user is authenticated.
    """
    if not identity.user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={
                "error_code": "UNAUTHORIZED",
                "message": "Authentication required",
            },
        )
    return identity.user_id


async def get_current_cart(
    identity: Annotated[Identity, Depends(get_identity)],
    service: Annotated[CartService, Depends(get_cart_service)],
) -> Cart:
    """Get or create the caller's cart."""
    return await service.get_or_create(identity.user_id, identity.session_token)
