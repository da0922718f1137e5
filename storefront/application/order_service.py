"""Order application service.

Provides:
- Checkout: cart to order in a single transaction with live stock checks
- Order lookup and per-user listing
- Fulfillment status changes and customer cancellation
- Payment link creation for online payment
"""

import secrets
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime, timezone

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.application.cart_service import cart_lines
from storefront.domain.exceptions import (
    BadRequestError,
    CartEmptyError,
    InsufficientStockError,
    NotFoundError,
    PaymentGatewayNotConfiguredError,
    PromocodeError,
)
from storefront.domain.pricing import calculate_cart_totals, validate_promocode
from storefront.domain.state_machines import (
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
    validate_customer_cancel,
    validate_order_transition,
)
from storefront.infrastructure.models import Cart, Order, OrderItem
from storefront.infrastructure.notifier import Notifier
from storefront.infrastructure.prodamus import ProdamusGateway
from storefront.infrastructure.repositories import (
    CartRepository,
    OrderRepository,
    ProductRepository,
    PromocodeRepository,
)

logger = structlog.get_logger()


# ============================================================================
# DTOs
# ============================================================================


@dataclass
class CustomerInfo:
    """Contact and delivery details captured at checkout."""

    name: str
    phone: str
    email: str | None = None
    address: str | None = None
    comment: str | None = None
    payment_method: PaymentMethod = PaymentMethod.ONLINE


@dataclass
class PlacedOrder:
    """Result of a checkout."""

    order: Order
    payment_url: str | None = None


def generate_order_number(now: datetime | None = None) -> str:
    """Generate an order number safe to share with the payment gateway.

    Format: ``ORD-YYMMDD-XXXXXXXXXX`` with 40 random bits. Uniqueness
    is enforced by the database.
    """
    now = now or datetime.now(timezone.utc)
    return f"ORD-{now:%y%m%d}-{secrets.token_hex(5).upper()}"


# ============================================================================
# Service
# ============================================================================


class OrderService:
    """Application service for orders.

    Orchestrates checkout over the cart, product, promocode and order
    repositories, and hands finished orders to the notifier.
    """

    def __init__(
        self,
        session: AsyncSession,
        notifier: Notifier,
        gateway: ProdamusGateway | None = None,
        frontend_url: str | None = None,
        api_url: str | None = None,
    ) -> None:
        """Initialize order service.

        Args:
            session: Request-scoped database session.
            notifier: Order notification collaborator.
            gateway: Payment gateway codec for online payment links.
            frontend_url: Storefront URL for payment redirects.
            api_url: Public API URL for gateway notifications.
        """
        self.session = session
        self.notifier = notifier
        self.gateway = gateway
        self.frontend_url = frontend_url
        self.api_url = api_url
        self.carts = CartRepository(session)
        self.orders = OrderRepository(session)
        self.products = ProductRepository(session)
        self.promocodes = PromocodeRepository(session)

    # ------------------------------------------------------------------
    # Checkout
    # ------------------------------------------------------------------

    async def place_order(
        self,
        cart: Cart,
        customer: CustomerInfo,
        promocode_code: str | None = None,
        user_id: str | None = None,
    ) -> PlacedOrder:
        """Turn a cart into an order.

        Stock, promocode and totals are re-validated against live data.
        The order insert, stock decrements, promocode usage and cart
        removal commit together or not at all.

        Args:
            cart: Cart to check out.
            customer: Customer details.
            promocode_code: Optional promocode.
            user_id: Authenticated user placing the order.

        Returns:
            PlacedOrder with a PENDING order and, for online payment,
            a payment link.

        Raises:
            CartEmptyError: If the cart has no items.
            BadRequestError: If a product is unavailable or out of stock,
                or the promocode cannot be applied.
            NotFoundError: If the cart or promocode does not exist.
        """
        try:
            order = await self._assemble(cart.id, customer, promocode_code, user_id)
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise

        logger.info(
            "Order placed",
            order_number=order.order_number,
            total=str(order.total),
            items=len(order.items),
            payment_method=order.payment_method,
        )

        await self.notifier.notify_order_placed(order)

        payment_url = None
        if order.payment_method == PaymentMethod.ONLINE.value:
            try:
                payment_url = self.create_payment_link(order)
            except PaymentGatewayNotConfiguredError as e:
                logger.error("Payment link could not be built", order_number=order.order_number, error=e.message)

        return PlacedOrder(order=order, payment_url=payment_url)

    async def _assemble(
        self,
        cart_id: str,
        customer: CustomerInfo,
        promocode_code: str | None,
        user_id: str | None,
    ) -> Order:
        cart = await self.carts.get(cart_id)
        if cart is None:
            raise NotFoundError("Cart", cart_id)
        if not cart.items:
            raise CartEmptyError(cart_id)

        # 1. Live product checks
        products = await self.products.get_many([item.product_id for item in cart.items])
        for item in cart.items:
            product = products.get(item.product_id)
            if product is None or not product.is_active:
                raise BadRequestError(
                    f"Product {item.product_id} is no longer available",
                    details={"product_id": item.product_id, "item_id": item.id},
                    error_code="PRODUCT_UNAVAILABLE",
                )
            if item.quantity > product.quantity:
                raise InsufficientStockError(product.id, product.name, item.quantity, product.quantity)

        # 2. Promocode and authoritative totals
        lines = cart_lines(cart.items)
        promocode = None
        if promocode_code:
            promocode = await self.promocodes.get_by_code(promocode_code)
            if promocode is None:
                raise NotFoundError("Promocode", promocode_code)
            validate_promocode(
                promocode,
                calculate_cart_totals(lines).subtotal,
                datetime.now(timezone.utc),
            )
        totals = calculate_cart_totals(lines, promocode)

        # 3. Stock decrement, ordered by product to keep lock order stable
        for item in sorted(cart.items, key=lambda i: i.product_id):
            if not await self.products.decrement_stock(item.product_id, item.quantity):
                product = products[item.product_id]
                raise InsufficientStockError(product.id, product.name, item.quantity, None)

        # 4. Order snapshot
        order = Order(
            order_number=generate_order_number(),
            user_id=user_id,
            customer_name=customer.name,
            customer_phone=customer.phone,
            customer_email=customer.email,
            customer_address=customer.address,
            comment=customer.comment,
            payment_method=customer.payment_method.value,
            payment_status=PaymentStatus.PENDING.value,
            status=OrderStatus.NEW.value,
            subtotal=totals.subtotal,
            discount=totals.discount,
            promocode_discount=totals.promocode_discount,
            total=totals.total,
            promocode_id=promocode.id if promocode else None,
            items=[
                OrderItem(
                    product_id=item.product_id,
                    product_name=products[item.product_id].name,
                    product_article=products[item.product_id].article,
                    product_image=products[item.product_id].image_url,
                    price=item.price,
                    applied_price=item.applied_price,
                    had_promotion=item.has_promotion,
                    quantity=item.quantity,
                )
                for item in cart.items
            ],
        )
        await self.orders.save(order)

        if promocode is not None and not await self.promocodes.increment_usage(promocode.id):
            raise PromocodeError(
                f"Promocode '{promocode.code}' usage limit reached",
                details={"code": promocode.code},
                error_code="PROMOCODE_LIMIT_REACHED",
            )

        # 5. Cart is consumed by the order
        await self.carts.delete(cart.id)
        return order

    def create_payment_link(self, order: Order) -> str | None:
        """Build the gateway payment link for an order.

        Returns:
            Payment URL, or None if the gateway is not configured.
        """
        if self.gateway is None or not self.gateway.is_configured:
            logger.info("Payment gateway not configured, no payment link", order_number=order.order_number)
            return None

        frontend = (self.frontend_url or "").rstrip("/")
        api = (self.api_url or "").rstrip("/")
        return self.gateway.build_payment_link(
            order,
            success_url=f"{frontend}/orders/{order.order_number}?payment=success" if frontend else None,
            fail_url=f"{frontend}/orders/{order.order_number}?payment=failed" if frontend else None,
            notification_url=f"{api}/webhooks/prodamus" if api else None,
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def get_order(self, order_number: str, user_id: str | None = None) -> Order:
        """Get an order by number.

        When ``user_id`` is given, orders of other users are reported
        as missing.

        Raises:
            NotFoundError: If the order does not exist or is not visible.
        """
        order = await self.orders.get_by_number(order_number)
        if order is None or (user_id is not None and order.user_id != user_id):
            raise NotFoundError("Order", order_number)
        return order

    async def list_user_orders(self, user_id: str) -> Sequence[Order]:
        """List a user's orders, newest first."""
        return await self.orders.list_by_user(user_id)

    # ------------------------------------------------------------------
    # Fulfillment
    # ------------------------------------------------------------------

    async def update_status(
        self,
        order_number: str,
        status: OrderStatus,
        tracking_number: str | None = None,
    ) -> Order:
        """Move an order through the fulfillment state machine.

        Args:
            order_number: Order number.
            status: Target fulfillment status.
            tracking_number: Required when shipping.

        Returns:
            Updated order.

        Raises:
            NotFoundError: If the order does not exist.
            InvalidStateTransitionError: If the transition is not allowed.
            BadRequestError: If shipping without a tracking number.
        """
        order = await self.get_order(order_number)
        current = OrderStatus(order.status)
        validate_order_transition(order_number, current, status)

        if status == OrderStatus.SHIPPED:
            if not tracking_number:
                raise BadRequestError(
                    "A tracking number is required to ship an order",
                    details={"order_number": order_number},
                    error_code="TRACKING_NUMBER_REQUIRED",
                )
            order.tracking_number = tracking_number
            order.shipped_at = datetime.now(timezone.utc)

        order.status = status.value
        await self.orders.save(order)
        await self.session.commit()

        logger.info(
            "Order status changed",
            order_number=order_number,
            from_status=current.value,
            to_status=status.value,
        )
        await self.notifier.notify_status_changed(order)
        return order

    async def cancel_order(self, order_number: str, user_id: str) -> Order:
        """Cancel an order on behalf of its owner.

        Only orders the store has not started fulfilling can be cancelled.
        Payment status is left as is; refunds are settled with the gateway.

        Raises:
            NotFoundError: If the order does not exist or belongs to another user.
            InvalidStateTransitionError: If fulfillment has already started.
        """
        order = await self.get_order(order_number, user_id=user_id)
        validate_customer_cancel(order_number, OrderStatus(order.status))
        return await self.update_status(order_number, OrderStatus.CANCELLED)
