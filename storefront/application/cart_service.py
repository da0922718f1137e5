"""Cart application service.

Provides:
- Cart lookup/creation by user or anonymous session, with login re-own
- Explicit merge of a session cart into an existing user cart
- Item add/update/remove/clear, bounded by live stock
- Priced cart summaries with optional promocode preview
"""

import secrets
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.domain.exceptions import (
    ConflictError,
    InsufficientStockError,
    InvalidQuantityError,
    NotFoundError,
)
from storefront.domain.pricing import (
    CartTotals,
    PricedLine,
    PromocodeTerms,
    applied_price,
    calculate_cart_totals,
    discount_percent,
    to_money,
    validate_promocode,
)
from storefront.infrastructure.models import Cart, CartItem, Product
from storefront.infrastructure.repositories import (
    CartRepository,
    ProductRepository,
    PromocodeRepository,
)

logger = structlog.get_logger()

SESSION_TOKEN_BYTES = 32


# ============================================================================
# DTOs
# ============================================================================


@dataclass
class CartLineView:
    """Cart line with derived pricing for display."""

    item_id: str
    product_id: str
    product_name: str
    product_image: str | None
    quantity: int
    price: Decimal
    applied_price: Decimal
    discount_percent: int | None
    line_total: Decimal
    has_promotion: bool
    allow_promocode: bool


@dataclass
class CartSummary:
    """Cart contents with totals."""

    cart_id: str
    user_id: str | None
    session_token: str | None
    expires_at: datetime | None
    totals: CartTotals
    items: list[CartLineView] = field(default_factory=list)
    promocode: str | None = None


def cart_lines(items: list[CartItem]) -> list[PricedLine]:
    """Reduce cart items to their frozen commercial terms."""
    return [
        PricedLine(price=item.price, applied_price=item.applied_price, quantity=item.quantity)
        for item in items
    ]


def generate_session_token() -> str:
    """Generate an unguessable anonymous cart token."""
    return secrets.token_hex(SESSION_TOKEN_BYTES)


# ============================================================================
# Service
# ============================================================================


class CartService:
    """Application service for shopping carts.

    Each mutating operation is its own unit of work and commits before
    returning the reloaded cart.
    """

    def __init__(self, session: AsyncSession, cart_expires_days: int = 30) -> None:
        """Initialize cart service.

        Args:
            session: Request-scoped database session.
            cart_expires_days: Lifetime of anonymous carts.
        """
        self.session = session
        self.cart_expires_days = cart_expires_days
        self.carts = CartRepository(session)
        self.products = ProductRepository(session)
        self.promocodes = PromocodeRepository(session)

    def _anonymous_expiry(self) -> datetime:
        return datetime.now(timezone.utc) + timedelta(days=self.cart_expires_days)

    async def _reload(self, cart_id: str) -> Cart:
        cart = await self.carts.get(cart_id)
        if cart is None:
            raise NotFoundError("Cart", cart_id)
        return cart

    async def _touch(self, cart: Cart) -> None:
        if cart.user_id is None:
            cart.expires_at = self._anonymous_expiry()
        cart.updated_at = datetime.now(timezone.utc)
        await self.session.flush()

    # ------------------------------------------------------------------
    # Lookup / ownership
    # ------------------------------------------------------------------

    async def get_or_create(
        self,
        user_id: str | None = None,
        session_token: str | None = None,
    ) -> Cart:
        """Find the caller's cart or create one.

        Lookup order is user first, then session. An unowned session
        cart is re-owned by the user when the user has no cart yet.

        Args:
            user_id: Authenticated user ID.
            session_token: Anonymous session token.

        Returns:
            The caller's cart.

        Raises:
            ConflictError: If re-owning would give the user a second cart.
        """
        if user_id:
            cart = await self.carts.get_by_user(user_id)
            if cart is not None:
                return cart

        if session_token:
            session_cart = await self.carts.get_by_session(session_token)
            if session_cart is not None:
                if not user_id:
                    return session_cart
                if session_cart.user_id is None:
                    return await self._reown(session_cart, user_id)
                logger.info(
                    "Session cart belongs to another user, creating a new cart",
                    cart_id=session_cart.id,
                    user_id=user_id,
                )
                session_token = None

        return await self._create(user_id, session_token)

    async def _reown(self, cart: Cart, user_id: str) -> Cart:
        cart_id = cart.id
        cart.user_id = user_id
        cart.session_token = None
        cart.expires_at = None
        try:
            await self.carts.save(cart)
            await self.session.commit()
        except IntegrityError as e:
            await self.session.rollback()
            logger.warning("Cart re-own collided with an existing user cart", cart_id=cart_id, user_id=user_id)
            raise ConflictError(
                f"User {user_id} already has a cart; discard the session cart to continue",
                details={"cart_id": cart_id, "user_id": user_id},
                error_code="CART_MERGE_CONFLICT",
            ) from e

        logger.info("Session cart re-owned on login", cart_id=cart_id, user_id=user_id)
        return await self._reload(cart_id)

    async def _create(self, user_id: str | None, session_token: str | None) -> Cart:
        token = None if user_id else (session_token or generate_session_token())
        cart = Cart(
            user_id=user_id or None,
            session_token=token,
            expires_at=None if user_id else self._anonymous_expiry(),
        )
        try:
            await self.carts.save(cart)
            await self.session.commit()
        except IntegrityError:
            # A concurrent request created the same cart first.
            await self.session.rollback()
            existing = (
                await self.carts.get_by_user(user_id)
                if user_id
                else await self.carts.get_by_session(token)
            )
            if existing is None:
                raise
            return existing

        logger.info("Cart created", cart_id=cart.id, user_id=user_id, anonymous=user_id is None)
        return await self._reload(cart.id)

    async def merge_session_cart(self, user_id: str, session_token: str) -> Cart:
        """Merge an anonymous cart into the user's cart after login.

        When only one of the carts exists this behaves like
        ``get_or_create``. When both exist the session lines are moved
        into the user cart, quantities summed and capped at live stock,
        and the session cart is deleted.

        Args:
            user_id: Authenticated user ID.
            session_token: Anonymous session token.

        Returns:
            The user's cart.
        """
        session_cart = await self.carts.get_by_session(session_token)
        user_cart = await self.carts.get_by_user(user_id)

        if session_cart is None or session_cart.user_id == user_id:
            return await self.get_or_create(user_id, session_token)
        if session_cart.user_id is not None:
            return await self.get_or_create(user_id)
        if user_cart is None:
            return await self.get_or_create(user_id, session_token)

        products = await self.products.get_many([item.product_id for item in session_cart.items])
        user_lines = {item.product_id: item for item in user_cart.items}
        moved = 0

        for item in session_cart.items:
            product = products.get(item.product_id)
            if product is None or not product.is_active or product.quantity < 1:
                continue

            target = user_lines.get(item.product_id)
            if target is None:
                target = CartItem(cart_id=user_cart.id, product_id=product.id, quantity=0)
            target.quantity = min(target.quantity + item.quantity, product.quantity)
            self._apply_pricing(target, product)
            await self.carts.save_item(target)
            moved += 1

        await self.carts.delete(session_cart.id)
        await self.session.commit()

        logger.info(
            "Session cart merged into user cart",
            user_id=user_id,
            cart_id=user_cart.id,
            lines_moved=moved,
        )
        return await self._reload(user_cart.id)

    # ------------------------------------------------------------------
    # Items
    # ------------------------------------------------------------------

    @staticmethod
    def _apply_pricing(item: CartItem, product: Product) -> None:
        item.price = to_money(product.price)
        item.applied_price = applied_price(product)
        item.has_promotion = bool(product.has_promotion)
        item.allow_promocode = not product.has_promotion
        item.product = product

    async def _get_sellable_product(self, product_id: str) -> Product:
        product = await self.products.get_by_id(product_id)
        if product is None or not product.is_active:
            raise NotFoundError("Product", product_id)
        return product

    async def add_item(self, cart: Cart, product_id: str, quantity: int) -> Cart:
        """Add a product to the cart or increase its quantity.

        Args:
            cart: Cart to modify.
            product_id: Product to add.
            quantity: Units to add.

        Returns:
            Updated cart.

        Raises:
            InvalidQuantityError: If quantity is below 1.
            NotFoundError: If the product is missing or inactive.
            InsufficientStockError: If live stock cannot cover the line.
        """
        if quantity < 1:
            raise InvalidQuantityError(quantity)

        product = await self._get_sellable_product(product_id)
        item = await self.carts.get_item_by_product(cart.id, product_id)
        new_quantity = (item.quantity if item else 0) + quantity

        if new_quantity > product.quantity:
            raise InsufficientStockError(product.id, product.name, new_quantity, product.quantity)

        if item is None:
            item = CartItem(cart_id=cart.id, product_id=product.id, quantity=new_quantity)
        else:
            item.quantity = new_quantity
        self._apply_pricing(item, product)

        await self.carts.save_item(item)
        await self._touch(cart)
        await self.session.commit()

        logger.info(
            "Cart item added",
            cart_id=cart.id,
            product_id=product_id,
            quantity=new_quantity,
        )
        return await self._reload(cart.id)

    async def update_item(self, cart: Cart, item_id: str, quantity: int) -> Cart:
        """Set the quantity of a cart line, re-checking live stock.

        Raises:
            InvalidQuantityError: If quantity is below 1.
            NotFoundError: If the item or its product is gone.
            InsufficientStockError: If live stock cannot cover the line.
        """
        if quantity < 1:
            raise InvalidQuantityError(quantity)

        item = await self.carts.get_item(cart.id, item_id)
        if item is None:
            raise NotFoundError("Cart item", item_id)

        product = await self._get_sellable_product(item.product_id)
        if quantity > product.quantity:
            raise InsufficientStockError(product.id, product.name, quantity, product.quantity)

        item.quantity = quantity
        self._apply_pricing(item, product)

        await self.carts.save_item(item)
        await self._touch(cart)
        await self.session.commit()

        logger.info("Cart item updated", cart_id=cart.id, item_id=item_id, quantity=quantity)
        return await self._reload(cart.id)

    async def remove_item(self, cart: Cart, item_id: str) -> Cart:
        """Remove a line from the cart.

        Raises:
            NotFoundError: If the item is not in the cart.
        """
        item = await self.carts.get_item(cart.id, item_id)
        if item is None:
            raise NotFoundError("Cart item", item_id)

        await self.carts.delete_item(item)
        await self._touch(cart)
        await self.session.commit()

        logger.info("Cart item removed", cart_id=cart.id, item_id=item_id)
        return await self._reload(cart.id)

    async def clear(self, cart: Cart) -> Cart:
        """Remove every line from the cart."""
        removed = await self.carts.clear(cart.id)
        await self._touch(cart)
        await self.session.commit()

        logger.info("Cart cleared", cart_id=cart.id, items_removed=removed)
        return await self._reload(cart.id)

    # ------------------------------------------------------------------
    # Pricing
    # ------------------------------------------------------------------

    @staticmethod
    def totals(cart: Cart, promocode: PromocodeTerms | None = None) -> CartTotals:
        """Compute totals for a cart from its frozen line prices."""
        return calculate_cart_totals(cart_lines(cart.items), promocode)

    async def get_summary(self, cart: Cart, promocode_code: str | None = None) -> CartSummary:
        """Build a priced view of the cart.

        Args:
            cart: Cart to summarize.
            promocode_code: Optional promocode to preview.

        Returns:
            CartSummary with lines and totals.

        Raises:
            NotFoundError: If the promocode does not exist.
            PromocodeError: If the promocode cannot be applied.
        """
        promocode = None
        if promocode_code:
            promocode = await self.promocodes.get_by_code(promocode_code)
            if promocode is None:
                raise NotFoundError("Promocode", promocode_code)
            subtotal = self.totals(cart).subtotal
            validate_promocode(promocode, subtotal, datetime.now(timezone.utc))

        lines = [
            CartLineView(
                item_id=item.id,
                product_id=item.product_id,
                product_name=item.product.name,
                product_image=item.product.image_url,
                quantity=item.quantity,
                price=item.price,
                applied_price=item.applied_price,
                discount_percent=discount_percent(item.price, item.applied_price),
                line_total=to_money(item.applied_price * item.quantity),
                has_promotion=item.has_promotion,
                allow_promocode=item.allow_promocode,
            )
            for item in cart.items
        ]

        return CartSummary(
            cart_id=cart.id,
            user_id=cart.user_id,
            session_token=cart.session_token,
            expires_at=cart.expires_at,
            totals=self.totals(cart, promocode),
            items=lines,
            promocode=promocode.code if promocode else None,
        )
