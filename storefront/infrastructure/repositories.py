"""Repositories for database operations.

Provides async data access for products, promocodes, carts and orders.
State changes that must be race-free (stock decrement, promocode usage,
payment status) are single conditional UPDATE statements whose
affected-row count tells the caller whether the change happened.
"""

from collections.abc import Sequence
from datetime import datetime

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.infrastructure.models import (
    Cart,
    CartItem,
    Order,
    PaymentEvent,
    Product,
    Promocode,
)


class ProductRepository:
    """Repository for Product reads and stock changes.

    Example usage:
        repo = ProductRepository(session)
        product = await repo.get_by_id(product_id)
        if not await repo.decrement_stock(product_id, 2):
            ...  # not enough stock left
    """

    def __init__(self, session: AsyncSession) -> None:
        """Initialize repository with database session.

        Args:
            session: Async SQLAlchemy session.
        """
        self.session = session

    async def get_by_id(self, product_id: str) -> Product | None:
        """Get product by ID, refreshing any cached copy with live values.

        Args:
            product_id: Product ID.

        Returns:
            Product if found, None otherwise.
        """
        query = (
            select(Product)
            .where(Product.id == product_id)
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def get_many(self, product_ids: Sequence[str]) -> dict[str, Product]:
        """Get products by IDs with live values.

        Returns:
            Mapping of product ID to product; missing IDs are absent.
        """
        if not product_ids:
            return {}
        query = (
            select(Product)
            .where(Product.id.in_(product_ids))
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(query)
        return {product.id: product for product in result.scalars().all()}

    async def decrement_stock(self, product_id: str, quantity: int) -> bool:
        """Atomically take ``quantity`` units out of stock.

        Args:
            product_id: Product ID.
            quantity: Units to remove.

        Returns:
            True if stock was sufficient and has been decremented.
        """
        stmt = (
            update(Product)
            .where(
                Product.id == product_id,
                Product.is_active.is_(True),
                Product.quantity >= quantity,
            )
            .values(quantity=Product.quantity - quantity)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1


class PromocodeRepository:
    """Repository for Promocode lookups and usage accounting."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get_by_code(self, code: str) -> Promocode | None:
        """Get promocode by its code (case-insensitive)."""
        query = (
            select(Promocode)
            .where(func.upper(Promocode.code) == code.strip().upper())
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def increment_usage(self, promocode_id: str) -> bool:
        """Atomically count one use of a promocode.

        Returns:
            True if the code was still under its usage cap.
        """
        stmt = (
            update(Promocode)
            .where(
                Promocode.id == promocode_id,
                or_(Promocode.max_uses.is_(None), Promocode.used_count < Promocode.max_uses),
            )
            .values(used_count=Promocode.used_count + 1)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1


class CartRepository:
    """Repository for Cart and CartItem persistence.

    Reads use ``populate_existing`` so that a cart fetched after a
    mutation reflects the current rows, items included.
    """

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def _get_one(self, *conditions) -> Cart | None:
        query = select(Cart).where(*conditions).execution_options(populate_existing=True)
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def get(self, cart_id: str) -> Cart | None:
        """Get cart by ID."""
        return await self._get_one(Cart.id == cart_id)

    async def get_by_user(self, user_id: str) -> Cart | None:
        """Get the cart owned by a user."""
        return await self._get_one(Cart.user_id == user_id)

    async def get_by_session(self, session_token: str) -> Cart | None:
        """Get the cart bound to an anonymous session token."""
        return await self._get_one(Cart.session_token == session_token)

    async def save(self, cart: Cart) -> Cart:
        """Add a cart to the session and flush it.

        Args:
            cart: Cart to save.

        Returns:
            Saved cart.
        """
        self.session.add(cart)
        await self.session.flush()
        return cart

    async def get_item(self, cart_id: str, item_id: str) -> CartItem | None:
        """Get an item that belongs to the given cart."""
        query = (
            select(CartItem)
            .where(CartItem.id == item_id, CartItem.cart_id == cart_id)
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def get_item_by_product(self, cart_id: str, product_id: str) -> CartItem | None:
        """Get the cart line for a product, if present."""
        query = (
            select(CartItem)
            .where(CartItem.cart_id == cart_id, CartItem.product_id == product_id)
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def save_item(self, item: CartItem) -> CartItem:
        """Add or update a cart item and flush it."""
        self.session.add(item)
        await self.session.flush()
        return item

    async def delete_item(self, item: CartItem) -> None:
        """Delete a single cart item."""
        await self.session.delete(item)
        await self.session.flush()

    async def clear(self, cart_id: str) -> int:
        """Delete every item of a cart.

        Returns:
            Number of deleted items.
        """
        result = await self.session.execute(
            delete(CartItem)
            .where(CartItem.cart_id == cart_id)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    async def delete(self, cart_id: str) -> None:
        """Delete a cart together with its items."""
        await self.clear(cart_id)
        await self.session.execute(
            delete(Cart).where(Cart.id == cart_id).execution_options(synchronize_session=False)
        )


class OrderRepository:
    """Repository for Order persistence and payment status changes."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def save(self, order: Order) -> Order:
        """Add an order (with its items) and flush it."""
        self.session.add(order)
        await self.session.flush()
        return order

    async def get_by_number(self, order_number: str) -> Order | None:
        """Get order by its external order number.

        Args:
            order_number: Order number shared with the payment gateway.

        Returns:
            Order if found, None otherwise.
        """
        query = (
            select(Order)
            .where(Order.order_number == order_number)
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def list_by_user(self, user_id: str) -> Sequence[Order]:
        """List a user's orders, newest first."""
        query = (
            select(Order)
            .where(Order.user_id == user_id)
            .order_by(Order.created_at.desc())
        )
        result = await self.session.execute(query)
        return result.scalars().all()

    async def transition_payment_status(
        self,
        order_number: str,
        from_status: str,
        to_status: str,
        paid_at: datetime | None = None,
    ) -> bool:
        """Move an order's payment status only if it is still ``from_status``.

        Args:
            order_number: Order number.
            from_status: Expected current payment status.
            to_status: New payment status.
            paid_at: Confirmation timestamp to record, if any.

        Returns:
            True if this call changed the row.
        """
        values: dict = {"payment_status": to_status}
        if paid_at is not None:
            values["paid_at"] = paid_at

        stmt = (
            update(Order)
            .where(Order.order_number == order_number, Order.payment_status == from_status)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1

    async def add_payment_event(self, event: PaymentEvent) -> PaymentEvent:
        """Record a verified payment notification."""
        self.session.add(event)
        await self.session.flush()
        return event

    async def list_payment_events(self, order_number: str) -> Sequence[PaymentEvent]:
        """List recorded payment notifications for an order, oldest first."""
        query = (
            select(PaymentEvent)
            .where(PaymentEvent.order_number == order_number)
            .order_by(PaymentEvent.received_at.asc())
        )
        result = await self.session.execute(query)
        return result.scalars().all()
