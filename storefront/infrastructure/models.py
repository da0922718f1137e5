"""SQLAlchemy models for database tables.

Provides ORM models for products, carts, orders, promocodes and the
payment event log.
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Any
from uuid import uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship, validates

from storefront.domain.state_machines import OrderStatus, PaymentMethod, PaymentStatus
from storefront.infrastructure.database import Base

Money = Numeric(12, 2, asdecimal=True)


def _uuid() -> str:
    return str(uuid4())


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


# ============================================================================
# Catalog
# ============================================================================


class Product(Base):
    """Product in the catalog.

    Catalog management lives elsewhere; checkout reads prices and
    decrements ``quantity`` (stock).

    Attributes:
        price: Base price.
        promotion_price: Price while ``has_promotion`` is set.
        discount_price: Price while ``is_discount`` is set.
        quantity: Units in stock.
        is_active: Whether the product can be sold.
    """

    __tablename__ = "products"
    __table_args__ = (CheckConstraint("quantity >= 0", name="ck_products_quantity_non_negative"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    name: Mapped[str] = mapped_column(String(500), nullable=False)
    article: Mapped[str | None] = mapped_column(String(100), nullable=True, index=True)
    image_url: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    price: Mapped[Decimal] = mapped_column(Money, nullable=False)
    promotion_price: Mapped[Decimal | None] = mapped_column(Money, nullable=True)
    discount_price: Mapped[Decimal | None] = mapped_column(Money, nullable=True)
    has_promotion: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_discount: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_now)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_now, onupdate=_now
    )

    def __repr__(self) -> str:
        return f"<Product(id={self.id}, name={self.name!r}, quantity={self.quantity})>"


class Promocode(Base):
    """Promotional code applied at checkout."""

    __tablename__ = "promocodes"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    code: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    discount_type: Mapped[str] = mapped_column(String(10), nullable=False)
    discount_value: Mapped[Decimal] = mapped_column(Money, nullable=False)
    min_order_amount: Mapped[Decimal | None] = mapped_column(Money, nullable=True)
    valid_from: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    valid_to: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    max_uses: Mapped[int | None] = mapped_column(Integer, nullable=True)
    used_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_now)


# ============================================================================
# Cart
# ============================================================================


class Cart(Base):
    """Shopping cart owned by a user or by an anonymous session."""

    __tablename__ = "carts"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    user_id: Mapped[str | None] = mapped_column(String(100), nullable=True, unique=True)
    session_token: Mapped[str | None] = mapped_column(String(64), nullable=True, unique=True)
    expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_now)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_now, onupdate=_now
    )

    items: Mapped[list["CartItem"]] = relationship(
        back_populates="cart",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="CartItem.created_at",
    )


class CartItem(Base):
    """Line item of a cart with prices frozen at the last add/update."""

    __tablename__ = "cart_items"
    __table_args__ = (UniqueConstraint("cart_id", "product_id", name="uq_cart_items_cart_product"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    cart_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("carts.id", ondelete="CASCADE"), nullable=False, index=True
    )
    product_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("products.id", ondelete="CASCADE"), nullable=False
    )
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    price: Mapped[Decimal] = mapped_column(Money, nullable=False)
    applied_price: Mapped[Decimal] = mapped_column(Money, nullable=False)
    has_promotion: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    allow_promocode: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_now)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_now, onupdate=_now
    )

    cart: Mapped[Cart] = relationship(back_populates="items")
    product: Mapped[Product] = relationship(lazy="selectin")


# ============================================================================
# Order Models
# ============================================================================


class Order(Base):
    """Order created from a cart at checkout.

    Commercial terms are a snapshot; only ``payment_status`` (payment
    reconciliation) and ``status`` (fulfillment) change afterwards.
    """

    __tablename__ = "orders"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    order_number: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)
    user_id: Mapped[str | None] = mapped_column(String(100), nullable=True, index=True)

    # Customer info
    customer_name: Mapped[str] = mapped_column(String(255), nullable=False)
    customer_phone: Mapped[str] = mapped_column(String(50), nullable=False)
    customer_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    customer_address: Mapped[str | None] = mapped_column(Text, nullable=True)
    comment: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Totals
    subtotal: Mapped[Decimal] = mapped_column(Money, nullable=False)
    discount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    promocode_discount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    total: Mapped[Decimal] = mapped_column(Money, nullable=False)
    promocode_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("promocodes.id", ondelete="SET NULL"), nullable=True
    )

    # Payment
    payment_method: Mapped[str] = mapped_column(
        String(20), nullable=False, default=PaymentMethod.ONLINE.value
    )
    payment_status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=PaymentStatus.PENDING.value, index=True
    )
    paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # Fulfillment
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=OrderStatus.NEW.value, index=True
    )
    tracking_number: Mapped[str | None] = mapped_column(String(100), nullable=True)
    shipped_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_now)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_now, onupdate=_now
    )

    items: Mapped[list["OrderItem"]] = relationship(
        back_populates="order",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "order_number": self.order_number,
            "payment_status": self.payment_status,
            "status": self.status,
            "total": str(self.total),
            "customer_name": self.customer_name,
            "created_at": _iso(self.created_at),
            "paid_at": _iso(self.paid_at),
        }


class OrderItem(Base):
    """Immutable copy of a cart line's commercial terms."""

    __tablename__ = "order_items"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    order_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True
    )
    product_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    product_name: Mapped[str] = mapped_column(String(500), nullable=False)
    product_article: Mapped[str | None] = mapped_column(String(100), nullable=True)
    product_image: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    price: Mapped[Decimal] = mapped_column(Money, nullable=False)
    applied_price: Mapped[Decimal] = mapped_column(Money, nullable=False)
    had_promotion: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_now)

    order: Mapped[Order] = relationship(back_populates="items")


# ============================================================================
# Payment Event Log
# ============================================================================


class PaymentEvent(Base):
    """Verified payment gateway notification, kept for audit.

    Every notification that passed signature verification is stored
    with the outcome the reconciler produced for it.
    """

    __tablename__ = "payment_events"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    order_number: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    payment_status: Mapped[str | None] = mapped_column(String(255), nullable=True)
    outcome: Mapped[str] = mapped_column(String(20), nullable=False)
    payload_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    correlation_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    received_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_now)

    @validates("order_number", "payment_status", "correlation_id")
    def _clip(self, key: str, value: str | None) -> str | None:
        # Gateway-supplied text is stored clipped to the column width.
        if value is None:
            return None
        return value[: self.__table__.c[key].type.length]
