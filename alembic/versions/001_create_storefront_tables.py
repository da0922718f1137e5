"""Create catalog, cart, order and payment event tables.

Revision ID: 001
Revises:
Create Date: 2026-10-19

"""

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "001"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps(updated: bool = True) -> list[sa.Column]:
    columns = [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    ]
    if updated:
        columns.append(
            sa.Column(
                "updated_at",
                sa.DateTime(timezone=True),
                nullable=False,
                server_default=sa.func.now(),
                onupdate=sa.func.now(),
            )
        )
    return columns


def upgrade() -> None:
    """Create storefront tables."""
    # Catalog
    op.create_table(
        "products",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("name", sa.String(500), nullable=False),
        sa.Column("article", sa.String(100), nullable=True, index=True),
        sa.Column("image_url", sa.String(1000), nullable=True),
        sa.Column("price", sa.Numeric(12, 2), nullable=False),
        sa.Column("promotion_price", sa.Numeric(12, 2), nullable=True),
        sa.Column("discount_price", sa.Numeric(12, 2), nullable=True),
        sa.Column("has_promotion", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("is_discount", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("quantity", sa.Integer, nullable=False, server_default="0"),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.true(), index=True),
        *_timestamps(),
        sa.CheckConstraint("quantity >= 0", name="ck_products_quantity_non_negative"),
    )

    op.create_table(
        "promocodes",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("code", sa.String(50), nullable=False, unique=True),
        sa.Column("discount_type", sa.String(10), nullable=False),
        sa.Column("discount_value", sa.Numeric(12, 2), nullable=False),
        sa.Column("min_order_amount", sa.Numeric(12, 2), nullable=True),
        sa.Column("valid_from", sa.DateTime(timezone=True), nullable=True),
        sa.Column("valid_to", sa.DateTime(timezone=True), nullable=True),
        sa.Column("max_uses", sa.Integer, nullable=True),
        sa.Column("used_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.true()),
        *_timestamps(updated=False),
    )

    # Carts
    op.create_table(
        "carts",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("user_id", sa.String(100), nullable=True, unique=True),
        sa.Column("session_token", sa.String(64), nullable=True, unique=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True, index=True),
        *_timestamps(),
    )

    op.create_table(
        "cart_items",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "cart_id",
            sa.String(36),
            sa.ForeignKey("carts.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
        sa.Column(
            "product_id",
            sa.String(36),
            sa.ForeignKey("products.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("quantity", sa.Integer, nullable=False),
        sa.Column("price", sa.Numeric(12, 2), nullable=False),
        sa.Column("applied_price", sa.Numeric(12, 2), nullable=False),
        sa.Column("has_promotion", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("allow_promocode", sa.Boolean, nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.UniqueConstraint("cart_id", "product_id", name="uq_cart_items_cart_product"),
    )

    # Orders
    op.create_table(
        "orders",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("order_number", sa.String(32), nullable=False, unique=True),
        sa.Column("user_id", sa.String(100), nullable=True, index=True),
        # Customer info
        sa.Column("customer_name", sa.String(255), nullable=False),
        sa.Column("customer_phone", sa.String(50), nullable=False),
        sa.Column("customer_email", sa.String(255), nullable=True),
        sa.Column("customer_address", sa.Text, nullable=True),
        sa.Column("comment", sa.Text, nullable=True),
        # Totals
        sa.Column("subtotal", sa.Numeric(12, 2), nullable=False),
        sa.Column("discount", sa.Numeric(12, 2), nullable=False),
        sa.Column("promocode_discount", sa.Numeric(12, 2), nullable=False),
        sa.Column("total", sa.Numeric(12, 2), nullable=False),
        sa.Column(
            "promocode_id",
            sa.String(36),
            sa.ForeignKey("promocodes.id", ondelete="SET NULL"),
            nullable=True,
        ),
        # Payment
        sa.Column("payment_method", sa.String(20), nullable=False, server_default="ONLINE"),
        sa.Column(
            "payment_status",
            sa.String(20),
            nullable=False,
            server_default="PENDING",
            index=True,
        ),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
        # Fulfillment
        sa.Column("status", sa.String(20), nullable=False, server_default="NEW", index=True),
        sa.Column("tracking_number", sa.String(100), nullable=True),
        sa.Column("shipped_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )

    op.create_table(
        "order_items",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "order_id",
            sa.String(36),
            sa.ForeignKey("orders.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
        sa.Column("product_id", sa.String(36), nullable=True),
        sa.Column("product_name", sa.String(500), nullable=False),
        sa.Column("product_article", sa.String(100), nullable=True),
        sa.Column("product_image", sa.String(1000), nullable=True),
        sa.Column("price", sa.Numeric(12, 2), nullable=False),
        sa.Column("applied_price", sa.Numeric(12, 2), nullable=False),
        sa.Column("had_promotion", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("quantity", sa.Integer, nullable=False),
        *_timestamps(updated=False),
    )

    # Payment notification audit log
    op.create_table(
        "payment_events",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("order_number", sa.String(100), nullable=False, index=True),
        sa.Column("payment_status", sa.String(255), nullable=True),
        sa.Column("outcome", sa.String(20), nullable=False),
        sa.Column("payload_hash", sa.String(64), nullable=False),
        sa.Column("correlation_id", sa.String(100), nullable=True),
        sa.Column(
            "received_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    )


def downgrade() -> None:
    """Drop storefront tables."""
    op.drop_table("payment_events")
    op.drop_table("order_items")
    op.drop_table("orders")
    op.drop_table("cart_items")
    op.drop_table("carts")
    op.drop_table("promocodes")
    op.drop_table("products")
