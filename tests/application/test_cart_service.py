"""Tests for the cart application service."""

from decimal import Decimal

import pytest

from storefront.application.cart_service import CartService
from storefront.domain.exceptions import (
    ConflictError,
    InsufficientStockError,
    InvalidQuantityError,
    NotFoundError,
    PromocodeError,
)


@pytest.fixture
def service(session) -> CartService:
    return CartService(session, cart_expires_days=7)


class TestGetOrCreate:
    """Tests for cart lookup and creation."""

    @pytest.mark.asyncio
    async def test_anonymous_cart_gets_session_token_and_expiry(self, service: CartService) -> None:
        cart = await service.get_or_create()

        assert cart.user_id is None
        assert len(cart.session_token) == 64
        assert cart.expires_at is not None

    @pytest.mark.asyncio
    async def test_anonymous_cart_found_by_token(self, service: CartService) -> None:
        cart = await service.get_or_create()
        again = await service.get_or_create(session_token=cart.session_token)
        assert again.id == cart.id

    @pytest.mark.asyncio
    async def test_unknown_token_creates_cart_with_that_token(self, service: CartService) -> None:
        cart = await service.get_or_create(session_token="client-token")
        assert cart.session_token == "client-token"

    @pytest.mark.asyncio
    async def test_user_cart_has_no_expiry(self, service: CartService) -> None:
        cart = await service.get_or_create(user_id="user-1")

        assert cart.user_id == "user-1"
        assert cart.session_token is None
        assert cart.expires_at is None
        assert (await service.get_or_create(user_id="user-1")).id == cart.id

    @pytest.mark.asyncio
    async def test_login_reowns_session_cart(self, service: CartService, make_product) -> None:
        product = make_product()
        anonymous = await service.get_or_create()
        await service.add_item(anonymous, product.id, 2)

        cart = await service.get_or_create(user_id="user-1", session_token=anonymous.session_token)

        assert cart.id == anonymous.id
        assert cart.user_id == "user-1"
        assert cart.session_token is None
        assert cart.expires_at is None
        assert [item.quantity for item in cart.items] == [2]

    @pytest.mark.asyncio
    async def test_existing_user_cart_wins_over_session(self, service: CartService) -> None:
        user_cart = await service.get_or_create(user_id="user-1")
        anonymous = await service.get_or_create()

        cart = await service.get_or_create(user_id="user-1", session_token=anonymous.session_token)

        assert cart.id == user_cart.id

    @pytest.mark.asyncio
    async def test_session_cart_of_other_user_is_not_shared(self, service: CartService) -> None:
        anonymous = await service.get_or_create()
        token = anonymous.session_token
        await service.get_or_create(user_id="user-1", session_token=token)

        cart = await service.get_or_create(user_id="user-2", session_token=token)

        assert cart.id != anonymous.id
        assert cart.user_id == "user-2"

    @pytest.mark.asyncio
    async def test_reown_conflict(self, session_factory) -> None:
        """A user cart created after the session cart was read blocks the re-own."""
        async with session_factory() as first, session_factory() as second:
            service = CartService(first)
            anonymous = await service.get_or_create()
            session_cart = await service.carts.get_by_session(anonymous.session_token)

            await CartService(second).get_or_create(user_id="user-1")

            with pytest.raises(ConflictError) as exc_info:
                await service._reown(session_cart, "user-1")
            assert exc_info.value.error_code == "CART_MERGE_CONFLICT"


class TestItems:
    """Tests for adding, updating and removing cart lines."""

    @pytest.mark.asyncio
    async def test_add_item_freezes_prices(self, service: CartService, make_product) -> None:
        product = make_product(
            price=Decimal("1000.00"),
            promotion_price=Decimal("700.00"),
            has_promotion=True,
        )
        cart = await service.get_or_create(user_id="user-1")

        cart = await service.add_item(cart, product.id, 2)

        [item] = cart.items
        assert item.quantity == 2
        assert item.price == Decimal("1000.00")
        assert item.applied_price == Decimal("700.00")
        assert item.has_promotion is True
        assert item.allow_promocode is False

    @pytest.mark.asyncio
    async def test_adding_same_product_increments_line(self, service: CartService, make_product) -> None:
        product = make_product(quantity=5)
        cart = await service.get_or_create(user_id="user-1")

        await service.add_item(cart, product.id, 2)
        cart = await service.add_item(cart, product.id, 3)

        assert [item.quantity for item in cart.items] == [5]

    @pytest.mark.asyncio
    async def test_add_beyond_stock_rejected(self, service: CartService, make_product) -> None:
        product = make_product(quantity=3)
        cart = await service.get_or_create(user_id="user-1")
        await service.add_item(cart, product.id, 2)

        with pytest.raises(InsufficientStockError) as exc_info:
            await service.add_item(cart, product.id, 2)

        assert exc_info.value.details["requested"] == 4
        assert exc_info.value.details["available"] == 3

    @pytest.mark.asyncio
    async def test_add_rejects_non_positive_quantity(self, service: CartService, make_product) -> None:
        product = make_product()
        cart = await service.get_or_create(user_id="user-1")

        with pytest.raises(InvalidQuantityError):
            await service.add_item(cart, product.id, 0)

    @pytest.mark.asyncio
    async def test_add_inactive_product_rejected(self, service: CartService, make_product) -> None:
        product = make_product(is_active=False)
        cart = await service.get_or_create(user_id="user-1")

        with pytest.raises(NotFoundError) as exc_info:
            await service.add_item(cart, product.id, 1)
        assert exc_info.value.error_code == "PRODUCT_NOT_FOUND"

    @pytest.mark.asyncio
    async def test_update_item_rechecks_stock(self, service: CartService, make_product) -> None:
        product = make_product(quantity=4)
        cart = await service.get_or_create(user_id="user-1")
        cart = await service.add_item(cart, product.id, 1)
        item_id = cart.items[0].id

        cart = await service.update_item(cart, item_id, 4)
        assert cart.items[0].quantity == 4

        with pytest.raises(InsufficientStockError):
            await service.update_item(cart, item_id, 5)

    @pytest.mark.asyncio
    async def test_update_item_of_other_cart_not_found(self, service: CartService, make_product) -> None:
        product = make_product()
        mine = await service.get_or_create(user_id="user-1")
        theirs = await service.add_item(await service.get_or_create(user_id="user-2"), product.id, 1)

        with pytest.raises(NotFoundError):
            await service.update_item(mine, theirs.items[0].id, 2)

    @pytest.mark.asyncio
    async def test_remove_and_clear(self, service: CartService, make_product) -> None:
        first, second = make_product(), make_product()
        cart = await service.get_or_create(user_id="user-1")
        await service.add_item(cart, first.id, 1)
        cart = await service.add_item(cart, second.id, 1)

        cart = await service.remove_item(cart, cart.items[0].id)
        assert len(cart.items) == 1

        cart = await service.clear(cart)
        assert cart.items == []

    @pytest.mark.asyncio
    async def test_remove_missing_item(self, service: CartService) -> None:
        cart = await service.get_or_create(user_id="user-1")
        with pytest.raises(NotFoundError):
            await service.remove_item(cart, "missing")


class TestMerge:
    """Tests for merging an anonymous cart into a user cart."""

    @pytest.mark.asyncio
    async def test_lines_summed_and_capped_at_stock(self, service: CartService, make_product) -> None:
        shared = make_product(quantity=5)
        only_session = make_product(quantity=10)
        sold_out = make_product(quantity=1)

        user_cart = await service.get_or_create(user_id="user-1")
        await service.add_item(user_cart, shared.id, 3)

        anonymous = await service.get_or_create()
        await service.add_item(anonymous, shared.id, 4)
        await service.add_item(anonymous, only_session.id, 2)
        await service.add_item(anonymous, sold_out.id, 1)

        cart = await service.merge_session_cart("user-1", anonymous.session_token)

        quantities = {item.product_id: item.quantity for item in cart.items}
        assert cart.id == user_cart.id
        assert quantities[shared.id] == 5
        assert quantities[only_session.id] == 2
        assert await service.carts.get_by_session(anonymous.session_token) is None

    @pytest.mark.asyncio
    async def test_merge_without_user_cart_reowns(self, service: CartService) -> None:
        anonymous = await service.get_or_create()

        cart = await service.merge_session_cart("user-1", anonymous.session_token)

        assert cart.id == anonymous.id
        assert cart.user_id == "user-1"


class TestSummary:
    """Tests for priced cart summaries."""

    @pytest.mark.asyncio
    async def test_summary_totals(self, service: CartService, make_product, make_promocode) -> None:
        discounted = make_product(price=Decimal("1000.00"), discount_price=Decimal("800.00"), is_discount=True)
        regular = make_product(price=Decimal("700.00"))
        make_promocode(code="MINUS300", discount_type="FIXED", discount_value=Decimal("300"))

        cart = await service.get_or_create(user_id="user-1")
        await service.add_item(cart, discounted.id, 2)
        cart = await service.add_item(cart, regular.id, 1)

        summary = await service.get_summary(cart, "minus300")

        assert summary.promocode == "MINUS300"
        assert summary.totals.subtotal == Decimal("2300.00")
        assert summary.totals.discount == Decimal("400.00")
        assert summary.totals.promocode_discount == Decimal("300.00")
        assert summary.totals.total == Decimal("2000.00")
        line = next(line for line in summary.items if line.product_id == discounted.id)
        assert line.discount_percent == 20
        assert line.line_total == Decimal("1600.00")

    @pytest.mark.asyncio
    async def test_unknown_promocode(self, service: CartService) -> None:
        cart = await service.get_or_create(user_id="user-1")
        with pytest.raises(NotFoundError) as exc_info:
            await service.get_summary(cart, "NOPE")
        assert exc_info.value.error_code == "PROMOCODE_NOT_FOUND"

    @pytest.mark.asyncio
    async def test_promocode_below_minimum(self, service: CartService, make_product, make_promocode) -> None:
        product = make_product(price=Decimal("100.00"))
        make_promocode(code="BIG", min_order_amount=Decimal("5000"))
        cart = await service.add_item(await service.get_or_create(user_id="user-1"), product.id, 1)

        with pytest.raises(PromocodeError) as exc_info:
            await service.get_summary(cart, "BIG")
        assert exc_info.value.error_code == "PROMOCODE_MIN_ORDER_AMOUNT"
