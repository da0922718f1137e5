"""Pricing rules.

Provides:
- Applied unit price under promotion/discount precedence
- Discount percentage for display
- Cart totals (subtotal, item discount, promocode discount, total)
- Promocode applicability checks
- Allocation of an order-level discount over charged lines

Every amount is a ``Decimal`` quantized to two places. Floats are
rejected outright so that rounding drift can never reach an order total.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Iterable, Protocol, Sequence

from storefront.domain.exceptions import PromocodeError

MONEY_QUANT = Decimal("0.01")
ZERO = Decimal("0.00")
HUNDRED = Decimal(100)


def to_money(value: Decimal | int | str) -> Decimal:
    """Convert a value to a two-place Decimal amount.

    Raises:
        TypeError: If a float is passed.
    """
    if isinstance(value, float):
        raise TypeError("Monetary amounts must not be floats")
    return Decimal(value).quantize(MONEY_QUANT, rounding=ROUND_HALF_UP)


class DiscountType(str, Enum):
    """How a promocode discount is computed."""

    PERCENT = "PERCENT"
    FIXED = "FIXED"


class PricedProduct(Protocol):
    """Product attributes that take part in price selection."""

    price: Decimal
    promotion_price: Decimal | None
    discount_price: Decimal | None
    has_promotion: bool
    is_discount: bool


class PromocodeTerms(Protocol):
    """Promocode attributes used by totals and validation."""

    code: str
    discount_type: str
    discount_value: Decimal
    min_order_amount: Decimal | None
    valid_from: datetime | None
    valid_to: datetime | None
    max_uses: int | None
    used_count: int
    is_active: bool


# ============================================================================
# Unit Prices
# ============================================================================


def applied_price(product: PricedProduct) -> Decimal:
    """Select the unit price actually charged for a product.

    Precedence, first match wins:
    1. active promotion with a promotion price
    2. active discount with a discount price
    3. base price

    The result never exceeds the base price and never drops below zero.

    Args:
        product: Product pricing attributes.

    Returns:
        Applied unit price.
    """
    price = to_money(product.price)

    if product.has_promotion and product.promotion_price is not None:
        candidate = to_money(product.promotion_price)
    elif product.is_discount and product.discount_price is not None:
        candidate = to_money(product.discount_price)
    else:
        return price

    return max(ZERO, min(candidate, price))


def discount_percent(price: Decimal, applied: Decimal) -> int | None:
    """Percentage saved on a unit, rounded half-up.

    Returns:
        None when nothing is saved, otherwise a whole percentage.
    """
    if applied >= price or price <= 0:
        return None
    ratio = HUNDRED * (price - applied) / price
    return int(ratio.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


# ============================================================================
# Cart Totals
# ============================================================================


@dataclass(frozen=True)
class PricedLine:
    """One cart line reduced to its commercial terms."""

    price: Decimal
    applied_price: Decimal
    quantity: int

    @property
    def line_total(self) -> Decimal:
        return to_money(self.applied_price * self.quantity)

    @property
    def line_discount(self) -> Decimal:
        return to_money((self.price - self.applied_price) * self.quantity)


@dataclass(frozen=True)
class CartTotals:
    """Computed totals for a cart or an order."""

    subtotal: Decimal
    discount: Decimal
    promocode_discount: Decimal
    total: Decimal
    items_count: int


def promocode_discount(promocode: PromocodeTerms, subtotal: Decimal) -> Decimal:
    """Discount granted by a promocode on a given subtotal.

    Percent codes are capped at 100%. The result is clamped to
    ``[0, subtotal]``.

    Args:
        promocode: Promocode terms.
        subtotal: Subtotal after item-level discounts.

    Returns:
        Promocode discount amount.
    """
    value = Decimal(promocode.discount_value)

    if DiscountType(promocode.discount_type) == DiscountType.PERCENT:
        percent = min(max(value, Decimal(0)), HUNDRED)
        amount = to_money(subtotal * percent / HUNDRED)
    else:
        amount = to_money(value)

    return min(max(amount, ZERO), subtotal)


def calculate_cart_totals(
    lines: Iterable[PricedLine],
    promocode: PromocodeTerms | None = None,
) -> CartTotals:
    """Calculate totals for a set of priced lines.

    Args:
        lines: Cart or order lines.
        promocode: Already validated promocode, if any.

    Returns:
        CartTotals with ``total == max(0, subtotal - promocode_discount)``.
    """
    subtotal = ZERO
    discount = ZERO
    items_count = 0

    for line in lines:
        subtotal += line.line_total
        discount += line.line_discount
        items_count += line.quantity

    promo = promocode_discount(promocode, subtotal) if promocode is not None else ZERO

    return CartTotals(
        subtotal=subtotal,
        discount=discount,
        promocode_discount=promo,
        total=max(ZERO, subtotal - promo),
        items_count=items_count,
    )


@dataclass(frozen=True)
class ChargeLine:
    """A line as charged at payment time, after order-level discounts."""

    index: int
    unit_price: Decimal
    quantity: int


def _from_cents(cents: int) -> Decimal:
    return to_money(Decimal(cents) * MONEY_QUANT)


def allocate_discount(lines: Sequence[PricedLine], discount: Decimal) -> list[ChargeLine]:
    """Spread an order-level discount over lines in whole cents.

    Shares are proportional to line totals, with leftover cents going to
    the first lines that can absorb them. A line whose discounted total
    does not divide evenly by its quantity is split into ``quantity - 1``
    units and a single unit carrying the remainder. The charged lines
    always sum to ``subtotal - discount``.

    Args:
        lines: Order lines in their original order.
        discount: Discount to spread, clamped to ``[0, subtotal]``.

    Returns:
        Charge lines; ``index`` points back into ``lines``.
    """
    totals = [int(line.line_total / MONEY_QUANT) for line in lines]
    subtotal = sum(totals)
    remaining = min(max(int(to_money(discount) / MONEY_QUANT), 0), subtotal)

    shares = [total * remaining // subtotal if subtotal else 0 for total in totals]
    leftover = remaining - sum(shares)
    for i, total in enumerate(totals):
        if leftover == 0:
            break
        extra = min(leftover, total - shares[i])
        shares[i] += extra
        leftover -= extra

    charged: list[ChargeLine] = []
    for index, (line, total, share) in enumerate(zip(lines, totals, shares)):
        unit, rest = divmod(total - share, line.quantity)
        if rest:
            charged.append(ChargeLine(index, _from_cents(unit), line.quantity - 1))
            charged.append(ChargeLine(index, _from_cents(unit + rest), 1))
        else:
            charged.append(ChargeLine(index, _from_cents(unit), line.quantity))
    return charged


# ============================================================================
# Promocode Validation
# ============================================================================


def validate_promocode(promocode: PromocodeTerms, subtotal: Decimal, now: datetime) -> None:
    """Check that a promocode may be applied to an order.

    Args:
        promocode: Promocode to check.
        subtotal: Subtotal the code would apply to.
        now: Current time (timezone-aware).

    Raises:
        PromocodeError: With a code naming the violated constraint.
    """
    details = {"code": promocode.code}

    if not promocode.is_active:
        raise PromocodeError(
            f"Promocode '{promocode.code}' is not active",
            details=details,
            error_code="PROMOCODE_INACTIVE",
        )

    if promocode.valid_from is not None and now < _aware(promocode.valid_from):
        raise PromocodeError(
            f"Promocode '{promocode.code}' is not valid yet",
            details=details,
            error_code="PROMOCODE_NOT_YET_VALID",
        )

    if promocode.valid_to is not None and now > _aware(promocode.valid_to):
        raise PromocodeError(
            f"Promocode '{promocode.code}' has expired",
            details=details,
            error_code="PROMOCODE_EXPIRED",
        )

    if promocode.max_uses is not None and promocode.used_count >= promocode.max_uses:
        raise PromocodeError(
            f"Promocode '{promocode.code}' usage limit reached",
            details=details,
            error_code="PROMOCODE_LIMIT_REACHED",
        )

    minimum = promocode.min_order_amount
    if minimum is not None and subtotal < to_money(minimum):
        raise PromocodeError(
            f"Promocode '{promocode.code}' requires a minimum order amount of {to_money(minimum)}",
            details={**details, "min_order_amount": str(to_money(minimum)), "subtotal": str(subtotal)},
            error_code="PROMOCODE_MIN_ORDER_AMOUNT",
        )


def _aware(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; treat them as UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value
