"""Domain layer - pricing rules, state machines and domain errors.

Example usage:
    from storefront.domain import PricedLine, calculate_cart_totals

    totals = calculate_cart_totals([
        PricedLine(price=Decimal("1000"), applied_price=Decimal("900"), quantity=2),
    ])
    print(totals.total)  # 1800.00
"""

from storefront.domain.exceptions import (
    AuthenticationError,
    BadRequestError,
    ConflictError,
    DomainError,
    InsufficientStockError,
    InvalidStateTransitionError,
    NotFoundError,
    PromocodeError,
)
from storefront.domain.pricing import (
    CartTotals,
    DiscountType,
    PricedLine,
    applied_price,
    calculate_cart_totals,
    discount_percent,
    validate_promocode,
)
from storefront.domain.state_machines import OrderStatus, PaymentMethod, PaymentStatus

__all__ = [
    # Exceptions
    "AuthenticationError",
    "BadRequestError",
    "ConflictError",
    "DomainError",
    "InsufficientStockError",
    "InvalidStateTransitionError",
    "NotFoundError",
    "PromocodeError",
    # Pricing
    "CartTotals",
    "DiscountType",
    "PricedLine",
    "applied_price",
    "calculate_cart_totals",
    "discount_percent",
    "validate_promocode",
    # State machines
    "OrderStatus",
    "PaymentMethod",
    "PaymentStatus",
]
