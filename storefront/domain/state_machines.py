"""State machines for orders.

An order carries two independent state machines: the payment status
driven by the payment gateway, and the fulfillment status driven by
store operators.
"""

from enum import Enum

from storefront.domain.exceptions import InvalidStateTransitionError


# ============================================================================
# Payment State Machine
# ============================================================================


class PaymentStatus(str, Enum):
    """Order payment states.

    State diagram:
        PENDING ──── success ────► PAID
          │
          └──────── failure ─────► FAILED
    """

    PENDING = "PENDING"
    PAID = "PAID"
    FAILED = "FAILED"

    def can_transition_to(self, target: "PaymentStatus") -> bool:
        """Check if transition to target state is valid.

        Args:
            target: Target state to transition to.

        Returns:
            True if transition is valid.
        """
        return target in _PAYMENT_TRANSITIONS.get(self, set())

    def allowed_transitions(self) -> list["PaymentStatus"]:
        """Get list of valid target states."""
        return sorted(_PAYMENT_TRANSITIONS.get(self, set()), key=lambda s: s.value)

    def is_terminal(self) -> bool:
        """Check if this is a terminal (final) state."""
        return len(_PAYMENT_TRANSITIONS.get(self, set())) == 0


_PAYMENT_TRANSITIONS: dict[PaymentStatus, set[PaymentStatus]] = {
    PaymentStatus.PENDING: {PaymentStatus.PAID, PaymentStatus.FAILED},
    PaymentStatus.PAID: set(),  # Terminal state
    PaymentStatus.FAILED: set(),  # Terminal state
}


# ============================================================================
# Fulfillment State Machine
# ============================================================================


class OrderStatus(str, Enum):
    """Order fulfillment states.

    State diagram:
        NEW ──────────────────────────────► CANCELLED
          │                                    ▲
          │ process                            │
          ▼                                    │
        PROCESSING ────────────────────────────┘
          │
          │ ship (tracking number required)
          ▼
        SHIPPED
          │
          │ deliver
          ▼
        DELIVERED
    """

    NEW = "NEW"
    PROCESSING = "PROCESSING"
    SHIPPED = "SHIPPED"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"

    def can_transition_to(self, target: "OrderStatus") -> bool:
        """Check if transition to target state is valid.

        Args:
            target: Target state to transition to.

        Returns:
            True if transition is valid.
        """
        return target in _ORDER_TRANSITIONS.get(self, set())

    def allowed_transitions(self) -> list["OrderStatus"]:
        """Get list of valid target states."""
        return sorted(_ORDER_TRANSITIONS.get(self, set()), key=lambda s: s.value)

    def is_terminal(self) -> bool:
        """Check if this is a terminal (final) state."""
        return len(_ORDER_TRANSITIONS.get(self, set())) == 0


_ORDER_TRANSITIONS: dict[OrderStatus, set[OrderStatus]] = {
    OrderStatus.NEW: {OrderStatus.PROCESSING, OrderStatus.CANCELLED},
    OrderStatus.PROCESSING: {OrderStatus.SHIPPED, OrderStatus.CANCELLED},
    OrderStatus.SHIPPED: {OrderStatus.DELIVERED},
    OrderStatus.DELIVERED: set(),  # Terminal state
    OrderStatus.CANCELLED: set(),  # Terminal state
}

# Customers may cancel only before the store starts fulfillment.
CUSTOMER_CANCELLABLE: frozenset[OrderStatus] = frozenset({OrderStatus.NEW})


class PaymentMethod(str, Enum):
    """How the customer pays for an order."""

    ONLINE = "ONLINE"
    SBP = "SBP"
    CASH_ON_DELIVERY = "CASH_ON_DELIVERY"


# ============================================================================
# Validation Helpers
# ============================================================================


def validate_payment_transition(
    order_number: str,
    current: PaymentStatus,
    target: PaymentStatus,
) -> None:
    """Validate a payment status transition.

    Raises:
        InvalidStateTransitionError: If transition is not allowed.
    """
    if not current.can_transition_to(target):
        raise InvalidStateTransitionError(
            entity_type="OrderPayment",
            entity_id=order_number,
            current_state=current.value,
            target_state=target.value,
            allowed_transitions=[s.value for s in current.allowed_transitions()],
        )


def validate_order_transition(
    order_number: str,
    current: OrderStatus,
    target: OrderStatus,
) -> None:
    """Validate a fulfillment status transition.

    Args:
        order_number: Order number, for the error message.
        current: Current fulfillment state.
        target: Requested fulfillment state.

    Raises:
        InvalidStateTransitionError: If transition is not allowed.
    """
    if not current.can_transition_to(target):
        raise InvalidStateTransitionError(
            entity_type="Order",
            entity_id=order_number,
            current_state=current.value,
            target_state=target.value,
            allowed_transitions=[s.value for s in current.allowed_transitions()],
        )


def validate_customer_cancel(order_number: str, current: OrderStatus) -> None:
    """Validate a cancellation requested by the order's owner.

    Raises:
        InvalidStateTransitionError: If fulfillment has already started.
    """
    if current not in CUSTOMER_CANCELLABLE:
        raise InvalidStateTransitionError(
            entity_type="Order",
            entity_id=order_number,
            current_state=current.value,
            target_state=OrderStatus.CANCELLED.value,
            allowed_transitions=[],
        )
    validate_order_transition(order_number, current, OrderStatus.CANCELLED)
