"""Domain exceptions.

All domain-level errors that represent business rule violations.
Each error carries a machine-readable ``error_code`` and the HTTP
status the API layer answers with.
"""

from typing import Any


class DomainError(Exception):
    """Base class for all domain exceptions.

    All domain errors should inherit from this class to allow
    catching domain-specific errors at the application layer.
    """

    status_code: int = 500
    default_error_code: str = "DOMAIN_ERROR"

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
        error_code: str | None = None,
    ) -> None:
        """Initialize domain error.

        Args:
            message: Human-readable error message.
            details: Optional dictionary with additional error context.
            error_code: Machine-readable code, defaults to the class code.
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.error_code = error_code or self.default_error_code


# ============================================================================
# Taxonomy
# ============================================================================


class BadRequestError(DomainError):
    """A request violates a business constraint (stock, promocode, quantity)."""

    status_code = 400
    default_error_code = "BAD_REQUEST"


class AuthenticationError(DomainError):
    """A caller could not be authenticated (e.g. bad webhook signature)."""

    status_code = 403
    default_error_code = "INVALID_SIGNATURE"


class NotFoundError(DomainError):
    """A referenced resource does not exist."""

    status_code = 404
    default_error_code = "NOT_FOUND"

    def __init__(self, resource: str, identifier: str | None = None) -> None:
        """Initialize not found error.

        Args:
            resource: Resource name (e.g. "Product", "Order").
            identifier: Identifier that was looked up.
        """
        if identifier is None:
            message = f"{resource} not found"
        else:
            message = f"{resource} with identifier '{identifier}' not found"
        super().__init__(
            message,
            details={"resource": resource, "identifier": identifier},
            error_code=f"{resource.upper().replace(' ', '_')}_NOT_FOUND",
        )


class ConflictError(DomainError):
    """The operation collides with the current state of a resource."""

    status_code = 409
    default_error_code = "CONFLICT"


# ============================================================================
# State Machine Errors
# ============================================================================


class InvalidStateTransitionError(ConflictError):
    """Raised when an invalid state transition is attempted.

    This error indicates that the requested operation cannot be performed
    in the current state of the entity.
    """

    default_error_code = "INVALID_STATE_TRANSITION"

    def __init__(
        self,
        entity_type: str,
        entity_id: str,
        current_state: str,
        target_state: str,
        allowed_transitions: list[str] | None = None,
    ) -> None:
        """Initialize invalid state transition error.

        Args:
            entity_type: Type of entity (e.g., "Order").
            entity_id: ID of the entity.
            current_state: Current state of the entity.
            target_state: Attempted target state.
            allowed_transitions: List of allowed target states from current state.
        """
        allowed = allowed_transitions or []
        message = (
            f"Cannot transition {entity_type}({entity_id}) "
            f"from '{current_state}' to '{target_state}'. "
            f"Allowed transitions: {allowed}"
        )
        super().__init__(
            message,
            details={
                "entity_type": entity_type,
                "entity_id": entity_id,
                "current_state": current_state,
                "target_state": target_state,
                "allowed_transitions": allowed,
            },
        )


# ============================================================================
# Cart / Order Errors
# ============================================================================


class InsufficientStockError(BadRequestError):
    """Requested quantity exceeds the live stock of a product."""

    default_error_code = "INSUFFICIENT_STOCK"

    def __init__(self, product_id: str, product_name: str, requested: int, available: int | None) -> None:
        """Initialize insufficient stock error.

        Args:
            product_id: ID of the product.
            product_name: Display name of the product.
            requested: Requested quantity.
            available: Stock seen at check time, if known.
        """
        super().__init__(
            f"Insufficient stock for '{product_name}': requested {requested}, available {available}",
            details={
                "product_id": product_id,
                "product_name": product_name,
                "requested": requested,
                "available": available,
            },
        )


class InvalidQuantityError(BadRequestError):
    """Raised when an invalid quantity is provided."""

    default_error_code = "INVALID_QUANTITY"

    def __init__(self, quantity: int, reason: str = "Quantity must be at least 1") -> None:
        super().__init__(
            f"Invalid quantity {quantity}: {reason}",
            details={"quantity": quantity, "reason": reason},
        )


class CartEmptyError(BadRequestError):
    """Raised when trying to place an order from an empty cart."""

    default_error_code = "CART_EMPTY"

    def __init__(self, cart_id: str) -> None:
        super().__init__(
            f"Cannot place an order from empty cart {cart_id}",
            details={"cart_id": cart_id},
        )


class PromocodeError(BadRequestError):
    """A promocode cannot be applied to the current order."""

    default_error_code = "INVALID_PROMOCODE"


# ============================================================================
# Payment Errors
# ============================================================================


class PaymentGatewayNotConfiguredError(DomainError):
    """Payment link requested while gateway credentials are missing."""

    default_error_code = "PAYMENT_GATEWAY_NOT_CONFIGURED"
