"""Payment reconciliation service.

Provides:
- Idempotent payment confirmation (PENDING -> PAID)
- Idempotent payment failure (PENDING -> FAILED)
- Gateway notification handling with signature verification
- Audit log of verified notifications

The check-and-set of the payment status is a conditional UPDATE; the
affected-row count decides whether this call did the work and so
whether side effects (notifications) run.
"""

import hashlib
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import InvalidOperation
from enum import Enum

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.domain.exceptions import (
    AuthenticationError,
    InvalidStateTransitionError,
    NotFoundError,
)
from storefront.domain.pricing import to_money
from storefront.domain.state_machines import PaymentStatus, validate_payment_transition
from storefront.infrastructure.models import Order, PaymentEvent
from storefront.infrastructure.notifier import Notifier
from storefront.infrastructure.prodamus import (
    ProdamusGateway,
    canonicalize,
    is_payment_failed,
    is_payment_successful,
    parse_products,
)
from storefront.infrastructure.repositories import OrderRepository

logger = structlog.get_logger()


# ============================================================================
# Types
# ============================================================================


class WebhookOutcome(str, Enum):
    """What a payment notification did."""

    PROCESSED = "processed"
    DUPLICATE = "duplicate"
    IGNORED = "ignored"


@dataclass
class PaymentNotification:
    """Validated payment notification from the gateway.

    Attributes:
        order_number: Our order number (gateway field ``order_num``).
        payment_status: Gateway status code.
        status_description: Free-text status description.
        amount: Paid amount as sent by the gateway.
        products: Raw JSON ``products`` field.
        fields: Every field the gateway sent, ``sign`` included.
    """

    order_number: str
    payment_status: str
    status_description: str | None = None
    amount: str | None = None
    products: str | None = None
    fields: dict[str, str] = field(default_factory=dict)


@dataclass
class WebhookResult:
    """Acknowledgement returned to the gateway."""

    outcome: WebhookOutcome
    order_number: str
    message: str
    payment_status: str | None = None


# ============================================================================
# Service
# ============================================================================


class PaymentService:
    """Applies gateway payment outcomes to orders exactly once."""

    def __init__(
        self,
        session: AsyncSession,
        notifier: Notifier,
        gateway: ProdamusGateway,
    ) -> None:
        """Initialize payment service.

        Args:
            session: Request-scoped database session.
            notifier: Order notification collaborator.
            gateway: Codec used to verify notification signatures.
        """
        self.session = session
        self.notifier = notifier
        self.gateway = gateway
        self.orders = OrderRepository(session)

    async def _transition(self, order_number: str, target: PaymentStatus) -> tuple[Order, bool]:
        """Move a PENDING order to ``target``.

        Returns:
            The current order and whether this call changed it.

        Raises:
            NotFoundError: If the order does not exist.
            InvalidStateTransitionError: If the order already settled
                in the other terminal state.
        """
        try:
            order = await self.orders.get_by_number(order_number)
            if order is None:
                raise NotFoundError("Order", order_number)

            changed = await self.orders.transition_payment_status(
                order_number,
                from_status=PaymentStatus.PENDING.value,
                to_status=target.value,
                paid_at=datetime.now(timezone.utc) if target == PaymentStatus.PAID else None,
            )
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise

        order = await self.orders.get_by_number(order_number)
        if changed:
            return order, True

        current = PaymentStatus(order.payment_status)
        if current != target:
            validate_payment_transition(order_number, current, target)
        return order, False

    async def confirm_payment(self, order_number: str) -> Order:
        """Mark an order as paid.

        Safe to call any number of times: only the call that moves the
        order from PENDING to PAID records the payment time and sends
        the confirmation notification.

        Args:
            order_number: Order number.

        Returns:
            The paid order.

        Raises:
            NotFoundError: If the order does not exist.
            InvalidStateTransitionError: If the payment already failed.
        """
        order, changed = await self._confirm(order_number)
        if not changed:
            logger.info("Payment already confirmed", order_number=order_number)
        return order

    async def fail_payment(self, order_number: str) -> Order:
        """Mark an order's payment as failed.

        Raises:
            NotFoundError: If the order does not exist.
            InvalidStateTransitionError: If the order is already paid.
        """
        order, changed = await self._transition(order_number, PaymentStatus.FAILED)
        if changed:
            logger.info("Payment failed", order_number=order_number)
        else:
            logger.info("Payment failure already recorded", order_number=order_number)
        return order

    # ------------------------------------------------------------------
    # Gateway notifications
    # ------------------------------------------------------------------

    async def handle_notification(
        self,
        notification: PaymentNotification,
        correlation_id: str | None = None,
    ) -> WebhookResult:
        """Verify and apply a gateway payment notification.

        Business dead ends (unknown order, order settled the other way,
        non-final status) are acknowledged as ``ignored`` so the gateway
        stops retrying. Store failures propagate.

        Args:
            notification: Validated notification.
            correlation_id: Request ID for the audit log.

        Returns:
            WebhookResult describing the outcome.

        Raises:
            AuthenticationError: If the signature is invalid.
        """
        if not self.gateway.verify(notification.fields):
            raise AuthenticationError(
                "Payment notification signature verification failed",
                details={"order_number": notification.order_number},
            )

        order_number = notification.order_number
        status = notification.payment_status
        description = notification.status_description

        if is_payment_successful(status, description):
            target = PaymentStatus.PAID
        elif is_payment_failed(status, description):
            target = PaymentStatus.FAILED
        else:
            result = WebhookResult(
                outcome=WebhookOutcome.IGNORED,
                order_number=order_number,
                message=f"Payment status '{status}' does not settle the order",
            )
            await self._record(notification, result, correlation_id)
            return result

        try:
            if target == PaymentStatus.PAID:
                order, changed = await self._confirm(order_number)
            else:
                order, changed = await self._transition(order_number, PaymentStatus.FAILED)
        except NotFoundError:
            logger.warning("Payment notification for unknown order", order_number=order_number)
            result = WebhookResult(
                outcome=WebhookOutcome.IGNORED,
                order_number=order_number,
                message="Order not found",
            )
        except InvalidStateTransitionError as e:
            logger.warning(
                "Payment notification conflicts with settled order",
                order_number=order_number,
                current_state=e.details.get("current_state"),
                target_state=target.value,
            )
            result = WebhookResult(
                outcome=WebhookOutcome.IGNORED,
                order_number=order_number,
                message=e.message,
                payment_status=e.details.get("current_state"),
            )
        else:
            if changed and target == PaymentStatus.PAID:
                self._check_amount(order, notification)
            result = WebhookResult(
                outcome=WebhookOutcome.PROCESSED if changed else WebhookOutcome.DUPLICATE,
                order_number=order_number,
                message=f"Payment {target.value.lower()}" if changed else "Already processed",
                payment_status=order.payment_status,
            )

        await self._record(notification, result, correlation_id)
        return result

    async def _confirm(self, order_number: str) -> tuple[Order, bool]:
        order, changed = await self._transition(order_number, PaymentStatus.PAID)
        if changed:
            logger.info("Payment confirmed", order_number=order_number, total=str(order.total))
            await self.notifier.notify_payment_confirmed(order)
        return order, changed

    def _check_amount(self, order: Order, notification: PaymentNotification) -> None:
        if not notification.amount:
            return
        try:
            paid = to_money(notification.amount)
        except InvalidOperation:
            logger.warning("Unparseable payment amount", order_number=order.order_number)
            return
        if paid != to_money(order.total):
            logger.warning(
                "Paid amount differs from order total",
                order_number=order.order_number,
                paid=str(paid),
                total=str(order.total),
                products=len(parse_products(notification.products)),
            )

    async def _record(
        self,
        notification: PaymentNotification,
        result: WebhookResult,
        correlation_id: str | None,
    ) -> None:
        payload_hash = hashlib.sha256(canonicalize(notification.fields).encode("utf-8")).hexdigest()
        await self.orders.add_payment_event(
            PaymentEvent(
                order_number=notification.order_number,
                payment_status=notification.payment_status,
                outcome=result.outcome.value,
                payload_hash=payload_hash,
                correlation_id=correlation_id,
            )
        )
        await self.session.commit()

        logger.info(
            "Payment notification handled",
            order_number=notification.order_number,
            outcome=result.outcome.value,
            payment_status=notification.payment_status,
        )

    async def list_events(self, order_number: str) -> list[PaymentEvent]:
        """Recorded notifications for an order, oldest first."""
        return list(await self.orders.list_payment_events(order_number))
