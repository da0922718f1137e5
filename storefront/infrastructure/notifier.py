"""Order notifications.

Provides:
- Notifier protocol used by the order and payment services
- TelegramNotifier posting to the Telegram Bot API with httpx
- LoggingNotifier used when no bot is configured

Delivery is best effort: failures are logged here and never reach
the caller.
"""

from typing import Protocol

import httpx
import structlog

from storefront.infrastructure.models import Order

logger = structlog.get_logger()

TELEGRAM_API_URL = "https://api.telegram.org"


class Notifier(Protocol):
    """Receiver of order lifecycle notifications."""

    async def notify_order_placed(self, order: Order) -> None: ...

    async def notify_payment_confirmed(self, order: Order) -> None: ...

    async def notify_status_changed(self, order: Order) -> None: ...

    async def close(self) -> None: ...


def format_order_placed(order: Order) -> str:
    """Render the admin message for a new order."""
    lines = [
        f"New order {order.order_number}",
        f"Customer: {order.customer_name}, {order.customer_phone}",
    ]
    if order.customer_email:
        lines.append(f"Email: {order.customer_email}")
    if order.customer_address:
        lines.append(f"Address: {order.customer_address}")
    lines.append("")
    for item in order.items:
        lines.append(f"- {item.product_name} x{item.quantity} @ {item.applied_price:.2f}")
    lines.append("")
    if order.promocode_discount:
        lines.append(f"Promocode discount: {order.promocode_discount:.2f}")
    lines.append(f"Total: {order.total:.2f}")
    lines.append(f"Payment: {order.payment_method}")
    if order.comment:
        lines.append(f"Comment: {order.comment}")
    return "\n".join(lines)


def format_payment_confirmed(order: Order) -> str:
    """Render the admin message for a paid order."""
    return f"Order {order.order_number} paid: {order.total:.2f}"


def format_status_changed(order: Order) -> str:
    """Render the message for a fulfillment status change."""
    message = f"Order {order.order_number} is now {order.status}"
    if order.tracking_number:
        message += f", tracking number {order.tracking_number}"
    return message


class TelegramNotifier:
    """Sends order notifications to an admin Telegram chat."""

    def __init__(
        self,
        bot_token: str,
        admin_chat_id: str,
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize notifier.

        Args:
            bot_token: Telegram bot token.
            admin_chat_id: Chat receiving order notifications.
            timeout: HTTP timeout in seconds.
            client: Optional preconfigured HTTP client.
        """
        self.admin_chat_id = admin_chat_id
        self._url = f"{TELEGRAM_API_URL}/bot{bot_token}/sendMessage"
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def _send(self, text: str, order_number: str) -> bool:
        try:
            response = await self._client.post(
                self._url,
                json={"chat_id": self.admin_chat_id, "text": text},
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning(
                "Telegram notification failed",
                order_number=order_number,
                error=str(e),
            )
            return False

        logger.debug("Telegram notification sent", order_number=order_number)
        return True

    async def notify_order_placed(self, order: Order) -> None:
        await self._send(format_order_placed(order), order.order_number)

    async def notify_payment_confirmed(self, order: Order) -> None:
        await self._send(format_payment_confirmed(order), order.order_number)

    async def notify_status_changed(self, order: Order) -> None:
        await self._send(format_status_changed(order), order.order_number)

    async def close(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()


class LoggingNotifier:
    """Writes notifications to the log instead of sending them."""

    async def notify_order_placed(self, order: Order) -> None:
        logger.info("Order placed", **order.to_dict())

    async def notify_payment_confirmed(self, order: Order) -> None:
        logger.info("Order payment confirmed", **order.to_dict())

    async def notify_status_changed(self, order: Order) -> None:
        logger.info("Order status changed", **order.to_dict())

    async def close(self) -> None:
        return None


def create_notifier(
    bot_token: str | None,
    admin_chat_id: str | None,
    timeout: float = 10.0,
) -> Notifier:
    """Pick the notifier matching the configuration."""
    if bot_token and admin_chat_id:
        return TelegramNotifier(bot_token, admin_chat_id, timeout=timeout)
    logger.info("Telegram is not configured, notifications go to the log")
    return LoggingNotifier()
