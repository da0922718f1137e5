"""Prodamus payment gateway codec.

Provides:
- Canonical signing string for a flat parameter map
- HMAC-SHA256 signing and constant-time verification
- Payment link construction for checkout redirects
- Classification of gateway payment statuses
- Parsing of the itemized ``products`` field of notifications
"""

import hashlib
import hmac
import json
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Protocol
from urllib.parse import urlencode

import structlog

from storefront.domain.exceptions import PaymentGatewayNotConfiguredError
from storefront.domain.pricing import PricedLine, allocate_discount, to_money

logger = structlog.get_logger()

SIGNATURE_FIELD = "sign"

# Matched case-insensitively as substrings of the status code or its description.
SUCCESS_VOCABULARY: tuple[str, ...] = ("success", "успех", "успешная оплата")
FAILURE_VOCABULARY: tuple[str, ...] = (
    "fail",
    "error",
    "denied",
    "rejected",
    "cancel",
    "отказ",
    "ошибка",
)


# ============================================================================
# Canonical String and Signature
# ============================================================================


def canonicalize(fields: Mapping[str, Any]) -> str:
    """Build the canonical signing string.

    Keys are sorted lexicographically and joined as ``key:value``
    pairs separated by ``;``.

    Args:
        fields: Flat parameter map (without the signature field).

    Returns:
        Canonical string.
    """
    return ";".join(f"{key}:{fields[key]}" for key in sorted(fields))


def compute_signature(fields: Mapping[str, Any], secret: str) -> str:
    """Sign a flat parameter map with HMAC-SHA256.

    Args:
        fields: Flat parameter map (without the signature field).
        secret: Shared secret.

    Returns:
        Lowercase hex digest.
    """
    return hmac.new(
        secret.encode("utf-8"),
        canonicalize(fields).encode("utf-8"),
        hashlib.sha256,
    ).hexdigest()


# ============================================================================
# Status Classification
# ============================================================================


def _matches(vocabulary: Sequence[str], *texts: str | None) -> bool:
    for text in texts:
        if not text:
            continue
        lowered = text.lower()
        if any(word in lowered for word in vocabulary):
            return True
    return False


def is_payment_successful(status: str | None, description: str | None = None) -> bool:
    """Whether the gateway reports a successful payment."""
    return _matches(SUCCESS_VOCABULARY, status, description)


def is_payment_failed(status: str | None, description: str | None = None) -> bool:
    """Whether the gateway reports a definitive payment failure.

    A status that also reads as successful is never a failure.
    """
    if is_payment_successful(status, description):
        return False
    return _matches(FAILURE_VOCABULARY, status, description)


# ============================================================================
# Products
# ============================================================================


@dataclass(frozen=True)
class GatewayProduct:
    """Product line as exchanged with the gateway."""

    name: str
    price: Decimal
    quantity: int


def parse_products(raw: str | None) -> list[GatewayProduct]:
    """Parse the JSON ``products`` field of a notification.

    Accepts both lower-case and capitalized keys. Malformed input
    yields an empty list.
    """
    if not raw:
        return []

    try:
        data = json.loads(raw, parse_float=Decimal)
        if not isinstance(data, list):
            return []
        return [
            GatewayProduct(
                name=str(item.get("name") or item.get("Name") or ""),
                price=to_money(str(item.get("price", item.get("Price", "0")))),
                quantity=int(item.get("quantity", item.get("Quantity", 1))),
            )
            for item in data
        ]
    except (ValueError, TypeError, AttributeError, InvalidOperation):
        logger.warning("Failed to parse gateway products", raw_length=len(raw))
        return []


# ============================================================================
# Gateway
# ============================================================================


class PayableOrderItem(Protocol):
    product_name: str
    applied_price: Decimal
    quantity: int


class PayableOrder(Protocol):
    order_number: str
    promocode_discount: Decimal
    customer_name: str
    customer_email: str | None
    customer_phone: str
    items: Sequence[PayableOrderItem]


class ProdamusGateway:
    """Signs payment links and verifies gateway notifications.

    Constructed once at startup from settings and shared by requests.
    """

    def __init__(self, secret_key: str | None, payment_form_url: str | None) -> None:
        """Initialize gateway codec.

        Args:
            secret_key: Shared HMAC secret.
            payment_form_url: Base URL of the hosted payment form.
        """
        self.secret_key = secret_key
        self.payment_form_url = payment_form_url

    @property
    def is_configured(self) -> bool:
        return bool(self.secret_key and self.payment_form_url)

    def sign(self, fields: Mapping[str, Any]) -> str:
        """Sign a parameter map with the configured secret.

        Raises:
            PaymentGatewayNotConfiguredError: If no secret is configured.
        """
        if not self.secret_key:
            raise PaymentGatewayNotConfiguredError("Prodamus secret key is not configured")
        return compute_signature(fields, self.secret_key)

    def verify(self, payload: Mapping[str, Any]) -> bool:
        """Verify the ``sign`` field of a gateway notification.

        Fails closed: a missing secret, a missing or empty signature,
        or any mismatch returns False.

        Args:
            payload: Every field the gateway sent, ``sign`` included.

        Returns:
            True if the signature is valid.
        """
        if not self.secret_key:
            logger.warning("Payment notification rejected, secret key not configured")
            return False

        signature = payload.get(SIGNATURE_FIELD)
        if not isinstance(signature, str) or not signature:
            logger.warning("Payment notification without signature")
            return False

        fields = {key: value for key, value in payload.items() if key != SIGNATURE_FIELD}
        try:
            expected = compute_signature(fields, self.secret_key)
        except (TypeError, ValueError) as e:
            logger.warning("Payment notification could not be canonicalized", error=str(e))
            return False

        # Byte comparison: non-ASCII input and length mismatch both fail cleanly.
        if not hmac.compare_digest(expected.encode("ascii"), signature.encode("utf-8")):
            logger.warning(
                "Payment notification signature mismatch",
                order_num=payload.get("order_num") or payload.get("order_id"),
            )
            return False

        return True

    def build_payment_params(
        self,
        order: PayableOrder,
        success_url: str | None = None,
        fail_url: str | None = None,
        notification_url: str | None = None,
    ) -> dict[str, str]:
        """Build the signed parameter map for a payment link.

        Args:
            order: Order to pay for.
            success_url: Redirect after a successful payment.
            fail_url: Redirect after a failed payment.
            notification_url: Endpoint for the gateway's notifications.

        Returns:
            Parameters including the ``sign`` field.
        """
        params: dict[str, str] = {
            "order_id": order.order_number,
            "customer_name": order.customer_name,
            "customer_phone": order.customer_phone,
        }
        if order.customer_email:
            params["customer_email"] = order.customer_email

        lines = [
            PricedLine(price=item.applied_price, applied_price=item.applied_price, quantity=item.quantity)
            for item in order.items
        ]
        # Promocode discount is folded into line prices; lines sum to the order total.
        for position, charge in enumerate(allocate_discount(lines, order.promocode_discount or Decimal(0))):
            params[f"products[{position}][name]"] = order.items[charge.index].product_name
            params[f"products[{position}][price]"] = f"{charge.unit_price:.2f}"
            params[f"products[{position}][quantity]"] = str(charge.quantity)

        optional = {
            "success_url": success_url,
            "fail_url": fail_url,
            "notification_url": notification_url,
        }
        params.update({key: value for key, value in optional.items() if value})

        params[SIGNATURE_FIELD] = self.sign(params)
        return params

    def build_payment_link(
        self,
        order: PayableOrder,
        success_url: str | None = None,
        fail_url: str | None = None,
        notification_url: str | None = None,
    ) -> str:
        """Build the payment form redirect URL for an order.

        Raises:
            PaymentGatewayNotConfiguredError: If the form URL or secret is missing.
        """
        if not self.is_configured:
            raise PaymentGatewayNotConfiguredError(
                "Prodamus payment form URL or secret key is not configured"
            )

        params = self.build_payment_params(order, success_url, fail_url, notification_url)
        separator = "&" if "?" in self.payment_form_url else "?"
        return f"{self.payment_form_url}{separator}{urlencode(params)}"
