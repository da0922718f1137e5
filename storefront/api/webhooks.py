"""Payment gateway webhook endpoint.

Provides:
- POST /webhooks/prodamus - receive payment notifications
- Signature verification over every field the gateway sent
- Acknowledgement policy: 200 for processed, duplicate and ignored
  notifications, 403 for bad signatures, 503 when the store is down
"""

import json
from typing import Annotated, Any
from urllib.parse import parse_qsl

import structlog
from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from sqlalchemy.exc import SQLAlchemyError

from storefront.api.dependencies import get_payment_service
from storefront.api.schemas import ErrorResponse
from storefront.application.payment_service import PaymentNotification, PaymentService

logger = structlog.get_logger()

router = APIRouter(prefix="/webhooks", tags=["Webhooks"])


# ============================================================================
# Schemas
# ============================================================================


class ProdamusWebhookPayload(BaseModel):
    """Payment notification from Prodamus.

    Only the fields the reconciler needs are declared; every other
    field is kept because the signature covers all of them.
    """

    model_config = ConfigDict(extra="allow")

    order_num: str = Field(..., min_length=1, description="Our order number")
    payment_status: str = Field(..., description="Gateway payment status")
    payment_status_description: str | None = Field(default=None)
    sum: str | None = Field(default=None, description="Paid amount")
    products: str | None = Field(default=None, description="JSON list of paid products")
    sign: str | None = Field(default=None, description="HMAC-SHA256 signature")


class WebhookResponse(BaseModel):
    """Response to webhook delivery."""

    success: bool = Field(..., description="Whether the notification was accepted")
    order_number: str = Field(..., description="Order number")
    status: str = Field(..., description="Outcome (processed, duplicate, ignored)")
    message: str = Field(..., description="Status message")


# ============================================================================
# Helpers
# ============================================================================


def _flatten(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    return json.dumps(value, ensure_ascii=False, separators=(",", ":"))


async def read_fields(request: Request) -> dict[str, str]:
    """Read the notification body as a flat string map.

    Accepts form-urlencoded bodies (the gateway default) and JSON objects.

    Raises:
        HTTPException: 400 if the body cannot be parsed.
    """
    body = await request.body()
    content_type = request.headers.get("content-type", "")

    try:
        if "application/json" in content_type:
            data = json.loads(body or b"{}")
            if not isinstance(data, dict):
                raise ValueError("JSON body must be an object")
            return {str(key): _flatten(value) for key, value in data.items()}
        return dict(parse_qsl(body.decode("utf-8"), keep_blank_values=True))
    except (ValueError, UnicodeDecodeError) as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={
                "error_code": "MALFORMED_NOTIFICATION",
                "message": f"Notification body could not be parsed: {e}",
            },
        ) from e


# ============================================================================
# Endpoints
# ============================================================================


@router.post(
    "/prodamus",
    response_model=WebhookResponse,
    responses={
        400: {"model": ErrorResponse},
        403: {"model": ErrorResponse},
        503: {"model": ErrorResponse},
    },
    summary="Receive payment notification",
    description="Receive and apply a signed payment notification from Prodamus.",
)
async def receive_prodamus_webhook(
    request: Request,
    service: Annotated[PaymentService, Depends(get_payment_service)],
) -> WebhookResponse:
    """Receive and process a payment notification.

    Notifications for unknown orders or already settled orders are
    acknowledged so that the gateway does not retry them.

    Args:
        request: The incoming request.
        service: Payment service.

    Returns:
        WebhookResponse with processing result.

    Raises:
        HTTPException: 400 for malformed bodies, 503 on store failures.
        AuthenticationError: If the signature is invalid.
    """
    correlation_id = getattr(request.state, "request_id", None)
    fields = await read_fields(request)

    try:
        payload = ProdamusWebhookPayload.model_validate(fields)
    except ValidationError as e:
        logger.warning("Malformed payment notification", errors=e.error_count())
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={
                "error_code": "MALFORMED_NOTIFICATION",
                "message": "Notification is missing required fields",
                "details": [
                    {"field": ".".join(str(p) for p in err["loc"]), "message": err["msg"]}
                    for err in e.errors()
                ],
            },
        ) from e

    logger.info(
        "Received payment notification",
        order_number=payload.order_num,
        payment_status=payload.payment_status,
        correlation_id=correlation_id,
    )

    notification = PaymentNotification(
        order_number=payload.order_num,
        payment_status=payload.payment_status,
        status_description=payload.payment_status_description,
        amount=payload.sum,
        products=payload.products,
        fields=fields,
    )

    try:
        result = await service.handle_notification(notification, correlation_id=correlation_id)
    except SQLAlchemyError as e:
        logger.exception("Payment notification failed, gateway may retry", order_number=payload.order_num)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={
                "error_code": "TEMPORARILY_UNAVAILABLE",
                "message": "Notification could not be processed, retry later",
            },
        ) from e

    return WebhookResponse(
        success=True,
        order_number=result.order_number,
        status=result.outcome.value,
        message=result.message,
    )
