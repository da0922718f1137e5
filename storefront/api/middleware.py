"""HTTP middleware for the storefront.

Provides:
- Request correlation IDs bound into the structlog context
- Bearer key authentication for admin routes
"""

import hmac
import re
import time
from typing import Callable
from uuid import uuid4

import structlog
from fastapi import FastAPI, Request, Response, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from storefront.infrastructure.config import settings

logger = structlog.get_logger()

REQUEST_ID_HEADER = "X-Request-ID"

# Client-supplied IDs end up in the payment event log (correlation_id).
_REQUEST_ID_PATTERN = re.compile(r"[A-Za-z0-9._:-]{1,100}")

# Health checks are answered without an access log line.
QUIET_PATHS = frozenset({"/health", "/ready"})

# Path prefixes that require the admin API key
PROTECTED_PREFIXES = ("/admin",)


def resolve_request_id(incoming: str | None) -> str:
    """Reuse a well-formed client request ID or mint a new one."""
    if incoming and _REQUEST_ID_PATTERN.fullmatch(incoming):
        return incoming
    return str(uuid4())


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Tag each request with a correlation ID.

    The ID and the caller's ``X-User-Id`` are bound into the log
    context for the duration of the request, and the ID is echoed
    back in the response headers.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = resolve_request_id(request.headers.get(REQUEST_ID_HEADER))
        request.state.request_id = request_id
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            user_id=request.headers.get("X-User-Id"),
        )

        started = time.perf_counter()
        response = None
        try:
            response = await call_next(request)
        finally:
            if request.url.path not in QUIET_PATHS:
                logger.info(
                    "Request completed",
                    method=request.method,
                    path=request.url.path,
                    status_code=getattr(response, "status_code", 500),
                    duration_ms=round((time.perf_counter() - started) * 1000, 2),
                )
            structlog.contextvars.unbind_contextvars("request_id", "user_id")

        response.headers[REQUEST_ID_HEADER] = request_id
        return response


def _unauthorized(error_code: str, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_401_UNAUTHORIZED,
        content={"error_code": error_code, "message": message, "details": []},
        headers={"WWW-Authenticate": "Bearer"},
    )


class AdminApiKeyMiddleware(BaseHTTPMiddleware):
    """Require ``Authorization: Bearer <admin_api_key>`` on admin routes.

    Storefront routes stay open; customer identity arrives in headers
    set by the authentication gateway.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        path = request.url.path.rstrip("/")
        if not path.startswith(PROTECTED_PREFIXES):
            return await call_next(request)

        auth_header = request.headers.get("Authorization")
        if not auth_header:
            logger.warning("Missing authorization header", path=path, method=request.method)
            return _unauthorized("UNAUTHORIZED", "Missing Authorization header")

        scheme, _, api_key = auth_header.partition(" ")
        if scheme.lower() != "bearer" or not api_key:
            logger.warning("Invalid authorization format", path=path, method=request.method)
            return _unauthorized(
                "UNAUTHORIZED",
                "Invalid Authorization header format. Use 'Bearer <api_key>'",
            )

        if not hmac.compare_digest(api_key.encode(), settings.admin_api_key.encode()):
            logger.warning("Invalid admin API key", path=path, method=request.method)
            return _unauthorized("INVALID_API_KEY", "Invalid API key")

        return await call_next(request)


def setup_middleware(app: FastAPI) -> None:
    """Install storefront middleware; the last added runs first."""
    app.add_middleware(AdminApiKeyMiddleware)
    app.add_middleware(RequestIdMiddleware)
