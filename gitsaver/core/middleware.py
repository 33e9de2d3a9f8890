"""ASGI middleware for the webhook receiver.

Two middlewares registered in order (outermost → innermost):
  1. RequestIdMiddleware: picks a correlation ID and stores it in ContextVars
  2. SecurityHeadersMiddleware: adds security response headers

GitHub stamps every delivery with X-GitHub-Delivery. When present it is
bound alongside the request ID so a log line can be matched to the delivery
shown in the App's "Recent Deliveries" page.
"""

import uuid
from contextvars import ContextVar
from typing import Awaitable, Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

DELIVERY_HEADER = "X-GitHub-Delivery"

_request_id_var: ContextVar[str] = ContextVar("request_id", default="")
_delivery_id_var: ContextVar[str] = ContextVar("delivery_id", default="")


def get_request_id() -> str:
    """Return the current request's ID, or an empty string outside a request."""
    return _request_id_var.get()


def get_delivery_id() -> str:
    """Return the current GitHub delivery ID, or an empty string if none was sent."""
    return _delivery_id_var.get()


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Read or generate X-Request-ID and bind it (and the delivery ID) for the request.

    - X-Request-ID from the client is reused when present.
    - Otherwise the GitHub delivery ID is used, falling back to a fresh UUID4.
    - The chosen ID is echoed back in the X-Request-ID response header.
    """

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        delivery_id = request.headers.get(DELIVERY_HEADER, "")
        request_id = (
            request.headers.get("X-Request-ID") or delivery_id or str(uuid.uuid4())
        )

        request_token = _request_id_var.set(request_id)
        delivery_token = _delivery_id_var.set(delivery_id)
        try:
            response = await call_next(request)
        finally:
            _delivery_id_var.reset(delivery_token)
            _request_id_var.reset(request_token)

        response.headers["X-Request-ID"] = request_id
        return response


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Attach nosniff, frame and referrer headers to every response."""

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "no-referrer"
        return response
