"""Per-request correlation IDs and access logging."""

import re
import time
from typing import Optional
from uuid import uuid4

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

logger = structlog.get_logger(__name__)

CORRELATION_HEADER = "X-Correlation-Id"
# Inbound IDs are kept only when short and plain
_CORRELATION_ID_RE = re.compile(r"^[A-Za-z0-9._-]{1,64}$")


def resolve_correlation_id(header_value: Optional[str]) -> str:
    """Reuse the caller's correlation ID when it is well formed, else mint one."""
    if header_value and _CORRELATION_ID_RE.match(header_value):
        return header_value
    return str(uuid4())


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """Tag every request with a correlation ID and log its outcome.

    The ID, method and path are bound into the structlog context so service
    and gate logs for the request carry them. The ID is echoed back in the
    X-Correlation-Id response header. Authenticated requests also log the
    user ID attached by the authentication gate.
    """

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        correlation_id = resolve_correlation_id(request.headers.get(CORRELATION_HEADER))
        request.state.correlation_id = correlation_id

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            correlation_id=correlation_id,
            method=request.method,
            path=request.url.path,
        )

        started = time.perf_counter()
        response = await call_next(request)
        duration_ms = round((time.perf_counter() - started) * 1000, 2)

        user_id = getattr(request.state, "user_id", None)
        logger.info(
            "request_completed",
            status_code=response.status_code,
            duration_ms=duration_ms,
            user_id=str(user_id) if user_id is not None else None,
        )

        response.headers[CORRELATION_HEADER] = correlation_id
        return response
