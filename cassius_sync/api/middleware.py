"""
FastAPI middleware for request logging.

Each request gets a short ID that is echoed in the X-Request-ID header so
sync runs can be correlated with the application's own logs. Query strings
are never logged: the OAuth callback carries authorization codes and signed
state in them.
"""

import logging
import time
import uuid
from contextvars import ContextVar

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

# Context variable for request ID (available across async calls)
request_id_ctx: ContextVar[str] = ContextVar("request_id", default="")

logger = logging.getLogger(__name__)


def get_request_id() -> str:
    """Get current request ID from context."""
    return request_id_ctx.get()


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log method, path, status and elapsed time for every request."""

    async def dispatch(self, request: Request, call_next) -> Response:
        req_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex[:8]
        request_id_ctx.set(req_id)

        organisation_id = request.headers.get("X-Organisation-ID", "-")
        logger.info(
            f"[{req_id}] {request.method} {request.url.path} org={organisation_id}",
            extra={
                "request_id": req_id,
                "method": request.method,
                "path": request.url.path,
                "organisation_id": organisation_id,
            },
        )

        start_time = time.perf_counter()

        try:
            response = await call_next(request)
        except Exception as e:
            elapsed = time.perf_counter() - start_time
            logger.error(
                f"[{req_id}] Request failed after {elapsed:.2f}s: {type(e).__name__}",
                extra={"request_id": req_id, "elapsed_ms": elapsed * 1000},
                exc_info=True,
            )
            raise

        elapsed = time.perf_counter() - start_time
        logger.info(
            f"[{req_id}] {response.status_code} in {elapsed:.2f}s",
            extra={
                "request_id": req_id,
                "status_code": response.status_code,
                "elapsed_ms": elapsed * 1000,
            },
        )

        response.headers["X-Request-ID"] = req_id
        return response
