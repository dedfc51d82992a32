"""
Request observability middleware.

CorrelationMiddleware binds X-Correlation-ID to the request context;
RequestLoggingMiddleware writes one access line per request.

Dependencies: starlette, fluxo.observability.correlation
System role: Per-request log context and access logging
"""

import logging
import time

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from fluxo.observability.correlation import clear_correlation_id, set_correlation_id

logger = logging.getLogger(__name__)

CORRELATION_HEADER = "X-Correlation-ID"


def _elapsed_ms(started: float) -> float:
    return round((time.perf_counter() - started) * 1000, 2)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Access log with status code and latency."""

    async def dispatch(self, request: Request, call_next):
        started = time.perf_counter()
        context = {"method": request.method, "path": request.url.path}

        try:
            response: Response = await call_next(request)
        except Exception as e:
            logger.exception(
                f"{request.method} {request.url.path} failed",
                extra={**context, "process_time_ms": _elapsed_ms(started), "error_type": type(e).__name__},
            )
            raise

        logger.info(
            f"{request.method} {request.url.path} {response.status_code}",
            extra={
                **context,
                "status_code": response.status_code,
                "process_time_ms": _elapsed_ms(started),
                "client_host": request.client.host if request.client else None,
            },
        )
        return response


class CorrelationMiddleware(BaseHTTPMiddleware):
    """Propagates the caller's correlation ID, or mints one."""

    async def dispatch(self, request: Request, call_next):
        """
        Bind the correlation ID for the request and echo it on the response.

        Args:
            request: Incoming request
            call_next: Downstream handler

        Returns:
            Response: Downstream response carrying X-Correlation-ID
        """
        correlation_id = set_correlation_id(request.headers.get(CORRELATION_HEADER))
        try:
            response: Response = await call_next(request)
        finally:
            clear_correlation_id()
        response.headers[CORRELATION_HEADER] = correlation_id
        return response
