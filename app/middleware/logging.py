"""
Access logging middleware.

One line per request with method, path, status, latency, client IP and the
correlation id set by RequestIDMiddleware. Health probes log at DEBUG so
they do not drown the access log.
"""

import time
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from app.core.logging_config import get_logger

logger = get_logger(__name__)

QUIET_PATH_SUFFIXES = ("/health", "/health/ready")


class LoggingMiddleware(BaseHTTPMiddleware):
    """
    Must be registered after RequestIDMiddleware so ``request.state.request_id``
    is set when this runs.

    Log output (JSON):
        {"message": "Request completed", "method": "POST", "path": "/api/v1/posts",
         "status_code": 201, "latency_ms": 18.4, "request_id": "..."}
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        method = request.method
        path = request.url.path
        request_id = getattr(request.state, "request_id", None)
        client_ip = request.client.host if request.client else None
        started = time.perf_counter()

        try:
            response = await call_next(request)
        except Exception as exc:
            logger.error(
                "Request failed",
                extra={
                    "method": method,
                    "path": path,
                    "latency_ms": round((time.perf_counter() - started) * 1000, 2),
                    "request_id": request_id,
                    "client_ip": client_ip,
                    "exception_type": type(exc).__name__,
                },
                exc_info=True,
            )
            raise

        log = logger.debug if path.endswith(QUIET_PATH_SUFFIXES) else logger.info
        log(
            "Request completed",
            extra={
                "method": method,
                "path": path,
                "status_code": response.status_code,
                "latency_ms": round((time.perf_counter() - started) * 1000, 2),
                "request_id": request_id,
                "client_ip": client_ip,
            },
        )
        return response
