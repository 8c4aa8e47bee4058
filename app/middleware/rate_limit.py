"""
Per-IP rate limiting with token buckets.

Credential endpoints (login, register, OTP and password reset for app
users and the admin login) get a strict bucket; everything else shares a
looser one. Health probes and realtime connections are never limited.

Buckets live in process memory and are not shared across workers.
"""

import logging
import time
from typing import Callable, Dict, Tuple

from fastapi import Request, Response, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger(__name__)

CREDENTIAL_PATH_MARKERS = (
    "/auth/",
    "/admin/login",
)
EXEMPT_PATH_SUFFIXES = ("/health", "/health/ready", "/stream", "/ws")
BUCKET_IDLE_SECONDS = 600


class TokenBucket:
    """
    ``capacity`` tokens, refilled continuously at ``refill_rate`` per second.
    """

    def __init__(self, capacity: int, refill_rate: float):
        self.capacity = capacity
        self.refill_rate = refill_rate
        self.tokens = float(capacity)
        self.last_refill = time.monotonic()

    def consume(self, tokens: int = 1) -> bool:
        now = time.monotonic()
        self.tokens = min(self.capacity, self.tokens + (now - self.last_refill) * self.refill_rate)
        self.last_refill = now
        if self.tokens >= tokens:
            self.tokens -= tokens
            return True
        return False

    def get_wait_time(self) -> float:
        """Seconds until one token is available."""
        if self.tokens >= 1:
            return 0.0
        return (1 - self.tokens) / self.refill_rate


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    Returns 429 with ``Retry-After`` once a client's bucket is empty.

    Example:
        app.add_middleware(RateLimitMiddleware, auth_limit=10, default_limit=120)
    """

    def __init__(
        self,
        app,
        auth_limit: int = 10,
        default_limit: int = 120,
        enabled: bool = True,
        cleanup_interval: int = 300,
    ):
        super().__init__(app)
        self.auth_limit = auth_limit
        self.default_limit = default_limit
        self.enabled = enabled
        self.cleanup_interval = cleanup_interval

        # {(ip, scope): (bucket, last_access)}
        self.buckets: Dict[Tuple[str, str], Tuple[TokenBucket, float]] = {}
        self.last_cleanup = time.monotonic()

        logger.info(
            "Rate limiting initialized",
            extra={"auth_limit": auth_limit, "default_limit": default_limit, "enabled": enabled},
        )

    @staticmethod
    def _get_client_ip(request: Request) -> str:
        forwarded = request.headers.get("X-Forwarded-For")
        if forwarded:
            return forwarded.split(",")[0].strip()
        return request.client.host if request.client else "unknown"

    @staticmethod
    def _is_exempt(path: str) -> bool:
        return path.rstrip("/").endswith(EXEMPT_PATH_SUFFIXES) or path.endswith("/stream/status")

    def _scope_for(self, path: str) -> Tuple[str, int]:
        if any(marker in path for marker in CREDENTIAL_PATH_MARKERS):
            return "auth", self.auth_limit
        return "default", self.default_limit

    def _get_or_create_bucket(self, ip: str, scope: str, limit: int) -> TokenBucket:
        now = time.monotonic()
        if now - self.last_cleanup > self.cleanup_interval:
            self._cleanup_old_buckets(now)

        key = (ip, scope)
        if key in self.buckets:
            bucket, _ = self.buckets[key]
        else:
            bucket = TokenBucket(capacity=limit, refill_rate=limit / 60.0)
        self.buckets[key] = (bucket, now)
        return bucket

    def _cleanup_old_buckets(self, now: float) -> None:
        stale = [key for key, (_, last_access) in self.buckets.items() if now - last_access > BUCKET_IDLE_SECONDS]
        for key in stale:
            del self.buckets[key]
        if stale:
            logger.info("Cleaned up idle rate limit buckets", extra={"count": len(stale)})
        self.last_cleanup = now

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        path = request.url.path
        if not self.enabled or self._is_exempt(path):
            return await call_next(request)

        client_ip = self._get_client_ip(request)
        scope, limit = self._scope_for(path)
        bucket = self._get_or_create_bucket(client_ip, scope, limit)

        if not bucket.consume():
            retry_after = int(bucket.get_wait_time()) + 1
            logger.warning(
                "Rate limit exceeded",
                extra={
                    "client_ip": client_ip,
                    "path": path,
                    "scope": scope,
                    "limit": limit,
                    "request_id": getattr(request.state, "request_id", None),
                },
            )
            return JSONResponse(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                content={"detail": "Too many requests, please try again later"},
                headers={
                    "Retry-After": str(retry_after),
                    "X-RateLimit-Limit": str(limit),
                    "X-RateLimit-Remaining": "0",
                },
            )

        response = await call_next(request)
        response.headers["X-RateLimit-Limit"] = str(limit)
        response.headers["X-RateLimit-Remaining"] = str(int(bucket.tokens))
        return response
