"""
Security headers for API responses.

The API serves JSON and media URLs only, so the default CSP forbids
everything except the interactive docs, which need inline scripts and
the Swagger UI CDN.
"""

import logging
from typing import Callable, Optional

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger(__name__)

API_CSP = "default-src 'none'; frame-ancestors 'none'; base-uri 'none'"
DOCS_CSP = (
    "default-src 'self'; "
    "script-src 'self' 'unsafe-inline' https://cdn.jsdelivr.net; "
    "style-src 'self' 'unsafe-inline' https://cdn.jsdelivr.net; "
    "img-src 'self' data: https://fastapi.tiangolo.com; "
    "frame-ancestors 'none'"
)
DOCS_PATHS = ("/docs", "/redoc")


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """
    Adds nosniff, frame denial, referrer and permissions headers plus a CSP.
    HSTS is only sent when ``hsts_max_age`` is set (TLS terminated upstream).

    Example:
        app.add_middleware(SecurityHeadersMiddleware, hsts_max_age=31536000)
    """

    def __init__(self, app, csp_policy: Optional[str] = None, hsts_max_age: int = 0):
        super().__init__(app)
        self.csp_policy = csp_policy or API_CSP
        self.hsts_max_age = hsts_max_age
        logger.info("Security headers middleware initialized", extra={"hsts_max_age": hsts_max_age})

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        response = await call_next(request)

        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Permissions-Policy"] = "geolocation=(), microphone=(), camera=(), payment=()"
        if request.url.path.startswith(DOCS_PATHS):
            response.headers["Content-Security-Policy"] = DOCS_CSP
        else:
            response.headers["Content-Security-Policy"] = self.csp_policy
        if self.hsts_max_age:
            response.headers["Strict-Transport-Security"] = f"max-age={self.hsts_max_age}; includeSubDomains"

        return response
