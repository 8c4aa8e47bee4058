"""
Family Tree API - FastAPI Application Entry Point

This module initializes the FastAPI application with all middleware,
routes, error handlers and background jobs.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.core.cache import cache
from app.core.config import settings
from app.core.database import close_db, init_db, session_scope
from app.core.errors import AppError
from app.core.logging_config import log_with_context, setup_logging
from app.middleware.logging import LoggingMiddleware
from app.middleware.rate_limit import RateLimitMiddleware
from app.middleware.request_id import RequestIDMiddleware
from app.middleware.security_headers import SecurityHeadersMiddleware
from app.services.notification import NotificationService

logger = logging.getLogger(__name__)


async def expire_association_requests_forever(interval_seconds: int) -> None:
    """Periodically expire stale family association requests."""
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            async with session_scope() as session:
                expired = await NotificationService(session).expire_old_association_requests()
        except Exception:
            logger.exception("Association request expiry run failed")
            continue
        if expired:
            logger.info("Expired stale association requests", extra={"count": expired})


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Startup:
        - Configure structured logging
        - Initialize database
        - Start the cache sweeper and the association expiry job

    Shutdown:
        - Cancel background jobs
        - Close database connections
    """
    setup_logging(level=settings.log_level, json_format=settings.log_json)
    await init_db()

    background = [
        asyncio.create_task(cache.run_sweeper()),
        asyncio.create_task(expire_association_requests_forever(settings.association_expiry_interval_seconds)),
    ]
    logger.info("Application started", extra={"database_backend": settings.database_url.split(":", 1)[0]})

    yield

    for task in background:
        task.cancel()
    await asyncio.gather(*background, return_exceptions=True)
    await close_db()


app = FastAPI(
    title=settings.project_name,
    version="0.1.0",
    description="Family trees, family membership and merging, posts, galleries and notifications",
    openapi_url=f"{settings.api_v1_prefix}/openapi.json",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    log_with_context(
        logger,
        "info",
        f"Request rejected: {exc.message}",
        request_id=getattr(request.state, "request_id", None),
        path=request.url.path,
        method=request.method,
        status_code=exc.status_code,
    )
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message, **exc.extra})


# Middleware runs in reverse order of registration
app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(
    RateLimitMiddleware,
    auth_limit=settings.rate_limit_auth_per_minute,
    default_limit=settings.rate_limit_default_per_minute,
    enabled=settings.rate_limit_enabled,
)
app.add_middleware(LoggingMiddleware)
app.add_middleware(RequestIDMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=settings.cors_allow_credentials,
    allow_methods=["*"],
    allow_headers=["*"],
)


from app.api.v1 import (  # noqa: E402
    admin,
    auth,
    events,
    families,
    family_links,
    family_members,
    family_merge,
    galleries,
    health,
    invites,
    lookups,
    notifications,
    orders,
    posts,
    products,
    stream,
    uploads,
    users,
)

prefix = settings.api_v1_prefix
app.include_router(health.router, prefix=prefix, tags=["health"])
app.include_router(auth.router, prefix=f"{prefix}/auth", tags=["auth"])
app.include_router(users.router, prefix=f"{prefix}/user", tags=["user"])
app.include_router(families.router, prefix=f"{prefix}/families", tags=["families"])
app.include_router(family_members.router, prefix=f"{prefix}/family-members", tags=["family-members"])
app.include_router(family_links.router, prefix=f"{prefix}/family-links", tags=["family-links"])
app.include_router(family_merge.router, prefix=f"{prefix}/family-merge", tags=["family-merge"])
app.include_router(notifications.router, prefix=f"{prefix}/notifications", tags=["notifications"])
app.include_router(posts.router, prefix=f"{prefix}/posts", tags=["posts"])
app.include_router(galleries.router, prefix=f"{prefix}/galleries", tags=["galleries"])
app.include_router(events.router, prefix=f"{prefix}/events", tags=["events"])
app.include_router(invites.router, prefix=f"{prefix}/invites", tags=["invites"])
app.include_router(uploads.router, prefix=f"{prefix}/uploads", tags=["uploads"])
app.include_router(products.router, prefix=f"{prefix}/products", tags=["shop"])
app.include_router(products.categories_router, prefix=f"{prefix}/categories", tags=["shop"])
app.include_router(orders.router, prefix=f"{prefix}/orders", tags=["shop"])
app.include_router(orders.admin_router, prefix=f"{prefix}/admin/orders", tags=["admin"])
app.include_router(lookups.countries_router, prefix=f"{prefix}/countries", tags=["lookups"])
app.include_router(lookups.languages_router, prefix=f"{prefix}/languages", tags=["lookups"])
app.include_router(lookups.gothrams_router, prefix=f"{prefix}/gothrams", tags=["lookups"])
app.include_router(admin.router, prefix=f"{prefix}/admin", tags=["admin"])
app.include_router(stream.router, prefix=prefix, tags=["realtime"])


@app.get("/")
async def root():
    return {
        "message": "Family Tree API",
        "version": "0.1.0",
        "docs": "/docs",
    }
