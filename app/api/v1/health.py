"""
Health check endpoints for monitoring and readiness probes.

- Liveness probe: /health (the process is serving requests)
- Readiness probe: /health/ready (database and media storage reachable)
"""

import asyncio
import time
from datetime import datetime, timezone
from typing import Awaitable, Callable, Dict, Tuple

from fastapi import APIRouter, Response, status

from app.core.config import settings
from app.core.probes import check_database, check_storage
from app.schemas.health import HealthCheckDetail, HealthResponse, ReadinessResponse

router = APIRouter()

PROBE_ERRORS = {
    "db": "Database connection failed or timed out",
    "storage": "Storage backend unreachable or timed out",
}


async def _timed(probe: Callable[[], Awaitable[bool]]) -> Tuple[bool, float]:
    start = time.perf_counter()
    healthy = await probe()
    return healthy, round((time.perf_counter() - start) * 1000, 2)


@router.get(
    "/health",
    response_model=HealthResponse,
    status_code=status.HTTP_200_OK,
    summary="Liveness probe",
    description="Basic health check to verify the service is running",
)
async def health_check() -> HealthResponse:
    """
    Basic liveness probe; always 200 while the application is running.

    Example response:
        {
            "status": "ok",
            "timestamp": "2026-10-18T10:30:00.123456+00:00"
        }
    """
    return HealthResponse(status="ok", timestamp=datetime.now(timezone.utc))


@router.get(
    "/health/ready",
    response_model=ReadinessResponse,
    summary="Readiness probe",
    description="Checks the database and the media storage backend",
)
async def readiness_check(response: Response) -> ReadinessResponse:
    """
    Readiness probe with dependency checks run in parallel.

    Returns 200 if all checks pass, 503 if any check fails.

    Example response (unhealthy):
        {
            "status": "not_ready",
            "storage_backend": "s3",
            "checks": {
                "db": {"healthy": true, "latency_ms": 10.2},
                "storage": {"healthy": false, "latency_ms": 3000.0, "error": "Storage backend unreachable or timed out"}
            },
            "timestamp": "2026-10-18T10:30:00.123456+00:00"
        }
    """
    (db_ok, db_ms), (storage_ok, storage_ms) = await asyncio.gather(
        _timed(check_database),
        _timed(check_storage),
    )

    checks: Dict[str, HealthCheckDetail] = {}
    for name, healthy, latency in (("db", db_ok, db_ms), ("storage", storage_ok, storage_ms)):
        checks[name] = HealthCheckDetail(
            healthy=healthy,
            latency_ms=latency,
            error=None if healthy else PROBE_ERRORS[name],
        )

    all_healthy = all(check.healthy for check in checks.values())
    if not all_healthy:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    return ReadinessResponse(
        status="ready" if all_healthy else "not_ready",
        storage_backend=settings.storage_backend,
        checks=checks,
        timestamp=datetime.now(timezone.utc),
    )
