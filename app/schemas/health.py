"""
Response models for the liveness and readiness probes.
"""

from datetime import datetime
from typing import Dict, Literal, Optional

from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    status: Literal["ok"] = Field(description="Always 'ok' while the process serves requests")
    timestamp: datetime = Field(description="Current UTC timestamp")


class HealthCheckDetail(BaseModel):
    """Outcome of one dependency probe."""
    healthy: bool
    latency_ms: Optional[float] = Field(default=None, description="Probe duration in milliseconds")
    error: Optional[str] = Field(default=None, description="Why the probe failed, absent when healthy")


class ReadinessResponse(BaseModel):
    """
    Readiness report.

    Attributes:
        status: "ready" only when the database and media storage both answer
        storage_backend: Active media backend ("local" or "s3")
        checks: Probe results keyed by "db" and "storage"
    """
    status: Literal["ready", "not_ready"]
    storage_backend: str
    checks: Dict[str, HealthCheckDetail]
    timestamp: datetime
