"""
Tests for health check endpoints.

This module tests:
- /health endpoint (liveness probe)
- /health/ready endpoint (database and storage readiness)
- / root metadata

Tests follow AAA (Arrange, Act, Assert) pattern.
"""

from datetime import datetime
from unittest.mock import AsyncMock, patch

import pytest
from fastapi.testclient import TestClient

from app.main import app


client = TestClient(app)


class TestHealthEndpoint:
    """Tests for /health liveness probe."""

    def test_health_returns_200(self):
        response = client.get("/api/v1/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert set(data) == {"status", "timestamp"}

    def test_health_returns_valid_timestamp(self):
        response = client.get("/api/v1/health")

        timestamp = datetime.fromisoformat(response.json()["timestamp"].replace("Z", "+00:00"))
        assert timestamp.tzinfo is not None

    def test_root_points_to_docs(self):
        response = client.get("/")

        assert response.json()["docs"] == "/docs"


class TestReadinessEndpoint:
    """Tests for /health/ready readiness probe."""

    @patch("app.api.v1.health.check_storage", new_callable=AsyncMock)
    @patch("app.api.v1.health.check_database", new_callable=AsyncMock)
    def test_ready_all_checks_pass(self, mock_db, mock_storage):
        """
        Arrange: Both probes healthy
        Act: GET /health/ready
        Assert: 200, status ready, no errors
        """
        mock_db.return_value = True
        mock_storage.return_value = True

        response = client.get("/api/v1/health/ready")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ready"
        assert data["checks"]["db"]["healthy"] is True
        assert data["checks"]["storage"]["error"] is None

    @pytest.mark.parametrize(
        "db_ok, storage_ok, failing",
        [
            (False, True, {"db"}),
            (True, False, {"storage"}),
            (False, False, {"db", "storage"}),
        ],
    )
    def test_ready_reports_failing_dependency(self, db_ok, storage_ok, failing):
        """
        Arrange: One or both probes failing
        Act: GET /health/ready
        Assert: 503, not_ready, an error message on each failed check only
        """
        with patch("app.api.v1.health.check_database", AsyncMock(return_value=db_ok)), \
                patch("app.api.v1.health.check_storage", AsyncMock(return_value=storage_ok)):
            response = client.get("/api/v1/health/ready")

        assert response.status_code == 503
        data = response.json()
        assert data["status"] == "not_ready"
        assert {name for name, check in data["checks"].items() if check["error"]} == failing

    @patch("app.api.v1.health.check_storage", new_callable=AsyncMock)
    @patch("app.api.v1.health.check_database", new_callable=AsyncMock)
    def test_ready_includes_latency(self, mock_db, mock_storage):
        mock_db.return_value = True
        mock_storage.return_value = True

        response = client.get("/api/v1/health/ready")

        for check in response.json()["checks"].values():
            assert isinstance(check["latency_ms"], float)
            assert check["latency_ms"] >= 0
