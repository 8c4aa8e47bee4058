"""
Integration tests for health check endpoints.

Runs the readiness probe against the real test database and the local
storage backend instead of mocks.

Tests follow AAA (Arrange, Act, Assert) pattern.
"""

import pytest

from app.core.storage import LocalStorage, set_storage


@pytest.mark.asyncio
class TestReadinessIntegration:
    async def test_ready_with_real_dependencies(self, client, local_storage):
        """
        Arrange: In-memory database and temporary media directory
        Act: GET /health/ready
        Assert: Both checks healthy, media root created by the storage probe
        """
        response = await client.get("/api/v1/health/ready")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ready"
        assert set(data["checks"]) == {"db", "storage"}
        assert data["storage_backend"] == "local"
        assert local_storage.root.is_dir()

    async def test_not_ready_when_media_root_is_a_file(self, client, tmp_path):
        """
        Arrange: Local storage root pointing at a regular file
        Act: GET /health/ready
        Assert: 503 with the storage check failing
        """
        blocker = tmp_path / "not-a-dir"
        blocker.write_text("x")
        set_storage(LocalStorage(root=blocker))

        response = await client.get("/api/v1/health/ready")

        assert response.status_code == 503
        assert response.json()["checks"]["storage"]["healthy"] is False
        assert response.json()["checks"]["db"]["healthy"] is True

    async def test_liveness_has_request_id(self, client):
        response = await client.get("/api/v1/health")

        assert response.status_code == 200
        assert response.headers["X-Request-ID"]
