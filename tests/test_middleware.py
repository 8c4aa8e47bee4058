"""
Tests for middleware components.

This module tests:
- RequestIDMiddleware (correlation ID tracking)
- LoggingMiddleware (access logging)

Tests follow AAA (Arrange, Act, Assert) pattern.
"""

import uuid
from unittest.mock import patch

import pytest
from fastapi import FastAPI, Request
from fastapi.testclient import TestClient

from app.middleware.logging import LoggingMiddleware
from app.middleware.request_id import RequestIDMiddleware


@pytest.fixture
def echo_app():
    app = FastAPI()
    app.add_middleware(LoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)

    @app.get("/api/v1/echo")
    async def echo(request: Request):
        return {"request_id": request.state.request_id}

    @app.get("/api/v1/health")
    async def health():
        return {"status": "healthy"}

    return app


class TestRequestIDMiddleware:
    """Tests for request ID correlation middleware."""

    def test_request_id_generated_when_missing(self, echo_app):
        """
        Arrange: App with RequestIDMiddleware
        Act: Request without X-Request-ID header
        Assert: Response carries a UUID4 that matches request.state
        """
        client = TestClient(echo_app)

        response = client.get("/api/v1/echo")

        request_id = response.headers["X-Request-ID"]
        assert uuid.UUID(request_id).version == 4
        assert response.json()["request_id"] == request_id

    def test_well_formed_request_id_is_reused(self, echo_app):
        """
        Arrange: App with RequestIDMiddleware
        Act: Request with a valid X-Request-ID header
        Assert: Same id is echoed back
        """
        client = TestClient(echo_app)

        response = client.get("/api/v1/echo", headers={"X-Request-ID": "mobile-app.req_0001"})

        assert response.headers["X-Request-ID"] == "mobile-app.req_0001"
        assert response.json()["request_id"] == "mobile-app.req_0001"

    @pytest.mark.parametrize("bad_id", ["short", "has spaces in it", "x" * 200, "semi;colon;value"])
    def test_malformed_request_id_is_replaced(self, echo_app, bad_id):
        client = TestClient(echo_app)

        response = client.get("/api/v1/echo", headers={"X-Request-ID": bad_id})

        assert response.headers["X-Request-ID"] != bad_id
        uuid.UUID(response.headers["X-Request-ID"])

    def test_request_id_different_per_request(self, echo_app):
        client = TestClient(echo_app)

        ids = {client.get("/api/v1/echo").headers["X-Request-ID"] for _ in range(3)}

        assert len(ids) == 3


class TestLoggingMiddleware:
    """Tests for access logging middleware."""

    def test_completed_request_is_logged_with_context(self, echo_app):
        """
        Arrange: App with both middleware, patched logger
        Act: Make request
        Assert: One info line with method, path, status and request id
        """
        client = TestClient(echo_app)

        with patch("app.middleware.logging.logger") as mock_logger:
            response = client.get("/api/v1/echo")

        mock_logger.info.assert_called_once()
        message, = mock_logger.info.call_args.args
        extra = mock_logger.info.call_args.kwargs["extra"]
        assert message == "Request completed"
        assert extra["method"] == "GET"
        assert extra["path"] == "/api/v1/echo"
        assert extra["status_code"] == 200
        assert extra["request_id"] == response.headers["X-Request-ID"]
        assert extra["latency_ms"] >= 0

    def test_health_probes_log_at_debug(self, echo_app):
        client = TestClient(echo_app)

        with patch("app.middleware.logging.logger") as mock_logger:
            client.get("/api/v1/health")

        mock_logger.info.assert_not_called()
        mock_logger.debug.assert_called_once()

    def test_unhandled_exception_is_logged_and_reraised(self):
        app = FastAPI()
        app.add_middleware(LoggingMiddleware)

        @app.get("/boom")
        async def boom():
            raise RuntimeError("kaput")

        client = TestClient(app, raise_server_exceptions=True)

        with patch("app.middleware.logging.logger") as mock_logger:
            with pytest.raises(RuntimeError):
                client.get("/boom")

        mock_logger.error.assert_called_once()
        assert mock_logger.error.call_args.kwargs["extra"]["exception_type"] == "RuntimeError"
