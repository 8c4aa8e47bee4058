"""
Tests for rate limiting middleware.

Tests the token bucket algorithm and the per-IP, per-scope enforcement.
"""

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from app.middleware.rate_limit import RateLimitMiddleware, TokenBucket


class TestTokenBucket:
    """Unit tests for TokenBucket implementation."""

    def test_token_bucket_initialization(self):
        """Test token bucket initializes with full capacity."""
        bucket = TokenBucket(capacity=10, refill_rate=1.0)
        assert bucket.capacity == 10
        assert bucket.tokens == 10.0

    def test_consume_until_empty(self):
        """Test consuming tokens until the bucket runs dry."""
        bucket = TokenBucket(capacity=2, refill_rate=0.001)
        assert bucket.consume() is True
        assert bucket.consume() is True
        assert bucket.consume() is False

    def test_refill_never_exceeds_capacity(self, monkeypatch):
        """Test refill is capped at capacity."""
        import app.middleware.rate_limit as rate_limit

        clock = [1000.0]
        monkeypatch.setattr(rate_limit.time, "monotonic", lambda: clock[0])
        bucket = TokenBucket(capacity=5, refill_rate=1.0)
        bucket.consume(5)

        clock[0] += 60
        bucket.consume(0)

        assert bucket.tokens == 5.0

    def test_get_wait_time(self):
        """Test wait time for the next token."""
        bucket = TokenBucket(capacity=10, refill_rate=2.0)
        bucket.consume(10)
        wait_time = bucket.get_wait_time()
        assert 0.4 <= wait_time <= 0.6


class TestRateLimitMiddleware:
    """Integration tests for rate limiting middleware."""

    @pytest.fixture
    def limited_app(self):
        app = FastAPI()
        app.add_middleware(RateLimitMiddleware, auth_limit=2, default_limit=3)

        @app.post("/api/v1/auth/login")
        async def login():
            return {"ok": True}

        @app.get("/api/v1/posts")
        async def posts():
            return {"ok": True}

        @app.get("/api/v1/health")
        async def health():
            return {"status": "healthy"}

        return app

    def test_credential_endpoints_use_strict_bucket(self, limited_app):
        client = TestClient(limited_app)

        codes = [client.post("/api/v1/auth/login").status_code for _ in range(3)]

        assert codes == [200, 200, 429]

    def test_429_response_shape(self, limited_app):
        client = TestClient(limited_app)
        for _ in range(2):
            client.post("/api/v1/auth/login")

        response = client.post("/api/v1/auth/login")

        assert response.json() == {"detail": "Too many requests, please try again later"}
        assert int(response.headers["Retry-After"]) >= 1
        assert response.headers["X-RateLimit-Remaining"] == "0"

    def test_scopes_have_separate_buckets(self, limited_app):
        client = TestClient(limited_app)
        for _ in range(2):
            client.post("/api/v1/auth/login")

        response = client.get("/api/v1/posts")

        assert response.status_code == 200
        assert response.headers["X-RateLimit-Limit"] == "3"

    def test_clients_are_limited_independently(self, limited_app):
        client = TestClient(limited_app)
        for _ in range(2):
            client.post("/api/v1/auth/login", headers={"X-Forwarded-For": "10.0.0.1"})

        blocked = client.post("/api/v1/auth/login", headers={"X-Forwarded-For": "10.0.0.1"})
        other = client.post("/api/v1/auth/login", headers={"X-Forwarded-For": "10.0.0.2"})

        assert blocked.status_code == 429
        assert other.status_code == 200

    def test_health_is_exempt(self, limited_app):
        client = TestClient(limited_app)

        codes = {client.get("/api/v1/health").status_code for _ in range(10)}

        assert codes == {200}

    def test_disabled_middleware_passes_everything(self):
        app = FastAPI()
        app.add_middleware(RateLimitMiddleware, auth_limit=1, default_limit=1, enabled=False)

        @app.post("/api/v1/auth/login")
        async def login():
            return {"ok": True}

        client = TestClient(app)

        assert {client.post("/api/v1/auth/login").status_code for _ in range(5)} == {200}
