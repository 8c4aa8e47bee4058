"""
Tests for configuration validation.

Ensures environment variables are validated at startup.
"""

import pytest
from pydantic import ValidationError

from app.core.config import Settings

VALID_KEY = "a" * 32


class TestSecretKeyValidation:
    """Test SECRET_KEY validation."""

    def test_secret_key_too_short(self, monkeypatch):
        monkeypatch.setenv("SECRET_KEY", "tooshort")

        with pytest.raises(ValidationError) as exc_info:
            Settings()

        assert "SECRET_KEY must be at least 32 characters long" in str(exc_info.value)

    @pytest.mark.parametrize(
        "placeholder",
        ["generate-with-openssl-rand-hex-32", "CHANGE_ME_32_CHARS_MIN", "your-secret-key-here"],
    )
    def test_secret_key_placeholder_value(self, monkeypatch, placeholder):
        monkeypatch.setenv("SECRET_KEY", placeholder)

        with pytest.raises(ValidationError) as exc_info:
            Settings()

        assert "secure random value" in str(exc_info.value)

    def test_secret_key_valid(self, monkeypatch):
        monkeypatch.setenv("SECRET_KEY", VALID_KEY)

        assert Settings().secret_key == VALID_KEY


class TestDatabaseURLValidation:
    @pytest.mark.parametrize(
        "url",
        ["sqlite+aiosqlite:///./data/family_tree.db", "postgresql+asyncpg://u:p@db/family"],
    )
    def test_supported_schemes(self, monkeypatch, url):
        monkeypatch.setenv("SECRET_KEY", VALID_KEY)
        monkeypatch.setenv("DATABASE_URL", url)

        assert Settings().database_url == url

    def test_unsupported_scheme(self, monkeypatch):
        monkeypatch.setenv("SECRET_KEY", VALID_KEY)
        monkeypatch.setenv("DATABASE_URL", "mysql://u:p@db/family")

        with pytest.raises(ValidationError) as exc_info:
            Settings()

        assert "DATABASE_URL must start with one of" in str(exc_info.value)


class TestOtherSettings:
    def test_storage_backend_is_normalized(self, monkeypatch):
        monkeypatch.setenv("SECRET_KEY", VALID_KEY)
        monkeypatch.setenv("STORAGE_BACKEND", " S3 ")

        assert Settings().storage_backend == "s3"

    def test_unknown_storage_backend(self, monkeypatch):
        monkeypatch.setenv("SECRET_KEY", VALID_KEY)
        monkeypatch.setenv("STORAGE_BACKEND", "gcs")

        with pytest.raises(ValidationError):
            Settings()

    def test_cors_origins_from_json_list(self, monkeypatch):
        monkeypatch.setenv("SECRET_KEY", VALID_KEY)
        monkeypatch.setenv("CORS_ORIGINS", '["http://a.test", "http://b.test"]')

        assert Settings().cors_origins == ["http://a.test", "http://b.test"]

    def test_smtp_configured_needs_credentials(self, monkeypatch):
        monkeypatch.setenv("SECRET_KEY", VALID_KEY)
        monkeypatch.setenv("SMTP_HOST", "smtp.example.com")

        assert Settings().smtp_configured is False
