"""
Centralized configuration management using Pydantic Settings.

Every setting can be overridden through environment variables or a local
.env file. Secrets (JWT key, S3 and SMTP credentials) must never be
committed.
"""

from typing import List, Optional
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
import json


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Grouped by concern: API, database, security, storage, mail, family
    rules and background jobs.
    """

    # API Configuration
    api_v1_prefix: str = Field(
        default="/api/v1",
        description="API version 1 prefix for all endpoints"
    )
    project_name: str = Field(
        default="Family Tree API",
        description="Project name displayed in API docs"
    )
    frontend_url: str = Field(
        default="http://localhost:3000",
        description="Public frontend URL used to build invite links"
    )

    # Database Configuration
    database_url: str = Field(
        default="sqlite+aiosqlite:///./data/family_tree.db",
        description="Database connection URL (SQLite locally, PostgreSQL in production)"
    )
    database_create_all: bool = Field(
        default=True,
        description="Create missing tables at startup (disable when migrations own the schema)"
    )
    database_pool_size: int = Field(
        default=5,
        description="Connection pool size for PostgreSQL"
    )

    # Security Configuration
    secret_key: str = Field(
        ...,
        description="Secret key for JWT token signing (generate with: openssl rand -hex 32)"
    )
    access_token_expire_minutes: int = Field(
        default=60 * 24 * 7,
        description="App user JWT lifetime in minutes (default: 7 days)"
    )
    admin_token_expire_minutes: int = Field(
        default=60 * 12,
        description="Admin panel JWT lifetime in minutes"
    )
    otp_expiry_minutes: int = Field(
        default=15,
        description="Lifetime of registration OTP codes"
    )
    reset_otp_expiry_minutes: int = Field(
        default=10,
        description="Lifetime of password reset OTP codes"
    )
    otp_resend_interval_seconds: int = Field(
        default=60,
        description="Minimum delay between two OTP e-mails"
    )

    # CORS Configuration
    cors_origins: List[str] = Field(
        default=["http://localhost:3000"],
        description="Allowed CORS origins (frontend URLs)"
    )
    cors_allow_credentials: bool = Field(
        default=True,
        description="Allow cookies/credentials in CORS requests"
    )

    # Storage Configuration
    storage_backend: str = Field(
        default="local",
        description="File storage backend: 'local' or 's3'"
    )
    storage_local_root: str = Field(
        default="./data/uploads",
        description="Root directory for the local storage backend"
    )
    s3_bucket: str = Field(default="", description="S3 bucket name")
    s3_region: str = Field(default="us-east-1", description="S3 region")
    s3_endpoint_url: Optional[str] = Field(
        default=None,
        description="Custom S3 endpoint (MinIO, DigitalOcean Spaces)"
    )
    s3_access_key_id: str = Field(default="", description="S3 access key id")
    s3_secret_access_key: str = Field(default="", description="S3 secret access key")
    s3_presign_expires_seconds: int = Field(
        default=600,
        description="Lifetime of presigned multipart part URLs"
    )
    max_image_upload_bytes: int = Field(
        default=5 * 1024 * 1024,
        description="Maximum accepted image size for posts, galleries and profiles"
    )

    # Mail Configuration
    smtp_host: str = Field(default="", description="SMTP server host (empty disables mail)")
    smtp_port: int = Field(default=587, description="SMTP server port")
    smtp_username: str = Field(default="", description="SMTP login")
    smtp_password: str = Field(default="", description="SMTP password")
    smtp_use_tls: bool = Field(default=True, description="Use STARTTLS")
    mail_from: str = Field(
        default="no-reply@familytree.local",
        description="Sender address for outgoing mail"
    )

    # Family Rules
    allow_cross_family_tree_view: bool = Field(
        default=False,
        description="Allow any authenticated user to view any family tree"
    )
    invite_daily_limit: int = Field(
        default=5,
        description="Maximum invites a user can send per UTC day"
    )
    invite_expiry_hours: int = Field(
        default=24,
        description="Lifetime of invite tokens in hours"
    )
    association_request_ttl_days: int = Field(
        default=15,
        description="Pending family association requests expire after this many days"
    )

    # Cache / Background Jobs
    cache_default_ttl_seconds: int = Field(
        default=3600,
        description="Default TTL for in-memory cache entries"
    )
    cache_sweep_interval_seconds: int = Field(
        default=300,
        description="Seconds between expired cache entry sweeps"
    )
    association_expiry_interval_seconds: int = Field(
        default=3600,
        description="Seconds between expiry runs for stale association requests"
    )

    # Rate Limiting
    rate_limit_enabled: bool = Field(default=True, description="Enable per-IP rate limiting")
    rate_limit_auth_per_minute: int = Field(
        default=10,
        description="Requests per minute per IP for login, register and OTP endpoints"
    )
    rate_limit_default_per_minute: int = Field(
        default=120,
        description="Requests per minute per IP for every other endpoint"
    )

    # Logging
    log_level: str = Field(default="INFO", description="Root log level")
    log_json: bool = Field(default=True, description="Emit JSON log lines")

    # Pydantic Settings Configuration
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        env_nested_delimiter="__",
    )

    @field_validator("cors_origins", mode="before")
    @classmethod
    def parse_cors_origins(cls, v: str | List[str]) -> List[str]:
        """
        Parse cors_origins from a JSON array string, a comma list or a list.
        """
        if isinstance(v, str):
            try:
                return json.loads(v)
            except json.JSONDecodeError:
                return [s.strip() for s in v.split(",") if s.strip()]
        return v

    @field_validator("secret_key")
    @classmethod
    def validate_secret_key(cls, v: str) -> str:
        """
        Validate that secret_key is properly configured.

        JWT signing keys must be at least 32 characters and not a placeholder.
        """
        if not v or v.strip() == "":
            raise ValueError(
                "SECRET_KEY is required and cannot be empty. "
                "Generate one with: openssl rand -hex 32"
            )
        if v in ["generate-with-openssl-rand-hex-32", "CHANGE_ME_32_CHARS_MIN", "your-secret-key-here"]:
            raise ValueError(
                "SECRET_KEY must be set to a secure random value (not placeholder). "
                "Generate one with: openssl rand -hex 32"
            )
        if len(v) < 32:
            raise ValueError(
                f"SECRET_KEY must be at least 32 characters long. "
                f"Current length: {len(v)}. Generate with: openssl rand -hex 32"
            )
        return v

    @field_validator("database_url")
    @classmethod
    def validate_database_url(cls, v: str) -> str:
        """
        Validate database URL scheme (SQLite or PostgreSQL).
        """
        if not v or v.strip() == "":
            raise ValueError("DATABASE_URL is required and cannot be empty")

        valid_schemes = ["sqlite", "sqlite+aiosqlite", "postgresql", "postgresql+asyncpg"]
        if not any(v.startswith(scheme + "://") or v.startswith(scheme + ":///") for scheme in valid_schemes):
            raise ValueError(
                f"DATABASE_URL must start with one of: {', '.join(valid_schemes)}. "
                f"Got: {v[:20]}..."
            )
        return v

    @field_validator("storage_backend")
    @classmethod
    def validate_storage_backend(cls, v: str) -> str:
        """Only the local filesystem and S3 backends exist."""
        backend = (v or "local").strip().lower()
        if backend not in {"local", "s3"}:
            raise ValueError("STORAGE_BACKEND must be 'local' or 's3'")
        return backend

    @property
    def smtp_configured(self) -> bool:
        return bool(self.smtp_host and self.smtp_username and self.smtp_password)


# Global settings instance
settings = Settings()
