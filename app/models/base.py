"""
Base models and mixins for SQLAlchemy ORM.

Provides the declarative base, primary key and timestamp mixins and the
UTC timestamp helpers shared by all models and services.
"""

from datetime import datetime, timezone
from typing import Any, Optional
import uuid

from sqlalchemy import Column, Integer, String
from sqlalchemy.orm import declarative_base


# SQLAlchemy declarative base for all ORM models
Base = declarative_base()


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def utc_now_iso() -> str:
    """
    Current UTC timestamp in ISO format.

    Returns:
        ISO string such as "2025-01-15T10:30:45.123456+00:00"

    Note:
        All timestamps are written in this one format so string comparison
        orders them chronologically on both SQLite and PostgreSQL.
    """
    return utc_now().isoformat()


def to_iso(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


def parse_iso(value: Optional[str]) -> Optional[datetime]:
    """Parse a stored ISO timestamp back to an aware datetime."""
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class TimestampMixin:
    """
    Mixin that adds created_at and updated_at timestamp columns.

    Stored as TEXT ISO strings set from Python, which keeps the schema
    identical on SQLite and PostgreSQL.
    """

    created_at = Column(
        String,
        nullable=False,
        default=utc_now_iso,
        index=True,
        doc="UTC timestamp when record was created"
    )

    updated_at = Column(
        String,
        nullable=False,
        default=utc_now_iso,
        onupdate=utc_now_iso,
        doc="UTC timestamp when record was last updated"
    )


class IntPKMixin:
    """Mixin that adds an auto-increment integer primary key."""

    id = Column(
        Integer,
        primary_key=True,
        autoincrement=True,
        doc="Integer primary key"
    )


class UUIDMixin:
    """
    Mixin that adds a UUID primary key column (stored as TEXT).
    """

    id = Column(
        String,
        primary_key=True,
        default=lambda: str(uuid.uuid4()),
        doc="UUID primary key"
    )


class ModelMixin:
    """
    Mixin providing common model utilities.
    """

    def to_dict(self) -> dict[str, Any]:
        """
        Convert model instance to a dictionary of column values.

        Note:
            Only includes columns, not relationships.
        """
        return {
            column.name: getattr(self, column.name)
            for column in self.__table__.columns
        }

    def __repr__(self) -> str:
        attrs = ", ".join(
            f"{key}={repr(value)}"
            for key, value in self.to_dict().items()
            if key in ["id", "name", "email", "family_code", "title"]
        )
        return f"{self.__class__.__name__}({attrs})"
