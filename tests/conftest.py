"""
Pytest configuration and shared fixtures.

This module provides:
- Environment variable setup for tests
- A fresh in-memory database per test
- Local storage in a temporary directory
- Factories for app users, families and admin accounts
"""

import itertools
import os
import sys
from pathlib import Path

import pytest

# Set test environment variables BEFORE any app imports
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["SECRET_KEY"] = "test_secret_key_at_least_32_characters_long_for_jwt"
os.environ["ACCESS_TOKEN_EXPIRE_MINUTES"] = "60"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["STORAGE_BACKEND"] = "local"
os.environ["SMTP_HOST"] = ""
os.environ["LOG_JSON"] = "false"

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from httpx import ASGITransport, AsyncClient  # noqa: E402

from app.core.cache import cache  # noqa: E402
from app.core.security import get_password_hash  # noqa: E402
from app.core.storage import LocalStorage, set_storage  # noqa: E402
from app.models.admin import ADMIN_ROLE, ADMIN_STATUS_ACTIVE, AdminAccount  # noqa: E402
from app.models.user import ROLE_MEMBER, STATUS_ACTIVE, User, UserProfile  # noqa: E402

from tests.helpers import TEST_PASSWORD  # noqa: E402

_sequence = itertools.count(1)


@pytest.fixture(autouse=True)
def local_storage(tmp_path):
    """Route every upload to a temporary directory."""
    storage = LocalStorage(root=tmp_path / "media")
    set_storage(storage)
    yield storage
    set_storage(None)


@pytest.fixture(autouse=True)
def clear_cache():
    cache.clear()
    yield
    cache.clear()


@pytest.fixture
async def db_session():
    """
    Provide a database session on a freshly created schema.

    Tables are dropped and the engine disposed afterwards so the next test
    starts from an empty in-memory database on its own event loop.
    """
    from app.core.database import async_session_maker, engine
    from app.models import Base

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with async_session_maker() as session:
        yield session

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
async def client(db_session):
    from app.main import app

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@pytest.fixture
def make_user(db_session):
    """
    Factory for active app users with a profile.

    Example:
        user = await make_user(first_name="Asha", family_code="RAO001")
    """

    async def _make(
        first_name: str = "Test",
        last_name: str = "User",
        email: str | None = None,
        mobile: str | None = None,
        role: int = ROLE_MEMBER,
        status: int = STATUS_ACTIVE,
        family_code: str | None = None,
        gender: str | None = None,
    ) -> User:
        n = next(_sequence)
        user = User(
            email=email or f"user{n}@example.com",
            mobile=mobile or f"90000{n:05d}",
            country_code="+91",
            password=get_password_hash(TEST_PASSWORD),
            status=status,
            role=role,
            is_app_user=True,
        )
        user.profile = UserProfile(
            first_name=first_name,
            last_name=last_name,
            gender=gender,
            family_code=family_code,
            associated_family_codes=[],
        )
        db_session.add(user)
        await db_session.commit()
        return user

    return _make


@pytest.fixture
def make_family(db_session):
    """Factory creating a family through the service, with ``owner`` as admin."""
    from app.services.family import FamilyService

    async def _make(owner: User, family_code: str, family_name: str = "Test Family") -> dict:
        result = await FamilyService(db_session).create_family(owner, family_name, family_code)
        await db_session.commit()
        return result["data"]

    return _make


@pytest.fixture
def make_admin(db_session):
    async def _make(role: str = ADMIN_ROLE, email: str | None = None, status: str = ADMIN_STATUS_ACTIVE) -> AdminAccount:
        n = next(_sequence)
        admin = AdminAccount(
            email=email or f"admin{n}@example.com",
            password=get_password_hash(TEST_PASSWORD),
            full_name=f"Admin {n}",
            role=role,
            status=status,
        )
        db_session.add(admin)
        await db_session.commit()
        return admin

    return _make

