"""
Database engine and session handling.

One async engine per process. Request handlers receive a session through
``get_db`` which owns the transaction; services only ``flush``. Scripts
and background jobs use ``session_scope`` instead.
"""

import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncGenerator, AsyncIterator

from sqlalchemy import event
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from app.core.config import settings
from app.models.base import Base

logger = logging.getLogger(__name__)


def _is_sqlite(url: str) -> bool:
    return make_url(url).get_backend_name() == "sqlite"


def _ensure_sqlite_directory(url: str) -> None:
    """Create the parent folder of a file based SQLite database."""
    database = make_url(url).database
    if database and database != ":memory:":
        Path(database).expanduser().parent.mkdir(parents=True, exist_ok=True)


def get_async_engine(url: str | None = None) -> AsyncEngine:
    """
    Build the async engine for ``url`` (defaults to DATABASE_URL).

    SQLite runs on a single shared connection (StaticPool), which keeps an
    in-memory database alive between sessions, and enforces foreign keys so
    tree and membership rows cascade the same way they do on PostgreSQL.
    """
    url = url or settings.database_url

    if _is_sqlite(url):
        _ensure_sqlite_directory(url)
        engine = create_async_engine(
            url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )

        @event.listens_for(engine.sync_engine, "connect")
        def _sqlite_pragmas(dbapi_connection, connection_record):  # noqa: ANN001
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.close()

        return engine

    return create_async_engine(
        url,
        pool_pre_ping=True,
        pool_size=settings.database_pool_size,
    )


engine = get_async_engine()

async_session_maker = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


async def init_db() -> None:
    """
    Create missing tables when DATABASE_CREATE_ALL is on.

    Existing tables are left untouched; column changes need a migration.
    """
    # Registers every model on Base.metadata
    from app import models  # noqa: F401

    if not settings.database_create_all:
        return
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database schema ensured", extra={"tables": len(Base.metadata.tables)})


async def close_db() -> None:
    await engine.dispose()


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency yielding a request scoped session.

    Commits when the handler returns and rolls back when it raises, so an
    ``AppError`` raised halfway through a tree mutation leaves no partial
    writes behind.

    Example:
        @router.get("/families/{family_code}")
        async def get_family(family_code: str, db: DatabaseSession):
            return await FamilyService(db).get_family(family_code)
    """
    async with async_session_maker() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


@asynccontextmanager
async def session_scope() -> AsyncIterator[AsyncSession]:
    """
    Transactional scope for background jobs and scripts.

    Example:
        async with session_scope() as session:
            await NotificationService(session).expire_old_association_requests()
    """
    async with async_session_maker() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
