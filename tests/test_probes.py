"""
Tests for health probe functions.

This module tests:
- check_database() probe
- check_storage() probe

Tests follow AAA (Arrange, Act, Assert) pattern with mocks for external dependencies.
"""

import asyncio
import time
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from botocore.exceptions import ClientError
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.probes import check_database, check_storage
from app.core.storage import LocalStorage, StorageError


def _session_returning(execute) -> AsyncMock:
    session = AsyncMock(spec=AsyncSession)
    session.execute = execute
    session.__aenter__ = AsyncMock(return_value=session)
    session.__aexit__ = AsyncMock(return_value=None)
    return session


class TestDatabaseProbe:
    """Tests for database readiness probe."""

    @pytest.mark.asyncio
    async def test_check_database_success(self):
        """
        Arrange: Session whose SELECT 1 succeeds
        Act: Call check_database()
        Assert: Returns True after one query
        """
        session = _session_returning(AsyncMock(return_value=MagicMock()))

        with patch("app.core.probes.async_session_maker", return_value=session):
            result = await check_database()

        assert result is True
        session.execute.assert_called_once()

    @pytest.mark.asyncio
    async def test_check_database_connection_error(self):
        with patch("app.core.probes.async_session_maker") as maker:
            maker.side_effect = OperationalError("SELECT 1", {}, Exception("unable to open database file"))

            result = await check_database()

        assert result is False

    @pytest.mark.asyncio
    async def test_check_database_timeout(self):
        """
        Arrange: Query that hangs longer than the timeout
        Act: Call check_database() with a short timeout
        Assert: Returns False instead of raising
        """
        async def slow_query(*args, **kwargs):
            await asyncio.sleep(10)

        session = _session_returning(slow_query)

        with patch("app.core.probes.async_session_maker", return_value=session):
            result = await check_database(timeout_seconds=0.1)

        assert result is False

    @pytest.mark.asyncio
    async def test_check_database_against_test_engine(self, db_session):
        assert await check_database() is True


class TestStorageProbe:
    """Tests for media storage readiness probe."""

    @pytest.mark.asyncio
    async def test_local_storage_ready(self, local_storage):
        assert await check_storage() is True
        assert local_storage.root.exists()

    @pytest.mark.asyncio
    async def test_storage_error(self):
        storage = MagicMock()
        storage.ping.side_effect = StorageError("root not writable")

        with patch("app.core.probes.get_storage", return_value=storage):
            result = await check_storage()

        assert result is False

    @pytest.mark.asyncio
    async def test_bucket_unreachable(self):
        """
        Arrange: S3 client answers 403 on the bucket check
        Act: Call check_storage()
        Assert: Returns False
        """
        storage = MagicMock()
        storage.ping.side_effect = ClientError(
            {"Error": {"Code": "403", "Message": "Forbidden"}}, "HeadBucket"
        )

        with patch("app.core.probes.get_storage", return_value=storage):
            result = await check_storage()

        assert result is False

    @pytest.mark.asyncio
    async def test_storage_timeout(self, tmp_path):
        class SlowStorage(LocalStorage):
            def ping(self) -> bool:
                time.sleep(0.5)
                return True

        with patch("app.core.probes.get_storage", return_value=SlowStorage(root=tmp_path)):
            result = await check_storage(timeout_seconds=0.05)

        assert result is False
