"""
Health probe functions for dependency checks.

Each probe returns True when the dependency answers within its timeout and
False on any failure; probes never raise.
"""

import asyncio
import logging

from botocore.exceptions import BotoCoreError, ClientError
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from app.core.database import async_session_maker
from app.core.storage import StorageError, get_storage

logger = logging.getLogger(__name__)


async def check_database(timeout_seconds: float = 2.0) -> bool:
    """
    Check database connectivity with a ``SELECT 1``.

    Args:
        timeout_seconds: Maximum time to wait for a response
    """
    try:
        async with asyncio.timeout(timeout_seconds):
            async with async_session_maker() as session:
                result = await session.execute(text("SELECT 1"))
                result.scalar()
                return True
    except (asyncio.TimeoutError, SQLAlchemyError, OSError) as exc:
        logger.warning("Database probe failed", extra={"error": str(exc)})
        return False


async def check_storage(timeout_seconds: float = 3.0) -> bool:
    """
    Check the media storage backend (bucket reachable or root writable).
    """
    try:
        async with asyncio.timeout(timeout_seconds):
            return await asyncio.to_thread(get_storage().ping)
    except (asyncio.TimeoutError, StorageError, ClientError, BotoCoreError, OSError) as exc:
        logger.warning("Storage probe failed", extra={"error": str(exc)})
        return False
