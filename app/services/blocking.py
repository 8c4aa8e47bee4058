"""
User blocking service.

Blocks are directional rows but most checks are symmetric: a block in
either direction hides content, suppresses notifications and prevents
links between the two users.
"""

import logging
from typing import Optional

from sqlalchemy import and_, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import BadRequestError, NotFoundError
from app.models.base import utc_now_iso
from app.models.blocking import UserBlock
from app.models.user import User
from app.repositories.user import user_summary

logger = logging.getLogger(__name__)


class BlockingService:
    """
    Block and unblock users and answer block queries.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def _get_row(self, blocker_id: int, blocked_id: int) -> Optional[UserBlock]:
        result = await self.session.execute(
            select(UserBlock).where(
                UserBlock.blocker_id == blocker_id,
                UserBlock.blocked_id == blocked_id,
            )
        )
        return result.scalar_one_or_none()

    async def block_user(self, blocker_id: int, blocked_id: int) -> UserBlock:
        """
        Block a user.

        Reactivates a previously lifted block for the same pair instead of
        inserting a new row; an active block is returned unchanged.

        Raises:
            BadRequestError: Blocking yourself
            NotFoundError: Target user does not exist
        """
        if blocker_id == blocked_id:
            raise BadRequestError("You cannot block yourself")
        if await self.session.get(User, blocked_id) is None:
            raise NotFoundError("User not found")

        row = await self._get_row(blocker_id, blocked_id)
        if row is None:
            row = UserBlock(blocker_id=blocker_id, blocked_id=blocked_id)
            self.session.add(row)
        elif row.deleted_at is not None:
            row.deleted_at = None
            row.created_at = utc_now_iso()
        await self.session.flush()

        logger.info("User blocked", extra={"user_id": blocker_id, "blocked_id": blocked_id})
        return row

    async def unblock_user(self, blocker_id: int, blocked_id: int) -> None:
        row = await self._get_row(blocker_id, blocked_id)
        if row is None or row.deleted_at is not None:
            raise NotFoundError("Block not found")
        row.deleted_at = utc_now_iso()
        await self.session.flush()
        logger.info("User unblocked", extra={"user_id": blocker_id, "blocked_id": blocked_id})

    async def is_blocked_either_way(self, user_a: Optional[int], user_b: Optional[int]) -> bool:
        if not user_a or not user_b or user_a == user_b:
            return False
        stmt = select(UserBlock.id).where(
            UserBlock.deleted_at.is_(None),
            or_(
                and_(UserBlock.blocker_id == user_a, UserBlock.blocked_id == user_b),
                and_(UserBlock.blocker_id == user_b, UserBlock.blocked_id == user_a),
            ),
        )
        result = await self.session.execute(stmt.limit(1))
        return result.scalar() is not None

    async def blocked_by_me(self, user_id: int) -> set[int]:
        result = await self.session.execute(
            select(UserBlock.blocked_id).where(
                UserBlock.blocker_id == user_id,
                UserBlock.deleted_at.is_(None),
            )
        )
        return set(result.scalars().all())

    async def blocked_me(self, user_id: int) -> set[int]:
        result = await self.session.execute(
            select(UserBlock.blocker_id).where(
                UserBlock.blocked_id == user_id,
                UserBlock.deleted_at.is_(None),
            )
        )
        return set(result.scalars().all())

    async def blocked_user_ids_for(self, user_id: int) -> set[int]:
        """Users hidden from ``user_id`` (blocks in both directions)."""
        return (await self.blocked_by_me(user_id)) | (await self.blocked_me(user_id))

    async def block_status(self, viewer_id: int, other_id: Optional[int]) -> dict:
        if not other_id or other_id == viewer_id:
            return {"is_blocked_by_me": False, "is_blocked_by_them": False}
        mine = await self._get_row(viewer_id, other_id)
        theirs = await self._get_row(other_id, viewer_id)
        return {
            "is_blocked_by_me": bool(mine and mine.deleted_at is None),
            "is_blocked_by_them": bool(theirs and theirs.deleted_at is None),
        }

    async def list_blocked_users(self, user_id: int) -> list[dict]:
        stmt = (
            select(UserBlock, User)
            .join(User, User.id == UserBlock.blocked_id)
            .where(UserBlock.blocker_id == user_id, UserBlock.deleted_at.is_(None))
            .order_by(UserBlock.created_at.desc())
        )
        result = await self.session.execute(stmt)
        return [
            {"blocked_at": block.created_at, "user": user_summary(user)}
            for block, user in result.all()
        ]
