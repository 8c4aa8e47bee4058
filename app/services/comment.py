"""
Comments on posts and galleries.

Both content kinds share the same comment table layout (target id, author,
text, optional parent comment) so one service handles them.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import BadRequestError, ForbiddenError, NotFoundError
from app.models.gallery import Gallery, GalleryComment
from app.models.notification import NotificationType
from app.models.post import Post, PostComment
from app.models.user import User
from app.repositories.user import UserRepository, user_summary
from app.services.event_publisher import EventType, event_publisher
from app.services.notification import NotificationService

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CommentKind:
    name: str
    target_model: type
    comment_model: type
    target_field: str
    notification_type: str
    event_type: EventType


POST_COMMENTS = CommentKind(
    name="post",
    target_model=Post,
    comment_model=PostComment,
    target_field="post_id",
    notification_type=NotificationType.POST_COMMENT,
    event_type=EventType.POST_COMMENT,
)
GALLERY_COMMENTS = CommentKind(
    name="gallery",
    target_model=Gallery,
    comment_model=GalleryComment,
    target_field="gallery_id",
    notification_type=NotificationType.GALLERY_COMMENT,
    event_type=EventType.GALLERY_COMMENT,
)


class CommentService:
    """
    Add, list, edit, delete and reply to comments of one content kind.

    Example:
        comments = CommentService(session, POST_COMMENTS)
        await comments.add_comment(post_id, user, "Lovely photo")
    """

    def __init__(self, session: AsyncSession, kind: CommentKind):
        self.session = session
        self.kind = kind
        self.users = UserRepository(session)
        self.notifications = NotificationService(session)

    @property
    def _target_column(self):
        return getattr(self.kind.comment_model, self.kind.target_field)

    async def _target(self, target_id: int):
        target = await self.session.get(self.kind.target_model, target_id)
        if target is None or target.status != 1:
            raise NotFoundError(f"{self.kind.name.capitalize()} not found")
        return target

    async def _comment(self, comment_id: int):
        comment = await self.session.get(self.kind.comment_model, comment_id)
        if comment is None:
            raise NotFoundError("Comment not found")
        return comment

    def comment_to_dict(self, comment, author: Optional[User]) -> dict:
        return {
            "id": comment.id,
            self.kind.target_field: getattr(comment, self.kind.target_field),
            "user_id": comment.user_id,
            "comment": comment.comment,
            "parent_comment_id": comment.parent_comment_id,
            "created_at": comment.created_at,
            "updated_at": comment.updated_at,
            "user": user_summary(author),
        }

    async def _publish(self, target_id: int, data: dict) -> None:
        if self.kind.name == "post":
            await event_publisher.publish_post_activity(target_id, self.kind.event_type, data)
        else:
            await event_publisher.publish_gallery_activity(target_id, self.kind.event_type, data)

    async def add_comment(
        self,
        target_id: int,
        user: User,
        text: str,
        parent_comment_id: Optional[int] = None,
    ) -> dict:
        """
        Comment on a post or gallery and notify its owner.

        Raises:
            BadRequestError: Empty comment
            NotFoundError: Target or parent comment missing
        """
        text = (text or "").strip()
        if not text:
            raise BadRequestError("Comment cannot be empty")
        target = await self._target(target_id)
        if parent_comment_id is not None:
            parent = await self.session.get(self.kind.comment_model, parent_comment_id)
            if parent is None or getattr(parent, self.kind.target_field) != target_id:
                raise NotFoundError("Parent comment not found")

        comment = self.kind.comment_model(
            **{self.kind.target_field: target_id},
            user_id=user.id,
            comment=text,
            parent_comment_id=parent_comment_id,
        )
        self.session.add(comment)
        await self.session.flush()

        await self.notifications.notify_content_owner(
            notification_type=self.kind.notification_type,
            owner_id=target.created_by,
            actor_id=user.id,
            reference_id=target_id,
            title="New comment",
            message=f"{user.full_name} commented on your {self.kind.name}",
            data={self.kind.target_field: target_id, "comment_id": comment.id},
        )
        payload = self.comment_to_dict(comment, user)
        await self._publish(target_id, {"action": "created", "comment": payload})
        return payload

    async def reply_to_comment(self, comment_id: int, user: User, text: str) -> dict:
        parent = await self._comment(comment_id)
        return await self.add_comment(
            getattr(parent, self.kind.target_field), user, text, parent_comment_id=parent.id
        )

    async def edit_comment(self, comment_id: int, user: User, text: str) -> dict:
        comment = await self._comment(comment_id)
        if comment.user_id != user.id:
            raise ForbiddenError("You can only edit your own comments")
        text = (text or "").strip()
        if not text:
            raise BadRequestError("Comment cannot be empty")
        comment.comment = text
        await self.session.flush()
        return self.comment_to_dict(comment, user)

    async def delete_comment(self, comment_id: int, user: User) -> dict:
        """Delete an own comment together with all of its replies."""
        comment = await self._comment(comment_id)
        if comment.user_id != user.id:
            raise ForbiddenError("You can only delete your own comments")

        model = self.kind.comment_model
        to_delete = [comment.id]
        frontier = [comment.id]
        while frontier:
            result = await self.session.execute(select(model.id).where(model.parent_comment_id.in_(frontier)))
            frontier = list(result.scalars().all())
            to_delete.extend(frontier)

        target_id = getattr(comment, self.kind.target_field)
        await self.session.execute(delete(model).where(model.id.in_(to_delete)))
        await self.session.flush()
        await self._publish(target_id, {"action": "deleted", "comment_ids": to_delete})
        return {"message": "Comment deleted successfully", "deleted": len(to_delete)}

    async def list_comments(self, target_id: int, page: int = 1, limit: int = 20) -> dict:
        await self._target(target_id)
        page = max(page, 1)
        limit = min(max(limit, 1), 100)
        total = await self.count(target_id)
        model = self.kind.comment_model
        result = await self.session.execute(
            select(model)
            .where(self._target_column == target_id)
            .order_by(model.created_at.desc(), model.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        comments = list(result.scalars().all())
        authors = await self.users.get_many(c.user_id for c in comments)
        return {
            "total": total,
            "page": page,
            "limit": limit,
            "data": [self.comment_to_dict(c, authors.get(c.user_id)) for c in comments],
        }

    async def count(self, target_id: int) -> int:
        result = await self.session.execute(
            select(func.count(self.kind.comment_model.id)).where(self._target_column == target_id)
        )
        return int(result.scalar() or 0)

    async def delete_all_for(self, target_id: int) -> None:
        await self.session.execute(delete(self.kind.comment_model).where(self._target_column == target_id))
