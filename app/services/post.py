"""
Post service.

Feed posts with privacy scoping, likes and comments. Likes and comments
are pushed to subscribers of ``post:<id>``.
"""

import logging
from typing import Any, Optional

from fastapi import UploadFile
from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import BadRequestError, ForbiddenError, NotFoundError
from app.core.storage import POSTS_FOLDER
from app.models.notification import NotificationType
from app.models.post import (
    POST_ACTIVE,
    POST_DELETED,
    PRIVACY_PUBLIC,
    PRIVACY_VALUES,
    Post,
    PostComment,
    PostLike,
)
from app.models.user import User
from app.repositories.user import UserRepository, user_summary
from app.services.comment import POST_COMMENTS, CommentService
from app.services.event_publisher import EventType, event_publisher
from app.services.family_access import FamilyAccessService
from app.services.notification import NotificationService
from app.services.upload import UploadService

logger = logging.getLogger(__name__)


class PostService:
    """
    Create, read, like and comment on feed posts.
    """

    def __init__(self, session: AsyncSession, uploads: Optional[UploadService] = None):
        self.session = session
        self.users = UserRepository(session)
        self.access = FamilyAccessService(session)
        self.notifications = NotificationService(session)
        self.comments = CommentService(session, POST_COMMENTS)
        self._uploads = uploads

    @property
    def uploads(self) -> UploadService:
        if self._uploads is None:
            self._uploads = UploadService()
        return self._uploads

    async def _resolve_scope(self, user: User, privacy: str, family_code: Optional[str]) -> Optional[str]:
        """
        Family code a post is scoped to.

        Non-public content needs a family the author belongs to or is
        associated with.
        """
        if privacy not in PRIVACY_VALUES:
            raise BadRequestError(f"Invalid privacy: {privacy}")
        code = (family_code or "").strip().upper() or None
        if privacy == PRIVACY_PUBLIC:
            return code
        if code is None:
            code = await self.access.own_family_code(user)
        if code is None or code.upper() not in await self.access.visible_family_codes(user):
            raise ForbiddenError("You are not a member of this family")
        return code.upper()

    async def _get_active(self, post_id: int) -> Post:
        post = await self.session.get(Post, post_id)
        if post is None or post.status != POST_ACTIVE:
            raise NotFoundError("Post not found")
        return post

    async def _get_visible(self, post_id: int, viewer: User) -> Post:
        post = await self._get_active(post_id)
        if not await self.access.can_view_content(post, viewer):
            raise NotFoundError("Post not found")
        return post

    async def _get_owned(self, post_id: int, user: User) -> Post:
        post = await self._get_active(post_id)
        if post.created_by != user.id:
            raise ForbiddenError("You can only modify your own posts")
        return post

    async def _like_counts(self, post_ids: list[int]) -> dict[int, int]:
        if not post_ids:
            return {}
        result = await self.session.execute(
            select(PostLike.post_id, func.count(PostLike.id))
            .where(PostLike.post_id.in_(post_ids))
            .group_by(PostLike.post_id)
        )
        return dict(result.all())

    async def _comment_counts(self, post_ids: list[int]) -> dict[int, int]:
        if not post_ids:
            return {}
        result = await self.session.execute(
            select(PostComment.post_id, func.count(PostComment.id))
            .where(PostComment.post_id.in_(post_ids))
            .group_by(PostComment.post_id)
        )
        return dict(result.all())

    async def _liked_by(self, post_ids: list[int], user_id: int) -> set[int]:
        if not post_ids:
            return set()
        result = await self.session.execute(
            select(PostLike.post_id).where(PostLike.post_id.in_(post_ids), PostLike.user_id == user_id)
        )
        return set(result.scalars().all())

    async def _serialize_many(self, posts: list[Post], viewer: User) -> list[dict]:
        ids = [p.id for p in posts]
        likes = await self._like_counts(ids)
        comments = await self._comment_counts(ids)
        liked = await self._liked_by(ids, viewer.id)
        authors = await self.users.get_many(p.created_by for p in posts)
        return [
            {
                "id": p.id,
                "caption": p.caption,
                "post_image": p.post_image,
                "post_image_url": self.uploads.url_for(p.post_image),
                "privacy": p.privacy,
                "family_code": p.family_code,
                "created_by": p.created_by,
                "status": p.status,
                "created_at": p.created_at,
                "updated_at": p.updated_at,
                "like_count": likes.get(p.id, 0),
                "comment_count": comments.get(p.id, 0),
                "is_liked": p.id in liked,
                "user": user_summary(authors.get(p.created_by)),
            }
            for p in posts
        ]

    async def create_post(
        self,
        user: User,
        caption: Optional[str],
        privacy: str = PRIVACY_PUBLIC,
        family_code: Optional[str] = None,
        image: Optional[UploadFile] = None,
    ) -> dict:
        """
        Create a post, optionally with one image.

        Raises:
            BadRequestError: Invalid privacy, empty post or bad image
            ForbiddenError: Family scope the author cannot post to
        """
        code = await self._resolve_scope(user, privacy, family_code)
        if not (caption or "").strip() and image is None:
            raise BadRequestError("Post must have a caption or an image")

        image_key = await self.uploads.save_image(image, POSTS_FOLDER) if image is not None else None
        post = Post(
            caption=caption,
            post_image=image_key,
            privacy=privacy,
            family_code=code,
            created_by=user.id,
            status=POST_ACTIVE,
        )
        self.session.add(post)
        await self.session.flush()
        logger.info("Post created", extra={"post_id": post.id, "user_id": user.id, "family_code": code})
        return (await self._serialize_many([post], user))[0]

    async def edit_post(self, post_id: int, user: User, changes: dict[str, Any], image: Optional[UploadFile] = None) -> dict:
        post = await self._get_owned(post_id, user)
        if changes.get("privacy") is not None or changes.get("family_code") is not None:
            privacy = changes.get("privacy") or post.privacy
            post.family_code = await self._resolve_scope(user, privacy, changes.get("family_code") or post.family_code)
            post.privacy = privacy
        if changes.get("caption") is not None:
            post.caption = changes["caption"]

        old_image = None
        if image is not None:
            old_image, post.post_image = post.post_image, await self.uploads.save_image(image, POSTS_FOLDER)
        await self.session.flush()
        if old_image:
            await self.uploads.delete_quietly(old_image)
        return (await self._serialize_many([post], user))[0]

    async def delete_post(self, post_id: int, user: User) -> dict:
        """Soft delete a post and drop its image, likes and comments."""
        post = await self._get_owned(post_id, user)
        image = post.post_image
        post.status = POST_DELETED
        post.post_image = None
        await self.session.execute(delete(PostLike).where(PostLike.post_id == post.id))
        await self.comments.delete_all_for(post.id)
        await self.session.flush()
        await self.uploads.delete_quietly(image)
        logger.info("Post deleted", extra={"post_id": post.id, "user_id": user.id})
        return {"message": "Post deleted successfully"}

    async def get_posts_by_options(
        self,
        viewer: User,
        privacy: Optional[str] = None,
        family_code: Optional[str] = None,
        created_by: Optional[int] = None,
        post_id: Optional[int] = None,
        caption: Optional[str] = None,
    ) -> list[dict]:
        stmt = select(Post).where(
            Post.status == POST_ACTIVE,
            await self.access.content_visibility_clause(Post, viewer),
        )
        if privacy:
            stmt = stmt.where(Post.privacy == privacy)
        if family_code:
            stmt = stmt.where(Post.family_code == family_code.upper())
        if created_by is not None:
            stmt = stmt.where(Post.created_by == created_by)
        if post_id is not None:
            stmt = stmt.where(Post.id == post_id)
        if caption:
            stmt = stmt.where(Post.caption.ilike(f"%{caption}%"))
        result = await self.session.execute(stmt.order_by(Post.created_at.desc(), Post.id.desc()))
        return await self._serialize_many(list(result.scalars().all()), viewer)

    async def get_post(self, post_id: int, viewer: User) -> dict:
        post = await self._get_visible(post_id, viewer)
        return (await self._serialize_many([post], viewer))[0]

    async def toggle_like(self, post_id: int, user: User) -> dict:
        post = await self._get_visible(post_id, user)
        result = await self.session.execute(
            select(PostLike).where(PostLike.post_id == post.id, PostLike.user_id == user.id)
        )
        like = result.scalar_one_or_none()
        if like is not None:
            await self.session.delete(like)
            liked = False
        else:
            self.session.add(PostLike(post_id=post.id, user_id=user.id))
            liked = True
        await self.session.flush()

        like_count = await self.like_count(post.id)
        if liked:
            await self.notifications.notify_content_owner(
                notification_type=NotificationType.POST_LIKE,
                owner_id=post.created_by,
                actor_id=user.id,
                reference_id=post.id,
                title="New like",
                message=f"{user.full_name} liked your post",
                data={"post_id": post.id},
            )
        await event_publisher.publish_post_activity(
            post.id,
            EventType.POST_LIKE,
            {"post_id": post.id, "user_id": user.id, "liked": liked, "like_count": like_count},
        )
        return {"liked": liked, "like_count": like_count}

    async def like_count(self, post_id: int) -> int:
        return (await self._like_counts([post_id])).get(post_id, 0)

    async def likes(self, post_id: int) -> list[dict]:
        result = await self.session.execute(
            select(PostLike).where(PostLike.post_id == post_id).order_by(PostLike.id)
        )
        rows = list(result.scalars().all())
        users = await self.users.get_many(r.user_id for r in rows)
        return [{"user_id": r.user_id, "created_at": r.created_at, "user": user_summary(users.get(r.user_id))} for r in rows]

    async def add_comment(self, post_id: int, user: User, text: str, parent_comment_id: Optional[int] = None) -> dict:
        await self._get_visible(post_id, user)
        return await self.comments.add_comment(post_id, user, text, parent_comment_id)

    async def list_comments(self, post_id: int, viewer: User, page: int = 1, limit: int = 20) -> dict:
        await self._get_visible(post_id, viewer)
        return await self.comments.list_comments(post_id, page, limit)

    async def comment_count(self, post_id: int) -> int:
        return await self.comments.count(post_id)
