"""
Admin panel statistics and content listings.

Statistics are cached under ``admin:stats:*`` and invalidated whenever an
admin changes a user's status.
"""

import logging
from datetime import timedelta
from typing import Optional

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.cache import cache
from app.core.errors import NotFoundError
from app.models.base import to_iso, utc_now
from app.models.gallery import GALLERY_ACTIVE, GALLERY_INACTIVE, Gallery, GalleryComment, GalleryLike
from app.models.post import POST_ACTIVE, POST_DELETED, PRIVACY_PUBLIC, PRIVACY_VALUES, Post, PostComment, PostLike
from app.models.user import STATUS_ACTIVE, STATUS_SUSPENDED, STATUS_UNVERIFIED, User, UserProfile
from app.repositories.user import UserRepository, user_summary
from app.services.admin import clamp_paging
from app.services.user import profile_to_dict, user_to_dict

logger = logging.getLogger(__name__)

STATS_CACHE_PATTERN = "admin:stats:*"
STATS_TTL_SECONDS = 300


def growth_percent(current: int, previous: int) -> float:
    """Week over week growth; 100 when starting from zero."""
    if previous == 0:
        return 100.0 if current > 0 else 0.0
    return round((current - previous) * 100.0 / previous, 2)


def _average(total: int, count: int) -> float:
    return round(total / count, 2) if count else 0.0


class AdminStatsService:
    def __init__(self, session: AsyncSession):
        self.session = session
        self.users = UserRepository(session)

    async def _count(self, model, *conditions) -> int:
        stmt = select(func.count(model.id))
        if conditions:
            stmt = stmt.where(*conditions)
        return int((await self.session.execute(stmt)).scalar() or 0)

    @staticmethod
    def _window(days: int) -> str:
        return to_iso(utc_now() - timedelta(days=days))

    @staticmethod
    def _today() -> str:
        return to_iso(utc_now().replace(hour=0, minute=0, second=0, microsecond=0))

    async def _active_user_ids(self, since: str) -> set[int]:
        """Users who posted, liked, commented or logged in since ``since``."""
        active: set[int] = set()
        for column, created in (
            (Post.created_by, Post.created_at),
            (PostLike.user_id, PostLike.created_at),
            (PostComment.user_id, PostComment.created_at),
            (Gallery.created_by, Gallery.created_at),
            (GalleryLike.user_id, GalleryLike.created_at),
            (GalleryComment.user_id, GalleryComment.created_at),
        ):
            result = await self.session.execute(select(column).where(created >= since).distinct())
            active.update(result.scalars().all())
        result = await self.session.execute(select(User.id).where(User.last_login_at >= since))
        active.update(result.scalars().all())
        return active

    async def _cached(self, key: str, build):
        cached = cache.get(key)
        if cached is not None:
            return cached
        value = await build()
        cache.set(key, value, ttl=STATS_TTL_SECONDS)
        return value

    async def user_statistics(self) -> dict:
        return await self._cached("admin:stats:users", self._build_user_statistics)

    async def _build_user_statistics(self) -> dict:
        app_user = User.is_app_user.is_(True)
        total = await self._count(User, app_user)
        week_ago, two_weeks_ago = self._window(7), self._window(14)
        last_7 = await self._count(User, app_user, User.created_at >= week_ago)
        previous_7 = await self._count(User, app_user, User.created_at >= two_weeks_ago, User.created_at < week_ago)

        result = await self.session.execute(select(User.id).where(app_user))
        app_user_ids = set(result.scalars().all())
        active_7 = await self._active_user_ids(week_ago)
        active_30 = await self._active_user_ids(self._window(30))

        result = await self.session.execute(
            select(Post.created_by, func.count(Post.id))
            .where(Post.status == POST_ACTIVE)
            .group_by(Post.created_by)
            .order_by(func.count(Post.id).desc())
        )
        post_counts = dict(result.all())
        active_posts = sum(post_counts.values())
        top_user = None
        if post_counts:
            top_id = next(iter(post_counts))
            top_user = {"user": user_summary(await self.users.get(top_id)), "post_count": post_counts[top_id]}

        return {
            "total_users": total,
            "new_today": await self._count(User, app_user, User.created_at >= self._today()),
            "new_last_7_days": last_7,
            "previous_7_days": previous_7,
            "weekly_growth_percent": growth_percent(last_7, previous_7),
            "active_last_7_days": len(app_user_ids & active_7),
            "inactive_30_days": len(app_user_ids - active_30),
            "verified": await self._count(User, app_user, User.status != STATUS_UNVERIFIED),
            "suspended": await self._count(User, app_user, User.status == STATUS_SUSPENDED),
            "reported": 0,
            "users_without_posts": len(app_user_ids - set(post_counts)),
            "average_posts_per_user": _average(active_posts, total),
            "top_active_user": top_user,
        }

    async def post_statistics(self) -> dict:
        return await self._cached("admin:stats:posts", self._build_post_statistics)

    async def _build_post_statistics(self) -> dict:
        total = await self._count(Post)
        active = await self._count(Post, Post.status == POST_ACTIVE)
        likes = await self._count(PostLike)
        comments = await self._count(PostComment)

        result = await self.session.execute(
            select(PostLike.post_id, func.count(PostLike.id))
            .group_by(PostLike.post_id)
            .order_by(func.count(PostLike.id).desc())
            .limit(1)
        )
        top = result.first()
        top_post = None
        if top is not None:
            post = await self.session.get(Post, top[0])
            top_post = {"id": post.id, "caption": post.caption, "created_by": post.created_by, "like_count": top[1]}

        return {
            "total_posts": total,
            "active_posts": active,
            "deleted_posts": await self._count(Post, Post.status == POST_DELETED),
            "posts_today": await self._count(Post, Post.created_at >= self._today()),
            "posts_last_7_days": await self._count(Post, Post.created_at >= self._window(7)),
            "by_privacy": {p: await self._count(Post, Post.privacy == p, Post.status == POST_ACTIVE) for p in PRIVACY_VALUES},
            "total_likes": likes,
            "total_comments": comments,
            "average_likes_per_post": _average(likes, active),
            "average_comments_per_post": _average(comments, active),
            "top_post": top_post,
        }

    async def gallery_statistics(self) -> dict:
        return await self._cached("admin:stats:galleries", self._build_gallery_statistics)

    async def _build_gallery_statistics(self) -> dict:
        active = await self._count(Gallery, Gallery.status == GALLERY_ACTIVE)
        inactive = await self._count(Gallery, Gallery.status == GALLERY_INACTIVE)
        likes = await self._count(GalleryLike)
        comments = await self._count(GalleryComment)
        week_ago = self._window(7)

        active_users: set[int] = set()
        for column, created in (
            (Gallery.created_by, Gallery.created_at),
            (GalleryLike.user_id, GalleryLike.created_at),
            (GalleryComment.user_id, GalleryComment.created_at),
        ):
            result = await self.session.execute(select(column).where(created >= week_ago).distinct())
            active_users.update(result.scalars().all())

        return {
            "total_galleries": await self._count(Gallery),
            "active_galleries": active,
            "inactive_galleries": inactive,
            "deleted_galleries": inactive,
            "galleries_today": await self._count(Gallery, Gallery.created_at >= self._today()),
            "public_galleries": await self._count(Gallery, Gallery.privacy == PRIVACY_PUBLIC, Gallery.status == GALLERY_ACTIVE),
            "private_galleries": await self._count(Gallery, Gallery.privacy != PRIVACY_PUBLIC, Gallery.status == GALLERY_ACTIVE),
            "total_likes": likes,
            "total_comments": comments,
            "average_likes_per_gallery": _average(likes, active),
            "average_comments_per_gallery": _average(comments, active),
            "active_users_last_7_days": len(active_users),
            "reported": 0,
        }

    # Listings
    async def list_app_users(self, page: int = 1, limit: int = 25, search: Optional[str] = None) -> dict:
        page, limit = clamp_paging(page, limit)
        stmt = select(User).where(User.is_app_user.is_(True))
        if search:
            pattern = f"%{search.strip()}%"
            stmt = stmt.outerjoin(UserProfile, UserProfile.user_id == User.id).where(
                or_(
                    User.email.ilike(pattern),
                    User.mobile.ilike(pattern),
                    UserProfile.first_name.ilike(pattern),
                    UserProfile.last_name.ilike(pattern),
                )
            )
        total = int((await self.session.execute(select(func.count()).select_from(stmt.subquery()))).scalar() or 0)
        result = await self.session.execute(stmt.order_by(User.id.desc()).offset((page - 1) * limit).limit(limit))
        return {
            "total": total,
            "page": page,
            "limit": limit,
            "data": [user_to_dict(u) | {"profile": profile_to_dict(u.profile)} for u in result.scalars().all()],
        }

    async def _user_or_404(self, user_id: int) -> User:
        user = await self.users.get(user_id)
        if user is None:
            raise NotFoundError("User not found")
        return user

    async def get_app_user(self, user_id: int) -> dict:
        user = await self._user_or_404(user_id)
        return {
            "user": user_to_dict(user),
            "profile": profile_to_dict(user.profile),
            "post_count": await self._count(Post, Post.created_by == user.id, Post.status == POST_ACTIVE),
            "gallery_count": await self._count(Gallery, Gallery.created_by == user.id, Gallery.status == GALLERY_ACTIVE),
        }

    @staticmethod
    def _post_to_dict(post: Post) -> dict:
        return {
            "id": post.id,
            "caption": post.caption,
            "post_image": post.post_image,
            "privacy": post.privacy,
            "family_code": post.family_code,
            "created_by": post.created_by,
            "status": post.status,
            "created_at": post.created_at,
        }

    @staticmethod
    def _gallery_to_dict(gallery: Gallery) -> dict:
        return {
            "id": gallery.id,
            "gallery_title": gallery.gallery_title,
            "gallery_description": gallery.gallery_description,
            "cover_photo": gallery.cover_photo,
            "privacy": gallery.privacy,
            "family_code": gallery.family_code,
            "created_by": gallery.created_by,
            "status": gallery.status,
            "created_at": gallery.created_at,
            "albums": [a.album for a in gallery.albums],
        }

    async def _paged(self, model, serialize, page: int, limit: int, *conditions) -> dict:
        page, limit = clamp_paging(page, limit)
        total = await self._count(model, *conditions)
        stmt = select(model)
        if conditions:
            stmt = stmt.where(*conditions)
        result = await self.session.execute(stmt.order_by(model.id.desc()).offset((page - 1) * limit).limit(limit))
        return {"total": total, "page": page, "limit": limit, "data": [serialize(r) for r in result.scalars().all()]}

    async def user_posts(self, user_id: int, page: int = 1, limit: int = 25) -> dict:
        await self._user_or_404(user_id)
        return await self._paged(Post, self._post_to_dict, page, limit, Post.created_by == user_id)

    async def user_galleries(self, user_id: int, page: int = 1, limit: int = 25) -> dict:
        await self._user_or_404(user_id)
        return await self._paged(Gallery, self._gallery_to_dict, page, limit, Gallery.created_by == user_id)

    async def list_posts(self, page: int = 1, limit: int = 25) -> dict:
        return await self._paged(Post, self._post_to_dict, page, limit)

    async def list_galleries(self, page: int = 1, limit: int = 25) -> dict:
        return await self._paged(Gallery, self._gallery_to_dict, page, limit)

    async def get_post(self, post_id: int) -> dict:
        post = await self.session.get(Post, post_id)
        if post is None:
            raise NotFoundError("Post not found")
        data = self._post_to_dict(post)
        data["like_count"] = await self._count(PostLike, PostLike.post_id == post.id)
        data["comment_count"] = await self._count(PostComment, PostComment.post_id == post.id)
        data["user"] = user_summary(await self.users.get(post.created_by))
        return data

    async def post_likes(self, post_id: int) -> list[dict]:
        await self.get_post(post_id)
        result = await self.session.execute(select(PostLike).where(PostLike.post_id == post_id).order_by(PostLike.id))
        rows = list(result.scalars().all())
        users = await self.users.get_many(r.user_id for r in rows)
        return [{"user": user_summary(users.get(r.user_id)), "created_at": r.created_at} for r in rows]

    async def post_comments(self, post_id: int) -> list[dict]:
        await self.get_post(post_id)
        result = await self.session.execute(
            select(PostComment).where(PostComment.post_id == post_id).order_by(PostComment.id)
        )
        rows = list(result.scalars().all())
        users = await self.users.get_many(r.user_id for r in rows)
        return [
            {
                "id": r.id,
                "comment": r.comment,
                "parent_comment_id": r.parent_comment_id,
                "created_at": r.created_at,
                "user": user_summary(users.get(r.user_id)),
            }
            for r in rows
        ]

    async def get_gallery(self, gallery_id: int) -> dict:
        gallery = await self.session.get(Gallery, gallery_id)
        if gallery is None:
            raise NotFoundError("Gallery not found")
        data = self._gallery_to_dict(gallery)
        data["like_count"] = await self._count(GalleryLike, GalleryLike.gallery_id == gallery.id)
        data["comment_count"] = await self._count(GalleryComment, GalleryComment.gallery_id == gallery.id)
        return data

    async def set_user_status(self, user_id: int, suspended: bool) -> dict:
        """Suspend or re-activate an app user."""
        user = await self._user_or_404(user_id)
        user.status = STATUS_SUSPENDED if suspended else STATUS_ACTIVE
        await self.session.flush()
        cache.delete_pattern(STATS_CACHE_PATTERN)
        logger.info("User status changed by admin", extra={"user_id": user.id, "status": user.status})
        return {
            "message": "User suspended successfully" if suspended else "User activated successfully",
            "user": user_to_dict(user),
        }
