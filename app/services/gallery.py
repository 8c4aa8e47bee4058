"""
Gallery service.

A gallery is a titled set of images with an optional cover. Likes and
comments work like post likes and comments and are pushed on
``gallery:<id>``.
"""

import logging
from typing import Any, Optional

from fastapi import UploadFile
from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import BadRequestError, ForbiddenError, NotFoundError
from app.core.storage import GALLERY_COVER_FOLDER, GALLERY_FOLDER
from app.models.gallery import GALLERY_ACTIVE, GALLERY_INACTIVE, Gallery, GalleryAlbum, GalleryComment, GalleryLike
from app.models.notification import NotificationType
from app.models.post import PRIVACY_PUBLIC, PRIVACY_VALUES
from app.models.user import User
from app.repositories.user import UserRepository, user_summary
from app.services.comment import GALLERY_COMMENTS, CommentService
from app.services.event_publisher import EventType, event_publisher
from app.services.family_access import FamilyAccessService
from app.services.notification import NotificationService
from app.services.upload import UploadService

logger = logging.getLogger(__name__)


class GalleryService:
    def __init__(self, session: AsyncSession, uploads: Optional[UploadService] = None):
        self.session = session
        self.users = UserRepository(session)
        self.access = FamilyAccessService(session)
        self.notifications = NotificationService(session)
        self.comments = CommentService(session, GALLERY_COMMENTS)
        self._uploads = uploads

    @property
    def uploads(self) -> UploadService:
        if self._uploads is None:
            self._uploads = UploadService()
        return self._uploads

    async def _get_active(self, gallery_id: int) -> Gallery:
        gallery = await self.session.get(Gallery, gallery_id)
        if gallery is None or gallery.status != GALLERY_ACTIVE:
            raise NotFoundError("Gallery not found")
        return gallery

    async def _get_owned(self, gallery_id: int, user: User) -> Gallery:
        gallery = await self._get_active(gallery_id)
        if gallery.created_by != user.id:
            raise ForbiddenError("You can only modify your own galleries")
        return gallery

    async def _counts(self, model, gallery_ids: list[int]) -> dict[int, int]:
        if not gallery_ids:
            return {}
        result = await self.session.execute(
            select(model.gallery_id, func.count(model.id))
            .where(model.gallery_id.in_(gallery_ids))
            .group_by(model.gallery_id)
        )
        return dict(result.all())

    async def _serialize_many(self, galleries: list[Gallery], viewer: Optional[User]) -> list[dict]:
        ids = [g.id for g in galleries]
        likes = await self._counts(GalleryLike, ids)
        comments = await self._counts(GalleryComment, ids)
        liked: set[int] = set()
        if viewer is not None and ids:
            result = await self.session.execute(
                select(GalleryLike.gallery_id).where(
                    GalleryLike.gallery_id.in_(ids), GalleryLike.user_id == viewer.id
                )
            )
            liked = set(result.scalars().all())
        authors = await self.users.get_many(g.created_by for g in galleries)
        return [
            {
                "id": g.id,
                "gallery_title": g.gallery_title,
                "gallery_description": g.gallery_description,
                "cover_photo": g.cover_photo,
                "cover_photo_url": self.uploads.url_for(g.cover_photo),
                "privacy": g.privacy,
                "family_code": g.family_code,
                "created_by": g.created_by,
                "status": g.status,
                "created_at": g.created_at,
                "updated_at": g.updated_at,
                "albums": [
                    {"id": a.id, "album": a.album, "url": self.uploads.url_for(a.album)} for a in g.albums
                ],
                "like_count": likes.get(g.id, 0),
                "comment_count": comments.get(g.id, 0),
                "is_liked": g.id in liked,
                "user": user_summary(authors.get(g.created_by)),
            }
            for g in galleries
        ]

    async def create_gallery(
        self,
        user: User,
        gallery_title: str,
        images: list[UploadFile],
        gallery_description: Optional[str] = None,
        privacy: str = PRIVACY_PUBLIC,
        family_code: Optional[str] = None,
        cover_photo: Optional[UploadFile] = None,
    ) -> dict:
        """
        Create a gallery from uploaded images.

        Without an explicit cover, a copy of the first image becomes the
        cover. Stored files are removed again if the gallery cannot be saved.

        Raises:
            BadRequestError: No images, blank title or invalid privacy
            ForbiddenError: Non-public gallery for another family
        """
        if not images:
            raise BadRequestError("At least one image is required")
        if not (gallery_title or "").strip():
            raise BadRequestError("Gallery title is required")
        if privacy not in PRIVACY_VALUES:
            raise BadRequestError(f"Invalid privacy: {privacy}")

        code = (family_code or "").strip().upper() or None
        if privacy != PRIVACY_PUBLIC:
            own = await self.access.own_family_code(user)
            if code is None:
                code = own
            if code is None or own is None or code != own.upper():
                raise ForbiddenError("You can only create galleries for your own family")

        stored: list[str] = []
        try:
            for image in images:
                stored.append(await self.uploads.save_image(image, GALLERY_FOLDER))
            if cover_photo is not None:
                cover_key = await self.uploads.save_image(cover_photo, GALLERY_COVER_FOLDER)
            else:
                cover_key = await self.uploads.copy(stored[0], GALLERY_COVER_FOLDER)
            stored.append(cover_key)

            gallery = Gallery(
                gallery_title=gallery_title.strip(),
                gallery_description=gallery_description,
                cover_photo=cover_key,
                privacy=privacy,
                family_code=code,
                created_by=user.id,
                status=GALLERY_ACTIVE,
                albums=[GalleryAlbum(album=key) for key in stored[:-1]],
            )
            self.session.add(gallery)
            await self.session.flush()
        except Exception:
            await self.uploads.delete_many_quietly(stored)
            raise

        logger.info(
            "Gallery created",
            extra={"gallery_id": gallery.id, "user_id": user.id, "image_count": len(images)},
        )
        return (await self._serialize_many([gallery], user))[0]

    async def get_galleries_by_options(
        self,
        viewer: User,
        privacy: Optional[str] = None,
        family_code: Optional[str] = None,
        created_by: Optional[int] = None,
        gallery_id: Optional[int] = None,
        title: Optional[str] = None,
    ) -> list[dict]:
        stmt = select(Gallery).where(
            Gallery.status == GALLERY_ACTIVE,
            await self.access.content_visibility_clause(Gallery, viewer),
        )
        if privacy:
            stmt = stmt.where(Gallery.privacy == privacy)
        if family_code:
            stmt = stmt.where(Gallery.family_code == family_code.upper())
        if created_by is not None:
            stmt = stmt.where(Gallery.created_by == created_by)
        if gallery_id is not None:
            stmt = stmt.where(Gallery.id == gallery_id)
        if title:
            stmt = stmt.where(Gallery.gallery_title.ilike(f"%{title}%"))
        result = await self.session.execute(stmt.order_by(Gallery.created_at.desc(), Gallery.id.desc()))
        return await self._serialize_many(list(result.scalars().all()), viewer)

    async def get_gallery(self, gallery_id: int, viewer: Optional[User] = None) -> dict:
        """Single gallery; readable without authentication."""
        gallery = await self._get_active(gallery_id)
        return (await self._serialize_many([gallery], viewer))[0]

    async def update_gallery(
        self,
        gallery_id: int,
        user: User,
        changes: dict[str, Any],
        add_images: Optional[list[UploadFile]] = None,
        remove_image_ids: Optional[list[int]] = None,
        cover_photo: Optional[UploadFile] = None,
    ) -> dict:
        gallery = await self._get_owned(gallery_id, user)
        for field in ("gallery_title", "gallery_description"):
            if changes.get(field) is not None:
                setattr(gallery, field, changes[field])
        if changes.get("privacy") is not None:
            if changes["privacy"] not in PRIVACY_VALUES:
                raise BadRequestError(f"Invalid privacy: {changes['privacy']}")
            gallery.privacy = changes["privacy"]

        obsolete: list[str] = []
        remove_ids = set(remove_image_ids or [])
        if remove_ids:
            kept = []
            for album in gallery.albums:
                if album.id in remove_ids:
                    obsolete.append(album.album)
                else:
                    kept.append(album)
            if not kept and not add_images:
                raise BadRequestError("At least one image is required")
            gallery.albums = kept

        for image in add_images or []:
            key = await self.uploads.save_image(image, GALLERY_FOLDER)
            gallery.albums.append(GalleryAlbum(album=key))

        if cover_photo is not None:
            obsolete.append(gallery.cover_photo)
            gallery.cover_photo = await self.uploads.save_image(cover_photo, GALLERY_COVER_FOLDER)

        await self.session.flush()
        await self.uploads.delete_many_quietly(obsolete)
        return (await self._serialize_many([gallery], user))[0]

    async def delete_gallery(self, gallery_id: int, user: User) -> dict:
        gallery = await self._get_owned(gallery_id, user)
        keys = [gallery.cover_photo, *(a.album for a in gallery.albums)]
        gallery.status = GALLERY_INACTIVE
        gallery.albums = []
        gallery.cover_photo = None
        await self.session.execute(delete(GalleryLike).where(GalleryLike.gallery_id == gallery.id))
        await self.comments.delete_all_for(gallery.id)
        await self.session.flush()
        await self.uploads.delete_many_quietly(keys)
        logger.info("Gallery deleted", extra={"gallery_id": gallery.id, "user_id": user.id})
        return {"message": "Gallery deleted successfully"}

    async def toggle_like(self, gallery_id: int, user: User) -> dict:
        gallery = await self._get_active(gallery_id)
        result = await self.session.execute(
            select(GalleryLike).where(GalleryLike.gallery_id == gallery.id, GalleryLike.user_id == user.id)
        )
        like = result.scalar_one_or_none()
        if like is not None:
            await self.session.delete(like)
        else:
            self.session.add(GalleryLike(gallery_id=gallery.id, user_id=user.id))
        await self.session.flush()

        liked = like is None
        like_count = await self.like_count(gallery.id)
        if liked:
            await self.notifications.notify_content_owner(
                notification_type=NotificationType.GALLERY_LIKE,
                owner_id=gallery.created_by,
                actor_id=user.id,
                reference_id=gallery.id,
                title="New like",
                message=f"{user.full_name} liked your gallery",
                data={"gallery_id": gallery.id},
            )
        await event_publisher.publish_gallery_activity(
            gallery.id,
            EventType.GALLERY_LIKE,
            {"gallery_id": gallery.id, "user_id": user.id, "liked": liked, "like_count": like_count},
        )
        return {"liked": liked, "like_count": like_count}

    async def like_count(self, gallery_id: int) -> int:
        return (await self._counts(GalleryLike, [gallery_id])).get(gallery_id, 0)

    async def comment_count(self, gallery_id: int) -> int:
        return await self.comments.count(gallery_id)
