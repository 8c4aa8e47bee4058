"""
Family events service.

Members create dated events for their family, optionally with images.
Anyone who can see the family's private content can read its events.
Changes are pushed on ``family-events:<code>``.
"""

import logging
from datetime import date, datetime
from typing import Any, Optional

from fastapi import UploadFile
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import BadRequestError, ForbiddenError, NotFoundError
from app.core.storage import EVENTS_FOLDER
from app.models.family_event import EVENT_ACTIVE, FamilyEvent, FamilyEventImage
from app.models.user import User
from app.repositories.user import UserRepository, user_summary
from app.services.event_publisher import EventType, event_publisher
from app.services.family_access import FamilyAccessService
from app.services.upload import UploadService

logger = logging.getLogger(__name__)

EVENT_FIELDS = ("event_title", "event_description", "event_date", "event_time", "location")


def parse_event_date(value: str) -> str:
    try:
        return date.fromisoformat(value.strip()).isoformat()
    except ValueError:
        raise BadRequestError("event_date must be YYYY-MM-DD")


def parse_event_time(value: Optional[str]) -> Optional[str]:
    if not value or not value.strip():
        return None
    try:
        return datetime.strptime(value.strip(), "%H:%M").strftime("%H:%M")
    except ValueError:
        raise BadRequestError("event_time must be HH:MM")


class FamilyEventService:
    def __init__(self, session: AsyncSession, uploads: Optional[UploadService] = None):
        self.session = session
        self.users = UserRepository(session)
        self.access = FamilyAccessService(session)
        self._uploads = uploads

    @property
    def uploads(self) -> UploadService:
        if self._uploads is None:
            self._uploads = UploadService()
        return self._uploads

    async def _serialize_many(self, events: list[FamilyEvent]) -> list[dict]:
        authors = await self.users.get_many(e.created_by for e in events)
        return [
            {
                "id": e.id,
                "family_code": e.family_code,
                "event_title": e.event_title,
                "event_description": e.event_description,
                "event_date": e.event_date,
                "event_time": e.event_time,
                "location": e.location,
                "created_by": e.created_by,
                "status": e.status,
                "created_at": e.created_at,
                "updated_at": e.updated_at,
                "images": [
                    {"id": i.id, "image": i.image, "url": self.uploads.url_for(i.image)} for i in e.images
                ],
                "user": user_summary(authors.get(e.created_by)),
            }
            for e in events
        ]

    async def _readable_codes(self, user: User) -> set[str]:
        codes = await self.access.visible_family_codes(user)
        return codes - await self.access.blocked_family_codes(user.id)

    async def _get_active(self, event_id: int) -> FamilyEvent:
        event = await self.session.get(FamilyEvent, event_id)
        if event is None or event.status != EVENT_ACTIVE:
            raise NotFoundError("Event not found")
        return event

    async def _get_editable(self, event_id: int, user: User) -> FamilyEvent:
        event = await self._get_active(event_id)
        if event.created_by != user.id and not await self.users.is_family_admin(user, event.family_code):
            raise ForbiddenError("Only the creator or a family admin can change this event")
        return event

    async def _store_images(self, images: list[UploadFile]) -> list[str]:
        stored: list[str] = []
        try:
            for image in images:
                stored.append(await self.uploads.save_image(image, EVENTS_FOLDER))
        except Exception:
            await self.uploads.delete_many_quietly(stored)
            raise
        return stored

    async def create_event(self, user: User, data: dict[str, Any], images: list[UploadFile]) -> dict:
        """
        Create an event for one of the user's own families.

        Raises:
            BadRequestError: Missing title or family code, malformed date or time
            ForbiddenError: User is not an approved member of that family
        """
        title = (data.get("event_title") or "").strip()
        if not title:
            raise BadRequestError("Event title is required")
        code = (data.get("family_code") or "").strip().upper()
        if not code:
            code = (await self.access.own_family_code(user) or "").upper()
        if not code:
            raise BadRequestError("family_code is required")
        own = (await self.access.own_family_code(user) or "").upper()
        if code != own and not await self.users.is_approved_member(user.id, code):
            raise ForbiddenError("You can only create events for your own family")
        if await self.access.is_blocked_in_family(user.id, code):
            raise ForbiddenError("You have been blocked from this family")

        event_date = parse_event_date(data.get("event_date") or "")
        event_time = parse_event_time(data.get("event_time"))

        stored = await self._store_images(images)
        try:
            event = FamilyEvent(
                family_code=code,
                event_title=title,
                event_description=data.get("event_description"),
                event_date=event_date,
                event_time=event_time,
                location=data.get("location"),
                created_by=user.id,
                status=EVENT_ACTIVE,
                images=[FamilyEventImage(image=key) for key in stored],
            )
            self.session.add(event)
            await self.session.flush()
        except Exception:
            await self.uploads.delete_many_quietly(stored)
            raise

        payload = (await self._serialize_many([event]))[0]
        await event_publisher.publish_family_event(code, EventType.FAMILY_EVENT_CREATED, payload)
        logger.info("Family event created", extra={"event_id": event.id, "user_id": user.id, "family_code": code})
        return payload

    async def list_events(
        self,
        user: User,
        family_code: Optional[str] = None,
        upcoming: bool = False,
    ) -> list[dict]:
        """
        Active events of one family, or of every family the user can see,
        ordered by date and time.

        Raises:
            ForbiddenError: ``family_code`` is not visible to the user
        """
        readable = await self._readable_codes(user)
        if family_code:
            code = family_code.strip().upper()
            if code not in readable:
                raise ForbiddenError("Access denied: you are not connected to this family")
            codes = [code]
        else:
            codes = sorted(readable)
        if not codes:
            return []

        stmt = select(FamilyEvent).where(
            FamilyEvent.status == EVENT_ACTIVE,
            FamilyEvent.family_code.in_(codes),
        )
        if upcoming:
            stmt = stmt.where(FamilyEvent.event_date >= date.today().isoformat())
        result = await self.session.execute(
            stmt.order_by(FamilyEvent.event_date, FamilyEvent.event_time, FamilyEvent.id)
        )
        return await self._serialize_many(list(result.scalars().all()))

    async def get_event(self, event_id: int, user: User) -> dict:
        event = await self._get_active(event_id)
        if event.family_code not in await self._readable_codes(user):
            raise ForbiddenError("Access denied: you are not connected to this family")
        return (await self._serialize_many([event]))[0]

    async def update_event(
        self,
        event_id: int,
        user: User,
        changes: dict[str, Any],
        new_images: Optional[list[UploadFile]] = None,
        remove_image_ids: Optional[list[int]] = None,
    ) -> dict:
        """
        Edit an event. New images are appended; removed images are deleted
        from storage after the change is flushed.
        """
        event = await self._get_editable(event_id, user)
        if changes.get("event_title") is not None and not changes["event_title"].strip():
            raise BadRequestError("Event title is required")
        if changes.get("event_date") is not None:
            changes["event_date"] = parse_event_date(changes["event_date"])
        if changes.get("event_time") is not None:
            changes["event_time"] = parse_event_time(changes["event_time"])

        stored = await self._store_images(new_images or [])
        for field in EVENT_FIELDS:
            if changes.get(field) is not None:
                setattr(event, field, changes[field].strip() if field == "event_title" else changes[field])

        dropped: list[str] = []
        remove = set(remove_image_ids or [])
        for image in list(event.images):
            if image.id in remove:
                dropped.append(image.image)
                event.images.remove(image)
        event.images.extend(FamilyEventImage(image=key) for key in stored)
        try:
            await self.session.flush()
        except Exception:
            await self.uploads.delete_many_quietly(stored)
            raise
        await self.uploads.delete_many_quietly(dropped)

        payload = (await self._serialize_many([event]))[0]
        await event_publisher.publish_family_event(event.family_code, EventType.FAMILY_EVENT_UPDATED, payload)
        logger.info("Family event updated", extra={"event_id": event.id, "user_id": user.id})
        return payload

    async def delete_event(self, event_id: int, user: User) -> dict:
        event = await self._get_editable(event_id, user)
        keys = [image.image for image in event.images]
        code = event.family_code
        await self.session.delete(event)
        await self.session.flush()
        await self.uploads.delete_many_quietly(keys)

        await event_publisher.publish_family_event(code, EventType.FAMILY_EVENT_DELETED, {"id": event_id})
        logger.info("Family event deleted", extra={"event_id": event_id, "user_id": user.id, "family_code": code})
        return {"message": "Event deleted successfully"}
