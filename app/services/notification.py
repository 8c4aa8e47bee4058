"""
Notification service.

Stores notifications with one recipient row per user, filters recipients
through the block list and pushes each new notification (plus the updated
unread counter) to the recipients' realtime channel.
"""

import logging
from datetime import timedelta
from typing import Any, Iterable, Optional

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.errors import NotFoundError
from app.models.base import to_iso, utc_now, utc_now_iso
from app.models.notification import (
    NOTIFICATION_EXPIRED,
    NOTIFICATION_PENDING,
    Notification,
    NotificationRecipient,
    NotificationType,
)
from app.repositories.user import UserRepository, user_summary
from app.services.blocking import BlockingService
from app.services.event_publisher import event_publisher

logger = logging.getLogger(__name__)

DEFAULT_LIST_LIMIT = 5


class NotificationService:
    """
    Create, list and mark notifications.

    Example:
        service = NotificationService(session)
        result = await service.create_notification(
            {
                "type": NotificationType.FAMILY_JOIN_REQUEST,
                "title": "New join request",
                "message": "Asha wants to join your family",
                "user_ids": admin_ids,
                "family_code": "FAM001",
            },
            triggered_by=requester.id,
        )
    """

    def __init__(self, session: AsyncSession):
        self.session = session
        self.users = UserRepository(session)
        self.blocking = BlockingService(session)

    async def create_notification(self, payload: dict[str, Any], triggered_by: Optional[int]) -> dict:
        """
        Store a notification for every eligible recipient.

        Recipients that blocked, or were blocked by, the triggering user are
        dropped. When nobody is left the notification is not stored.

        Args:
            payload: type, title, message, user_ids, and optionally
                family_code, reference_id, data, status
            triggered_by: User id that caused the notification

        Returns:
            Dict with message, notification_id and request_id
        """
        recipient_ids = list(dict.fromkeys(int(u) for u in payload.get("user_ids") or [] if u))
        if triggered_by:
            hidden = await self.blocking.blocked_user_ids_for(triggered_by)
            recipient_ids = [u for u in recipient_ids if u not in hidden]

        if not recipient_ids:
            logger.info(
                "Notification suppressed",
                extra={"notification_type": payload.get("type"), "user_id": triggered_by},
            )
            return {
                "message": "Notification suppressed (no eligible recipients)",
                "notification_id": None,
                "request_id": None,
            }

        notification = Notification(
            type=payload["type"],
            title=payload["title"],
            message=payload["message"],
            family_code=payload.get("family_code"),
            reference_id=payload.get("reference_id"),
            triggered_by=triggered_by,
            data=payload.get("data"),
            status=payload.get("status") or NOTIFICATION_PENDING,
        )
        notification.recipients = [NotificationRecipient(user_id=uid) for uid in recipient_ids]
        self.session.add(notification)
        await self.session.flush()

        trigger_user = await self.users.get(triggered_by) if triggered_by else None
        for uid in recipient_ids:
            await event_publisher.publish_notification(
                uid, self._serialize(notification, is_read=False, trigger_user=trigger_user)
            )
            await event_publisher.publish_unread_count(uid, await self.unread_count(uid))

        return {
            "message": "Notification created",
            "notification_id": notification.id,
            "request_id": notification.reference_id or notification.id,
        }

    @staticmethod
    def _serialize(notification: Notification, is_read: bool, trigger_user=None) -> dict:
        return {
            "id": notification.id,
            "type": notification.type,
            "title": notification.title,
            "message": notification.message,
            "family_code": notification.family_code,
            "reference_id": notification.reference_id,
            "data": notification.data or {},
            "status": notification.status,
            "is_read": is_read,
            "created_at": notification.created_at,
            "triggered_by": user_summary(trigger_user) if trigger_user else None,
        }

    async def admins_for_family(self, family_code: str) -> list[int]:
        return await self.users.admins_for_family(family_code)

    async def family_member_ids(self, family_code: str) -> list[int]:
        return await self.users.family_member_ids(family_code)

    async def notify_content_owner(
        self,
        *,
        notification_type: str,
        owner_id: int,
        actor_id: int,
        reference_id: int,
        title: str,
        message: str,
        data: Optional[dict] = None,
    ) -> Optional[dict]:
        """
        Notify the owner of a post or gallery about activity on it.

        Activity on your own content produces no notification.
        """
        if owner_id == actor_id:
            return None
        return await self.create_notification(
            {
                "type": notification_type,
                "title": title,
                "message": message,
                "user_ids": [owner_id],
                "reference_id": reference_id,
                "data": data or {},
            },
            triggered_by=actor_id,
        )

    async def get_notifications(
        self,
        user_id: int,
        show_all: bool = False,
        notification_type: Optional[str] = None,
    ) -> list[dict]:
        """
        Notifications of a user, newest first.

        Only the latest five are returned unless ``show_all``. Expired
        association requests and pending ones past their TTL are hidden; the
        triggering user is omitted when blocked in either direction.
        """
        cutoff = to_iso(utc_now() - timedelta(days=settings.association_request_ttl_days))
        stmt = (
            select(Notification, NotificationRecipient.is_read)
            .join(NotificationRecipient, NotificationRecipient.notification_id == Notification.id)
            .where(NotificationRecipient.user_id == user_id)
            .order_by(Notification.created_at.desc(), Notification.id.desc())
        )
        if notification_type:
            stmt = stmt.where(Notification.type == notification_type)

        result = await self.session.execute(stmt)
        hidden = await self.blocking.blocked_user_ids_for(user_id)

        items: list[dict] = []
        rows = [
            (n, is_read) for n, is_read in result.all()
            if not self._is_stale_association(n, cutoff)
        ]
        triggers = await self.users.get_many(n.triggered_by for n, _ in rows)
        for notification, is_read in rows:
            trigger = triggers.get(notification.triggered_by)
            if notification.triggered_by in hidden:
                trigger = None
            items.append(self._serialize(notification, is_read, trigger))
            if not show_all and len(items) >= DEFAULT_LIST_LIMIT:
                break
        return items

    @staticmethod
    def _is_stale_association(notification: Notification, cutoff: str) -> bool:
        if notification.type != NotificationType.FAMILY_ASSOCIATION_REQUEST:
            return False
        if notification.status == NOTIFICATION_EXPIRED:
            return True
        return notification.status == NOTIFICATION_PENDING and notification.created_at < cutoff

    async def get_recipient(self, notification_id: int, user_id: int) -> tuple[Notification, NotificationRecipient]:
        """
        Notification plus the caller's recipient row.

        Raises:
            NotFoundError: Notification missing or caller is not a recipient
        """
        stmt = (
            select(Notification, NotificationRecipient)
            .join(NotificationRecipient, NotificationRecipient.notification_id == Notification.id)
            .where(Notification.id == notification_id, NotificationRecipient.user_id == user_id)
        )
        row = (await self.session.execute(stmt)).first()
        if row is None:
            raise NotFoundError("Notification not found or access denied")
        return row[0], row[1]

    async def mark_as_read(self, notification_id: int, user_id: int, status: Optional[str] = None) -> dict:
        notification, recipient = await self.get_recipient(notification_id, user_id)
        recipient.is_read = True
        recipient.read_at = utc_now_iso()
        if status:
            notification.status = status
        await self.session.flush()
        await event_publisher.publish_unread_count(user_id, await self.unread_count(user_id))
        return {"message": "Notification marked as read", "notification_id": notification.id}

    async def mark_all_recipients_read(self, notification_id: int) -> None:
        await self.session.execute(
            update(NotificationRecipient)
            .where(
                NotificationRecipient.notification_id == notification_id,
                NotificationRecipient.is_read.is_(False),
            )
            .values(is_read=True, read_at=utc_now_iso())
        )

    async def mark_all_as_read(self, user_id: int) -> int:
        result = await self.session.execute(
            update(NotificationRecipient)
            .where(
                NotificationRecipient.user_id == user_id,
                NotificationRecipient.is_read.is_(False),
            )
            .values(is_read=True, read_at=utc_now_iso())
        )
        await event_publisher.publish_unread_count(user_id, 0)
        return result.rowcount or 0

    async def unread_count(self, user_id: int) -> int:
        result = await self.session.execute(
            select(func.count(NotificationRecipient.id)).where(
                NotificationRecipient.user_id == user_id,
                NotificationRecipient.is_read.is_(False),
            )
        )
        return int(result.scalar() or 0)

    async def set_status_for_reference(
        self,
        notification_type: str,
        reference_id: int,
        status: str,
        mark_read: bool = True,
    ) -> int:
        """
        Update pending notifications pointing at a request row.

        Returns:
            Number of notifications updated
        """
        result = await self.session.execute(
            select(Notification).where(
                Notification.type == notification_type,
                Notification.reference_id == reference_id,
                Notification.status == NOTIFICATION_PENDING,
            )
        )
        notifications = list(result.scalars().all())
        for notification in notifications:
            notification.status = status
            if mark_read:
                await self.mark_all_recipients_read(notification.id)
        await self.session.flush()
        return len(notifications)

    async def expire_old_association_requests(self) -> int:
        """
        Expire pending association requests older than the configured TTL.
        """
        cutoff = to_iso(utc_now() - timedelta(days=settings.association_request_ttl_days))
        result = await self.session.execute(
            update(Notification)
            .where(
                Notification.type == NotificationType.FAMILY_ASSOCIATION_REQUEST,
                Notification.status == NOTIFICATION_PENDING,
                Notification.created_at < cutoff,
            )
            .values(status=NOTIFICATION_EXPIRED)
        )
        expired = result.rowcount or 0
        if expired:
            logger.info("Expired association requests", extra={"count": expired})
        return expired

    async def family_join_requests(self, family_code: str) -> list[dict]:
        """Pending join request notifications addressed to a family."""
        result = await self.session.execute(
            select(Notification)
            .where(
                Notification.type == NotificationType.FAMILY_JOIN_REQUEST,
                Notification.family_code == family_code,
                Notification.status == NOTIFICATION_PENDING,
            )
            .order_by(Notification.created_at.desc())
        )
        notifications = list(result.scalars().all())
        triggers = await self.users.get_many(n.triggered_by for n in notifications)
        return [
            self._serialize(n, is_read=False, trigger_user=triggers.get(n.triggered_by))
            for n in notifications
        ]

    async def find_pending_between(
        self,
        notification_type: str,
        user_a: int,
        user_b: int,
    ) -> Optional[Notification]:
        """
        Pending request notification between two users, in either direction.

        Matches a request triggered by ``user_a`` about ``user_b`` as well as
        one triggered by ``user_b`` about ``user_a``.
        """
        result = await self.session.execute(
            select(Notification)
            .where(
                Notification.type == notification_type,
                Notification.triggered_by.in_([user_a, user_b]),
                Notification.status == NOTIFICATION_PENDING,
            )
            .order_by(Notification.id.desc())
        )
        for notification in result.scalars().all():
            data = notification.data or {}
            target = int(data.get("target_user_id") or 0)
            if {notification.triggered_by, target} == {user_a, user_b}:
                return notification
        return None


def recipients_excluding(user_ids: Iterable[int], *excluded: Optional[int]) -> list[int]:
    skip = {e for e in excluded if e}
    return [u for u in dict.fromkeys(user_ids) if u and u not in skip]
