"""
Family membership workflows: join requests, approval, removal and
per-family blocking.
"""

import logging
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import BadRequestError, ForbiddenError, NotFoundError
from app.models.family import (
    APPROVE_APPROVED,
    APPROVE_PENDING,
    APPROVE_REJECTED,
    FamilyMember,
)
from app.models.notification import (
    NOTIFICATION_ACCEPTED,
    NOTIFICATION_REJECTED,
    NotificationType,
)
from app.models.user import STATUS_ACTIVE, User, UserProfile
from app.repositories.family_tree import FamilyTreeRepository
from app.repositories.user import UserRepository, user_summary
from app.services.family import normalize_code
from app.services.notification import NotificationService, recipients_excluding

logger = logging.getLogger(__name__)


class FamilyMemberService:
    """
    Membership rows of a family and the notifications around them.
    """

    def __init__(self, session: AsyncSession):
        self.session = session
        self.users = UserRepository(session)
        self.tree = FamilyTreeRepository(session)
        self.notifications = NotificationService(session)

    async def _require_family(self, family_code: str):
        family = await self.tree.get_family(normalize_code(family_code))
        if family is None:
            raise NotFoundError("Family not found")
        return family

    async def _require_admin(self, actor: User, family_code: str) -> None:
        if not await self.users.is_family_admin(actor, family_code):
            raise ForbiddenError("Only family admins can manage members")

    @staticmethod
    def membership_to_dict(membership: FamilyMember, user: Optional[User]) -> dict:
        return {
            "id": membership.id,
            "member_id": membership.member_id,
            "family_code": membership.family_code,
            "approve_status": membership.approve_status,
            "is_blocked": membership.is_blocked,
            "created_at": membership.created_at,
            "user": user_summary(user),
        }

    async def request_to_join(self, family_code: str, user: User) -> dict:
        """
        Ask to join a family; its admins get a FAMILY_JOIN_REQUEST.

        A previously rejected request is reopened.

        Raises:
            NotFoundError: Family does not exist
            BadRequestError: Already a member, or a request is pending
        """
        family = await self._require_family(family_code)
        code = family.family_code
        membership = await self.users.get_membership(user.id, code)
        if membership is not None:
            if membership.approve_status == APPROVE_APPROVED:
                raise BadRequestError("Already a member of this family")
            if membership.approve_status == APPROVE_PENDING:
                raise BadRequestError("Join request already pending")
            membership.approve_status = APPROVE_PENDING
        else:
            membership = FamilyMember(
                member_id=user.id,
                family_code=code,
                creator_id=user.id,
                approve_status=APPROVE_PENDING,
            )
            self.session.add(membership)
        await self.session.flush()

        admins = await self.users.admins_for_family(code)
        await self.notifications.create_notification(
            {
                "type": NotificationType.FAMILY_JOIN_REQUEST,
                "title": "New join request",
                "message": f"{user.full_name} wants to join {family.family_name}",
                "user_ids": recipients_excluding(admins, user.id),
                "family_code": code,
                "reference_id": membership.id,
                "data": {"member_id": user.id, "family_code": code},
            },
            triggered_by=user.id,
        )
        logger.info("Join request created", extra={"user_id": user.id, "family_code": code})
        return {"message": "Join request sent", "data": self.membership_to_dict(membership, user)}

    async def add_member_directly(self, actor: User, family_code: str, data: dict[str, Any]) -> dict:
        """
        Add an approved member without a join request.

        ``data`` holds either ``user_id`` of an existing account or the name
        (and optional contact details) of a person without an app account,
        for whom a non-app user is created.
        """
        family = await self._require_family(family_code)
        code = family.family_code
        await self._require_admin(actor, code)

        user: Optional[User] = None
        if data.get("user_id"):
            user = await self.users.get(data["user_id"])
            if user is None:
                raise NotFoundError("User not found")
        else:
            if not data.get("first_name"):
                raise BadRequestError("first_name is required for members without an account")
            user = User(
                email=(data.get("email") or None) and data["email"].lower(),
                mobile=data.get("mobile"),
                country_code=data.get("country_code"),
                status=STATUS_ACTIVE,
                is_app_user=False,
            )
            self.session.add(user)
            await self.session.flush()
            profile = UserProfile(
                user_id=user.id,
                first_name=data["first_name"],
                last_name=data.get("last_name"),
                gender=data.get("gender"),
                family_code=code,
                associated_family_codes=[],
            )
            self.session.add(profile)
            await self.session.flush()
            user.profile = profile

        membership = await self.users.get_membership(user.id, code)
        if membership is None:
            membership = FamilyMember(member_id=user.id, family_code=code, creator_id=actor.id)
            self.session.add(membership)
        membership.approve_status = APPROVE_APPROVED
        profile = await self.users.ensure_profile(user)
        if not profile.family_code:
            profile.family_code = code
        await self.session.flush()
        return {"message": "Member added successfully", "data": self.membership_to_dict(membership, user)}

    async def _pending(self, family_code: str, member_id: int) -> FamilyMember:
        membership = await self.users.get_membership(member_id, family_code)
        if membership is None or membership.approve_status != APPROVE_PENDING:
            raise NotFoundError("Pending join request not found")
        return membership

    async def approve(self, actor: User, family_code: str, member_id: int) -> dict:
        code = normalize_code(family_code)
        await self._require_admin(actor, code)
        membership = await self._pending(code, member_id)
        membership.approve_status = APPROVE_APPROVED

        user = await self.users.get(member_id)
        if user is not None:
            profile = await self.users.ensure_profile(user)
            if not profile.family_code:
                profile.family_code = code
        await self.session.flush()

        await self.notifications.set_status_for_reference(
            NotificationType.FAMILY_JOIN_REQUEST, membership.id, NOTIFICATION_ACCEPTED
        )
        await self.notifications.create_notification(
            {
                "type": NotificationType.FAMILY_MEMBER_APPROVED,
                "title": "Join request approved",
                "message": f"Your request to join {code} was approved",
                "user_ids": [member_id],
                "family_code": code,
            },
            triggered_by=actor.id,
        )
        logger.info("Member approved", extra={"user_id": member_id, "family_code": code})
        return {"message": "Member approved", "data": self.membership_to_dict(membership, user)}

    async def reject(self, actor: User, family_code: str, member_id: int) -> dict:
        code = normalize_code(family_code)
        await self._require_admin(actor, code)
        membership = await self._pending(code, member_id)
        membership.approve_status = APPROVE_REJECTED
        await self.session.flush()

        await self.notifications.set_status_for_reference(
            NotificationType.FAMILY_JOIN_REQUEST, membership.id, NOTIFICATION_REJECTED
        )
        await self.notifications.create_notification(
            {
                "type": NotificationType.FAMILY_JOIN_REJECTED,
                "title": "Join request rejected",
                "message": f"Your request to join {code} was rejected",
                "user_ids": [member_id],
                "family_code": code,
            },
            triggered_by=actor.id,
        )
        return {"message": "Join request rejected"}

    async def remove_member(self, actor: User, family_code: str, member_id: int) -> dict:
        code = normalize_code(family_code)
        await self._require_admin(actor, code)
        membership = await self.users.get_membership(member_id, code)
        if membership is None:
            raise NotFoundError("Member not found in this family")

        user = await self.users.get(member_id)
        if user is not None and user.profile is not None and user.profile.family_code == code:
            user.profile.family_code = None
        await self.session.delete(membership)
        await self.session.flush()

        admins = await self.users.admins_for_family(code)
        await self.notifications.create_notification(
            {
                "type": NotificationType.FAMILY_MEMBER_REMOVED,
                "title": "Member removed",
                "message": f"{user.full_name if user else 'A member'} was removed from {code}",
                "user_ids": recipients_excluding(admins, actor.id),
                "family_code": code,
                "data": {"member_id": member_id},
            },
            triggered_by=actor.id,
        )
        logger.info("Member removed", extra={"user_id": member_id, "family_code": code})
        return {"message": "Member removed successfully"}

    async def set_blocked(self, actor: User, family_code: str, member_id: int, blocked: bool) -> dict:
        code = normalize_code(family_code)
        await self._require_admin(actor, code)
        if member_id == actor.id:
            raise BadRequestError("You cannot block yourself")
        membership = await self.users.get_membership(member_id, code)
        if membership is None:
            raise NotFoundError("Member not found in this family")
        membership.is_blocked = blocked
        await self.session.flush()
        return {
            "message": "Member blocked" if blocked else "Member unblocked",
            "member_id": member_id,
            "is_blocked": blocked,
        }

    async def list_members(self, family_code: str) -> list[dict]:
        code = normalize_code(family_code)
        result = await self.session.execute(
            select(FamilyMember)
            .where(FamilyMember.family_code == code, FamilyMember.approve_status == APPROVE_APPROVED)
            .order_by(FamilyMember.id)
        )
        memberships = list(result.scalars().all())
        users = await self.users.get_many(m.member_id for m in memberships)
        return [self.membership_to_dict(m, users.get(m.member_id)) for m in memberships]

    async def get_member(self, membership_id: int) -> dict:
        membership = await self.session.get(FamilyMember, membership_id)
        if membership is None:
            raise NotFoundError("Member not found")
        return self.membership_to_dict(membership, await self.users.get(membership.member_id))

    async def pending_requests(self, actor: User, family_code: str) -> list[dict]:
        code = normalize_code(family_code)
        await self._require_admin(actor, code)
        result = await self.session.execute(
            select(FamilyMember)
            .where(FamilyMember.family_code == code, FamilyMember.approve_status == APPROVE_PENDING)
            .order_by(FamilyMember.id.desc())
        )
        memberships = list(result.scalars().all())
        users = await self.users.get_many(m.member_id for m in memberships)
        return [self.membership_to_dict(m, users.get(m.member_id)) for m in memberships]
