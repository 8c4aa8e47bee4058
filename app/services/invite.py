"""
Invite service.

E-mail invitations with a one-time token. Accepting an invite that carries
a family code opens a join request for that family.
"""

import logging
import uuid
from datetime import timedelta
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.errors import BadRequestError, NotFoundError
from app.core.mail import send_invite_email
from app.models.base import parse_iso, to_iso, utc_now
from app.models.family import APPROVE_APPROVED, APPROVE_PENDING
from app.models.invite import INVITE_ACCEPTED, INVITE_EXPIRED, INVITE_PENDING, Invite
from app.models.user import User
from app.repositories.family_tree import FamilyTreeRepository
from app.repositories.user import UserRepository
from app.services.family import normalize_code
from app.services.family_member import FamilyMemberService

logger = logging.getLogger(__name__)

INVALID_TOKEN_MESSAGE = "Invite token invalid or expired"


def invite_to_dict(invite: Invite) -> dict:
    return {
        "id": invite.id,
        "inviter_id": invite.inviter_id,
        "email": invite.email,
        "family_code": invite.family_code,
        "status": invite.status,
        "expires_at": invite.expires_at,
        "accepted_by": invite.accepted_by,
        "created_at": invite.created_at,
    }


class InviteService:
    def __init__(self, session: AsyncSession):
        self.session = session
        self.users = UserRepository(session)

    async def _sent_today(self, inviter_id: int) -> int:
        day_start = utc_now().replace(hour=0, minute=0, second=0, microsecond=0)
        result = await self.session.execute(
            select(func.count(Invite.id)).where(
                Invite.inviter_id == inviter_id,
                Invite.created_at >= to_iso(day_start),
            )
        )
        return int(result.scalar() or 0)

    async def create_invite(self, inviter: User, email: str, family_code: Optional[str] = None) -> dict:
        """
        Invite someone by e-mail.

        Raises:
            BadRequestError: Daily limit reached
            NotFoundError: Unknown family code
        """
        if await self._sent_today(inviter.id) >= settings.invite_daily_limit:
            raise BadRequestError("Daily invite limit reached")

        code = normalize_code(family_code) if family_code else None
        if code is not None:
            if await FamilyTreeRepository(self.session).get_family(code) is None:
                raise NotFoundError("Family not found")

        invite = Invite(
            inviter_id=inviter.id,
            email=email.strip().lower(),
            family_code=code,
            token=uuid.uuid4().hex,
            status=INVITE_PENDING,
            expires_at=to_iso(utc_now() + timedelta(hours=settings.invite_expiry_hours)),
        )
        self.session.add(invite)
        await self.session.flush()

        link = f"{settings.frontend_url.rstrip('/')}/invite?token={invite.token}"
        await send_invite_email(invite.email, inviter.full_name, link)
        logger.info("Invite sent", extra={"user_id": inviter.id, "invite_id": invite.id, "family_code": code})
        return {"message": "Invite sent successfully", "invite": invite_to_dict(invite)}

    async def validate_token(self, token: str) -> Invite:
        """
        Pending, unexpired invite for ``token``. Expired invites are marked so.

        Raises:
            BadRequestError: Token unknown, used or expired
        """
        result = await self.session.execute(select(Invite).where(Invite.token == token))
        invite = result.scalar_one_or_none()
        if invite is None or invite.status != INVITE_PENDING:
            raise BadRequestError(INVALID_TOKEN_MESSAGE)
        expires_at = parse_iso(invite.expires_at)
        if expires_at is None or expires_at < utc_now():
            invite.status = INVITE_EXPIRED
            # Persisted even though the request fails.
            await self.session.commit()
            raise BadRequestError(INVALID_TOKEN_MESSAGE)
        return invite

    async def accept_invite(self, token: str, user: User) -> dict:
        invite = await self.validate_token(token)
        invite.status = INVITE_ACCEPTED
        invite.accepted_by = user.id
        await self.session.flush()

        join_request = None
        if invite.family_code:
            membership = await self.users.get_membership(user.id, invite.family_code)
            if membership is None or membership.approve_status not in (APPROVE_APPROVED, APPROVE_PENDING):
                join_request = await FamilyMemberService(self.session).request_to_join(invite.family_code, user)

        logger.info("Invite accepted", extra={"user_id": user.id, "invite_id": invite.id})
        return {
            "message": "Invite accepted",
            "invite": invite_to_dict(invite),
            "join_request": join_request,
        }

    async def list_sent(self, inviter: User) -> list[dict]:
        result = await self.session.execute(
            select(Invite).where(Invite.inviter_id == inviter.id).order_by(Invite.created_at.desc())
        )
        return [invite_to_dict(i) for i in result.scalars().all()]
