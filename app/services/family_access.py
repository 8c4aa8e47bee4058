"""
Family access rules.

One place answering "may this user see that family's tree or private
content". Used by the tree endpoints, the feeds (posts, galleries) and
the merge previews.
"""

from typing import Optional

from sqlalchemy import and_, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.errors import ForbiddenError
from app.models.family import FamilyMember
from app.models.family_link import LINK_ACTIVE, FamilyLink
from app.models.post import PRIVACY_FAMILY, PRIVACY_PRIVATE, PRIVACY_PUBLIC
from app.models.user import ADMIN_ROLES, User
from app.repositories.family_tree import FamilyTreeRepository
from app.repositories.user import UserRepository
from app.services.blocking import BlockingService


class FamilyAccessService:
    """
    Membership, association and link based access checks.
    """

    def __init__(self, session: AsyncSession):
        self.session = session
        self.users = UserRepository(session)
        self.tree = FamilyTreeRepository(session)

    async def own_family_code(self, user: User) -> Optional[str]:
        """
        Family of a user: profile family code, else the latest approved
        membership.
        """
        if user.profile is not None and user.profile.family_code:
            return user.profile.family_code
        codes = await self.users.approved_family_codes(user.id)
        return codes[0] if codes else None

    async def linked_family_codes(self, family_code: str) -> set[str]:
        """Codes linked to ``family_code`` through an active FamilyLink."""
        if not family_code:
            return set()
        result = await self.session.execute(
            select(FamilyLink).where(
                FamilyLink.status == LINK_ACTIVE,
                or_(
                    FamilyLink.family_code_low == family_code,
                    FamilyLink.family_code_high == family_code,
                ),
            )
        )
        linked = set()
        for link in result.scalars().all():
            linked.add(link.family_code_high if link.family_code_low == family_code else link.family_code_low)
        return linked

    async def visible_family_codes(self, user: User) -> set[str]:
        """
        Family codes whose private and family-only content the user sees:
        own family, approved memberships and associated codes.
        """
        codes = set(await self.users.approved_family_codes(user.id))
        profile = user.profile
        if profile is not None:
            if profile.family_code:
                codes.add(profile.family_code)
            codes.update(c for c in (profile.associated_family_codes or []) if c)
        return {c.upper() for c in codes}

    async def is_blocked_in_family(self, user_id: int, family_code: str) -> bool:
        membership = await self.users.get_membership(user_id, family_code)
        return bool(membership and membership.is_blocked)

    async def can_view_tree(
        self,
        viewer: User,
        family_code: str,
        allow_admin_preview: bool = False,
    ) -> bool:
        """
        Whether ``viewer`` may read the tree of ``family_code``.

        Raises:
            ForbiddenError: Viewer is blocked inside that family
        """
        code = family_code.upper()
        if await self.is_blocked_in_family(viewer.id, code):
            raise ForbiddenError("You have been blocked from this family")

        if settings.allow_cross_family_tree_view:
            return True
        if await self.users.is_approved_member(viewer.id, code):
            return True
        if await self.tree.get_node_by_user(code, viewer.id) is not None:
            return True

        profile = viewer.profile
        associated = {c.upper() for c in ((profile.associated_family_codes if profile else None) or [])}
        if code in associated:
            return True

        own = await self.own_family_code(viewer)
        if own:
            member_ids = await self.users.family_member_ids(own)
            if member_ids:
                if code in await self.tree.family_codes_with_user(member_ids):
                    return True
                member_profiles = await self.users.get_many(member_ids)
                for member in member_profiles.values():
                    codes = (member.profile.associated_family_codes if member.profile else None) or []
                    if code in {c.upper() for c in codes}:
                        return True
            if code in await self.linked_family_codes(own):
                return True

        if allow_admin_preview and viewer.role in ADMIN_ROLES:
            return True
        return False

    async def assert_can_view_tree(
        self,
        viewer: User,
        family_code: str,
        allow_admin_preview: bool = False,
    ) -> None:
        if not await self.can_view_tree(viewer, family_code, allow_admin_preview):
            raise ForbiddenError("Access denied: you are not connected to this family")

    async def blocked_family_codes(self, user_id: int) -> set[str]:
        """Families in which the user is blocked."""
        result = await self.session.execute(
            select(FamilyMember.family_code).where(
                FamilyMember.member_id == user_id,
                FamilyMember.is_blocked.is_(True),
            )
        )
        return set(result.scalars().all())

    async def content_visibility_clause(self, model, viewer: User):
        """
        WHERE clause for feed content (posts, galleries) ``viewer`` may see.

        Public items, the viewer's own items, and private or family items of
        visible families. Items by users blocked in either direction are
        excluded.
        """
        codes = await self.visible_family_codes(viewer)
        blocked = await BlockingService(self.session).blocked_user_ids_for(viewer.id)
        visible = or_(
            model.privacy == PRIVACY_PUBLIC,
            model.created_by == viewer.id,
            and_(model.privacy.in_((PRIVACY_PRIVATE, PRIVACY_FAMILY)), model.family_code.in_(codes)),
        )
        if blocked:
            return and_(visible, model.created_by.not_in(blocked))
        return visible

    async def can_view_content(self, item, viewer: User) -> bool:
        if item.created_by == viewer.id:
            return True
        if await BlockingService(self.session).is_blocked_either_way(viewer.id, item.created_by):
            return False
        if item.privacy == PRIVACY_PUBLIC:
            return True
        return (item.family_code or "").upper() in await self.visible_family_codes(viewer)
