"""
User repository.

Data access for users, their profiles and family memberships. Services use
it for lookups shared across modules (admin checks, recipients, viewer
context).
"""

from typing import Iterable, Optional

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.family import APPROVE_APPROVED, FamilyMember
from app.models.user import ADMIN_ROLES, User, UserProfile


class UserRepository:
    """
    Repository for user data access.

    Attributes:
        session: SQLAlchemy async session for database operations
    """

    def __init__(self, session: AsyncSession):
        """
        Initialize repository with database session.

        Args:
            session: SQLAlchemy async session
        """
        self.session = session

    async def get(self, user_id: int) -> Optional[User]:
        """
        Retrieve a user (with profile) by id.

        Returns:
            User if found, None otherwise
        """
        if user_id is None:
            return None
        return await self.session.get(User, int(user_id))

    async def get_many(self, user_ids: Iterable[int]) -> dict[int, User]:
        """
        Load several users at once.

        Returns:
            Mapping of user id to User for the ids that exist
        """
        ids = {int(u) for u in user_ids if u is not None}
        if not ids:
            return {}
        result = await self.session.execute(select(User).where(User.id.in_(ids)))
        return {u.id: u for u in result.scalars().all()}

    async def get_by_email(self, email: str) -> Optional[User]:
        """
        Case-insensitive e-mail lookup.
        """
        if not email:
            return None
        stmt = select(User).where(func.lower(User.email) == email.strip().lower())
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def get_by_mobile(self, mobile: str) -> Optional[User]:
        if not mobile:
            return None
        result = await self.session.execute(select(User).where(User.mobile == mobile.strip()))
        return result.scalars().first()

    async def find_by_email_or_mobile(self, email: Optional[str], mobile: Optional[str]) -> list[User]:
        """
        Users matching either the e-mail or the mobile number.

        Example:
            >>> users = await repo.find_by_email_or_mobile("a@b.com", "9876543210")
        """
        conditions = []
        if email:
            conditions.append(func.lower(User.email) == email.strip().lower())
        if mobile:
            conditions.append(User.mobile == mobile.strip())
        if not conditions:
            return []
        result = await self.session.execute(select(User).where(or_(*conditions)))
        return list(result.scalars().all())

    async def get_profile(self, user_id: int) -> Optional[UserProfile]:
        result = await self.session.execute(
            select(UserProfile).where(UserProfile.user_id == user_id)
        )
        return result.scalar_one_or_none()

    async def ensure_profile(self, user: User) -> UserProfile:
        """
        Return the user's profile, creating an empty one when missing.
        """
        if user.profile is not None:
            return user.profile
        profile = UserProfile(user_id=user.id, associated_family_codes=[])
        self.session.add(profile)
        await self.session.flush()
        user.profile = profile
        return profile

    async def get_membership(self, user_id: int, family_code: str) -> Optional[FamilyMember]:
        """
        Membership row of a user in a family (any approval status).
        """
        stmt = select(FamilyMember).where(
            FamilyMember.member_id == user_id,
            FamilyMember.family_code == family_code,
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def approved_family_codes(self, user_id: int) -> list[str]:
        """
        Family codes in which the user holds an approved membership.
        """
        stmt = (
            select(FamilyMember.family_code)
            .where(
                FamilyMember.member_id == user_id,
                FamilyMember.approve_status == APPROVE_APPROVED,
            )
            .order_by(FamilyMember.id.desc())
        )
        result = await self.session.execute(stmt)
        return list(dict.fromkeys(result.scalars().all()))

    async def is_approved_member(self, user_id: int, family_code: str) -> bool:
        membership = await self.get_membership(user_id, family_code)
        return bool(
            membership
            and membership.approve_status == APPROVE_APPROVED
            and not membership.is_blocked
        )

    async def admins_for_family(self, family_code: str) -> list[int]:
        """
        Ids of users with an admin role holding an approved membership.

        Args:
            family_code: Family code (compared upper-cased)

        Returns:
            Distinct admin user ids
        """
        if not family_code:
            return []
        stmt = (
            select(User.id)
            .join(FamilyMember, FamilyMember.member_id == User.id)
            .where(
                func.upper(FamilyMember.family_code) == family_code.upper(),
                FamilyMember.approve_status == APPROVE_APPROVED,
                User.role.in_(ADMIN_ROLES),
            )
        )
        result = await self.session.execute(stmt)
        return list(dict.fromkeys(result.scalars().all()))

    async def family_member_ids(self, family_code: str) -> list[int]:
        """Approved member ids of a family."""
        stmt = select(FamilyMember.member_id).where(
            FamilyMember.family_code == family_code,
            FamilyMember.approve_status == APPROVE_APPROVED,
        )
        result = await self.session.execute(stmt)
        return list(dict.fromkeys(result.scalars().all()))

    async def is_family_admin(self, user: Optional[User], family_code: Optional[str]) -> bool:
        """
        Admin role plus an approved membership of the given family.
        """
        if user is None or not family_code or user.role not in ADMIN_ROLES:
            return False
        return await self.is_approved_member(user.id, family_code)


def user_summary(user: Optional[User]) -> Optional[dict]:
    """Compact public representation of a user for embedding in responses."""
    if user is None:
        return None
    profile = user.profile
    return {
        "id": user.id,
        "name": user.full_name,
        "first_name": profile.first_name if profile else None,
        "last_name": profile.last_name if profile else None,
        "profile": profile.profile if profile else None,
        "family_code": profile.family_code if profile else None,
    }
