"""
Family tree repository.

Reads and writes ``FamilyTreeNode`` rows. All relationship arrays are
person ids local to the node's family code.
"""

from typing import Iterable, Optional

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.family import Family, FamilyTreeNode


class FamilyTreeRepository:
    """
    Repository for tree cards and families.

    Attributes:
        session: SQLAlchemy async session for database operations
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_family(self, family_code: str) -> Optional[Family]:
        """
        Retrieve a family by code.

        Returns:
            Family if found, None otherwise
        """
        if not family_code:
            return None
        result = await self.session.execute(
            select(Family).where(Family.family_code == family_code)
        )
        return result.scalar_one_or_none()

    async def list_nodes(self, family_code: str) -> list[FamilyTreeNode]:
        """
        All cards of a tree ordered by person id.

        Example:
            >>> nodes = await repo.list_nodes("FAM001")
            >>> [n.person_id for n in nodes]
            [1, 2, 3]
        """
        stmt = (
            select(FamilyTreeNode)
            .where(FamilyTreeNode.family_code == family_code)
            .order_by(FamilyTreeNode.person_id)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def list_nodes_for_families(self, family_codes: Iterable[str]) -> list[FamilyTreeNode]:
        codes = [c for c in family_codes if c]
        if not codes:
            return []
        stmt = (
            select(FamilyTreeNode)
            .where(FamilyTreeNode.family_code.in_(codes))
            .order_by(FamilyTreeNode.family_code, FamilyTreeNode.person_id)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def get_node_by_uid(self, node_uid: str) -> Optional[FamilyTreeNode]:
        if not node_uid:
            return None
        result = await self.session.execute(
            select(FamilyTreeNode).where(FamilyTreeNode.node_uid == node_uid)
        )
        return result.scalar_one_or_none()

    async def get_node_in_family(self, family_code: str, node_uid: str) -> Optional[FamilyTreeNode]:
        """
        Card with the given uid, only if it belongs to ``family_code``.
        """
        node = await self.get_node_by_uid(node_uid)
        if node is None or node.family_code != family_code:
            return None
        return node

    async def get_node_by_person(self, family_code: str, person_id: int) -> Optional[FamilyTreeNode]:
        stmt = select(FamilyTreeNode).where(
            FamilyTreeNode.family_code == family_code,
            FamilyTreeNode.person_id == person_id,
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_node_by_user(self, family_code: str, user_id: int) -> Optional[FamilyTreeNode]:
        """
        First card of a user inside a tree (a user normally has at most one).
        """
        stmt = (
            select(FamilyTreeNode)
            .where(
                FamilyTreeNode.family_code == family_code,
                FamilyTreeNode.user_id == user_id,
            )
            .order_by(FamilyTreeNode.is_external_linked, FamilyTreeNode.id)
        )
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def nodes_for_user(self, user_id: int) -> list[FamilyTreeNode]:
        result = await self.session.execute(
            select(FamilyTreeNode).where(FamilyTreeNode.user_id == user_id)
        )
        return list(result.scalars().all())

    async def family_codes_with_user(self, user_ids: Iterable[int]) -> set[str]:
        """
        Family codes whose trees contain a card for any of the given users.
        """
        ids = [u for u in user_ids if u is not None]
        if not ids:
            return set()
        result = await self.session.execute(
            select(FamilyTreeNode.family_code).where(FamilyTreeNode.user_id.in_(ids))
        )
        return set(result.scalars().all())

    async def next_person_id(self, family_code: str) -> int:
        """
        Next free person id in a tree (max + 1, or 1 for an empty tree).
        """
        result = await self.session.execute(
            select(func.max(FamilyTreeNode.person_id)).where(
                FamilyTreeNode.family_code == family_code
            )
        )
        current = result.scalar()
        return int(current or 0) + 1

    async def delete_nodes(self, family_code: str, person_ids: Optional[Iterable[int]] = None) -> int:
        """
        Delete cards of a tree (all of them when ``person_ids`` is None).

        Returns:
            Number of deleted rows
        """
        stmt = delete(FamilyTreeNode).where(FamilyTreeNode.family_code == family_code)
        if person_ids is not None:
            ids = list(person_ids)
            if not ids:
                return 0
            stmt = stmt.where(FamilyTreeNode.person_id.in_(ids))
        result = await self.session.execute(stmt)
        return result.rowcount or 0
