"""
Relationship and generation helpers shared by the tree services.

Generations grow downwards: a parent sits one generation above (lower
number than) its child; spouses and siblings share a generation.
"""

from collections import Counter
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.family import FamilyTreeNode

_MALE = {"male", "m", "man"}
_FEMALE = {"female", "f", "woman"}


def invert_relationship_type(relationship_type: str) -> str:
    """parent <-> child; anything else is treated as sibling."""
    if relationship_type == "parent":
        return "child"
    if relationship_type == "child":
        return "parent"
    return "sibling"


def get_other_generation(base_generation: Optional[int], relationship_type: str) -> int:
    """
    Generation of the other side of a relationship.

    ``relationship_type`` reads "other is <type> of base": the parent of a
    generation-3 person is generation 2.
    """
    base = int(base_generation or 0)
    if relationship_type == "parent":
        return base - 1
    if relationship_type == "child":
        return base + 1
    return base


def normalize_gender(value: Any) -> str:
    text = str(value or "").strip().lower()
    if text in _MALE:
        return "male"
    if text in _FEMALE:
        return "female"
    return ""


def parse_age(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        age = int(float(value))
    except (TypeError, ValueError):
        return None
    return age if age >= 0 else None


def is_parent_child(relationship_type: str) -> bool:
    return relationship_type in {"parent", "child", "parent-child"}


async def calculate_generation(
    session: AsyncSession,
    family_code: str,
    user_id: Optional[int],
    partner_user_id: Optional[int],
    relationship_type: str,
) -> int:
    """
    Best generation for a user's card in a family.

    Resolution order:
    1. the user's existing card in the family
    2. the partner's card (one generation lower for parent-child)
    3. the most common generation of the tree (same adjustment)
    4. 0 for an empty tree
    """
    adjust = -1 if is_parent_child(relationship_type) else 0

    if user_id:
        own = await _generation_of(session, family_code, user_id)
        if own is not None:
            return own

    if partner_user_id:
        partner = await _generation_of(session, family_code, partner_user_id)
        if partner is not None:
            return partner + adjust

    result = await session.execute(
        select(FamilyTreeNode.generation).where(FamilyTreeNode.family_code == family_code)
    )
    generations = [g for g in result.scalars().all() if g is not None]
    if not generations:
        return 0
    mode = Counter(generations).most_common(1)[0][0]
    return int(mode) + adjust


async def _generation_of(session: AsyncSession, family_code: str, user_id: int) -> Optional[int]:
    result = await session.execute(
        select(FamilyTreeNode.generation)
        .where(FamilyTreeNode.family_code == family_code, FamilyTreeNode.user_id == user_id)
        .order_by(FamilyTreeNode.is_external_linked, FamilyTreeNode.id)
    )
    value = result.scalars().first()
    return int(value) if value is not None else None
