"""
Family, membership and family-tree models.

The tree is stored denormalised: every ``FamilyTreeNode`` carries the person
ids of its parents, children, spouses and siblings as JSON integer arrays.
Person ids are local to one family code. A node whose canonical person lives
in another family's tree is an *external* card and points at the canonical
node through ``canonical_family_code`` / ``canonical_node_uid``.
"""

import uuid

from sqlalchemy import (
    Boolean,
    Column,
    ForeignKey,
    Integer,
    JSON,
    String,
    Text,
    UniqueConstraint,
)

from app.models.base import Base, IntPKMixin, ModelMixin, TimestampMixin

APPROVE_PENDING = "pending"
APPROVE_APPROVED = "approved"
APPROVE_REJECTED = "rejected"

LIFE_LIVING = "living"
LIFE_REMEMBERING = "remembering"

RELATION_ARRAYS = ("parents", "children", "spouses", "siblings")


class Family(Base, IntPKMixin, TimestampMixin, ModelMixin):
    """
    A family unit identified by its family code.
    """

    __tablename__ = "families"

    family_code = Column(String(30), unique=True, index=True, nullable=False)
    family_name = Column(String(200), nullable=False)
    family_bio = Column(Text, nullable=True)
    family_photo = Column(String(512), nullable=True, doc="Storage key of the family photo")
    status = Column(Integer, nullable=False, default=1)
    created_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)


class FamilyMember(Base, IntPKMixin, TimestampMixin, ModelMixin):
    """
    Membership of a user in a family.

    ``approve_status`` moves pending -> approved | rejected. ``is_blocked``
    bars an approved member from the family's tree and content.
    """

    __tablename__ = "family_members"
    __table_args__ = (
        UniqueConstraint("member_id", "family_code", name="uq_family_member"),
    )

    member_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False)
    family_code = Column(String(30), index=True, nullable=False)
    creator_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    approve_status = Column(String(20), nullable=False, default=APPROVE_PENDING)
    is_link_used = Column(Boolean, nullable=False, default=False)
    is_blocked = Column(Boolean, nullable=False, default=False)


class FamilyTreeNode(Base, IntPKMixin, TimestampMixin, ModelMixin):
    """
    One person card in a family tree.

    Attributes:
        family_code: Tree the card belongs to
        person_id: Id of the person inside this tree (unique per family)
        node_uid: Globally unique id used for cross-family links
        user_id: Linked app user, null for people without an account
        generation: 0 for the founding generation, parents are one lower
        parents / children / spouses / siblings: person ids inside this tree
        is_external_linked: Card mirrors a person owned by another tree
    """

    __tablename__ = "family_tree_nodes"
    __table_args__ = (
        UniqueConstraint("family_code", "person_id", name="uq_tree_person"),
    )

    family_code = Column(String(30), index=True, nullable=False)
    person_id = Column(Integer, nullable=False)
    node_uid = Column(
        String(64),
        unique=True,
        index=True,
        nullable=False,
        default=lambda: str(uuid.uuid4()),
    )
    user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), index=True, nullable=True)
    name = Column(String(200), nullable=True)
    gender = Column(String(16), nullable=True)
    age = Column(Integer, nullable=True)
    img = Column(String(512), nullable=True)
    life_status = Column(String(20), nullable=False, default=LIFE_LIVING)
    generation = Column(Integer, nullable=True, default=0)
    parents = Column(JSON, nullable=False, default=list)
    children = Column(JSON, nullable=False, default=list)
    spouses = Column(JSON, nullable=False, default=list)
    siblings = Column(JSON, nullable=False, default=list)
    is_external_linked = Column(Boolean, nullable=False, default=False)
    canonical_family_code = Column(String(30), nullable=True)
    canonical_node_uid = Column(String(64), nullable=True)

    def relation_ids(self, name: str) -> list[int]:
        return [int(v) for v in (getattr(self, name) or [])]


class UserRelationship(Base, IntPKMixin, TimestampMixin, ModelMixin):
    """
    Direct relationship between two users across families (spouse,
    parent-child or sibling). ``generated_family_code`` records the family
    whose tree was touched when the relationship was created.
    """

    __tablename__ = "user_relationships"
    __table_args__ = (
        UniqueConstraint("user1_id", "user2_id", "relationship_type", name="uq_user_relationship"),
    )

    user1_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False)
    user2_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False)
    relationship_type = Column(String(20), nullable=False)
    generated_family_code = Column(String(30), nullable=True)
