"""
Cross-family link models.

Pairs of family codes are always stored normalised as (low, high) in
lexical order so one row represents the link in both directions.
"""

from sqlalchemy import Column, ForeignKey, Integer, String, UniqueConstraint

from app.models.base import Base, IntPKMixin, ModelMixin, TimestampMixin

LINK_ACTIVE = "active"
LINK_INACTIVE = "inactive"

LINK_SOURCE_TREE = "tree"
LINK_SOURCE_SPOUSE = "spouse"
LINK_SOURCE_MERGE = "merge"

REQUEST_PENDING = "pending"
REQUEST_ACCEPTED = "accepted"
REQUEST_REJECTED = "rejected"
REQUEST_REVOKED = "revoked"
REQUEST_CANCELLED = "cancelled"

TREE_LINK_TYPES = ("parent", "child", "sibling")
PARENT_ROLES = ("father", "mother")


class FamilyLink(Base, IntPKMixin, TimestampMixin, ModelMixin):
    """Two families marked as mutually linked."""

    __tablename__ = "family_links"
    __table_args__ = (
        UniqueConstraint("family_code_low", "family_code_high", name="uq_family_link_pair"),
    )

    family_code_low = Column(String(30), index=True, nullable=False)
    family_code_high = Column(String(30), index=True, nullable=False)
    source = Column(String(20), nullable=False, default=LINK_SOURCE_TREE)
    status = Column(String(20), nullable=False, default=LINK_ACTIVE)


class TreeLink(Base, IntPKMixin, TimestampMixin, ModelMixin):
    """
    Link between one card in each of two trees.

    ``relationship_type_low_to_high`` reads "low node is <type> of high node".
    """

    __tablename__ = "tree_links"
    __table_args__ = (
        UniqueConstraint(
            "family_code_low", "family_code_high", "node_uid_low", "node_uid_high",
            name="uq_tree_link_nodes",
        ),
    )

    family_code_low = Column(String(30), index=True, nullable=False)
    family_code_high = Column(String(30), index=True, nullable=False)
    node_uid_low = Column(String(64), nullable=False)
    node_uid_high = Column(String(64), nullable=False)
    relationship_type_low_to_high = Column(String(20), nullable=False)
    status = Column(String(20), nullable=False, default=LINK_ACTIVE)
    created_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)


class TreeLinkRequest(Base, IntPKMixin, TimestampMixin, ModelMixin):
    """
    Pending proposal to link a sender card to a receiver card.

    ``relationship_type`` reads "sender is <type> of receiver".
    """

    __tablename__ = "tree_link_requests"

    sender_family_code = Column(String(30), index=True, nullable=False)
    receiver_family_code = Column(String(30), index=True, nullable=False)
    sender_node_uid = Column(String(64), nullable=False)
    receiver_node_uid = Column(String(64), nullable=False)
    relationship_type = Column(String(20), nullable=False)
    parent_role = Column(String(10), nullable=True)
    status = Column(String(20), nullable=False, default=REQUEST_PENDING, index=True)
    created_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    responded_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
