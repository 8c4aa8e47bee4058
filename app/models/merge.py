"""
Family merge workflow models.

A secondary family's admin asks to merge into a primary family. The primary
admins accept or reject, save merge decisions as a JSON state (every save is
versioned) and finally execute the merge, which rewrites the primary tree.
"""

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

PRIMARY_OPEN = "open"
PRIMARY_ACCEPTED = "accepted"
PRIMARY_REJECTED = "rejected"
MERGED = "merged"

SECONDARY_PENDING = "pending"


class FamilyMergeRequest(Base, IntPKMixin, TimestampMixin, ModelMixin):
    """
    Merge request between two families.

    Attributes:
        primary_status: open -> accepted | rejected -> merged
        secondary_status: pending -> merged
        anchor_config: Client supplied anchor persons and relationship label
        duplicate_persons_info: Last analysis duplicates, for auditing
        conflict_summary: Counts of duplicates, conflicts and scenarios
        applied_generation_offset: Offset chosen by the primary admin
    """

    __tablename__ = "family_merge_requests"

    primary_family_code = Column(String(30), index=True, nullable=False)
    secondary_family_code = Column(String(30), index=True, nullable=False)
    requested_by_admin_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    primary_status = Column(String(20), nullable=False, default=PRIMARY_OPEN)
    secondary_status = Column(String(20), nullable=False, default=SECONDARY_PENDING)
    anchor_config = Column(JSON, nullable=True)
    duplicate_persons_info = Column(JSON, nullable=True)
    conflict_summary = Column(JSON, nullable=True)
    is_no_match_merge = Column(Boolean, nullable=False, default=False)
    applied_generation_offset = Column(Integer, nullable=True)


class FamilyMergeState(Base, IntPKMixin, TimestampMixin, ModelMixin):
    """Current saved merge decisions for a request (one row per request)."""

    __tablename__ = "family_merge_states"

    merge_request_id = Column(
        Integer,
        ForeignKey("family_merge_requests.id", ondelete="CASCADE"),
        unique=True,
        nullable=False,
    )
    primary_family_code = Column(String(30), nullable=False)
    secondary_family_code = Column(String(30), nullable=False)
    state = Column(JSON, nullable=False, default=dict)


class FamilyMergeStateVersion(Base, IntPKMixin, TimestampMixin, ModelMixin):
    """Snapshot of a merge state; versions count up from 1 per request."""

    __tablename__ = "family_merge_state_versions"
    __table_args__ = (
        UniqueConstraint("merge_request_id", "version", name="uq_merge_state_version"),
    )

    merge_request_id = Column(
        Integer,
        ForeignKey("family_merge_requests.id", ondelete="CASCADE"),
        index=True,
        nullable=False,
    )
    version = Column(Integer, nullable=False)
    state = Column(JSON, nullable=False)
    description = Column(Text, nullable=True)
    created_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
