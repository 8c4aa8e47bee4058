"""
User-to-user blocks (soft deleted on unblock).
"""

from sqlalchemy import Column, ForeignKey, Integer, String, UniqueConstraint

from app.models.base import Base, IntPKMixin, ModelMixin, TimestampMixin


class UserBlock(Base, IntPKMixin, TimestampMixin, ModelMixin):
    """
    ``blocker_id`` blocked ``blocked_id``. A row with ``deleted_at`` set is
    an old, lifted block and is reused if the same pair blocks again.
    """

    __tablename__ = "user_blocks"
    __table_args__ = (UniqueConstraint("blocker_id", "blocked_id", name="uq_user_block"),)

    blocker_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False)
    blocked_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False)
    deleted_at = Column(String, nullable=True)
