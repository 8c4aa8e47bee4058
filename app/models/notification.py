"""
Notifications and their per-user delivery rows.

Request-style notifications (join, association, tree link, merge) carry a
``status`` that moves from pending to accepted/rejected/expired/revoked;
informational ones stay pending and are only marked read.
"""

from sqlalchemy import Boolean, Column, ForeignKey, Integer, JSON, String, Text, UniqueConstraint
from sqlalchemy.orm import relationship

from app.models.base import Base, IntPKMixin, ModelMixin, TimestampMixin

NOTIFICATION_PENDING = "pending"
NOTIFICATION_ACCEPTED = "accepted"
NOTIFICATION_REJECTED = "rejected"
NOTIFICATION_EXPIRED = "expired"
NOTIFICATION_REVOKED = "revoked"
NOTIFICATION_CANCELLED = "cancelled"


class NotificationType:
    FAMILY_JOIN_REQUEST = "FAMILY_JOIN_REQUEST"
    FAMILY_MEMBER_APPROVED = "FAMILY_MEMBER_APPROVED"
    FAMILY_JOIN_REJECTED = "FAMILY_JOIN_REJECTED"
    FAMILY_MEMBER_REMOVED = "FAMILY_MEMBER_REMOVED"
    FAMILY_REMOVED = "FAMILY_REMOVED"
    FAMILY_ASSOCIATION_REQUEST = "FAMILY_ASSOCIATION_REQUEST"
    FAMILY_ASSOCIATION_ACCEPTED = "FAMILY_ASSOCIATION_ACCEPTED"
    FAMILY_ASSOCIATION_REJECTED = "FAMILY_ASSOCIATION_REJECTED"
    TREE_LINK_REQUEST = "TREE_LINK_REQUEST"
    TREE_LINK_ACCEPTED = "TREE_LINK_ACCEPTED"
    TREE_LINK_REJECTED = "TREE_LINK_REJECTED"
    FAMILY_MERGE_REQUEST = "FAMILY_MERGE_REQUEST"
    FAMILY_MERGE_STATUS_UPDATE = "FAMILY_MERGE_STATUS_UPDATE"
    POST_LIKE = "post_like"
    POST_COMMENT = "post_comment"
    GALLERY_LIKE = "gallery_like"
    GALLERY_COMMENT = "gallery_comment"


class Notification(Base, IntPKMixin, TimestampMixin, ModelMixin):
    __tablename__ = "notifications"

    type = Column(String(50), index=True, nullable=False)
    title = Column(String(200), nullable=False)
    message = Column(Text, nullable=False)
    family_code = Column(String(30), nullable=True)
    reference_id = Column(Integer, nullable=True, doc="Id of the related row (post, request, ...)")
    triggered_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    data = Column(JSON, nullable=True)
    status = Column(String(20), nullable=False, default=NOTIFICATION_PENDING, index=True)

    recipients = relationship(
        "NotificationRecipient",
        back_populates="notification",
        lazy="selectin",
        cascade="all, delete-orphan",
    )


class NotificationRecipient(Base, IntPKMixin, TimestampMixin, ModelMixin):
    __tablename__ = "notification_recipients"
    __table_args__ = (
        UniqueConstraint("notification_id", "user_id", name="uq_notification_recipient"),
    )

    notification_id = Column(
        Integer,
        ForeignKey("notifications.id", ondelete="CASCADE"),
        index=True,
        nullable=False,
    )
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False)
    is_read = Column(Boolean, nullable=False, default=False)
    read_at = Column(String, nullable=True)

    notification = relationship("Notification", back_populates="recipients")
