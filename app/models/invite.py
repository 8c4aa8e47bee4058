"""
E-mail invitations to join the app (and optionally a family).
"""

from sqlalchemy import Column, ForeignKey, Integer, String

from app.models.base import Base, ModelMixin, TimestampMixin, UUIDMixin

INVITE_PENDING = "pending"
INVITE_ACCEPTED = "accepted"
INVITE_EXPIRED = "expired"


class Invite(Base, UUIDMixin, TimestampMixin, ModelMixin):
    __tablename__ = "invites"

    inviter_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False)
    email = Column(String(255), nullable=False)
    family_code = Column(String(30), nullable=True)
    token = Column(String(64), unique=True, index=True, nullable=False)
    status = Column(String(20), nullable=False, default=INVITE_PENDING)
    expires_at = Column(String, nullable=False)
    accepted_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
