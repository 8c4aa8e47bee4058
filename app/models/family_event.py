"""
Family events (weddings, birthdays, anniversaries) with their images.
"""

from sqlalchemy import Column, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship

from app.models.base import Base, IntPKMixin, ModelMixin, TimestampMixin

EVENT_ACTIVE = 1
EVENT_INACTIVE = 0


class FamilyEvent(Base, IntPKMixin, TimestampMixin, ModelMixin):
    """
    A dated event of one family.

    ``event_date`` is YYYY-MM-DD and ``event_time`` HH:MM, both stored as
    text like the profile date of birth.
    """

    __tablename__ = "family_events"

    family_code = Column(String(30), index=True, nullable=False)
    event_title = Column(String(50), nullable=False)
    event_description = Column(Text, nullable=True)
    event_date = Column(String(10), index=True, nullable=False)
    event_time = Column(String(5), nullable=True)
    location = Column(String(255), nullable=True)
    created_by = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False)
    status = Column(Integer, nullable=False, default=EVENT_ACTIVE)

    images = relationship(
        "FamilyEventImage",
        back_populates="event",
        lazy="selectin",
        cascade="all, delete-orphan",
        order_by="FamilyEventImage.id",
    )


class FamilyEventImage(Base, IntPKMixin, TimestampMixin, ModelMixin):
    __tablename__ = "family_event_images"

    event_id = Column(Integer, ForeignKey("family_events.id", ondelete="CASCADE"), index=True, nullable=False)
    image = Column(String(512), nullable=False, doc="Storage key of the image")

    event = relationship("FamilyEvent", back_populates="images")
