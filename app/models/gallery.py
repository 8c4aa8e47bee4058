"""
Photo galleries (albums of images) with likes and comments.
"""

from sqlalchemy import Column, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import relationship

from app.models.base import Base, IntPKMixin, ModelMixin, TimestampMixin

GALLERY_ACTIVE = 1
GALLERY_INACTIVE = 0


class Gallery(Base, IntPKMixin, TimestampMixin, ModelMixin):
    """
    A titled collection of images.

    ``cover_photo`` is a storage key under gallery/cover/, album images live
    under gallery/.
    """

    __tablename__ = "galleries"

    gallery_title = Column(String(200), nullable=False)
    gallery_description = Column(Text, nullable=True)
    cover_photo = Column(String(512), nullable=True)
    privacy = Column(String(16), nullable=False, default="public")
    family_code = Column(String(30), index=True, nullable=True)
    created_by = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False)
    status = Column(Integer, nullable=False, default=GALLERY_ACTIVE)

    albums = relationship(
        "GalleryAlbum",
        back_populates="gallery",
        lazy="selectin",
        cascade="all, delete-orphan",
        order_by="GalleryAlbum.id",
    )


class GalleryAlbum(Base, IntPKMixin, TimestampMixin, ModelMixin):
    __tablename__ = "gallery_albums"

    gallery_id = Column(Integer, ForeignKey("galleries.id", ondelete="CASCADE"), index=True, nullable=False)
    album = Column(String(512), nullable=False, doc="Storage key of the image")

    gallery = relationship("Gallery", back_populates="albums")


class GalleryLike(Base, IntPKMixin, TimestampMixin, ModelMixin):
    __tablename__ = "gallery_likes"
    __table_args__ = (UniqueConstraint("gallery_id", "user_id", name="uq_gallery_like"),)

    gallery_id = Column(Integer, ForeignKey("galleries.id", ondelete="CASCADE"), index=True, nullable=False)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False)


class GalleryComment(Base, IntPKMixin, TimestampMixin, ModelMixin):
    __tablename__ = "gallery_comments"

    gallery_id = Column(Integer, ForeignKey("galleries.id", ondelete="CASCADE"), index=True, nullable=False)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False)
    comment = Column(Text, nullable=False)
    parent_comment_id = Column(
        Integer,
        ForeignKey("gallery_comments.id", ondelete="CASCADE"),
        nullable=True,
    )
