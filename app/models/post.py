"""
Feed posts with likes and threaded comments.
"""

from sqlalchemy import Column, ForeignKey, Integer, String, Text, UniqueConstraint

from app.models.base import Base, IntPKMixin, ModelMixin, TimestampMixin

PRIVACY_PUBLIC = "public"
PRIVACY_PRIVATE = "private"
PRIVACY_FAMILY = "family"
PRIVACY_VALUES = (PRIVACY_PUBLIC, PRIVACY_PRIVATE, PRIVACY_FAMILY)

POST_ACTIVE = 1
POST_DELETED = 0


class Post(Base, IntPKMixin, TimestampMixin, ModelMixin):
    """
    A post in the feed.

    ``privacy`` is public, private or family; non-public posts are scoped to
    ``family_code`` and visible to that family and families associated with it.
    """

    __tablename__ = "posts"

    caption = Column(Text, nullable=True)
    post_image = Column(String(512), nullable=True, doc="Storage key under posts/")
    privacy = Column(String(16), nullable=False, default=PRIVACY_PUBLIC)
    family_code = Column(String(30), index=True, nullable=True)
    created_by = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False)
    status = Column(Integer, nullable=False, default=POST_ACTIVE)


class PostLike(Base, IntPKMixin, TimestampMixin, ModelMixin):
    __tablename__ = "post_likes"
    __table_args__ = (UniqueConstraint("post_id", "user_id", name="uq_post_like"),)

    post_id = Column(Integer, ForeignKey("posts.id", ondelete="CASCADE"), index=True, nullable=False)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False)


class PostComment(Base, IntPKMixin, TimestampMixin, ModelMixin):
    __tablename__ = "post_comments"

    post_id = Column(Integer, ForeignKey("posts.id", ondelete="CASCADE"), index=True, nullable=False)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False)
    comment = Column(Text, nullable=False)
    parent_comment_id = Column(
        Integer,
        ForeignKey("post_comments.id", ondelete="CASCADE"),
        nullable=True,
        doc="Set for replies"
    )
