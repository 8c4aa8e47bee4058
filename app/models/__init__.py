"""
SQLAlchemy ORM models for the family tree API.

Import models from this module to ensure they are registered with the
declarative metadata before create_all().
"""

from app.models.base import Base, TimestampMixin, UUIDMixin, IntPKMixin, ModelMixin
from app.models.user import User, UserProfile
from app.models.admin import AdminAccount, AdminAuditLog
from app.models.family import Family, FamilyMember, FamilyTreeNode, UserRelationship
from app.models.family_link import FamilyLink, TreeLink, TreeLinkRequest
from app.models.merge import FamilyMergeRequest, FamilyMergeState, FamilyMergeStateVersion
from app.models.post import Post, PostLike, PostComment
from app.models.gallery import Gallery, GalleryAlbum, GalleryLike, GalleryComment
from app.models.notification import Notification, NotificationRecipient
from app.models.blocking import UserBlock
from app.models.invite import Invite
from app.models.product import Category, Product, ProductImage, Order
from app.models.family_event import FamilyEvent, FamilyEventImage
from app.models.lookup import Country, Language, Gothram

__all__ = [
    # Base classes
    "Base",
    "TimestampMixin",
    "UUIDMixin",
    "IntPKMixin",
    "ModelMixin",
    # Accounts
    "User",
    "UserProfile",
    "AdminAccount",
    "AdminAuditLog",
    # Families
    "Family",
    "FamilyMember",
    "FamilyTreeNode",
    "UserRelationship",
    "FamilyLink",
    "TreeLink",
    "TreeLinkRequest",
    "FamilyMergeRequest",
    "FamilyMergeState",
    "FamilyMergeStateVersion",
    # Content
    "Post",
    "PostLike",
    "PostComment",
    "Gallery",
    "GalleryAlbum",
    "GalleryLike",
    "GalleryComment",
    "Notification",
    "NotificationRecipient",
    "UserBlock",
    "Invite",
    "FamilyEvent",
    "FamilyEventImage",
    # Reference lists
    "Country",
    "Language",
    "Gothram",
    # Shop
    "Category",
    "Product",
    "ProductImage",
    "Order",
]
