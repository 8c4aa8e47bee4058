"""
Gift shop: categories, products with images and orders.
"""

from sqlalchemy import Column, ForeignKey, Integer, Numeric, String, Text
from sqlalchemy.orm import relationship

from app.models.base import Base, IntPKMixin, ModelMixin, TimestampMixin

DELIVERY_STATUSES = (
    "pending",
    "confirmed",
    "shipped",
    "in_transit",
    "out_for_delivery",
    "delivered",
    "cancelled",
    "returned",
)
PAYMENT_STATUSES = ("unpaid", "pending", "paid", "failed", "refunded", "partial_refund")


class Category(Base, IntPKMixin, TimestampMixin, ModelMixin):
    __tablename__ = "categories"

    name = Column(String(100), unique=True, nullable=False)
    description = Column(Text, nullable=True)
    status = Column(Integer, nullable=False, default=1)


class Product(Base, IntPKMixin, TimestampMixin, ModelMixin):
    __tablename__ = "products"

    name = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    price = Column(Numeric(10, 2), nullable=False)
    stock = Column(Integer, nullable=False, default=0)
    status = Column(Integer, nullable=False, default=1)
    category_id = Column(Integer, ForeignKey("categories.id", ondelete="SET NULL"), nullable=True)

    images = relationship(
        "ProductImage",
        back_populates="product",
        lazy="selectin",
        cascade="all, delete-orphan",
        order_by="ProductImage.id",
    )


class ProductImage(Base, IntPKMixin, TimestampMixin, ModelMixin):
    __tablename__ = "product_images"

    product_id = Column(Integer, ForeignKey("products.id", ondelete="CASCADE"), index=True, nullable=False)
    image = Column(String(512), nullable=False)

    product = relationship("Product", back_populates="images")


class Order(Base, IntPKMixin, TimestampMixin, ModelMixin):
    """
    A gift order sent from one user to a receiver.

    ``order_number`` is generated as ORD-YYYYMMDD-XXXXXX.
    """

    __tablename__ = "orders"

    order_number = Column(String(32), unique=True, index=True, nullable=False)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False)
    receiver_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    receiver_name = Column(String(200), nullable=True)
    from_location = Column(String(255), nullable=True)
    to_location = Column(String(255), nullable=True)
    duration = Column(String(100), nullable=True)
    product_id = Column(Integer, ForeignKey("products.id", ondelete="SET NULL"), nullable=True)
    price = Column(Numeric(10, 2), nullable=False)
    quantity = Column(Integer, nullable=False, default=1)
    delivery_status = Column(String(20), nullable=False, default="pending")
    payment_status = Column(String(20), nullable=False, default="unpaid")
    delivery_instructions = Column(Text, nullable=True)
    gift_message = Column(Text, nullable=True)
    created_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
