"""
Pydantic schemas for the gift shop: categories, products and orders.
"""

from decimal import Decimal
from typing import Literal, Optional

from pydantic import BaseModel, Field


class CategoryCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    description: Optional[str] = None
    status: int = 1


class CategoryUpdate(BaseModel):
    name: Optional[str] = Field(default=None, max_length=100)
    description: Optional[str] = None
    status: Optional[int] = None


class ProductUpdate(BaseModel):
    name: Optional[str] = Field(default=None, max_length=200)
    description: Optional[str] = None
    price: Optional[Decimal] = Field(default=None, ge=0)
    stock: Optional[int] = Field(default=None, ge=0)
    status: Optional[int] = None
    category_id: Optional[int] = None


class OrderCreate(BaseModel):
    product_id: int
    quantity: int = Field(default=1, ge=1)
    receiver_id: Optional[int] = None
    receiver_name: Optional[str] = None
    from_location: Optional[str] = None
    to_location: Optional[str] = None
    duration: Optional[str] = None
    delivery_instructions: Optional[str] = None
    gift_message: Optional[str] = None


class OrderStatusUpdate(BaseModel):
    delivery_status: Optional[
        Literal["pending", "confirmed", "shipped", "in_transit", "out_for_delivery", "delivered", "cancelled", "returned"]
    ] = None
    payment_status: Optional[Literal["unpaid", "pending", "paid", "failed", "refunded", "partial_refund"]] = None
