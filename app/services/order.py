"""
Gift orders.
"""

import logging
import secrets
import string
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import BadRequestError, ForbiddenError, NotFoundError
from app.models.base import utc_now
from app.models.product import DELIVERY_STATUSES, PAYMENT_STATUSES, Order, Product
from app.models.user import User
from app.services.product import PRODUCT_ACTIVE, ProductService

logger = logging.getLogger(__name__)

ORDER_SUFFIX_ALPHABET = string.ascii_uppercase + string.digits
ORDER_DETAIL_FIELDS = (
    "receiver_id",
    "receiver_name",
    "from_location",
    "to_location",
    "duration",
    "delivery_instructions",
    "gift_message",
)


def generate_order_number() -> str:
    """ORD-YYYYMMDD-XXXXXX with a random upper-case alphanumeric suffix."""
    suffix = "".join(secrets.choice(ORDER_SUFFIX_ALPHABET) for _ in range(6))
    return f"ORD-{utc_now():%Y%m%d}-{suffix}"


def order_to_dict(order: Order) -> dict:
    return {
        "id": order.id,
        "order_number": order.order_number,
        "user_id": order.user_id,
        "receiver_id": order.receiver_id,
        "receiver_name": order.receiver_name,
        "from_location": order.from_location,
        "to_location": order.to_location,
        "duration": order.duration,
        "product_id": order.product_id,
        "price": float(order.price) if order.price is not None else None,
        "quantity": order.quantity,
        "delivery_status": order.delivery_status,
        "payment_status": order.payment_status,
        "delivery_instructions": order.delivery_instructions,
        "gift_message": order.gift_message,
        "created_by": order.created_by,
        "created_at": order.created_at,
        "updated_at": order.updated_at,
    }


class OrderService:
    def __init__(self, session: AsyncSession):
        self.session = session
        self.products = ProductService(session)

    async def _unique_order_number(self) -> str:
        while True:
            number = generate_order_number()
            result = await self.session.execute(select(Order.id).where(Order.order_number == number))
            if result.scalar_one_or_none() is None:
                return number

    async def get_or_404(self, order_id: int) -> Order:
        order = await self.session.get(Order, order_id)
        if order is None:
            raise NotFoundError("Order not found")
        return order

    async def create_order(self, user: User, product_id: int, quantity: int = 1, details: Optional[dict[str, Any]] = None) -> dict:
        """
        Place an order, taking the units out of stock.

        Raises:
            NotFoundError: Unknown product
            BadRequestError: Inactive product, bad quantity or not enough stock
        """
        if quantity < 1:
            raise BadRequestError("Quantity must be at least 1")
        product = await self.products.get_or_404(product_id)
        if product.status != PRODUCT_ACTIVE:
            raise BadRequestError("Product is not available")
        if product.stock < quantity:
            raise BadRequestError("Insufficient stock")

        product.stock -= quantity
        details = details or {}
        order = Order(
            order_number=await self._unique_order_number(),
            user_id=user.id,
            product_id=product.id,
            price=product.price * quantity,
            quantity=quantity,
            delivery_status="pending",
            payment_status="unpaid",
            created_by=user.id,
            **{k: details[k] for k in ORDER_DETAIL_FIELDS if details.get(k) is not None},
        )
        self.session.add(order)
        await self.session.flush()
        logger.info(
            "Order placed",
            extra={"order_id": order.id, "user_id": user.id, "product_id": product.id, "quantity": quantity},
        )
        return order_to_dict(order)

    async def list_orders(self, user: Optional[User] = None) -> list[dict]:
        """Orders of ``user``; every order when called for the admin panel (``user`` None)."""
        stmt = select(Order)
        if user is not None:
            stmt = stmt.where(Order.user_id == user.id)
        result = await self.session.execute(stmt.order_by(Order.id.desc()))
        return [order_to_dict(o) for o in result.scalars().all()]

    async def get_order(self, order_id: int, user: Optional[User] = None) -> dict:
        order = await self.get_or_404(order_id)
        if user is not None and order.user_id != user.id:
            raise NotFoundError("Order not found")
        return order_to_dict(order)

    async def update_status(
        self,
        order_id: int,
        delivery_status: Optional[str] = None,
        payment_status: Optional[str] = None,
    ) -> dict:
        order = await self.get_or_404(order_id)
        if delivery_status is not None:
            if delivery_status not in DELIVERY_STATUSES:
                raise BadRequestError(f"Invalid delivery status: {delivery_status}")
            order.delivery_status = delivery_status
        if payment_status is not None:
            if payment_status not in PAYMENT_STATUSES:
                raise BadRequestError(f"Invalid payment status: {payment_status}")
            order.payment_status = payment_status
        await self.session.flush()
        logger.info(
            "Order status updated",
            extra={"order_id": order.id, "delivery_status": order.delivery_status, "payment_status": order.payment_status},
        )
        return order_to_dict(order)

    async def cancel_order(self, order_id: int, user: User) -> dict:
        """Cancel an own pending order and return its units to stock."""
        order = await self.get_or_404(order_id)
        if order.user_id != user.id:
            raise ForbiddenError("You can only cancel your own orders")
        if order.delivery_status != "pending":
            raise BadRequestError("Only pending orders can be cancelled")
        order.delivery_status = "cancelled"
        if order.product_id is not None:
            product = await self.session.get(Product, order.product_id)
            if product is not None:
                product.stock += order.quantity
        await self.session.flush()
        return order_to_dict(order)

    async def delete_order(self, order_id: int) -> dict:
        order = await self.get_or_404(order_id)
        await self.session.delete(order)
        await self.session.flush()
        return {"message": "Order deleted successfully"}
