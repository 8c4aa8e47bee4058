"""
Gift order endpoints.

App users place and cancel their own orders; admins see every order and
move it through the delivery and payment states.
"""

from fastapi import APIRouter, status

from app.api.dependencies import CurrentAdmin, CurrentUser, DatabaseSession
from app.schemas.shop import OrderCreate, OrderStatusUpdate
from app.services.order import OrderService

router = APIRouter()
admin_router = APIRouter()


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_order(payload: OrderCreate, current_user: CurrentUser, db: DatabaseSession) -> dict:
    details = payload.model_dump(exclude={"product_id", "quantity"})
    data = await OrderService(db).create_order(current_user, payload.product_id, payload.quantity, details)
    return {"message": "Order placed successfully", "data": data}


@router.get("")
async def list_my_orders(current_user: CurrentUser, db: DatabaseSession) -> dict:
    return {"data": await OrderService(db).list_orders(current_user)}


@router.get("/{order_id}")
async def get_my_order(order_id: int, current_user: CurrentUser, db: DatabaseSession) -> dict:
    return {"data": await OrderService(db).get_order(order_id, current_user)}


@router.post("/{order_id}/cancel")
async def cancel_order(order_id: int, current_user: CurrentUser, db: DatabaseSession) -> dict:
    return {"message": "Order cancelled", "data": await OrderService(db).cancel_order(order_id, current_user)}


@admin_router.get("")
async def list_all_orders(admin: CurrentAdmin, db: DatabaseSession) -> dict:
    return {"data": await OrderService(db).list_orders()}


@admin_router.get("/{order_id}")
async def get_order(order_id: int, admin: CurrentAdmin, db: DatabaseSession) -> dict:
    return {"data": await OrderService(db).get_order(order_id)}


@admin_router.patch("/{order_id}/status")
async def update_order_status(order_id: int, payload: OrderStatusUpdate, admin: CurrentAdmin, db: DatabaseSession) -> dict:
    data = await OrderService(db).update_status(order_id, payload.delivery_status, payload.payment_status)
    return {"data": data}


@admin_router.delete("/{order_id}")
async def delete_order(order_id: int, admin: CurrentAdmin, db: DatabaseSession) -> dict:
    return await OrderService(db).delete_order(order_id)
