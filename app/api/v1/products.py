"""
Gift shop catalogue endpoints.

Browsing is public; changes require an admin-panel token.
"""

from decimal import Decimal
from typing import List, Optional

from fastapi import APIRouter, File, Form, Query, UploadFile, status

from app.api.dependencies import CurrentAdmin, DatabaseSession
from app.schemas.shop import CategoryCreate, CategoryUpdate, ProductUpdate
from app.services.product import CategoryService, ProductService

router = APIRouter()
categories_router = APIRouter()


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_product(
    admin: CurrentAdmin,
    db: DatabaseSession,
    name: str = Form(...),
    price: Decimal = Form(..., ge=0),
    stock: int = Form(0, ge=0),
    description: Optional[str] = Form(None),
    category_id: Optional[int] = Form(None),
    status_value: int = Form(1, alias="status"),
    images: List[UploadFile] = File(default_factory=list),
) -> dict:
    data = {
        "name": name,
        "price": price,
        "stock": stock,
        "description": description,
        "category_id": category_id,
        "status": status_value,
    }
    return {"message": "Product created successfully", "data": await ProductService(db).create(data, images)}


@router.get("")
async def list_products(db: DatabaseSession, category_id: Optional[int] = Query(None)) -> dict:
    return {"data": await ProductService(db).list_active(category_id)}


@router.get("/{product_id}")
async def get_product(product_id: int, db: DatabaseSession) -> dict:
    return {"data": await ProductService(db).get(product_id)}


@router.put("/{product_id}")
async def update_product(product_id: int, payload: ProductUpdate, admin: CurrentAdmin, db: DatabaseSession) -> dict:
    return {"data": await ProductService(db).update(product_id, payload.model_dump(exclude_unset=True))}


@router.delete("/{product_id}")
async def delete_product(product_id: int, admin: CurrentAdmin, db: DatabaseSession) -> dict:
    return await ProductService(db).delete(product_id)


@router.get("/{product_id}/images")
async def list_product_images(product_id: int, db: DatabaseSession) -> dict:
    return {"data": await ProductService(db).list_images(product_id)}


@router.post("/{product_id}/images", status_code=status.HTTP_201_CREATED)
async def add_product_images(
    product_id: int,
    admin: CurrentAdmin,
    db: DatabaseSession,
    images: List[UploadFile] = File(...),
) -> dict:
    return {"data": await ProductService(db).add_images(product_id, images)}


@router.delete("/{product_id}/images/{image_id}")
async def delete_product_image(product_id: int, image_id: int, admin: CurrentAdmin, db: DatabaseSession) -> dict:
    return await ProductService(db).delete_image(product_id, image_id)


@categories_router.post("", status_code=status.HTTP_201_CREATED)
async def create_category(payload: CategoryCreate, admin: CurrentAdmin, db: DatabaseSession) -> dict:
    return {"data": await CategoryService(db).create(payload.model_dump())}


@categories_router.get("")
async def list_categories(db: DatabaseSession) -> dict:
    return {"data": await CategoryService(db).list()}


@categories_router.get("/{category_id}")
async def get_category(category_id: int, db: DatabaseSession) -> dict:
    return {"data": await CategoryService(db).get(category_id)}


@categories_router.put("/{category_id}")
async def update_category(category_id: int, payload: CategoryUpdate, admin: CurrentAdmin, db: DatabaseSession) -> dict:
    return {"data": await CategoryService(db).update(category_id, payload.model_dump(exclude_unset=True))}


@categories_router.delete("/{category_id}")
async def delete_category(category_id: int, admin: CurrentAdmin, db: DatabaseSession) -> dict:
    return await CategoryService(db).delete(category_id)
