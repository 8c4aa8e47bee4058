"""
Gift shop catalogue: categories and products with images.
"""

import logging
from decimal import Decimal
from typing import Any, Optional

from fastapi import UploadFile
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import BadRequestError, NotFoundError
from app.core.storage import PRODUCTS_FOLDER
from app.models.product import Category, Product, ProductImage
from app.services.upload import UploadService

logger = logging.getLogger(__name__)

PRODUCT_ACTIVE = 1
CATEGORY_FIELDS = ("name", "description", "status")
PRODUCT_FIELDS = ("name", "description", "price", "stock", "status", "category_id")


def category_to_dict(category: Category) -> dict:
    return {
        "id": category.id,
        "name": category.name,
        "description": category.description,
        "status": category.status,
        "created_at": category.created_at,
    }


class CategoryService:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_or_404(self, category_id: int) -> Category:
        category = await self.session.get(Category, category_id)
        if category is None:
            raise NotFoundError("Category not found")
        return category

    async def _assert_unique(self, name: str, exclude_id: Optional[int] = None) -> None:
        result = await self.session.execute(select(Category).where(Category.name == name))
        existing = result.scalar_one_or_none()
        if existing is not None and existing.id != exclude_id:
            raise BadRequestError("Category already exists")

    async def create(self, data: dict[str, Any]) -> dict:
        await self._assert_unique(data["name"])
        category = Category(**{k: data[k] for k in CATEGORY_FIELDS if data.get(k) is not None})
        self.session.add(category)
        await self.session.flush()
        return category_to_dict(category)

    async def list(self) -> list[dict]:
        result = await self.session.execute(select(Category).order_by(Category.name))
        return [category_to_dict(c) for c in result.scalars().all()]

    async def get(self, category_id: int) -> dict:
        return category_to_dict(await self.get_or_404(category_id))

    async def update(self, category_id: int, changes: dict[str, Any]) -> dict:
        category = await self.get_or_404(category_id)
        if changes.get("name"):
            await self._assert_unique(changes["name"], exclude_id=category.id)
        for field in CATEGORY_FIELDS:
            if changes.get(field) is not None:
                setattr(category, field, changes[field])
        await self.session.flush()
        return category_to_dict(category)

    async def delete(self, category_id: int) -> dict:
        category = await self.get_or_404(category_id)
        await self.session.delete(category)
        await self.session.flush()
        return {"message": "Category deleted successfully"}


class ProductService:
    """
    Admin-managed products. Listing is public and only shows active ones.
    """

    def __init__(self, session: AsyncSession, uploads: Optional[UploadService] = None):
        self.session = session
        self.categories = CategoryService(session)
        self._uploads = uploads

    @property
    def uploads(self) -> UploadService:
        if self._uploads is None:
            self._uploads = UploadService()
        return self._uploads

    def image_to_dict(self, image: ProductImage) -> dict:
        return {"id": image.id, "product_id": image.product_id, "image": image.image, "url": self.uploads.url_for(image.image)}

    def product_to_dict(self, product: Product) -> dict:
        return {
            "id": product.id,
            "name": product.name,
            "description": product.description,
            "price": float(product.price) if product.price is not None else None,
            "stock": product.stock,
            "status": product.status,
            "category_id": product.category_id,
            "created_at": product.created_at,
            "updated_at": product.updated_at,
            "images": [self.image_to_dict(i) for i in product.images],
        }

    async def get_or_404(self, product_id: int) -> Product:
        product = await self.session.get(Product, product_id)
        if product is None:
            raise NotFoundError("Product not found")
        return product

    async def _check_fields(self, data: dict[str, Any]) -> None:
        if data.get("price") is not None and Decimal(str(data["price"])) < 0:
            raise BadRequestError("Price cannot be negative")
        if data.get("stock") is not None and int(data["stock"]) < 0:
            raise BadRequestError("Stock cannot be negative")
        if data.get("category_id") is not None:
            await self.categories.get_or_404(data["category_id"])

    async def create(self, data: dict[str, Any], images: Optional[list[UploadFile]] = None) -> dict:
        await self._check_fields(data)
        product = Product(**{k: data[k] for k in PRODUCT_FIELDS if data.get(k) is not None})
        keys = []
        try:
            for image in images or []:
                keys.append(await self.uploads.save_image(image, PRODUCTS_FOLDER))
            product.images = [ProductImage(image=key) for key in keys]
            self.session.add(product)
            await self.session.flush()
        except Exception:
            await self.uploads.delete_many_quietly(keys)
            raise
        logger.info("Product created", extra={"product_id": product.id})
        return self.product_to_dict(product)

    async def list_active(self, category_id: Optional[int] = None) -> list[dict]:
        stmt = select(Product).where(Product.status == PRODUCT_ACTIVE)
        if category_id is not None:
            stmt = stmt.where(Product.category_id == category_id)
        result = await self.session.execute(stmt.order_by(Product.id.desc()))
        return [self.product_to_dict(p) for p in result.scalars().all()]

    async def get(self, product_id: int) -> dict:
        return self.product_to_dict(await self.get_or_404(product_id))

    async def update(self, product_id: int, changes: dict[str, Any]) -> dict:
        product = await self.get_or_404(product_id)
        await self._check_fields(changes)
        for field in PRODUCT_FIELDS:
            if changes.get(field) is not None:
                setattr(product, field, changes[field])
        await self.session.flush()
        return self.product_to_dict(product)

    async def delete(self, product_id: int) -> dict:
        product = await self.get_or_404(product_id)
        keys = [i.image for i in product.images]
        await self.session.delete(product)
        await self.session.flush()
        await self.uploads.delete_many_quietly(keys)
        logger.info("Product deleted", extra={"product_id": product_id})
        return {"message": "Product deleted successfully"}

    async def add_images(self, product_id: int, images: list[UploadFile]) -> list[dict]:
        if not images:
            raise BadRequestError("At least one image is required")
        product = await self.get_or_404(product_id)
        added = []
        for image in images:
            row = ProductImage(image=await self.uploads.save_image(image, PRODUCTS_FOLDER))
            product.images.append(row)
            added.append(row)
        await self.session.flush()
        return [self.image_to_dict(i) for i in added]

    async def delete_image(self, product_id: int, image_id: int) -> dict:
        product = await self.get_or_404(product_id)
        image = next((i for i in product.images if i.id == image_id), None)
        if image is None:
            raise NotFoundError("Image not found")
        key = image.image
        product.images.remove(image)
        await self.session.flush()
        await self.uploads.delete_quietly(key)
        return {"message": "Image deleted successfully"}

    async def list_images(self, product_id: int) -> list[dict]:
        product = await self.get_or_404(product_id)
        return [self.image_to_dict(i) for i in product.images]
