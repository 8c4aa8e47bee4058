"""
Reference lists managed by admins: countries, languages and gothrams.

One service class serves all three tables; listing is public, changes go
through the admin routes.
"""

import logging
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import BadRequestError, NotFoundError
from app.models.lookup import LOOKUP_ACTIVE, Country, Gothram, Language

logger = logging.getLogger(__name__)

# profile column -> referenced table
PROFILE_LOOKUPS = {
    "country_id": Country,
    "language_id": Language,
    "gothram_id": Gothram,
}


def lookup_to_dict(row) -> dict:
    data = {"id": row.id, "name": row.name, "status": row.status, "created_at": row.created_at}
    if hasattr(row, "code"):
        data["code"] = row.code
    return data


class LookupService:
    """
    CRUD over one lookup table.

    Example:
        countries = LookupService(session, Country)
        await countries.create({"name": "India", "code": "IN"})
    """

    def __init__(self, session: AsyncSession, model):
        self.session = session
        self.model = model
        self.label = model.__name__
        self.fields = tuple(f for f in ("name", "code", "status") if hasattr(model, f))

    async def get_or_404(self, row_id: int):
        row = await self.session.get(self.model, row_id)
        if row is None:
            raise NotFoundError(f"{self.label} not found")
        return row

    async def _assert_unique(self, name: str, exclude_id: Optional[int] = None) -> None:
        result = await self.session.execute(select(self.model).where(self.model.name == name))
        existing = result.scalar_one_or_none()
        if existing is not None and existing.id != exclude_id:
            raise BadRequestError(f"{self.label} already exists")

    async def create(self, data: dict[str, Any]) -> dict:
        name = (data.get("name") or "").strip()
        if not name:
            raise BadRequestError("Name is required")
        await self._assert_unique(name)
        row = self.model(**{f: data[f] for f in self.fields if data.get(f) is not None})
        row.name = name
        self.session.add(row)
        await self.session.flush()
        logger.info("Lookup created", extra={"lookup": self.label, "lookup_id": row.id})
        return lookup_to_dict(row)

    async def list(self, active_only: bool = False) -> list[dict]:
        stmt = select(self.model).order_by(self.model.name)
        if active_only:
            stmt = stmt.where(self.model.status == LOOKUP_ACTIVE)
        result = await self.session.execute(stmt)
        return [lookup_to_dict(row) for row in result.scalars().all()]

    async def get(self, row_id: int) -> dict:
        return lookup_to_dict(await self.get_or_404(row_id))

    async def update(self, row_id: int, changes: dict[str, Any]) -> dict:
        row = await self.get_or_404(row_id)
        if changes.get("name"):
            changes["name"] = changes["name"].strip()
            await self._assert_unique(changes["name"], exclude_id=row.id)
        for field in self.fields:
            if changes.get(field) is not None:
                setattr(row, field, changes[field])
        await self.session.flush()
        return lookup_to_dict(row)

    async def delete(self, row_id: int) -> dict:
        row = await self.get_or_404(row_id)
        await self.session.delete(row)
        await self.session.flush()
        logger.info("Lookup deleted", extra={"lookup": self.label, "lookup_id": row_id})
        return {"message": f"{self.label} deleted successfully"}


async def validate_profile_lookups(session: AsyncSession, changes: dict[str, Any]) -> None:
    """
    Check that lookup ids set on a profile point at active rows.

    Raises:
        BadRequestError: Unknown or inactive id
    """
    for field, model in PROFILE_LOOKUPS.items():
        row_id = changes.get(field)
        if row_id is None:
            continue
        row = await session.get(model, row_id)
        if row is None or row.status != LOOKUP_ACTIVE:
            raise BadRequestError(f"Unknown {model.__name__.lower()}: {row_id}")
