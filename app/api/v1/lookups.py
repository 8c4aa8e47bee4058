"""
Country, language and gothram lists.

Reading is public so signup and profile forms can fill their pickers;
creating, editing and deleting entries needs an admin token.
"""

from fastapi import APIRouter, Query, status

from app.api.dependencies import CurrentAdmin, DatabaseSession
from app.models.lookup import Country, Gothram, Language
from app.schemas.lookup import LookupCreate, LookupUpdate
from app.services.lookup import LookupService


def lookup_router(model) -> APIRouter:
    router = APIRouter()

    @router.get("")
    async def list_entries(db: DatabaseSession, active_only: bool = Query(False)) -> dict:
        return {"data": await LookupService(db, model).list(active_only)}

    @router.post("", status_code=status.HTTP_201_CREATED)
    async def create_entry(payload: LookupCreate, admin: CurrentAdmin, db: DatabaseSession) -> dict:
        return {"data": await LookupService(db, model).create(payload.model_dump())}

    @router.get("/{entry_id}")
    async def get_entry(entry_id: int, db: DatabaseSession) -> dict:
        return {"data": await LookupService(db, model).get(entry_id)}

    @router.patch("/{entry_id}")
    async def update_entry(entry_id: int, payload: LookupUpdate, admin: CurrentAdmin, db: DatabaseSession) -> dict:
        return {"data": await LookupService(db, model).update(entry_id, payload.model_dump(exclude_unset=True))}

    @router.delete("/{entry_id}")
    async def delete_entry(entry_id: int, admin: CurrentAdmin, db: DatabaseSession) -> dict:
        return await LookupService(db, model).delete(entry_id)

    return router


countries_router = lookup_router(Country)
languages_router = lookup_router(Language)
gothrams_router = lookup_router(Gothram)
