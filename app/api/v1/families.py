"""
Family endpoints: families, trees and cross-family views.

Static paths are declared before ``/{family_code}`` so they are not
swallowed by the code parameter.
"""

from typing import Optional

from fastapi import APIRouter, File, Form, Query, UploadFile, status

from app.api.dependencies import CurrentUser, DatabaseSession
from app.core.errors import NotFoundError
from app.core.storage import FAMILY_FOLDER
from app.schemas.family import (
    AssociateFamiliesRequest,
    FamilyTreeCreate,
    RepairTreeRequest,
    SpouseRelationshipRequest,
)
from app.services.family import FamilyService
from app.services.upload import UploadService

router = APIRouter()


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_family(
    current_user: CurrentUser,
    db: DatabaseSession,
    family_name: str = Form(...),
    family_code: str = Form(...),
    family_bio: Optional[str] = Form(None),
    family_photo: Optional[UploadFile] = File(None),
) -> dict:
    """
    Create a family with the caller as admin.

    The response carries a new ``access_token`` because the caller's role
    claim changes.
    """
    uploads = UploadService()
    service = FamilyService(db, uploads)
    photo_key = await uploads.save_image(family_photo, FAMILY_FOLDER) if family_photo is not None else None
    return await service.create_family(current_user, family_name, family_code, family_bio, photo_key)


@router.get("")
async def list_families(current_user: CurrentUser, db: DatabaseSession) -> dict:
    return {"data": await FamilyService(db).list_families()}


@router.get("/search")
async def search_families(
    current_user: CurrentUser,
    db: DatabaseSession,
    q: str = Query(..., min_length=1, description="Code prefix or part of the name"),
) -> dict:
    return {"data": await FamilyService(db).search_families(q)}


@router.post("/associate")
async def associate_families(payload: AssociateFamiliesRequest, current_user: CurrentUser, db: DatabaseSession) -> dict:
    return await FamilyService(db).associate_families(payload.source_family_code, payload.target_family_code)


@router.get("/user/{user_id}")
async def family_of_user(user_id: int, current_user: CurrentUser, db: DatabaseSession) -> dict:
    return {"data": await FamilyService(db).get_family_by_user_id(user_id)}


@router.get("/user/{user_id}/codes")
async def user_family_codes(user_id: int, current_user: CurrentUser, db: DatabaseSession) -> dict:
    return {"data": await FamilyService(db).get_user_families(user_id)}


@router.get("/user/{user_id}/relationships")
async def user_relationships(user_id: int, current_user: CurrentUser, db: DatabaseSession) -> dict:
    return {"data": await FamilyService(db).get_user_relationships(user_id)}


@router.post("/relationships/spouse", status_code=status.HTTP_201_CREATED)
async def add_spouse_relationship(
    payload: SpouseRelationshipRequest,
    current_user: CurrentUser,
    db: DatabaseSession,
) -> dict:
    rel = await FamilyService(db).add_spouse_relationship(
        current_user.id,
        payload.partner_user_id,
        payload.generated_family_code,
    )
    return {"message": "Relationship saved", "id": rel.id}


@router.delete("/relationships/{other_user_id}")
async def remove_relationship(
    other_user_id: int,
    current_user: CurrentUser,
    db: DatabaseSession,
    relationship_type: str = Query("spouse"),
) -> dict:
    return await FamilyService(db).remove_relationship(current_user.id, other_user_id, relationship_type)


@router.delete("/associated-codes/{family_code}")
async def remove_associated_code(family_code: str, current_user: CurrentUser, db: DatabaseSession) -> dict:
    """Stop seeing another family's private content through association."""
    if not await FamilyService(db).remove_associated_family_code(current_user.id, family_code):
        raise NotFoundError("Family code is not associated with this user")
    return {"message": "Associated family code removed"}


@router.get("/associated-tree/{user_id}")
async def associated_tree(user_id: int, current_user: CurrentUser, db: DatabaseSession) -> dict:
    """Merged tree across every family the user is associated with."""
    return await FamilyService(db).get_associated_family_tree_by_user(user_id)


@router.get("/associated-prefixes/{user_id}")
async def associated_prefixes(user_id: int, current_user: CurrentUser, db: DatabaseSession) -> dict:
    return await FamilyService(db).get_associated_prefixes(user_id)


@router.get("/{family_code}")
async def get_family(family_code: str, current_user: CurrentUser, db: DatabaseSession) -> dict:
    service = FamilyService(db)
    return {"data": service.family_to_dict(await service.get_family_or_404(family_code))}


@router.put("/{family_code}")
async def update_family(
    family_code: str,
    current_user: CurrentUser,
    db: DatabaseSession,
    family_name: Optional[str] = Form(None),
    family_bio: Optional[str] = Form(None),
    family_photo: Optional[UploadFile] = File(None),
) -> dict:
    uploads = UploadService()
    photo_key = await uploads.save_image(family_photo, FAMILY_FOLDER) if family_photo is not None else None
    return await FamilyService(db, uploads).update_family(
        current_user,
        family_code,
        {"family_name": family_name, "family_bio": family_bio},
        photo_key,
    )


@router.delete("/{family_code}")
async def delete_family(family_code: str, current_user: CurrentUser, db: DatabaseSession) -> dict:
    return await FamilyService(db).delete_family(current_user, family_code)


@router.post("/{family_code}/tree")
async def save_family_tree(
    family_code: str,
    payload: FamilyTreeCreate,
    current_user: CurrentUser,
    db: DatabaseSession,
) -> dict:
    """
    Replace the family tree with the submitted people.

    Cards missing from ``members`` are deleted; the stored tree is repaired
    afterwards and the repair report is part of the response.
    """
    members = [m.model_dump() for m in payload.members]
    return await FamilyService(db).create_family_tree(family_code, members, current_user)


@router.get("/{family_code}/tree")
async def get_family_tree(family_code: str, current_user: CurrentUser, db: DatabaseSession) -> dict:
    return await FamilyService(db).get_family_tree(family_code, current_user)


@router.post("/{family_code}/tree/repair")
async def repair_family_tree(
    family_code: str,
    current_user: CurrentUser,
    db: DatabaseSession,
    payload: Optional[RepairTreeRequest] = None,
) -> dict:
    fix = payload.fix_external_generations if payload is not None else True
    return await FamilyService(db).repair_tree(family_code, current_user, fix)
