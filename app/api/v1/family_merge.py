"""
Family merge endpoints.

The secondary family's admin opens a request; primary admins accept it,
shape the merged tree in a versioned working state and execute the merge.
"""

from typing import Optional

from fastapi import APIRouter, Query, status

from app.api.dependencies import CurrentUser, DatabaseSession
from app.schemas.merge import (
    GenerationOffsetRequest,
    MergeRequestCreate,
    MergeStateEdit,
    MergeStateRevert,
    MergeStateSave,
)
from app.services.family_merge import FamilyMergeService

router = APIRouter()


@router.get("/search")
async def search_families(
    current_user: CurrentUser,
    db: DatabaseSession,
    family_code: Optional[str] = Query(None),
    admin_phone: Optional[str] = Query(None),
) -> dict:
    return await FamilyMergeService(db).search_families(family_code, admin_phone)


@router.get("/preview/{family_code}")
async def preview_family(family_code: str, current_user: CurrentUser, db: DatabaseSession) -> dict:
    """Person list of any family, used to pick anchor persons before a request."""
    return await FamilyMergeService(db).family_preview_for_anchor(family_code, current_user)


@router.post("/requests", status_code=status.HTTP_201_CREATED)
async def create_merge_request(payload: MergeRequestCreate, current_user: CurrentUser, db: DatabaseSession) -> dict:
    return await FamilyMergeService(db).create_merge_request(
        payload.primary_family_code,
        payload.secondary_family_code,
        current_user,
        payload.anchor_config,
    )


@router.get("/requests")
async def list_merge_requests(
    current_user: CurrentUser,
    db: DatabaseSession,
    status_filter: Optional[str] = Query(None, alias="status"),
) -> dict:
    return await FamilyMergeService(db).requests_for_admin(current_user, status_filter)


@router.post("/requests/{request_id}/accept")
async def accept_merge_request(request_id: int, current_user: CurrentUser, db: DatabaseSession) -> dict:
    return await FamilyMergeService(db).accept_request(request_id, current_user)


@router.post("/requests/{request_id}/reject")
async def reject_merge_request(request_id: int, current_user: CurrentUser, db: DatabaseSession) -> dict:
    return await FamilyMergeService(db).reject_request(request_id, current_user)


@router.get("/requests/{request_id}/family-a")
async def family_a_preview(request_id: int, current_user: CurrentUser, db: DatabaseSession) -> dict:
    return await FamilyMergeService(db).family_a_preview(request_id, current_user)


@router.get("/requests/{request_id}/family-b")
async def family_b_preview(request_id: int, current_user: CurrentUser, db: DatabaseSession) -> dict:
    return await FamilyMergeService(db).family_b_preview(request_id, current_user)


@router.get("/requests/{request_id}/analysis")
async def merge_analysis(request_id: int, current_user: CurrentUser, db: DatabaseSession) -> dict:
    """
    Duplicate detection, conflicts, scenario summary and crisis analysis
    of the two families.
    """
    return await FamilyMergeService(db).get_merge_analysis(request_id, current_user)


@router.get("/requests/{request_id}/state")
async def get_merge_state(request_id: int, current_user: CurrentUser, db: DatabaseSession) -> dict:
    return await FamilyMergeService(db).get_merge_state(request_id, current_user)


@router.put("/requests/{request_id}/state")
async def save_merge_state(
    request_id: int,
    payload: MergeStateSave,
    current_user: CurrentUser,
    db: DatabaseSession,
) -> dict:
    return await FamilyMergeService(db).save_merge_state(request_id, current_user, payload.state)


@router.patch("/requests/{request_id}/state")
async def edit_merge_state(
    request_id: int,
    payload: MergeStateEdit,
    current_user: CurrentUser,
    db: DatabaseSession,
) -> dict:
    return await FamilyMergeService(db).edit_merge_state(request_id, current_user, payload.changes, payload.description)


@router.get("/requests/{request_id}/state/history")
async def merge_state_history(request_id: int, current_user: CurrentUser, db: DatabaseSession) -> dict:
    return await FamilyMergeService(db).get_merge_state_history(request_id, current_user)


@router.post("/requests/{request_id}/state/revert")
async def revert_merge_state(
    request_id: int,
    payload: MergeStateRevert,
    current_user: CurrentUser,
    db: DatabaseSession,
) -> dict:
    return await FamilyMergeService(db).revert_merge_state(request_id, current_user, payload.target_version)


@router.post("/requests/{request_id}/execute")
async def execute_merge(request_id: int, current_user: CurrentUser, db: DatabaseSession) -> dict:
    return await FamilyMergeService(db).execute_merge(request_id, current_user)


@router.get("/requests/{request_id}/tracking")
async def secondary_tracking(request_id: int, current_user: CurrentUser, db: DatabaseSession) -> dict:
    return await FamilyMergeService(db).secondary_tracking(request_id, current_user)


@router.post("/requests/{request_id}/generation-offset")
async def adjust_generation_offset(
    request_id: int,
    payload: GenerationOffsetRequest,
    current_user: CurrentUser,
    db: DatabaseSession,
) -> dict:
    return await FamilyMergeService(db).adjust_generation_offset(
        request_id,
        current_user,
        payload.offset,
        payload.reason,
    )
