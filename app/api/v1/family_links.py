"""
Cross-family endpoints: tree link requests, linked families, unlinking and
family association requests.
"""

from fastapi import APIRouter, status

from app.api.dependencies import CurrentUser, DatabaseSession
from app.schemas.family_link import (
    AssociationRequestCreate,
    TreeLinkRequestCreate,
    UnlinkCardRequest,
    UnlinkFamilyRequest,
)
from app.services.family_link import FamilyLinkService

router = APIRouter()


@router.post("/tree-link-requests", status_code=status.HTTP_201_CREATED)
async def create_tree_link_request(
    payload: TreeLinkRequestCreate,
    current_user: CurrentUser,
    db: DatabaseSession,
) -> dict:
    """
    Ask another family to link one of its cards to a card of the caller's
    family. Answered through ``POST /notifications/{id}/respond``.
    """
    return await FamilyLinkService(db).create_tree_link_request(current_user, payload.model_dump())


@router.get("/tree-link-requests/sent")
async def sent_tree_link_requests(current_user: CurrentUser, db: DatabaseSession) -> dict:
    return {"data": await FamilyLinkService(db).pending_sent_requests(current_user)}


@router.post("/tree-link-requests/{request_id}/revoke")
async def revoke_tree_link_request(request_id: int, current_user: CurrentUser, db: DatabaseSession) -> dict:
    return await FamilyLinkService(db).revoke_tree_link_request(current_user, request_id)


@router.get("/linked")
async def linked_families(current_user: CurrentUser, db: DatabaseSession) -> dict:
    return {"data": await FamilyLinkService(db).linked_families(current_user)}


@router.post("/unlink")
async def unlink_family(payload: UnlinkFamilyRequest, current_user: CurrentUser, db: DatabaseSession) -> dict:
    return await FamilyLinkService(db).unlink_linked_family(current_user, payload.other_family_code)


@router.post("/unlink-card")
async def unlink_card(payload: UnlinkCardRequest, current_user: CurrentUser, db: DatabaseSession) -> dict:
    return await FamilyLinkService(db).unlink_tree_link_card(current_user, payload.family_code, payload.node_uid)


@router.post("/association-requests", status_code=status.HTTP_201_CREATED)
async def request_association(
    payload: AssociationRequestCreate,
    current_user: CurrentUser,
    db: DatabaseSession,
) -> dict:
    return await FamilyLinkService(db).request_association(
        current_user,
        payload.target_user_id,
        payload.initiator_id,
    )
