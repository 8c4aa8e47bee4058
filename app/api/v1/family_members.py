"""
Family membership endpoints: join requests, approval, removal and
per-family blocking.
"""

from fastapi import APIRouter, status

from app.api.dependencies import CurrentUser, DatabaseSession
from app.core.errors import ForbiddenError
from app.repositories.user import UserRepository
from app.schemas.family import AddMemberRequest
from app.services.family_member import FamilyMemberService
from app.services.notification import NotificationService

router = APIRouter()


@router.post("/{family_code}/join", status_code=status.HTTP_201_CREATED)
async def request_to_join(family_code: str, current_user: CurrentUser, db: DatabaseSession) -> dict:
    return await FamilyMemberService(db).request_to_join(family_code, current_user)


@router.post("/{family_code}/members", status_code=status.HTTP_201_CREATED)
async def add_member(
    family_code: str,
    payload: AddMemberRequest,
    current_user: CurrentUser,
    db: DatabaseSession,
) -> dict:
    return await FamilyMemberService(db).add_member_directly(current_user, family_code, payload.model_dump())


@router.get("/{family_code}/members")
async def list_members(family_code: str, current_user: CurrentUser, db: DatabaseSession) -> dict:
    return {"data": await FamilyMemberService(db).list_members(family_code)}


@router.get("/{family_code}/requests")
async def pending_requests(family_code: str, current_user: CurrentUser, db: DatabaseSession) -> dict:
    return {"data": await FamilyMemberService(db).pending_requests(current_user, family_code)}


@router.get("/{family_code}/join-notifications")
async def join_request_notifications(family_code: str, current_user: CurrentUser, db: DatabaseSession) -> dict:
    """FAMILY_JOIN_REQUEST notifications of a family; admins only."""
    if not await UserRepository(db).is_family_admin(current_user, family_code.upper()):
        raise ForbiddenError("Only family admins can view join requests")
    return {"data": await NotificationService(db).family_join_requests(family_code.upper())}


@router.post("/{family_code}/members/{member_id}/approve")
async def approve_member(family_code: str, member_id: int, current_user: CurrentUser, db: DatabaseSession) -> dict:
    return await FamilyMemberService(db).approve(current_user, family_code, member_id)


@router.post("/{family_code}/members/{member_id}/reject")
async def reject_member(family_code: str, member_id: int, current_user: CurrentUser, db: DatabaseSession) -> dict:
    return await FamilyMemberService(db).reject(current_user, family_code, member_id)


@router.delete("/{family_code}/members/{member_id}")
async def remove_member(family_code: str, member_id: int, current_user: CurrentUser, db: DatabaseSession) -> dict:
    return await FamilyMemberService(db).remove_member(current_user, family_code, member_id)


@router.post("/{family_code}/members/{member_id}/block")
async def block_member(family_code: str, member_id: int, current_user: CurrentUser, db: DatabaseSession) -> dict:
    return await FamilyMemberService(db).set_blocked(current_user, family_code, member_id, True)


@router.post("/{family_code}/members/{member_id}/unblock")
async def unblock_member(family_code: str, member_id: int, current_user: CurrentUser, db: DatabaseSession) -> dict:
    return await FamilyMemberService(db).set_blocked(current_user, family_code, member_id, False)


@router.get("/memberships/{membership_id}")
async def get_membership(membership_id: int, current_user: CurrentUser, db: DatabaseSession) -> dict:
    return {"data": await FamilyMemberService(db).get_member(membership_id)}
