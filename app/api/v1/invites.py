"""
E-mail invite endpoints.
"""

from fastapi import APIRouter, Query, status

from app.api.dependencies import CurrentUser, DatabaseSession
from app.schemas.invite import InviteAccept, InviteCreate
from app.services.invite import InviteService, invite_to_dict

router = APIRouter()


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_invite(payload: InviteCreate, current_user: CurrentUser, db: DatabaseSession) -> dict:
    return await InviteService(db).create_invite(current_user, payload.email, payload.family_code)


@router.get("/sent")
async def list_sent_invites(current_user: CurrentUser, db: DatabaseSession) -> dict:
    return {"data": await InviteService(db).list_sent(current_user)}


@router.get("/validate")
async def validate_invite(db: DatabaseSession, token: str = Query(..., min_length=1)) -> dict:
    """Check a token before the invited person signs up. No auth required."""
    invite = await InviteService(db).validate_token(token)
    return {"valid": True, "invite": invite_to_dict(invite)}


@router.post("/accept")
async def accept_invite(payload: InviteAccept, current_user: CurrentUser, db: DatabaseSession) -> dict:
    return await InviteService(db).accept_invite(payload.token, current_user)
