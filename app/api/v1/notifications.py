"""
Notification endpoints: listing, read state and responding to requests.
"""

from typing import Optional

from fastapi import APIRouter, Query

from app.api.dependencies import CurrentUser, DatabaseSession
from app.schemas.notification import MarkReadRequest, NotificationRespond, UnreadCountResponse
from app.services.notification import NotificationService
from app.services.notification_actions import NotificationActionService

router = APIRouter()


@router.get("")
async def list_notifications(
    current_user: CurrentUser,
    db: DatabaseSession,
    show_all: bool = Query(False, description="Return every notification instead of the latest 5"),
    type: Optional[str] = Query(None, description="Filter by notification type"),
) -> dict:
    return {"data": await NotificationService(db).get_notifications(current_user.id, show_all, type)}


@router.get("/unread-count", response_model=UnreadCountResponse)
async def unread_count(current_user: CurrentUser, db: DatabaseSession) -> UnreadCountResponse:
    return UnreadCountResponse(count=await NotificationService(db).unread_count(current_user.id))


@router.post("/read-all")
async def mark_all_read(current_user: CurrentUser, db: DatabaseSession) -> dict:
    updated = await NotificationService(db).mark_all_as_read(current_user.id)
    return {"message": "All notifications marked as read", "updated": updated}


@router.post("/{notification_id}/read")
async def mark_read(
    notification_id: int,
    current_user: CurrentUser,
    db: DatabaseSession,
    payload: Optional[MarkReadRequest] = None,
) -> dict:
    return await NotificationService(db).mark_as_read(
        notification_id,
        current_user.id,
        payload.status if payload is not None else None,
    )


@router.post("/{notification_id}/respond")
async def respond(
    notification_id: int,
    payload: NotificationRespond,
    current_user: CurrentUser,
    db: DatabaseSession,
) -> dict:
    """
    Accept or reject a FAMILY_ASSOCIATION_REQUEST or TREE_LINK_REQUEST.

    Example:
        POST /api/v1/notifications/42/respond
        {"action": "accept"}
    """
    return await NotificationActionService(db).respond(notification_id, payload.action, current_user)
