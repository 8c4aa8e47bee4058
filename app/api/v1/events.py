"""
Family event endpoints. Bodies are multipart so images can ride along.
"""

from typing import List, Optional

from fastapi import APIRouter, File, Form, Query, UploadFile, status

from app.api.dependencies import CurrentUser, DatabaseSession
from app.services.family_event import FamilyEventService

router = APIRouter()


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_event(
    current_user: CurrentUser,
    db: DatabaseSession,
    event_title: str = Form(..., max_length=50),
    event_date: str = Form(..., description="YYYY-MM-DD"),
    family_code: Optional[str] = Form(None, description="Defaults to the caller's family"),
    event_description: Optional[str] = Form(None),
    event_time: Optional[str] = Form(None, description="HH:MM"),
    location: Optional[str] = Form(None, max_length=255),
    images: List[UploadFile] = File(default_factory=list),
) -> dict:
    data = await FamilyEventService(db).create_event(
        current_user,
        {
            "event_title": event_title,
            "event_date": event_date,
            "family_code": family_code,
            "event_description": event_description,
            "event_time": event_time,
            "location": location,
        },
        images,
    )
    return {"message": "Event created successfully", "data": data}


@router.get("")
async def list_events(
    current_user: CurrentUser,
    db: DatabaseSession,
    family_code: Optional[str] = Query(None),
    upcoming: bool = Query(False, description="Only events dated today or later"),
) -> dict:
    return {"data": await FamilyEventService(db).list_events(current_user, family_code, upcoming)}


@router.get("/{event_id}")
async def get_event(event_id: int, current_user: CurrentUser, db: DatabaseSession) -> dict:
    return {"data": await FamilyEventService(db).get_event(event_id, current_user)}


@router.put("/{event_id}")
async def update_event(
    event_id: int,
    current_user: CurrentUser,
    db: DatabaseSession,
    event_title: Optional[str] = Form(None, max_length=50),
    event_date: Optional[str] = Form(None),
    event_description: Optional[str] = Form(None),
    event_time: Optional[str] = Form(None),
    location: Optional[str] = Form(None, max_length=255),
    remove_image_ids: List[int] = Form(default_factory=list),
    images: List[UploadFile] = File(default_factory=list),
) -> dict:
    changes = {
        "event_title": event_title,
        "event_date": event_date,
        "event_description": event_description,
        "event_time": event_time,
        "location": location,
    }
    data = await FamilyEventService(db).update_event(event_id, current_user, changes, images, remove_image_ids)
    return {"message": "Event updated successfully", "data": data}


@router.delete("/{event_id}")
async def delete_event(event_id: int, current_user: CurrentUser, db: DatabaseSession) -> dict:
    return await FamilyEventService(db).delete_event(event_id, current_user)
