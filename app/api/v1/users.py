"""
Profile, lookup and blocking endpoints for the signed-in user.
"""

from typing import Optional

from fastapi import APIRouter, File, Form, Query, UploadFile

from app.api.dependencies import CurrentUser, DatabaseSession
from app.core.storage import PROFILE_FOLDER
from app.services.blocking import BlockingService
from app.services.upload import UploadService
from app.services.user import UserService

router = APIRouter()


@router.get("/profile")
async def get_profile(current_user: CurrentUser, db: DatabaseSession) -> dict:
    return await UserService(db).get_profile(current_user)


@router.put("/profile")
async def update_profile(
    current_user: CurrentUser,
    db: DatabaseSession,
    first_name: Optional[str] = Form(None),
    last_name: Optional[str] = Form(None),
    gender: Optional[str] = Form(None),
    dob: Optional[str] = Form(None),
    age: Optional[int] = Form(None),
    marital_status: Optional[str] = Form(None),
    contact_number: Optional[str] = Form(None),
    address: Optional[str] = Form(None),
    bio: Optional[str] = Form(None),
    is_private: Optional[bool] = Form(None),
    country_id: Optional[int] = Form(None),
    language_id: Optional[int] = Form(None),
    gothram_id: Optional[int] = Form(None),
    email: Optional[str] = Form(None),
    mobile: Optional[str] = Form(None),
    profile: Optional[UploadFile] = File(None),
) -> dict:
    """
    Update the caller's profile. An uploaded ``profile`` photo replaces the
    previous one, which is deleted best effort.
    """
    uploads = UploadService()
    photo_key = await uploads.save_image(profile, PROFILE_FOLDER) if profile is not None else None
    changes = {
        "first_name": first_name,
        "last_name": last_name,
        "gender": gender,
        "dob": dob,
        "age": age,
        "marital_status": marital_status,
        "contact_number": contact_number,
        "address": address,
        "bio": bio,
        "is_private": is_private,
        "country_id": country_id,
        "language_id": language_id,
        "gothram_id": gothram_id,
        "email": email,
        "mobile": mobile,
    }
    return await UserService(db, uploads).update_profile(current_user, changes, photo_key)


@router.delete("/account")
async def delete_account(current_user: CurrentUser, db: DatabaseSession) -> dict:
    return await UserService(db).delete_account(current_user)


@router.get("/lookup")
async def lookup_users(
    current_user: CurrentUser,
    db: DatabaseSession,
    email: Optional[str] = Query(None),
    mobile: Optional[str] = Query(None),
) -> dict:
    """Find existing accounts by e-mail or phone before adding them to a tree."""
    return {"data": await UserService(db).lookup(email, mobile)}


@router.get("/blocks")
async def list_blocked(current_user: CurrentUser, db: DatabaseSession) -> dict:
    return {"data": await BlockingService(db).list_blocked_users(current_user.id)}


@router.post("/blocks/{user_id}")
async def block_user(user_id: int, current_user: CurrentUser, db: DatabaseSession) -> dict:
    block = await BlockingService(db).block_user(current_user.id, user_id)
    return {"message": "User blocked successfully", "blocked_id": block.blocked_id}


@router.delete("/blocks/{user_id}")
async def unblock_user(user_id: int, current_user: CurrentUser, db: DatabaseSession) -> dict:
    await BlockingService(db).unblock_user(current_user.id, user_id)
    return {"message": "User unblocked successfully"}


@router.get("/blocks/{user_id}/status")
async def block_status(user_id: int, current_user: CurrentUser, db: DatabaseSession) -> dict:
    return await BlockingService(db).block_status(current_user.id, user_id)


@router.get("/{user_id}")
async def get_user(user_id: int, current_user: CurrentUser, db: DatabaseSession) -> dict:
    return await UserService(db).get_user_by_id(user_id)
