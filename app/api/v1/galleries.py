"""
Gallery endpoints. Single galleries are readable without a token.
"""

from typing import List, Optional

from fastapi import APIRouter, File, Form, Query, UploadFile, status

from app.api.dependencies import CurrentUser, DatabaseSession
from app.schemas.content import CommentCreate, CommentUpdate, CountResponse, LikeToggleResponse
from app.services.comment import GALLERY_COMMENTS, CommentService
from app.services.gallery import GalleryService

router = APIRouter()


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_gallery(
    current_user: CurrentUser,
    db: DatabaseSession,
    gallery_title: str = Form(...),
    gallery_description: Optional[str] = Form(None),
    privacy: str = Form("public"),
    family_code: Optional[str] = Form(None),
    images: List[UploadFile] = File(default_factory=list),
    cover_photo: Optional[UploadFile] = File(None),
) -> dict:
    data = await GalleryService(db).create_gallery(
        current_user,
        gallery_title,
        images,
        gallery_description=gallery_description,
        privacy=privacy,
        family_code=family_code,
        cover_photo=cover_photo,
    )
    return {"message": "Gallery created successfully", "data": data}


@router.get("")
async def get_galleries(
    current_user: CurrentUser,
    db: DatabaseSession,
    privacy: Optional[str] = Query(None),
    family_code: Optional[str] = Query(None),
    created_by: Optional[int] = Query(None),
    gallery_id: Optional[int] = Query(None),
    title: Optional[str] = Query(None),
) -> dict:
    data = await GalleryService(db).get_galleries_by_options(current_user, privacy, family_code, created_by, gallery_id, title)
    return {"data": data}


@router.put("/comments/{comment_id}")
async def edit_comment(comment_id: int, payload: CommentUpdate, current_user: CurrentUser, db: DatabaseSession) -> dict:
    return {"data": await CommentService(db, GALLERY_COMMENTS).edit_comment(comment_id, current_user, payload.comment)}


@router.delete("/comments/{comment_id}")
async def delete_comment(comment_id: int, current_user: CurrentUser, db: DatabaseSession) -> dict:
    return await CommentService(db, GALLERY_COMMENTS).delete_comment(comment_id, current_user)


@router.post("/comments/{comment_id}/reply", status_code=status.HTTP_201_CREATED)
async def reply_to_comment(comment_id: int, payload: CommentUpdate, current_user: CurrentUser, db: DatabaseSession) -> dict:
    return {"data": await CommentService(db, GALLERY_COMMENTS).reply_to_comment(comment_id, current_user, payload.comment)}


@router.get("/{gallery_id}")
async def get_gallery(gallery_id: int, db: DatabaseSession) -> dict:
    return {"data": await GalleryService(db).get_gallery(gallery_id)}


@router.put("/{gallery_id}")
async def update_gallery(
    gallery_id: int,
    current_user: CurrentUser,
    db: DatabaseSession,
    gallery_title: Optional[str] = Form(None),
    gallery_description: Optional[str] = Form(None),
    privacy: Optional[str] = Form(None),
    remove_image_ids: List[int] = Form(default_factory=list),
    images: List[UploadFile] = File(default_factory=list),
    cover_photo: Optional[UploadFile] = File(None),
) -> dict:
    changes = {"gallery_title": gallery_title, "gallery_description": gallery_description, "privacy": privacy}
    data = await GalleryService(db).update_gallery(
        gallery_id,
        current_user,
        changes,
        add_images=images,
        remove_image_ids=remove_image_ids,
        cover_photo=cover_photo,
    )
    return {"message": "Gallery updated successfully", "data": data}


@router.delete("/{gallery_id}")
async def delete_gallery(gallery_id: int, current_user: CurrentUser, db: DatabaseSession) -> dict:
    return await GalleryService(db).delete_gallery(gallery_id, current_user)


@router.post("/{gallery_id}/like", response_model=LikeToggleResponse)
async def toggle_like(gallery_id: int, current_user: CurrentUser, db: DatabaseSession) -> LikeToggleResponse:
    return LikeToggleResponse(**await GalleryService(db).toggle_like(gallery_id, current_user))


@router.get("/{gallery_id}/like-count", response_model=CountResponse)
async def like_count(gallery_id: int, db: DatabaseSession) -> CountResponse:
    return CountResponse(count=await GalleryService(db).like_count(gallery_id))


@router.post("/{gallery_id}/comments", status_code=status.HTTP_201_CREATED)
async def add_comment(gallery_id: int, payload: CommentCreate, current_user: CurrentUser, db: DatabaseSession) -> dict:
    data = await CommentService(db, GALLERY_COMMENTS).add_comment(
        gallery_id, current_user, payload.comment, payload.parent_comment_id
    )
    return {"message": "Comment added successfully", "data": data}


@router.get("/{gallery_id}/comments")
async def list_comments(
    gallery_id: int,
    db: DatabaseSession,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
) -> dict:
    return await CommentService(db, GALLERY_COMMENTS).list_comments(gallery_id, page, limit)


@router.get("/{gallery_id}/comment-count", response_model=CountResponse)
async def comment_count(gallery_id: int, db: DatabaseSession) -> CountResponse:
    return CountResponse(count=await GalleryService(db).comment_count(gallery_id))
