"""
Post endpoints: feed, likes and comments.

Likes and comments are also pushed on the ``post:<id>`` realtime channel.
"""

from typing import Optional

from fastapi import APIRouter, File, Form, Query, UploadFile, status

from app.api.dependencies import CurrentUser, DatabaseSession
from app.schemas.content import CommentCreate, CommentUpdate, CountResponse, LikeToggleResponse
from app.services.comment import POST_COMMENTS, CommentService
from app.services.post import PostService

router = APIRouter()


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_post(
    current_user: CurrentUser,
    db: DatabaseSession,
    caption: Optional[str] = Form(None),
    privacy: str = Form("public"),
    family_code: Optional[str] = Form(None),
    post_image: Optional[UploadFile] = File(None),
) -> dict:
    """
    Create a post. ``family`` and ``private`` posts are scoped to a family
    the author belongs to or is associated with.
    """
    data = await PostService(db).create_post(current_user, caption, privacy, family_code, post_image)
    return {"message": "Post created successfully", "data": data}


@router.get("")
async def get_posts(
    current_user: CurrentUser,
    db: DatabaseSession,
    privacy: Optional[str] = Query(None),
    family_code: Optional[str] = Query(None),
    created_by: Optional[int] = Query(None),
    post_id: Optional[int] = Query(None),
    caption: Optional[str] = Query(None),
) -> dict:
    data = await PostService(db).get_posts_by_options(current_user, privacy, family_code, created_by, post_id, caption)
    return {"data": data}


@router.put("/comments/{comment_id}")
async def edit_comment(comment_id: int, payload: CommentUpdate, current_user: CurrentUser, db: DatabaseSession) -> dict:
    return {"data": await CommentService(db, POST_COMMENTS).edit_comment(comment_id, current_user, payload.comment)}


@router.delete("/comments/{comment_id}")
async def delete_comment(comment_id: int, current_user: CurrentUser, db: DatabaseSession) -> dict:
    return await CommentService(db, POST_COMMENTS).delete_comment(comment_id, current_user)


@router.post("/comments/{comment_id}/reply", status_code=status.HTTP_201_CREATED)
async def reply_to_comment(comment_id: int, payload: CommentUpdate, current_user: CurrentUser, db: DatabaseSession) -> dict:
    return {"data": await CommentService(db, POST_COMMENTS).reply_to_comment(comment_id, current_user, payload.comment)}


@router.get("/{post_id}")
async def get_post(post_id: int, current_user: CurrentUser, db: DatabaseSession) -> dict:
    return {"data": await PostService(db).get_post(post_id, current_user)}


@router.put("/{post_id}")
async def edit_post(
    post_id: int,
    current_user: CurrentUser,
    db: DatabaseSession,
    caption: Optional[str] = Form(None),
    privacy: Optional[str] = Form(None),
    family_code: Optional[str] = Form(None),
    post_image: Optional[UploadFile] = File(None),
) -> dict:
    changes = {"caption": caption, "privacy": privacy, "family_code": family_code}
    data = await PostService(db).edit_post(post_id, current_user, changes, post_image)
    return {"message": "Post updated successfully", "data": data}


@router.delete("/{post_id}")
async def delete_post(post_id: int, current_user: CurrentUser, db: DatabaseSession) -> dict:
    return await PostService(db).delete_post(post_id, current_user)


@router.post("/{post_id}/like", response_model=LikeToggleResponse)
async def toggle_like(post_id: int, current_user: CurrentUser, db: DatabaseSession) -> LikeToggleResponse:
    return LikeToggleResponse(**await PostService(db).toggle_like(post_id, current_user))


@router.get("/{post_id}/likes")
async def list_likes(post_id: int, current_user: CurrentUser, db: DatabaseSession) -> dict:
    service = PostService(db)
    await service.get_post(post_id, current_user)
    return {"data": await service.likes(post_id)}


@router.get("/{post_id}/like-count", response_model=CountResponse)
async def like_count(post_id: int, current_user: CurrentUser, db: DatabaseSession) -> CountResponse:
    return CountResponse(count=await PostService(db).like_count(post_id))


@router.post("/{post_id}/comments", status_code=status.HTTP_201_CREATED)
async def add_comment(post_id: int, payload: CommentCreate, current_user: CurrentUser, db: DatabaseSession) -> dict:
    data = await PostService(db).add_comment(post_id, current_user, payload.comment, payload.parent_comment_id)
    return {"message": "Comment added successfully", "data": data}


@router.get("/{post_id}/comments")
async def list_comments(
    post_id: int,
    current_user: CurrentUser,
    db: DatabaseSession,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
) -> dict:
    return await PostService(db).list_comments(post_id, current_user, page, limit)


@router.get("/{post_id}/comment-count", response_model=CountResponse)
async def comment_count(post_id: int, current_user: CurrentUser, db: DatabaseSession) -> CountResponse:
    return CountResponse(count=await PostService(db).comment_count(post_id))
