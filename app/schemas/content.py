"""
Pydantic schemas shared by post and gallery endpoints.
"""

from typing import Optional

from pydantic import BaseModel, Field


class CommentCreate(BaseModel):
    comment: str = Field(min_length=1, max_length=2000)
    parent_comment_id: Optional[int] = Field(default=None, description="Reply to this comment")


class CommentUpdate(BaseModel):
    comment: str = Field(min_length=1, max_length=2000)


class LikeToggleResponse(BaseModel):
    liked: bool
    like_count: int


class CountResponse(BaseModel):
    count: int
