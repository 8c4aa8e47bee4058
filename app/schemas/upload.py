"""
Pydantic schemas for direct and multipart uploads.
"""

from typing import List, Optional

from pydantic import BaseModel, Field


class UploadResponse(BaseModel):
    key: str = Field(description="Storage key, e.g. posts/<uuid>.jpg")
    url: str


class MultipartInitiate(BaseModel):
    folder: str = Field(description="Target folder such as gallery or posts")
    filename: str
    content_type: Optional[str] = None


class PresignPartRequest(BaseModel):
    key: str
    upload_id: str
    part_number: int = Field(ge=1, le=10000)
    expires_in: Optional[int] = Field(default=None, ge=60, le=3600)


class CompletedPart(BaseModel):
    part_number: int = Field(ge=1)
    etag: str


class CompleteMultipartRequest(BaseModel):
    key: str
    upload_id: str
    parts: List[CompletedPart]


class AbortMultipartRequest(BaseModel):
    key: str
    upload_id: str
