"""
Pydantic schemas for notification endpoints.
"""

from typing import Literal, Optional

from pydantic import BaseModel, Field


class NotificationRespond(BaseModel):
    action: Literal["accept", "reject"] = Field(description="Answer to a request notification")


class MarkReadRequest(BaseModel):
    status: Optional[str] = Field(default=None, description="Optional new notification status")


class UnreadCountResponse(BaseModel):
    count: int
