"""
Pydantic schemas for the admin panel.
"""

from typing import Literal, Optional

from pydantic import BaseModel, EmailStr, Field


class AdminLoginRequest(BaseModel):
    email: EmailStr
    password: str


class AdminCreate(BaseModel):
    email: EmailStr
    password: str = Field(min_length=8, max_length=128)
    full_name: Optional[str] = None
    role: str = Field(default="admin", description="Only 'admin' can be created")


class AdminUpdate(BaseModel):
    email: Optional[EmailStr] = None
    password: Optional[str] = Field(default=None, min_length=8, max_length=128)
    full_name: Optional[str] = None
    role: Optional[Literal["admin", "superadmin"]] = None
    status: Optional[Literal["active", "inactive"]] = None
