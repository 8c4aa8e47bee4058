from typing import Optional

from pydantic import BaseModel, EmailStr


class InviteCreate(BaseModel):
    email: EmailStr
    family_code: Optional[str] = None


class InviteAccept(BaseModel):
    token: str
