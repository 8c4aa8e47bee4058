"""
Request bodies for the country, language and gothram lists.
"""

from typing import Optional

from pydantic import BaseModel, Field


class LookupCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    code: Optional[str] = Field(default=None, max_length=8, description="Ignored for gothrams")
    status: int = 1


class LookupUpdate(BaseModel):
    name: Optional[str] = Field(default=None, max_length=100)
    code: Optional[str] = Field(default=None, max_length=8)
    status: Optional[int] = None
