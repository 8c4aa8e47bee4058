"""
Pydantic schemas for family merge requests and the merge working state.
"""

from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class MergeRequestCreate(BaseModel):
    primary_family_code: str = Field(description="Family that absorbs the other")
    secondary_family_code: str = Field(description="The caller's family")
    anchor_config: Optional[Dict[str, Any]] = None


class MergeStateSave(BaseModel):
    """
    Working state of a merge. Free-form JSON; ``finalTree.members`` and
    ``adminDecisions.promoteToAdmin`` are read on execution.
    """
    state: Dict[str, Any]


class MergeStateEdit(BaseModel):
    changes: Dict[str, Any]
    description: Optional[str] = Field(default=None, max_length=500)


class MergeStateRevert(BaseModel):
    target_version: int = Field(ge=1)


class GenerationOffsetRequest(BaseModel):
    offset: int = Field(ge=-20, le=20)
    reason: Optional[str] = None
