"""
Pydantic schemas for families, membership and tree payloads.
"""

from typing import List, Literal, Optional

from pydantic import BaseModel, Field


class TreeMember(BaseModel):
    """
    One person of a tree payload.

    Attributes:
        id: Person id, unique inside the family tree
        member_id: App user id, or None for people without an account
        parents/children/spouses/siblings: Person ids of related cards
        is_external_linked: Card mirrors a person living in another tree
    """
    id: int = Field(description="Person id inside the tree")
    member_id: Optional[int] = Field(default=None, description="User id of an app user")
    name: str = Field(default="", max_length=200)
    gender: Optional[str] = None
    age: Optional[int] = None
    img: Optional[str] = Field(default=None, description="Storage key of the card photo")
    life_status: Literal["living", "remembering"] = "living"
    generation: int = 0
    parents: List[int] = Field(default_factory=list)
    children: List[int] = Field(default_factory=list)
    spouses: List[int] = Field(default_factory=list)
    siblings: List[int] = Field(default_factory=list)
    node_uid: Optional[str] = Field(default=None, max_length=64)
    is_external_linked: bool = False
    canonical_family_code: Optional[str] = None
    canonical_node_uid: Optional[str] = None


class FamilyTreeCreate(BaseModel):
    members: List[TreeMember] = Field(description="Complete list of people; absent cards are deleted")


class AddMemberRequest(BaseModel):
    """Either an existing ``user_id`` or the details of a person without an account."""
    user_id: Optional[int] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None
    mobile: Optional[str] = None
    gender: Optional[str] = None


class AssociateFamiliesRequest(BaseModel):
    source_family_code: str
    target_family_code: str


class RepairTreeRequest(BaseModel):
    fix_external_generations: bool = True


class SpouseRelationshipRequest(BaseModel):
    partner_user_id: int
    generated_family_code: Optional[str] = None
