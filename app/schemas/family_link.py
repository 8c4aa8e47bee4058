"""
Pydantic schemas for cross-family links and association requests.
"""

from typing import Literal, Optional

from pydantic import BaseModel, Field


class TreeLinkRequestCreate(BaseModel):
    """
    Link a card of the sender family to a card of the receiver family.

    ``relationship_type`` reads "sender card is <type> of receiver card".
    """
    sender_family_code: Optional[str] = Field(default=None, max_length=30, description="Defaults to the caller's family")
    receiver_family_code: str = Field(max_length=30)
    sender_node_uid: str = Field(max_length=64)
    receiver_node_uid: str = Field(max_length=64)
    relationship_type: Literal["parent", "child", "sibling"]
    parent_role: Optional[Literal["father", "mother"]] = None


class UnlinkFamilyRequest(BaseModel):
    other_family_code: str


class UnlinkCardRequest(BaseModel):
    family_code: str
    node_uid: str


class AssociationRequestCreate(BaseModel):
    target_user_id: int
    initiator_id: Optional[int] = None
