"""
Vote models for community verification of reports.
"""

from pydantic import BaseModel, Field
from enum import Enum


class VoteKind(str, Enum):
    """Stance a voter takes on a report."""
    CONFIRM = "confirm"
    DISPUTE = "dispute"


class VoteStatusResponse(BaseModel):
    """What a given user has already done on a given report."""
    has_confirmed: bool = False
    has_disputed: bool = False
    vote_count: int = Field(0, ge=0, le=2)
    can_vote: bool = True
    is_owner: bool = False
