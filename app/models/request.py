"""Generic student requests: class or room change, club join, permission."""
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from beanie import Document
from pydantic import BaseModel, Field


class RequestType(str, Enum):
    CLASS_CHANGE = "class-change"
    ROOM_CHANGE = "room-change"
    CLUB_JOIN = "club-join"
    PERMISSION = "permission"
    OTHER = "other"


class ReviewStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class Request(Document):
    user_id: str
    type: RequestType
    status: ReviewStatus = ReviewStatus.PENDING
    details: dict[str, Any] = Field(default_factory=dict)
    admin_note: Optional[str] = None
    reviewed_by: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "requests"
        use_state_management = True


class RequestCreate(BaseModel):
    type: RequestType
    details: dict[str, Any] = Field(default_factory=dict)


class RequestReview(BaseModel):
    status: Optional[ReviewStatus] = None
    admin_note: Optional[str] = Field(default=None, max_length=1000)


def serialize_request(r: Request) -> dict:
    return {
        "id": str(r.id),
        "user_id": r.user_id,
        "type": r.type.value,
        "status": r.status.value,
        "details": r.details,
        "admin_note": r.admin_note,
        "reviewed_by": r.reviewed_by,
        "created_at": r.created_at,
        "updated_at": r.updated_at,
    }
