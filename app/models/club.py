"""Student clubs with embedded membership, events, chat and invites."""
import uuid
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional

from beanie import Document, Indexed
from pydantic import BaseModel, Field

ROLE_PRESIDENT = "Başkan"
ROLE_HEAD_PRESIDENT = "Ana Başkan"
ROLE_MEMBER = "Üye"
LEADER_ROLES = {ROLE_PRESIDENT, ROLE_HEAD_PRESIDENT}

INVITE_LINK_DAYS = 7


def _new_id() -> str:
    return uuid.uuid4().hex


class RequestState(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class MessageType(str, Enum):
    TEXT = "text"
    IMAGE = "image"
    FILE = "file"
    SYSTEM = "system"


class JoinRequest(BaseModel):
    id: str = Field(default_factory=_new_id)
    user_id: str
    user_name: Optional[str] = None
    message: Optional[str] = None
    status: RequestState = RequestState.PENDING
    invited_by: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)


class ClubEvent(BaseModel):
    id: str = Field(default_factory=_new_id)
    title: str
    description: Optional[str] = None
    location: Optional[str] = None
    starts_at: datetime
    ends_at: Optional[datetime] = None
    created_by: str
    attendees: list[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=datetime.utcnow)


class ChatMessage(BaseModel):
    id: str = Field(default_factory=_new_id)
    sender_id: str
    sender_name: str
    text: str
    message_type: MessageType = MessageType.TEXT
    reply_to: Optional[str] = None
    is_edited: bool = False
    is_deleted: bool = False
    created_at: datetime = Field(default_factory=datetime.utcnow)


class Comment(BaseModel):
    id: str = Field(default_factory=_new_id)
    user_id: str
    user_name: str
    text: str
    created_at: datetime = Field(default_factory=datetime.utcnow)


class ClubAnnouncement(BaseModel):
    id: str = Field(default_factory=_new_id)
    title: str
    content: str
    author_id: str
    comments: list[Comment] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=datetime.utcnow)


class InviteLink(BaseModel):
    code: str
    created_by: str
    one_time: bool = False
    used_by: list[str] = Field(default_factory=list)
    expires_at: datetime = Field(default_factory=lambda: datetime.utcnow() + timedelta(days=INVITE_LINK_DAYS))
    created_at: datetime = Field(default_factory=datetime.utcnow)

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return (now or datetime.utcnow()) >= self.expires_at

    def is_exhausted(self) -> bool:
        return self.one_time and bool(self.used_by)


class Club(Document):
    name: Indexed(str)
    description: Optional[str] = None
    logo: Optional[str] = None
    social_links: dict[str, str] = Field(default_factory=dict)
    president_id: str
    members: list[str] = Field(default_factory=list)
    roles: dict[str, str] = Field(default_factory=dict)
    requests: list[JoinRequest] = Field(default_factory=list)
    events: list[ClubEvent] = Field(default_factory=list)
    chats: list[ChatMessage] = Field(default_factory=list)
    announcements: list[ClubAnnouncement] = Field(default_factory=list)
    invite_links: list[InviteLink] = Field(default_factory=list)
    is_active: bool = True
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "clubs"
        use_state_management = True

    def is_member(self, username: str) -> bool:
        return username in self.members

    def is_leader(self, username: str) -> bool:
        return self.roles.get(username) in LEADER_ROLES

    def add_member(self, username: str, role: str = ROLE_MEMBER) -> None:
        if username not in self.members:
            self.members.append(username)
        self.roles.setdefault(username, role)

    def remove_member(self, username: str) -> None:
        self.members = [m for m in self.members if m != username]
        self.roles.pop(username, None)


class ClubCreate(BaseModel):
    name: str = Field(min_length=3, max_length=100)
    description: Optional[str] = Field(default=None, max_length=1000)
    logo: Optional[str] = None
    social_links: dict[str, str] = Field(default_factory=dict)
    president_id: Optional[str] = None


class ClubMetaUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=3, max_length=100)
    description: Optional[str] = Field(default=None, max_length=1000)
    logo: Optional[str] = None
    social_links: Optional[dict[str, str]] = None


class RoleAssignment(BaseModel):
    role: str = Field(min_length=1, max_length=50)


class RolesUpdate(BaseModel):
    roles: dict[str, str]


class JoinRequestCreate(BaseModel):
    message: Optional[str] = Field(default=None, max_length=500)


class EventCreate(BaseModel):
    title: str = Field(min_length=3, max_length=200)
    description: Optional[str] = Field(default=None, max_length=2000)
    location: Optional[str] = Field(default=None, max_length=200)
    starts_at: datetime
    ends_at: Optional[datetime] = None


class ChatCreate(BaseModel):
    text: str = Field(min_length=1, max_length=1000)
    message_type: MessageType = MessageType.TEXT
    reply_to: Optional[str] = None


class ClubAnnouncementCreate(BaseModel):
    title: str = Field(min_length=3, max_length=200)
    content: str = Field(min_length=1, max_length=5000)


class CommentCreate(BaseModel):
    text: str = Field(min_length=1, max_length=500)


class InviteLinkCreate(BaseModel):
    one_time: bool = False


class InviteUser(BaseModel):
    user_id: str


def serialize_club(club: Club, detailed: bool = False) -> dict:
    data = {
        "id": str(club.id),
        "name": club.name,
        "description": club.description,
        "logo": club.logo,
        "social_links": club.social_links,
        "president_id": club.president_id,
        "members": club.members,
        "roles": club.roles,
        "member_count": len(club.members),
        "is_active": club.is_active,
    }
    if detailed:
        data["events"] = [e.model_dump() for e in club.events]
        data["announcements"] = [a.model_dump() for a in club.announcements]
    return data
