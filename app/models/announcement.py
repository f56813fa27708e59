"""School-wide announcements."""
from datetime import datetime
from typing import Optional

from beanie import Document
from pydantic import BaseModel, Field


class Announcement(Document):
    title: str
    content: str
    author: str = "Admin"
    author_id: Optional[str] = None
    date: datetime = Field(default_factory=datetime.utcnow)
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "announcements"
        use_state_management = True


class AnnouncementCreate(BaseModel):
    title: str = Field(default="", max_length=200)
    content: str = Field(default="", max_length=5000)


class AnnouncementUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=5, max_length=200)
    content: Optional[str] = Field(default=None, min_length=10, max_length=5000)


def serialize_announcement(a: Announcement) -> dict:
    return {
        "id": str(a.id),
        "title": a.title,
        "content": a.content,
        "author": a.author,
        "author_id": a.author_id,
        "date": a.date,
    }
