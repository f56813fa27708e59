"""Homework assignments published by teachers to a class."""
from datetime import datetime
from enum import Enum
from typing import Optional

from beanie import Document
from pydantic import BaseModel, Field, field_validator

from app.models.common import GradeLevel, Section, Subject, reject_null, to_naive_utc


class HomeworkStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    EXPIRED = "expired"


class Attachment(BaseModel):
    filename: str = Field(min_length=1, max_length=255)
    url: str
    size: Optional[int] = None


class Homework(Document):
    title: str
    description: str
    subject: Subject
    teacher_id: str
    teacher_name: str
    grade_level: str
    section: Optional[str] = None
    due_date: datetime
    assigned_date: datetime = Field(default_factory=datetime.utcnow)
    attachments: list[Attachment] = Field(default_factory=list)
    status: HomeworkStatus = HomeworkStatus.ACTIVE
    is_published: bool = True
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "homework"
        use_state_management = True


class HomeworkCreate(BaseModel):
    title: str = Field(min_length=3, max_length=200)
    description: str = Field(min_length=10, max_length=2000)
    subject: Subject
    grade_level: GradeLevel
    section: Optional[Section] = None
    due_date: datetime
    attachments: list[Attachment] = Field(default_factory=list, max_length=5)
    is_published: bool = True

    @field_validator("due_date")
    @classmethod
    def _due_in_future(cls, value: datetime) -> datetime:
        value = to_naive_utc(value)
        if value <= datetime.utcnow():
            raise ValueError("Teslim tarihi gelecekte olmalıdır")
        return value


class HomeworkUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=3, max_length=200)
    description: Optional[str] = Field(default=None, min_length=10, max_length=2000)
    subject: Optional[Subject] = None
    grade_level: Optional[GradeLevel] = None
    section: Optional[Section] = None
    due_date: Optional[datetime] = None
    attachments: Optional[list[Attachment]] = Field(default=None, max_length=5)
    is_published: Optional[bool] = None

    @field_validator("title", "description", "subject", "grade_level", "due_date", "attachments", "is_published")
    @classmethod
    def _required(cls, value):
        return reject_null(value)


class HomeworkStatusUpdate(BaseModel):
    status: str


def serialize_homework(hw: Homework) -> dict:
    return {
        "id": str(hw.id),
        "title": hw.title,
        "description": hw.description,
        "subject": hw.subject.value,
        "teacher_id": hw.teacher_id,
        "teacher_name": hw.teacher_name,
        "grade_level": hw.grade_level,
        "section": hw.section,
        "due_date": hw.due_date,
        "assigned_date": hw.assigned_date,
        "attachments": [a.model_dump() for a in hw.attachments],
        "status": hw.status.value,
        "is_published": hw.is_published,
    }
