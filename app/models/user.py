"""Users for every role: admin, teacher, student, parent and dormitory staff."""
from datetime import datetime
from enum import Enum
from typing import Optional

from beanie import Document, Indexed
from pydantic import BaseModel, EmailStr, Field, field_validator

from app.models.common import GradeLevel, Section, reject_null


class UserRole(str, Enum):
    ADMIN = "admin"
    TEACHER = "teacher"
    STUDENT = "student"
    PARENT = "parent"
    HIZMETLI = "hizmetli"


class User(Document):
    """A login account; other records reference users by ``username``."""

    username: Indexed(str, unique=True)
    full_name: str
    hashed_password: str
    role: UserRole
    email: Optional[EmailStr] = None
    email_verified: bool = False
    email_verification_code: Optional[str] = None
    email_verification_expires: Optional[datetime] = None

    # Student-specific
    grade_level: Optional[str] = None
    section: Optional[str] = None
    room: Optional[str] = None
    boarding: bool = False
    parent_ids: list[str] = Field(default_factory=list)

    # Parent-specific: linked student usernames
    child_ids: list[str] = Field(default_factory=list)

    token_version: int = 0
    reset_token: Optional[str] = None
    reset_token_expires: Optional[datetime] = None
    last_login: Optional[datetime] = None
    login_count: int = 0
    is_active: bool = True
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "users"
        use_state_management = True

    @property
    def display_name(self) -> str:
        if self.role == UserRole.STUDENT and self.grade_level and self.section:
            return f"{self.full_name} ({self.grade_level}{self.section})"
        return self.full_name

    @property
    def status(self) -> str:
        if not self.is_active:
            return "inactive"
        if self.role == UserRole.STUDENT and self.boarding:
            return "dormitory"
        if self.role == UserRole.PARENT:
            return "parent"
        return "active"


class UserCreate(BaseModel):
    username: str = Field(min_length=3, max_length=50, pattern=r"^[A-Za-z0-9_\-.]+$")
    password: str = Field(min_length=6, max_length=100)
    full_name: str = Field(min_length=2, max_length=100)
    role: UserRole
    email: Optional[EmailStr] = None
    grade_level: Optional[GradeLevel] = None
    section: Optional[Section] = None
    room: Optional[str] = None
    boarding: bool = False


class UserUpdate(BaseModel):
    full_name: Optional[str] = Field(default=None, min_length=2, max_length=100)
    email: Optional[EmailStr] = None
    role: Optional[UserRole] = None
    grade_level: Optional[GradeLevel] = None
    section: Optional[Section] = None
    room: Optional[str] = None
    boarding: Optional[bool] = None
    is_active: Optional[bool] = None

    @field_validator("full_name", "role", "boarding", "is_active")
    @classmethod
    def _required(cls, value):
        return reject_null(value)


def serialize_user(user: User) -> dict:
    return {
        "id": user.username,
        "username": user.username,
        "full_name": user.full_name,
        "display_name": user.display_name,
        "role": user.role.value,
        "email": user.email,
        "email_verified": user.email_verified,
        "grade_level": user.grade_level,
        "section": user.section,
        "room": user.room,
        "boarding": user.boarding,
        "parent_ids": user.parent_ids,
        "child_ids": user.child_ids,
        "status": user.status,
        "is_active": user.is_active,
        "last_login": user.last_login,
        "created_at": user.created_at,
    }
