"""Dormitory records: monthly meal and supervisor lists, maintenance requests."""
from datetime import datetime
from enum import Enum
from typing import Optional

from beanie import Document
from pydantic import BaseModel, Field


class MaintenanceStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class MaintenanceRequest(Document):
    student_id: str
    student_name: str
    room_number: str
    issue: str
    status: MaintenanceStatus = MaintenanceStatus.PENDING
    admin_note: Optional[str] = None
    service_note: Optional[str] = None
    created_by: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "maintenance_requests"
        use_state_management = True


class MaintenanceCreate(BaseModel):
    room_number: Optional[str] = Field(default=None, max_length=20)
    issue: str = Field(min_length=5, max_length=1000)


class MaintenanceUpdate(BaseModel):
    status: Optional[MaintenanceStatus] = None
    admin_note: Optional[str] = Field(default=None, max_length=1000)
    service_note: Optional[str] = Field(default=None, max_length=1000)


class MonthlyFile(Document):
    """Base for the monthly uploaded lists; subclasses only differ by collection."""

    month: str
    year: int
    file_url: str
    file_key: str
    file_name: str
    content_type: Optional[str] = None
    uploaded_by: str
    uploaded_at: datetime = Field(default_factory=datetime.utcnow)
    is_active: bool = True


class MealList(MonthlyFile):
    class Settings:
        name = "meal_lists"
        use_state_management = True


class SupervisorList(MonthlyFile):
    class Settings:
        name = "supervisor_lists"
        use_state_management = True


def serialize_maintenance(m: MaintenanceRequest) -> dict:
    return {
        "id": str(m.id),
        "student_id": m.student_id,
        "student_name": m.student_name,
        "room_number": m.room_number,
        "issue": m.issue,
        "status": m.status.value,
        "admin_note": m.admin_note,
        "service_note": m.service_note,
        "created_at": m.created_at,
        "updated_at": m.updated_at,
    }


def serialize_monthly_file(f: MonthlyFile) -> dict:
    return {
        "id": str(f.id),
        "month": f.month,
        "year": f.year,
        "file_url": f.file_url,
        "file_name": f.file_name,
        "uploaded_by": f.uploaded_by,
        "uploaded_at": f.uploaded_at,
    }
