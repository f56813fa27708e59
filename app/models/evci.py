"""Weekend leave ("evci") requests for boarding students."""
from datetime import datetime
from typing import Optional

from beanie import Document
from pydantic import BaseModel, Field, model_validator

from app.models.common import to_naive_utc
from app.models.request import ReviewStatus

PHONE_PATTERN = r"^\+?[0-9\s\-()]{10,15}$"


class EvciRequest(Document):
    student_id: str
    student_name: str
    parent_id: Optional[str] = None
    parent_name: Optional[str] = None
    request_date: datetime = Field(default_factory=datetime.utcnow)
    leave_date: datetime
    return_date: datetime
    reason: str
    destination: str
    contact_phone: Optional[str] = None
    status: ReviewStatus = ReviewStatus.PENDING
    admin_note: Optional[str] = None
    approved_by: Optional[str] = None
    approved_at: Optional[datetime] = None
    created_by: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "evci_requests"
        use_state_management = True


def check_evci_dates(leave_date: datetime, return_date: datetime) -> None:
    if leave_date < datetime.utcnow():
        raise ValueError("Çıkış tarihi geçmişte olamaz")
    if return_date <= leave_date:
        raise ValueError("Dönüş tarihi çıkış tarihinden sonra olmalıdır")


class EvciRequestCreate(BaseModel):
    student_id: Optional[str] = None
    leave_date: datetime
    return_date: datetime
    reason: str = Field(min_length=10, max_length=500)
    destination: str = Field(min_length=3, max_length=100)
    contact_phone: Optional[str] = Field(default=None, pattern=PHONE_PATTERN)

    @model_validator(mode="after")
    def _check_dates(self):
        self.leave_date = to_naive_utc(self.leave_date)
        self.return_date = to_naive_utc(self.return_date)
        check_evci_dates(self.leave_date, self.return_date)
        return self


REVIEW_FIELDS = {"status", "admin_note"}
DETAIL_FIELDS = {"leave_date", "return_date", "reason", "destination", "contact_phone"}


class EvciRequestUpdate(BaseModel):
    """Staff send status/admin_note; the student or parent edits the details while pending."""

    status: Optional[ReviewStatus] = None
    admin_note: Optional[str] = Field(default=None, max_length=1000)
    leave_date: Optional[datetime] = None
    return_date: Optional[datetime] = None
    reason: Optional[str] = Field(default=None, min_length=10, max_length=500)
    destination: Optional[str] = Field(default=None, min_length=3, max_length=100)
    contact_phone: Optional[str] = Field(default=None, pattern=PHONE_PATTERN)

    @model_validator(mode="after")
    def _normalize_dates(self):
        if self.leave_date is not None:
            self.leave_date = to_naive_utc(self.leave_date)
        if self.return_date is not None:
            self.return_date = to_naive_utc(self.return_date)
        return self

    def review_fields(self) -> dict:
        return self.model_dump(include=REVIEW_FIELDS, exclude_unset=True, exclude_none=True)

    def detail_fields(self) -> dict:
        return self.model_dump(include=DETAIL_FIELDS, exclude_unset=True, exclude_none=True)


def serialize_evci(e: EvciRequest) -> dict:
    return {
        "id": str(e.id),
        "student_id": e.student_id,
        "student_name": e.student_name,
        "parent_id": e.parent_id,
        "parent_name": e.parent_name,
        "request_date": e.request_date,
        "leave_date": e.leave_date,
        "return_date": e.return_date,
        "reason": e.reason,
        "destination": e.destination,
        "contact_phone": e.contact_phone,
        "status": e.status.value,
        "admin_note": e.admin_note,
        "approved_by": e.approved_by,
        "approved_at": e.approved_at,
    }
