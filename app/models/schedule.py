"""Weekly lesson schedules per class."""
from datetime import datetime
from enum import Enum
from typing import Optional

from beanie import Document
from pydantic import BaseModel, Field, model_validator

from app.models.common import GradeLevel, Section, Subject

_TIME_PATTERN = r"^([01]\d|2[0-3]):[0-5]\d$"


class Weekday(str, Enum):
    PAZARTESI = "Pazartesi"
    SALI = "Salı"
    CARSAMBA = "Çarşamba"
    PERSEMBE = "Perşembe"
    CUMA = "Cuma"


class ScheduleSemester(str, Enum):
    FIRST = "1. Dönem"
    SECOND = "2. Dönem"


class Period(BaseModel):
    period: int = Field(ge=1, le=8)
    subject: Subject
    teacher_id: str
    teacher_name: str
    room: Optional[str] = None
    start_time: str = Field(pattern=_TIME_PATTERN)
    end_time: str = Field(pattern=_TIME_PATTERN)

    @model_validator(mode="after")
    def _check_times(self):
        # zero-padded HH:MM compares correctly as text
        if self.end_time <= self.start_time:
            raise ValueError("Bitiş saati başlangıç saatinden sonra olmalıdır")
        return self


class DaySchedule(BaseModel):
    day: Weekday
    periods: list[Period] = Field(default_factory=list, max_length=8)

    @model_validator(mode="after")
    def _unique_periods(self):
        numbers = [p.period for p in self.periods]
        if len(numbers) != len(set(numbers)):
            raise ValueError(f"{self.day.value} gününde aynı ders saati birden fazla kez tanımlanmış")
        return self


def _check_days(days: list[DaySchedule]) -> list[DaySchedule]:
    names = [d.day for d in days]
    if len(names) != len(set(names)):
        raise ValueError("Aynı gün birden fazla kez tanımlanmış")
    return days


class Schedule(Document):
    grade_level: str
    section: str
    academic_year: str
    semester: ScheduleSemester
    days: list[DaySchedule] = Field(default_factory=list)
    is_active: bool = True
    created_by: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "schedules"
        use_state_management = True


class ScheduleCreate(BaseModel):
    grade_level: GradeLevel
    section: Section
    academic_year: str = Field(pattern=r"^\d{4}-\d{4}$")
    semester: ScheduleSemester
    days: list[DaySchedule] = Field(default_factory=list, max_length=5)
    is_active: bool = True

    @model_validator(mode="after")
    def _validate_days(self):
        _check_days(self.days)
        return self


class ScheduleUpdate(BaseModel):
    academic_year: Optional[str] = Field(default=None, pattern=r"^\d{4}-\d{4}$")
    semester: Optional[ScheduleSemester] = None
    days: Optional[list[DaySchedule]] = Field(default=None, max_length=5)

    @model_validator(mode="after")
    def _validate_days(self):
        if self.days is not None:
            _check_days(self.days)
        return self


def serialize_schedule(s: Schedule) -> dict:
    return {
        "id": str(s.id),
        "grade_level": s.grade_level,
        "section": s.section,
        "academic_year": s.academic_year,
        "semester": s.semester.value,
        "days": [d.model_dump(mode="json") for d in s.days],
        "is_active": s.is_active,
        "created_by": s.created_by,
        "updated_at": s.updated_at,
    }
