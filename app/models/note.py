"""Student grades per lesson and semester."""
from datetime import datetime
from enum import Enum
from typing import Optional

from beanie import Document
from pydantic import BaseModel, Field, field_validator

from app.models.common import GradeLevel, Section, Subject, reject_null

GRADE_FIELDS = ("exam1", "exam2", "exam3", "oral", "project")


class Semester(str, Enum):
    FIRST = "1"
    SECOND = "2"
    CURRENT = "current"


class NoteSource(str, Enum):
    MANUAL = "manual"
    MEB_EOKUL = "meb_eokul"
    IMPORTED = "imported"


def current_academic_year(today: Optional[datetime] = None) -> str:
    """School years start in September: 2024-2025 runs from Sep 2024."""
    today = today or datetime.utcnow()
    start = today.year if today.month >= 9 else today.year - 1
    return f"{start}-{start + 1}"


def compute_average(values: list[Optional[float]]) -> Optional[float]:
    present = [v for v in values if v is not None]
    if not present:
        return None
    return round(sum(present) / len(present) * 10) / 10


Score = Optional[float]


class Note(Document):
    student_id: str
    student_name: str
    lesson: Subject
    exam1: Score = Field(default=None, ge=0, le=100)
    exam2: Score = Field(default=None, ge=0, le=100)
    exam3: Score = Field(default=None, ge=0, le=100)
    oral: Score = Field(default=None, ge=0, le=100)
    project: Score = Field(default=None, ge=0, le=100)
    average: float = Field(default=0, ge=0, le=100)
    semester: Semester = Semester.CURRENT
    academic_year: str = Field(default_factory=current_academic_year)
    teacher_name: Optional[str] = None
    source: NoteSource = NoteSource.MANUAL
    grade_level: Optional[str] = None
    section: Optional[str] = None
    remarks: Optional[str] = Field(default=None, max_length=500)
    is_active: bool = True
    last_updated: datetime = Field(default_factory=datetime.utcnow)
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "notes"
        use_state_management = True

    def recalculate(self) -> None:
        average = compute_average([getattr(self, f) for f in GRADE_FIELDS])
        if average is not None:
            self.average = average
        now = datetime.utcnow()
        self.last_updated = now
        self.updated_at = now


class NoteCreate(BaseModel):
    student_id: str = Field(min_length=1, max_length=50)
    student_name: str = Field(min_length=2, max_length=100)
    lesson: Subject
    exam1: Score = Field(default=None, ge=0, le=100)
    exam2: Score = Field(default=None, ge=0, le=100)
    exam3: Score = Field(default=None, ge=0, le=100)
    oral: Score = Field(default=None, ge=0, le=100)
    project: Score = Field(default=None, ge=0, le=100)
    average: Optional[float] = Field(default=None, ge=0, le=100)
    semester: Semester = Semester.CURRENT
    academic_year: Optional[str] = Field(default=None, pattern=r"^\d{4}-\d{4}$")
    teacher_name: Optional[str] = None
    grade_level: Optional[GradeLevel] = None
    section: Optional[Section] = None
    remarks: Optional[str] = Field(default=None, max_length=500)


class NoteUpdate(BaseModel):
    student_name: Optional[str] = Field(default=None, min_length=2, max_length=100)
    lesson: Optional[Subject] = None
    exam1: Score = Field(default=None, ge=0, le=100)
    exam2: Score = Field(default=None, ge=0, le=100)
    exam3: Score = Field(default=None, ge=0, le=100)
    oral: Score = Field(default=None, ge=0, le=100)
    project: Score = Field(default=None, ge=0, le=100)
    average: Optional[float] = Field(default=None, ge=0, le=100)
    semester: Optional[Semester] = None
    academic_year: Optional[str] = Field(default=None, pattern=r"^\d{4}-\d{4}$")
    teacher_name: Optional[str] = None
    grade_level: Optional[GradeLevel] = None
    section: Optional[Section] = None
    remarks: Optional[str] = Field(default=None, max_length=500)

    @field_validator("student_name", "lesson", "semester", "academic_year")
    @classmethod
    def _required(cls, value):
        return reject_null(value)


class NoteBulkItem(NoteUpdate):
    id: str


class NoteBulkUpdate(BaseModel):
    updates: list[NoteBulkItem] = Field(min_length=1, max_length=500)


class NoteBackupRequest(BaseModel):
    semester: Optional[Semester] = None
    academic_year: Optional[str] = None


def serialize_note(note: Note) -> dict:
    return {
        "id": str(note.id),
        "student_id": note.student_id,
        "student_name": note.student_name,
        "lesson": note.lesson.value,
        "exam1": note.exam1,
        "exam2": note.exam2,
        "exam3": note.exam3,
        "oral": note.oral,
        "project": note.project,
        "average": note.average,
        "semester": note.semester.value,
        "academic_year": note.academic_year,
        "teacher_name": note.teacher_name,
        "source": note.source.value,
        "grade_level": note.grade_level,
        "section": note.section,
        "remarks": note.remarks,
        "last_updated": note.last_updated,
    }
