"""Calendars and their events: attendees, reminders and recurrence."""
import calendar as month_calendar
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional

from beanie import Document, Indexed
from pydantic import BaseModel, Field, field_validator, model_validator

from app.models.common import reject_null, to_naive_utc
from app.models.notification import Priority
from app.models.sharing import Share

COLOR_PATTERN = r"^#[0-9A-Fa-f]{6}$"
MAX_OCCURRENCES = 100


class CalendarView(str, Enum):
    MONTH = "month"
    WEEK = "week"
    DAY = "day"
    AGENDA = "agenda"


class EventType(str, Enum):
    CLASS = "class"
    EXAM = "exam"
    ACTIVITY = "activity"
    MEETING = "meeting"
    HOLIDAY = "holiday"
    PERSONAL = "personal"
    REMINDER = "reminder"


class EventStatus(str, Enum):
    SCHEDULED = "scheduled"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class Frequency(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


class AttendeeRole(str, Enum):
    ORGANIZER = "organizer"
    ATTENDEE = "attendee"
    OPTIONAL = "optional"


class AttendeeResponse(str, Enum):
    ACCEPTED = "accepted"
    DECLINED = "declined"
    PENDING = "pending"
    TENTATIVE = "tentative"


class ReminderType(str, Enum):
    EMAIL = "email"
    PUSH = "push"
    SMS = "sms"


class WorkingHours(BaseModel):
    start: str = Field(default="08:00", pattern=r"^([01]\d|2[0-3]):[0-5]\d$")
    end: str = Field(default="17:00", pattern=r"^([01]\d|2[0-3]):[0-5]\d$")
    days: list[int] = Field(default_factory=lambda: [1, 2, 3, 4, 5])


class CalendarSettings(BaseModel):
    default_view: CalendarView = CalendarView.MONTH
    default_reminder: int = Field(default=15, ge=0, le=10080)
    working_hours: WorkingHours = Field(default_factory=WorkingHours)
    timezone: str = "Europe/Istanbul"


class Calendar(Document):
    name: str
    description: Optional[str] = None
    color: str = "#3B82F6"
    is_default: bool = False
    is_public: bool = False
    allowed_roles: list[str] = Field(default_factory=list)
    owner_id: Indexed(str)
    shared_with: list[Share] = Field(default_factory=list)
    settings: CalendarSettings = Field(default_factory=CalendarSettings)
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "calendars"
        use_state_management = True


class RecurringPattern(BaseModel):
    frequency: Frequency
    interval: int = Field(default=1, ge=1, le=365)
    end_date: Optional[datetime] = None
    end_after: Optional[int] = Field(default=None, ge=1, le=MAX_OCCURRENCES)

    @field_validator("end_date")
    @classmethod
    def _naive(cls, value: Optional[datetime]) -> Optional[datetime]:
        return to_naive_utc(value) if value else value


class Reminder(BaseModel):
    type: ReminderType = ReminderType.PUSH
    minutes_before: int = Field(default=15, ge=0, le=10080)
    sent: bool = False


class Attendee(BaseModel):
    user_id: str
    role: AttendeeRole = AttendeeRole.ATTENDEE
    response: AttendeeResponse = AttendeeResponse.PENDING


class CalendarEvent(Document):
    title: str
    description: Optional[str] = None
    start_date: datetime
    end_date: datetime
    all_day: bool = False
    location: Optional[str] = None
    type: EventType = EventType.ACTIVITY
    priority: Priority = Priority.MEDIUM
    status: EventStatus = EventStatus.SCHEDULED
    color: Optional[str] = None
    is_recurring: bool = False
    recurring_pattern: Optional[RecurringPattern] = None
    reminders: list[Reminder] = Field(default_factory=list)
    attendees: list[Attendee] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)
    is_public: bool = False
    allowed_roles: list[str] = Field(default_factory=list)
    created_by: str
    calendar_id: Indexed(str)
    parent_event_id: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "calendar_events"
        use_state_management = True

    def attendee(self, user_id: str) -> Optional[Attendee]:
        return next((a for a in self.attendees if a.user_id == user_id), None)


class CalendarCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    color: str = Field(default="#3B82F6", pattern=COLOR_PATTERN)
    is_default: bool = False
    is_public: bool = False
    allowed_roles: list[str] = Field(default_factory=list)
    settings: CalendarSettings = Field(default_factory=CalendarSettings)


class CalendarUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    color: Optional[str] = Field(default=None, pattern=COLOR_PATTERN)
    is_default: Optional[bool] = None
    is_public: Optional[bool] = None
    allowed_roles: Optional[list[str]] = None
    settings: Optional[CalendarSettings] = None

    @field_validator("name", "color", "is_default", "is_public", "allowed_roles", "settings")
    @classmethod
    def _required(cls, value):
        return reject_null(value)


class EventCreate(BaseModel):
    calendar_id: str
    title: str = Field(min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, max_length=2000)
    start_date: datetime
    end_date: datetime
    all_day: bool = False
    location: Optional[str] = Field(default=None, max_length=200)
    type: EventType = EventType.ACTIVITY
    priority: Priority = Priority.MEDIUM
    status: EventStatus = EventStatus.SCHEDULED
    color: Optional[str] = Field(default=None, pattern=COLOR_PATTERN)
    is_recurring: bool = False
    recurring_pattern: Optional[RecurringPattern] = None
    reminders: list[Reminder] = Field(default_factory=list, max_length=10)
    attendees: list[Attendee] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)
    is_public: bool = False
    allowed_roles: list[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_dates(self):
        self.start_date = to_naive_utc(self.start_date)
        self.end_date = to_naive_utc(self.end_date)
        if self.end_date < self.start_date:
            raise ValueError("Bitiş tarihi başlangıç tarihinden önce olamaz")
        if self.is_recurring and not self.recurring_pattern:
            raise ValueError("Tekrarlanan etkinlik için tekrar düzeni gerekli")
        return self


class EventUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, max_length=2000)
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    all_day: Optional[bool] = None
    location: Optional[str] = Field(default=None, max_length=200)
    type: Optional[EventType] = None
    priority: Optional[Priority] = None
    status: Optional[EventStatus] = None
    color: Optional[str] = Field(default=None, pattern=COLOR_PATTERN)
    recurring_pattern: Optional[RecurringPattern] = None
    reminders: Optional[list[Reminder]] = Field(default=None, max_length=10)
    attendees: Optional[list[Attendee]] = None
    tags: Optional[list[str]] = None
    is_public: Optional[bool] = None
    allowed_roles: Optional[list[str]] = None

    @field_validator(
        "title", "start_date", "end_date", "all_day", "type", "priority", "status",
        "reminders", "attendees", "tags", "is_public", "allowed_roles",
    )
    @classmethod
    def _required(cls, value):
        value = reject_null(value)
        return to_naive_utc(value) if isinstance(value, datetime) else value


class EventRespond(BaseModel):
    response: AttendeeResponse

    @field_validator("response")
    @classmethod
    def _not_pending(cls, value: AttendeeResponse) -> AttendeeResponse:
        if value == AttendeeResponse.PENDING:
            raise ValueError("Yanıt accepted, declined veya tentative olmalıdır")
        return value


class EventImport(BaseModel):
    events: list[dict] = Field(min_length=1, max_length=1000)


def _add_months(value: datetime, months: int) -> datetime:
    month = value.month - 1 + months
    year = value.year + month // 12
    month = month % 12 + 1
    day = min(value.day, month_calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def occurrence_starts(start: datetime, pattern: RecurringPattern) -> list[datetime]:
    """Start times of the repeats after ``start``, bounded by end_date, end_after and MAX_OCCURRENCES."""
    limit = min(pattern.end_after or MAX_OCCURRENCES, MAX_OCCURRENCES)
    starts: list[datetime] = []
    for n in range(1, limit + 1):
        step = pattern.interval * n
        if pattern.frequency == Frequency.DAILY:
            current = start + timedelta(days=step)
        elif pattern.frequency == Frequency.WEEKLY:
            current = start + timedelta(weeks=step)
        elif pattern.frequency == Frequency.MONTHLY:
            current = _add_months(start, step)
        else:
            current = _add_months(start, 12 * step)
        if pattern.end_date and current > pattern.end_date:
            break
        starts.append(current)
    return starts


def serialize_calendar(c: Calendar) -> dict:
    return {
        "id": str(c.id),
        "name": c.name,
        "description": c.description,
        "color": c.color,
        "is_default": c.is_default,
        "is_public": c.is_public,
        "allowed_roles": c.allowed_roles,
        "owner_id": c.owner_id,
        "shared_with": [s.model_dump() for s in c.shared_with],
        "settings": c.settings.model_dump(),
        "created_at": c.created_at,
    }


def serialize_event(e: CalendarEvent) -> dict:
    return {
        "id": str(e.id),
        "calendar_id": e.calendar_id,
        "title": e.title,
        "description": e.description,
        "start_date": e.start_date,
        "end_date": e.end_date,
        "all_day": e.all_day,
        "location": e.location,
        "type": e.type.value,
        "priority": e.priority.value,
        "status": e.status.value,
        "color": e.color,
        "is_recurring": e.is_recurring,
        "recurring_pattern": e.recurring_pattern.model_dump() if e.recurring_pattern else None,
        "reminders": [r.model_dump() for r in e.reminders],
        "attendees": [a.model_dump() for a in e.attendees],
        "tags": e.tags,
        "is_public": e.is_public,
        "allowed_roles": e.allowed_roles,
        "created_by": e.created_by,
        "parent_event_id": e.parent_event_id,
    }
