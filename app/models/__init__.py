"""Beanie document models and Pydantic schemas."""
from app.models.user import User, UserRole, UserCreate, UserUpdate
from app.models.note import Note, NoteCreate, NoteUpdate, Semester, NoteSource
from app.models.homework import Homework, HomeworkCreate, HomeworkUpdate, HomeworkStatus
from app.models.announcement import Announcement, AnnouncementCreate, AnnouncementUpdate
from app.models.schedule import Schedule, ScheduleCreate, ScheduleUpdate
from app.models.club import Club, ClubCreate, ClubMetaUpdate
from app.models.request import Request, RequestCreate, RequestReview, RequestType, ReviewStatus
from app.models.evci import EvciRequest, EvciRequestCreate, EvciRequestUpdate
from app.models.dormitory import MaintenanceRequest, MaintenanceStatus, MealList, SupervisorList
from app.models.notification import Notification, NotificationCreate
from app.models.calendar import Calendar, CalendarEvent
from app.models.file import Folder, StoredFile

DOCUMENT_MODELS = [
    User,
    Note,
    Homework,
    Announcement,
    Schedule,
    Club,
    Request,
    EvciRequest,
    MaintenanceRequest,
    MealList,
    SupervisorList,
    Notification,
    Calendar,
    CalendarEvent,
    StoredFile,
    Folder,
]

__all__ = [
    "DOCUMENT_MODELS",
    "User",
    "UserRole",
    "UserCreate",
    "UserUpdate",
    "Note",
    "NoteCreate",
    "NoteUpdate",
    "Semester",
    "NoteSource",
    "Homework",
    "HomeworkCreate",
    "HomeworkUpdate",
    "HomeworkStatus",
    "Announcement",
    "AnnouncementCreate",
    "AnnouncementUpdate",
    "Schedule",
    "ScheduleCreate",
    "ScheduleUpdate",
    "Club",
    "ClubCreate",
    "ClubMetaUpdate",
    "Request",
    "RequestCreate",
    "RequestReview",
    "RequestType",
    "ReviewStatus",
    "EvciRequest",
    "EvciRequestCreate",
    "EvciRequestUpdate",
    "MaintenanceRequest",
    "MaintenanceStatus",
    "MealList",
    "SupervisorList",
    "Notification",
    "NotificationCreate",
    "Calendar",
    "CalendarEvent",
    "StoredFile",
    "Folder",
]
