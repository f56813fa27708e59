from datetime import datetime
from enum import Enum
from typing import Optional

from beanie import Document, Indexed
from pydantic import BaseModel, Field

from app.models.user import UserRole


class NotificationType(str, Enum):
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"
    REQUEST = "request"
    APPROVAL = "approval"
    REMINDER = "reminder"
    ANNOUNCEMENT = "announcement"


class Priority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class Notification(Document):
    user_id: Indexed(str)
    title: str
    message: str
    type: NotificationType = NotificationType.INFO
    priority: Priority = Priority.MEDIUM
    read: bool = False
    read_at: Optional[datetime] = None
    archived: bool = False
    action_url: Optional[str] = None
    sender_id: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "notifications"
        use_state_management = True


class NotificationCreate(BaseModel):
    user_id: str
    title: str = Field(min_length=1, max_length=200)
    message: str = Field(min_length=1, max_length=1000)
    type: NotificationType = NotificationType.INFO
    priority: Priority = Priority.MEDIUM
    action_url: Optional[str] = None


class RoleNotificationCreate(BaseModel):
    role: UserRole
    title: str = Field(min_length=1, max_length=200)
    message: str = Field(min_length=1, max_length=1000)
    type: NotificationType = NotificationType.ANNOUNCEMENT
    priority: Priority = Priority.MEDIUM


def serialize_notification(n: Notification) -> dict:
    return {
        "id": str(n.id),
        "user_id": n.user_id,
        "title": n.title,
        "message": n.message,
        "type": n.type.value,
        "priority": n.priority.value,
        "read": n.read,
        "read_at": n.read_at,
        "archived": n.archived,
        "action_url": n.action_url,
        "sender_id": n.sender_id,
        "created_at": n.created_at,
    }
