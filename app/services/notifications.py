"""In-app notifications fanned out to users on domain events."""
from __future__ import annotations

import logging
from typing import Iterable, Optional

from app.models.notification import Notification, NotificationType, Priority
from app.models.user import User, UserRole

logger = logging.getLogger(__name__)


async def notify(
    user_ids: Iterable[str],
    title: str,
    message: str,
    *,
    type: NotificationType = NotificationType.INFO,
    priority: Priority = Priority.MEDIUM,
    sender_id: Optional[str] = None,
    action_url: Optional[str] = None,
) -> int:
    """Create one notification per distinct user id; return how many were created."""
    recipients = list(dict.fromkeys(u for u in user_ids if u))
    if not recipients:
        return 0
    docs = [
        Notification(
            user_id=user_id,
            title=title[:200],
            message=message[:1000],
            type=type,
            priority=priority,
            sender_id=sender_id,
            action_url=action_url,
        )
        for user_id in recipients
    ]
    await Notification.insert_many(docs)
    logger.debug("Created %d notifications: %s", len(docs), title)
    return len(docs)


async def notify_role(role: UserRole, title: str, message: str, **kwargs) -> int:
    users = await User.find(User.role == role, User.is_active == True).to_list()
    return await notify([u.username for u in users], title, message, **kwargs)


async def unread_count(user_id: str) -> int:
    return await Notification.find(
        Notification.user_id == user_id,
        Notification.read == False,
        Notification.archived == False,
    ).count()
