from datetime import datetime, timedelta
from typing import Any, Dict

from fastapi import APIRouter

from app.api.deps import AdminOnly
from app.models.announcement import Announcement
from app.models.dormitory import MaintenanceRequest, MaintenanceStatus
from app.models.evci import EvciRequest
from app.models.homework import Homework, HomeworkStatus
from app.models.request import Request, ReviewStatus
from app.models.user import User, UserRole

router = APIRouter()


@router.get("/stats")
async def get_admin_stats(admin: AdminOnly) -> Dict[str, Any]:
    """Get overview statistics for the admin dashboard."""

    # Active users per role
    users_by_role = {}
    for role in UserRole:
        users_by_role[role.value] = await User.find(User.role == role, User.is_active == True).count()

    # Pending work queues
    pending_evci = await EvciRequest.find(EvciRequest.status == ReviewStatus.PENDING).count()
    pending_maintenance = await MaintenanceRequest.find(
        MaintenanceRequest.status == MaintenanceStatus.PENDING
    ).count()
    pending_requests = await Request.find(Request.status == ReviewStatus.PENDING).count()

    active_homework = await Homework.find(
        Homework.status == HomeworkStatus.ACTIVE, Homework.is_published == True
    ).count()

    # Recent announcements (last 30 days)
    thirty_days_ago = datetime.utcnow() - timedelta(days=30)
    recent_announcements = await Announcement.find(Announcement.date >= thirty_days_ago).count()

    return {
        "counts": {
            "users": sum(users_by_role.values()),
            "by_role": users_by_role,
            "announcements": recent_announcements,
            "active_homework": active_homework,
        },
        "pending": {
            "evci": pending_evci,
            "maintenance": pending_maintenance,
            "requests": pending_requests,
        },
        "generated_at": datetime.utcnow(),
    }
