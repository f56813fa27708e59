from datetime import datetime
from typing import Optional

from fastapi import APIRouter, HTTPException, Query

from app.api.deps import AdminOnly, CurrentUser, TeacherOrAdmin
from app.models.notification import (
    Notification,
    NotificationCreate,
    RoleNotificationCreate,
    serialize_notification,
)
from app.services.access import get_user_or_404, pagination, safe_object_id
from app.services.notifications import notify, notify_role, unread_count

router = APIRouter()


async def _get_own_notification(notification_id: str, user) -> Notification:
    oid = safe_object_id(notification_id)
    n = await Notification.get(oid) if oid else None
    if not n or n.user_id != user.username:
        raise HTTPException(status_code=404, detail="Bildirim bulunamadı")
    return n


@router.get("/")
async def list_notifications(
    user: CurrentUser,
    read: Optional[bool] = None,
    include_archived: bool = False,
    page: int = Query(1, ge=1, le=1000),
    limit: int = Query(20, ge=1, le=100),
):
    query: dict = {"user_id": user.username}
    if read is not None:
        query["read"] = read
    if not include_archived:
        query["archived"] = False
    total = await Notification.find(query).count()
    items = await Notification.find(query).sort("-created_at").skip((page - 1) * limit).limit(limit).to_list()
    return {
        "data": [serialize_notification(n) for n in items],
        "pagination": pagination(page, limit, total),
        "unread_count": await unread_count(user.username),
    }


@router.get("/unread-count")
async def get_unread_count(user: CurrentUser):
    return {"count": await unread_count(user.username)}


@router.patch("/read-all")
async def mark_all_read(user: CurrentUser):
    items = await Notification.find({"user_id": user.username, "read": False}).to_list()
    now = datetime.utcnow()
    for n in items:
        n.read = True
        n.read_at = now
        await n.save()
    return {"updated": len(items)}


@router.patch("/{notification_id}/read")
async def mark_read(notification_id: str, user: CurrentUser):
    n = await _get_own_notification(notification_id, user)
    if not n.read:
        n.read = True
        n.read_at = datetime.utcnow()
        await n.save()
    return serialize_notification(n)


@router.patch("/{notification_id}/archive")
async def archive_notification(notification_id: str, user: CurrentUser):
    n = await _get_own_notification(notification_id, user)
    n.archived = True
    await n.save()
    return serialize_notification(n)


@router.post("/", status_code=201)
async def send_notification(data: NotificationCreate, user: TeacherOrAdmin):
    target = await get_user_or_404(data.user_id)
    await notify(
        [target.username],
        data.title,
        data.message,
        type=data.type,
        priority=data.priority,
        sender_id=user.username,
        action_url=data.action_url,
    )
    return {"success": True, "created": 1}


@router.post("/role-based", status_code=201)
async def send_role_notification(data: RoleNotificationCreate, admin: AdminOnly):
    created = await notify_role(
        data.role,
        data.title,
        data.message,
        type=data.type,
        priority=data.priority,
        sender_id=admin.username,
    )
    return {"success": True, "created": created}


@router.delete("/{notification_id}")
async def delete_notification(notification_id: str, admin: AdminOnly):
    oid = safe_object_id(notification_id)
    n = await Notification.get(oid) if oid else None
    if not n:
        raise HTTPException(status_code=404, detail="Bildirim bulunamadı")
    await n.delete()
    return {"success": True, "message": "Bildirim silindi"}
