"""School announcements."""
from datetime import datetime

from fastapi import APIRouter, HTTPException, Query

from app.api.deps import CurrentUser, TeacherOrAdmin
from app.models.announcement import (
    Announcement,
    AnnouncementCreate,
    AnnouncementUpdate,
    serialize_announcement,
)
from app.models.notification import NotificationType
from app.models.user import User, UserRole
from app.services.access import safe_object_id
from app.services.cache import invalidate_resource
from app.services.notifications import notify

router = APIRouter()


async def _get_announcement(announcement_id: str) -> Announcement:
    oid = safe_object_id(announcement_id)
    announcement = await Announcement.get(oid) if oid else None
    if not announcement:
        raise HTTPException(status_code=404, detail="Duyuru bulunamadı")
    return announcement


@router.get("/")
async def list_announcements(user: CurrentUser, limit: int = Query(100, ge=1, le=500)):
    items = await Announcement.find_all().sort("-date").limit(limit).to_list()
    return [serialize_announcement(a) for a in items]


@router.get("/{announcement_id}")
async def get_announcement(announcement_id: str, user: CurrentUser):
    return serialize_announcement(await _get_announcement(announcement_id))


@router.post("/", status_code=201)
async def create_announcement(data: AnnouncementCreate, user: TeacherOrAdmin):
    title = data.title.strip()
    content = data.content.strip()
    if not title or not content:
        raise HTTPException(status_code=400, detail="Başlık ve içerik gerekli")
    if not 5 <= len(title) <= 200:
        raise HTTPException(status_code=400, detail="Başlık 5-200 karakter arasında olmalıdır")
    if not 10 <= len(content) <= 5000:
        raise HTTPException(status_code=400, detail="İçerik 10-5000 karakter arasında olmalıdır")

    announcement = Announcement(
        title=title,
        content=content,
        author=user.full_name or "Admin",
        author_id=user.username,
    )
    await announcement.insert()
    await invalidate_resource("announcements")

    recipients = await User.find(User.is_active == True, User.role != UserRole.ADMIN).to_list()
    await notify(
        [u.username for u in recipients if u.username != user.username],
        f"Yeni duyuru: {title}",
        content[:200],
        type=NotificationType.ANNOUNCEMENT,
        sender_id=user.username,
    )
    return serialize_announcement(announcement)


@router.put("/{announcement_id}")
async def update_announcement(announcement_id: str, data: AnnouncementUpdate, user: TeacherOrAdmin):
    announcement = await _get_announcement(announcement_id)
    if user.role != UserRole.ADMIN and announcement.author_id != user.username:
        raise HTTPException(status_code=403, detail="Bu duyuruyu yalnızca yazarı düzenleyebilir")
    update_data = data.model_dump(exclude_unset=True, exclude_none=True)
    for key, value in update_data.items():
        setattr(announcement, key, value.strip())
    announcement.updated_at = datetime.utcnow()
    await announcement.save()
    await invalidate_resource("announcements")
    return serialize_announcement(announcement)


@router.delete("/{announcement_id}")
async def delete_announcement(announcement_id: str, user: TeacherOrAdmin):
    announcement = await _get_announcement(announcement_id)
    await announcement.delete()
    await invalidate_resource("announcements")
    return {"success": True, "message": "Duyuru silindi"}
