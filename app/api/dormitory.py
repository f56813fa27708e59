"""Dormitory (pansiyon): monthly meal and supervisor lists, room maintenance requests."""
import logging
import mimetypes
from datetime import datetime
from typing import Optional, Type

from fastapi import APIRouter, File, Form, HTTPException, Response, UploadFile

from app.api.deps import AdminOnly, CurrentUser, DormitoryStaff
from app.models.dormitory import (
    MaintenanceCreate,
    MaintenanceRequest,
    MaintenanceStatus,
    MaintenanceUpdate,
    MealList,
    MonthlyFile,
    SupervisorList,
    serialize_maintenance,
    serialize_monthly_file,
)
from app.models.notification import NotificationType
from app.models.user import User, UserRole
from app.services.access import ensure_can_view_student, safe_object_id
from app.services.cache import invalidate_resource
from app.services.notifications import notify
from app.services.storage import delete_file, read_file, save_upload

logger = logging.getLogger(__name__)

router = APIRouter()
maintenance_router = APIRouter()

MONTH_PATTERN = r"^\d{4}-(0[1-9]|1[0-2])$"


def _monthly_list_router(resource: str, model: Type[MonthlyFile], label: str) -> APIRouter:
    """List/upload/download/delete routes for one kind of monthly file."""
    monthly = APIRouter()

    async def get_or_404(item_id: str) -> MonthlyFile:
        oid = safe_object_id(item_id)
        item = await model.get(oid) if oid else None
        if not item or not item.is_active:
            raise HTTPException(status_code=404, detail="Dosya bulunamadı")
        return item

    @monthly.get("", name=f"list_{resource}")
    async def list_files(user: CurrentUser, month: Optional[str] = None, year: Optional[int] = None):
        query: dict = {"is_active": True}
        if month:
            query["month"] = month
        if year:
            query["year"] = year
        items = await model.find(query).sort("-uploaded_at").to_list()
        return [serialize_monthly_file(i) for i in items]

    @monthly.post("", name=f"upload_{resource}", status_code=201)
    async def upload_file(
        response: Response,
        user: DormitoryStaff,
        file: UploadFile = File(...),
        month: str = Form(..., pattern=MONTH_PATTERN),
        year: int = Form(..., ge=2000, le=2100),
    ):
        url, key = await save_upload(file, resource)
        existing = await model.find_one({"month": month, "year": year, "is_active": True})
        if existing:
            old_key = existing.file_key
            existing.file_url = url
            existing.file_key = key
            existing.file_name = file.filename or key
            existing.content_type = file.content_type
            existing.uploaded_by = user.username
            existing.uploaded_at = datetime.utcnow()
            await existing.save()
            await delete_file(old_key)
            item = existing
            response.status_code = 200
        else:
            item = model(
                month=month,
                year=year,
                file_url=url,
                file_key=key,
                file_name=file.filename or key,
                content_type=file.content_type,
                uploaded_by=user.username,
            )
            await item.insert()
        await invalidate_resource(resource)
        logger.info("%s list for %s uploaded by %s", label, month, user.username)
        return serialize_monthly_file(item)

    @monthly.get("/{item_id}/download", name=f"download_{resource}")
    async def download_file(item_id: str, user: CurrentUser):
        item = await get_or_404(item_id)
        content = await read_file(item.file_key)
        media_type = item.content_type or mimetypes.guess_type(item.file_name)[0] or "application/octet-stream"
        return Response(
            content=content,
            media_type=media_type,
            headers={"Content-Disposition": f'attachment; filename="{item.file_key.rsplit("/", 1)[-1]}"'},
        )

    @monthly.delete("/cache", name=f"clear_{resource}_cache")
    async def clear_list_cache(admin: AdminOnly):
        deleted = await invalidate_resource(resource)
        return {"message": f"{label} önbelleği temizlendi", "deleted": deleted}

    @monthly.delete("/{item_id}", name=f"delete_{resource}")
    async def delete_list_file(item_id: str, user: DormitoryStaff):
        item = await get_or_404(item_id)
        item.is_active = False
        await item.save()
        await delete_file(item.file_key)
        await invalidate_resource(resource)
        return {"success": True, "message": "Dosya silindi"}

    return monthly


meals_router = _monthly_list_router("meals", MealList, "Yemek listesi")
supervisors_router = _monthly_list_router("supervisors", SupervisorList, "Belletmen listesi")


# --- Maintenance ---


async def _get_maintenance(request_id: str) -> MaintenanceRequest:
    oid = safe_object_id(request_id)
    item = await MaintenanceRequest.get(oid) if oid else None
    if not item:
        raise HTTPException(status_code=404, detail="Talep bulunamadı")
    return item


@maintenance_router.post("", status_code=201)
async def create_maintenance_request(data: MaintenanceCreate, user: CurrentUser):
    if user.role not in (UserRole.STUDENT, UserRole.ADMIN, UserRole.HIZMETLI):
        raise HTTPException(status_code=403, detail="Bu işlem için yetkiniz yok")
    room_number = (data.room_number or "").strip()
    if user.role == UserRole.STUDENT:
        if room_number and room_number != user.room:
            raise HTTPException(status_code=403, detail="Sadece kendi odanız için bakım talebi oluşturabilirsiniz")
        if not user.room:
            raise HTTPException(status_code=400, detail="Kayıtlı bir odanız bulunmuyor")
        student = user
        room_number = user.room
    else:
        if not room_number:
            raise HTTPException(status_code=400, detail="Oda numarası ve sorun açıklaması gerekli")
        student = await User.find_one(
            User.room == room_number, User.role == UserRole.STUDENT, User.is_active == True
        )
        if not student:
            raise HTTPException(status_code=404, detail="Öğrenci bulunamadı")

    item = MaintenanceRequest(
        student_id=student.username,
        student_name=student.full_name,
        room_number=room_number,
        issue=data.issue.strip(),
        created_by=user.username,
    )
    await item.insert()
    staff = await User.find(User.role == UserRole.HIZMETLI, User.is_active == True).to_list()
    await notify(
        [s.username for s in staff if s.username != user.username],
        f"Oda {room_number}: yeni bakım talebi",
        item.issue[:200],
        type=NotificationType.REQUEST,
        sender_id=user.username,
    )
    return serialize_maintenance(item)


@maintenance_router.get("")
async def list_maintenance_requests(
    user: DormitoryStaff,
    status: Optional[MaintenanceStatus] = None,
    room_number: Optional[str] = None,
):
    query: dict = {}
    if status:
        query["status"] = status.value
    if room_number:
        query["room_number"] = room_number
    items = await MaintenanceRequest.find(query).sort("-created_at").to_list()
    return [serialize_maintenance(i) for i in items]


@maintenance_router.get("/my-requests")
async def my_maintenance_requests(user: CurrentUser):
    items = await MaintenanceRequest.find(MaintenanceRequest.student_id == user.username).sort("-created_at").to_list()
    return [serialize_maintenance(i) for i in items]


@maintenance_router.get("/student/{student_id}")
async def student_maintenance_requests(student_id: str, user: CurrentUser):
    if user.role != UserRole.HIZMETLI:
        ensure_can_view_student(user, student_id)
    items = await MaintenanceRequest.find(MaintenanceRequest.student_id == student_id).sort("-created_at").to_list()
    return [serialize_maintenance(i) for i in items]


@maintenance_router.patch("/{request_id}")
async def update_maintenance_request(request_id: str, data: MaintenanceUpdate, user: DormitoryStaff):
    item = await _get_maintenance(request_id)
    previous = item.status
    for key, value in data.model_dump(exclude_unset=True, exclude_none=True).items():
        setattr(item, key, value)
    item.updated_at = datetime.utcnow()
    await item.save()
    if item.status != previous:
        await notify(
            [item.student_id],
            "Bakım talebiniz güncellendi",
            f"Oda {item.room_number} bakım talebinin durumu: {item.status.value}",
            type=NotificationType.INFO,
            sender_id=user.username,
        )
    return serialize_maintenance(item)


@maintenance_router.delete("/{request_id}", status_code=204)
async def delete_maintenance_request(request_id: str, admin: AdminOnly):
    item = await _get_maintenance(request_id)
    await item.delete()
    return None


router.include_router(meals_router, prefix="/meals")
router.include_router(supervisors_router, prefix="/supervisors")
router.include_router(maintenance_router, prefix="/maintenance")
