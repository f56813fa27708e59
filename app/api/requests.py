"""Student requests (class or room change, club join, permission) with staff review."""
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, HTTPException, Query

from app.api.deps import CurrentUser, TeacherOrAdmin, is_staff
from app.models.notification import NotificationType
from app.models.request import (
    Request,
    RequestCreate,
    RequestReview,
    RequestType,
    ReviewStatus,
    serialize_request,
)
from app.models.user import UserRole
from app.services.access import pagination, safe_object_id
from app.services.notifications import notify

router = APIRouter()

STATUS_LABELS = {
    ReviewStatus.APPROVED: "onaylandı",
    ReviewStatus.REJECTED: "reddedildi",
    ReviewStatus.PENDING: "beklemede",
}


async def _get_request(request_id: str) -> Request:
    oid = safe_object_id(request_id)
    req = await Request.get(oid) if oid else None
    if not req:
        raise HTTPException(status_code=404, detail="Talep bulunamadı")
    return req


@router.get("/")
async def list_requests(
    user: TeacherOrAdmin,
    type: Optional[RequestType] = None,
    status: Optional[ReviewStatus] = None,
    page: int = Query(1, ge=1, le=1000),
    limit: int = Query(20, ge=1, le=100),
):
    query: dict = {}
    if type:
        query["type"] = type.value
    if status:
        query["status"] = status.value
    total = await Request.find(query).count()
    items = await Request.find(query).sort("-created_at").skip((page - 1) * limit).limit(limit).to_list()
    return {"data": [serialize_request(r) for r in items], "pagination": pagination(page, limit, total)}


@router.get("/user/{user_id}")
async def list_user_requests(user_id: str, user: CurrentUser):
    if not is_staff(user) and user.username != user_id:
        raise HTTPException(status_code=403, detail="Bu taleplere erişim yetkiniz yok")
    items = await Request.find(Request.user_id == user_id).sort("-created_at").to_list()
    return [serialize_request(r) for r in items]


@router.post("/", status_code=201)
async def create_request(data: RequestCreate, user: CurrentUser):
    req = Request(user_id=user.username, type=data.type, details=data.details)
    await req.insert()
    return serialize_request(req)


@router.patch("/{request_id}")
async def review_request(request_id: str, data: RequestReview, user: TeacherOrAdmin):
    req = await _get_request(request_id)
    if data.status is not None:
        req.status = data.status
        req.reviewed_by = user.username
    if data.admin_note is not None:
        req.admin_note = data.admin_note
    req.updated_at = datetime.utcnow()
    await req.save()
    if data.status is not None:
        await notify(
            [req.user_id],
            "Talebiniz güncellendi",
            f"{req.type.value} talebiniz {STATUS_LABELS[req.status]}",
            type=NotificationType.APPROVAL,
            sender_id=user.username,
        )
    return serialize_request(req)


@router.delete("/{request_id}")
async def delete_request(request_id: str, user: CurrentUser):
    req = await _get_request(request_id)
    if user.role != UserRole.ADMIN and req.user_id != user.username:
        raise HTTPException(status_code=403, detail="Bu talebi silme yetkiniz yok")
    await req.delete()
    return {"success": True, "message": "Talep silindi"}
