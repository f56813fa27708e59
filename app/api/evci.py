"""Weekend leave (evci) requests filed by boarding students or their parents."""
import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, HTTPException, Query

from app.api.deps import CurrentUser, TeacherOrAdmin, is_staff
from app.models.evci import EvciRequest, EvciRequestCreate, EvciRequestUpdate, check_evci_dates, serialize_evci
from app.models.notification import NotificationType, Priority
from app.models.request import ReviewStatus
from app.models.user import User, UserRole
from app.services.access import ensure_can_view_student, get_user_or_404, pagination, safe_object_id
from app.services.notifications import notify

logger = logging.getLogger(__name__)

router = APIRouter()


async def _get_evci(evci_id: str) -> EvciRequest:
    oid = safe_object_id(evci_id)
    evci = await EvciRequest.get(oid) if oid else None
    if not evci:
        raise HTTPException(status_code=404, detail="Evci talebi bulunamadı")
    return evci


async def _resolve_student(data: EvciRequestCreate, user: User) -> tuple[User, Optional[User]]:
    """Return (student, parent) for a new request filed by `user`."""
    if user.role == UserRole.STUDENT:
        if data.student_id and data.student_id != user.username:
            raise HTTPException(status_code=403, detail="Öğrenciler yalnızca kendileri için talep oluşturabilir")
        parent = None
        if user.parent_ids:
            parent = await User.find_one(User.username == user.parent_ids[0])
        return user, parent
    if user.role == UserRole.PARENT:
        if not data.student_id or data.student_id not in user.child_ids:
            raise HTTPException(status_code=403, detail="Yalnızca kendi çocuğunuz için talep oluşturabilirsiniz")
        student = await get_user_or_404(data.student_id, "Öğrenci bulunamadı")
        return student, user
    raise HTTPException(status_code=403, detail="Evci talebi yalnızca öğrenci veya veli tarafından oluşturulabilir")


@router.get("/")
async def list_evci_requests(
    user: TeacherOrAdmin,
    status: Optional[ReviewStatus] = None,
    student_id: Optional[str] = None,
    page: int = Query(1, ge=1, le=1000),
    limit: int = Query(20, ge=1, le=100),
):
    query: dict = {}
    if status:
        query["status"] = status.value
    if student_id:
        query["student_id"] = student_id
    total = await EvciRequest.find(query).count()
    items = await EvciRequest.find(query).sort("-leave_date").skip((page - 1) * limit).limit(limit).to_list()
    return {"data": [serialize_evci(e) for e in items], "pagination": pagination(page, limit, total)}


@router.get("/student/{student_id}")
async def list_student_evci_requests(student_id: str, user: CurrentUser):
    ensure_can_view_student(user, student_id)
    items = await EvciRequest.find(EvciRequest.student_id == student_id).sort("-leave_date").to_list()
    return [serialize_evci(e) for e in items]


@router.post("/", status_code=201)
async def create_evci_request(data: EvciRequestCreate, user: CurrentUser):
    student, parent = await _resolve_student(data, user)
    evci = EvciRequest(
        student_id=student.username,
        student_name=student.full_name,
        parent_id=parent.username if parent else None,
        parent_name=parent.full_name if parent else None,
        leave_date=data.leave_date,
        return_date=data.return_date,
        reason=data.reason,
        destination=data.destination,
        contact_phone=data.contact_phone,
        created_by=user.username,
    )
    await evci.insert()
    logger.info("Evci request %s created for %s by %s", evci.id, student.username, user.username)
    return serialize_evci(evci)


def _is_owner(evci: EvciRequest, user: User) -> bool:
    if user.role == UserRole.PARENT and evci.student_id in user.child_ids:
        return True
    return user.username in (evci.created_by, evci.student_id, evci.parent_id)


async def _review(evci: EvciRequest, data: EvciRequestUpdate, user: User) -> dict:
    review = data.review_fields()
    if "admin_note" in review:
        evci.admin_note = review["admin_note"]
    status = review.get("status")
    if status is not None:
        evci.status = status
        if status in (ReviewStatus.APPROVED, ReviewStatus.REJECTED):
            evci.approved_by = user.username
            evci.approved_at = datetime.utcnow()
    evci.updated_at = datetime.utcnow()
    await evci.save()

    if status in (ReviewStatus.APPROVED, ReviewStatus.REJECTED):
        approved = status == ReviewStatus.APPROVED
        await notify(
            [evci.student_id, evci.parent_id],
            "Evci talebi onaylandı" if approved else "Evci talebi reddedildi",
            f"{evci.student_name} için {evci.leave_date:%d.%m.%Y} tarihli evci talebi "
            f"{'onaylandı' if approved else 'reddedildi'}",
            type=NotificationType.APPROVAL if approved else NotificationType.WARNING,
            priority=Priority.HIGH,
            sender_id=user.username,
        )
    return serialize_evci(evci)


@router.patch("/{evci_id}")
async def update_evci_request(evci_id: str, data: EvciRequestUpdate, user: CurrentUser):
    evci = await _get_evci(evci_id)
    if is_staff(user):
        return await _review(evci, data, user)

    if not _is_owner(evci, user):
        raise HTTPException(status_code=403, detail="Bu talebi düzenleme yetkiniz yok")
    if data.review_fields():
        raise HTTPException(status_code=403, detail="Talep durumunu yalnızca öğretmen veya yönetici değiştirebilir")
    if evci.status != ReviewStatus.PENDING:
        raise HTTPException(status_code=400, detail="Yalnızca bekleyen talepler düzenlenebilir")

    changes = data.detail_fields()
    if "leave_date" in changes or "return_date" in changes:
        try:
            check_evci_dates(changes.get("leave_date", evci.leave_date), changes.get("return_date", evci.return_date))
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
    for field, value in changes.items():
        setattr(evci, field, value)
    evci.updated_at = datetime.utcnow()
    await evci.save()
    logger.info("Evci request %s edited by %s", evci.id, user.username)
    return serialize_evci(evci)


@router.delete("/{evci_id}")
async def delete_evci_request(evci_id: str, user: CurrentUser):
    evci = await _get_evci(evci_id)
    if user.role != UserRole.ADMIN:
        owner = user.username in (evci.created_by, evci.student_id, evci.parent_id)
        if not owner or is_staff(user):
            raise HTTPException(status_code=403, detail="Bu talebi silme yetkiniz yok")
        if evci.status != ReviewStatus.PENDING:
            raise HTTPException(status_code=400, detail="Yalnızca bekleyen talepler silinebilir")
    await evci.delete()
    return {"success": True, "message": "Evci talebi silindi"}
