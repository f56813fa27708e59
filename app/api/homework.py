from datetime import datetime
from typing import Optional

from fastapi import APIRouter, HTTPException, Query

from app.api.deps import AdminOnly, CurrentUser, TeacherOrAdmin
from app.models.homework import (
    Homework,
    HomeworkCreate,
    HomeworkStatus,
    HomeworkStatusUpdate,
    HomeworkUpdate,
    serialize_homework,
)
from app.models.common import to_naive_utc
from app.models.user import User, UserRole
from app.services.access import safe_object_id

router = APIRouter()


async def _get_homework(homework_id: str) -> Homework:
    oid = safe_object_id(homework_id)
    hw = await Homework.get(oid) if oid else None
    if not hw:
        raise HTTPException(status_code=404, detail="Ödev bulunamadı")
    return hw


def _ensure_owner(hw: Homework, user: User) -> None:
    if user.role != UserRole.ADMIN and hw.teacher_id != user.username:
        raise HTTPException(status_code=403, detail="Bu ödevi yalnızca oluşturan öğretmen düzenleyebilir")


async def _student_scope(user: User) -> Optional[list[dict]]:
    """Class filters for students and parents; None for staff."""
    if user.role == UserRole.STUDENT:
        students = [user]
    elif user.role == UserRole.PARENT:
        students = await User.find({"username": {"$in": user.child_ids}}).to_list()
    else:
        return None
    scopes = []
    for s in students:
        if s.grade_level:
            scopes.append(
                {"grade_level": s.grade_level, "$or": [{"section": None}, {"section": s.section}]}
            )
    return scopes


@router.get("/")
async def list_homework(
    user: CurrentUser,
    subject: Optional[str] = None,
    grade_level: Optional[str] = None,
    section: Optional[str] = None,
    status: Optional[HomeworkStatus] = None,
    teacher_id: Optional[str] = None,
    page: int = Query(1, ge=1, le=1000),
    limit: int = Query(20, ge=1, le=100),
):
    """List homework; students and parents only see published homework of their class."""
    filters: list[dict] = []
    if subject:
        filters.append({"subject": subject})
    if grade_level:
        filters.append({"grade_level": grade_level})
    if section:
        filters.append({"section": section.upper()})
    if status:
        filters.append({"status": status.value})
    if teacher_id:
        filters.append({"teacher_id": teacher_id})

    scopes = await _student_scope(user)
    if scopes is not None:
        filters.append({"is_published": True})
        filters.append({"$or": scopes} if scopes else {"_id": None})

    query = {"$and": filters} if filters else {}
    total = await Homework.find(query).count()
    items = await Homework.find(query).sort("-due_date").skip((page - 1) * limit).limit(limit).to_list()
    return {
        "homeworks": [serialize_homework(h) for h in items],
        "pagination": {"page": page, "limit": limit, "total": total, "pages": -(-total // limit)},
    }


@router.get("/{homework_id}")
async def get_homework(homework_id: str, user: CurrentUser):
    hw = await _get_homework(homework_id)
    if user.role in (UserRole.STUDENT, UserRole.PARENT) and not hw.is_published:
        raise HTTPException(status_code=404, detail="Ödev bulunamadı")
    return serialize_homework(hw)


@router.post("/", status_code=201)
async def create_homework(data: HomeworkCreate, user: TeacherOrAdmin):
    hw = Homework(
        **data.model_dump(),
        teacher_id=user.username,
        teacher_name=user.full_name,
    )
    await hw.insert()
    return serialize_homework(hw)


@router.put("/{homework_id}")
async def update_homework(homework_id: str, data: HomeworkUpdate, user: TeacherOrAdmin):
    hw = await _get_homework(homework_id)
    _ensure_owner(hw, user)
    update_data = data.model_dump(exclude_unset=True)
    # assign the parsed values so attachments stay models
    for key in update_data:
        setattr(hw, key, getattr(data, key))
    if "due_date" in update_data:
        hw.due_date = to_naive_utc(hw.due_date)
    hw.updated_at = datetime.utcnow()
    await hw.save()
    return serialize_homework(hw)


@router.delete("/{homework_id}")
async def delete_homework(homework_id: str, user: TeacherOrAdmin):
    hw = await _get_homework(homework_id)
    _ensure_owner(hw, user)
    await hw.delete()
    return {"success": True, "message": "Ödev silindi"}


@router.patch("/{homework_id}/status")
async def update_homework_status(homework_id: str, data: HomeworkStatusUpdate, admin: AdminOnly):
    try:
        status = HomeworkStatus(data.status)
    except ValueError:
        raise HTTPException(status_code=400, detail="Geçersiz ödev durumu")
    hw = await _get_homework(homework_id)
    hw.status = status
    hw.updated_at = datetime.utcnow()
    await hw.save()
    return serialize_homework(hw)
