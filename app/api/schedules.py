"""Class schedules: one active weekly plan per class, academic year and semester."""
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, HTTPException, Query
from pydantic import BaseModel

from app.api.deps import AdminOnly, CurrentUser
from app.models.schedule import (
    Schedule,
    ScheduleCreate,
    ScheduleSemester,
    ScheduleUpdate,
    serialize_schedule,
)
from app.services.access import pagination, safe_object_id
from app.services.cache import invalidate_resource

router = APIRouter()


class ScheduleStatusUpdate(BaseModel):
    # Any JSON value is accepted so non-bool input gets the domain message.
    is_active: object = None


async def _get_schedule(schedule_id: str) -> Schedule:
    oid = safe_object_id(schedule_id)
    schedule = await Schedule.get(oid) if oid else None
    if not schedule:
        raise HTTPException(status_code=404, detail="Ders programı bulunamadı")
    return schedule


async def _invalidate() -> None:
    await invalidate_resource("schedules")


async def _ensure_no_active_duplicate(
    grade_level: str, section: str, academic_year: str, semester: ScheduleSemester, exclude_id=None
) -> None:
    query = {
        "grade_level": grade_level,
        "section": section,
        "academic_year": academic_year,
        "semester": semester.value,
        "is_active": True,
    }
    if exclude_id is not None:
        query["_id"] = {"$ne": exclude_id}
    if await Schedule.find_one(query):
        raise HTTPException(
            status_code=400,
            detail="Bu sınıf için belirtilen dönemde aktif bir ders programı zaten mevcut",
        )


@router.get("/")
async def list_schedules(
    user: CurrentUser,
    grade_level: Optional[str] = None,
    section: Optional[str] = None,
    academic_year: Optional[str] = None,
    semester: Optional[ScheduleSemester] = None,
    is_active: Optional[bool] = None,
    page: int = Query(1, ge=1, le=1000),
    limit: int = Query(20, ge=1, le=100),
):
    query: dict = {}
    if grade_level:
        query["grade_level"] = grade_level
    if section:
        query["section"] = section.upper()
    if academic_year:
        query["academic_year"] = academic_year
    if semester:
        query["semester"] = semester.value
    if is_active is not None:
        query["is_active"] = is_active
    total = await Schedule.find(query).count()
    items = (
        await Schedule.find(query)
        .sort("grade_level", "section")
        .skip((page - 1) * limit)
        .limit(limit)
        .to_list()
    )
    return {"data": [serialize_schedule(s) for s in items], "pagination": pagination(page, limit, total)}


@router.get("/class/{grade_level}/{section}")
async def get_class_schedule(grade_level: str, section: str, user: CurrentUser):
    schedule = await Schedule.find(
        {"grade_level": grade_level, "section": section.upper(), "is_active": True}
    ).sort("-updated_at").first_or_none()
    if not schedule:
        raise HTTPException(status_code=404, detail="Bu sınıf için aktif ders programı bulunamadı")
    return serialize_schedule(schedule)


@router.get("/teacher/{teacher_id}")
async def get_teacher_schedule(teacher_id: str, user: CurrentUser):
    schedules = await Schedule.find({"is_active": True, "days.periods.teacher_id": teacher_id}).to_list()
    lessons = []
    for schedule in schedules:
        for day in schedule.days:
            for period in day.periods:
                if period.teacher_id == teacher_id:
                    lessons.append(
                        {
                            "day": day.day.value,
                            "period": period.period,
                            "subject": period.subject.value,
                            "grade_level": schedule.grade_level,
                            "section": schedule.section,
                            "room": period.room,
                            "start_time": period.start_time,
                            "end_time": period.end_time,
                        }
                    )
    day_order = {d: i for i, d in enumerate(["Pazartesi", "Salı", "Çarşamba", "Perşembe", "Cuma"])}
    lessons.sort(key=lambda l: (day_order[l["day"]], l["period"]))
    return {"teacher_id": teacher_id, "lessons": lessons}


@router.get("/{schedule_id}")
async def get_schedule(schedule_id: str, user: CurrentUser):
    return serialize_schedule(await _get_schedule(schedule_id))


@router.post("/", status_code=201)
async def create_schedule(data: ScheduleCreate, admin: AdminOnly):
    if data.is_active:
        await _ensure_no_active_duplicate(data.grade_level, data.section, data.academic_year, data.semester)
    schedule = Schedule(**data.model_dump(), created_by=admin.username)
    await schedule.insert()
    await _invalidate()
    return serialize_schedule(schedule)


@router.put("/{schedule_id}")
async def update_schedule(schedule_id: str, data: ScheduleUpdate, admin: AdminOnly):
    schedule = await _get_schedule(schedule_id)
    update_data = data.model_dump(exclude_unset=True, exclude_none=True)
    if schedule.is_active and ("academic_year" in update_data or "semester" in update_data):
        await _ensure_no_active_duplicate(
            schedule.grade_level,
            schedule.section,
            data.academic_year or schedule.academic_year,
            data.semester or schedule.semester,
            exclude_id=schedule.id,
        )
    if data.days is not None:
        schedule.days = data.days
    if data.academic_year:
        schedule.academic_year = data.academic_year
    if data.semester:
        schedule.semester = data.semester
    schedule.updated_at = datetime.utcnow()
    await schedule.save()
    await _invalidate()
    return serialize_schedule(schedule)


@router.patch("/{schedule_id}/status")
async def update_schedule_status(schedule_id: str, data: ScheduleStatusUpdate, admin: AdminOnly):
    if not isinstance(data.is_active, bool):
        raise HTTPException(status_code=400, detail="is_active boolean olmalıdır")
    schedule = await _get_schedule(schedule_id)
    if data.is_active and not schedule.is_active:
        await _ensure_no_active_duplicate(
            schedule.grade_level, schedule.section, schedule.academic_year, schedule.semester, exclude_id=schedule.id
        )
    schedule.is_active = data.is_active
    schedule.updated_at = datetime.utcnow()
    await schedule.save()
    await _invalidate()
    return serialize_schedule(schedule)


@router.delete("/{schedule_id}", status_code=204)
async def delete_schedule(schedule_id: str, admin: AdminOnly):
    schedule = await _get_schedule(schedule_id)
    await schedule.delete()
    await _invalidate()
    return None
