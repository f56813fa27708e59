"""Calendars and events: sharing, attendee responses, reminders, recurrence, import and export."""
import io
import logging
import re
from collections import Counter
from datetime import datetime, timedelta
from typing import Optional

import pandas as pd
from fastapi import APIRouter, HTTPException, Query, Response
from fastapi.responses import StreamingResponse
from pydantic import ValidationError

from app.api.deps import AdminOnly, CurrentUser
from app.models.calendar import (
    AttendeeResponse,
    Calendar,
    CalendarCreate,
    CalendarEvent,
    CalendarUpdate,
    EventCreate,
    EventImport,
    EventRespond,
    EventStatus,
    EventType,
    EventUpdate,
    occurrence_starts,
    serialize_calendar,
    serialize_event,
)
from app.models.common import to_naive_utc
from app.models.notification import NotificationType, Priority
from app.models.sharing import (
    SharePermission,
    ShareRequest,
    access_level,
    allows,
    public_to,
    upsert_share,
    visible_query,
)
from app.models.user import User
from app.services.access import get_user_or_404, safe_object_id
from app.services.notifications import notify

logger = logging.getLogger(__name__)

router = APIRouter()

EXPORT_COLUMNS = {
    "title": "Başlık",
    "start_date": "Başlangıç",
    "end_date": "Bitiş",
    "location": "Yer",
    "type": "Tür",
    "priority": "Öncelik",
    "status": "Durum",
}
# Longest reminder lead time accepted by the schemas (one week).
REMINDER_HORIZON = timedelta(minutes=10080)


def _calendar_level(cal: Calendar, user: User) -> Optional[SharePermission]:
    return access_level(user, cal.owner_id, cal.shared_with, cal.is_public, cal.allowed_roles)


async def _get_calendar(calendar_id: str, user: User, needed: SharePermission = SharePermission.READ) -> Calendar:
    oid = safe_object_id(calendar_id)
    cal = await Calendar.get(oid) if oid else None
    level = _calendar_level(cal, user) if cal else None
    if level is None:
        raise HTTPException(status_code=404, detail="Takvim bulunamadı")
    if not allows(level, needed):
        raise HTTPException(status_code=403, detail="Takvim erişim izniniz yok")
    return cal


async def _event_level(event: CalendarEvent, user: User) -> Optional[SharePermission]:
    if event.created_by == user.username:
        return SharePermission.ADMIN
    oid = safe_object_id(event.calendar_id)
    cal = await Calendar.get(oid) if oid else None
    level = _calendar_level(cal, user) if cal else None
    if level is None and (event.attendee(user.username) or public_to(user, event.is_public, event.allowed_roles)):
        level = SharePermission.READ
    return level


async def _get_event(event_id: str, user: User, needed: SharePermission = SharePermission.READ) -> CalendarEvent:
    oid = safe_object_id(event_id)
    event = await CalendarEvent.get(oid) if oid else None
    level = await _event_level(event, user) if event else None
    if level is None:
        raise HTTPException(status_code=404, detail="Etkinlik bulunamadı")
    if not allows(level, needed):
        raise HTTPException(status_code=403, detail="Bu etkinliği değiştirme yetkiniz yok")
    return event


async def _visible_events_query(user: User) -> dict:
    calendars = await Calendar.find(visible_query(user)).to_list()
    return {
        "$or": [
            {"calendar_id": {"$in": [str(c.id) for c in calendars]}},
            {"created_by": user.username},
            {"attendees.user_id": user.username},
            {"is_public": True, "allowed_roles": {"$size": 0}},
            {"is_public": True, "allowed_roles": user.role.value},
        ]
    }


async def _has_conflict(calendar_id: str, start: datetime, end: datetime, exclude_id=None) -> bool:
    query: dict = {
        "calendar_id": calendar_id,
        "status": {"$ne": EventStatus.CANCELLED.value},
        "start_date": {"$lt": end},
        "end_date": {"$gt": start},
    }
    if exclude_id is not None:
        query["_id"] = {"$ne": exclude_id}
    return await CalendarEvent.find(query).count() > 0


async def _create_recurrences(event: CalendarEvent) -> int:
    if not event.is_recurring or not event.recurring_pattern:
        return 0
    duration = event.end_date - event.start_date
    copies = [
        CalendarEvent(
            **event.model_dump(exclude={"id", "revision_id", "start_date", "end_date", "parent_event_id"}),
            start_date=start,
            end_date=start + duration,
            parent_event_id=str(event.id),
        )
        for start in occurrence_starts(event.start_date, event.recurring_pattern)
    ]
    if copies:
        await CalendarEvent.insert_many(copies)
    return len(copies)


async def _notify_attendees(event: CalendarEvent, action: str) -> None:
    await notify(
        [a.user_id for a in event.attendees if a.user_id != event.created_by],
        f"Etkinlik {action}",
        f"{event.title} etkinliği {action}.",
        type=NotificationType.ANNOUNCEMENT,
        sender_id=event.created_by,
        action_url=f"/calendar/event/{event.id}",
    )


# --- calendars ---


@router.get("/calendars")
async def list_calendars(user: CurrentUser):
    calendars = await Calendar.find(visible_query(user)).sort("name").to_list()
    return [serialize_calendar(c) for c in calendars]


@router.get("/calendars/{calendar_id}")
async def get_calendar(calendar_id: str, user: CurrentUser):
    return serialize_calendar(await _get_calendar(calendar_id, user))


@router.post("/calendars", status_code=201)
async def create_calendar(data: CalendarCreate, user: CurrentUser):
    if data.is_default:
        await Calendar.find(Calendar.owner_id == user.username).update({"$set": {"is_default": False}})
    cal = Calendar(**data.model_dump(), owner_id=user.username)
    await cal.insert()
    logger.info("Calendar %s created by %s", cal.id, user.username)
    return serialize_calendar(cal)


@router.put("/calendars/{calendar_id}")
async def update_calendar(calendar_id: str, data: CalendarUpdate, user: CurrentUser):
    cal = await _get_calendar(calendar_id, user, SharePermission.ADMIN)
    changes = data.model_dump(exclude_unset=True)
    if changes.get("is_default"):
        await Calendar.find(Calendar.owner_id == cal.owner_id, Calendar.id != cal.id).update(
            {"$set": {"is_default": False}}
        )
    for key in changes:
        setattr(cal, key, getattr(data, key))
    cal.updated_at = datetime.utcnow()
    await cal.save()
    return serialize_calendar(cal)


@router.delete("/calendars/{calendar_id}")
async def delete_calendar(calendar_id: str, user: CurrentUser):
    cal = await _get_calendar(calendar_id, user, SharePermission.ADMIN)
    await CalendarEvent.find(CalendarEvent.calendar_id == str(cal.id)).delete()
    await cal.delete()
    return {"success": True, "message": "Takvim silindi"}


@router.post("/calendars/{calendar_id}/share")
async def share_calendar(calendar_id: str, data: ShareRequest, user: CurrentUser):
    cal = await _get_calendar(calendar_id, user, SharePermission.ADMIN)
    target = await get_user_or_404(data.user_id)
    if target.username == cal.owner_id:
        raise HTTPException(status_code=400, detail="Takvim sahibiyle paylaşılamaz")
    upsert_share(cal.shared_with, target.username, data.permission, user.username)
    cal.updated_at = datetime.utcnow()
    await cal.save()
    await notify(
        [target.username],
        "Takvim paylaşıldı",
        f"{user.full_name} sizinle '{cal.name}' takvimini paylaştı",
        sender_id=user.username,
    )
    return serialize_calendar(cal)


# --- events ---


@router.get("/events")
async def list_events(
    user: CurrentUser,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    type: Optional[EventType] = None,
    priority: Optional[Priority] = None,
    status: Optional[EventStatus] = None,
    calendar_id: Optional[str] = None,
    search: Optional[str] = Query(None, max_length=100),
):
    clauses = [await _visible_events_query(user)]
    if start_date and end_date:
        clauses.append({"start_date": {"$lte": to_naive_utc(end_date)}})
        clauses.append({"end_date": {"$gte": to_naive_utc(start_date)}})
    for key, value in (("type", type), ("priority", priority), ("status", status)):
        if value:
            clauses.append({key: value.value})
    if calendar_id:
        clauses.append({"calendar_id": calendar_id})
    if search:
        pattern = re.escape(search.strip())
        clauses.append(
            {
                "$or": [
                    {"title": {"$regex": pattern, "$options": "i"}},
                    {"description": {"$regex": pattern, "$options": "i"}},
                    {"location": {"$regex": pattern, "$options": "i"}},
                ]
            }
        )
    events = await CalendarEvent.find({"$and": clauses}).sort("start_date").to_list()
    return [serialize_event(e) for e in events]


@router.get("/events/{event_id}")
async def get_event(event_id: str, user: CurrentUser):
    return serialize_event(await _get_event(event_id, user))


@router.post("/events", status_code=201)
async def create_event(data: EventCreate, user: CurrentUser):
    cal = await _get_calendar(data.calendar_id, user, SharePermission.WRITE)
    if await _has_conflict(str(cal.id), data.start_date, data.end_date):
        raise HTTPException(status_code=400, detail="Etkinlik mevcut etkinliklerle çakışıyor")
    event = CalendarEvent(**data.model_dump(exclude={"calendar_id"}), calendar_id=str(cal.id), created_by=user.username)
    await event.insert()
    repeats = await _create_recurrences(event)
    logger.info("Event %s created in calendar %s with %d repeats", event.id, cal.id, repeats)
    await _notify_attendees(event, "oluşturuldu")
    return serialize_event(event)


@router.put("/events/{event_id}")
async def update_event(event_id: str, data: EventUpdate, user: CurrentUser):
    event = await _get_event(event_id, user, SharePermission.WRITE)
    changes = data.model_dump(exclude_unset=True)
    start = data.start_date if "start_date" in changes else event.start_date
    end = data.end_date if "end_date" in changes else event.end_date
    if end < start:
        raise HTTPException(status_code=400, detail="Bitiş tarihi başlangıç tarihinden önce olamaz")
    if ("start_date" in changes or "end_date" in changes) and await _has_conflict(
        event.calendar_id, start, end, exclude_id=event.id
    ):
        raise HTTPException(status_code=400, detail="Etkinlik mevcut etkinliklerle çakışıyor")
    for key in changes:
        setattr(event, key, getattr(data, key))
    event.updated_at = datetime.utcnow()
    await event.save()

    if event.is_recurring and "recurring_pattern" in changes:
        await CalendarEvent.find(CalendarEvent.parent_event_id == str(event.id)).delete()
        await _create_recurrences(event)
    await _notify_attendees(event, "güncellendi")
    return serialize_event(event)


@router.delete("/events/{event_id}", status_code=204)
async def delete_event(event_id: str, user: CurrentUser):
    event = await _get_event(event_id, user)
    if event.created_by != user.username:
        cal_id = safe_object_id(event.calendar_id)
        cal = await Calendar.get(cal_id) if cal_id else None
        if not cal or cal.owner_id != user.username:
            raise HTTPException(status_code=403, detail="Etkinliği yalnızca oluşturan kişi silebilir")
    await CalendarEvent.find(CalendarEvent.parent_event_id == str(event.id)).delete()
    await event.delete()
    await _notify_attendees(event, "silindi")
    return Response(status_code=204)


@router.post("/events/{event_id}/respond")
async def respond_to_event(event_id: str, data: EventRespond, user: CurrentUser):
    oid = safe_object_id(event_id)
    event = await CalendarEvent.get(oid) if oid else None
    attendee = event.attendee(user.username) if event else None
    if not attendee:
        raise HTTPException(status_code=404, detail="Etkinlik bulunamadı veya katılımcı değilsiniz")
    attendee.response = data.response
    event.updated_at = datetime.utcnow()
    await event.save()
    await notify(
        [event.created_by],
        "Etkinlik yanıtı",
        f"{user.full_name}, '{event.title}' etkinliğine yanıt verdi: {data.response.value}",
        priority=Priority.LOW,
        sender_id=user.username,
        action_url=f"/calendar/event/{event.id}",
    )
    return {"success": True, "response": data.response.value}


@router.get("/stats")
async def calendar_stats(user: CurrentUser):
    events = await CalendarEvent.find(await _visible_events_query(user)).to_list()
    now = datetime.utcnow()
    return {
        "total_events": len(events),
        "upcoming_events": sum(1 for e in events if e.start_date >= now),
        "events_this_month": sum(
            1 for e in events if (e.start_date.year, e.start_date.month) == (now.year, now.month)
        ),
        "type_distribution": dict(Counter(e.type.value for e in events)),
        "priority_distribution": dict(Counter(e.priority.value for e in events)),
    }


@router.post("/reminders/process")
async def process_reminders(admin: AdminOnly):
    now = datetime.utcnow()
    events = await CalendarEvent.find(
        {"reminders.sent": False, "start_date": {"$gt": now, "$lte": now + REMINDER_HORIZON}}
    ).to_list()
    processed = 0
    sent = 0
    for event in events:
        due = [r for r in event.reminders if not r.sent and event.start_date - timedelta(minutes=r.minutes_before) <= now]
        if not due:
            continue
        recipients = [a.user_id for a in event.attendees if a.response != AttendeeResponse.DECLINED]
        for reminder in due:
            sent += await notify(
                recipients,
                f"Hatırlatma: {event.title}",
                f"{event.title} etkinliği {reminder.minutes_before} dakika sonra başlayacak.",
                type=NotificationType.REMINDER,
                sender_id=event.created_by,
                action_url=f"/calendar/event/{event.id}",
            )
            reminder.sent = True
            processed += 1
        await event.save()
    logger.info("Processed %d calendar reminders", processed)
    return {"processed": processed, "notifications": sent}


def _ics_text(value: str) -> str:
    return value.replace("\\", "\\\\").replace(";", "\\;").replace(",", "\\,").replace("\n", "\\n")


def _ics_time(value: datetime) -> str:
    return value.strftime("%Y%m%dT%H%M%SZ")


def _to_ics(cal: Calendar, events: list[CalendarEvent]) -> str:
    lines = ["BEGIN:VCALENDAR", "VERSION:2.0", "PRODID:-//Okul SMS//Takvim//TR", f"X-WR-CALNAME:{_ics_text(cal.name)}"]
    stamp = _ics_time(datetime.utcnow())
    for e in events:
        lines += [
            "BEGIN:VEVENT",
            f"UID:{e.id}@okul-sms",
            f"DTSTAMP:{stamp}",
            f"DTSTART:{_ics_time(e.start_date)}",
            f"DTEND:{_ics_time(e.end_date)}",
            f"SUMMARY:{_ics_text(e.title)}",
        ]
        if e.location:
            lines.append(f"LOCATION:{_ics_text(e.location)}")
        if e.description:
            lines.append(f"DESCRIPTION:{_ics_text(e.description)}")
        lines.append("END:VEVENT")
    lines.append("END:VCALENDAR")
    return "\r\n".join(lines) + "\r\n"


@router.get("/export/{calendar_id}")
async def export_calendar(calendar_id: str, user: CurrentUser, format: str = Query("json", pattern="^(json|ics|csv)$")):
    cal = await _get_calendar(calendar_id, user)
    events = await CalendarEvent.find(CalendarEvent.calendar_id == str(cal.id)).sort("start_date").to_list()
    stamp = datetime.utcnow().strftime("%Y%m%d")

    if format == "ics":
        return Response(
            content=_to_ics(cal, events),
            media_type="text/calendar",
            headers={"Content-Disposition": f"attachment; filename=takvim_{stamp}.ics"},
        )
    if format == "csv":
        rows = []
        for e in events:
            data = serialize_event(e)
            rows.append({label: data[key] for key, label in EXPORT_COLUMNS.items()})
        stream = io.StringIO()
        pd.DataFrame(rows, columns=list(EXPORT_COLUMNS.values())).to_csv(stream, index=False)
        return StreamingResponse(
            iter([stream.getvalue()]),
            media_type="text/csv",
            headers={"Content-Disposition": f"attachment; filename=takvim_{stamp}.csv"},
        )
    return {
        "calendar": serialize_calendar(cal),
        "events": [serialize_event(e) for e in events],
        "exported_at": datetime.utcnow(),
        "format": format,
    }


@router.post("/import/{calendar_id}")
async def import_events(calendar_id: str, data: EventImport, user: CurrentUser):
    cal = await _get_calendar(calendar_id, user, SharePermission.WRITE)
    imported = 0
    for item in data.events:
        try:
            parsed = EventCreate.model_validate({**item, "calendar_id": str(cal.id)})
        except ValidationError as e:
            logger.info("Skipped calendar import row: %s", e.errors()[0]["msg"])
            continue
        event = CalendarEvent(
            **parsed.model_dump(exclude={"calendar_id"}), calendar_id=str(cal.id), created_by=user.username
        )
        await event.insert()
        imported += 1
    return {
        "message": f"{imported} etkinlik içe aktarıldı",
        "imported_events": imported,
        "total_events": len(data.events),
    }
