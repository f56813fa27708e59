from datetime import datetime, timedelta

import pytest
from beanie import PydanticObjectId

from app.models.calendar import CalendarEvent
from app.models.notification import Notification
from tests.conftest import auth

BASE = "/api/v1/calendar"


async def _calendar(client, user, **fields):
    resp = await client.post(f"{BASE}/calendars", json={"name": "Ders Takvimi", **fields}, headers=auth(user))
    assert resp.status_code == 201
    return resp.json()


def _event(calendar_id, start="2030-03-11T09:00:00", end="2030-03-11T10:00:00", **fields):
    return {"calendar_id": calendar_id, "title": "Matematik Sınavı", "start_date": start, "end_date": end, **fields}


async def test_create_and_list_calendars(client, teacher, student):
    own = await _calendar(client, teacher, is_default=True)
    assert own["owner_id"] == teacher.username
    assert own["settings"]["default_view"] == "month"
    await _calendar(client, teacher, name="Okul Etkinlikleri", is_public=True)

    resp = await client.get(f"{BASE}/calendars", headers=auth(student))
    assert [c["name"] for c in resp.json()] == ["Okul Etkinlikleri"]

    resp = await client.get(f"{BASE}/calendars/{own['id']}", headers=auth(student))
    assert resp.status_code == 404


async def test_only_one_default_calendar(client, teacher):
    first = await _calendar(client, teacher, is_default=True)
    second = await _calendar(client, teacher, name="Kişisel", is_default=True)
    calendars = {c["id"]: c for c in (await client.get(f"{BASE}/calendars", headers=auth(teacher))).json()}
    assert calendars[first["id"]]["is_default"] is False
    assert calendars[second["id"]]["is_default"] is True

    resp = await client.put(f"{BASE}/calendars/{second['id']}", json={"is_default": True}, headers=auth(teacher))
    assert resp.json()["is_default"] is True
    resp = await client.put(f"{BASE}/calendars/{second['id']}", json={"name": None}, headers=auth(teacher))
    assert resp.status_code == 400


async def test_share_grants_write_access(client, teacher, admin, student):
    cal = await _calendar(client, admin)
    resp = await client.post(
        f"{BASE}/events", json=_event(cal["id"]), headers=auth(teacher)
    )
    assert resp.status_code == 404

    resp = await client.post(
        f"{BASE}/calendars/{cal['id']}/share",
        json={"user_id": teacher.username, "permission": "write"},
        headers=auth(admin),
    )
    assert resp.status_code == 200
    assert resp.json()["shared_with"][0]["permission"] == "write"
    assert await Notification.find(Notification.user_id == teacher.username).count() == 1

    resp = await client.post(f"{BASE}/events", json=_event(cal["id"]), headers=auth(teacher))
    assert resp.status_code == 201

    await client.post(
        f"{BASE}/calendars/{cal['id']}/share",
        json={"user_id": student.username, "permission": "read"},
        headers=auth(admin),
    )
    resp = await client.post(
        f"{BASE}/events", json=_event(cal["id"], start="2030-03-12T09:00:00", end="2030-03-12T10:00:00"),
        headers=auth(student),
    )
    assert resp.status_code == 403
    resp = await client.post(
        f"{BASE}/calendars/{cal['id']}/share", json={"user_id": admin.username}, headers=auth(admin)
    )
    assert resp.status_code == 400


async def test_event_conflicts(client, teacher):
    cal = await _calendar(client, teacher)
    first = (await client.post(f"{BASE}/events", json=_event(cal["id"]), headers=auth(teacher))).json()

    overlap = _event(cal["id"], start="2030-03-11T09:30:00", end="2030-03-11T11:00:00")
    resp = await client.post(f"{BASE}/events", json=overlap, headers=auth(teacher))
    assert resp.status_code == 400
    assert resp.json()["detail"] == "Etkinlik mevcut etkinliklerle çakışıyor"

    back_to_back = _event(cal["id"], start="2030-03-11T10:00:00", end="2030-03-11T11:00:00")
    assert (await client.post(f"{BASE}/events", json=back_to_back, headers=auth(teacher))).status_code == 201

    await client.put(f"{BASE}/events/{first['id']}", json={"status": "cancelled"}, headers=auth(teacher))
    assert (await client.post(f"{BASE}/events", json=overlap, headers=auth(teacher))).status_code == 400
    moved = _event(cal["id"], start="2030-03-11T08:00:00", end="2030-03-11T09:30:00")
    assert (await client.post(f"{BASE}/events", json=moved, headers=auth(teacher))).status_code == 201


async def test_event_date_validation(client, teacher):
    cal = await _calendar(client, teacher)
    resp = await client.post(
        f"{BASE}/events", json=_event(cal["id"], end="2030-03-11T08:00:00"), headers=auth(teacher)
    )
    assert resp.status_code == 400
    resp = await client.post(f"{BASE}/events", json=_event(cal["id"], is_recurring=True), headers=auth(teacher))
    assert resp.status_code == 400

    event = (await client.post(f"{BASE}/events", json=_event(cal["id"]), headers=auth(teacher))).json()
    resp = await client.put(
        f"{BASE}/events/{event['id']}", json={"end_date": "2030-03-10T10:00:00"}, headers=auth(teacher)
    )
    assert resp.status_code == 400
    resp = await client.put(f"{BASE}/events/{event['id']}", json={"title": None}, headers=auth(teacher))
    assert resp.status_code == 400


async def test_recurring_event_creates_copies(client, teacher):
    cal = await _calendar(client, teacher)
    data = _event(
        cal["id"],
        title="Haftalık Zümre Toplantısı",
        type="meeting",
        is_recurring=True,
        recurring_pattern={"frequency": "weekly", "end_after": 3},
    )
    event = (await client.post(f"{BASE}/events", json=data, headers=auth(teacher))).json()
    copies = await CalendarEvent.find(CalendarEvent.parent_event_id == event["id"]).sort("start_date").to_list()
    assert [c.start_date for c in copies] == [
        datetime(2030, 3, 18, 9),
        datetime(2030, 3, 25, 9),
        datetime(2030, 4, 1, 9),
    ]
    assert all(c.end_date - c.start_date == timedelta(hours=1) for c in copies)

    resp = await client.put(
        f"{BASE}/events/{event['id']}",
        json={"recurring_pattern": {"frequency": "monthly", "end_date": "2030-05-31T00:00:00"}},
        headers=auth(teacher),
    )
    assert resp.status_code == 200
    copies = await CalendarEvent.find(CalendarEvent.parent_event_id == event["id"]).sort("start_date").to_list()
    assert [c.start_date for c in copies] == [datetime(2030, 4, 11, 9), datetime(2030, 5, 11, 9)]

    resp = await client.delete(f"{BASE}/events/{event['id']}", headers=auth(teacher))
    assert resp.status_code == 204
    assert await CalendarEvent.find_all().count() == 0


async def test_attendee_response(client, teacher, student, parent):
    cal = await _calendar(client, teacher)
    data = _event(cal["id"], title="Veli Toplantısı", attendees=[{"user_id": parent.username}])
    event = (await client.post(f"{BASE}/events", json=data, headers=auth(teacher))).json()
    assert await Notification.find(Notification.user_id == parent.username).count() == 1

    resp = await client.get(f"{BASE}/events/{event['id']}", headers=auth(parent))
    assert resp.status_code == 200

    resp = await client.post(
        f"{BASE}/events/{event['id']}/respond", json={"response": "accepted"}, headers=auth(parent)
    )
    assert resp.json() == {"success": True, "response": "accepted"}
    stored = await CalendarEvent.get(PydanticObjectId(event["id"]))
    assert stored.attendee(parent.username).response.value == "accepted"
    assert await Notification.find(Notification.user_id == teacher.username).count() == 1

    resp = await client.post(
        f"{BASE}/events/{event['id']}/respond", json={"response": "accepted"}, headers=auth(student)
    )
    assert resp.status_code == 404
    resp = await client.post(
        f"{BASE}/events/{event['id']}/respond", json={"response": "pending"}, headers=auth(parent)
    )
    assert resp.status_code == 400


async def test_only_creator_or_owner_deletes_event(client, admin, teacher):
    cal = await _calendar(client, admin)
    await client.post(
        f"{BASE}/calendars/{cal['id']}/share",
        json={"user_id": teacher.username, "permission": "write"},
        headers=auth(admin),
    )
    event = (await client.post(f"{BASE}/events", json=_event(cal["id"]), headers=auth(admin))).json()
    resp = await client.delete(f"{BASE}/events/{event['id']}", headers=auth(teacher))
    assert resp.status_code == 403

    own = (
        await client.post(
            f"{BASE}/events",
            json=_event(cal["id"], start="2030-03-12T09:00:00", end="2030-03-12T10:00:00"),
            headers=auth(teacher),
        )
    ).json()
    assert (await client.delete(f"{BASE}/events/{own['id']}", headers=auth(admin))).status_code == 204
    assert (await client.delete(f"{BASE}/events/{event['id']}", headers=auth(admin))).status_code == 204


async def test_list_events_filters(client, teacher):
    cal = await _calendar(client, teacher)
    await client.post(f"{BASE}/events", json=_event(cal["id"], type="exam", location="Lab 2"), headers=auth(teacher))
    await client.post(
        f"{BASE}/events",
        json=_event(cal["id"], title="Gezi", start="2030-04-02T09:00:00", end="2030-04-02T17:00:00"),
        headers=auth(teacher),
    )

    resp = await client.get(f"{BASE}/events", params={"type": "exam"}, headers=auth(teacher))
    assert [e["title"] for e in resp.json()] == ["Matematik Sınavı"]
    resp = await client.get(
        f"{BASE}/events",
        params={"start_date": "2030-04-01T00:00:00", "end_date": "2030-04-30T00:00:00"},
        headers=auth(teacher),
    )
    assert [e["title"] for e in resp.json()] == ["Gezi"]
    resp = await client.get(f"{BASE}/events", params={"search": "lab"}, headers=auth(teacher))
    assert len(resp.json()) == 1


async def test_stats(client, teacher, student):
    cal = await _calendar(client, teacher)
    await client.post(f"{BASE}/events", json=_event(cal["id"], type="exam"), headers=auth(teacher))
    await client.post(
        f"{BASE}/events",
        json=_event(cal["id"], start="2030-03-12T09:00:00", end="2030-03-12T10:00:00", priority="high"),
        headers=auth(teacher),
    )
    resp = await client.get(f"{BASE}/stats", headers=auth(teacher))
    stats = resp.json()
    assert stats["total_events"] == 2
    assert stats["upcoming_events"] == 2
    assert stats["type_distribution"] == {"exam": 1, "activity": 1}
    assert stats["priority_distribution"] == {"medium": 1, "high": 1}

    assert (await client.get(f"{BASE}/stats", headers=auth(student))).json()["total_events"] == 0


async def test_process_reminders(client, admin, teacher, parent):
    cal = await _calendar(client, teacher)
    soon = datetime.utcnow() + timedelta(minutes=10)
    data = _event(
        cal["id"],
        start=soon.isoformat(),
        end=(soon + timedelta(hours=1)).isoformat(),
        reminders=[{"minutes_before": 15}, {"minutes_before": 5}],
        attendees=[{"user_id": parent.username}],
    )
    await client.post(f"{BASE}/events", json=data, headers=auth(teacher))

    assert (await client.post(f"{BASE}/reminders/process", headers=auth(teacher))).status_code == 403
    resp = await client.post(f"{BASE}/reminders/process", headers=auth(admin))
    assert resp.json() == {"processed": 1, "notifications": 1}
    resp = await client.post(f"{BASE}/reminders/process", headers=auth(admin))
    assert resp.json()["processed"] == 0
    reminders = await Notification.find(Notification.user_id == parent.username, Notification.type == "reminder").count()
    assert reminders == 1


@pytest.mark.parametrize(
    ("fmt", "content_type", "marker"),
    [("ics", "text/calendar", "SUMMARY:Matematik Sınavı"), ("csv", "text/csv", "Başlık,Başlangıç")],
)
async def test_export_files(client, teacher, fmt, content_type, marker):
    cal = await _calendar(client, teacher)
    await client.post(f"{BASE}/events", json=_event(cal["id"]), headers=auth(teacher))
    resp = await client.get(f"{BASE}/export/{cal['id']}", params={"format": fmt}, headers=auth(teacher))
    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith(content_type)
    assert resp.headers["content-disposition"].endswith(f".{fmt}")
    assert marker in resp.text


async def test_export_json_and_import(client, teacher):
    cal = await _calendar(client, teacher)
    await client.post(f"{BASE}/events", json=_event(cal["id"]), headers=auth(teacher))
    exported = (await client.get(f"{BASE}/export/{cal['id']}", headers=auth(teacher))).json()
    assert exported["format"] == "json"
    assert exported["events"][0]["title"] == "Matematik Sınavı"

    target = await _calendar(client, teacher, name="Yedek")
    rows = [
        {"title": "Fen Sınavı", "start_date": "2030-05-01T09:00:00", "end_date": "2030-05-01T10:00:00"},
        {"title": "Tarihsiz"},
        {"title": "Ters", "start_date": "2030-05-02T10:00:00", "end_date": "2030-05-02T09:00:00"},
    ]
    resp = await client.post(f"{BASE}/import/{target['id']}", json={"events": rows}, headers=auth(teacher))
    assert resp.json()["imported_events"] == 1
    assert resp.json()["total_events"] == 3
    assert await CalendarEvent.find(CalendarEvent.calendar_id == target["id"]).count() == 1


async def test_delete_calendar_removes_events(client, teacher, student):
    cal = await _calendar(client, teacher)
    await client.post(f"{BASE}/events", json=_event(cal["id"]), headers=auth(teacher))
    assert (await client.delete(f"{BASE}/calendars/{cal['id']}", headers=auth(student))).status_code == 404
    resp = await client.delete(f"{BASE}/calendars/{cal['id']}", headers=auth(teacher))
    assert resp.json()["success"] is True
    assert await CalendarEvent.find_all().count() == 0
