from datetime import datetime, timedelta

import pytest
from beanie import PydanticObjectId

from app.models.club import Club, InviteLink
from app.models.notification import Notification
from app.models.user import UserRole
from tests.conftest import auth, create_user


@pytest.fixture
async def club(client, teacher):
    resp = await client.post(
        "/api/v1/clubs/",
        json={"name": "Robotik Kulübü", "description": "Arduino ve robot yarışmaları"},
        headers=auth(teacher),
    )
    assert resp.status_code == 201
    return resp.json()


async def test_creator_becomes_head_president(club, teacher):
    assert club["president_id"] == teacher.username
    assert club["roles"] == {teacher.username: "Ana Başkan"}
    assert club["members"] == [teacher.username]


async def test_students_cannot_create_clubs(client, student):
    resp = await client.post("/api/v1/clubs/", json={"name": "Satranç"}, headers=auth(student))
    assert resp.status_code == 403


async def test_list_and_get(client, club, student):
    resp = await client.get("/api/v1/clubs/", headers=auth(student))
    assert [c["name"] for c in resp.json()] == ["Robotik Kulübü"]
    resp = await client.get(f"/api/v1/clubs/{club['id']}", headers=auth(student))
    assert resp.json()["events"] == []
    assert (await client.get("/api/v1/clubs/nope", headers=auth(student))).status_code == 404


async def test_join_request_flow(client, club, teacher, student):
    url = f"/api/v1/clubs/{club['id']}/requests"
    resp = await client.post(url, json={"message": "Katılmak istiyorum"}, headers=auth(student))
    assert resp.status_code == 201
    request_id = resp.json()["id"]

    assert (await client.post(url, json={}, headers=auth(student))).status_code == 400
    assert (await client.get(url, headers=auth(student))).status_code == 403
    assert len((await client.get(url, headers=auth(teacher))).json()) == 1

    resp = await client.post(f"{url}/{request_id}/accept", headers=auth(student))
    assert resp.status_code == 403
    resp = await client.post(f"{url}/{request_id}/accept", headers=auth(teacher))
    assert resp.status_code == 200
    assert resp.json()["roles"][student.username] == "Üye"

    assert (await client.post(url, json={}, headers=auth(student))).status_code == 400
    assert await Notification.find(Notification.user_id == student.username).count() == 1

    resp = await client.get(f"/api/v1/clubs/user/{student.username}", headers=auth(student))
    assert [c["id"] for c in resp.json()] == [club["id"]]


async def test_member_roles(client, club, teacher, student):
    doc = await Club.get(PydanticObjectId(club["id"]))
    doc.add_member(student.username)
    await doc.save()
    base = f"/api/v1/clubs/{club['id']}"

    resp = await client.put(f"{base}/members/{student.username}/role", json={"role": "Başkan"}, headers=auth(teacher))
    assert resp.json()["roles"][student.username] == "Başkan"
    resp = await client.put(f"{base}/members/yok/role", json={"role": "Üye"}, headers=auth(teacher))
    assert resp.status_code == 404

    # now a leader, the student can edit the club
    resp = await client.put(base, json={"description": "Yeni açıklama"}, headers=auth(student))
    assert resp.status_code == 200

    resp = await client.patch(f"{base}/roles", json={"roles": {"yabanci": "Üye"}}, headers=auth(teacher))
    assert resp.status_code == 400

    resp = await client.delete(f"{base}/members/{student.username}", headers=auth(teacher))
    assert student.username not in resp.json()["members"]


async def test_events_and_attendance(client, club, teacher, student):
    base = f"/api/v1/clubs/{club['id']}/events"
    starts = (datetime.utcnow() + timedelta(days=2)).isoformat()
    resp = await client.post(base, json={"title": "Robot yarışı", "starts_at": starts}, headers=auth(teacher))
    assert resp.status_code == 201
    event_id = resp.json()["id"]

    assert (await client.post(f"{base}/{event_id}/join", headers=auth(student))).status_code == 403

    doc = await Club.get(PydanticObjectId(club["id"]))
    doc.add_member(student.username)
    await doc.save()
    resp = await client.post(f"{base}/{event_id}/join", headers=auth(student))
    assert resp.json()["attendees"] == [student.username]
    resp = await client.post(f"{base}/{event_id}/leave", headers=auth(student))
    assert resp.json()["attendees"] == []

    resp = await client.delete(f"{base}/{event_id}", headers=auth(teacher))
    assert resp.status_code == 200
    assert (await client.get(base, headers=auth(student))).json() == []


async def test_chat(client, club, teacher, student):
    base = f"/api/v1/clubs/{club['id']}/chats"
    assert (await client.post(base, json={"text": "Merhaba"}, headers=auth(student))).status_code == 403

    resp = await client.post(base, json={"text": "Toplantı yarın"}, headers=auth(teacher))
    message_id = resp.json()["id"]
    resp = await client.post(base, json={"text": "x" * 1001}, headers=auth(teacher))
    assert resp.status_code == 400

    resp = await client.delete(f"{base}/{message_id}", headers=auth(teacher))
    assert resp.json()["is_deleted"] is True
    messages = (await client.get(base, headers=auth(teacher))).json()
    assert messages[0]["is_deleted"] is True


async def test_club_announcements_and_comments(client, club, teacher, student):
    doc = await Club.get(PydanticObjectId(club["id"]))
    doc.add_member(student.username)
    await doc.save()
    base = f"/api/v1/clubs/{club['id']}/announcements"

    resp = await client.post(base, json={"title": "Toplantı", "content": "Salı 15.30"}, headers=auth(teacher))
    assert resp.status_code == 201
    announcement_id = resp.json()["id"]
    assert (await client.post(base, json={"title": "Deneme", "content": "x"}, headers=auth(student))).status_code == 403

    resp = await client.post(f"{base}/{announcement_id}/comments", json={"text": "Geleceğim"}, headers=auth(student))
    assert resp.status_code == 201
    listed = (await client.get(base, headers=auth(student))).json()
    assert listed[0]["comments"][0]["text"] == "Geleceğim"


async def test_invite_links(client, club, teacher, student):
    base = f"/api/v1/clubs/{club['id']}/invite-links"
    resp = await client.post(base, json={"one_time": True}, headers=auth(teacher))
    code = resp.json()["code"]
    assert len(code) == 6 and code == code.upper()

    resp = await client.post(f"/api/v1/clubs/join-by-link/{code}", headers=auth(student))
    assert resp.status_code == 200
    assert student.username in resp.json()["members"]

    other = await create_user("ikinci.ogrenci", UserRole.STUDENT)
    resp = await client.post(f"/api/v1/clubs/join-by-link/{code}", headers=auth(other))
    assert resp.status_code == 400

    assert (await client.post("/api/v1/clubs/join-by-link/ZZZZZZ", headers=auth(other))).status_code == 404


async def test_expired_invite_link(client, club, student, teacher):
    doc = await Club.get(PydanticObjectId(club["id"]))
    doc.invite_links.append(
        InviteLink(code="EXP123", created_by=teacher.username, expires_at=datetime.utcnow() - timedelta(hours=1))
    )
    await doc.save()
    resp = await client.post("/api/v1/clubs/join-by-link/EXP123", headers=auth(student))
    assert resp.status_code == 400


async def test_join_by_link_when_already_member(client, club, teacher):
    code = (await client.post(f"/api/v1/clubs/{club['id']}/invite-links", json={}, headers=auth(teacher))).json()["code"]
    resp = await client.post(f"/api/v1/clubs/join-by-link/{code}", headers=auth(teacher))
    assert resp.status_code == 400


async def test_direct_invite(client, club, teacher, student):
    url = f"/api/v1/clubs/{club['id']}/invite"
    resp = await client.post(url, json={"user_id": student.username}, headers=auth(teacher))
    assert resp.status_code == 201
    request_id = resp.json()["id"]
    assert await Notification.find(Notification.user_id == student.username).count() == 1

    invites = (await client.get("/api/v1/clubs/invites/me", headers=auth(student))).json()
    assert [i["request_id"] for i in invites] == [request_id]

    resp = await client.post(f"/api/v1/clubs/{club['id']}/requests/{request_id}/accept", headers=auth(student))
    assert resp.status_code == 200

    resp = await client.post(url, json={"user_id": student.username}, headers=auth(teacher))
    assert resp.status_code == 400
    assert resp.json()["detail"] == "Kullanıcı zaten üye"


async def test_delete_club_admin_only(client, club, teacher, admin):
    assert (await client.delete(f"/api/v1/clubs/{club['id']}", headers=auth(teacher))).status_code == 403
    assert (await client.delete(f"/api/v1/clubs/{club['id']}", headers=auth(admin))).status_code == 200
    assert (await client.get(f"/api/v1/clubs/{club['id']}", headers=auth(admin))).status_code == 404
