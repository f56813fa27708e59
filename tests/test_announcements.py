from datetime import datetime, timedelta

from app.models.announcement import Announcement
from app.models.notification import Notification
from app.models.user import UserRole
from tests.conftest import auth, create_user

VALID = {"title": "Veli toplantısı", "content": "Cuma günü saat 14.00 da konferans salonunda veli toplantısı yapılacaktır."}


async def test_create_announcement_notifies_users(client, teacher, student, parent, admin):
    resp = await client.post("/api/v1/announcements/", json=VALID, headers=auth(teacher))
    assert resp.status_code == 201
    data = resp.json()
    assert data["author"] == teacher.full_name
    assert data["author_id"] == teacher.username

    recipients = sorted(n.user_id for n in await Notification.find_all().to_list())
    assert recipients == sorted([student.username, parent.username])


async def test_create_announcement_validation(client, teacher):
    resp = await client.post("/api/v1/announcements/", json={"title": "  ", "content": ""}, headers=auth(teacher))
    assert resp.status_code == 400
    assert resp.json()["detail"] == "Başlık ve içerik gerekli"

    resp = await client.post("/api/v1/announcements/", json={**VALID, "title": "Not"}, headers=auth(teacher))
    assert resp.status_code == 400
    resp = await client.post("/api/v1/announcements/", json={**VALID, "content": "Kısa"}, headers=auth(teacher))
    assert resp.status_code == 400


async def test_students_cannot_post(client, student):
    resp = await client.post("/api/v1/announcements/", json=VALID, headers=auth(student))
    assert resp.status_code == 403


async def test_list_sorted_newest_first_with_limit(client, teacher, student):
    now = datetime.utcnow()
    for i in range(3):
        await Announcement(
            title=f"Duyuru {i + 1}", content=VALID["content"], date=now + timedelta(minutes=i)
        ).insert()

    resp = await client.get("/api/v1/announcements/", params={"limit": 2}, headers=auth(student))
    assert resp.status_code == 200
    assert [a["title"] for a in resp.json()] == ["Duyuru 3", "Duyuru 2"]


async def test_update_by_author_or_admin(client, teacher, admin):
    other = await create_user("fatma.ogretmen", UserRole.TEACHER)
    created = (await client.post("/api/v1/announcements/", json=VALID, headers=auth(teacher))).json()

    resp = await client.put(
        f"/api/v1/announcements/{created['id']}", json={"title": "Güncel başlık"}, headers=auth(other)
    )
    assert resp.status_code == 403
    resp = await client.put(
        f"/api/v1/announcements/{created['id']}", json={"title": "Güncel başlık"}, headers=auth(admin)
    )
    assert resp.json()["title"] == "Güncel başlık"


async def test_delete_announcement(client, teacher):
    created = (await client.post("/api/v1/announcements/", json=VALID, headers=auth(teacher))).json()
    resp = await client.delete(f"/api/v1/announcements/{created['id']}", headers=auth(teacher))
    assert resp.json() == {"success": True, "message": "Duyuru silindi"}
    resp = await client.get(f"/api/v1/announcements/{created['id']}", headers=auth(teacher))
    assert resp.status_code == 404
