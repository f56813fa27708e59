import io
from datetime import datetime

import pandas as pd
import pytest

from app.models.note import Note, NoteSource, compute_average, current_academic_year
from app.models.user import UserRole
from tests.conftest import auth, create_user


def _note(student, **fields):
    return {
        "student_id": student.username,
        "student_name": student.full_name,
        "lesson": "Matematik",
        "semester": "1",
        "academic_year": "2024-2025",
        **fields,
    }


@pytest.mark.parametrize(
    "values, expected",
    [([80, 90, None], 85.0), ([70, 75, 77], 74.0), ([None, None], None), ([33, 34], 33.5)],
)
def test_compute_average(values, expected):
    assert compute_average(values) == expected


def test_current_academic_year_starts_in_september():
    assert current_academic_year(datetime(2024, 9, 1)) == "2024-2025"
    assert current_academic_year(datetime(2025, 3, 15)) == "2024-2025"


async def test_create_note_computes_average(client, teacher, student):
    resp = await client.post("/api/v1/notes/", json=_note(student, exam1=80, exam2=91), headers=auth(teacher))
    assert resp.status_code == 201
    data = resp.json()
    assert data["average"] == 85.5
    assert data["source"] == "manual"
    assert data["teacher_name"] == teacher.full_name


async def test_supplied_average_kept_without_grades(client, teacher, student):
    resp = await client.post("/api/v1/notes/", json=_note(student, average=72), headers=auth(teacher))
    assert resp.json()["average"] == 72


async def test_create_note_rejects_bad_scores(client, teacher, student):
    resp = await client.post("/api/v1/notes/", json=_note(student, exam1=101), headers=auth(teacher))
    assert resp.status_code == 400
    resp = await client.post("/api/v1/notes/", json=_note(student, lesson="Astroloji"), headers=auth(teacher))
    assert resp.status_code == 400


async def test_students_cannot_write_notes(client, student):
    resp = await client.post("/api/v1/notes/", json=_note(student, exam1=100), headers=auth(student))
    assert resp.status_code == 403


async def test_note_visibility(client, teacher, student, parent):
    other = await create_user("diger", UserRole.STUDENT)
    await client.post("/api/v1/notes/", json=_note(student, exam1=60), headers=auth(teacher))
    await client.post("/api/v1/notes/", json=_note(other, exam1=90), headers=auth(teacher))

    resp = await client.get("/api/v1/notes/", headers=auth(student))
    assert [n["student_id"] for n in resp.json()] == [student.username]
    resp = await client.get("/api/v1/notes/", headers=auth(parent))
    assert [n["student_id"] for n in resp.json()] == [student.username]
    resp = await client.get("/api/v1/notes/", headers=auth(teacher))
    assert len(resp.json()) == 2

    resp = await client.get(f"/api/v1/notes/student/{other.username}", headers=auth(student))
    assert resp.status_code == 403
    resp = await client.get(f"/api/v1/notes/student/{student.username}", headers=auth(parent))
    assert resp.status_code == 200


async def test_update_and_delete_note(client, teacher, student):
    created = (await client.post("/api/v1/notes/", json=_note(student, exam1=50), headers=auth(teacher))).json()

    resp = await client.put(f"/api/v1/notes/{created['id']}", json={"exam2": 70}, headers=auth(teacher))
    assert resp.status_code == 200
    assert resp.json()["average"] == 60

    resp = await client.delete(f"/api/v1/notes/{created['id']}", headers=auth(teacher))
    assert resp.json() == {"success": True, "message": "Not silindi"}
    assert (await client.get("/api/v1/notes/", headers=auth(teacher))).json() == []
    assert (await client.put(f"/api/v1/notes/{created['id']}", json={}, headers=auth(teacher))).status_code == 404


async def test_update_rejects_null_required_fields(client, teacher, student):
    created = (await client.post("/api/v1/notes/", json=_note(student, exam1=50), headers=auth(teacher))).json()

    resp = await client.put(
        f"/api/v1/notes/{created['id']}", json={"lesson": None, "student_name": None}, headers=auth(teacher)
    )
    assert resp.status_code == 400

    resp = await client.get(f"/api/v1/notes/student/{student.username}", headers=auth(teacher))
    assert resp.status_code == 200
    assert resp.json()[0]["lesson"] == "Matematik"

    resp = await client.put(f"/api/v1/notes/{created['id']}", json={"exam1": None, "exam2": 90}, headers=auth(teacher))
    assert resp.status_code == 200
    assert resp.json()["exam1"] is None
    assert resp.json()["average"] == 90


async def test_bulk_update(client, teacher, student):
    created = (await client.post("/api/v1/notes/", json=_note(student, exam1=50), headers=auth(teacher))).json()
    resp = await client.put(
        "/api/v1/notes/bulk-update",
        json={"updates": [{"id": created["id"], "exam1": 100}, {"id": "000000000000000000000000", "exam1": 1}]},
        headers=auth(teacher),
    )
    assert resp.status_code == 200
    assert resp.json() == {"updated": 1, "not_found": ["000000000000000000000000"]}


async def test_stats_groups_by_lesson(client, teacher, student, admin):
    for score in (40, 60, 80):
        await client.post("/api/v1/notes/", json=_note(student, exam1=score), headers=auth(teacher))
    await client.post("/api/v1/notes/", json=_note(student, lesson="Fizik", exam1=90), headers=auth(teacher))

    resp = await client.get("/api/v1/notes/stats", headers=auth(admin))
    data = resp.json()
    assert data["total"] == 4
    math = next(g for g in data["groups"] if g["lesson"] == "Matematik")
    assert math == {
        "lesson": "Matematik",
        "semester": "1",
        "academic_year": "2024-2025",
        "count": 3,
        "average": 60.0,
        "min": 40.0,
        "max": 80.0,
    }


async def test_templates_and_search(client, teacher, student):
    await client.post("/api/v1/notes/", json=_note(student, lesson="Kimya", exam1=70), headers=auth(teacher))

    resp = await client.get("/api/v1/notes/templates", headers=auth(student))
    assert resp.json()["lessons_in_use"] == ["Kimya"]
    assert len(resp.json()["subjects"]) == 14

    resp = await client.get("/api/v1/notes/search", params={"q": "ali"}, headers=auth(teacher))
    assert len(resp.json()) == 1
    resp = await client.get("/api/v1/notes/search", params={"q": "zzz"}, headers=auth(teacher))
    assert resp.json() == []


async def test_import_csv_upserts(client, teacher, student):
    await client.post("/api/v1/notes/", json=_note(student, exam1=10), headers=auth(teacher))
    csv = (
        "student_id,student_name,lesson,exam1,exam2,semester,academic_year\n"
        f"{student.username},Ali Demir,Matematik,90,80,1,2024-2025\n"
        "s-200,Ece Kara,Fizik,70,,1,2024-2025\n"
        "s-201,Can Er,Astroloji,70,,1,2024-2025\n"
    )
    resp = await client.post(
        "/api/v1/notes/import",
        files={"file": ("notlar.csv", csv.encode("utf-8"), "text/csv")},
        headers=auth(teacher),
    )
    assert resp.status_code == 200
    data = resp.json()
    assert data["imported"] == 1
    assert data["updated"] == 1
    assert [e["row"] for e in data["errors"]] == [4]

    note = await Note.find_one({"student_id": student.username, "lesson": "Matematik"})
    assert note.exam1 == 90
    assert note.average == 85
    assert note.source == NoteSource.IMPORTED


async def test_import_rejects_missing_columns(client, teacher):
    resp = await client.post(
        "/api/v1/notes/import",
        files={"file": ("notlar.csv", b"student_id,exam1\n1,50\n", "text/csv")},
        headers=auth(teacher),
    )
    assert resp.status_code == 400


async def test_export_xlsx(client, teacher, student):
    await client.post("/api/v1/notes/", json=_note(student, exam1=75), headers=auth(teacher))
    resp = await client.get("/api/v1/notes/export", params={"format": "xlsx"}, headers=auth(teacher))
    assert resp.status_code == 200
    df = pd.read_excel(io.BytesIO(resp.content))
    assert df.loc[0, "Ortalama"] == 75
    assert df.loc[0, "Ders"] == "Matematik"


async def test_export_without_matches(client, teacher):
    resp = await client.get("/api/v1/notes/export", params={"format": "csv"}, headers=auth(teacher))
    assert resp.status_code == 404


async def test_backup_requires_semester_and_year(client, admin, teacher, student):
    resp = await client.post("/api/v1/notes/backup", json={"semester": "1"}, headers=auth(admin))
    assert resp.status_code == 400
    assert resp.json()["detail"] == "Dönem ve eğitim yılı gerekli"

    await client.post("/api/v1/notes/", json=_note(student, exam1=75), headers=auth(teacher))
    resp = await client.post(
        "/api/v1/notes/backup", json={"semester": "1", "academic_year": "2024-2025"}, headers=auth(admin)
    )
    assert resp.json()["count"] == 1
