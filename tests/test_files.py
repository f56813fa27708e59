import hashlib

import pytest

from app.models.file import Folder, StoredFile
from app.models.notification import Notification
from tests.conftest import auth

BASE = "/api/v1/files"
PDF = b"%PDF-1.4\n% ders notlari\n"


async def _upload(client, user, name="notlar.pdf", content=PDF, **form):
    return await client.post(
        f"{BASE}/upload",
        data=form,
        files={"file": (name, content, "application/pdf")},
        headers=auth(user),
    )


async def _folder(client, user, name="Ders Notları", **fields):
    return await client.post(f"{BASE}/folders", json={"name": name, **fields}, headers=auth(user))


async def test_upload_and_download(client, teacher):
    resp = await _upload(client, teacher, tags="matematik, 10A", description="Türev özeti", category="academic")
    assert resp.status_code == 201
    item = resp.json()
    assert item["type"] == "document"
    assert item["tags"] == ["matematik", "10A"]
    assert item["size"] == len(PDF)
    assert item["checksum"] == hashlib.sha256(PDF).hexdigest()
    assert item["url"].startswith("/uploads/files/")

    resp = await client.get(f"{BASE}/{item['id']}/download", headers=auth(teacher))
    assert resp.status_code == 200
    assert resp.content == PDF
    assert resp.headers["content-disposition"].startswith("attachment;")

    resp = await client.get(f"{BASE}/{item['id']}", headers=auth(teacher))
    assert resp.json()["views"] == 1
    assert resp.json()["downloads"] == 1


async def test_upload_validation(client, teacher):
    assert (await _upload(client, teacher, name="virus.exe")).status_code == 400
    assert (await _upload(client, teacher, content=b"")).status_code == 400


async def test_private_files_are_hidden(client, teacher, student):
    private = (await _upload(client, teacher)).json()
    public = (await _upload(client, teacher, name="duyuru.pdf", is_public="true")).json()
    staff_only = (await _upload(client, teacher, name="zumre.pdf", is_public="true")).json()
    await client.put(f"{BASE}/{staff_only['id']}", json={"allowed_roles": ["teacher"]}, headers=auth(teacher))

    resp = await client.get(f"{BASE}/", headers=auth(student))
    assert [f["id"] for f in resp.json()["data"]] == [public["id"]]
    assert resp.json()["pagination"]["total"] == 1
    assert (await client.get(f"{BASE}/{private['id']}", headers=auth(student))).status_code == 404
    assert (await client.get(f"{BASE}/{staff_only['id']}", headers=auth(student))).status_code == 404

    resp = await client.put(f"{BASE}/{public['id']}", json={"description": "x"}, headers=auth(student))
    assert resp.status_code == 403
    assert (await client.delete(f"{BASE}/{public['id']}", headers=auth(student))).status_code == 403


async def test_share_file(client, teacher, student):
    item = (await _upload(client, teacher)).json()
    resp = await client.post(
        f"{BASE}/{item['id']}/share", json={"user_id": student.username, "permission": "write"}, headers=auth(teacher)
    )
    assert resp.status_code == 200
    assert await Notification.find(Notification.user_id == student.username).count() == 1

    resp = await client.put(f"{BASE}/{item['id']}", json={"description": "Güncel"}, headers=auth(student))
    assert resp.json()["description"] == "Güncel"
    assert (await client.delete(f"{BASE}/{item['id']}", headers=auth(student))).status_code == 403
    resp = await client.put(f"{BASE}/{item['id']}", json={"tags": None}, headers=auth(student))
    assert resp.status_code == 400


async def test_delete_file(client, teacher):
    item = (await _upload(client, teacher)).json()
    resp = await client.delete(f"{BASE}/{item['id']}", headers=auth(teacher))
    assert resp.json()["success"] is True
    assert (await client.get(f"{BASE}/{item['id']}", headers=auth(teacher))).status_code == 404
    assert (await StoredFile.find_one(StoredFile.original_name == "notlar.pdf")).is_active is False


async def test_folders_and_paths(client, teacher):
    root = (await _folder(client, teacher)).json()
    assert root["path"] == "Ders Notları"
    child = (await _folder(client, teacher, name="Matematik", parent_id=root["id"])).json()
    assert child["path"] == "Ders Notları/Matematik"
    await _folder(client, teacher, name="Türev", parent_id=child["id"])

    resp = await _folder(client, teacher, name="Matematik", parent_id=root["id"])
    assert resp.status_code == 400
    assert resp.json()["detail"] == "Bu isimde bir klasör zaten mevcut"
    assert (await _folder(client, teacher, name="a/b")).status_code == 400

    resp = await client.put(f"{BASE}/folders/{child['id']}", json={"name": "Mat"}, headers=auth(teacher))
    assert resp.json()["path"] == "Ders Notları/Mat"
    leaf = await Folder.find_one(Folder.name == "Türev")
    assert leaf.path == "Ders Notları/Mat/Türev"

    tree = (await client.get(f"{BASE}/folders/tree", headers=auth(teacher))).json()
    assert [n["name"] for n in tree] == ["Ders Notları"]
    assert tree[0]["children"][0]["children"][0]["name"] == "Türev"


async def test_upload_into_folder(client, teacher, student):
    folder = (await _folder(client, teacher)).json()
    resp = await _upload(client, student, folder_id=folder["id"])
    assert resp.status_code == 404

    await client.post(
        f"{BASE}/folders/{folder['id']}/share", json={"user_id": student.username}, headers=auth(teacher)
    )
    resp = await _upload(client, student, folder_id=folder["id"])
    assert resp.status_code == 403
    assert resp.json()["detail"] == "Klasöre yazma izniniz yok"

    assert (await _upload(client, teacher, folder_id=folder["id"])).status_code == 201
    content = (await client.get(f"{BASE}/folders/{folder['id']}", headers=auth(teacher))).json()
    assert len(content["files"]) == 1
    assert content["folder"]["id"] == folder["id"]


async def test_delete_folder_must_be_empty(client, teacher):
    folder = (await _folder(client, teacher)).json()
    item = (await _upload(client, teacher, folder_id=folder["id"])).json()
    resp = await client.delete(f"{BASE}/folders/{folder['id']}", headers=auth(teacher))
    assert resp.status_code == 400
    assert resp.json()["detail"] == "Klasör boş değil. Önce içeriğini silin."

    await client.delete(f"{BASE}/{item['id']}", headers=auth(teacher))
    resp = await client.delete(f"{BASE}/folders/{folder['id']}", headers=auth(teacher))
    assert resp.json()["success"] is True
    assert (await client.get(f"{BASE}/folders", headers=auth(teacher))).json() == []


@pytest.mark.parametrize(("kind", "files", "folders"), [("all", 1, 1), ("files", 1, 0), ("folders", 0, 1)])
async def test_search(client, teacher, kind, files, folders):
    await _upload(client, teacher, name="fizik_ozet.pdf")
    await _upload(client, teacher, name="kimya.pdf")
    await _folder(client, teacher, name="Fizik Sınavları")
    resp = await client.get(f"{BASE}/search", params={"q": "fizik", "type": kind}, headers=auth(teacher))
    assert len(resp.json()["files"]) == files
    assert len(resp.json()["folders"]) == folders


async def test_stats(client, teacher):
    await _upload(client, teacher)
    await _upload(client, teacher, name="foto.png", content=b"\x89PNG\r\n")
    await _folder(client, teacher)
    stats = (await client.get(f"{BASE}/stats", headers=auth(teacher))).json()
    assert stats["total_files"] == 2
    assert stats["total_size"] == len(PDF) + 6
    assert stats["total_folders"] == 1
    assert stats["file_types"] == {"document": 1, "image": 1}


async def test_bulk_move_and_delete(client, teacher, student):
    mine = [(await _upload(client, teacher, name=f"{n}.pdf")).json()["id"] for n in ("a", "b")]
    other = (await _upload(client, student)).json()["id"]
    folder = (await _folder(client, teacher)).json()

    resp = await client.post(
        f"{BASE}/bulk/move", json={"ids": [*mine, other], "folder_id": folder["id"]}, headers=auth(teacher)
    )
    assert resp.json() == {"moved": 2, "failed": [other]}
    assert await StoredFile.find(StoredFile.folder_id == folder["id"]).count() == 2

    resp = await client.post(f"{BASE}/bulk/delete", json={"ids": [*mine, other, "bad-id"]}, headers=auth(teacher))
    assert resp.json() == {"deleted": 2, "failed": [other, "bad-id"]}
    assert await StoredFile.find(StoredFile.is_active == True).count() == 1


async def test_root_folder_names_are_per_owner(client, teacher, student):
    assert (await _folder(client, teacher)).status_code == 201
    assert (await _folder(client, student)).status_code == 201
    assert (await _folder(client, student)).status_code == 400
