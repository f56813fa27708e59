import pytest

from app.config import settings
from app.services.security import detect_threat, sanitize, strip_html
from tests.conftest import auth

VALID = {"title": "Veli toplantısı", "content": "Cuma günü saat 14.00 da konferans salonunda toplantı var."}


@pytest.mark.parametrize(
    "value, expected",
    [
        ("<script>alert(1)</script>", "xss"),
        ('<img src=x onerror=alert(1)>', "xss"),
        ("javascript:alert(1)", "xss"),
        ("1 UNION SELECT password FROM users", "sql"),
        ("admin' OR '1'='1", "sql"),
        ("DROP TABLE users", "sql"),
        ("Yarın saat 10'da seçim yapılacak", None),
        ("Select your club from the list", None),
    ],
)
def test_detect_threat_strings(value, expected):
    assert detect_threat({"text": value}) == expected


def test_detect_threat_nested_and_nosql():
    assert detect_threat({"filter": {"$gt": ""}}) == "nosql"
    assert detect_threat({"items": [{"note": "ok"}, {"note": "<iframe src=x>"}]}) == "xss"


def test_credential_fields_are_exempt():
    body = {"username": "ali", "password": "p'; -- <b>"}
    assert detect_threat(body) is None
    assert sanitize(body) == body


def test_sanitize_strips_tags_recursively():
    assert strip_html("  <b>Merhaba</b> ") == "Merhaba"
    assert sanitize({"a": ["<i>x</i>", 3], "b": {"c": "<p>y</p>"}}) == {"a": ["x", 3], "b": {"c": "y"}}


async def test_xss_body_rejected(client, teacher):
    resp = await client.post(
        "/api/v1/announcements/", json={**VALID, "title": "<script>alert(1)</script>"}, headers=auth(teacher)
    )
    assert resp.status_code == 400
    assert resp.json()["detail"] == "Potential XSS attack detected"


async def test_nosql_operator_rejected(client, teacher):
    resp = await client.post("/api/v1/announcements/", json={**VALID, "author": {"$ne": None}}, headers=auth(teacher))
    assert resp.status_code == 400
    assert resp.json()["detail"] == "Potential NoSQL injection detected"


async def test_sql_in_query_rejected(client, teacher):
    resp = await client.get("/api/v1/users/", params={"q": "x' OR 1=1 --"}, headers=auth(teacher))
    assert resp.status_code == 400


async def test_html_is_stripped_from_json_body(client, teacher):
    resp = await client.post(
        "/api/v1/announcements/", json={**VALID, "title": "<b>Veli toplantısı</b>"}, headers=auth(teacher)
    )
    assert resp.status_code == 201
    assert resp.json()["title"] == "Veli toplantısı"


async def test_security_headers(client):
    resp = await client.get("/health")
    assert resp.headers["x-content-type-options"] == "nosniff"
    assert resp.headers["x-frame-options"] == "DENY"


async def test_oversized_request(client, teacher, monkeypatch):
    monkeypatch.setattr(settings, "max_request_size", 100)
    resp = await client.post(
        "/api/v1/announcements/", json={**VALID, "content": "uzun " * 100}, headers=auth(teacher)
    )
    assert resp.status_code == 413


async def test_html_is_stripped_from_query(client, teacher, student):
    resp = await client.get("/api/v1/users/", params={"role": "<b>student</b>"}, headers=auth(teacher))
    assert resp.status_code == 200
    assert [u["username"] for u in resp.json()["data"]] == [student.username]
