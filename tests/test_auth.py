from datetime import datetime, timedelta

from jose import jwt

from app.api.deps import ACCESS_TOKEN_TYPE, REFRESH_TOKEN_TYPE, create_refresh_token, decode_token
from app.config import settings
from app.models.user import User, UserRole
from tests.conftest import PASSWORD, auth, create_user


async def _login(client, username, password=PASSWORD):
    return await client.post("/api/v1/auth/login", json={"username": username, "password": password})


async def test_login_returns_token_pair_and_user(client, student):
    resp = await _login(client, student.username)
    assert resp.status_code == 200
    data = resp.json()
    assert data["user"]["username"] == student.username
    assert data["user"]["display_name"] == "Ali Demir (10A)"
    assert data["token_type"] == "bearer"
    assert data["expires_in"] == settings.jwt_access_token_expire_minutes * 60

    access = decode_token(data["access_token"], ACCESS_TOKEN_TYPE)
    assert access["sub"] == student.username
    assert access["role"] == "student"
    assert access["iss"] == settings.jwt_issuer
    refresh = decode_token(data["refresh_token"], REFRESH_TOKEN_TYPE)
    assert refresh["ver"] == 0

    user = await User.find_one(User.username == student.username)
    assert user.login_count == 1
    assert user.last_login is not None


async def test_login_trims_username(client, student):
    resp = await client.post("/api/v1/auth/login", json={"username": f"  {student.username} ", "password": PASSWORD})
    assert resp.status_code == 200


async def test_login_input_validation(client):
    cases = [
        {},
        {"username": "ali"},
        {"username": 123, "password": "x"},
        {"username": "   ", "password": "abc"},
        {"username": "a" * 101, "password": "abc"},
    ]
    for body in cases:
        resp = await client.post("/api/v1/auth/login", json=body)
        assert resp.status_code == 400, body


async def test_login_rejects_wrong_password_and_inactive_user(client, student):
    resp = await _login(client, student.username, "wrong-password")
    assert resp.status_code == 401
    assert resp.json()["detail"] == "Geçersiz kullanıcı adı veya şifre"
    assert resp.json()["category"] == "AUTH"

    student.is_active = False
    await student.save()
    resp = await _login(client, student.username)
    assert resp.status_code == 401


async def test_refresh_rotates_tokens(client, student):
    tokens = (await _login(client, student.username)).json()
    resp = await client.post("/api/v1/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
    assert resp.status_code == 200
    assert set(resp.json()) >= {"access_token", "refresh_token", "expires_in"}


async def test_refresh_requires_token(client):
    resp = await client.post("/api/v1/auth/refresh", json={})
    assert resp.status_code == 400


async def test_refresh_rejects_access_token(client, student):
    tokens = (await _login(client, student.username)).json()
    resp = await client.post("/api/v1/auth/refresh", json={"refresh_token": tokens["access_token"]})
    assert resp.status_code == 401


async def test_logout_revokes_tokens(client, student):
    tokens = (await _login(client, student.username)).json()
    headers = {"Authorization": f"Bearer {tokens['access_token']}"}

    resp = await client.post("/api/v1/auth/logout", headers=headers)
    assert resp.status_code == 200

    resp = await client.post("/api/v1/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
    assert resp.status_code == 401
    assert resp.json()["detail"] == "Token geçersiz kılındı"

    resp = await client.get("/api/v1/auth/me", headers=headers)
    assert resp.status_code == 401


async def test_expired_access_token_is_rejected(client, student):
    now = datetime.utcnow()
    token = jwt.encode(
        {
            "sub": student.username,
            "role": "student",
            "ver": 0,
            "type": "access",
            "iss": settings.jwt_issuer,
            "aud": settings.jwt_audience,
            "iat": now - timedelta(hours=2),
            "exp": now - timedelta(hours=1),
        },
        settings.jwt_secret_key,
        algorithm=settings.jwt_algorithm,
    )
    resp = await client.get("/api/v1/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert resp.status_code == 401


async def test_refresh_token_cannot_be_used_as_access(client, student):
    token = create_refresh_token(student)
    resp = await client.get("/api/v1/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert resp.status_code == 401


async def test_me_requires_auth(client):
    resp = await client.get("/api/v1/auth/me")
    assert resp.status_code == 401
    assert resp.json()["detail"] == "Yetkilendirme gerekli"


async def test_update_me(client, student, teacher):
    teacher.email = "ayse@okul.edu.tr"
    await teacher.save()

    resp = await client.patch("/api/v1/auth/me", json={"full_name": "Ali Can Demir"}, headers=auth(student))
    assert resp.status_code == 200
    assert resp.json()["full_name"] == "Ali Can Demir"

    resp = await client.patch("/api/v1/auth/me", json={"email": "ayse@okul.edu.tr"}, headers=auth(student))
    assert resp.status_code == 400


async def test_permissions_for_role(client, hizmetli):
    resp = await client.get("/api/v1/auth/permissions", headers=auth(hizmetli))
    assert resp.status_code == 200
    items = {i["module"]: i for i in resp.json()["items"]}
    assert items["dormitory"]["delete"] is True
    assert items["notes"]["view"] is False


async def test_register_is_admin_only(client, admin, teacher):
    body = {"username": "yeni.ogrenci", "password": "sifre123", "full_name": "Yeni Öğrenci", "role": "student"}
    resp = await client.post("/api/v1/auth/register", json=body, headers=auth(teacher))
    assert resp.status_code == 403

    resp = await client.post("/api/v1/auth/register", json=body, headers=auth(admin))
    assert resp.status_code == 201
    assert resp.json()["username"] == "yeni.ogrenci"

    resp = await client.post("/api/v1/auth/register", json=body, headers=auth(admin))
    assert resp.status_code == 400


async def test_forgot_and_reset_password(client):
    user = await create_user("zeynep", UserRole.STUDENT, email="zeynep@okul.edu.tr")

    resp = await client.post("/api/v1/auth/forgot-password", json={"email": "zeynep@okul.edu.tr"})
    assert resp.status_code == 200
    unknown = await client.post("/api/v1/auth/forgot-password", json={"email": "yok@okul.edu.tr"})
    assert unknown.json()["message"] == resp.json()["message"]

    user = await User.find_one(User.username == "zeynep")
    assert len(user.reset_token) == 64

    resp = await client.post("/api/v1/auth/reset-password", json={"token": user.reset_token, "new_password": "123"})
    assert resp.status_code == 400

    resp = await client.post(
        "/api/v1/auth/reset-password", json={"token": user.reset_token, "new_password": "yenisifre"}
    )
    assert resp.status_code == 200

    user = await User.find_one(User.username == "zeynep")
    assert user.reset_token is None
    assert user.token_version == 1
    assert (await _login(client, "zeynep", "yenisifre")).status_code == 200


async def test_reset_password_rejects_expired_token(client):
    await create_user(
        "emre",
        UserRole.STUDENT,
        reset_token="abc",
        reset_token_expires=datetime.utcnow() - timedelta(minutes=1),
    )
    resp = await client.post("/api/v1/auth/reset-password", json={"token": "abc", "new_password": "yenisifre"})
    assert resp.status_code == 400


async def test_change_password(client, teacher):
    resp = await client.post(
        "/api/v1/auth/change-password",
        json={"current_password": "wrong", "new_password": "yenisifre"},
        headers=auth(teacher),
    )
    assert resp.status_code == 400
    assert resp.json()["detail"] == "Mevcut şifre yanlış."

    resp = await client.post(
        "/api/v1/auth/change-password",
        json={"current_password": PASSWORD, "new_password": "kisa"},
        headers=auth(teacher),
    )
    assert resp.status_code == 400
    assert resp.json()["detail"] == "Yeni şifre en az 6 karakter olmalı."

    resp = await client.post(
        "/api/v1/auth/change-password",
        json={"current_password": PASSWORD, "new_password": "yenisifre"},
        headers=auth(teacher),
    )
    assert resp.status_code == 200
    assert (await _login(client, teacher.username, "yenisifre")).status_code == 200


async def test_change_password_signs_out_other_sessions(client, teacher):
    old_headers = auth(teacher)
    resp = await client.post(
        "/api/v1/auth/change-password",
        json={"current_password": PASSWORD, "new_password": "yenisifre"},
        headers=old_headers,
    )
    assert resp.status_code == 200
    fresh = resp.json()["access_token"]

    assert (await client.get("/api/v1/auth/me", headers=old_headers)).status_code == 401
    resp = await client.get("/api/v1/auth/me", headers={"Authorization": f"Bearer {fresh}"})
    assert resp.status_code == 200
    assert resp.json()["username"] == teacher.username


async def test_profile_update_rejects_null_name(client, student):
    resp = await client.patch("/api/v1/auth/me", json={"full_name": None}, headers=auth(student))
    assert resp.status_code == 400
    assert (await client.get("/api/v1/auth/me", headers=auth(student))).json()["full_name"] == student.full_name


async def test_email_verification(client, student):
    resp = await client.post(
        "/api/v1/auth/email/send-code", json={"email": "ali@okul.edu.tr"}, headers=auth(student)
    )
    assert resp.status_code == 200
    assert resp.json()["sent"] is False

    user = await User.find_one(User.username == student.username)
    assert len(user.email_verification_code) == 6

    resp = await client.post("/api/v1/auth/email/verify", json={"code": "000000x"}, headers=auth(student))
    assert resp.status_code == 400

    resp = await client.post(
        "/api/v1/auth/email/verify", json={"code": user.email_verification_code}, headers=auth(student)
    )
    assert resp.status_code == 200
    user = await User.find_one(User.username == student.username)
    assert user.email_verified is True
    assert user.email == "ali@okul.edu.tr"


async def test_legacy_prefix_serves_auth(client, student):
    resp = await client.post("/api/auth/login", json={"username": student.username, "password": PASSWORD})
    assert resp.status_code == 200
