import os
import tempfile

# Settings are read at import time.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("BCRYPT_ROUNDS", "10")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("REDIS_ENABLED", "false")
os.environ.setdefault("SMTP_HOST", "")
os.environ.setdefault("S3_BUCKET_UPLOADS", "")
os.environ.setdefault("UPLOAD_DIR", tempfile.mkdtemp(prefix="okul-sms-uploads-"))

import pytest
from httpx import ASGITransport, AsyncClient
from mongomock_motor import AsyncMongoMockClient

from app.api.deps import create_access_token, get_password_hash
from app.db import db_startup
from app.main import app
from app.models.user import User, UserRole

PASSWORD = "secret123"
_HASHED = {}


def _hash(password: str) -> str:
    # bcrypt is slow on purpose; hash each test password once per run
    if password not in _HASHED:
        _HASHED[password] = get_password_hash(password)
    return _HASHED[password]


@pytest.fixture(autouse=True)
async def db():
    await db_startup(AsyncMongoMockClient())
    yield


@pytest.fixture
async def client():
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c


async def create_user(username: str, role: UserRole, password: str = PASSWORD, **fields) -> User:
    fields.setdefault("full_name", username.replace("_", " ").title())
    user = User(username=username, role=role, hashed_password=_hash(password), **fields)
    await user.insert()
    return user


def auth(user: User) -> dict:
    return {"Authorization": f"Bearer {create_access_token(user)}"}


@pytest.fixture
async def admin():
    return await create_user("admin", UserRole.ADMIN, full_name="Sistem Yöneticisi")


@pytest.fixture
async def teacher():
    return await create_user("ayse.ogretmen", UserRole.TEACHER, full_name="Ayşe Yılmaz")


@pytest.fixture
async def student():
    return await create_user(
        "ali.ogrenci",
        UserRole.STUDENT,
        full_name="Ali Demir",
        grade_level="10",
        section="A",
        room="101",
        boarding=True,
    )


@pytest.fixture
async def parent(student):
    parent = await create_user("veli.demir", UserRole.PARENT, full_name="Mehmet Demir", child_ids=[student.username])
    student.parent_ids = [parent.username]
    await student.save()
    return parent


@pytest.fixture
async def hizmetli():
    return await create_user("hizmetli1", UserRole.HIZMETLI, full_name="Hasan Kaya")
