"""User management, parent-child links and role listings."""
import re
from collections import Counter
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, HTTPException, Query
from pydantic import BaseModel

from app.api.deps import AdminOnly, CurrentUser, TeacherOrAdmin, get_password_hash
from app.models.user import User, UserCreate, UserRole, UserUpdate, serialize_user
from app.services.access import get_user_or_404, pagination

router = APIRouter()


class PasswordUpdate(BaseModel):
    password: str


class ParentChildLink(BaseModel):
    parent_id: str
    student_id: str


async def _list_users(
    role: Optional[UserRole],
    grade_level: Optional[str],
    section: Optional[str],
    search: Optional[str],
    page: int,
    limit: int,
    include_inactive: bool = False,
) -> dict:
    query: dict = {}
    if not include_inactive:
        query["is_active"] = True
    if role:
        query["role"] = role.value
    if grade_level:
        query["grade_level"] = grade_level
    if section:
        query["section"] = section.upper()
    if search:
        pattern = re.escape(search.strip())
        query["$or"] = [
            {"full_name": {"$regex": pattern, "$options": "i"}},
            {"username": {"$regex": pattern, "$options": "i"}},
        ]
    total = await User.find(query).count()
    users = await User.find(query).sort("full_name").skip((page - 1) * limit).limit(limit).to_list()
    return {"data": [serialize_user(u) for u in users], "pagination": pagination(page, limit, total)}


@router.get("/")
async def list_users(
    user: TeacherOrAdmin,
    role: Optional[UserRole] = None,
    grade_level: Optional[str] = None,
    section: Optional[str] = None,
    search: Optional[str] = Query(None, max_length=100),
    include_inactive: bool = False,
    page: int = Query(1, ge=1, le=1000),
    limit: int = Query(20, ge=1, le=100),
):
    return await _list_users(role, grade_level, section, search, page, limit, include_inactive)


@router.get("/role/{role}")
async def list_users_by_role(
    role: str,
    user: TeacherOrAdmin,
    grade_level: Optional[str] = None,
    section: Optional[str] = None,
    search: Optional[str] = Query(None, max_length=100),
    page: int = Query(1, ge=1, le=1000),
    limit: int = Query(20, ge=1, le=100),
):
    try:
        role_value = UserRole(role)
    except ValueError:
        raise HTTPException(status_code=400, detail="Geçersiz rol")
    return await _list_users(role_value, grade_level, section, search, page, limit)


@router.get("/stats")
async def user_stats(admin: AdminOnly):
    users = await User.find(User.is_active == True).to_list()
    by_role = Counter(u.role.value for u in users)
    classes = Counter(
        f"{u.grade_level}{u.section}"
        for u in users
        if u.role == UserRole.STUDENT and u.grade_level and u.section
    )
    return {
        "total": len(users),
        "by_role": {role.value: by_role.get(role.value, 0) for role in UserRole},
        "class_distribution": dict(sorted(classes.items())),
        "dormitory_students": sum(1 for u in users if u.role == UserRole.STUDENT and u.boarding),
    }


@router.post("/parent-child-link")
async def link_parent_child(data: ParentChildLink, admin: AdminOnly):
    parent = await get_user_or_404(data.parent_id, "Veli bulunamadı")
    student = await get_user_or_404(data.student_id, "Öğrenci bulunamadı")
    if parent.role != UserRole.PARENT or student.role != UserRole.STUDENT:
        raise HTTPException(status_code=400, detail="Bağlantı yalnızca veli ile öğrenci arasında kurulabilir")
    if student.username not in parent.child_ids:
        parent.child_ids.append(student.username)
        await parent.save()
    if parent.username not in student.parent_ids:
        student.parent_ids.append(parent.username)
        await student.save()
    return {"success": True, "parent": serialize_user(parent), "student": serialize_user(student)}


@router.delete("/parent-child-link")
async def unlink_parent_child(data: ParentChildLink, admin: AdminOnly):
    parent = await get_user_or_404(data.parent_id, "Veli bulunamadı")
    student = await get_user_or_404(data.student_id, "Öğrenci bulunamadı")
    parent.child_ids = [c for c in parent.child_ids if c != student.username]
    student.parent_ids = [p for p in student.parent_ids if p != parent.username]
    await parent.save()
    await student.save()
    return {"success": True}


@router.get("/{username}")
async def get_user(username: str, user: CurrentUser):
    target = await get_user_or_404(username)
    allowed = (
        user.role in (UserRole.ADMIN, UserRole.TEACHER)
        or user.username == target.username
        or target.username in user.child_ids
        or target.username in user.parent_ids
    )
    if not allowed:
        raise HTTPException(status_code=403, detail="Bu kullanıcıyı görüntüleme yetkiniz yok")
    return serialize_user(target)


@router.get("/{username}/children")
async def get_children(username: str, user: CurrentUser):
    if user.role != UserRole.ADMIN and user.username != username:
        raise HTTPException(status_code=403, detail="Bu bilgilere erişim yetkiniz yok")
    parent = await get_user_or_404(username, "Veli bulunamadı")
    if parent.role != UserRole.PARENT:
        raise HTTPException(status_code=400, detail="Kullanıcı veli değil")
    children = await User.find({"username": {"$in": parent.child_ids}}).to_list()
    return [serialize_user(c) for c in children]


@router.get("/{username}/parents")
async def get_parents(username: str, user: CurrentUser):
    if user.role not in (UserRole.ADMIN, UserRole.TEACHER) and user.username != username:
        raise HTTPException(status_code=403, detail="Bu bilgilere erişim yetkiniz yok")
    student = await get_user_or_404(username, "Öğrenci bulunamadı")
    parents = await User.find({"username": {"$in": student.parent_ids}}).to_list()
    return [serialize_user(p) for p in parents]


@router.post("/", status_code=201)
async def create_user(data: UserCreate, admin: AdminOnly):
    if await User.find_one(User.username == data.username):
        raise HTTPException(status_code=400, detail="Bu kullanıcı adı zaten kayıtlı")
    if data.email and await User.find_one(User.email == data.email):
        raise HTTPException(status_code=400, detail="Bu e-posta adresi zaten kullanılıyor")
    u = User(
        username=data.username,
        full_name=data.full_name,
        hashed_password=get_password_hash(data.password),
        role=data.role,
        email=data.email,
        grade_level=data.grade_level,
        section=data.section,
        room=data.room,
        boarding=data.boarding,
    )
    await u.insert()
    return serialize_user(u)


@router.put("/{username}")
async def update_user(username: str, data: UserUpdate, admin: AdminOnly):
    u = await get_user_or_404(username)
    update_data = data.model_dump(exclude_unset=True)
    if update_data.get("email") and update_data["email"] != u.email:
        if await User.find_one(User.email == update_data["email"]):
            raise HTTPException(status_code=400, detail="Bu e-posta adresi zaten kullanılıyor")
    for key, value in update_data.items():
        setattr(u, key, value)
    if update_data.get("is_active") is False:
        u.token_version += 1
    u.updated_at = datetime.utcnow()
    await u.save()
    return serialize_user(u)


@router.delete("/{username}")
async def delete_user(username: str, admin: AdminOnly):
    """Deactivate (soft delete) a user and revoke their tokens."""
    u = await get_user_or_404(username)
    if u.username == admin.username:
        raise HTTPException(status_code=400, detail="Kendi hesabınızı silemezsiniz")
    u.is_active = False
    u.token_version += 1
    u.updated_at = datetime.utcnow()
    await u.save()
    return {"success": True, "message": "Kullanıcı silindi"}


@router.post("/{username}/set-password")
async def set_user_password(username: str, data: PasswordUpdate, admin: AdminOnly):
    """Set or reset a user's password (admin-only)."""
    if len(data.password) < 6:
        raise HTTPException(status_code=400, detail="Yeni şifre en az 6 karakter olmalı.")
    u = await get_user_or_404(username)
    u.hashed_password = get_password_hash(data.password)
    u.token_version += 1
    await u.save()
    return {"id": u.username}
