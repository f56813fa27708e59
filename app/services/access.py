"""Lookups and visibility rules shared by the resource routers."""
from __future__ import annotations

import math
from typing import Optional

from beanie import PydanticObjectId
from fastapi import HTTPException

from app.models.user import User, UserRole


def safe_object_id(value: str | None) -> PydanticObjectId | None:
    if not value:
        return None
    try:
        return PydanticObjectId(value)
    except Exception:
        return None


def object_id_or_404(value: str, detail: str) -> PydanticObjectId:
    oid = safe_object_id(value)
    if not oid:
        raise HTTPException(status_code=404, detail=detail)
    return oid


async def get_user_or_404(username: str, detail: str = "Kullanıcı bulunamadı") -> User:
    user = await User.find_one(User.username == username)
    if not user:
        raise HTTPException(status_code=404, detail=detail)
    return user


def can_view_student(viewer: User, student_id: str) -> bool:
    """Staff see every student; students see themselves; parents see linked children."""
    if viewer.role in (UserRole.ADMIN, UserRole.TEACHER):
        return True
    if viewer.role == UserRole.STUDENT:
        return viewer.username == student_id
    if viewer.role == UserRole.PARENT:
        return student_id in viewer.child_ids
    return False


def ensure_can_view_student(viewer: User, student_id: str) -> None:
    if not can_view_student(viewer, student_id):
        raise HTTPException(status_code=403, detail="Bu öğrencinin bilgilerine erişim yetkiniz yok")


def visible_student_ids(viewer: User) -> Optional[list[str]]:
    """None means unrestricted."""
    if viewer.role in (UserRole.ADMIN, UserRole.TEACHER):
        return None
    if viewer.role == UserRole.STUDENT:
        return [viewer.username]
    if viewer.role == UserRole.PARENT:
        return list(viewer.child_ids)
    return []


def pagination(page: int, limit: int, total: int) -> dict:
    return {
        "page": page,
        "limit": limit,
        "total": total,
        "total_pages": math.ceil(total / limit) if limit else 0,
    }
