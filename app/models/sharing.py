"""Owner/share/public access rules shared by calendars, files and folders."""
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from app.models.user import User


class SharePermission(str, Enum):
    READ = "read"
    WRITE = "write"
    ADMIN = "admin"


PERMISSION_RANK = {SharePermission.READ: 1, SharePermission.WRITE: 2, SharePermission.ADMIN: 3}


class Share(BaseModel):
    user_id: str
    permission: SharePermission = SharePermission.READ
    shared_at: datetime = Field(default_factory=datetime.utcnow)
    shared_by: Optional[str] = None


class ShareRequest(BaseModel):
    user_id: str = Field(min_length=1)
    permission: SharePermission = SharePermission.READ


def access_level(
    user: User,
    owner_id: str,
    shared_with: list[Share],
    is_public: bool,
    allowed_roles: list[str],
) -> Optional[SharePermission]:
    """Owner gets admin, a share its own level, a public item read for the allowed roles."""
    if user.username == owner_id:
        return SharePermission.ADMIN
    for share in shared_with:
        if share.user_id == user.username:
            return share.permission
    if public_to(user, is_public, allowed_roles):
        return SharePermission.READ
    return None


def public_to(user: User, is_public: bool, allowed_roles: list[str]) -> bool:
    return is_public and (not allowed_roles or user.role.value in allowed_roles)


def allows(level: Optional[SharePermission], needed: SharePermission) -> bool:
    return level is not None and PERMISSION_RANK[level] >= PERMISSION_RANK[needed]


def upsert_share(shared_with: list[Share], user_id: str, permission: SharePermission, shared_by: str) -> None:
    for share in shared_with:
        if share.user_id == user_id:
            share.permission = permission
            share.shared_at = datetime.utcnow()
            share.shared_by = shared_by
            return
    shared_with.append(Share(user_id=user_id, permission=permission, shared_by=shared_by))


def visible_query(user: User) -> dict:
    """Mongo filter for documents carrying ``owner_id``, ``shared_with`` and public flags."""
    return {
        "$or": [
            {"owner_id": user.username},
            {"shared_with.user_id": user.username},
            {"is_public": True, "allowed_roles": {"$size": 0}},
            {"is_public": True, "allowed_roles": user.role.value},
        ]
    }
