"""RBAC module/action registry and per-role defaults."""
from __future__ import annotations

from typing import Literal

PermissionAction = Literal["view", "add", "edit", "delete"]

ACTION_BY_METHOD: dict[str, PermissionAction] = {
    "GET": "view",
    "HEAD": "view",
    "OPTIONS": "view",
    "POST": "add",
    "PUT": "edit",
    "PATCH": "edit",
    "DELETE": "delete",
}

SYSTEM_MODULES: list[dict[str, str]] = [
    {"key": "users", "name": "Kullanıcılar"},
    {"key": "notes", "name": "Notlar"},
    {"key": "homework", "name": "Ödevler"},
    {"key": "announcements", "name": "Duyurular"},
    {"key": "schedules", "name": "Ders Programı"},
    {"key": "clubs", "name": "Kulüpler"},
    {"key": "requests", "name": "Talepler"},
    {"key": "evci", "name": "Evci İzinleri"},
    {"key": "dormitory", "name": "Pansiyon"},
    {"key": "notifications", "name": "Bildirimler"},
    {"key": "dashboard", "name": "Panel"},
    {"key": "calendar", "name": "Takvim"},
    {"key": "files", "name": "Dosyalar"},
]


def _perm(view: bool = False, add: bool = False, edit: bool = False, delete: bool = False) -> dict[str, bool]:
    return {"view": view, "add": add, "edit": edit, "delete": delete}


def _full_permissions() -> dict[str, bool]:
    return _perm(True, True, True, True)


def _view_only() -> dict[str, bool]:
    return _perm(view=True)


def _module_defaults(fill: dict[str, bool]) -> dict[str, dict[str, bool]]:
    return {module["key"]: dict(fill) for module in SYSTEM_MODULES}


# Coarse gate applied per router; handlers narrow it further (ownership, leadership).
DEFAULT_ROLE_PERMISSIONS: dict[str, dict[str, dict[str, bool]]] = {
    "admin": _module_defaults(_full_permissions()),
    "teacher": {
        **_module_defaults(_perm()),
        "users": _view_only(),
        "notes": _full_permissions(),
        "homework": _full_permissions(),
        "announcements": _full_permissions(),
        "schedules": _view_only(),
        "clubs": _full_permissions(),
        "requests": _full_permissions(),
        "evci": _perm(view=True, edit=True),
        "dormitory": _view_only(),
        "notifications": _perm(view=True, add=True, edit=True),
        "calendar": _full_permissions(),
        "files": _full_permissions(),
    },
    "student": {
        **_module_defaults(_perm()),
        "users": _view_only(),
        "notes": _view_only(),
        "homework": _view_only(),
        "announcements": _view_only(),
        "schedules": _view_only(),
        "clubs": _full_permissions(),
        "requests": _perm(view=True, add=True, delete=True),
        "evci": _perm(view=True, add=True, edit=True, delete=True),
        "dormitory": _perm(view=True, add=True),
        "notifications": _perm(view=True, edit=True),
        "calendar": _full_permissions(),
        "files": _full_permissions(),
    },
    "parent": {
        **_module_defaults(_perm()),
        "users": _view_only(),
        "notes": _view_only(),
        "homework": _view_only(),
        "announcements": _view_only(),
        "schedules": _view_only(),
        "clubs": _view_only(),
        "requests": _perm(view=True, add=True, delete=True),
        "evci": _perm(view=True, add=True, edit=True, delete=True),
        "dormitory": _view_only(),
        "notifications": _perm(view=True, edit=True),
        "calendar": _full_permissions(),
        "files": _full_permissions(),
    },
    "hizmetli": {
        **_module_defaults(_perm()),
        "users": _view_only(),
        "announcements": _view_only(),
        "schedules": _view_only(),
        "requests": _perm(view=True, add=True, delete=True),
        "evci": _view_only(),
        "dormitory": _full_permissions(),
        "notifications": _perm(view=True, edit=True),
        "calendar": _full_permissions(),
        "files": _full_permissions(),
    },
}


def has_permission(role: str, module: str, action: str) -> bool:
    permissions = DEFAULT_ROLE_PERMISSIONS.get(role)
    if not permissions:
        return False
    return bool(permissions.get(module, {}).get(action, False))


def permissions_for(role: str) -> list[dict]:
    permissions = DEFAULT_ROLE_PERMISSIONS.get(role, {})
    return [
        {"module": m["key"], "name": m["name"], **permissions.get(m["key"], _perm())}
        for m in SYSTEM_MODULES
    ]
