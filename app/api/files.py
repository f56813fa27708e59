"""File manager: uploads into folders, sharing, search, stats and bulk operations."""
import logging
import re
from collections import Counter
from datetime import datetime
from typing import Optional
from urllib.parse import quote

from fastapi import APIRouter, File, Form, HTTPException, Query, Response, UploadFile

from app.api.deps import CurrentUser
from app.models.file import (
    BulkDelete,
    BulkMove,
    FileCategory,
    FileKind,
    FileUpdate,
    Folder,
    FolderCreate,
    FolderUpdate,
    StoredFile,
    kind_for_extension,
    serialize_file,
    serialize_folder,
    sha256_checksum,
)
from app.models.sharing import SharePermission, ShareRequest, access_level, allows, upsert_share, visible_query
from app.models.user import User
from app.services.access import get_user_or_404, pagination, safe_object_id
from app.services.notifications import notify
from app.services.storage import delete_file, read_file, read_upload, store_bytes

logger = logging.getLogger(__name__)

router = APIRouter()


def _level(item, user: User) -> Optional[SharePermission]:
    return access_level(user, item.owner_id, item.shared_with, item.is_public, item.allowed_roles)


async def _get_file(file_id: str, user: User, needed: SharePermission = SharePermission.READ) -> StoredFile:
    oid = safe_object_id(file_id)
    item = await StoredFile.get(oid) if oid else None
    level = _level(item, user) if item and item.is_active else None
    if level is None:
        raise HTTPException(status_code=404, detail="Dosya bulunamadı")
    if not allows(level, needed):
        raise HTTPException(status_code=403, detail="Bu dosya için yetkiniz yok")
    return item


async def _get_folder(folder_id: str, user: User, needed: SharePermission = SharePermission.READ) -> Folder:
    oid = safe_object_id(folder_id)
    folder = await Folder.get(oid) if oid else None
    level = _level(folder, user) if folder and folder.is_active else None
    if level is None:
        raise HTTPException(status_code=404, detail="Klasör bulunamadı")
    if not allows(level, needed):
        raise HTTPException(status_code=403, detail="Bu klasör için yetkiniz yok")
    return folder


async def _writable_folder(folder_id: str, user: User, detail: str) -> Folder:
    try:
        return await _get_folder(folder_id, user, SharePermission.WRITE)
    except HTTPException as e:
        if e.status_code == 403:
            raise HTTPException(status_code=403, detail=detail)
        raise


async def _ensure_unique_name(name: str, parent_id: Optional[str], owner_id: str, exclude_id=None) -> None:
    query: dict = {"name": name, "parent_id": parent_id, "is_active": True}
    if parent_id is None:
        # root folders are per owner
        query["owner_id"] = owner_id
    if exclude_id is not None:
        query["_id"] = {"$ne": exclude_id}
    if await Folder.find_one(query):
        raise HTTPException(status_code=400, detail="Bu isimde bir klasör zaten mevcut")


async def _repath_children(folder: Folder) -> None:
    for child in await Folder.find({"parent_id": str(folder.id)}).to_list():
        child.path = f"{folder.path}/{child.name}"
        await child.save()
        await _repath_children(child)


async def _share(item, name: str, data: ShareRequest, user: User, label: str) -> None:
    target = await get_user_or_404(data.user_id)
    if target.username == item.owner_id:
        raise HTTPException(status_code=400, detail="Sahibiyle paylaşılamaz")
    upsert_share(item.shared_with, target.username, data.permission, user.username)
    item.updated_at = datetime.utcnow()
    await item.save()
    await notify(
        [target.username],
        f"{label} paylaşıldı",
        f"{user.full_name} sizinle '{name}' paylaştı",
        sender_id=user.username,
    )


# --- folders ---


@router.get("/folders")
async def list_folders(user: CurrentUser, parent_id: Optional[str] = None):
    query = {**visible_query(user), "is_active": True}
    if parent_id:
        query["parent_id"] = parent_id
    folders = await Folder.find(query).sort("name").to_list()
    return [serialize_folder(f) for f in folders]


@router.get("/folders/tree")
async def folder_tree(user: CurrentUser):
    folders = await Folder.find({**visible_query(user), "is_active": True}).sort("name").to_list()
    nodes = {str(f.id): {**serialize_folder(f), "children": []} for f in folders}
    roots = []
    for node in nodes.values():
        parent = nodes.get(node["parent_id"]) if node["parent_id"] else None
        (parent["children"] if parent else roots).append(node)
    return roots


@router.post("/folders", status_code=201)
async def create_folder(data: FolderCreate, user: CurrentUser):
    path = data.name
    if data.parent_id:
        parent = await _writable_folder(data.parent_id, user, "Üst klasöre yazma izniniz yok")
        path = f"{parent.path}/{data.name}"
    await _ensure_unique_name(data.name, data.parent_id, user.username)
    folder = Folder(**data.model_dump(), path=path, owner_id=user.username)
    await folder.insert()
    logger.info("Folder %s created by %s", folder.path, user.username)
    return serialize_folder(folder)


@router.get("/folders/{folder_id}")
async def get_folder(folder_id: str, user: CurrentUser):
    folder = await _get_folder(folder_id, user)
    visible = visible_query(user)
    files = await StoredFile.find({**visible, "folder_id": str(folder.id), "is_active": True}).sort("original_name").to_list()
    children = await Folder.find({**visible, "parent_id": str(folder.id), "is_active": True}).sort("name").to_list()
    return {
        "folder": serialize_folder(folder),
        "files": [serialize_file(f) for f in files],
        "folders": [serialize_folder(f) for f in children],
    }


@router.put("/folders/{folder_id}")
async def update_folder(folder_id: str, data: FolderUpdate, user: CurrentUser):
    folder = await _get_folder(folder_id, user, SharePermission.WRITE)
    changes = data.model_dump(exclude_unset=True)
    if "name" in changes and data.name != folder.name:
        await _ensure_unique_name(data.name, folder.parent_id, folder.owner_id, exclude_id=folder.id)
        parent_path, _, _ = folder.path.rpartition("/")
        folder.path = f"{parent_path}/{data.name}" if parent_path else data.name
        await _repath_children(folder)
    for key in changes:
        setattr(folder, key, getattr(data, key))
    folder.updated_at = datetime.utcnow()
    await folder.save()
    return serialize_folder(folder)


@router.delete("/folders/{folder_id}")
async def delete_folder(folder_id: str, user: CurrentUser):
    folder = await _get_folder(folder_id, user, SharePermission.ADMIN)
    has_files = await StoredFile.find({"folder_id": str(folder.id), "is_active": True}).count()
    has_folders = await Folder.find({"parent_id": str(folder.id), "is_active": True}).count()
    if has_files or has_folders:
        raise HTTPException(status_code=400, detail="Klasör boş değil. Önce içeriğini silin.")
    folder.is_active = False
    folder.updated_at = datetime.utcnow()
    await folder.save()
    return {"success": True, "message": "Klasör silindi"}


@router.post("/folders/{folder_id}/share")
async def share_folder(folder_id: str, data: ShareRequest, user: CurrentUser):
    folder = await _get_folder(folder_id, user, SharePermission.ADMIN)
    await _share(folder, folder.name, data, user, "Klasör")
    return serialize_folder(folder)


# --- search, stats, bulk ---


@router.get("/search")
async def search(
    user: CurrentUser,
    q: str = Query(..., min_length=1, max_length=100),
    type: str = Query("all", pattern="^(all|files|folders)$"),
):
    pattern = {"$regex": re.escape(q.strip()), "$options": "i"}
    visible = visible_query(user)
    result: dict = {"files": [], "folders": []}
    if type in ("all", "files"):
        files = await StoredFile.find(
            {
                "$and": [
                    visible,
                    {"is_active": True},
                    {"$or": [{"original_name": pattern}, {"description": pattern}, {"tags": pattern}]},
                ]
            }
        ).limit(50).to_list()
        result["files"] = [serialize_file(f) for f in files]
    if type in ("all", "folders"):
        folders = await Folder.find(
            {"$and": [visible, {"is_active": True}, {"$or": [{"name": pattern}, {"description": pattern}]}]}
        ).limit(50).to_list()
        result["folders"] = [serialize_folder(f) for f in folders]
    return result


@router.get("/stats")
async def file_stats(user: CurrentUser):
    files = await StoredFile.find({"owner_id": user.username, "is_active": True}).to_list()
    total_folders = await Folder.find({"owner_id": user.username, "is_active": True}).count()
    return {
        "total_files": len(files),
        "total_size": sum(f.size for f in files),
        "total_folders": total_folders,
        "file_types": dict(Counter(f.type.value for f in files)),
    }


@router.post("/bulk/delete")
async def bulk_delete(data: BulkDelete, user: CurrentUser):
    deleted = 0
    failed: list[str] = []
    for file_id in data.ids:
        try:
            item = await _get_file(file_id, user, SharePermission.ADMIN)
        except HTTPException:
            failed.append(file_id)
            continue
        await _soft_delete(item)
        deleted += 1
    return {"deleted": deleted, "failed": failed}


@router.post("/bulk/move")
async def bulk_move(data: BulkMove, user: CurrentUser):
    target = None
    if data.folder_id:
        target = await _writable_folder(data.folder_id, user, "Klasöre yazma izniniz yok")
    moved = 0
    failed: list[str] = []
    for file_id in data.ids:
        try:
            item = await _get_file(file_id, user, SharePermission.WRITE)
        except HTTPException:
            failed.append(file_id)
            continue
        item.folder_id = str(target.id) if target else None
        item.updated_at = datetime.utcnow()
        await item.save()
        moved += 1
    return {"moved": moved, "failed": failed}


# --- files ---


async def _soft_delete(item: StoredFile) -> None:
    item.is_active = False
    item.updated_at = datetime.utcnow()
    await item.save()
    await delete_file(item.file_key)


@router.get("/")
async def list_files(
    user: CurrentUser,
    folder_id: Optional[str] = None,
    type: Optional[FileKind] = None,
    category: Optional[FileCategory] = None,
    page: int = Query(1, ge=1, le=1000),
    limit: int = Query(20, ge=1, le=100),
):
    query = {**visible_query(user), "is_active": True}
    if folder_id:
        query["folder_id"] = folder_id
    if type:
        query["type"] = type.value
    if category:
        query["category"] = category.value
    total = await StoredFile.find(query).count()
    files = await StoredFile.find(query).sort("-created_at").skip((page - 1) * limit).limit(limit).to_list()
    return {"data": [serialize_file(f) for f in files], "pagination": pagination(page, limit, total)}


@router.post("/", status_code=201)
@router.post("/upload", status_code=201)
async def upload_file(
    user: CurrentUser,
    file: UploadFile = File(...),
    folder_id: Optional[str] = Form(None),
    description: Optional[str] = Form(None, max_length=500),
    category: FileCategory = Form(FileCategory.PERSONAL),
    tags: str = Form(""),
    is_public: bool = Form(False),
):
    folder = await _writable_folder(folder_id, user, "Klasöre yazma izniniz yok") if folder_id else None
    content, ext = await read_upload(file)
    url, key = await store_bytes(content, "files", ext, file.content_type)
    item = StoredFile(
        original_name=file.filename or key,
        mime_type=file.content_type or "application/octet-stream",
        size=len(content),
        url=url,
        file_key=key,
        folder_id=str(folder.id) if folder else None,
        tags=[t.strip() for t in tags.split(",") if t.strip()],
        description=description,
        category=category,
        type=kind_for_extension(ext),
        is_public=is_public,
        owner_id=user.username,
        checksum=sha256_checksum(content),
    )
    await item.insert()
    logger.info("File %s uploaded by %s", item.id, user.username)
    return serialize_file(item)


@router.get("/{file_id}")
async def get_file(file_id: str, user: CurrentUser):
    item = await _get_file(file_id, user)
    item.views += 1
    await item.save()
    return serialize_file(item)


@router.get("/{file_id}/download")
async def download_file(file_id: str, user: CurrentUser):
    item = await _get_file(file_id, user)
    content = await read_file(item.file_key)
    item.downloads += 1
    await item.save()
    return Response(
        content=content,
        media_type=item.mime_type,
        headers={"Content-Disposition": f"attachment; filename*=UTF-8''{quote(item.original_name)}"},
    )


@router.put("/{file_id}")
async def update_file(file_id: str, data: FileUpdate, user: CurrentUser):
    item = await _get_file(file_id, user, SharePermission.WRITE)
    for key in data.model_dump(exclude_unset=True):
        setattr(item, key, getattr(data, key))
    item.updated_at = datetime.utcnow()
    await item.save()
    return serialize_file(item)


@router.delete("/{file_id}")
async def delete_stored_file(file_id: str, user: CurrentUser):
    item = await _get_file(file_id, user, SharePermission.ADMIN)
    await _soft_delete(item)
    return {"success": True, "message": "Dosya silindi"}


@router.post("/{file_id}/share")
async def share_file(file_id: str, data: ShareRequest, user: CurrentUser):
    item = await _get_file(file_id, user, SharePermission.ADMIN)
    await _share(item, item.original_name, data, user, "Dosya")
    return serialize_file(item)
