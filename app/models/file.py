"""Uploaded documents and the folders that organise them."""
import hashlib
from datetime import datetime
from enum import Enum
from typing import Optional

from beanie import Document, Indexed
from pydantic import BaseModel, Field, field_validator

from app.models.common import reject_null
from app.models.sharing import Share


class FileCategory(str, Enum):
    ACADEMIC = "academic"
    ADMINISTRATIVE = "administrative"
    PERSONAL = "personal"
    SHARED = "shared"
    TEMPORARY = "temporary"


class FileKind(str, Enum):
    DOCUMENT = "document"
    IMAGE = "image"
    VIDEO = "video"
    AUDIO = "audio"
    ARCHIVE = "archive"
    OTHER = "other"


KIND_BY_EXTENSION = {
    **dict.fromkeys(("pdf", "doc", "docx", "xls", "xlsx", "ppt", "pptx", "txt", "csv", "odt"), FileKind.DOCUMENT),
    **dict.fromkeys(("jpg", "jpeg", "png", "gif", "webp", "svg"), FileKind.IMAGE),
    **dict.fromkeys(("mp4", "mov", "avi", "webm"), FileKind.VIDEO),
    **dict.fromkeys(("mp3", "wav", "ogg", "m4a"), FileKind.AUDIO),
    **dict.fromkeys(("zip", "rar", "7z", "tar", "gz"), FileKind.ARCHIVE),
}


def kind_for_extension(ext: str) -> FileKind:
    return KIND_BY_EXTENSION.get(ext.lower(), FileKind.OTHER)


def sha256_checksum(content: bytes) -> str:
    return hashlib.sha256(content).hexdigest()


class StoredFile(Document):
    original_name: str
    mime_type: str
    size: int
    url: str
    file_key: str
    folder_id: Optional[str] = None
    tags: list[str] = Field(default_factory=list)
    description: Optional[str] = None
    category: FileCategory = FileCategory.PERSONAL
    type: FileKind = FileKind.OTHER
    is_public: bool = False
    allowed_roles: list[str] = Field(default_factory=list)
    owner_id: Indexed(str)
    shared_with: list[Share] = Field(default_factory=list)
    checksum: str
    downloads: int = 0
    views: int = 0
    is_active: bool = True
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "files"
        use_state_management = True


class Folder(Document):
    name: str
    description: Optional[str] = None
    parent_id: Optional[str] = None
    path: str
    category: FileCategory = FileCategory.PERSONAL
    is_public: bool = False
    allowed_roles: list[str] = Field(default_factory=list)
    owner_id: Indexed(str)
    shared_with: list[Share] = Field(default_factory=list)
    is_active: bool = True
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "folders"
        use_state_management = True


def _check_folder_name(value: Optional[str]) -> Optional[str]:
    if value is None:
        return value
    value = value.strip()
    if not value or "/" in value:
        raise ValueError("Klasör adı boş olamaz ve '/' içeremez")
    return value


class FileUpdate(BaseModel):
    description: Optional[str] = Field(default=None, max_length=500)
    tags: Optional[list[str]] = Field(default=None, max_length=20)
    category: Optional[FileCategory] = None
    is_public: Optional[bool] = None
    allowed_roles: Optional[list[str]] = None

    @field_validator("tags", "category", "is_public", "allowed_roles")
    @classmethod
    def _required(cls, value):
        return reject_null(value)


class FolderCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    parent_id: Optional[str] = None
    category: FileCategory = FileCategory.PERSONAL
    is_public: bool = False
    allowed_roles: list[str] = Field(default_factory=list)

    @field_validator("name")
    @classmethod
    def _valid_name(cls, value):
        return _check_folder_name(value)


class FolderUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    category: Optional[FileCategory] = None
    is_public: Optional[bool] = None
    allowed_roles: Optional[list[str]] = None

    @field_validator("name")
    @classmethod
    def _valid_name(cls, value):
        return _check_folder_name(reject_null(value))

    @field_validator("category", "is_public", "allowed_roles")
    @classmethod
    def _required(cls, value):
        return reject_null(value)


class BulkDelete(BaseModel):
    ids: list[str] = Field(min_length=1, max_length=200)


class BulkMove(BaseModel):
    ids: list[str] = Field(min_length=1, max_length=200)
    folder_id: Optional[str] = None


def serialize_file(f: StoredFile) -> dict:
    return {
        "id": str(f.id),
        "original_name": f.original_name,
        "mime_type": f.mime_type,
        "size": f.size,
        "url": f.url,
        "folder_id": f.folder_id,
        "tags": f.tags,
        "description": f.description,
        "category": f.category.value,
        "type": f.type.value,
        "is_public": f.is_public,
        "allowed_roles": f.allowed_roles,
        "owner_id": f.owner_id,
        "shared_with": [s.model_dump() for s in f.shared_with],
        "checksum": f.checksum,
        "downloads": f.downloads,
        "views": f.views,
        "created_at": f.created_at,
    }


def serialize_folder(f: Folder) -> dict:
    return {
        "id": str(f.id),
        "name": f.name,
        "description": f.description,
        "parent_id": f.parent_id,
        "path": f.path,
        "category": f.category.value,
        "is_public": f.is_public,
        "allowed_roles": f.allowed_roles,
        "owner_id": f.owner_id,
        "shared_with": [s.model_dump() for s in f.shared_with],
        "created_at": f.created_at,
    }
