"""Uploaded files: S3 when a bucket is configured, otherwise the local upload dir."""
import asyncio
import logging
import uuid
from pathlib import Path

import boto3
from botocore.exceptions import ClientError
from fastapi import HTTPException, UploadFile

from app.config import settings

logger = logging.getLogger(__name__)

_s3 = None


def get_s3():
    global _s3
    if _s3 is None:
        _s3 = boto3.client(
            "s3",
            region_name=settings.aws_region,
            aws_access_key_id=settings.aws_access_key_id or None,
            aws_secret_access_key=settings.aws_secret_access_key or None,
        )
    return _s3


def use_s3() -> bool:
    return bool(settings.s3_bucket_uploads)


def file_extension(filename: str | None) -> str:
    if not filename or "." not in filename:
        return ""
    return filename.rsplit(".", 1)[-1].lower()


def _local_path(key: str) -> Path:
    root = Path(settings.upload_dir).resolve()
    path = (root / key).resolve()
    if root not in path.parents:
        raise HTTPException(status_code=400, detail="Geçersiz dosya yolu")
    return path


async def read_upload(file: UploadFile) -> tuple[bytes, str]:
    """Validate extension, size and emptiness; return (content, extension)."""
    ext = file_extension(file.filename)
    if ext not in settings.upload_extensions:
        raise HTTPException(
            status_code=400,
            detail=f"Desteklenmeyen dosya türü. İzin verilenler: {', '.join(sorted(settings.upload_extensions))}",
        )
    content = await file.read()
    if len(content) > settings.max_upload_size:
        raise HTTPException(status_code=413, detail="Dosya boyutu 10MB sınırını aşıyor")
    if not content:
        raise HTTPException(status_code=400, detail="Dosya boş")
    return content, ext


async def store_bytes(content: bytes, folder: str, ext: str, content_type: str | None = None) -> tuple[str, str]:
    """Write content under a fresh key in ``folder``; return (url, key)."""
    key = f"{folder}/{uuid.uuid4().hex}.{ext}"
    content_type = content_type or "application/octet-stream"
    if use_s3():
        bucket = settings.s3_bucket_uploads
        await asyncio.to_thread(
            get_s3().put_object, Bucket=bucket, Key=key, Body=content, ContentType=content_type
        )
        url = f"https://{bucket}.s3.{settings.aws_region}.amazonaws.com/{key}"
    else:
        path = _local_path(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        await asyncio.to_thread(path.write_bytes, content)
        url = f"/uploads/{key}"
    logger.info("Stored upload %s (%d bytes)", key, len(content))
    return url, key


async def save_upload(file: UploadFile, folder: str) -> tuple[str, str]:
    """Validate and store an upload; return (url, key)."""
    content, ext = await read_upload(file)
    return await store_bytes(content, folder, ext, file.content_type)


async def read_file(key: str) -> bytes:
    if use_s3():
        try:
            obj = await asyncio.to_thread(get_s3().get_object, Bucket=settings.s3_bucket_uploads, Key=key)
        except ClientError:
            raise HTTPException(status_code=404, detail="Dosya bulunamadı")
        return obj["Body"].read()
    path = _local_path(key)
    if not path.is_file():
        raise HTTPException(status_code=404, detail="Dosya bulunamadı")
    return await asyncio.to_thread(path.read_bytes)


async def delete_file(key: str) -> None:
    if use_s3():
        try:
            await asyncio.to_thread(get_s3().delete_object, Bucket=settings.s3_bucket_uploads, Key=key)
        except ClientError as e:
            logger.warning("Could not delete %s from S3: %s", key, e)
        return
    path = _local_path(key)
    if path.is_file():
        path.unlink()
