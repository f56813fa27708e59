"""Redis GET-response cache with pattern invalidation.

The cache is optional: with ``REDIS_ENABLED`` off every helper is a no-op and
the middleware passes requests straight through. Redis failures are logged
and never fail the request.
"""
from __future__ import annotations

import json
import logging
from typing import Optional
from urllib.parse import parse_qsl

from fastapi import HTTPException
from redis import asyncio as aioredis
from redis.exceptions import RedisError
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from app.api.deps import user_from_access_token
from app.config import settings
from app.rbac import has_permission

logger = logging.getLogger(__name__)

KEY_PREFIX = "cache"

# Cached resource -> (TTL in seconds, None for CACHE_DEFAULT_TTL; permission module).
# Only responses that are the same for every role are cached.
CACHEABLE_RESOURCES: dict[str, tuple[Optional[int], str]] = {
    "announcements": (None, "announcements"),
    "schedules": (600, "schedules"),
    "meals": (900, "dormitory"),
    "supervisors": (900, "dormitory"),
}

# Leading segments after /api or /api/v1 -> cached resource. Nested paths such
# as /clubs/{id}/announcements never match.
RESOURCE_PATHS: dict[tuple[str, ...], str] = {
    ("announcements",): "announcements",
    ("schedules",): "schedules",
    ("schedule",): "schedules",
    ("dormitory", "meals"): "meals",
    ("meals",): "meals",
    ("meal-lists",): "meals",
    ("dormitory", "supervisors"): "supervisors",
    ("supervisors",): "supervisors",
    ("supervisor-lists",): "supervisors",
}

_redis: Optional[aioredis.Redis] = None


def get_redis() -> Optional[aioredis.Redis]:
    global _redis
    if not settings.redis_enabled or not settings.redis_url:
        return None
    if _redis is None:
        _redis = aioredis.from_url(settings.redis_url, decode_responses=False)
    return _redis


def set_redis(client: Optional[aioredis.Redis]) -> None:
    """Swap the client (tests use fakeredis)."""
    global _redis
    _redis = client


async def close_redis() -> None:
    global _redis
    if _redis is not None:
        await _redis.aclose()
        _redis = None


def resource_for_path(path: str) -> Optional[str]:
    segments = [s for s in path.split("/") if s]
    if not segments or segments[0] != "api":
        return None
    rest = segments[2:] if len(segments) > 1 and segments[1] == "v1" else segments[1:]
    for size in (2, 1):
        resource = RESOURCE_PATHS.get(tuple(rest[:size])) if len(rest) >= size else None
        if resource:
            return resource
    return None


def ttl_for_path(path: str) -> Optional[int]:
    resource = resource_for_path(path)
    if resource is None:
        return None
    return CACHEABLE_RESOURCES[resource][0] or settings.cache_default_ttl


def cache_key(resource: str, path: str, query_string: str = "") -> str:
    query = dict(sorted(parse_qsl(query_string, keep_blank_values=True)))
    return f"{KEY_PREFIX}:{resource}:{path}:{json.dumps(query, ensure_ascii=False, separators=(',', ':'))}"


async def invalidate_cache(pattern: str) -> int:
    """Delete every key matching ``pattern``; return how many were removed."""
    client = get_redis()
    if client is None:
        return 0
    try:
        keys = await client.keys(pattern)
        if not keys:
            return 0
        async with client.pipeline(transaction=False) as pipe:
            for key in keys:
                pipe.delete(key)
            results = await pipe.execute()
        deleted = sum(int(r) for r in results)
        logger.info("Invalidated %d cache keys for pattern %s", deleted, pattern)
        return deleted
    except RedisError as e:
        logger.warning("Cache invalidation failed for %s: %s", pattern, e)
        return 0


async def invalidate_resource(resource: str) -> int:
    """Drop cached responses of one resource, whichever alias they were read through."""
    return await invalidate_cache(f"{KEY_PREFIX}:{resource}:*")


async def clear_cache() -> int:
    return await invalidate_cache(f"{KEY_PREFIX}:*")


async def cache_health() -> dict:
    client = get_redis()
    if client is None:
        return {"enabled": False, "status": "disabled"}
    try:
        await client.ping()
        return {"enabled": True, "status": "healthy"}
    except RedisError as e:
        return {"enabled": True, "status": "unhealthy", "error": str(e)}


async def _may_read(scope: Scope, resource: str) -> bool:
    """Same checks the routers apply: current token, active user, view permission."""
    headers = dict(scope.get("headers", []))
    scheme, _, token = headers.get(b"authorization", b"").decode("latin-1").partition(" ")
    if scheme.lower() != "bearer" or not token:
        return False
    try:
        user = await user_from_access_token(token)
    except HTTPException:
        return False
    return has_permission(user.role.value, CACHEABLE_RESOURCES[resource][1], "view")


class ResponseCacheMiddleware:
    """Serve cacheable GET responses from Redis and store fresh 200s."""

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http" or scope["method"] != "GET":
            await self.app(scope, receive, send)
            return
        client = get_redis()
        resource = resource_for_path(scope["path"])
        if client is None or resource is None:
            await self.app(scope, receive, send)
            return

        if not await _may_read(scope, resource):
            # let the app answer 401/403
            await self.app(scope, receive, send)
            return

        ttl = ttl_for_path(scope["path"])
        key = cache_key(resource, scope["path"], scope.get("query_string", b"").decode("latin-1"))
        try:
            cached = await client.get(key)
        except RedisError as e:
            logger.warning("Cache read failed for %s: %s", key, e)
            cached = None

        if cached is not None:
            headers = [
                (b"content-type", b"application/json"),
                (b"content-length", str(len(cached)).encode()),
                (b"x-cache", b"HIT"),
                (b"x-cache-key", key.encode("utf-8")),
            ]
            await send({"type": "http.response.start", "status": 200, "headers": headers})
            await send({"type": "http.response.body", "body": cached})
            return

        start: dict = {}
        chunks: list[bytes] = []

        async def send_wrapper(message: Message) -> None:
            if message["type"] == "http.response.start":
                start.update(message)
                headers = list(message.get("headers", []))
                headers += [
                    (b"x-cache", b"MISS"),
                    (b"x-cache-key", key.encode("utf-8")),
                    (b"x-cache-ttl", str(ttl).encode()),
                ]
                message = {**message, "headers": headers}
            elif message["type"] == "http.response.body" and start.get("status") == 200:
                chunks.append(message.get("body", b""))
                if not message.get("more_body", False):
                    await self._store(client, key, b"".join(chunks), ttl, start)
            await send(message)

        await self.app(scope, receive, send_wrapper)

    @staticmethod
    async def _store(client: aioredis.Redis, key: str, body: bytes, ttl: int, start: dict) -> None:
        content_type = dict(start.get("headers", [])).get(b"content-type", b"")
        if not content_type.startswith(b"application/json"):
            return
        try:
            await client.setex(key, ttl, body)
        except RedisError as e:
            logger.warning("Cache write failed for %s: %s", key, e)
