"""In-process fixed-window rate limiting per client IP."""
from __future__ import annotations

import json
import logging
import math
import time
from dataclasses import dataclass, field
from typing import Callable, Optional

from starlette.types import ASGIApp, Receive, Scope, Send

from app.config import settings
from app.errors import error_body

logger = logging.getLogger(__name__)

AUTH_LIMITED_SUFFIXES = ("/auth/login", "/auth/register", "/auth/forgot-password", "/auth/reset-password")


@dataclass
class RateLimiter:
    max_requests: int
    window_seconds: int
    clock: Callable[[], float] = time.monotonic
    _windows: dict[str, tuple[float, int]] = field(default_factory=dict)

    def hit(self, key: str) -> tuple[bool, int]:
        """Count a request; return (allowed, seconds until the window resets)."""
        now = self.clock()
        start, count = self._windows.get(key, (now, 0))
        if now - start >= self.window_seconds:
            start, count = now, 0
        count += 1
        self._windows[key] = (start, count)
        retry_after = max(1, math.ceil(self.window_seconds - (now - start)))
        if len(self._windows) > 10000:
            self._prune(now)
        return count <= self.max_requests, retry_after

    def reset(self) -> None:
        self._windows.clear()

    def _prune(self, now: float) -> None:
        self._windows = {k: v for k, v in self._windows.items() if now - v[0] < self.window_seconds}


general_limiter = RateLimiter(settings.rate_limit_max_requests, settings.rate_limit_window_seconds)
auth_limiter = RateLimiter(settings.auth_rate_limit_max_requests, settings.auth_rate_limit_window_seconds)


def limiter_for_path(path: str) -> Optional[RateLimiter]:
    if not path.startswith("/api/"):
        return None
    if path.rstrip("/").endswith(AUTH_LIMITED_SUFFIXES):
        return auth_limiter
    return general_limiter


def client_ip(scope: Scope) -> str:
    """Peer address; X-Forwarded-For only counts when the peer is a trusted proxy."""
    client = scope.get("client")
    peer = client[0] if client else "unknown"
    trusted = settings.trusted_proxy_ips
    if peer not in trusted:
        return peer
    forwarded = dict(scope.get("headers", [])).get(b"x-forwarded-for")
    if not forwarded:
        return peer
    hops = [h.strip() for h in forwarded.decode("latin-1").split(",") if h.strip()]
    # rightmost hop not added by our own proxies
    for hop in reversed(hops):
        if hop not in trusted:
            return hop
    return hops[0] if hops else peer


class RateLimitMiddleware:
    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http" or not settings.rate_limit_enabled:
            await self.app(scope, receive, send)
            return
        limiter = limiter_for_path(scope["path"])
        if limiter is None:
            await self.app(scope, receive, send)
            return

        ip = client_ip(scope)
        bucket = "auth" if limiter is auth_limiter else "api"
        allowed, retry_after = limiter.hit(f"{bucket}:{ip}")
        if allowed:
            await self.app(scope, receive, send)
            return

        logger.warning("Rate limit exceeded for %s on %s", ip, scope["path"])
        body = json.dumps(
            error_body(
                429,
                "Çok fazla istek gönderildi, lütfen daha sonra tekrar deneyin",
                message="Too many requests",
                retry_after=retry_after,
                limit=limiter.max_requests,
                window_seconds=limiter.window_seconds,
            ),
            ensure_ascii=False,
        ).encode("utf-8")
        await send(
            {
                "type": "http.response.start",
                "status": 429,
                "headers": [
                    (b"content-type", b"application/json"),
                    (b"content-length", str(len(body)).encode()),
                    (b"retry-after", str(retry_after).encode()),
                ],
            }
        )
        await send({"type": "http.response.body", "body": body})
