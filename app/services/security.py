"""Request sanitization and injection detection, plus the ASGI middleware applying them."""
from __future__ import annotations

import json
import logging
import re
from typing import Any, Optional
from urllib.parse import parse_qsl, urlencode

from starlette.types import ASGIApp, Message, Receive, Scope, Send

from app.config import settings
from app.errors import error_body

logger = logging.getLogger(__name__)

_HTML_TAG_RE = re.compile(r"<[^>]*>")

SQL_PATTERNS = [
    re.compile(r"\bunion\b[\s\S]*\bselect\b", re.IGNORECASE),
    re.compile(r"\b(select|delete)\b[\s\S]*\bfrom\b[\s\S]*(\bwhere\b|;|--)", re.IGNORECASE),
    re.compile(r"\binsert\s+into\b", re.IGNORECASE),
    re.compile(r"\b(drop|alter|truncate|create)\s+(table|database|index)\b", re.IGNORECASE),
    re.compile(r"\b(exec|execute)\s*\(?\s*(xp_|sp_)", re.IGNORECASE),
    re.compile(r"\bxp_cmdshell\b", re.IGNORECASE),
    re.compile(r"'\s*(or|and)\s*'?\d+'?\s*=\s*'?\d+", re.IGNORECASE),
    re.compile(r"\b(or|and)\s+\d+\s*=\s*\d+", re.IGNORECASE),
    re.compile(r"'\s*;?\s*--"),
    re.compile(r"/\*[\s\S]*?\*/"),
]

XSS_PATTERNS = [
    re.compile(r"<\s*script\b", re.IGNORECASE),
    re.compile(r"javascript\s*:", re.IGNORECASE),
    re.compile(r"vbscript\s*:", re.IGNORECASE),
    re.compile(r"\bon(load|error|click|mouseover|focus|blur|submit|change)\s*=", re.IGNORECASE),
    re.compile(r"<\s*(iframe|object|embed|form|input|meta|link|style|svg|applet)\b", re.IGNORECASE),
    re.compile(r"expression\s*\(", re.IGNORECASE),
]

# Credentials are hashed or compared, never rendered; their content is not checked.
EXEMPT_KEYS = {"password", "current_password", "new_password", "token", "refresh_token", "code"}

SECURITY_HEADERS = [
    (b"x-content-type-options", b"nosniff"),
    (b"x-frame-options", b"DENY"),
    (b"x-xss-protection", b"1; mode=block"),
    (b"referrer-policy", b"strict-origin-when-cross-origin"),
]

THREAT_MESSAGES = {
    "sql": "Potential security threat detected",
    "xss": "Potential XSS attack detected",
    "nosql": "Potential NoSQL injection detected",
}


def strip_html(value: str) -> str:
    return _HTML_TAG_RE.sub("", value).strip()


def sanitize(data: Any, key: Optional[str] = None) -> Any:
    """Recursively strip HTML tags from every string in ``data``."""
    if isinstance(data, str):
        return data if key in EXEMPT_KEYS else strip_html(data)
    if isinstance(data, list):
        return [sanitize(item, key) for item in data]
    if isinstance(data, dict):
        return {k: sanitize(v, k) for k, v in data.items()}
    return data


def _string_threat(value: str) -> Optional[str]:
    if any(p.search(value) for p in XSS_PATTERNS):
        return "xss"
    if any(p.search(value) for p in SQL_PATTERNS):
        return "sql"
    return None


def detect_threat(data: Any, key: Optional[str] = None) -> Optional[str]:
    """Return "sql", "xss" or "nosql" for the first suspicious value, else None."""
    if isinstance(data, str):
        if key in EXEMPT_KEYS:
            return None
        return _string_threat(data)
    if isinstance(data, list):
        for item in data:
            threat = detect_threat(item, key)
            if threat:
                return threat
        return None
    if isinstance(data, dict):
        for k, v in data.items():
            if isinstance(k, str) and k.startswith("$"):
                return "nosql"
            threat = detect_threat(v, k)
            if threat:
                return threat
    return None


def _query_params(query_string: bytes) -> dict[str, list[str]]:
    params: dict[str, list[str]] = {}
    for k, v in parse_qsl(query_string.decode("latin-1"), keep_blank_values=True):
        params.setdefault(k, []).append(v)
    return params


class SecurityMiddleware:
    """Size limit, injection rejection, JSON body sanitizing and security headers."""

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        async def send_with_headers(message: Message) -> None:
            if message["type"] == "http.response.start":
                message = {**message, "headers": list(message.get("headers", [])) + SECURITY_HEADERS}
            await send(message)

        headers = dict(scope.get("headers", []))
        content_length = headers.get(b"content-length")
        if content_length and content_length.isdigit() and int(content_length) > settings.max_request_size:
            await _reject(scope, send_with_headers, 413, "İstek boyutu çok büyük")
            return

        params = _query_params(scope.get("query_string", b""))
        threat = detect_threat(params) or detect_threat(scope["path"])
        if threat:
            await _reject(scope, send_with_headers, 400, THREAT_MESSAGES[threat])
            return
        cleaned = sanitize(params)
        if cleaned != params:
            query = urlencode([(k, v) for k, values in cleaned.items() for v in values])
            scope = {**scope, "query_string": query.encode("latin-1")}

        content_type = headers.get(b"content-type", b"")
        if scope["method"] not in ("POST", "PUT", "PATCH") or not content_type.startswith(b"application/json"):
            await self.app(scope, receive, send_with_headers)
            return

        body = b""
        more_body = True
        while more_body:
            message = await receive()
            if message["type"] == "http.disconnect":
                return
            body += message.get("body", b"")
            more_body = message.get("more_body", False)
            if len(body) > settings.max_request_size:
                await _reject(scope, send_with_headers, 413, "İstek boyutu çok büyük")
                return

        if body:
            try:
                payload = json.loads(body)
            except ValueError:
                payload = None
            if payload is not None:
                threat = detect_threat(payload)
                if threat:
                    await _reject(scope, send_with_headers, 400, THREAT_MESSAGES[threat])
                    return
                body = json.dumps(sanitize(payload), ensure_ascii=False).encode("utf-8")
                scope = {
                    **scope,
                    "headers": [(k, v) for k, v in scope["headers"] if k != b"content-length"]
                    + [(b"content-length", str(len(body)).encode())],
                }

        replayed = False

        async def replay() -> Message:
            nonlocal replayed
            if replayed:
                return await receive()
            replayed = True
            return {"type": "http.request", "body": body, "more_body": False}

        await self.app(scope, replay, send_with_headers)


async def _reject(scope: Scope, send: Send, status_code: int, detail: str) -> None:
    client = scope.get("client") or ("unknown", 0)
    logger.warning("Rejected %s %s from %s: %s", scope["method"], scope["path"], client[0], detail)
    payload = json.dumps(error_body(status_code, detail), ensure_ascii=False).encode("utf-8")
    await send(
        {
            "type": "http.response.start",
            "status": status_code,
            "headers": [(b"content-type", b"application/json"), (b"content-length", str(len(payload)).encode())],
        }
    )
    await send({"type": "http.response.body", "body": payload})
