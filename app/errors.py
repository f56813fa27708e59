"""Error categories shared by the API error handlers and clients."""
from __future__ import annotations

from enum import Enum
from typing import Optional


class ErrorCategory(str, Enum):
    NETWORK = "NETWORK"
    AUTH = "AUTH"
    VALIDATION = "VALIDATION"
    SERVER = "SERVER"
    CLIENT = "CLIENT"
    UNKNOWN = "UNKNOWN"


USER_MESSAGES: dict[ErrorCategory, str] = {
    ErrorCategory.NETWORK: "İnternet bağlantınızı kontrol edin ve tekrar deneyin.",
    ErrorCategory.AUTH: "Oturum süreniz dolmuş veya bu işlem için yetkiniz yok.",
    ErrorCategory.VALIDATION: "Lütfen girdiğiniz bilgileri kontrol edin.",
    ErrorCategory.SERVER: "Sunucu hatası oluştu. Lütfen daha sonra tekrar deneyin.",
    ErrorCategory.CLIENT: "Bir hata oluştu. Sayfayı yenilemeyi deneyin.",
    ErrorCategory.UNKNOWN: "Beklenmeyen bir hata oluştu. Lütfen tekrar deneyin.",
}

_RETRYABLE = {ErrorCategory.NETWORK, ErrorCategory.SERVER, ErrorCategory.UNKNOWN}


def categorize_status(status_code: Optional[int]) -> ErrorCategory:
    """Map an HTTP status (None when no response arrived) to a category."""
    if not status_code:
        return ErrorCategory.NETWORK
    if status_code in (401, 403):
        return ErrorCategory.AUTH
    if status_code in (400, 422):
        return ErrorCategory.VALIDATION
    if 400 <= status_code < 500:
        return ErrorCategory.CLIENT
    if status_code >= 500:
        return ErrorCategory.SERVER
    return ErrorCategory.UNKNOWN


def should_retry(category: ErrorCategory) -> bool:
    return category in _RETRYABLE


def user_message(category: ErrorCategory) -> str:
    return USER_MESSAGES[category]


def error_body(status_code: int, detail, **extra) -> dict:
    body = {"detail": detail, "category": categorize_status(status_code).value}
    body.update(extra)
    return body
