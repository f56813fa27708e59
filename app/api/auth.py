"""JWT authentication: login, refresh rotation, logout and password flows."""
import logging
import secrets
from datetime import datetime, timedelta
from typing import Any, Optional

from fastapi import APIRouter, HTTPException
from jose import JWTError
from pydantic import BaseModel, EmailStr, Field, field_validator

from app.api.deps import (
    AdminOnly,
    CurrentUser,
    REFRESH_TOKEN_TYPE,
    create_access_token,
    create_refresh_token,
    decode_token,
    get_password_hash,
    verify_password,
)
from app.config import settings
from app.models.common import reject_null
from app.models.user import User, UserCreate, serialize_user
from app.rbac import permissions_for
from app.services.mail import send_password_reset, send_verification_code

logger = logging.getLogger(__name__)

router = APIRouter()

INVALID_CREDENTIALS = "Geçersiz kullanıcı adı veya şifre"
MIN_PASSWORD_LENGTH = 6
RESET_TOKEN_HOURS = 1
VERIFICATION_CODE_MINUTES = 10


class TokenResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int
    refresh_expires_in: int


class LoginRequest(BaseModel):
    # Validated by hand to return the same 400 messages for every bad shape.
    username: Any = None
    password: Any = None


class RefreshRequest(BaseModel):
    refresh_token: Optional[str] = None


class ForgotPasswordRequest(BaseModel):
    email: EmailStr


class ResetPasswordRequest(BaseModel):
    token: str
    new_password: str


class ChangePasswordRequest(BaseModel):
    current_password: str
    new_password: str


class ProfileUpdate(BaseModel):
    full_name: Optional[str] = Field(default=None, min_length=2, max_length=100)
    email: Optional[EmailStr] = None

    @field_validator("full_name")
    @classmethod
    def _required(cls, value):
        return reject_null(value)


class EmailCodeRequest(BaseModel):
    email: Optional[EmailStr] = None


class EmailVerifyRequest(BaseModel):
    code: str


def _token_pair(user: User) -> dict:
    return {
        "access_token": create_access_token(user),
        "refresh_token": create_refresh_token(user),
        "token_type": "bearer",
        "expires_in": settings.jwt_access_token_expire_minutes * 60,
        "refresh_expires_in": settings.jwt_refresh_token_expire_days * 24 * 3600,
    }


def _check_new_password(password: str) -> None:
    if len(password) < MIN_PASSWORD_LENGTH:
        raise HTTPException(status_code=400, detail="Yeni şifre en az 6 karakter olmalı.")


@router.post("/login")
async def login(req: LoginRequest):
    if req.username is None or req.password is None:
        raise HTTPException(status_code=400, detail="Kullanıcı adı ve şifre gerekli")
    if not isinstance(req.username, str) or not isinstance(req.password, str):
        raise HTTPException(status_code=400, detail="Geçersiz giriş formatı")
    username = req.username.strip()
    password = req.password.strip()
    if not username or not password:
        raise HTTPException(status_code=400, detail="Kullanıcı adı ve şifre boş olamaz")
    if len(username) > 100 or len(password) > 100:
        raise HTTPException(status_code=400, detail="Kullanıcı adı veya şifre çok uzun")

    user = await User.find_one(User.username == username)
    if not user or not user.is_active or not verify_password(password, user.hashed_password):
        logger.warning("Failed login for %s", username)
        raise HTTPException(status_code=401, detail=INVALID_CREDENTIALS)

    user.last_login = datetime.utcnow()
    user.login_count += 1
    await user.save()
    return {"user": serialize_user(user), **_token_pair(user)}


@router.post("/refresh", response_model=TokenResponse)
async def refresh_token(req: RefreshRequest):
    if not req.refresh_token:
        raise HTTPException(status_code=400, detail="Refresh token gerekli")
    try:
        payload = decode_token(req.refresh_token, REFRESH_TOKEN_TYPE)
    except JWTError:
        raise HTTPException(status_code=401, detail="Geçersiz veya süresi dolmuş refresh token")

    user = await User.find_one(User.username == payload["sub"])
    if not user or not user.is_active:
        raise HTTPException(status_code=401, detail="Kullanıcı bulunamadı veya pasif")
    if payload.get("ver") != user.token_version:
        raise HTTPException(status_code=401, detail="Token geçersiz kılındı")
    return TokenResponse(**_token_pair(user))


@router.post("/logout")
async def logout(user: CurrentUser):
    user.token_version += 1
    await user.save()
    return {"success": True, "message": "Çıkış yapıldı"}


@router.get("/me")
async def me(user: CurrentUser):
    return serialize_user(user)


@router.patch("/me")
async def update_me(data: ProfileUpdate, user: CurrentUser):
    update_data = data.model_dump(exclude_unset=True)
    if "email" in update_data and update_data["email"] != user.email:
        if update_data["email"] and await User.find_one(User.email == update_data["email"]):
            raise HTTPException(status_code=400, detail="Bu e-posta adresi zaten kullanılıyor")
        user.email_verified = False
    for key, value in update_data.items():
        setattr(user, key, value)
    user.updated_at = datetime.utcnow()
    await user.save()
    return serialize_user(user)


@router.get("/permissions")
async def my_permissions(user: CurrentUser):
    return {"role": user.role.value, "items": permissions_for(user.role.value)}


@router.post("/register", status_code=201)
async def register(data: UserCreate, admin: AdminOnly):
    if await User.find_one(User.username == data.username):
        raise HTTPException(status_code=400, detail="Bu kullanıcı adı zaten kayıtlı")
    if data.email and await User.find_one(User.email == data.email):
        raise HTTPException(status_code=400, detail="Bu e-posta adresi zaten kullanılıyor")
    user = User(
        username=data.username,
        full_name=data.full_name,
        hashed_password=get_password_hash(data.password),
        role=data.role,
        email=data.email,
        grade_level=data.grade_level,
        section=data.section,
        room=data.room,
        boarding=data.boarding,
    )
    await user.insert()
    return serialize_user(user)


@router.post("/forgot-password")
async def forgot_password(req: ForgotPasswordRequest):
    user = await User.find_one(User.email == req.email)
    if user and user.is_active:
        user.reset_token = secrets.token_hex(32)
        user.reset_token_expires = datetime.utcnow() + timedelta(hours=RESET_TOKEN_HOURS)
        await user.save()
        await send_password_reset(req.email, user.reset_token)
    # Same answer either way so addresses cannot be enumerated.
    return {"success": True, "message": "Eğer bu e-posta kayıtlıysa şifre sıfırlama bağlantısı gönderildi"}


@router.post("/reset-password")
async def reset_password(req: ResetPasswordRequest):
    user = await User.find_one(User.reset_token == req.token)
    if not user or not user.reset_token_expires or user.reset_token_expires < datetime.utcnow():
        raise HTTPException(status_code=400, detail="Geçersiz veya süresi dolmuş bağlantı")
    _check_new_password(req.new_password)
    user.hashed_password = get_password_hash(req.new_password)
    user.reset_token = None
    user.reset_token_expires = None
    user.token_version += 1
    await user.save()
    return {"success": True, "message": "Şifreniz güncellendi"}


@router.post("/change-password")
async def change_password(req: ChangePasswordRequest, user: CurrentUser):
    if not verify_password(req.current_password, user.hashed_password):
        raise HTTPException(status_code=400, detail="Mevcut şifre yanlış.")
    _check_new_password(req.new_password)
    user.hashed_password = get_password_hash(req.new_password)
    # other sessions are signed out; the caller continues with the new pair
    user.token_version += 1
    user.updated_at = datetime.utcnow()
    await user.save()
    logger.info("Password changed for %s", user.username)
    return {"success": True, "message": "Şifre başarıyla değiştirildi.", **_token_pair(user)}


@router.post("/email/send-code")
async def send_email_code(req: EmailCodeRequest, user: CurrentUser):
    email = req.email or user.email
    if not email:
        raise HTTPException(status_code=400, detail="E-posta adresi gerekli")
    if email != user.email:
        if await User.find_one(User.email == email):
            raise HTTPException(status_code=400, detail="Bu e-posta adresi zaten kullanılıyor")
        user.email = email
        user.email_verified = False
    user.email_verification_code = f"{secrets.randbelow(1_000_000):06d}"
    user.email_verification_expires = datetime.utcnow() + timedelta(minutes=VERIFICATION_CODE_MINUTES)
    await user.save()
    sent = await send_verification_code(email, user.email_verification_code)
    return {"success": True, "sent": sent, "message": "Doğrulama kodu gönderildi"}


@router.post("/email/verify")
async def verify_email_code(req: EmailVerifyRequest, user: CurrentUser):
    if (
        not user.email_verification_code
        or not user.email_verification_expires
        or user.email_verification_expires < datetime.utcnow()
        or not secrets.compare_digest(req.code.strip(), user.email_verification_code)
    ):
        raise HTTPException(status_code=400, detail="Geçersiz veya süresi dolmuş doğrulama kodu")
    user.email_verified = True
    user.email_verification_code = None
    user.email_verification_expires = None
    await user.save()
    return {"success": True, "message": "E-posta doğrulandı"}
