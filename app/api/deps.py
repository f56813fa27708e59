"""Shared dependencies: JWT auth, role checks and module permissions."""
import logging
from datetime import datetime, timedelta
from typing import Annotated, Optional

import bcrypt
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError, jwt

from app.config import settings
from app.models.user import User, UserRole
from app.rbac import ACTION_BY_METHOD, has_permission

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)

ACCESS_TOKEN_TYPE = "access"
REFRESH_TOKEN_TYPE = "refresh"


def verify_password(plain: str, hashed: str) -> bool:
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        return False


def get_password_hash(password: str) -> str:
    salt = bcrypt.gensalt(rounds=settings.bcrypt_rounds)
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def _encode(claims: dict, secret: str, expires: timedelta) -> str:
    now = datetime.utcnow()
    to_encode = {
        **claims,
        "iat": now,
        "exp": now + expires,
        "iss": settings.jwt_issuer,
        "aud": settings.jwt_audience,
    }
    return jwt.encode(to_encode, secret, algorithm=settings.jwt_algorithm)


def create_access_token(user: User) -> str:
    return _encode(
        {"sub": user.username, "role": user.role.value, "ver": user.token_version, "type": ACCESS_TOKEN_TYPE},
        settings.jwt_secret_key,
        timedelta(minutes=settings.jwt_access_token_expire_minutes),
    )


def create_refresh_token(user: User) -> str:
    return _encode(
        {"sub": user.username, "ver": user.token_version, "type": REFRESH_TOKEN_TYPE},
        settings.jwt_refresh_secret_key,
        timedelta(days=settings.jwt_refresh_token_expire_days),
    )


def decode_token(token: str, token_type: str) -> dict:
    """Verify signature, expiry, issuer, audience and type; raise JWTError otherwise."""
    secret = settings.jwt_secret_key if token_type == ACCESS_TOKEN_TYPE else settings.jwt_refresh_secret_key
    payload = jwt.decode(
        token,
        secret,
        algorithms=[settings.jwt_algorithm],
        audience=settings.jwt_audience,
        issuer=settings.jwt_issuer,
    )
    if payload.get("type") != token_type:
        raise JWTError("Unexpected token type")
    if not payload.get("sub"):
        raise JWTError("Token has no subject")
    return payload


async def user_from_access_token(token: str) -> User:
    """Resolve an access token to an active user whose token version still matches; 401 otherwise."""
    try:
        payload = decode_token(token, ACCESS_TOKEN_TYPE)
    except JWTError:
        raise HTTPException(status_code=401, detail="Geçersiz veya süresi dolmuş token")
    user = await User.find_one(User.username == payload["sub"])
    if not user or not user.is_active:
        raise HTTPException(status_code=401, detail="Kullanıcı bulunamadı veya pasif")
    if payload.get("ver", 0) != user.token_version:
        logger.warning("Rejected access token with stale version for %s", user.username)
        raise HTTPException(status_code=401, detail="Token geçersiz kılındı")
    return user


async def get_current_user(
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(security)],
) -> User:
    if not credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Yetkilendirme gerekli",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return await user_from_access_token(credentials.credentials)


def require_roles(*allowed: UserRole):
    allowed_values = [role.value for role in allowed]

    async def checker(user: Annotated[User, Depends(get_current_user)]):
        if user.role.value not in allowed_values:
            raise HTTPException(status_code=403, detail="Bu işlem için yetkiniz yok")
        return user

    return checker


def require_module_permission(module: str):
    async def checker(
        request: Request,
        user: Annotated[User, Depends(get_current_user)],
    ):
        method = request.method.upper()
        action = ACTION_BY_METHOD.get(method)
        if not action:
            raise HTTPException(status_code=405, detail=f"Unsupported method for permission check: {method}")
        if not has_permission(user.role.value, module, action):
            raise HTTPException(status_code=403, detail=f"Missing {module}.{action} permission")
        return user

    return checker


def is_staff(user: User) -> bool:
    return user.role in (UserRole.ADMIN, UserRole.TEACHER)


# Type aliases for route injection
CurrentUser = Annotated[User, Depends(get_current_user)]
AdminOnly = Annotated[User, Depends(require_roles(UserRole.ADMIN))]
TeacherOrAdmin = Annotated[User, Depends(require_roles(UserRole.ADMIN, UserRole.TEACHER))]
DormitoryStaff = Annotated[User, Depends(require_roles(UserRole.ADMIN, UserRole.HIZMETLI))]
