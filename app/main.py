"""Okul SMS - FastAPI entrypoint."""
import logging
import time
from contextlib import asynccontextmanager
from datetime import datetime
from pathlib import Path

from fastapi import Depends, FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from pymongo.errors import ServerSelectionTimeoutError
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.api import (
    announcements,
    auth,
    calendar,
    clubs,
    dashboard,
    dormitory,
    evci,
    files,
    homework,
    notes,
    notifications,
    requests,
    schedules,
    users,
)
from app.api.deps import require_module_permission
from app.config import settings
from app.db import db_shutdown, init_db
from app.errors import error_body
from app.seed import seed_admin
from app.services.cache import ResponseCacheMiddleware, cache_health, close_redis
from app.services.rate_limit import RateLimitMiddleware
from app.services.security import SecurityMiddleware

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)

_started_at = time.monotonic()


@asynccontextmanager
async def lifespan(app: FastAPI):
    try:
        await init_db()
        await seed_admin()
    except ServerSelectionTimeoutError as e:
        logger.error("MongoDB is not running at %s", settings.mongodb_url)
        raise RuntimeError("MongoDB connection failed. Start MongoDB and check MONGODB_URL.") from e
    logger.info("%s %s started", settings.app_name, settings.api_version)
    yield
    await close_redis()
    await db_shutdown()


app = FastAPI(
    title=settings.app_name,
    description="Okul yönetim sistemi: notlar, ödevler, kulüpler, pansiyon ve evci izinleri",
    version=settings.api_version,
    lifespan=lifespan,
)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    detail = exc.detail
    if exc.status_code == status.HTTP_404_NOT_FOUND and detail == "Not Found":
        detail = "Endpoint bulunamadı"
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(exc.status_code, detail),
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=error_body(
            status.HTTP_400_BAD_REQUEST,
            "Validation failed",
            errors=jsonable_encoder(exc.errors(), custom_encoder={Exception: str}),
        ),
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    extra = {"error": str(exc)} if settings.debug else {}
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_body(status.HTTP_500_INTERNAL_SERVER_ERROR, "Sunucu hatası", **extra),
    )


# Outermost first: CORS, security checks, rate limiting, then the response cache.
app.add_middleware(ResponseCacheMiddleware)
app.add_middleware(RateLimitMiddleware)
app.add_middleware(SecurityMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in settings.cors_origins.split(",") if o.strip()],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# (router, tag, permission module, paths under /api/v1, extra legacy paths under /api)
ROUTES = [
    (users.router, "Users", "users", ["users"], ["user"]),
    (notes.router, "Notes", "notes", ["notes"], []),
    (homework.router, "Homework", "homework", ["homework", "homeworks"], []),
    (announcements.router, "Announcements", "announcements", ["announcements"], []),
    (schedules.router, "Schedules", "schedules", ["schedules"], ["schedule"]),
    (clubs.router, "Clubs", "clubs", ["clubs"], []),
    (requests.router, "Requests", "requests", ["requests"], []),
    (evci.router, "Evci", "evci", ["evci-requests"], []),
    (dormitory.router, "Dormitory", "dormitory", ["dormitory"], []),
    (dormitory.meals_router, "Dormitory", "dormitory", ["meal-lists"], ["meals"]),
    (dormitory.supervisors_router, "Dormitory", "dormitory", ["supervisor-lists"], ["supervisors"]),
    (dormitory.maintenance_router, "Dormitory", "dormitory", ["maintenance-requests"], ["maintenance"]),
    (notifications.router, "Notifications", "notifications", ["notifications"], []),
    (dashboard.router, "Dashboard", "dashboard", ["dashboard"], []),
    (calendar.router, "Calendar", "calendar", ["calendar"], []),
    (files.router, "Files", "files", ["files"], []),
]

for base in ("/api/v1", "/api"):
    app.include_router(auth.router, prefix=f"{base}/auth", tags=["Auth"], include_in_schema=base == "/api/v1")

for router, tag, module, paths, legacy in ROUTES:
    deps = [Depends(require_module_permission(module))]
    for base, names in (("/api/v1", paths), ("/api", paths + legacy)):
        for name in names:
            app.include_router(
                router,
                prefix=f"{base}/{name}",
                tags=[tag],
                dependencies=deps,
                include_in_schema=base == "/api/v1" and name == paths[0],
            )


# Uploaded files stored locally (S3 uploads are served by the bucket)
_upload_dir = Path(settings.upload_dir)
_upload_dir.mkdir(parents=True, exist_ok=True)
app.mount("/uploads", StaticFiles(directory=str(_upload_dir)), name="uploads")


@app.get("/health")
def health():
    return {"status": "ok", "app": settings.app_name}


@app.get("/api/v1/health")
async def api_health():
    return {
        "version": settings.api_version,
        "status": "healthy",
        "timestamp": datetime.utcnow(),
        "uptime": round(time.monotonic() - _started_at, 1),
        "cache": await cache_health(),
    }
