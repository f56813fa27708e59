"""Seed default admin user if not present."""
import logging

from app.api.deps import get_password_hash
from app.config import settings
from app.models.user import User, UserRole

logger = logging.getLogger(__name__)


async def seed_admin() -> bool:
    existing = await User.find_one(User.username == settings.seed_admin_username)
    if existing:
        return False
    await User(
        username=settings.seed_admin_username,
        hashed_password=get_password_hash(settings.seed_admin_password),
        role=UserRole.ADMIN,
        full_name=settings.seed_admin_full_name,
    ).insert()
    logger.info("Created default admin user %s", settings.seed_admin_username)
    return True
