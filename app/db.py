"""MongoDB connection and Beanie document registration."""
from beanie import init_beanie
from motor.motor_asyncio import AsyncIOMotorClient

from app.config import settings
from app.models import DOCUMENT_MODELS


_client = None


async def db_startup(client=None):
    """Connect to MongoDB and initialize Beanie ODM."""
    global _client
    _client = client or AsyncIOMotorClient(settings.mongodb_url, serverSelectionTimeoutMS=5000)
    await init_beanie(
        database=_client[settings.mongodb_db_name],
        document_models=DOCUMENT_MODELS,
    )


async def db_shutdown():
    """Close MongoDB connection."""
    global _client
    if _client:
        _client.close()
        _client = None


async def init_db():
    await db_startup()
