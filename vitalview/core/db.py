from beanie import init_beanie
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase

from vitalview.core.config import settings
from vitalview.modules.vitals.models import VitalRecord

MONGO_CLIENT: AsyncIOMotorClient | None = None


async def init_db() -> AsyncIOMotorClient:
    """
    Create a single Motor client, initialize Beanie, and return the client.

    Called once from the application lifespan.
    """
    global MONGO_CLIENT

    client = AsyncIOMotorClient(
        settings.MONGODB_URL,
        uuidRepresentation="standard",
        serverSelectionTimeoutMS=5000,
    )

    db: AsyncIOMotorDatabase = client[settings.MONGODB_DB_NAME]
    await init_beanie(database=db, document_models=[VitalRecord])

    MONGO_CLIENT = client
    return client
