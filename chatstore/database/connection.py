import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from motor.motor_asyncio import AsyncIOMotorClient

from chatstore.config import BACKEND_MONGO, Settings, get_settings
from chatstore.database.memory_store import InMemoryStore
from chatstore.database.mongo_store import MongoStore
from chatstore.database.store import KeyValueStore
from chatstore.utils.realtime_bus import create_bus


logger = logging.getLogger(__name__)


async def open_store(settings: Optional[Settings] = None) -> KeyValueStore:
    settings = settings or get_settings()
    if settings.backend != BACKEND_MONGO:
        logger.info("Using in-memory store")
        return InMemoryStore()

    client = AsyncIOMotorClient(settings.mongo_url)
    collection = client[settings.mongo_db_name][settings.mongo_collection]
    bus = create_bus(settings.redis_url)
    logger.info(
        "Connected to Mongo store %s.%s (realtime bus %s)",
        settings.mongo_db_name,
        settings.mongo_collection,
        "enabled" if bus.enabled else "disabled",
    )
    return MongoStore(collection, bus)


async def close_store(store: KeyValueStore) -> None:
    await store.close()


@asynccontextmanager
async def store_session(settings: Optional[Settings] = None) -> AsyncIterator[KeyValueStore]:
    store = await open_store(settings)
    try:
        yield store
    finally:
        await close_store(store)
