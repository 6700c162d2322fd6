import logging
from typing import Dict, Optional, Protocol

from knowledge_tracker.exceptions import PersistenceError
from motor.motor_asyncio import AsyncIOMotorClient

logger = logging.getLogger(__name__)


class KeyValueStore(Protocol):
    """Backend holding the serialized knowledge blobs."""

    async def get(self, key: str) -> Optional[str]: ...

    async def set(self, key: str, value: str) -> None: ...


class InMemoryKeyValueStore:
    """Process-local backend, used when no MongoDB is configured."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self.data: Dict[str, str] = dict(initial or {})

    async def get(self, key: str) -> Optional[str]:
        return self.data.get(key)

    async def set(self, key: str, value: str) -> None:
        self.data[key] = value


class MongoKeyValueStore:
    """MongoDB backend storing one document per key."""

    def __init__(
        self,
        mongodb_uri: str,
        database: str = "knowledge_tracker",
        collection: str = "blobs",
    ):
        self.client = AsyncIOMotorClient(mongodb_uri)
        self.collection = self.client[database][collection]

    async def get(self, key: str) -> Optional[str]:
        try:
            doc = await self.collection.find_one({"_id": key})
        except Exception as e:
            raise PersistenceError(f"Error reading blob: {str(e)}", key=key) from e
        return doc["value"] if doc else None

    async def set(self, key: str, value: str) -> None:
        try:
            await self.collection.update_one(
                {"_id": key}, {"$set": {"value": value}}, upsert=True
            )
        except Exception as e:
            raise PersistenceError(f"Error writing blob: {str(e)}", key=key) from e
