import asyncio
import logging
from typing import Dict, Optional

from knowledge_tracker.services.persistence.kv_store import KeyValueStore

logger = logging.getLogger(__name__)

NODES_KEY = "knowledge_nodes"
PATHS_KEY = "learning_paths"
INSIGHTS_KEY = "knowledge_insights"


class KnowledgePersistence:
    """Fire-and-forget saving and best-effort loading of knowledge blobs.

    Each key is written independently; a failed write is logged and never
    rolls back the other keys. Saves for the same key are coalesced so only
    the newest value is written once the previous write finishes.
    """

    def __init__(self, backend: KeyValueStore):
        self.backend = backend
        self._latest: Dict[str, str] = {}
        self._writers: Dict[str, asyncio.Task] = {}

    def schedule_save(self, key: str, value: str) -> None:
        """Queue a write without waiting for it."""
        self._latest[key] = value
        if key in self._writers:
            return

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No loop yet; flush() will write it
            return

        self._writers[key] = loop.create_task(self._drain(key))

    async def _drain(self, key: str) -> None:
        try:
            while key in self._latest:
                value = self._latest.pop(key)
                await self.save(key, value)
        finally:
            self._writers.pop(key, None)

    async def save(self, key: str, value: str) -> bool:
        """Write a blob now, logging instead of raising on failure."""
        try:
            await self.backend.set(key, value)
            return True
        except Exception as e:
            logger.error(f"Failed to save {key}: {str(e)}")
            return False

    async def load(self, key: str) -> Optional[str]:
        """Read a blob, returning None when it is missing or unreadable."""
        try:
            return await self.backend.get(key)
        except Exception as e:
            logger.error(f"Failed to load {key}: {str(e)}")
            return None

    async def flush(self) -> None:
        """Wait until every scheduled write has been attempted."""
        while self._latest or self._writers:
            # Every drain runs as the registered writer for its key
            for key in list(self._latest):
                if key not in self._writers:
                    self._writers[key] = asyncio.create_task(self._drain(key))
            writers = list(self._writers.values())
            if writers:
                await asyncio.gather(*writers)

    @property
    def pending(self) -> int:
        return len(self._latest) + len(self._writers)
