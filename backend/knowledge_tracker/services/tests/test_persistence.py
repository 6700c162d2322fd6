import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from knowledge_tracker.exceptions import PersistenceError
from knowledge_tracker.services.persistence.blob_writer import KnowledgePersistence
from knowledge_tracker.services.persistence.kv_store import (
    InMemoryKeyValueStore,
    MongoKeyValueStore,
)


class SlowStore(InMemoryKeyValueStore):
    """Records every write and yields to the loop while writing."""

    def __init__(self):
        super().__init__()
        self.writes = []

    async def set(self, key, value):
        await asyncio.sleep(0)
        self.writes.append((key, value))
        await super().set(key, value)


@pytest.mark.asyncio
async def test_schedule_save_is_fire_and_forget():
    backend = SlowStore()
    persistence = KnowledgePersistence(backend)
    persistence.schedule_save("k", "v1")
    assert backend.writes == []
    await persistence.flush()
    assert backend.data == {"k": "v1"}
    assert persistence.pending == 0


@pytest.mark.asyncio
async def test_writes_for_a_key_are_coalesced():
    backend = SlowStore()
    persistence = KnowledgePersistence(backend)
    for i in range(5):
        persistence.schedule_save("k", f"v{i}")
    await persistence.flush()
    assert backend.data["k"] == "v4"
    assert len(backend.writes) <= 2


def test_without_a_loop_writes_wait_for_flush():
    backend = InMemoryKeyValueStore()
    persistence = KnowledgePersistence(backend)
    persistence.schedule_save("k", "v")
    assert persistence.pending == 1
    asyncio.run(persistence.flush())
    assert backend.data == {"k": "v"}


class GatedStore(InMemoryKeyValueStore):
    """Holds each write open until the test releases it."""

    def __init__(self):
        super().__init__()
        self.writes = []
        self.started = asyncio.Event()
        self.release = asyncio.Event()

    async def set(self, key, value):
        self.started.set()
        await self.release.wait()
        self.writes.append((key, value))
        await super().set(key, value)


@pytest.mark.asyncio
async def test_save_during_flush_joins_the_active_writer():
    backend = GatedStore()
    persistence = KnowledgePersistence(backend)
    # Queued before the loop could start a writer
    persistence._latest["k"] = "v1"

    flushing = asyncio.create_task(persistence.flush())
    await backend.started.wait()
    writer = persistence._writers.get("k")
    assert writer is not None

    persistence.schedule_save("k", "v2")
    assert persistence._writers["k"] is writer

    backend.release.set()
    await flushing
    assert backend.writes == [("k", "v1"), ("k", "v2")]
    assert backend.data == {"k": "v2"}
    assert persistence.pending == 0


@pytest.mark.asyncio
async def test_failed_write_is_logged_not_raised(caplog):
    backend = InMemoryKeyValueStore()
    backend.set = AsyncMock(side_effect=PersistenceError("disk full", key="k"))
    persistence = KnowledgePersistence(backend)

    persistence.schedule_save("k", "v")
    await persistence.flush()

    assert "Failed to save k" in caplog.text
    assert persistence.pending == 0


@pytest.mark.asyncio
async def test_failed_load_returns_none(caplog):
    backend = InMemoryKeyValueStore()
    backend.get = AsyncMock(side_effect=PersistenceError("offline", key="k"))
    assert await KnowledgePersistence(backend).load("k") is None
    assert "Failed to load k" in caplog.text


@pytest.mark.asyncio
@patch("knowledge_tracker.services.persistence.kv_store.AsyncIOMotorClient")
async def test_mongo_store(mock_client_cls):
    collection = MagicMock()
    collection.find_one = AsyncMock(return_value={"_id": "k", "value": "v"})
    collection.update_one = AsyncMock()
    mock_client_cls.return_value = {"knowledge_tracker": {"blobs": collection}}

    store = MongoKeyValueStore("mongodb://localhost:27017")
    assert await store.get("k") == "v"
    await store.set("k", "v2")
    collection.update_one.assert_awaited_once_with(
        {"_id": "k"}, {"$set": {"value": "v2"}}, upsert=True
    )


@pytest.mark.asyncio
@patch("knowledge_tracker.services.persistence.kv_store.AsyncIOMotorClient")
async def test_mongo_errors_become_persistence_errors(mock_client_cls):
    collection = MagicMock()
    collection.find_one = AsyncMock(side_effect=RuntimeError("connection reset"))
    mock_client_cls.return_value = {"knowledge_tracker": {"blobs": collection}}

    store = MongoKeyValueStore("mongodb://localhost:27017")
    with pytest.raises(PersistenceError) as exc_info:
        await store.get("k")
    assert exc_info.value.key == "k"
